"""Shared helpers (logging) used across wheelpin modules."""
