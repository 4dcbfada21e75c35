"""Data models and requirement parsing for wheelpin."""
