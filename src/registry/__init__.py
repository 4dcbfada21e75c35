"""Package index access for wheelpin."""
