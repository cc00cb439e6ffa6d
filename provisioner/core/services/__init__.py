"""Services — identity, preflight, step catalog, verification, reporting."""
