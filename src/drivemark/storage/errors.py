"""Storage errors."""


class StorageError(Exception):
    """Raised when a store path is invalid or cannot be accessed."""
