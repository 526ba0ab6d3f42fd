"""Transform pipeline errors."""


class TransformError(Exception):
    """Raised for structural problems such as a file without a resolvable name."""
