"""Error types raised at the message store boundary."""


class InvalidArgument(ValueError):
    """A required identifier or enumerated value is missing or invalid."""


class StorageError(RuntimeError):
    """The backing store failed to read, write, or decode a record."""
