"""Exceptions raised by the storage layer.

Missing keys are never an error (reads return a fallback) and engines
report write failures as ``False``. Only malformed keys and malformed
stored data are raised to the caller.
"""


class StorageError(Exception):
    """Base class for storage errors."""


class MalformedKey(StorageError, ValueError):
    """A key does not match any known shape, or cannot be built from the given ids."""


class DecodeError(StorageError, ValueError):
    """Stored data could not be decoded into the expected value."""
