"""Exception hierarchy for fcache.

Every error raised by the cache or by a store derives from CacheError:

- NotFoundError: the key is absent from the store (drives the miss path)
- BackendError: the store failed for any other reason
- LoaderError: the caller-supplied loader failed
- ScratchFileError: the temporary scratch buffer could not be used
- InvalidMetadataError: an expiration timestamp could not be parsed
- InvalidationError: aggregate of all failures of one sweep pass
- CacheClosedError / RequestCancelledError: the cache or the request was stopped
"""

from typing import List, Optional


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheClosedError(CacheError):
    """Raised when a request is made on a closed cache."""

    pass


class RequestCancelledError(CacheError):
    """Raised when a request is cancelled or its deadline passes."""

    pass


class NotFoundError(CacheError):
    """Raised when a key is not present in the store."""

    def __init__(self, key: str):
        super().__init__(f"key {key!r} not found")
        self.key = key


class BackendError(CacheError):
    """Raised when a store operation fails unexpectedly.

    Attributes:
        operation: Store operation that failed (e.g. 'meta', 'put')
        key: Key the operation was scoped to, if any
    """

    def __init__(self, operation: str, key: Optional[str], message: str):
        where = f"{operation} {key!r}" if key is not None else operation
        super().__init__(f"{where}: {message}")
        self.operation = operation
        self.key = key


class PutError(BackendError):
    """Raised when storing loaded content fails on the miss path."""

    pass


class LoaderError(CacheError):
    """Raised when the loader fails to produce content."""

    pass


class LoaderCloseError(LoaderError):
    """Raised when closing the stream returned by the loader fails."""

    pass


class ScratchFileError(CacheError):
    """Raised when the scratch file cannot be created or written."""

    pass


class InvalidMetadataError(CacheError):
    """Raised when an expiration timestamp cannot be parsed."""

    def __init__(self, key: Optional[str], value: str, reason: str = ""):
        msg = f"invalid expiration timestamp {value!r}"
        if key is not None:
            msg += f" for key {key!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.key = key
        self.value = value


class InvalidationError(CacheError):
    """Aggregate of every per-item failure of one invalidation pass.

    Attributes:
        errors: All failures, in the order they happened
        removed: Number of objects removed during the pass
    """

    def __init__(self, errors: List[Exception], removed: int = 0):
        self.errors = list(errors)
        self.removed = removed
        lines = [f"{len(self.errors)} error(s) during invalidation:"]
        lines.extend(f"  * {err}" for err in self.errors)
        super().__init__("\n".join(lines))
