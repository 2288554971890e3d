"""Records describing cached files, requests and statistics."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import BinaryIO, Callable, Dict, Optional, Tuple

from fcache.cancel import CancelToken


@dataclass
class FileMeta:
    """Descriptive record for a cached blob.

    Attributes:
        name: Logical file name (e.g. the download name)
        mime: MIME type of the content
        size: Size in bytes, 0 when unknown
        meta: Auxiliary string metadata; carries the expiration timestamp
        key: Storage key, filled in by stores on read
        created_at: Creation time reported by the store
    """

    name: str = ""
    mime: str = ""
    size: int = 0
    meta: Dict[str, str] = field(default_factory=dict)
    key: str = ""
    created_at: Optional[datetime] = None


# A loader produces the content stream and its metadata. It receives the
# request's cancellation token, is called at most once per miss and its stream
# is consumed exactly once by the cache.
Loader = Callable[[CancelToken], Tuple[BinaryIO, FileMeta]]


@dataclass
class GetRequest:
    """Parameters of a cache lookup.

    Attributes:
        key: Cache identity, must be non-empty
        ttl: Lifetime of the entry written on a miss; zero expires immediately
        loader: Content producer, invoked only on a miss
        cancel: Caller's cancellation token or deadline for this request
    """

    key: str
    ttl: timedelta = timedelta(0)
    loader: Optional[Loader] = None
    cancel: Optional[CancelToken] = None

    def __post_init__(self):
        if not self.key:
            raise ValueError("GetRequest.key must be non-empty")
        if not isinstance(self.ttl, timedelta):
            self.ttl = timedelta(seconds=self.ttl)


@dataclass
class GetURLParams:
    """Parameters of a direct-access URL.

    Attributes:
        filename: Download filename override, empty to use the stored name
        expires: Lifetime of the URL
    """

    filename: str = ""
    expires: timedelta = timedelta(minutes=15)


@dataclass
class StoreStats:
    """Statistics reported by a store."""

    keys: int = 0
    size: int = 0


@dataclass
class CacheStats(StoreStats):
    """Cache counters together with the store statistics."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
