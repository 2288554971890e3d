"""fcache: read-through/write-through file cache over pluggable storage backends."""

__version__ = "0.1.0"

from fcache.cache import INVALIDATE_AT_KEY, CacheConfig, LoadingCache, Options
from fcache.cancel import CancelToken
from fcache.exceptions import (
    BackendError,
    CacheClosedError,
    CacheError,
    InvalidationError,
    InvalidMetadataError,
    LoaderCloseError,
    LoaderError,
    NotFoundError,
    PutError,
    RequestCancelledError,
    ScratchFileError,
)
from fcache.log import nop_logger, stdout_logger
from fcache.metadata import (
    CacheStats,
    FileMeta,
    GetRequest,
    GetURLParams,
    Loader,
    StoreStats,
)
from fcache.storage import LocalStore, S3Store, Store

__all__ = [
    "LoadingCache",
    "Options",
    "CacheConfig",
    "INVALIDATE_AT_KEY",
    "CancelToken",
    "Store",
    "S3Store",
    "LocalStore",
    "FileMeta",
    "GetRequest",
    "GetURLParams",
    "Loader",
    "StoreStats",
    "CacheStats",
    "CacheError",
    "CacheClosedError",
    "RequestCancelledError",
    "NotFoundError",
    "BackendError",
    "PutError",
    "LoaderError",
    "LoaderCloseError",
    "ScratchFileError",
    "InvalidMetadataError",
    "InvalidationError",
    "nop_logger",
    "stdout_logger",
    "__version__",
]
