"""Backend stores for fcache.

This module provides the Store interface along with its implementations
for S3-compatible object storage and local directories.
"""

from fcache.storage.backend import Store
from fcache.storage.local import LocalStore
from fcache.storage.s3 import S3Store

__all__ = [
    "Store",
    "S3Store",
    "LocalStore",
]
