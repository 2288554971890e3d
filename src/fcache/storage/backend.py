"""Backend store interface.

This module defines the abstract base class that durable storage backends
implement. A LoadingCache only talks to a Store, so any storage technology
that can keep a blob together with string metadata can sit behind it.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, List

from fcache.metadata import FileMeta, GetURLParams, StoreStats


class Store(ABC):
    """Abstract base class for backend stores.

    Stores are responsible for:
    1. Keeping content and metadata per key (put, update_meta)
    2. Reading them back (meta, get, get_url)
    3. Removal and enumeration (remove, stat, keys, list)

    Every operation scoped to a key raises NotFoundError when the key is
    absent and BackendError for any other failure. Implementations must be
    safe to call from several threads at once.

    Examples:
        >>> class MemoryStore(Store):
        ...     def meta(self, key):
        ...         ...
        ...     # and the rest of the operations
    """

    @abstractmethod
    def meta(self, key: str) -> FileMeta:
        """Fetch metadata of an object without transferring its content.

        Raises:
            NotFoundError: If the key is absent
            BackendError: On any other failure
        """
        pass

    @abstractmethod
    def get(self, key: str) -> BinaryIO:
        """Return the content of an object as a lazily read, closable stream.

        Raises:
            NotFoundError: If the key is absent
            BackendError: On any other failure
        """
        pass

    @abstractmethod
    def get_url(self, key: str, params: GetURLParams) -> str:
        """Return a time-limited direct-access URL for an object.

        Args:
            key: Object key
            params: Download filename override and URL lifetime

        Raises:
            NotFoundError: If the key is absent
            BackendError: On any other failure
        """
        pass

    @abstractmethod
    def put(self, key: str, meta: FileMeta, content: BinaryIO) -> None:
        """Store content and metadata, overwriting any existing object.

        The store takes ownership of `content` and closes it.

        Raises:
            BackendError: On failure
        """
        pass

    @abstractmethod
    def update_meta(self, key: str, meta: FileMeta) -> None:
        """Replace the metadata of an object without rewriting its content.

        Raises:
            NotFoundError: If the key is absent
            BackendError: On any other failure
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove an object.

        Raises:
            NotFoundError: If the key is absent
            BackendError: On any other failure
        """
        pass

    @abstractmethod
    def stat(self) -> StoreStats:
        """Return the number of stored objects and their total size."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        """Return the keys of all stored objects, in store order."""
        pass

    @abstractmethod
    def list(self) -> List[FileMeta]:
        """Return metadata of every stored object, including `meta` mappings."""
        pass
