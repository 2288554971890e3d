"""Loading cache: read-through/write-through access to a backend store."""

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, BinaryIO, Callable, List, Optional, Tuple, Union

from fcache.cache.config import Options
from fcache.cache.stats import CacheCounters
from fcache.cache.validation import (
    INVALIDATE_AT_KEY,
    get_expiry,
    is_expired,
    parse_expiry,
    set_expiry,
    utcnow,
)
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
from fcache.metadata import CacheStats, FileMeta, GetRequest, GetURLParams
from fcache.storage.backend import Store
from fcache.utils import CancellableReader, ScratchStream, TeeReader

logger = logging.getLogger(__name__)


class LoadingCache:
    """Read-through/write-through file cache in front of a Store.

    On a hit the stored content is returned; on a miss the request's loader
    produces the content, which is written to the store and returned to the
    caller at the same time. Items carry their expiration in the
    '_invalidate_at' metadata key and a background sweep removes them once
    it has passed.

    Safe for concurrent use by several threads. No lock is held across store
    or loader calls.

    Examples:
        >>> cache = LoadingCache(LocalStore('/tmp/files'), extend_ttl=True)
        >>> with cache:
        ...     content, meta = cache.get_file(GetRequest(
        ...         key='report.pdf',
        ...         ttl=timedelta(minutes=30),
        ...         loader=lambda cancel: (open('report.pdf', 'rb'), FileMeta(name='report.pdf')),
        ...         cancel=CancelToken(timeout=10),
        ...     ))
        ...     with content:
        ...         data = content.read()
    """

    def __init__(
        self,
        store: Store,
        options: Optional[Options] = None,
        *,
        log: Optional[logging.Logger] = None,
        invalidate_period: Optional[Union[timedelta, float]] = None,
        extend_ttl: Optional[bool] = None,
        scratch_dir: Optional[Union[str, Path]] = None,
    ):
        """Initialize the cache.

        Args:
            store: Backend store holding the files
            options: Cache options (defaults if None)
            log: Override options.log
            invalidate_period: Override options.invalidate_period
            extend_ttl: Override options.extend_ttl
            scratch_dir: Directory for scratch files (system temp dir if None)
        """
        self.store = store
        self.options = replace(options) if options else Options()
        if log is not None:
            self.options.log = log
        if invalidate_period is not None:
            self.options.invalidate_period = invalidate_period
        if extend_ttl is not None:
            self.options.extend_ttl = extend_ttl
        # Re-validate after overrides
        self.options.__post_init__()

        self.scratch_dir = scratch_dir
        self.counters = CacheCounters()

        # Parent of every request token; cancelled by close()
        self._root = CancelToken()
        self._thread: Optional[threading.Thread] = None

        # mockable
        self._now: Callable[[], datetime] = utcnow

    @property
    def log(self) -> logging.Logger:
        return self.options.log

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._root.cancelled

    @property
    def stop_reason(self) -> Optional[str]:
        """Reason given to close(), if closed."""
        return self._root.reason

    # =========================================================================
    # Store access
    # =========================================================================

    def _check(self, token: Optional[CancelToken] = None) -> None:
        """Raise if the cache is closed or the request was cancelled."""
        if self._root.cancelled:
            raise CacheClosedError(f"cache is closed: {self._root.reason}")
        if token is not None and token.cancelled:
            raise RequestCancelledError(f"request cancelled: {token.reason}")

    def _request_token(self, request: GetRequest) -> CancelToken:
        token = self._root.child(request.cancel)
        self._check(token)
        return token

    def _call(
        self,
        operation: str,
        key: Optional[str],
        fn: Callable,
        *args: Any,
        token: Optional[CancelToken] = None,
    ) -> Any:
        """Call into the store, counting unexpected failures.

        NotFoundError passes through uncounted. Exceptions a store raises
        outside the CacheError hierarchy are wrapped in BackendError.
        """
        self._check(token)
        try:
            return fn(*args)
        except NotFoundError:
            raise
        except BackendError:
            self.counters.errors.increment()
            raise
        except CacheError:
            raise
        except Exception as e:
            self.counters.errors.increment()
            raise BackendError(operation, key, str(e)) from e

    def _lookup(self, key: str, token: CancelToken) -> Optional[FileMeta]:
        """Return the stored metadata of key, or None on a miss."""
        try:
            return self._call("meta", key, self.store.meta, key, token=token)
        except NotFoundError:
            return None

    def _put(self, key: str, meta: FileMeta, content: BinaryIO, token: CancelToken) -> None:
        try:
            self._call("put", key, self.store.put, key, meta, content, token=token)
        except BackendError as e:
            if isinstance(e, PutError):
                raise
            raise PutError("put", key, f"put file into storage: {e}") from e

    # =========================================================================
    # Loading
    # =========================================================================

    def _load(self, request: GetRequest, token: CancelToken) -> Tuple[BinaryIO, FileMeta]:
        """Run the loader and stamp the expiration on its metadata."""
        if request.loader is None:
            raise LoaderError(f"cache miss for key {request.key!r} and no loader given")

        self._check(token)
        try:
            content, meta = request.loader(token)
        except (CacheClosedError, RequestCancelledError):
            raise
        except Exception as e:
            raise LoaderError(f"loader for key {request.key!r} failed: {e}") from e

        try:
            self._check(token)
        except CacheError:
            self._close_quietly(content, request.key)
            raise

        meta = replace(meta, meta=dict(meta.meta or {}))
        set_expiry(meta, self._now() + request.ttl)
        return content, meta

    def _close_loader_stream(self, content: BinaryIO, key: str) -> None:
        try:
            content.close()
        except Exception as e:
            raise LoaderCloseError(
                f"close reader received from loader for key {key!r}: {e}"
            ) from e

    def _close_quietly(self, content: BinaryIO, key: str) -> None:
        """Close a stream on a path that is already failing."""
        try:
            content.close()
        except Exception as e:
            self.log.warning(f"Failed to close loader stream for key {key!r}: {e}")

    def _load_duplicated(
        self, request: GetRequest, token: CancelToken
    ) -> Tuple[BinaryIO, FileMeta]:
        """Load on miss, store the content and hand the same bytes back.

        The loader's stream is read once: every chunk the store consumes is
        also written to a scratch file, which is rewound and returned.
        Closing the returned stream deletes the scratch file.
        """
        key = request.key
        content, meta = self._load(request, token)

        try:
            scratch = ScratchStream(self.scratch_dir)
        except ScratchFileError:
            self._close_quietly(content, key)
            raise

        tee = TeeReader(content, scratch, check=lambda: self._check(token))
        try:
            self._put(key, meta, tee, token)
            # the store may stop reading before EOF
            tee.drain()
        except Exception as e:
            scratch.close()
            self._close_quietly(content, key)
            if tee.error is not None and not isinstance(e, ScratchFileError):
                raise ScratchFileError(
                    f"Cannot write scratch file for key {key!r}: {tee.error}"
                ) from tee.error
            raise

        try:
            self._close_loader_stream(content, key)
        except LoaderCloseError:
            scratch.close()
            raise

        scratch.rewind()
        return scratch, meta

    # =========================================================================
    # TTL
    # =========================================================================

    def _extend_ttl(self, request: GetRequest, meta: FileMeta, token: CancelToken) -> FileMeta:
        """Push the expiration of a hit item forward by the request TTL.

        Items without an expiration get one relative to now; otherwise the
        existing deadline is advanced.

        Raises:
            InvalidMetadataError: If the stored expiration cannot be parsed
        """
        value = (meta.meta or {}).get(INVALIDATE_AT_KEY)
        if value is None:
            expiry = self._now() + request.ttl
        else:
            expiry = parse_expiry(value, request.key) + request.ttl

        updated = replace(meta, meta=dict(meta.meta or {}))
        set_expiry(updated, expiry)
        self._call(
            "update_meta", request.key, self.store.update_meta, request.key, updated, token=token
        )
        return updated

    # =========================================================================
    # Public API
    # =========================================================================

    def get_file(self, request: GetRequest) -> Tuple[BinaryIO, FileMeta]:
        """Get the file from the store or load it, if absent.

        Args:
            request: Key, TTL, loader and optional cancellation token

        Returns:
            (content, meta); the caller must close content

        Raises:
            BackendError: If the store fails (PutError when storing a load)
            LoaderError: If the loader or closing its stream fails
            ScratchFileError: If the scratch file can't be created or written
            InvalidMetadataError: If extending the TTL hits a corrupt timestamp
            RequestCancelledError: If the request token is cancelled or expires
            CacheClosedError: If the cache was closed
        """
        key = request.key
        token = self._request_token(request)
        meta = self._lookup(key, token)

        if meta is not None:
            self.counters.hits.increment()
            self.log.debug(f"Cache hit for key {key!r}")
            content = self._call("get", key, self.store.get, key, token=token)
            if self.options.extend_ttl:
                try:
                    meta = self._extend_ttl(request, meta, token)
                except Exception:
                    content.close()
                    raise
            return content, meta

        self.counters.misses.increment()
        self.log.debug(f"Cache miss for key {key!r}, loading")
        return self._load_duplicated(request, token)

    def get_url(
        self, request: GetRequest, params: Optional[GetURLParams] = None
    ) -> Tuple[str, FileMeta]:
        """Get a direct-access URL of the file, loading it first if absent.

        Args:
            request: Key, TTL, loader and optional cancellation token
            params: Download filename override and URL lifetime

        Returns:
            (url, meta)

        Raises:
            Same as get_file, except ScratchFileError
        """
        key = request.key
        params = params or GetURLParams()
        token = self._request_token(request)
        meta = self._lookup(key, token)

        if meta is not None:
            self.counters.hits.increment()
            self.log.debug(f"Cache hit for key {key!r}")
            if self.options.extend_ttl:
                meta = self._extend_ttl(request, meta, token)
        else:
            self.counters.misses.increment()
            self.log.debug(f"Cache miss for key {key!r}, loading")
            content, meta = self._load(request, token)
            reader = CancellableReader(content, check=lambda: self._check(token))
            try:
                # the store closes reader, and with it content
                self._put(key, meta, reader, token)
            except Exception:
                self._close_quietly(reader, key)
                raise

        url = self._call("get_url", key, self.store.get_url, key, params, token=token)
        return url, meta

    def stat(self) -> CacheStats:
        """Return cache counters together with store statistics."""
        store_stats = self._call("stat", None, self.store.stat)
        return self.counters.snapshot(store_stats)

    def keys(self) -> List[str]:
        """Return all keys present in the store."""
        return self._call("keys", None, self.store.keys)

    # =========================================================================
    # Invalidation
    # =========================================================================

    def invalidate(self) -> int:
        """Remove every item whose expiration has passed.

        Items without an expiration are never removed. A failure on one item
        doesn't stop the pass.

        Returns:
            Number of removed items

        Raises:
            InvalidationError: Carrying every per-item failure of the pass
            BackendError: If the store listing itself fails
        """
        metas = self._call("list", None, self.store.list)
        now = self._now()
        errors: List[Exception] = []
        removed = 0

        for meta in metas:
            if self._root.cancelled:
                errors.append(
                    CacheClosedError(f"invalidation interrupted: {self._root.reason}")
                )
                break

            try:
                expiry = get_expiry(meta)
            except InvalidMetadataError as e:
                errors.append(e)
                continue

            if expiry is None or not is_expired(expiry, now):
                continue

            try:
                self.store.remove(meta.key)
            except NotFoundError:
                self.log.debug(f"Key {meta.key!r} already removed")
                continue
            except BackendError as e:
                self.counters.errors.increment()
                errors.append(e)
                continue
            except Exception as e:
                self.counters.errors.increment()
                errors.append(BackendError("remove", meta.key, str(e)))
                continue

            removed += 1
            self.log.debug(f"Removed file with key {meta.key!r}")

        if errors:
            raise InvalidationError(errors, removed)
        return removed

    def run(self) -> None:
        """Run invalidation passes every invalidate_period until closed.

        Raises:
            ValueError: If the invalidation period is zero
        """
        period = self.options.invalidate_period
        if period <= timedelta(0):
            raise ValueError("invalidation period cannot be zero")

        while not self._root.wait(period.total_seconds()):
            try:
                removed = self.invalidate()
            except CacheError as e:
                self.log.warning(f"Failed to invalidate cache items: {e}")
                continue
            if removed:
                self.log.info(f"Invalidated {removed} expired item(s)")

        self.log.warning(f"Invalidation loop stopped: {self._root.reason}")

    def start(self) -> None:
        """Start the background invalidation thread.

        Does nothing when the invalidation period is zero or it already runs.
        """
        if self.options.invalidate_period <= timedelta(0):
            self.log.debug("Invalidation period is zero, sweep disabled")
            return
        if self._thread is not None and self._thread.is_alive():
            return
        self._check()
        self._thread = threading.Thread(
            target=self.run, name="fcache-invalidate", daemon=True
        )
        self._thread.start()

    def close(self, reason: str = "cache closed", timeout: Optional[float] = None) -> None:
        """Stop the invalidation thread and cancel every in-flight request.

        Args:
            reason: Cancellation cause reported by the loop and by requests
            timeout: Seconds to wait for the thread to finish
        """
        self._root.cancel(reason)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def __enter__(self) -> "LoadingCache":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
