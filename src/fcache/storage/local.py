"""Store implementation backed by a local directory.

Directory layout:
    <root>/data/<encoded key>        object content
    <root>/meta/<encoded key>.json   metadata sidecar
    <root>/.locks/<encoded key>.lock per-key lock files

Keys are percent-encoded so any key maps to a single file name.
"""

import logging
import shutil
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, Iterator, List, Union

import orjson
from filelock import FileLock, Timeout

from fcache.exceptions import BackendError, NotFoundError
from fcache.metadata import FileMeta, GetURLParams, StoreStats
from fcache.storage.backend import Store
from fcache.utils import decode_key, encode_key

logger = logging.getLogger(__name__)


class LocalStore(Store):
    """Store keeping objects in a local directory.

    Safe for concurrent use by threads and processes sharing the directory,
    using file-based locking.

    Examples:
        >>> store = LocalStore('/var/cache/thumbs')
        >>> store.put('a.png', FileMeta(name='a.png', mime='image/png'), open('a.png', 'rb'))
        >>> store.meta('a.png').mime
        'image/png'
    """

    def __init__(self, root: Union[str, Path], lock_timeout: float = 30):
        """Initialize the store, creating its directories.

        Args:
            root: Directory holding the objects
            lock_timeout: Seconds to wait for a per-key lock
        """
        self.root = Path(root).expanduser()
        self.data_dir = self.root / "data"
        self.meta_dir = self.root / "meta"
        self.lock_dir = self.root / ".locks"
        self.lock_timeout = lock_timeout
        for directory in (self.data_dir, self.meta_dir, self.lock_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise BackendError("init", None, f"cannot create {directory}: {e}") from e

    def _data_path(self, key: str) -> Path:
        return self.data_dir / encode_key(key)

    def _meta_path(self, key: str) -> Path:
        return self.meta_dir / f"{encode_key(key)}.json"

    @contextmanager
    def _locked(self, operation: str, key: str) -> Iterator[None]:
        lock_path = self.lock_dir / f"{encode_key(key)}.lock"
        try:
            with FileLock(lock_path, timeout=self.lock_timeout):
                yield
        except Timeout as e:
            raise BackendError(
                operation, key, f"timeout acquiring lock after {self.lock_timeout} seconds"
            ) from e

    # =========================================================================
    # Sidecar I/O
    # =========================================================================

    @staticmethod
    def _serialize(meta: FileMeta) -> Dict[str, Any]:
        return {
            "name": meta.name,
            "mime": meta.mime,
            "size": meta.size,
            "meta": dict(meta.meta or {}),
            "key": meta.key,
            "created_at": meta.created_at.isoformat() if meta.created_at else None,
        }

    def _read_meta(self, operation: str, key: str) -> FileMeta:
        path = self._meta_path(key)
        try:
            data = orjson.loads(path.read_bytes())
        except FileNotFoundError as e:
            raise NotFoundError(key) from e
        except (OSError, orjson.JSONDecodeError) as e:
            raise BackendError(operation, key, f"cannot read metadata {path}: {e}") from e

        created_at = data.get("created_at")
        return FileMeta(
            name=data.get("name", ""),
            mime=data.get("mime", ""),
            size=data.get("size", 0),
            meta=data.get("meta") or {},
            key=key,
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )

    def _write_meta(self, operation: str, key: str, meta: FileMeta) -> None:
        path = self._meta_path(key)
        temp_path = path.with_suffix(".json.tmp")
        try:
            temp_path.write_bytes(orjson.dumps(self._serialize(meta), option=orjson.OPT_INDENT_2))
            temp_path.replace(path)
        except OSError as e:
            raise BackendError(operation, key, f"cannot write metadata {path}: {e}") from e

    # =========================================================================
    # Store interface
    # =========================================================================

    def meta(self, key: str) -> FileMeta:
        return self._read_meta("meta", key)

    def get(self, key: str) -> BinaryIO:
        try:
            return open(self._data_path(key), "rb")
        except FileNotFoundError as e:
            raise NotFoundError(key) from e
        except OSError as e:
            raise BackendError("get", key, str(e)) from e

    def get_url(self, key: str, params: GetURLParams) -> str:
        """Return a file:// URI of the object.

        Local files have no expiring links or download names, so `params`
        is not used.
        """
        self._read_meta("get_url", key)
        return self._data_path(key).resolve().as_uri()

    def put(self, key: str, meta: FileMeta, content: BinaryIO) -> None:
        data_path = self._data_path(key)
        temp_path = data_path.with_name(data_path.name + ".tmp")
        try:
            with self._locked("put", key):
                try:
                    with open(temp_path, "wb") as f:
                        shutil.copyfileobj(content, f)
                    size = temp_path.stat().st_size
                    temp_path.replace(data_path)
                except OSError as e:
                    temp_path.unlink(missing_ok=True)
                    if e.errno == 28:  # ENOSPC - No space left on device
                        raise BackendError("put", key, "disk full") from e
                    raise BackendError("put", key, str(e)) from e
                except Exception:
                    temp_path.unlink(missing_ok=True)
                    raise

                stored = FileMeta(
                    name=meta.name,
                    mime=meta.mime,
                    size=size,
                    meta=dict(meta.meta or {}),
                    key=key,
                    created_at=datetime.now(timezone.utc),
                )
                self._write_meta("put", key, stored)
        finally:
            content.close()
        logger.debug(f"Stored {size} bytes under key {key!r}")

    def update_meta(self, key: str, meta: FileMeta) -> None:
        with self._locked("update_meta", key):
            current = self._read_meta("update_meta", key)
            current.name = meta.name
            current.mime = meta.mime
            current.meta = dict(meta.meta or {})
            self._write_meta("update_meta", key, current)

    def remove(self, key: str) -> None:
        with self._locked("remove", key):
            meta_path = self._meta_path(key)
            if not meta_path.exists():
                raise NotFoundError(key)
            try:
                meta_path.unlink()
                self._data_path(key).unlink(missing_ok=True)
            except OSError as e:
                raise BackendError("remove", key, str(e)) from e

    def _iter_keys(self, operation: str) -> Iterator[str]:
        try:
            names = sorted(p.name for p in self.meta_dir.glob("*.json"))
        except OSError as e:
            raise BackendError(operation, None, str(e)) from e
        for name in names:
            yield decode_key(name[: -len(".json")])

    def stat(self) -> StoreStats:
        stats = StoreStats()
        for meta in self.list():
            stats.keys += 1
            stats.size += meta.size
        return stats

    def keys(self) -> List[str]:
        return list(self._iter_keys("keys"))

    def list(self) -> List[FileMeta]:
        result = []
        for key in self._iter_keys("list"):
            try:
                result.append(self._read_meta("list", key))
            except NotFoundError:
                logger.debug(f"Key {key!r} removed while listing")
        return result
