"""Tests for the local directory store."""

import io
from unittest.mock import patch

import pytest
from filelock import Timeout

from fcache.exceptions import BackendError, NotFoundError
from fcache.metadata import FileMeta, GetURLParams
from fcache.storage import LocalStore


def put(store, key, data=b"hello", **meta_fields):
    meta_fields.setdefault("name", "a.txt")
    meta_fields.setdefault("mime", "text/plain")
    store.put(key, FileMeta(**meta_fields), io.BytesIO(data))


class TestLocalStore:
    """Test LocalStore operations."""

    def test_creates_directories(self, tmp_path):
        store = LocalStore(tmp_path / "cache")

        assert store.data_dir.is_dir()
        assert store.meta_dir.is_dir()

    def test_put_and_read_back(self, local_store):
        """Test that content and metadata round trip."""
        put(local_store, "k", meta={"_invalidate_at": "t", "foo": "bar"})

        meta = local_store.meta("k")
        with local_store.get("k") as content:
            assert content.read() == b"hello"

        assert meta.name == "a.txt"
        assert meta.mime == "text/plain"
        assert meta.size == 5
        assert meta.key == "k"
        assert meta.meta == {"_invalidate_at": "t", "foo": "bar"}
        assert meta.created_at is not None

    def test_size_is_measured(self, local_store):
        """Test that the stored size reflects the written bytes."""
        put(local_store, "k", b"12345678", size=3)

        assert local_store.meta("k").size == 8

    def test_put_closes_content(self, local_store):
        content = io.BytesIO(b"x")

        local_store.put("k", FileMeta(), content)

        assert content.closed

    def test_put_overwrites(self, local_store):
        put(local_store, "k", b"old")
        put(local_store, "k", b"new", name="b.txt")

        with local_store.get("k") as content:
            assert content.read() == b"new"
        assert local_store.meta("k").name == "b.txt"

    def test_missing_key(self, local_store):
        with pytest.raises(NotFoundError):
            local_store.meta("missing")
        with pytest.raises(NotFoundError):
            local_store.get("missing")
        with pytest.raises(NotFoundError):
            local_store.get_url("missing", GetURLParams())

    def test_awkward_keys(self, local_store):
        """Test keys with separators, spaces and dots."""
        for key in ("reports/2024 q1.pdf", "..", ".", "p!!key"):
            put(local_store, key, key.encode())

        assert sorted(local_store.keys()) == sorted(["reports/2024 q1.pdf", "..", ".", "p!!key"])
        with local_store.get("..") as content:
            assert content.read() == b".."

    def test_update_meta_keeps_content(self, local_store):
        """Test that metadata updates leave content, size and creation time alone."""
        put(local_store, "k", meta={"a": "1"})
        before = local_store.meta("k")

        local_store.update_meta("k", FileMeta(name="a.txt", mime="text/plain", meta={"a": "2"}, size=99))

        after = local_store.meta("k")
        assert after.meta == {"a": "2"}
        assert after.size == 5
        assert after.created_at == before.created_at
        with local_store.get("k") as content:
            assert content.read() == b"hello"

    def test_update_meta_missing(self, local_store):
        with pytest.raises(NotFoundError):
            local_store.update_meta("missing", FileMeta())

    def test_remove(self, local_store):
        put(local_store, "k")

        local_store.remove("k")

        assert local_store.keys() == []
        with pytest.raises(NotFoundError):
            local_store.get("k")

    def test_remove_missing(self, local_store):
        with pytest.raises(NotFoundError):
            local_store.remove("missing")

    def test_stat_keys_list(self, local_store):
        put(local_store, "a", b"12345")
        put(local_store, "b", b"123")

        stats = local_store.stat()

        assert (stats.keys, stats.size) == (2, 8)
        assert local_store.keys() == ["a", "b"]
        assert [m.key for m in local_store.list()] == ["a", "b"]

    def test_empty(self, local_store):
        assert local_store.keys() == []
        assert local_store.list() == []
        assert local_store.stat().size == 0

    def test_get_url_is_file_uri(self, local_store):
        put(local_store, "k")

        url = local_store.get_url("k", GetURLParams(filename="ignored.txt"))

        assert url.startswith("file://")
        assert url.endswith("/data/k")

    def test_corrupt_sidecar(self, local_store):
        """Test that unreadable metadata is a backend failure, not a miss."""
        put(local_store, "k")
        local_store._meta_path("k").write_bytes(b"{not json")

        with pytest.raises(BackendError):
            local_store.meta("k")

    def test_lock_timeout(self, local_store):
        """Test that a held lock turns into BackendError."""
        with patch("fcache.storage.local.FileLock") as mock_lock:
            mock_lock.return_value.__enter__.side_effect = Timeout("lock")

            with pytest.raises(BackendError, match="timeout acquiring lock"):
                local_store.remove("k")

    def test_failed_write_leaves_no_temp_file(self, local_store):
        """Test that a failing source stream doesn't leave partial files."""

        class Broken(io.RawIOBase):
            def readable(self):
                return True

            def readinto(self, b):
                raise OSError("read failed")

        with pytest.raises(BackendError, match="read failed"):
            local_store.put("k", FileMeta(), Broken())

        assert list(local_store.data_dir.iterdir()) == []
        assert local_store.keys() == []
