"""Shared fixtures for fcache tests."""

import io
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from fcache.log import nop_logger
from fcache.metadata import FileMeta
from fcache.storage import LocalStore, Store


@pytest.fixture
def now():
    """Fixed point in time used as the cache clock."""
    return datetime(2022, 7, 5, 6, 51, 21, tzinfo=timezone.utc)


@pytest.fixture
def mock_store():
    """Store double whose operations are plain mocks."""
    return Mock(spec=Store)


@pytest.fixture
def local_store(tmp_path):
    """Local directory store in a temporary directory."""
    return LocalStore(tmp_path / "store")


@pytest.fixture
def scratch_dir(tmp_path):
    """Directory for scratch files, so tests can check they are cleaned up."""
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def quiet_log():
    return nop_logger("fcache.tests")


@pytest.fixture
def make_loader():
    """Factory for loaders returning fixed content, counting their calls."""

    def factory(content=b"hello", name="a.txt", mime="text/plain", meta=None):
        def loader(cancel):
            loader.calls += 1
            return io.BytesIO(content), FileMeta(
                name=name, mime=mime, size=len(content), meta=dict(meta or {})
            )

        loader.calls = 0
        return loader

    return factory


@pytest.fixture
def failing_loader():
    """Loader that fails the test if the cache invokes it."""

    def loader(cancel):
        raise AssertionError("loader must not be called")

    return loader
