"""Tests for cache configuration."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from fcache.cache import CacheConfig
from fcache.storage import LocalStore, S3Store

ENV_VARS = [
    "FCACHE_TTL",
    "FCACHE_INVALIDATE_PERIOD",
    "FCACHE_EXTEND_TTL",
    "FCACHE_BUCKET",
    "FCACHE_PREFIX",
    "FCACHE_ENDPOINT_URL",
    "FCACHE_REGION",
    "FCACHE_LOCAL_DIR",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestCacheConfig:
    """Test CacheConfig loading and conversion."""

    def test_defaults(self):
        config = CacheConfig()

        assert config.ttl == 1800
        assert config.invalidate_period == 900
        assert config.extend_ttl is False
        assert config.bucket is None
        assert config.default_ttl == timedelta(minutes=30)

    def test_from_env(self, monkeypatch, tmp_path):
        """Test reading every FCACHE_* variable."""
        monkeypatch.setenv("FCACHE_TTL", "60")
        monkeypatch.setenv("FCACHE_INVALIDATE_PERIOD", "0")
        monkeypatch.setenv("FCACHE_EXTEND_TTL", "TRUE")
        monkeypatch.setenv("FCACHE_BUCKET", "files")
        monkeypatch.setenv("FCACHE_PREFIX", "thumbs")
        monkeypatch.setenv("FCACHE_ENDPOINT_URL", "http://minio:9000")
        monkeypatch.setenv("FCACHE_REGION", "eu-west-1")
        monkeypatch.setenv("FCACHE_LOCAL_DIR", str(tmp_path))

        config = CacheConfig.from_env()

        assert config.ttl == 60
        assert config.invalidate_period == 0
        assert config.extend_ttl is True
        assert config.bucket == "files"
        assert config.prefix == "thumbs"
        assert config.endpoint_url == "http://minio:9000"
        assert config.region == "eu-west-1"
        assert config.local_dir == tmp_path

    def test_save_and_load(self, tmp_path):
        """Test that a saved configuration loads back unchanged."""
        path = tmp_path / "nested" / "config.json"
        config = CacheConfig(ttl=10, extend_ttl=True, local_dir=tmp_path / "store")

        config.save(path)
        loaded = CacheConfig.load(path)

        assert loaded == config

    def test_load_missing_file(self, tmp_path):
        assert CacheConfig.load(tmp_path / "absent.json") == CacheConfig()

    def test_options(self, quiet_log):
        config = CacheConfig(invalidate_period=60, extend_ttl=True)

        options = config.options(quiet_log)

        assert options.invalidate_period == timedelta(minutes=1)
        assert options.extend_ttl is True
        assert options.log is quiet_log

    def test_build_local_store(self, tmp_path):
        store = CacheConfig(local_dir=tmp_path).build_store()

        assert isinstance(store, LocalStore)
        assert store.root == tmp_path

    def test_build_s3_store(self, tmp_path):
        """Test that a bucket takes precedence over a local directory."""
        config = CacheConfig(bucket="files", prefix="p", local_dir=tmp_path)

        with patch("fcache.storage.s3.boto3.client"):
            store = config.build_store()

        assert isinstance(store, S3Store)
        assert store.prefix == "p"

    def test_build_without_store(self):
        with pytest.raises(ValueError, match="No store configured"):
            CacheConfig().build_store()
