"""Tests for the fcache command line interface."""

import io
from datetime import datetime, timedelta, timezone

import pytest
from click.testing import CliRunner

from fcache.cache import INVALIDATE_AT_KEY
from fcache.cache.validation import format_expiry
from fcache.cli.main import cli, format_size
from fcache.metadata import FileMeta
from fcache.storage import LocalStore

PAST = datetime(2000, 1, 1, tzinfo=timezone.utc)
FUTURE = datetime.now(timezone.utc) + timedelta(days=365)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("FCACHE_BUCKET", "FCACHE_LOCAL_DIR", "FCACHE_PREFIX"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store_dir(tmp_path):
    """Local store holding one live and one expired file."""
    path = tmp_path / "store"
    store = LocalStore(path)
    store.put(
        "live",
        FileMeta(name="live.txt", mime="text/plain", meta={INVALIDATE_AT_KEY: format_expiry(FUTURE)}),
        io.BytesIO(b"12345"),
    )
    store.put(
        "old",
        FileMeta(name="old.txt", mime="text/plain", meta={INVALIDATE_AT_KEY: format_expiry(PAST)}),
        io.BytesIO(b"123"),
    )
    return path


def invoke(store_dir, *args):
    return CliRunner().invoke(cli, ["--local-dir", str(store_dir), *args])


class TestCommands:
    """Test CLI commands against a local store."""

    def test_keys(self, store_dir):
        result = invoke(store_dir, "keys")

        assert result.exit_code == 0
        assert result.output.split() == ["live", "old"]

    def test_stats(self, store_dir):
        result = invoke(store_dir, "stats")

        assert result.exit_code == 0
        assert "Keys" in result.output
        assert "8 B" in result.output

    def test_ls(self, store_dir):
        result = invoke(store_dir, "ls")

        assert result.exit_code == 0
        assert "live.txt" in result.output
        assert "2000-01-01" in result.output

    def test_ls_empty(self, tmp_path):
        result = invoke(tmp_path / "empty", "ls")

        assert result.exit_code == 0
        assert "No files found" in result.output

    def test_invalidate(self, store_dir):
        """Test that only expired files are removed."""
        result = invoke(store_dir, "invalidate")

        assert result.exit_code == 0
        assert "Removed 1 expired file(s)" in result.output
        assert LocalStore(store_dir).keys() == ["live"]

    def test_invalidate_reports_errors(self, store_dir):
        """Test that per-item failures make the command fail."""
        LocalStore(store_dir).update_meta(
            "live", FileMeta(name="live.txt", meta={INVALIDATE_AT_KEY: "garbage"})
        )

        result = invoke(store_dir, "invalidate")

        assert result.exit_code == 1
        assert "Removed 1 expired file(s)" in result.output
        assert "1 error(s)" in result.output

    def test_url(self, store_dir):
        result = invoke(store_dir, "url", "live", "--filename", "x.txt")

        assert result.exit_code == 0
        assert result.output.strip().startswith("file://")

    def test_url_leaves_expiry(self, store_dir, monkeypatch):
        """Test that serving a URL does not extend the expiration."""
        monkeypatch.setenv("FCACHE_EXTEND_TTL", "true")
        before = LocalStore(store_dir).meta("live").meta[INVALIDATE_AT_KEY]

        result = invoke(store_dir, "url", "live")

        assert result.exit_code == 0
        assert LocalStore(store_dir).meta("live").meta[INVALIDATE_AT_KEY] == before

    def test_url_missing(self, store_dir):
        """Test that URLs are never produced by loading."""
        result = invoke(store_dir, "url", "missing")

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_rm(self, store_dir):
        result = invoke(store_dir, "rm", "old")

        assert result.exit_code == 0
        assert "Removed 'old'" in result.output
        assert LocalStore(store_dir).keys() == ["live"]

    def test_rm_missing(self, store_dir):
        result = invoke(store_dir, "rm", "missing")

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_no_store_configured(self):
        result = CliRunner().invoke(cli, ["keys"])

        assert result.exit_code != 0
        assert "No store configured" in result.output

    def test_env_selects_store(self, store_dir, monkeypatch):
        monkeypatch.setenv("FCACHE_LOCAL_DIR", str(store_dir))

        result = CliRunner().invoke(cli, ["keys"])

        assert result.exit_code == 0
        assert "live" in result.output


class TestFormatSize:
    def test_units(self):
        assert format_size(0) == "0 B"
        assert format_size(2048) == "2.0 KB"
        assert format_size(5 * 1024**3) == "5.0 GB"
