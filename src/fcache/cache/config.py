"""Cache configuration management."""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from fcache.storage.backend import Store

DEFAULT_CONFIG_PATH = Path.home() / ".fcache" / "config.json"


@dataclass
class Options:
    """Options of a LoadingCache.

    Attributes:
        log: Logger receiving diagnostic output
        invalidate_period: Interval between invalidation sweeps; zero disables them
        extend_ttl: Whether a hit pushes the item's expiration forward
    """

    log: logging.Logger = field(default_factory=lambda: logging.getLogger("fcache.cache"))
    invalidate_period: timedelta = timedelta(minutes=15)
    extend_ttl: bool = False

    def __post_init__(self):
        if not isinstance(self.invalidate_period, timedelta):
            self.invalidate_period = timedelta(seconds=self.invalidate_period)
        if self.invalidate_period < timedelta(0):
            raise ValueError("invalidate_period cannot be negative")


@dataclass
class CacheConfig:
    """Configuration for a cache and its backend store.

    Attributes:
        ttl: Default time-to-live of loaded items in seconds (30 minutes)
        invalidate_period: Seconds between invalidation sweeps (0 = disabled)
        extend_ttl: Extend the expiration of items on hit
        bucket: S3 bucket name; selects the S3 store when set
        prefix: Key namespace inside the bucket
        endpoint_url: Custom S3 endpoint (MinIO, LocalStack)
        region: S3 region
        local_dir: Directory of a local store, used when no bucket is set
    """

    ttl: int = 1800  # 30 minutes
    invalidate_period: int = 900  # 15 minutes
    extend_ttl: bool = False
    bucket: Optional[str] = None
    prefix: str = ""
    endpoint_url: Optional[str] = None
    region: Optional[str] = None
    local_dir: Optional[Path] = None

    def __post_init__(self):
        """Ensure local_dir is an expanded Path object."""
        if self.local_dir is not None:
            self.local_dir = Path(self.local_dir).expanduser()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            CacheConfig instance
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "ttl": self.ttl,
            "invalidate_period": self.invalidate_period,
            "extend_ttl": self.extend_ttl,
            "bucket": self.bucket,
            "prefix": self.prefix,
            "endpoint_url": self.endpoint_url,
            "region": self.region,
            "local_dir": str(self.local_dir) if self.local_dir else None,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            FCACHE_TTL: Default TTL in seconds
            FCACHE_INVALIDATE_PERIOD: Sweep interval in seconds
            FCACHE_EXTEND_TTL: Extend TTL on hit (true/false)
            FCACHE_BUCKET: S3 bucket
            FCACHE_PREFIX: Key prefix inside the bucket
            FCACHE_ENDPOINT_URL: Custom S3 endpoint
            FCACHE_REGION: S3 region
            FCACHE_LOCAL_DIR: Local store directory

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("FCACHE_TTL"):
            config.ttl = int(os.getenv("FCACHE_TTL"))

        if os.getenv("FCACHE_INVALIDATE_PERIOD"):
            config.invalidate_period = int(os.getenv("FCACHE_INVALIDATE_PERIOD"))

        if os.getenv("FCACHE_EXTEND_TTL"):
            config.extend_ttl = os.getenv("FCACHE_EXTEND_TTL", "").lower() == "true"

        if os.getenv("FCACHE_BUCKET"):
            config.bucket = os.getenv("FCACHE_BUCKET")

        if os.getenv("FCACHE_PREFIX"):
            config.prefix = os.getenv("FCACHE_PREFIX")

        if os.getenv("FCACHE_ENDPOINT_URL"):
            config.endpoint_url = os.getenv("FCACHE_ENDPOINT_URL")

        if os.getenv("FCACHE_REGION"):
            config.region = os.getenv("FCACHE_REGION")

        if os.getenv("FCACHE_LOCAL_DIR"):
            config.local_dir = Path(os.getenv("FCACHE_LOCAL_DIR")).expanduser()

        return config

    @property
    def default_ttl(self) -> timedelta:
        """Default TTL as a timedelta."""
        return timedelta(seconds=self.ttl)

    def options(self, log: Optional[logging.Logger] = None) -> Options:
        """Build LoadingCache options from this configuration."""
        opts = Options(
            invalidate_period=timedelta(seconds=self.invalidate_period),
            extend_ttl=self.extend_ttl,
        )
        if log is not None:
            opts.log = log
        return opts

    def build_store(self) -> "Store":
        """Create the store this configuration describes.

        Returns:
            S3Store if a bucket is set, otherwise LocalStore

        Raises:
            ValueError: If neither a bucket nor a local directory is set
        """
        if self.bucket:
            from fcache.storage.s3 import S3Store

            return S3Store.connect(
                self.bucket,
                prefix=self.prefix,
                endpoint_url=self.endpoint_url,
                region=self.region,
            )
        if self.local_dir is not None:
            from fcache.storage.local import LocalStore

            return LocalStore(self.local_dir)
        raise ValueError("No store configured: set a bucket or a local directory")
