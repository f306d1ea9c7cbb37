"""Configuration schema models using Pydantic."""

from pathlib import Path
from typing import Literal
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from anitorrent.config.paths import get_default_download_dir

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

DEFAULT_FEED_URL = (
    "https://feed.animetosho.org/json?qx=1&q=%22[Erai-raws]%20%22%221080p%22"
    "!(%22REPACK%22|%22v2%22|%22(ita)%22|%22~%22)"
)
PLACEHOLDER_PREFIX = "your_"
GIB = 1024**3


def _check_http_url(value: str | None) -> str | None:
    if not value:
        return value
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"must be an http(s) URL, got {value!r}")
    return value.rstrip("/")


class StorageConfig(BaseModel):
    """S3-compatible object storage (e.g. Cloudflare R2)."""

    access_key_id: str = ""
    secret_access_key: str = ""
    endpoint: str = ""
    bucket: str = ""
    public_domain: str = ""
    region: str = "auto"

    @field_validator("endpoint", "public_domain")
    @classmethod
    def validate_urls(cls, value: str | None) -> str | None:
        return _check_http_url(value)


class PlatformConfig(BaseModel):
    """PeerTube instance and account."""

    api_url: str = "https://peertube.anitorrent.com/api/v1"
    username: str = ""
    password: str = ""

    @field_validator("api_url")
    @classmethod
    def validate_urls(cls, value: str | None) -> str | None:
        return _check_http_url(value)


class MetadataConfig(BaseModel):
    """Metadata API that receives the finished episode records."""

    api_url: str = "https://api.anitorrent.com"
    api_key: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)

    @field_validator("api_url")
    @classmethod
    def validate_urls(cls, value: str | None) -> str | None:
        return _check_http_url(value)


class CatalogConfig(BaseModel):
    """Release feed and cross-catalog mapping service."""

    feed_url: str = DEFAULT_FEED_URL
    mapping_url: str = "https://api.ani.zip"
    timeout_seconds: float = Field(default=10.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=1.0, ge=0)

    @field_validator("feed_url", "mapping_url")
    @classmethod
    def validate_urls(cls, value: str | None) -> str | None:
        return _check_http_url(value)


class TorrentConfig(BaseModel):
    """Torrent engine settings."""

    download_dir: Path = Field(default_factory=get_default_download_dir)
    port: int | None = Field(default=None, ge=1, le=65535)
    max_seeding: int = Field(default=10, ge=0)
    timeout_seconds: float = Field(default=600.0, gt=0)
    sweep_interval_seconds: float = Field(default=120.0, gt=0)
    stale_after_seconds: float = Field(default=180.0, gt=0)
    cleanup_age_hours: float = Field(default=12.0, gt=0)
    min_free_bytes: int = Field(default=2 * GIB, ge=0)
    space_margin: float = Field(default=1.1, ge=1.0)
    connections_limit: int = Field(default=200, ge=1)
    strict_connections_limit: int = Field(default=50, ge=1)
    buffer_retry_attempts: int = Field(default=1, ge=0)


class DefaultsConfig(BaseModel):
    """Defaults applied to every published episode."""

    channel_id: int | None = Field(default=None, gt=0)
    privacy: int = Field(default=5, ge=1, le=5)
    video_password: str | None = None
    max_wait_minutes: int = Field(default=120, ge=0)
    keep_master: bool = False
    keep_seeding: bool = True


class MonitorConfig(BaseModel):
    """Continuous-monitoring cadence."""

    interval_minutes: float = Field(default=2.0, gt=0)
    limit: int = Field(default=25, ge=1)


class AppConfig(BaseModel):
    """Top-level configuration stored in config.json."""

    version: str = "1"
    log_level: LogLevel = "INFO"
    storage: StorageConfig = Field(default_factory=StorageConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    torrent: TorrentConfig = Field(default_factory=TorrentConfig)
    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)

    def missing_required(self) -> list[str]:
        """Return dotted names of required settings that are unset.

        A value still carrying a "your_..." placeholder counts as unset.
        """
        required = {
            "storage.access_key_id": self.storage.access_key_id,
            "storage.secret_access_key": self.storage.secret_access_key,
            "storage.endpoint": self.storage.endpoint,
            "storage.bucket": self.storage.bucket,
            "storage.public_domain": self.storage.public_domain,
            "platform.username": self.platform.username,
            "platform.password": self.platform.password,
            "metadata.api_key": self.metadata.api_key,
        }
        return [
            name
            for name, value in required.items()
            if not value or value.startswith(PLACEHOLDER_PREFIX)
        ]


SECRET_FIELDS = {
    ("storage", "access_key_id"),
    ("storage", "secret_access_key"),
    ("platform", "password"),
    ("metadata", "api_key"),
    ("defaults", "video_password"),
}
