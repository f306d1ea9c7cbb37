"""Torrent engine data models."""

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class MediaOrigin(str, Enum):
    TORRENT = "torrent"
    DIRECT_URL = "direct_url"
    LOCAL = "local"


class FileSelection(str, Enum):
    LARGEST = "largest"
    FIRST = "first"


class MediaFile(BaseModel):
    """A media file on local disk.

    The pipeline owns it for the duration of one run; when keep_for_seeding
    is set, ownership passes to the torrent engine afterwards.
    """

    path: Path
    size_bytes: int = Field(ge=0)
    info_hash: str | None = None
    origin: MediaOrigin = MediaOrigin.TORRENT
    keep_for_seeding: bool = False
    source_url: str | None = None

    @classmethod
    def local(cls, path: Path) -> "MediaFile":
        return cls(path=path, size_bytes=path.stat().st_size, origin=MediaOrigin.LOCAL)


class TorrentFile(BaseModel):
    index: int
    path: str
    size_bytes: int


class TorrentStatus(BaseModel):
    """Point-in-time view of one torrent in the client."""

    info_hash: str
    name: str = ""
    progress: float = Field(default=0.0, ge=0.0, le=1.0)
    num_peers: int = 0
    uploaded: int = 0
    downloaded: int = 0
    added_at: float = 0.0
    has_metadata: bool = False
    is_finished: bool = False
    error: str | None = None


class DownloadProgress(BaseModel):
    """Progress of the selected file of a running download."""

    info_hash: str
    file_name: str
    downloaded_bytes: int = Field(ge=0)
    total_bytes: int = Field(ge=0)
    num_peers: int = 0
    elapsed_seconds: float = 0.0

    @property
    def percentage(self) -> float:
        if self.total_bytes == 0:
            return 0.0
        return (self.downloaded_bytes / self.total_bytes) * 100


class SeedingSlot(BaseModel):
    """One torrent kept seeding after its download finished."""

    info_hash: str
    file_path: Path
    size_bytes: int = 0
    added_at: datetime
    source_uri: str | None = None
    uploaded: int = 0
    downloaded: int = 0

    @property
    def ratio(self) -> float:
        if self.downloaded <= 0:
            return 0.0
        return self.uploaded / self.downloaded


class SeedingStats(BaseModel):
    total_files: int
    max_files: int
    total_size: int
    total_uploaded: int
    average_ratio: float
