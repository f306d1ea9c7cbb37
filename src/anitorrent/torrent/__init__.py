"""Torrent downloads and seeding."""

from anitorrent.torrent.client import ClientSettings, LibtorrentClient, TorrentClient
from anitorrent.torrent.engine import TorrentEngine, pick_file
from anitorrent.torrent.models import (
    DownloadProgress,
    FileSelection,
    MediaFile,
    MediaOrigin,
    SeedingSlot,
    SeedingStats,
    TorrentFile,
    TorrentStatus,
)

__all__ = [
    "ClientSettings",
    "DownloadProgress",
    "FileSelection",
    "LibtorrentClient",
    "MediaFile",
    "MediaOrigin",
    "SeedingSlot",
    "SeedingStats",
    "TorrentClient",
    "TorrentEngine",
    "TorrentFile",
    "TorrentStatus",
    "pick_file",
]
