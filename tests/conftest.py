"""Shared fixtures and in-memory fakes for the external collaborators."""

import hashlib
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

from anitorrent.config.schema import TorrentConfig
from anitorrent.media.backends import MediaBackend
from anitorrent.media.models import AudioEncoding, Track, TrackKind
from anitorrent.torrent.client import ClientSettings
from anitorrent.torrent.models import TorrentFile, TorrentStatus
from anitorrent.utils.errors import BufferExhaustedError, ExtractionError, ProbeError
from anitorrent.utils.http import build_client

GIB = 1024**3


def mock_http(handler: Callable[[httpx.Request], httpx.Response], base_url: str = "") -> httpx.Client:
    """httpx client whose requests are answered by handler."""
    return build_client(base_url=base_url, transport=httpx.MockTransport(handler))


def make_track(
    kind: TrackKind,
    index: int,
    language: str = "und",
    title: str | None = None,
    forced: bool = False,
) -> Track:
    return Track(
        kind=kind,
        track_index=index,
        demuxer_track_id=index + 1,
        language_code=language,
        title=title,
        forced=forced,
    )


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


class FakeTorrentClient:
    """In-memory TorrentClient; completed files are written to save_path."""

    def __init__(self, settings: ClientSettings, factory: "FakeClientFactory") -> None:
        self.settings = settings
        self.factory = factory
        self.listen_port = settings.port or 6881
        self.torrents: dict[str, dict] = {}
        self.removed: list[tuple[str, bool]] = []
        self.is_shut_down = False

    def add(self, uri: str, save_path: Path) -> str:
        spec = self.factory.specs[uri]
        info_hash = spec["info_hash"]
        self.torrents[info_hash] = {
            "uri": uri,
            "save_path": save_path,
            "files": spec["files"],
            "complete": spec["complete"],
            "selected": None,
            "added_at": self.factory.added_at,
            "peers": spec["peers"],
        }
        return info_hash

    def _path(self, info_hash: str, index: int) -> Path:
        torrent = self.torrents[info_hash]
        return torrent["save_path"] / torrent["files"][index][0]

    def status(self, info_hash: str) -> TorrentStatus:
        torrent = self.torrents[info_hash]
        return TorrentStatus(
            info_hash=info_hash,
            name=torrent["files"][0][0] if torrent["files"] else "",
            progress=1.0 if torrent["complete"] else 0.0,
            num_peers=torrent["peers"],
            uploaded=2048,
            downloaded=1024,
            added_at=torrent["added_at"],
            has_metadata=True,
            is_finished=torrent["complete"],
        )

    def files(self, info_hash: str) -> list[TorrentFile]:
        return [
            TorrentFile(index=i, path=path, size_bytes=size)
            for i, (path, size) in enumerate(self.torrents[info_hash]["files"])
        ]

    def select_file(self, info_hash: str, index: int) -> None:
        self.torrents[info_hash]["selected"] = index

    def file_progress(self, info_hash: str, index: int) -> int:
        torrent = self.torrents[info_hash]
        if not torrent["complete"]:
            return 0
        path = self._path(info_hash, index)
        size = torrent["files"][index][1]
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"\0" * size)
        return size

    def list_torrents(self) -> list[TorrentStatus]:
        return [self.status(info_hash) for info_hash in list(self.torrents)]

    def remove(self, info_hash: str, delete_files: bool = False) -> None:
        torrent = self.torrents.pop(info_hash)
        self.removed.append((info_hash, delete_files))
        if delete_files:
            for path, _ in torrent["files"]:
                (torrent["save_path"] / path).unlink(missing_ok=True)

    def check_errors(self) -> None:
        if self.factory.buffer_errors > 0:
            self.factory.buffer_errors -= 1
            raise BufferExhaustedError("No buffer space available")

    def shutdown(self) -> None:
        self.is_shut_down = True


class FakeClientFactory:
    """Client factory that knows a fixed set of torrents by URI."""

    def __init__(self) -> None:
        self.specs: dict[str, dict] = {}
        self.clients: list[FakeTorrentClient] = []
        self.buffer_errors = 0
        self.added_at = 0.0

    def add_torrent(
        self,
        uri: str,
        files: list[tuple[str, int]],
        complete: bool = True,
        peers: int = 3,
    ) -> str:
        info_hash = hashlib.sha1(uri.encode()).hexdigest()
        self.specs[uri] = {
            "info_hash": info_hash,
            "files": files,
            "complete": complete,
            "peers": peers,
        }
        return info_hash

    def __call__(self, settings: ClientSettings) -> FakeTorrentClient:
        client = FakeTorrentClient(settings, self)
        self.clients.append(client)
        return client

    @property
    def client(self) -> FakeTorrentClient:
        return self.clients[-1]


class FakeBackend(MediaBackend):
    """MediaBackend over a fixed track list; extraction writes a stub file."""

    def __init__(
        self,
        name: str = "fake",
        audio: list[Track] | None = None,
        subtitle: list[Track] | None = None,
        fail_listing: bool = False,
        failing_tracks: set[tuple[TrackKind, int]] | None = None,
    ) -> None:
        self.name = name
        self.audio = audio or []
        self.subtitle = subtitle or []
        self.fail_listing = fail_listing
        self.failing_tracks = failing_tracks or set()
        self.extracted: list[tuple[TrackKind, int, Path]] = []

    def list_tracks(self, path: Path, kind: TrackKind) -> list[Track]:
        if self.fail_listing:
            raise ProbeError(f"{self.name} cannot read {path.name}")
        tracks = self.audio if kind is TrackKind.AUDIO else self.subtitle
        return [track.model_copy(update={"source": self.name}) for track in tracks]

    def _extract(self, track: Track, out_path: Path) -> Path:
        if (track.kind, track.track_index) in self.failing_tracks:
            raise ExtractionError(f"{self.name} failed on track {track.track_index}")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(f"{track.kind.value} {track.track_index}")
        self.extracted.append((track.kind, track.track_index, out_path))
        return out_path

    def extract_subtitle(self, path: Path, track: Track, out_path: Path) -> Path:
        return self._extract(track, out_path)

    def extract_audio_reencoded(
        self, path: Path, track: Track, out_path: Path, encoding: AudioEncoding
    ) -> Path:
        return self._extract(track, out_path)


def disk_with(free_bytes: int) -> Callable[[Path], SimpleNamespace]:
    """disk_usage replacement reporting a fixed amount of free space."""

    def usage(path: Path) -> SimpleNamespace:
        return SimpleNamespace(total=free_bytes * 2, used=free_bytes, free=free_bytes)

    return usage


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def torrent_config(tmp_path: Path) -> TorrentConfig:
    """Torrent settings rooted in tmp_path with a small free-space floor."""
    return TorrentConfig(
        download_dir=tmp_path / "downloads",
        port=6881,
        max_seeding=10,
        timeout_seconds=600,
        min_free_bytes=1024,
    )
