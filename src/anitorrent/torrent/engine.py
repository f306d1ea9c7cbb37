"""Torrent engine: single-file downloads, a bounded seeding fleet and disk guards."""

import logging
import shutil
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from anitorrent.config.schema import TorrentConfig
from anitorrent.torrent.client import ClientSettings, LibtorrentClient, TorrentClient
from anitorrent.torrent.models import (
    DownloadProgress,
    FileSelection,
    MediaFile,
    MediaOrigin,
    SeedingSlot,
    SeedingStats,
    TorrentFile,
)
from anitorrent.utils.errors import (
    BufferExhaustedError,
    DownloadError,
    DownloadTimeoutError,
    InsufficientSpaceError,
)
from anitorrent.utils.formatting import format_bytes

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ClientSettings], TorrentClient]
EvictionCallback = Callable[[SeedingSlot], None]
ProgressCallback = Callable[[DownloadProgress], None]


def pick_file(files: list[TorrentFile], select: FileSelection) -> TorrentFile:
    """Choose the one file to download from a torrent."""
    if len(files) == 1 or select is FileSelection.FIRST:
        return files[0]
    return max(files, key=lambda f: f.size_bytes)


class TorrentEngine:
    """Downloads one file per torrent and keeps at most N torrents seeding.

    The seeding set is only mutated through seed_retain, stop_seed and
    eviction; every public method takes the engine lock, so readers on
    other threads see a consistent snapshot.
    """

    def __init__(
        self,
        config: TorrentConfig,
        client_factory: ClientFactory = LibtorrentClient,
        disk_usage: Callable[[Path], Any] = shutil.disk_usage,
        clock: Callable[[], float] = time.monotonic,
        wall_time: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = 1.0,
        background_sweep: bool = True,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Torrent settings (download dir, cap, timeouts, limits)
            client_factory: Builds the embedded client from ClientSettings
            disk_usage: Free-space query (tests inject fixed values)
            clock: Monotonic clock for timeouts
            wall_time: Epoch clock for file ages and seeding timestamps
            sleep: Sleep between progress polls
            poll_interval: Seconds between progress polls
            background_sweep: Start the periodic sweep thread with the client
        """
        self.config = config
        self.download_dir = Path(config.download_dir)
        self._client_factory = client_factory
        self._disk_usage = disk_usage
        self._clock = clock
        self._wall_time = wall_time
        self._sleep = sleep
        self.poll_interval = poll_interval
        self.background_sweep = background_sweep

        self._lock = threading.RLock()
        self._client: TorrentClient | None = None
        self._listen_port: int | None = config.port
        self._seeding: dict[str, SeedingSlot] = {}
        self._evict_callbacks: dict[str, EvictionCallback] = {}
        self._pending: dict[str, MediaFile] = {}
        self._active: set[str] = set()
        self._sweep_stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    # Client lifecycle

    def _settings(self, strict: bool = False) -> ClientSettings:
        limit = (
            self.config.strict_connections_limit if strict else self.config.connections_limit
        )
        return ClientSettings(
            download_dir=self.download_dir, port=self._listen_port, connections_limit=limit
        )

    @property
    def client(self) -> TorrentClient:
        with self._lock:
            if self._client is None:
                self.download_dir.mkdir(parents=True, exist_ok=True)
                self._client = self._client_factory(self._settings())
                self._listen_port = self._client.listen_port
                logger.info(f"Torrent client started on port {self._listen_port}")
                if self.background_sweep:
                    self._start_sweeper()
            return self._client

    def _start_sweeper(self) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._sweep_stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="torrent-sweep", daemon=True)
        self._sweeper.start()

    def _sweep_loop(self) -> None:
        while not self._sweep_stop.wait(self.config.sweep_interval_seconds):
            try:
                self.sweep()
            except Exception:
                logger.exception("Periodic torrent sweep failed")

    def _reinitialize(self) -> None:
        """Rebuild the client with stricter connection limits, keeping seeds."""
        with self._lock:
            if self._client is not None:
                self._client.shutdown()
                self._client = None
            self._client = self._client_factory(self._settings(strict=True))
            self._listen_port = self._client.listen_port
            for slot in self._seeding.values():
                if not slot.source_uri:
                    continue
                try:
                    self._client.add(slot.source_uri, self.download_dir)
                except DownloadError as e:
                    logger.warning(f"Could not resume seeding {slot.file_path.name}: {e}")
            self._pending.clear()
            self._active.clear()
            logger.warning(
                f"Torrent client re-initialized with connections limit "
                f"{self.config.strict_connections_limit}"
            )

    def reset(self) -> None:
        """Tear the client down and forget the seeding set. Files stay on disk."""
        with self._lock:
            if self._client is not None:
                self._client.shutdown()
                self._client = None
            self._seeding.clear()
            self._evict_callbacks.clear()
            self._pending.clear()
            self._active.clear()
        logger.info("Torrent engine reset")

    def close(self) -> None:
        self._sweep_stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
        with self._lock:
            if self._client is not None:
                self._client.shutdown()
                self._client = None

    # Disk space

    def cleanup_old_files(self, max_age_hours: float | None = None) -> int:
        """Delete download-dir files older than max_age_hours, sparing held files.

        Returns:
            Number of files deleted
        """
        if max_age_hours is None:
            max_age_hours = self.config.cleanup_age_hours
        max_age = max_age_hours * 3600
        cutoff = self._wall_time() - max_age
        return self._delete_files(lambda path: path.stat().st_mtime < cutoff)

    def clean_download_dir(self) -> int:
        """Delete every file in the download dir that is not seeding or in use."""
        return self._delete_files(lambda path: True)

    def _delete_files(self, predicate: Callable[[Path], bool]) -> int:
        if not self.download_dir.exists():
            return 0
        with self._lock:
            held = {slot.file_path.resolve() for slot in self._seeding.values()}
            held |= {media.path.resolve() for media in self._pending.values()}

        deleted = 0
        for path in sorted(self.download_dir.rglob("*")):
            if not path.is_file() or path.resolve() in held:
                continue
            try:
                if predicate(path):
                    path.unlink()
                    deleted += 1
                    logger.debug(f"Deleted {path}")
            except OSError as e:
                logger.warning(f"Could not delete {path}: {e}")
        if deleted:
            logger.info(f"Deleted {deleted} files from {self.download_dir}")
        return deleted

    def ensure_space(self, required_bytes: int) -> None:
        """Check free space before a download.

        Needs required_bytes * space_margin and at least min_free_bytes free.
        One cleanup pass of old files is attempted before giving up.

        Raises:
            InsufficientSpaceError: If the space is still short after cleanup
        """
        self.download_dir.mkdir(parents=True, exist_ok=True)
        needed = max(int(required_bytes * self.config.space_margin), self.config.min_free_bytes)
        free = self._disk_usage(self.download_dir).free
        if free >= needed:
            return

        logger.warning(
            f"Low disk space: {format_bytes(free)} free, {format_bytes(needed)} needed; "
            f"cleaning files older than {self.config.cleanup_age_hours:g}h"
        )
        self.cleanup_old_files()
        free = self._disk_usage(self.download_dir).free
        if free < needed:
            raise InsufficientSpaceError(free, needed, str(self.download_dir))

    # Downloads

    def download(
        self,
        uri: str,
        select: FileSelection = FileSelection.LARGEST,
        timeout: float | None = None,
        keep_seeding: bool = False,
        expected_size: int = 0,
        progress_callback: ProgressCallback | None = None,
    ) -> MediaFile:
        """Download exactly one file of a torrent.

        Args:
            uri: Magnet link or .torrent URL
            select: Which file to pick when the torrent has several
            timeout: Seconds before giving up (defaults to the configured window)
            keep_seeding: Hold the torrent for seed_retain after completion
            expected_size: Bytes the download needs, for the space check
            progress_callback: Called with progress on every poll

        Returns:
            MediaFile for the completed file

        Raises:
            InsufficientSpaceError: If the disk guard fails
            DownloadTimeoutError: If the file is not complete in time
            BufferExhaustedError: After the client was rebuilt; retry the call
            DownloadError: On any other client failure
        """
        if timeout is None:
            timeout = self.config.timeout_seconds
        self.ensure_space(expected_size)
        try:
            return self._download(
                uri,
                select,
                timeout,
                keep_seeding,
                progress_callback,
            )
        except BufferExhaustedError:
            logger.warning("Torrent client out of buffer space; re-initializing")
            self._reinitialize()
            raise

    def _wait_for_metadata(self, client: TorrentClient, info_hash: str, deadline: float) -> None:
        while True:
            client.check_errors()
            if client.status(info_hash).has_metadata:
                return
            if self._clock() >= deadline:
                raise DownloadTimeoutError(f"Timed out waiting for torrent metadata ({info_hash})")
            self._sleep(self.poll_interval)

    def _download(
        self,
        uri: str,
        select: FileSelection,
        timeout: float,
        keep_seeding: bool,
        progress_callback: ProgressCallback | None,
    ) -> MediaFile:
        client = self.client
        started = self._clock()
        deadline = started + timeout

        info_hash = client.add(uri, self.download_dir)
        with self._lock:
            self._active.add(info_hash)

        try:
            self._wait_for_metadata(client, info_hash, deadline)
            files = client.files(info_hash)
            if not files:
                raise DownloadError(f"Torrent {info_hash} has no files")
            chosen = pick_file(files, select)
            client.select_file(info_hash, chosen.index)
            logger.info(f"Downloading {chosen.path} ({format_bytes(chosen.size_bytes)})")

            while True:
                client.check_errors()
                done = client.file_progress(info_hash, chosen.index)
                status = client.status(info_hash)
                if progress_callback is not None:
                    progress_callback(
                        DownloadProgress(
                            info_hash=info_hash,
                            file_name=chosen.path,
                            downloaded_bytes=min(done, chosen.size_bytes),
                            total_bytes=chosen.size_bytes,
                            num_peers=status.num_peers,
                            elapsed_seconds=self._clock() - started,
                        )
                    )
                if done >= chosen.size_bytes:
                    break
                if status.error:
                    raise DownloadError(f"Torrent {info_hash} failed: {status.error}")
                if self._clock() >= deadline:
                    raise DownloadTimeoutError(
                        f"Download of {chosen.path} not complete after {timeout:g}s"
                    )
                self._sleep(self.poll_interval)
        except DownloadError:
            self._discard(client, info_hash)
            raise
        finally:
            with self._lock:
                self._active.discard(info_hash)

        media = MediaFile(
            path=self.download_dir / chosen.path,
            size_bytes=chosen.size_bytes,
            info_hash=info_hash,
            origin=MediaOrigin.TORRENT,
            keep_for_seeding=keep_seeding,
            source_url=uri,
        )
        with self._lock:
            if keep_seeding:
                self._pending[info_hash] = media
            else:
                client.remove(info_hash, delete_files=False)
        logger.info(f"Download complete: {media.path.name}")
        return media

    def _discard(self, client: TorrentClient, info_hash: str) -> None:
        with self._lock:
            try:
                client.remove(info_hash, delete_files=True)
            except KeyError:
                pass

    # Seeding

    def seed_retain(
        self, info_hash: str, on_evict: EvictionCallback | None = None
    ) -> SeedingSlot | None:
        """Move a completed download into the seeding set.

        When the set is full the oldest slot is evicted first: its torrent
        is removed from the client and its file unlinked.

        Args:
            info_hash: Info hash of a download made with keep_seeding=True
            on_evict: Called with the slot if it is evicted later

        Returns:
            The new slot, or None when seeding is disabled (cap of 0)

        Raises:
            DownloadError: If the torrent is not a held, completed download
        """
        with self._lock:
            media = self._pending.pop(info_hash, None)
            if media is None:
                raise DownloadError(f"Torrent {info_hash} is not a completed download")

            if self.config.max_seeding == 0:
                self._remove_from_client(info_hash)
                media.path.unlink(missing_ok=True)
                return None

            while len(self._seeding) >= self.config.max_seeding:
                self._evict_oldest()

            slot = SeedingSlot(
                info_hash=info_hash,
                file_path=media.path,
                size_bytes=media.size_bytes,
                added_at=datetime.fromtimestamp(self._wall_time(), tz=timezone.utc),
                source_uri=media.source_url,
            )
            self._seeding[info_hash] = slot
            if on_evict is not None:
                self._evict_callbacks[info_hash] = on_evict
            logger.info(
                f"Seeding {media.path.name} ({len(self._seeding)}/{self.config.max_seeding})"
            )
            return slot

    def _remove_from_client(self, info_hash: str, delete_files: bool = False) -> None:
        if self._client is None:
            return
        try:
            self._client.remove(info_hash, delete_files=delete_files)
        except KeyError:
            logger.debug(f"Torrent {info_hash} already gone from client")

    def _evict_oldest(self) -> None:
        oldest = min(self._seeding.values(), key=lambda slot: slot.added_at)
        del self._seeding[oldest.info_hash]
        self._remove_from_client(oldest.info_hash)
        oldest.file_path.unlink(missing_ok=True)
        logger.info(f"Seeding cap reached; evicted {oldest.file_path.name}")
        callback = self._evict_callbacks.pop(oldest.info_hash, None)
        if callback is not None:
            callback(oldest)

    def stop_seed(self, info_hash: str, delete_file: bool = False) -> bool:
        """Stop seeding (or release a held download).

        Returns:
            True if the engine held the torrent
        """
        with self._lock:
            slot = self._seeding.pop(info_hash, None)
            self._evict_callbacks.pop(info_hash, None)
            media = self._pending.pop(info_hash, None)
            if slot is None and media is None:
                return False
            path = slot.file_path if slot is not None else media.path
            self._remove_from_client(info_hash)
            if delete_file:
                path.unlink(missing_ok=True)
            logger.debug(f"Stopped seeding {path.name} (deleted={delete_file})")
            return True

    def seeding_status(self) -> list[SeedingSlot]:
        """Snapshot of the seeding set with live upload/download counters."""
        with self._lock:
            snapshot = []
            for slot in self._seeding.values():
                update = {}
                if self._client is not None:
                    try:
                        status = self._client.status(slot.info_hash)
                        update = {"uploaded": status.uploaded, "downloaded": status.downloaded}
                    except KeyError:
                        pass
                snapshot.append(slot.model_copy(update=update))
            return snapshot

    def seeding_stats(self) -> SeedingStats:
        slots = self.seeding_status()
        ratios = [slot.ratio for slot in slots]
        return SeedingStats(
            total_files=len(slots),
            max_files=self.config.max_seeding,
            total_size=sum(slot.size_bytes for slot in slots),
            total_uploaded=sum(slot.uploaded for slot in slots),
            average_ratio=sum(ratios) / len(ratios) if ratios else 0.0,
        )

    # Sweep

    def sweep(self) -> int:
        """Remove finished torrents that are not held, and stale ones.

        A torrent is stale when it has no progress and no peers more than
        stale_after_seconds after it was added. Held files are never touched.

        Returns:
            Number of torrents removed
        """
        with self._lock:
            if self._client is None:
                return 0
            held = set(self._seeding) | set(self._pending) | self._active
            now = self._wall_time()
            removed = 0
            for status in self._client.list_torrents():
                if status.info_hash in held:
                    continue
                if status.is_finished:
                    self._client.remove(status.info_hash, delete_files=False)
                    removed += 1
                elif (
                    status.progress == 0
                    and status.num_peers == 0
                    and now - status.added_at > self.config.stale_after_seconds
                ):
                    self._client.remove(status.info_hash, delete_files=True)
                    removed += 1
            if removed:
                logger.info(f"Sweep removed {removed} torrents")
            return removed
