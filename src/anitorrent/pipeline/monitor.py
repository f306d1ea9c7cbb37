"""Continuous feed monitoring with graceful shutdown."""

import logging
import signal
import threading
import time
from collections.abc import Callable

from anitorrent.feeds.client import FeedClient
from anitorrent.pipeline.models import BatchSummary, PipelineOptions
from anitorrent.pipeline.orchestrator import PipelineOrchestrator
from anitorrent.torrent.engine import TorrentEngine
from anitorrent.utils.errors import AnitorrentError
from anitorrent.utils.formatting import format_bytes, format_duration

logger = logging.getLogger(__name__)


class SessionStats:
    """Counters accumulated across the batches of one monitoring session."""

    def __init__(self, started_at: float) -> None:
        self.started_at = started_at
        self.batches = 0
        self.new = 0
        self.succeeded = 0
        self.failed = 0
        self.cancelled = 0
        self.already_present = 0

    def add(self, summary: BatchSummary) -> None:
        self.batches += 1
        self.new += summary.new
        self.succeeded += summary.succeeded
        self.failed += summary.failed
        self.cancelled += summary.cancelled
        self.already_present += summary.already_present

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed + self.cancelled


class FeedMonitor:
    """Polls the release feed every interval and runs each batch.

    SIGINT/SIGTERM stop the scheduling of new items: the in-flight item
    finishes (or is cleaned), a session summary is logged and run()
    returns. Seeding torrents keep going until the process exits.
    """

    def __init__(
        self,
        feed: FeedClient,
        orchestrator: PipelineOrchestrator,
        engine: TorrentEngine,
        interval_minutes: float = 2.0,
        limit: int = 25,
        options: PipelineOptions | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the monitor.

        Args:
            feed: Release feed client
            orchestrator: Pipeline orchestrator; shares its cancel event
            engine: Torrent engine, for seeding stats and download cleanup
            interval_minutes: Minutes between feed checks
            limit: Feed items taken per check
            options: Per-run pipeline options
            clock: Monotonic clock used for the session duration
        """
        self.feed = feed
        self.orchestrator = orchestrator
        self.engine = engine
        self.interval_minutes = interval_minutes
        self.limit = limit
        self.options = options or PipelineOptions()
        self._clock = clock
        self.stop_event: threading.Event = orchestrator.cancel_event
        self.stats = SessionStats(clock())

    def request_stop(self) -> None:
        """Ask the loop to stop after the in-flight item."""
        if not self.stop_event.is_set():
            logger.info("Shutdown requested; finishing the current item")
        self.stop_event.set()

    def _handle_signal(self, signum: int, frame) -> None:
        logger.info(f"Received {signal.Signals(signum).name}")
        self.request_stop()

    def _install_signal_handlers(self) -> dict[int, object]:
        previous = {}
        if threading.current_thread() is not threading.main_thread():
            return previous
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    def _restore_signal_handlers(self, previous: dict[int, object]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    def check_once(self) -> BatchSummary:
        """Fetch the feed once and run the batch."""
        items = self.feed.fetch(limit=self.limit)
        summary = self.orchestrator.run_batch(items, self.options)
        self.stats.add(summary)
        return summary

    def _log_seeding(self) -> None:
        stats = self.engine.seeding_stats()
        logger.info(
            f"Seeding {stats.total_files}/{stats.max_files} files "
            f"({format_bytes(stats.total_size)}, {format_bytes(stats.total_uploaded)} uploaded, "
            f"ratio {stats.average_ratio:.2f})"
        )

    def _log_session(self) -> None:
        elapsed = self._clock() - self.stats.started_at
        logger.info(
            f"Session summary: {self.stats.batches} checks in {format_duration(elapsed)}, "
            f"{self.stats.new} new, {self.stats.succeeded} succeeded, "
            f"{self.stats.failed} failed, {self.stats.cancelled} cancelled, "
            f"{self.stats.already_present} already published"
        )
        self._log_seeding()

    def run(self, single_run: bool = False, clean_downloads: bool = False) -> int:
        """Run the monitoring loop.

        Args:
            single_run: Check the feed once and return
            clean_downloads: Empty the download directory (except seeding
                files) before the first check

        Returns:
            Exit code: 1 when single_run and every attempted item failed,
            otherwise 0
        """
        previous = self._install_signal_handlers()
        try:
            if clean_downloads:
                self.engine.clean_download_dir()

            while not self.stop_event.is_set():
                try:
                    self.check_once()
                except AnitorrentError as e:
                    logger.error(f"Feed check failed: {e}")
                    if single_run:
                        self.stats.failed += 1
                except Exception:
                    logger.exception("Unexpected error during feed check")
                    if single_run:
                        self.stats.failed += 1
                self._log_seeding()

                if single_run:
                    break
                logger.info(f"Next check in {self.interval_minutes:g} minutes")
                self.stop_event.wait(self.interval_minutes * 60)
        finally:
            self._restore_signal_handlers(previous)
            self._log_session()

        all_failed = self.stats.attempted > 0 and self.stats.failed == self.stats.attempted
        return 1 if single_run and all_failed else 0
