"""Per-item pipeline: download, probe, extract, stage, import, wait, record, clean."""

import logging
import shutil
import threading
import time
import uuid
from pathlib import Path

from anitorrent.catalog.dedup import Candidate, DuplicateFilter
from anitorrent.catalog.models import EpisodeKey, ResolvedEpisode
from anitorrent.catalog.naming import build_video_name, parse_release
from anitorrent.catalog.resolver import CatalogResolver
from anitorrent.config.schema import DefaultsConfig
from anitorrent.feeds.models import FeedItem
from anitorrent.media.extractor import ExtractionReport, TrackExtractor
from anitorrent.media.models import TrackKind
from anitorrent.media.probe import MediaProbe
from anitorrent.metadata.client import MetadataClient
from anitorrent.metadata.writer import MetadataWriter
from anitorrent.peertube.client import PlatformClient
from anitorrent.peertube.models import ImportOptions, PlatformVideo
from anitorrent.pipeline.models import (
    BatchSummary,
    ItemOutcome,
    OutcomeStatus,
    PipelineOptions,
    PipelineState,
)
from anitorrent.storage.models import Artifact, ArtifactKind, remote_key
from anitorrent.storage.object_store import ObjectStore
from anitorrent.torrent.engine import TorrentEngine
from anitorrent.torrent.models import MediaFile, MediaOrigin, SeedingSlot
from anitorrent.utils.errors import (
    AnitorrentError,
    BufferExhaustedError,
    InsufficientSpaceError,
    PipelineCancelled,
    PlatformError,
    RemoteError,
    StorageError,
)
from anitorrent.utils.retry import RetryConfig, retrying

logger = logging.getLogger(__name__)


class _ItemRun:
    """Mutable bookkeeping for one item while it moves through the states."""

    def __init__(
        self,
        position: int,
        total: int,
        title: str,
        key: EpisodeKey | None,
        state: PipelineState,
    ) -> None:
        self.position = position
        self.total = total
        self.title = title
        self.key = key
        self.state = state
        self.master_key: str | None = None
        self.artifacts: list[Artifact] = []
        self.video: PlatformVideo | None = None
        self.metadata_written = False
        self.work_dir: Path | None = None

    @property
    def prefix(self) -> str:
        return f"item {self.position}/{self.total}"

    def advance(self, state: PipelineState) -> None:
        logger.info(f"{self.prefix}: {self.state.value} -> {state.value}")
        self.state = state

    def outcome(
        self, status: OutcomeStatus, reason: str | None = None, abort_batch: bool = False
    ) -> ItemOutcome:
        if status == "failed":
            logger.error(f"{self.prefix}: failed: {reason}")
        elif reason:
            logger.info(f"{self.prefix}: {status}: {reason}")
        else:
            logger.info(f"{self.prefix}: {status}")
        return ItemOutcome(
            title=self.title,
            key=self.key,
            status=status,
            reason=reason,
            last_state=self.state,
            artifacts=self.artifacts,
            video=self.video,
            metadata_written=self.metadata_written,
            abort_batch=abort_batch,
        )


class PipelineOrchestrator:
    """Runs batches of feed items through the ingestion state machine.

    Items are processed one at a time. The orchestrator is the only place
    where component errors become item outcomes; everything it calls
    raises.
    """

    def __init__(
        self,
        resolver: CatalogResolver,
        dedup: DuplicateFilter,
        metadata: MetadataClient,
        engine: TorrentEngine,
        probe: MediaProbe,
        extractor: TrackExtractor,
        store: ObjectStore,
        platform: PlatformClient,
        writer: MetadataWriter,
        defaults: DefaultsConfig | None = None,
        work_dir: Path | None = None,
        buffer_retry_attempts: int = 1,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            resolver: Catalog resolver (feed item -> EpisodeKey)
            dedup: Per-batch duplicate filter
            metadata: Metadata API client, used for the existence probe
            engine: Torrent engine
            probe: Media prober
            extractor: Track extractor
            store: Object store for master and language artifacts
            platform: Video platform client
            writer: Metadata writer
            defaults: Configured per-episode defaults
            work_dir: Directory for extracted tracks (one subdir per item)
            buffer_retry_attempts: Download retries after a buffer reset
            cancel_event: Set to stop between items and during readiness polls
        """
        self.resolver = resolver
        self.dedup = dedup
        self.metadata = metadata
        self.engine = engine
        self.probe = probe
        self.extractor = extractor
        self.store = store
        self.platform = platform
        self.writer = writer
        self.defaults = defaults or DefaultsConfig()
        self.work_dir = work_dir or engine.download_dir / ".work"
        self.buffer_retry_attempts = buffer_retry_attempts
        self.cancel_event = cancel_event or threading.Event()
        self._channel_id: int | None = self.defaults.channel_id

    def is_cancelled(self) -> bool:
        return self.cancel_event.is_set()

    # Batch

    def _resolve_all(
        self, items: list[FeedItem], options: PipelineOptions, summary: BatchSummary
    ) -> list[Candidate]:
        candidates = []
        for item in items:
            if not item.is_valid:
                summary.invalid += 1
                logger.debug(f"Discarding item without catalog ids: {item.title}")
                continue
            try:
                resolved = self.resolver.resolve(item)
            except RemoteError as e:
                logger.warning(f"Could not resolve {item.title}: {e}")
                resolved = None
            if resolved is None:
                summary.unresolved += 1
                continue
            if options.series_id_override is not None:
                resolved = resolved.model_copy(
                    update={
                        "key": EpisodeKey(
                            series_id=options.series_id_override,
                            episode_number=resolved.key.episode_number,
                        )
                    }
                )
            logger.debug(f"{item.title}: -> {PipelineState.RESOLVED.value} ({resolved.key})")
            candidates.append(Candidate(item=item, resolved=resolved))
        return candidates

    def _filter_existing(self, candidates: list[Candidate], summary: BatchSummary) -> list[Candidate]:
        new = []
        for candidate in candidates:
            exists = self.metadata.episode_exists(candidate.key)
            if exists:
                summary.already_present += 1
                logger.info(f"Episode {candidate.key} already published: {candidate.item.title}")
                continue
            if exists is None:
                logger.warning(f"Existence unknown for {candidate.key}; processing anyway")
            logger.debug(
                f"{candidate.item.title}: {PipelineState.UNIQUE.value} -> {PipelineState.NEW.value}"
            )
            new.append(candidate)
        return new

    def run_batch(
        self, items: list[FeedItem], options: PipelineOptions | None = None
    ) -> BatchSummary:
        """Resolve, de-duplicate, probe for existence, then run every new item.

        An InsufficientSpaceError aborts the rest of the batch. Cancellation
        is checked between items.

        Args:
            items: Feed items, in feed order
            options: Per-run options

        Returns:
            BatchSummary with counts and per-item outcomes
        """
        options = options or PipelineOptions()
        summary = BatchSummary(fetched=len(items))
        self.resolver.clear_cache()

        candidates = self._resolve_all(items, options, summary)
        deduped = self.dedup.filter(candidates)
        summary.duplicates = len(deduped.duplicates)
        summary.invalid += len(deduped.invalid)

        new = self._filter_existing(deduped.selected, summary)
        summary.new = len(new)
        logger.info(
            f"Batch: {summary.fetched} fetched, {summary.unresolved} unresolved, "
            f"{summary.duplicates} duplicates, {summary.already_present} already published, "
            f"{summary.new} new"
        )

        if options.dry_run:
            for candidate in new:
                logger.info(f"[dry run] would process {candidate.key}: {candidate.item.title}")
            return summary

        for position, candidate in enumerate(new, start=1):
            if self.is_cancelled():
                logger.info(f"Shutdown requested; {len(new) - position + 1} items not started")
                break
            outcome = self.run_item(candidate, options, position, len(new))
            summary.outcomes.append(outcome)
            if outcome.abort_batch:
                summary.aborted = True
                summary.abort_reason = outcome.reason
                logger.error(f"Aborting batch: {outcome.reason}")
                break

        logger.info(
            f"Batch done: {summary.succeeded} succeeded, {summary.failed} failed, "
            f"{summary.cancelled} cancelled"
        )
        return summary

    # Item

    def _download(self, item: FeedItem, options: PipelineOptions) -> MediaFile:
        policy = RetryConfig(
            max_attempts=self.buffer_retry_attempts + 1, wait_seconds=0, backoff="fixed"
        )
        return retrying(policy, retry_on=(BufferExhaustedError,))(
            self.engine.download,
            item.torrent_uri,
            select=options.file_selection,
            keep_seeding=options.keep_seeding,
            expected_size=item.total_bytes,
        )

    def run_item(
        self,
        candidate: Candidate,
        options: PipelineOptions | None = None,
        position: int = 1,
        total: int = 1,
    ) -> ItemOutcome:
        """Run one NEW item from download to cleanup."""
        options = options or PipelineOptions()
        run = _ItemRun(position, total, candidate.item.title, candidate.key, PipelineState.NEW)
        logger.info(f"{run.prefix}: {candidate.item.title} ({candidate.key})")

        try:
            media = self._download(candidate.item, options)
        except InsufficientSpaceError as e:
            return run.outcome("failed", f"download: {e}", abort_batch=True)
        except AnitorrentError as e:
            return run.outcome("failed", f"download: {e}")

        return self._publish(run, media, candidate.resolved, options)

    def publish(
        self,
        media: MediaFile,
        resolved: ResolvedEpisode,
        options: PipelineOptions | None = None,
        title: str | None = None,
    ) -> ItemOutcome:
        """Run an already-present media file from DOWNLOADED onward.

        Used for direct-URL and local files that did not come from the feed.
        """
        options = options or PipelineOptions()
        key = resolved.key
        if options.series_id_override is not None:
            key = EpisodeKey(
                series_id=options.series_id_override, episode_number=key.episode_number
            )
            resolved = resolved.model_copy(update={"key": key})
        run = _ItemRun(1, 1, title or media.path.name, key, PipelineState.NEW)
        return self._publish(run, media, resolved, options)

    def _publish(
        self,
        run: _ItemRun,
        media: MediaFile,
        resolved: ResolvedEpisode | None,
        options: PipelineOptions,
    ) -> ItemOutcome:
        run.advance(PipelineState.DOWNLOADED)
        run.work_dir = self.work_dir / f"{run.key}_{uuid.uuid4().hex[:8]}"
        status: OutcomeStatus = "failed"
        reason: str | None = None

        try:
            probe = self.probe.probe(media.path)
            run.advance(PipelineState.PROBED)

            report = self.extractor.extract_all(probe, run.work_dir, options.to_selection())
            run.advance(PipelineState.EXTRACTED)

            import_url = self._stage_master(run, media, options)
            run.advance(PipelineState.STAGED)

            video_id = self._import(run, import_url, options)
            run.advance(PipelineState.IMPORTED)
            self._upload_language_tracks(run, report)

            reason = self._wait_ready(run, video_id, options)
            if run.video is not None:
                self._write_metadata(run, resolved, options)
            status = "success"
        except PipelineCancelled as e:
            status, reason = "cancelled", str(e)
        except AnitorrentError as e:
            reason = f"{run.state.value}: {e}"
        finally:
            self._cleanup(run, media, options, success=status == "success")

        return run.outcome(status, reason)

    def _upload_name(self, media: MediaFile, options: PipelineOptions) -> str:
        name = options.custom_name or media.path.name
        path = Path(name)
        extension = path.suffix or media.path.suffix
        stem = path.stem if path.suffix else name
        if options.timestamp:
            stem = f"{stem}_{int(time.time() * 1000)}"
        return f"{stem}{extension}"

    def _stage_master(self, run: _ItemRun, media: MediaFile, options: PipelineOptions) -> str:
        if media.origin is MediaOrigin.DIRECT_URL and media.source_url:
            logger.info(f"{run.prefix}: importing directly from {media.source_url}")
            return media.source_url

        key = remote_key(ArtifactKind.MASTER, self._upload_name(media, options))
        run.master_key = key
        result = self.store.put(media.path, key)
        run.artifacts.append(
            Artifact(
                remote_key=key,
                public_url=result.public_url,
                kind=ArtifactKind.MASTER,
                size_bytes=media.size_bytes,
            )
        )
        return result.public_url

    def _resolve_channel(self, options: PipelineOptions) -> int:
        if options.channel_id is not None:
            return options.channel_id
        if self._channel_id is None:
            self._channel_id = self.platform.default_channel_id()
            if self._channel_id is None:
                raise PlatformError("No channel configured and the account has no channels")
            logger.info(f"Using default channel {self._channel_id}")
        return self._channel_id

    def _video_password(self, options: PipelineOptions) -> str | None:
        return options.video_password or self.defaults.video_password

    def _import(self, run: _ItemRun, import_url: str, options: PipelineOptions) -> int:
        if options.custom_name:
            name = Path(options.custom_name).stem
        else:
            name = build_video_name(run.title)
        password = self._video_password(options)
        result = self.platform.import_by_url(
            import_url,
            ImportOptions(
                channel_id=self._resolve_channel(options),
                name=name,
                privacy=options.privacy or self.defaults.privacy,
                passwords=[password] if password else [],
            ),
        )
        run.video = result.video
        return result.video_id

    def _upload_language_tracks(self, run: _ItemRun, report: ExtractionReport) -> None:
        short_uuid = run.video.short_uuid if run.video else ""
        if not short_uuid:
            if report.extracted:
                logger.warning(f"{run.prefix}: no short uuid; language tracks not uploaded")
            return

        for extracted in report.extracted:
            kind = (
                ArtifactKind.SUBTITLE
                if extracted.kind is TrackKind.SUBTITLE
                else ArtifactKind.AUDIO
            )
            key = remote_key(kind, extracted.remote_name(short_uuid))
            try:
                result = self.store.put(extracted.local_path, key)
            except StorageError as e:
                logger.warning(f"{run.prefix}: upload of {extracted.track.label} failed: {e}")
                continue
            run.artifacts.append(
                Artifact(
                    remote_key=key,
                    public_url=result.public_url,
                    kind=kind,
                    suffix=extracted.suffix,
                    size_bytes=result.size_bytes,
                )
            )
            logger.info(f"{run.prefix}: uploaded {key}")

    def _wait_ready(self, run: _ItemRun, video_id: int, options: PipelineOptions) -> str | None:
        max_minutes = (
            options.max_wait_minutes
            if options.max_wait_minutes is not None
            else self.defaults.max_wait_minutes
        )
        result = self.platform.wait_ready(video_id, max_minutes, should_stop=self.is_cancelled)
        if result.success:
            run.video = result.video
            run.advance(PipelineState.READY)
            return None
        if result.final_state == "Cancelled":
            raise PipelineCancelled(f"Cancelled while waiting for video {video_id}")
        if not options.write_metadata_on_timeout:
            raise PlatformError(
                f"Video {video_id} not ready after {max_minutes:g} minutes ({result.final_state})"
            )

        logger.warning(
            f"{run.prefix}: video {video_id} not ready ({result.final_state}); "
            "writing metadata anyway"
        )
        run.video = self.platform.get_video(video_id)
        return f"metadata written while video {result.final_state}"

    def _write_metadata(
        self, run: _ItemRun, resolved: ResolvedEpisode | None, options: PipelineOptions
    ) -> None:
        spanish_title = None
        if options.use_episode_title:
            spanish_title = parse_release(run.title).episode_title
        try:
            record = self.writer.build_record(
                run.key,
                run.video,
                resolved=resolved,
                password=self._video_password(options),
                spanish_title=spanish_title,
            )
            self.writer.upsert_episode(run.key, record)
        except (RemoteError, PlatformError) as e:
            logger.error(f"{run.prefix}: metadata write failed: {e}")
            return
        run.metadata_written = True
        run.advance(PipelineState.METADATA_WRITTEN)

    # Cleanup

    def _on_evict(self, slot: SeedingSlot) -> None:
        logger.info(f"Stopped seeding {slot.file_path.name} (evicted)")

    def _cleanup(
        self, run: _ItemRun, media: MediaFile, options: PipelineOptions, success: bool
    ) -> None:
        if run.master_key and not (options.keep_master or self.defaults.keep_master):
            try:
                self.store.delete(run.master_key)
                logger.info(f"{run.prefix}: deleted master {run.master_key}")
            except StorageError as e:
                logger.error(f"{run.prefix}: could not delete master {run.master_key}: {e}")

        if run.work_dir is not None and run.work_dir.exists():
            shutil.rmtree(run.work_dir, ignore_errors=True)

        if media.origin is not MediaOrigin.LOCAL:
            self._release_media(run, media, options, success)
        run.advance(PipelineState.CLEANED)

    def _release_media(
        self, run: _ItemRun, media: MediaFile, options: PipelineOptions, success: bool
    ) -> None:
        if media.info_hash and media.keep_for_seeding and options.keep_seeding and success:
            try:
                self.engine.seed_retain(media.info_hash, on_evict=self._on_evict)
                return
            except AnitorrentError as e:
                logger.warning(f"{run.prefix}: could not keep seeding: {e}")

        if media.info_hash and self.engine.stop_seed(media.info_hash, delete_file=True):
            return
        try:
            media.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"{run.prefix}: could not delete {media.path}: {e}")
