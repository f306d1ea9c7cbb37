"""Pipeline options, states and outcomes."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from anitorrent.catalog.models import EpisodeKey
from anitorrent.media.extractor import TrackSelection
from anitorrent.peertube.models import PlatformVideo
from anitorrent.storage.models import Artifact
from anitorrent.torrent.models import FileSelection


class PipelineState(str, Enum):
    """Per-item states, in order. Every failure funnels to CLEANED."""

    RESOLVED = "RESOLVED"
    UNIQUE = "UNIQUE"
    NEW = "NEW"
    DOWNLOADED = "DOWNLOADED"
    PROBED = "PROBED"
    EXTRACTED = "EXTRACTED"
    STAGED = "STAGED"
    IMPORTED = "IMPORTED"
    READY = "READY"
    METADATA_WRITTEN = "METADATA_WRITTEN"
    CLEANED = "CLEANED"


class PipelineOptions(BaseModel):
    """Per-run options applied to every item of a batch.

    None for channel_id, privacy, video_password and max_wait_minutes
    means "use the configured default".
    """

    custom_name: str | None = None
    timestamp: bool = False
    channel_id: int | None = Field(default=None, gt=0)
    privacy: int | None = Field(default=None, ge=1, le=5)
    video_password: str | None = None
    max_wait_minutes: float | None = Field(default=None, ge=0)
    keep_master: bool = False
    keep_seeding: bool = True
    series_id_override: int | None = None
    file_selection: FileSelection = FileSelection.LARGEST

    extract_subtitles: bool = True
    extract_audio: bool = True
    subtitle_track: int | None = None
    subtitle_suffix: str | None = None
    audio_track: int | None = None
    audio_suffix: str | None = None
    ignored_subtitles: set[int] = Field(default_factory=set)
    ignored_audio: set[int] = Field(default_factory=set)
    latino_audio_track: int | None = None

    use_episode_title: bool = False
    dry_run: bool = False
    write_metadata_on_timeout: bool = False

    def to_selection(self) -> TrackSelection:
        return TrackSelection(
            extract_subtitles=self.extract_subtitles,
            extract_audio=self.extract_audio,
            subtitle_track=self.subtitle_track,
            subtitle_suffix=self.subtitle_suffix,
            audio_track=self.audio_track,
            audio_suffix=self.audio_suffix,
            ignored_subtitles=self.ignored_subtitles,
            ignored_audio=self.ignored_audio,
            latino_audio_track=self.latino_audio_track,
        )


OutcomeStatus = Literal["success", "failed", "cancelled", "skipped"]


class ItemOutcome(BaseModel):
    """Terminal result of one item."""

    title: str
    key: EpisodeKey | None = None
    status: OutcomeStatus
    reason: str | None = None
    last_state: PipelineState | None = None
    artifacts: list[Artifact] = Field(default_factory=list)
    video: PlatformVideo | None = None
    metadata_written: bool = False
    abort_batch: bool = False

    @property
    def attempted(self) -> bool:
        """True when the item got past the NEW gate."""
        return self.status != "skipped"


class BatchSummary(BaseModel):
    """Counts for one batch run."""

    fetched: int = 0
    unresolved: int = 0
    duplicates: int = 0
    invalid: int = 0
    already_present: int = 0
    new: int = 0
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    aborted: bool = False
    abort_reason: str | None = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def succeeded(self) -> int:
        return self.count("success")

    @property
    def failed(self) -> int:
        return self.count("failed")

    @property
    def cancelled(self) -> int:
        return self.count("cancelled")

    @property
    def attempted(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.attempted)

    @property
    def all_failed(self) -> bool:
        """True when at least one item was attempted and none succeeded."""
        return self.attempted > 0 and self.succeeded == 0 and self.cancelled == 0
