"""Media stream models."""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


class TrackKind(str, Enum):
    AUDIO = "audio"
    SUBTITLE = "subtitle"


class Track(BaseModel):
    """One logical audio or subtitle stream of a media file.

    track_index is dense and 0-based within its kind; demuxer_track_id is
    whatever the listing tool reported and must be handed back unchanged to
    the same tool when extracting.
    """

    kind: TrackKind
    track_index: int = Field(ge=0)
    demuxer_track_id: int
    source: str = "ffprobe"
    language_code: str = "und"
    language_tag: str | None = None
    language_variant: str | None = None
    codec: str | None = None
    title: str | None = None
    # audio
    channels: int | None = None
    sample_rate: int | None = None
    # subtitle
    forced: bool = False
    default: bool = False

    @property
    def label(self) -> str:
        parts = [f"{self.kind.value} #{self.track_index}", self.language_code]
        if self.language_variant:
            parts.append(f"({self.language_variant})")
        if self.title:
            parts.append(f"'{self.title}'")
        return " ".join(parts)


class ProbeResult(BaseModel):
    """Streams of a media file, grouped by kind."""

    path: Path
    audio: list[Track] = Field(default_factory=list)
    subtitle: list[Track] = Field(default_factory=list)

    def tracks(self, kind: TrackKind) -> list[Track]:
        return self.audio if kind is TrackKind.AUDIO else self.subtitle


class AudioEncoding(BaseModel):
    """Target encoding for extracted audio tracks."""

    codec: str = "libmp3lame"
    bitrate: str = "192k"
    extension: str = "mp3"


SUBTITLE_EXTENSION = "ass"
