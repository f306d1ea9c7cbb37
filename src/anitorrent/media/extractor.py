"""Per-track extraction of subtitles and alternate audio."""

import logging
from pathlib import Path

from pydantic import BaseModel, Field

from anitorrent.media.backends import FFmpegBackend, MediaBackend, MkvToolNixBackend
from anitorrent.media.languages import audio_suffix, subtitle_suffix, unique_suffix
from anitorrent.media.models import (
    SUBTITLE_EXTENSION,
    AudioEncoding,
    ProbeResult,
    Track,
    TrackKind,
)
from anitorrent.utils.errors import ExtractionError

logger = logging.getLogger(__name__)

BARE_SUFFIXES = {"null", "default", ""}


class TrackSelection(BaseModel):
    """Which tracks to extract and how to name them."""

    extract_subtitles: bool = True
    extract_audio: bool = True
    subtitle_track: int | None = None
    subtitle_suffix: str | None = None
    audio_track: int | None = None
    audio_suffix: str | None = None
    ignored_subtitles: set[int] = Field(default_factory=set)
    ignored_audio: set[int] = Field(default_factory=set)
    latino_audio_track: int | None = None


class ExtractedTrack(BaseModel):
    """A track written to local disk, waiting for upload."""

    track: Track
    suffix: str | None
    local_path: Path

    @property
    def kind(self) -> TrackKind:
        return self.track.kind

    @property
    def extension(self) -> str:
        return self.local_path.suffix.lstrip(".")

    def remote_name(self, short_uuid: str) -> str:
        """Remote file name: <short_uuid>_<suffix>.<ext>, or <short_uuid>.<ext> without a suffix."""
        stem = f"{short_uuid}_{self.suffix}" if self.suffix else short_uuid
        return f"{stem}.{self.extension}"


class TrackFailure(BaseModel):
    track: Track
    error: str


class ExtractionReport(BaseModel):
    extracted: list[ExtractedTrack] = Field(default_factory=list)
    failures: list[TrackFailure] = Field(default_factory=list)


def _custom_suffix(value: str) -> str | None:
    return None if value.strip().lower() in BARE_SUFFIXES else value.strip()


class TrackExtractor:
    """Extracts tracks through a chain of backends.

    Subtitles try ffmpeg first and fall back to mkvextract; audio is always
    re-encoded with ffmpeg.
    """

    def __init__(
        self,
        subtitle_backends: list[MediaBackend] | None = None,
        audio_backends: list[MediaBackend] | None = None,
        encoding: AudioEncoding | None = None,
    ) -> None:
        self.subtitle_backends = subtitle_backends or [FFmpegBackend(), MkvToolNixBackend()]
        self.audio_backends = audio_backends or [FFmpegBackend()]
        self.encoding = encoding or AudioEncoding()

    def extract(
        self,
        path: Path,
        track: Track,
        out_path: Path,
        encoding: AudioEncoding | None = None,
    ) -> Path:
        """Extract one track to out_path.

        Raises:
            ExtractionError: If every backend failed
        """
        errors: list[str] = []
        if track.kind is TrackKind.SUBTITLE:
            for backend in self.subtitle_backends:
                try:
                    return backend.extract_subtitle(path, track, out_path)
                except ExtractionError as e:
                    logger.debug(f"{backend.name} failed on {track.label}, trying next: {e}")
                    errors.append(f"{backend.name}: {e}")
        else:
            for backend in self.audio_backends:
                try:
                    return backend.extract_audio_reencoded(
                        path, track, out_path, encoding or self.encoding
                    )
                except ExtractionError as e:
                    logger.debug(f"{backend.name} failed on {track.label}, trying next: {e}")
                    errors.append(f"{backend.name}: {e}")
        raise ExtractionError(f"Could not extract {track.label}: " + "; ".join(errors))

    def plan(self, probe: ProbeResult, selection: TrackSelection) -> list[tuple[Track, str | None]]:
        """Choose tracks and their file-name suffixes."""
        planned: list[tuple[Track, str | None]] = []

        if selection.extract_subtitles:
            used: set[str | None] = set()
            for track in probe.subtitle:
                if selection.subtitle_track is not None:
                    if track.track_index != selection.subtitle_track:
                        continue
                    if selection.subtitle_suffix is not None:
                        planned.append((track, _custom_suffix(selection.subtitle_suffix)))
                        continue
                elif track.track_index in selection.ignored_subtitles:
                    continue
                suffix = subtitle_suffix(track, probe.subtitle)
                planned.append((track, unique_suffix(suffix, used)))

        if selection.extract_audio:
            used = set()
            for track in probe.audio:
                if selection.audio_track is not None:
                    if track.track_index != selection.audio_track:
                        continue
                    if selection.audio_suffix is not None:
                        planned.append((track, _custom_suffix(selection.audio_suffix)))
                        continue
                elif track.track_index in selection.ignored_audio:
                    continue
                suffix = audio_suffix(track, probe.audio, selection.latino_audio_track)
                planned.append((track, unique_suffix(suffix, used, fallback=track.language_code)))

        return planned

    def extract_all(
        self, probe: ProbeResult, work_dir: Path, selection: TrackSelection | None = None
    ) -> ExtractionReport:
        """Extract every selected track into work_dir.

        Per-track failures are collected in the report, never raised.
        """
        selection = selection or TrackSelection()
        work_dir.mkdir(parents=True, exist_ok=True)
        report = ExtractionReport()

        for track, suffix in self.plan(probe, selection):
            extension = (
                SUBTITLE_EXTENSION if track.kind is TrackKind.SUBTITLE else self.encoding.extension
            )
            out_path = work_dir / f"{track.kind.value}_{track.track_index}.{extension}"
            try:
                self.extract(probe.path, track, out_path)
            except ExtractionError as e:
                logger.warning(f"Skipping {track.label}: {e}")
                report.failures.append(TrackFailure(track=track, error=str(e)))
                continue
            logger.info(f"Extracted {track.label} as suffix {suffix or '(none)'}")
            report.extracted.append(ExtractedTrack(track=track, suffix=suffix, local_path=out_path))

        return report
