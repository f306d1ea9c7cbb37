"""External demuxer/encoder backends.

Both backends expose the same capability set (list audio, list subtitles,
extract a subtitle, extract re-encoded audio) so callers can try one and
fall back to the other.
"""

import json
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from anitorrent.media.languages import normalize_language
from anitorrent.media.models import AudioEncoding, Track, TrackKind
from anitorrent.utils.errors import ExtractionError, MediaToolError, ProbeError

logger = logging.getLogger(__name__)


def run_tool(args: list[str], tool: str) -> str:
    """Run an external tool and return its stdout.

    Raises:
        MediaToolError: If the tool is missing or exits non-zero
    """
    logger.debug(f"Running: {' '.join(args)}")
    try:
        result = subprocess.run(args, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise MediaToolError(f"{tool} not found - install it and make sure it is on PATH") from e
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip().splitlines()
        detail = stderr[-1] if stderr else f"exit code {e.returncode}"
        raise MediaToolError(f"{tool} failed: {detail}") from e
    return result.stdout


class MediaBackend(ABC):
    """Capability set shared by the external media tools."""

    name: str = "backend"

    @abstractmethod
    def list_tracks(self, path: Path, kind: TrackKind) -> list[Track]:
        """List tracks of one kind; track_index is dense per kind.

        Raises:
            ProbeError: If the file cannot be listed
        """

    def list_audio(self, path: Path) -> list[Track]:
        return self.list_tracks(path, TrackKind.AUDIO)

    def list_subtitle(self, path: Path) -> list[Track]:
        return self.list_tracks(path, TrackKind.SUBTITLE)

    @abstractmethod
    def extract_subtitle(self, path: Path, track: Track, out_path: Path) -> Path:
        """Write one subtitle track to out_path.

        Raises:
            ExtractionError: If extraction fails
        """

    @abstractmethod
    def extract_audio_reencoded(
        self, path: Path, track: Track, out_path: Path, encoding: AudioEncoding
    ) -> Path:
        """Re-encode one audio track to out_path.

        Raises:
            ExtractionError: If extraction fails
        """


class MkvToolNixBackend(MediaBackend):
    """Matroska-native tools: mkvmerge for listing, mkvextract for extraction."""

    name = "mkvmerge"

    _TYPES = {TrackKind.AUDIO: "audio", TrackKind.SUBTITLE: "subtitles"}

    def identify(self, path: Path) -> dict[str, Any]:
        try:
            output = run_tool(["mkvmerge", "-J", str(path)], "mkvmerge")
            return json.loads(output)
        except (MediaToolError, ValueError) as e:
            raise ProbeError(f"mkvmerge could not identify {path.name}: {e}") from e

    def list_tracks(self, path: Path, kind: TrackKind) -> list[Track]:
        data = self.identify(path)
        wanted = [t for t in data.get("tracks") or [] if t.get("type") == self._TYPES[kind]]

        tracks: list[Track] = []
        for index, raw in enumerate(wanted):
            props = raw.get("properties") or {}
            tag = props.get("language_ietf") or props.get("language")
            tracks.append(
                Track(
                    kind=kind,
                    track_index=index,
                    demuxer_track_id=raw.get("id", index),
                    source=self.name,
                    language_code=normalize_language(props.get("language") or tag),
                    language_tag=tag,
                    codec=raw.get("codec"),
                    title=props.get("track_name") or None,
                    channels=props.get("audio_channels"),
                    sample_rate=props.get("audio_sampling_frequency"),
                    forced=bool(props.get("forced_track")),
                    default=bool(props.get("default_track")),
                )
            )
        return tracks

    def extract_subtitle(self, path: Path, track: Track, out_path: Path) -> Path:
        if track.source != self.name:
            # Ids from another tool do not address mkvextract tracks
            matches = [t for t in self.list_subtitle(path) if t.track_index == track.track_index]
            if not matches:
                raise ExtractionError(f"Subtitle #{track.track_index} not found by mkvmerge")
            track = matches[0]
        try:
            run_tool(
                ["mkvextract", "tracks", str(path), f"{track.demuxer_track_id}:{out_path}"],
                "mkvextract",
            )
        except MediaToolError as e:
            raise ExtractionError(str(e)) from e
        return out_path

    def extract_audio_reencoded(
        self, path: Path, track: Track, out_path: Path, encoding: AudioEncoding
    ) -> Path:
        raise ExtractionError("mkvextract cannot re-encode audio")


class FFmpegBackend(MediaBackend):
    """General container tools: ffprobe for listing, ffmpeg for extraction."""

    name = "ffprobe"

    _TYPES = {TrackKind.AUDIO: "audio", TrackKind.SUBTITLE: "subtitle"}

    def streams(self, path: Path) -> list[dict[str, Any]]:
        try:
            output = run_tool(
                [
                    "ffprobe",
                    "-v",
                    "quiet",
                    "-print_format",
                    "json",
                    "-show_streams",
                    "-show_format",
                    str(path),
                ],
                "ffprobe",
            )
            return json.loads(output).get("streams") or []
        except (MediaToolError, ValueError) as e:
            raise ProbeError(f"ffprobe could not read {path.name}: {e}") from e

    def list_tracks(self, path: Path, kind: TrackKind) -> list[Track]:
        wanted = [s for s in self.streams(path) if s.get("codec_type") == self._TYPES[kind]]

        tracks: list[Track] = []
        for index, stream in enumerate(wanted):
            tags = stream.get("tags") or {}
            disposition = stream.get("disposition") or {}
            sample_rate = stream.get("sample_rate")
            tracks.append(
                Track(
                    kind=kind,
                    track_index=index,
                    demuxer_track_id=stream.get("index", index),
                    source=self.name,
                    language_code=normalize_language(tags.get("language")),
                    language_tag=tags.get("language"),
                    codec=stream.get("codec_name"),
                    title=tags.get("title") or tags.get("handler_name") or None,
                    channels=stream.get("channels"),
                    sample_rate=int(sample_rate) if sample_rate else None,
                    forced=bool(disposition.get("forced")),
                    default=bool(disposition.get("default")),
                )
            )
        return tracks

    def extract_subtitle(self, path: Path, track: Track, out_path: Path) -> Path:
        # ASS/SSA streams are copied as-is; text formats are converted to ASS
        codec = "copy" if (track.codec or "").lower() in ("ass", "ssa", "substationalpha") else "ass"
        try:
            run_tool(
                [
                    "ffmpeg",
                    "-y",
                    "-i",
                    str(path),
                    "-map",
                    f"0:s:{track.track_index}",
                    "-c:s",
                    codec,
                    str(out_path),
                ],
                "ffmpeg",
            )
        except MediaToolError as e:
            raise ExtractionError(str(e)) from e
        return out_path

    def extract_audio_reencoded(
        self, path: Path, track: Track, out_path: Path, encoding: AudioEncoding
    ) -> Path:
        try:
            run_tool(
                [
                    "ffmpeg",
                    "-y",
                    "-i",
                    str(path),
                    "-map",
                    f"0:a:{track.track_index}",
                    "-c:a",
                    encoding.codec,
                    "-b:a",
                    encoding.bitrate,
                    str(out_path),
                ],
                "ffmpeg",
            )
        except MediaToolError as e:
            raise ExtractionError(str(e)) from e
        return out_path
