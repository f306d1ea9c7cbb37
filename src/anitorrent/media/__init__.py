"""Media probing, language labeling and track extraction."""

from anitorrent.media.backends import FFmpegBackend, MediaBackend, MkvToolNixBackend
from anitorrent.media.extractor import (
    ExtractedTrack,
    ExtractionReport,
    TrackExtractor,
    TrackSelection,
)
from anitorrent.media.models import AudioEncoding, ProbeResult, Track, TrackKind
from anitorrent.media.probe import MediaProbe

__all__ = [
    "AudioEncoding",
    "ExtractedTrack",
    "ExtractionReport",
    "FFmpegBackend",
    "MediaBackend",
    "MediaProbe",
    "MkvToolNixBackend",
    "ProbeResult",
    "Track",
    "TrackExtractor",
    "TrackKind",
    "TrackSelection",
]
