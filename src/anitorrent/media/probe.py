"""Media probing with Matroska-first, general-prober fallback."""

import logging
from pathlib import Path

from anitorrent.media.backends import FFmpegBackend, MediaBackend, MkvToolNixBackend
from anitorrent.media.languages import assign_variants
from anitorrent.media.models import ProbeResult
from anitorrent.utils.errors import ProbeError

logger = logging.getLogger(__name__)


class MediaProbe:
    """Lists the audio and subtitle tracks of a media file."""

    def __init__(self, backends: list[MediaBackend] | None = None) -> None:
        self.backends = backends or [MkvToolNixBackend(), FFmpegBackend()]

    def probe(self, path: Path) -> ProbeResult:
        """List tracks with the first backend that can read the file.

        Language variants are assigned per kind before returning.

        Raises:
            ProbeError: If no backend can read the file
        """
        if not path.exists():
            raise ProbeError(f"Media file not found: {path}")

        errors: list[str] = []
        for backend in self.backends:
            try:
                audio = backend.list_audio(path)
                subtitle = backend.list_subtitle(path)
            except ProbeError as e:
                logger.debug(f"{backend.name} could not probe {path.name}, trying next: {e}")
                errors.append(str(e))
                continue

            result = ProbeResult(
                path=path,
                audio=assign_variants(audio),
                subtitle=assign_variants(subtitle),
            )
            logger.info(
                f"Probed {path.name} with {backend.name}: "
                f"{len(result.audio)} audio, {len(result.subtitle)} subtitle tracks"
            )
            return result

        raise ProbeError(f"Could not probe {path.name}: " + "; ".join(errors))
