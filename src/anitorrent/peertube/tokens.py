"""Token file persistence."""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from anitorrent.peertube.models import OAuthToken

logger = logging.getLogger(__name__)


class TokenStore:
    """Reads and writes the OAuth token file next to the main config."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> OAuthToken | None:
        """Return the stored token, or None if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            return OAuthToken.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable token file {self.path}: {e}")
            return None

    def save(self, token: OAuthToken) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(token.model_dump(), indent=2), encoding="utf-8")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
