"""Episode record sent to the metadata API."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from anitorrent.catalog.models import EpisodeKey


class LocalizedTitle(BaseModel):
    es: str | None = None
    en: str | None = None
    ja: str | None = None


class EpisodeRecord(BaseModel):
    """Normalized record of one published episode.

    is_ready is always False on write; a downstream process flips it once
    the episode has been reviewed.
    """

    key: EpisodeKey
    platform_video_id: int | str
    uuid: str
    short_uuid: str
    password: str | None = None
    title: LocalizedTitle = Field(default_factory=LocalizedTitle)
    embed_url: str
    thumbnail_url: str
    description: str | None = None
    duration_s: int | None = None
    is_ready: Literal[False] = False

    def to_payload(self) -> dict[str, Any]:
        """Request body for POST /content/episodes."""
        return {
            "idAnilist": self.key.series_id,
            "episodeNumber": self.key.episode_number,
            "peertubeId": str(self.platform_video_id),
            "uuid": self.uuid,
            "shortUUID": self.short_uuid,
            "password": self.password or None,
            "title": self.title.model_dump(),
            "embedUrl": self.embed_url,
            "thumbnailUrl": self.thumbnail_url,
            "description": self.description or None,
            "duration": self.duration_s or None,
            "isReady": False,
        }
