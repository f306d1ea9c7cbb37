"""Data models for catalog resolution."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EpisodeKey(BaseModel):
    """Canonical episode identity: (series id in the mapping catalog, episode number)."""

    model_config = ConfigDict(frozen=True)

    series_id: int
    episode_number: int

    def __str__(self) -> str:
        return f"{self.series_id}_{self.episode_number}"


class MappingEpisode(BaseModel):
    """One episode entry of a series mapping."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    episode: int | None = None
    anidb_eid: int | None = Field(default=None, alias="anidbEid")
    image: str | None = None
    title: dict[str, str | None] = Field(default_factory=dict)
    airdate: str | None = None
    length: float | None = None

    @field_validator("episode", mode="before")
    @classmethod
    def parse_episode_number(cls, value: Any) -> int | None:
        # Specials come through as "S1", "C2", ...
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @field_validator("title", mode="before")
    @classmethod
    def null_title(cls, value: Any) -> Any:
        return value or {}


class SeriesMapping(BaseModel):
    """Cross-catalog mapping for one series."""

    anidb_id: int
    anilist_id: int | None = None
    mal_id: int | None = None
    titles: dict[str, str | None] = Field(default_factory=dict)
    episodes: dict[str, MappingEpisode] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, anidb_id: int, data: dict[str, Any]) -> "SeriesMapping":
        """Build a mapping from the mapping service's JSON body."""
        mappings = data.get("mappings") or {}
        return cls(
            anidb_id=anidb_id,
            anilist_id=mappings.get("anilist_id"),
            mal_id=mappings.get("mal_id"),
            titles=data.get("titles") or {},
            episodes=data.get("episodes") or {},
        )

    @property
    def series_title(self) -> str | None:
        for language in ("en", "x-jat", "ja"):
            if self.titles.get(language):
                return self.titles[language]
        return None

    def find_episode(self, anidb_eid: int) -> MappingEpisode | None:
        """Return the episode whose catalog-A episode id matches."""
        for episode in self.episodes.values():
            if episode.anidb_eid == anidb_eid:
                return episode
        return None

    def episode_image(self, episode_number: int) -> str | None:
        episode = self.episodes.get(str(episode_number))
        return episode.image if episode else None


class ResolvedEpisode(BaseModel):
    """A feed item mapped onto its canonical episode."""

    key: EpisodeKey
    series_title: str | None = None
    thumbnail_url: str | None = None
    episode_titles: dict[str, str | None] = Field(default_factory=dict)
    catalog_a_series_id: int | None = None
