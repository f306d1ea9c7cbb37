"""Data models for release feed entries."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FeedItem(BaseModel):
    """One entry of the torrent release feed.

    Field aliases follow the feed's JSON keys so items can be validated
    directly from the response body.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    catalog_a_series_id: int | None = Field(default=None, alias="anidb_aid")
    catalog_a_episode_id: int | None = Field(default=None, alias="anidb_eid")
    torrent_uri: str = Field(alias="torrent_url")
    total_bytes: int = Field(default=0, ge=0, alias="total_size")
    seeders: int = 0
    leechers: int = 0

    @model_validator(mode="before")
    @classmethod
    def use_magnet_when_no_torrent_url(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("torrent_url") and data.get("magnet_uri"):
            data = {**data, "torrent_url": data["magnet_uri"]}
        return data

    @field_validator("catalog_a_series_id", "catalog_a_episode_id", mode="before")
    @classmethod
    def zero_id_means_missing(cls, value: Any) -> Any:
        return value or None

    @field_validator("total_bytes", "seeders", "leechers", mode="before")
    @classmethod
    def null_count_means_zero(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def is_valid(self) -> bool:
        """At least one catalog identifier is required to resolve the item."""
        return self.catalog_a_series_id is not None or self.catalog_a_episode_id is not None

    @property
    def variant_tag(self) -> str | None:
        """Audio variant tag in the release title: "JA", "CA" or None."""
        if "(JA)" in self.title:
            return "JA"
        if "(CA)" in self.title:
            return "CA"
        return None
