"""Client for the anitorrent metadata API."""

import logging
from typing import Any

import httpx

from anitorrent.catalog.models import EpisodeKey
from anitorrent.utils.errors import RemoteError, RemoteNotFoundError
from anitorrent.utils.http import build_client, request_json

logger = logging.getLogger(__name__)


class MetadataClient:
    """Reads and writes episode records, authenticated with an x-api-key header."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the metadata API client.

        Args:
            base_url: API root, e.g. "https://api.anitorrent.com"
            api_key: Value of the x-api-key header
            timeout: HTTP request timeout in seconds
            http_client: Optional preconfigured client (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self._http = http_client or build_client(
            base_url=self.base_url, timeout=timeout, headers={"x-api-key": api_key}
        )

    def get_series(self, series_id: int) -> dict[str, Any] | None:
        """Series metadata, or None if the API does not know the series."""
        try:
            return request_json(self._http, "GET", f"/anime/{series_id}", "get_series")
        except RemoteNotFoundError:
            return None

    def series_title(self, series_id: int) -> str | None:
        """Preferred display title: english, then romaji, then native."""
        series = self.get_series(series_id) or {}
        titles = series.get("title") or {}
        return titles.get("english") or titles.get("romaji") or titles.get("native")

    def list_episodes(self, series_id: int) -> list[dict[str, Any]]:
        try:
            data = request_json(
                self._http, "GET", f"/content/episodes/{series_id}", "list_episodes"
            )
        except RemoteNotFoundError:
            return []
        return data or []

    def get_episode(self, key: EpisodeKey) -> dict[str, Any] | None:
        """Single episode record, or None on 404 / empty body."""
        try:
            data = request_json(
                self._http,
                "GET",
                f"/content/episodes/{key.series_id}/{key.episode_number}",
                "get_episode",
            )
        except RemoteNotFoundError:
            return None
        return data or None

    def episode_exists(self, key: EpisodeKey) -> bool | None:
        """Check whether an episode has already been published.

        Returns:
            True/False, or None when the API could not answer (unknown)
        """
        try:
            return self.get_episode(key) is not None
        except RemoteError as e:
            logger.warning(f"Could not check whether episode {key} exists: {e}")
            return None

    def create_episode(self, payload: dict[str, Any]) -> dict[str, Any] | None:
        return request_json(
            self._http, "POST", "/content/episodes", "create_episode", json=payload
        )

    def health(self) -> bool:
        try:
            request_json(self._http, "GET", "/health", "health")
        except RemoteError:
            return False
        return True

    def close(self) -> None:
        self._http.close()
