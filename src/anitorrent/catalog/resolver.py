"""Catalog resolution: feed item -> canonical episode key."""

import logging

import httpx

from anitorrent.catalog.models import EpisodeKey, ResolvedEpisode, SeriesMapping
from anitorrent.feeds.models import FeedItem
from anitorrent.utils.errors import RemoteNotFoundError
from anitorrent.utils.http import build_client, request_json
from anitorrent.utils.retry import CATALOG_RETRY_CONFIG, RetryConfig, retrying

logger = logging.getLogger(__name__)


class MappingCatalog:
    """Client for the cross-catalog mapping service (ani.zip)."""

    def __init__(
        self,
        base_url: str = "https://api.ani.zip",
        timeout: float = 10.0,
        retry_config: RetryConfig = CATALOG_RETRY_CONFIG,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.retry_config = retry_config
        self._http = http_client or build_client(timeout=timeout)

    def get_mapping(self, anidb_id: int) -> SeriesMapping | None:
        """Fetch the mapping of one series.

        Args:
            anidb_id: Series id in the release feed's catalog

        Returns:
            SeriesMapping, or None when the service has no mapping (404)

        Raises:
            RemoteError: On exhausted retries or a rejected request
        """
        url = f"{self.base_url}/mappings"
        try:
            for attempt in retrying(self.retry_config):
                with attempt:
                    data = request_json(
                        self._http, "GET", url, "get_mapping", params={"anidb_id": anidb_id}
                    )
        except RemoteNotFoundError:
            logger.debug(f"No mapping for anidb id {anidb_id}")
            return None

        if not isinstance(data, dict):
            return None
        return SeriesMapping.from_payload(anidb_id, data)

    def close(self) -> None:
        self._http.close()


class CatalogResolver:
    """Maps feed items onto EpisodeKeys, caching mappings per series."""

    def __init__(self, catalog: MappingCatalog) -> None:
        self.catalog = catalog
        self._cache: dict[int, SeriesMapping | None] = {}

    def clear_cache(self) -> None:
        """Forget cached mappings; called at the start of every batch."""
        self._cache.clear()

    def mapping_for(self, anidb_id: int) -> SeriesMapping | None:
        if anidb_id not in self._cache:
            self._cache[anidb_id] = self.catalog.get_mapping(anidb_id)
        return self._cache[anidb_id]

    def resolve(self, item: FeedItem) -> ResolvedEpisode | None:
        """Resolve a feed item.

        Returns:
            ResolvedEpisode, or None when the item is unresolvable (no ids,
            no mapping, no target-catalog id, or no matching episode)

        Raises:
            RemoteError: If the mapping service cannot be reached
        """
        if item.catalog_a_series_id is None or item.catalog_a_episode_id is None:
            logger.debug(f"Unresolvable (missing catalog ids): {item.title}")
            return None

        mapping = self.mapping_for(item.catalog_a_series_id)
        if mapping is None or mapping.anilist_id is None:
            logger.debug(f"Unresolvable (no mapping): {item.title}")
            return None

        episode = mapping.find_episode(item.catalog_a_episode_id)
        if episode is None or episode.episode is None:
            logger.debug(
                f"Unresolvable (episode {item.catalog_a_episode_id} not in mapping): {item.title}"
            )
            return None

        return ResolvedEpisode(
            key=EpisodeKey(series_id=mapping.anilist_id, episode_number=episode.episode),
            series_title=mapping.series_title,
            thumbnail_url=mapping.episode_image(episode.episode) or episode.image,
            episode_titles=dict(episode.title),
            catalog_a_series_id=item.catalog_a_series_id,
        )
