"""Release feed client."""

import logging

import httpx
from pydantic import ValidationError

from anitorrent.feeds.models import FeedItem
from anitorrent.utils.errors import FeedParseError
from anitorrent.utils.http import build_client, request_json
from anitorrent.utils.retry import CATALOG_RETRY_CONFIG, RetryConfig, retrying

logger = logging.getLogger(__name__)


class FeedClient:
    """Fetches the JSON release feed and parses it into FeedItems."""

    def __init__(
        self,
        feed_url: str,
        timeout: float = 10.0,
        retry_config: RetryConfig = CATALOG_RETRY_CONFIG,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the feed client.

        Args:
            feed_url: Full URL of the JSON feed
            timeout: HTTP request timeout in seconds
            retry_config: Retry policy for transport failures
            http_client: Optional preconfigured client (used by tests)
        """
        self.feed_url = feed_url
        self.retry_config = retry_config
        self._http = http_client or build_client(timeout=timeout)

    def fetch(self, limit: int | None = None) -> list[FeedItem]:
        """Fetch the feed and return its first `limit` items.

        Entries that do not fit the FeedItem schema are skipped with a warning.

        Raises:
            RemoteError: If the feed cannot be fetched after retries
            FeedParseError: If the body is not a JSON array
        """
        for attempt in retrying(self.retry_config):
            with attempt:
                data = request_json(self._http, "GET", self.feed_url, "fetch_feed")

        if not isinstance(data, list):
            raise FeedParseError(
                f"Expected a JSON array from {self.feed_url}, got {type(data).__name__}"
            )

        entries = data[:limit] if limit is not None else data
        items: list[FeedItem] = []
        for entry in entries:
            try:
                items.append(FeedItem.model_validate(entry))
            except ValidationError as e:
                title = entry.get("title") if isinstance(entry, dict) else None
                logger.warning(f"Skipping malformed feed entry {title!r}: {e.error_count()} errors")
        logger.info(f"Fetched {len(items)} feed items")
        return items

    def close(self) -> None:
        self._http.close()
