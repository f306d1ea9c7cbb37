"""Per-batch de-duplication of feed items."""

import logging
from collections.abc import Callable

from pydantic import BaseModel, Field

from anitorrent.catalog.models import EpisodeKey, ResolvedEpisode
from anitorrent.catalog.naming import parse_release
from anitorrent.feeds.models import FeedItem

logger = logging.getLogger(__name__)


class Candidate(BaseModel):
    """A feed item with its resolution result."""

    item: FeedItem
    resolved: ResolvedEpisode | None = None

    @property
    def key(self) -> EpisodeKey | None:
        return self.resolved.key if self.resolved else None


class DedupResult(BaseModel):
    """Outcome of one de-duplication pass."""

    selected: list[Candidate] = Field(default_factory=list)
    duplicates: list[Candidate] = Field(default_factory=list)
    invalid: list[Candidate] = Field(default_factory=list)


def _has_episode_number(title: str) -> bool:
    return parse_release(title).episode is not None


class DuplicateFilter:
    """Keeps at most one item per EpisodeKey.

    When two items share a key, a "(JA)" release replaces a "(CA)" one;
    otherwise the first-seen item wins. Items with no key, or whose title
    has no recognizable episode number, are invalid rather than duplicates.
    """

    def __init__(self, episode_check: Callable[[str], bool] = _has_episode_number) -> None:
        self.episode_check = episode_check

    def filter(self, batch: list[Candidate]) -> DedupResult:
        result = DedupResult()
        chosen: dict[EpisodeKey, Candidate] = {}

        for candidate in batch:
            key = candidate.key
            if key is None or not self.episode_check(candidate.item.title):
                result.invalid.append(candidate)
                continue

            existing = chosen.get(key)
            if existing is None:
                chosen[key] = candidate
            elif candidate.item.variant_tag == "JA" and existing.item.variant_tag == "CA":
                logger.debug(f"Preferring (JA) release for {key}: {candidate.item.title}")
                result.duplicates.append(existing)
                chosen[key] = candidate
            else:
                result.duplicates.append(candidate)

        result.selected = list(chosen.values())
        if result.duplicates:
            logger.info(f"Filtered out {len(result.duplicates)} duplicate episodes")
        if result.invalid:
            logger.info(f"Filtered out {len(result.invalid)} invalid episodes")
        return result
