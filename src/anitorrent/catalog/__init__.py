"""Catalog resolution and batch de-duplication."""

from anitorrent.catalog.dedup import Candidate, DedupResult, DuplicateFilter
from anitorrent.catalog.models import EpisodeKey, ResolvedEpisode, SeriesMapping
from anitorrent.catalog.naming import ReleaseInfo, build_video_name, parse_release
from anitorrent.catalog.resolver import CatalogResolver, MappingCatalog

__all__ = [
    "Candidate",
    "CatalogResolver",
    "DedupResult",
    "DuplicateFilter",
    "EpisodeKey",
    "MappingCatalog",
    "ReleaseInfo",
    "ResolvedEpisode",
    "SeriesMapping",
    "build_video_name",
    "parse_release",
]
