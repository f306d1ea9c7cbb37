"""Metadata API: existence checks and episode records."""

from anitorrent.metadata.client import MetadataClient
from anitorrent.metadata.models import EpisodeRecord, LocalizedTitle
from anitorrent.metadata.writer import MetadataWriter

__all__ = ["EpisodeRecord", "LocalizedTitle", "MetadataClient", "MetadataWriter"]
