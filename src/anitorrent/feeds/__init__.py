"""Torrent release feed access."""

from anitorrent.feeds.client import FeedClient
from anitorrent.feeds.models import FeedItem

__all__ = ["FeedClient", "FeedItem"]
