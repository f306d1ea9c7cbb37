"""PeerTube video platform client."""

from anitorrent.peertube.client import PlatformClient
from anitorrent.peertube.models import (
    ImportOptions,
    ImportResult,
    OAuthToken,
    PlatformVideo,
    WaitResult,
)
from anitorrent.peertube.tokens import TokenStore

__all__ = [
    "ImportOptions",
    "ImportResult",
    "OAuthToken",
    "PlatformClient",
    "PlatformVideo",
    "TokenStore",
    "WaitResult",
]
