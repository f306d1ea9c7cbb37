"""anitorrent-cli: publish anime episodes from a torrent RSS feed to PeerTube."""

__version__ = "0.1.0"
