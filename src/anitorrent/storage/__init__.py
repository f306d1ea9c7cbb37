"""S3-compatible object storage."""

from anitorrent.storage.models import Artifact, ArtifactKind, PutResult, remote_key
from anitorrent.storage.object_store import ObjectStore

__all__ = ["Artifact", "ArtifactKind", "ObjectStore", "PutResult", "remote_key"]
