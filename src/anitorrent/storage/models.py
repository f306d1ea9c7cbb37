"""Object storage models."""

from enum import Enum

from pydantic import BaseModel


class ArtifactKind(str, Enum):
    MASTER = "master"
    AUDIO = "audio"
    SUBTITLE = "subtitle"


KEY_PREFIXES = {
    ArtifactKind.MASTER: "videos",
    ArtifactKind.AUDIO: "audios",
    ArtifactKind.SUBTITLE: "subtitles",
}


def remote_key(kind: ArtifactKind, basename: str) -> str:
    """Key-space convention: videos/, audios/ and subtitles/ prefixes."""
    return f"{KEY_PREFIXES[kind]}/{basename}"


class PutResult(BaseModel):
    public_url: str
    etag: str | None = None
    size_bytes: int = 0


class Artifact(BaseModel):
    """An object uploaded to storage."""

    remote_key: str
    public_url: str
    kind: ArtifactKind
    suffix: str | None = None
    size_bytes: int = 0
