"""PeerTube data models."""

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

NOT_READY_STATES = frozenset({"Pending", "To import"})


class PlatformVideo(BaseModel):
    """A video as reported by GET /videos/{id}."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    uuid: str = ""
    short_uuid: str = Field(default="", alias="shortUUID")
    name: str | None = None
    state_label: str | None = None
    duration_s: int | None = Field(default=None, alias="duration")
    preview_path: str | None = Field(default=None, alias="previewPath")
    thumbnail_path: str | None = Field(default=None, alias="thumbnailPath")
    description: str | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_state(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("state"), dict):
            data = {**data, "state_label": data["state"].get("label")}
        return data

    @property
    def is_ready(self) -> bool:
        return self.state_label is not None and self.state_label not in NOT_READY_STATES


class ImportOptions(BaseModel):
    """Parameters of an import-by-URL request."""

    channel_id: int = Field(gt=0)
    name: str
    privacy: int = Field(default=5, ge=1, le=5)
    passwords: list[str] = Field(default_factory=list)
    silent: bool = False

    def to_payload(self, target_url: str) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "channelId": self.channel_id,
            "targetUrl": target_url,
            "name": self.name,
            "privacy": self.privacy,
        }
        if self.passwords:
            payload["videoPasswords"] = self.passwords
        return payload


class ImportResult(BaseModel):
    import_id: int
    video_id: int
    video: PlatformVideo | None = None


class WaitResult(BaseModel):
    """Outcome of waiting for a video to become playable."""

    success: bool
    final_state: str
    video: PlatformVideo | None = None


def now_ms() -> int:
    return int(time.time() * 1000)


class OAuthToken(BaseModel):
    """Persisted OAuth token pair. Times are absolute ms since the epoch."""

    token_type: str = "Bearer"
    access_token: str
    refresh_token: str | None = None
    expires_at: int
    refresh_expires_at: int | None = None

    @classmethod
    def from_response(cls, data: dict[str, Any], issued_at_ms: int | None = None) -> "OAuthToken":
        """Build a token from a POST /users/token response body."""
        issued = issued_at_ms if issued_at_ms is not None else now_ms()
        refresh_ttl = data.get("refresh_token_expires_in")
        return cls(
            token_type=data.get("token_type") or "Bearer",
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=issued + int(data.get("expires_in", 0)) * 1000,
            refresh_expires_at=issued + int(refresh_ttl) * 1000 if refresh_ttl else None,
        )

    def is_expired(self, at_ms: int | None = None) -> bool:
        return (at_ms if at_ms is not None else now_ms()) >= self.expires_at

    def can_refresh(self, at_ms: int | None = None) -> bool:
        if not self.refresh_token:
            return False
        if self.refresh_expires_at is None:
            return True
        return (at_ms if at_ms is not None else now_ms()) < self.refresh_expires_at

    @property
    def authorization(self) -> str:
        return f"{self.token_type} {self.access_token}"
