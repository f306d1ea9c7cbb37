"""PeerTube API client: OAuth token lifecycle, import-by-URL and readiness polling."""

import logging
import time
from collections.abc import Callable
from typing import Any

import httpx
from pydantic import ValidationError

from anitorrent.peertube.models import (
    ImportOptions,
    ImportResult,
    OAuthToken,
    PlatformVideo,
    WaitResult,
    now_ms,
)
from anitorrent.peertube.tokens import TokenStore
from anitorrent.utils.errors import (
    ImportRejectedError,
    PlatformError,
    RemoteError,
    RemoteUnavailableError,
)
from anitorrent.utils.http import build_client, request_json
from anitorrent.utils.retry import CREDENTIALS_RETRY_CONFIG, RetryConfig, retrying

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 10.0


def _parse_video(data: Any, operation: str) -> PlatformVideo:
    try:
        return PlatformVideo.model_validate(data)
    except ValidationError as e:
        raise PlatformError(f"{operation}: unexpected video payload: {e}") from e


class PlatformClient:
    """Talks to a PeerTube instance on behalf of one user account.

    Tokens are fetched lazily on the first authenticated call and persisted
    through the TokenStore; later calls reuse them until they expire.
    """

    def __init__(
        self,
        api_url: str,
        username: str,
        password: str,
        token_store: TokenStore,
        timeout: float = 30.0,
        credentials_retry: RetryConfig = CREDENTIALS_RETRY_CONFIG,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Initialize the platform client.

        Args:
            api_url: API root, e.g. "https://peertube.example/api/v1"
            username: Account username for the password grant
            password: Account password for the password grant
            token_store: Token file persistence
            timeout: HTTP request timeout in seconds
            credentials_retry: Retry policy for /oauth-clients/local
            poll_interval: Seconds between readiness polls
            sleep: Sleep function (tests pass a no-op)
            http_client: Optional preconfigured client (used by tests)
        """
        self.api_url = api_url.rstrip("/")
        self.username = username
        self.password = password
        self.token_store = token_store
        self.credentials_retry = credentials_retry
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._http = http_client or build_client(base_url=self.api_url, timeout=timeout)
        self._client_credentials: dict[str, str] | None = None
        self._token: OAuthToken | None = None

    @property
    def base_url(self) -> str:
        """Public root of the instance, used for embed and preview URLs."""
        return self.api_url.removesuffix("/api/v1")

    # Token lifecycle

    def _oauth_client(self) -> dict[str, str]:
        if self._client_credentials is None:
            for attempt in retrying(self.credentials_retry, retry_on=(RemoteUnavailableError,)):
                with attempt:
                    data = request_json(
                        self._http, "GET", "/oauth-clients/local", "get_oauth_client"
                    )
            try:
                self._client_credentials = {
                    "client_id": data["client_id"],
                    "client_secret": data["client_secret"],
                }
            except (KeyError, TypeError) as e:
                raise PlatformError(f"Malformed OAuth client response: {data}") from e
        return self._client_credentials

    def _request_token(self, grant: dict[str, str]) -> OAuthToken:
        form = {**self._oauth_client(), **grant}
        issued = now_ms()
        data = request_json(self._http, "POST", "/users/token", "request_token", data=form)
        try:
            return OAuthToken.from_response(data, issued)
        except (KeyError, TypeError, ValueError) as e:
            raise PlatformError(f"Malformed token response: {e}") from e

    def _password_grant(self) -> OAuthToken:
        logger.debug(f"Requesting new PeerTube token for {self.username}")
        try:
            return self._request_token(
                {
                    "grant_type": "password",
                    "response_type": "code",
                    "username": self.username,
                    "password": self.password,
                }
            )
        except RemoteError as e:
            raise PlatformError(f"PeerTube authentication failed: {e}") from e

    def _refresh_grant(self, token: OAuthToken) -> OAuthToken:
        return self._request_token(
            {"grant_type": "refresh_token", "refresh_token": token.refresh_token or ""}
        )

    def access_token(self) -> OAuthToken:
        """Return a valid token, refreshing or re-authenticating as needed."""
        token = self._token or self.token_store.load()
        if token is not None and not token.is_expired():
            self._token = token
            return token

        new_token: OAuthToken | None = None
        if token is not None and token.can_refresh():
            try:
                new_token = self._refresh_grant(token)
                logger.debug("PeerTube token refreshed")
            except (RemoteError, PlatformError) as e:
                logger.warning(f"Token refresh failed, falling back to password grant: {e}")

        if new_token is None:
            try:
                new_token = self._password_grant()
            except PlatformError:
                self.token_store.clear()
                self._token = None
                raise

        self.token_store.save(new_token)
        self._token = new_token
        return new_token

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": self.access_token().authorization}

    # API operations

    def get_current_user(self) -> dict[str, Any]:
        return request_json(
            self._http, "GET", "/users/me", "get_current_user", headers=self._auth_headers()
        )

    def default_channel_id(self) -> int | None:
        """First video channel of the authenticated user."""
        channels = self.get_current_user().get("videoChannels") or []
        return channels[0]["id"] if channels else None

    def import_by_url(self, url: str, options: ImportOptions) -> ImportResult:
        """Ask the platform to pull a video from a public URL.

        Raises:
            ImportRejectedError: If the response carries no video id
            RemoteError: If the request fails
        """
        data = request_json(
            self._http,
            "POST",
            "/videos/imports",
            "import_by_url",
            json=options.to_payload(url),
            headers=self._auth_headers(),
        )
        video_data = (data or {}).get("video") or {}
        if not video_data.get("id"):
            raise ImportRejectedError(f"Import of {url} returned no video id: {data}")

        video = _parse_video(video_data, "import_by_url")
        log = logger.debug if options.silent else logger.info
        log(f"Import {data.get('id')} accepted: video {video.id} ({video.short_uuid or 'no short uuid'})")
        return ImportResult(import_id=data.get("id") or 0, video_id=video.id, video=video)

    def get_video(self, video_id: int | str) -> PlatformVideo:
        data = request_json(
            self._http, "GET", f"/videos/{video_id}", "get_video", headers=self._auth_headers()
        )
        return _parse_video(data, "get_video")

    def wait_ready(
        self,
        video_id: int | str,
        max_minutes: float,
        should_stop: Callable[[], bool] | None = None,
    ) -> WaitResult:
        """Poll the video until it leaves the Pending/To import states.

        At least one poll is made, so max_minutes=0 checks exactly once.
        Poll errors are logged and the next poll proceeds.

        Returns:
            WaitResult with success=True and the ready video, or
            success=False and final_state "Timeout" / "Cancelled"
        """
        attempts = max(1, int(max_minutes * 60 // self.poll_interval))
        last_video: PlatformVideo | None = None

        for attempt in range(1, attempts + 1):
            if should_stop is not None and should_stop():
                return WaitResult(success=False, final_state="Cancelled", video=last_video)
            try:
                video = self.get_video(video_id)
                last_video = video
                if video.is_ready:
                    logger.info(f"Video {video_id} is ready ({video.state_label})")
                    return WaitResult(success=True, final_state=video.state_label, video=video)
                logger.info(
                    f"Video {video_id} still {video.state_label} (check {attempt}/{attempts})"
                )
            except (RemoteError, PlatformError) as e:
                logger.warning(f"Polling video {video_id} failed: {e}")

            if attempt < attempts:
                self._sleep(self.poll_interval)

        return WaitResult(success=False, final_state="Timeout", video=last_video)

    def close(self) -> None:
        self._http.close()
