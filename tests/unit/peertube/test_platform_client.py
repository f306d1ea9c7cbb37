"""Tests for the PeerTube client."""

import json
from pathlib import Path
from urllib.parse import parse_qs

import httpx
import pytest

from anitorrent.peertube.client import PlatformClient
from anitorrent.peertube.models import ImportOptions, OAuthToken, now_ms
from anitorrent.peertube.tokens import TokenStore
from anitorrent.utils.errors import ImportRejectedError, PlatformError, RemoteRejectedError
from anitorrent.utils.retry import TEST_RETRY_CONFIG
from conftest import mock_http

API = "https://tube.example.org/api/v1"


class FakePeerTube:
    """Routes requests like a small PeerTube instance."""

    def __init__(self) -> None:
        self.grants: list[str] = []
        self.states = ["To import", "Published"]
        self.import_body: dict = {"id": 3, "video": {"id": 42, "uuid": "u-42", "shortUUID": "s42"}}
        self.video_failures = 0
        self.malformed_videos = 0
        self.oauth_statuses: list[int] = []
        self.oauth_body: dict = {"client_id": "cid", "client_secret": "csec"}
        self.oauth_calls = 0
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/v1")

        if path == "/oauth-clients/local":
            self.oauth_calls += 1
            if self.oauth_statuses:
                return httpx.Response(self.oauth_statuses.pop(0))
            return httpx.Response(200, json=self.oauth_body)
        if path == "/users/token":
            form = parse_qs(request.content.decode())
            grant = form["grant_type"][0]
            self.grants.append(grant)
            if grant == "refresh_token" and form["refresh_token"][0] == "bad":
                return httpx.Response(400, json={"error": "invalid_grant"})
            return httpx.Response(
                200,
                json={
                    "token_type": "Bearer",
                    "access_token": f"access-{len(self.grants)}",
                    "refresh_token": f"refresh-{len(self.grants)}",
                    "expires_in": 3600,
                    "refresh_token_expires_in": 86400,
                },
            )
        if path == "/users/me":
            return httpx.Response(200, json={"id": 1, "videoChannels": [{"id": 7}, {"id": 8}]})
        if path == "/videos/imports":
            return httpx.Response(200, json=self.import_body)
        if path == "/videos/42":
            if self.video_failures:
                self.video_failures -= 1
                return httpx.Response(503)
            if self.malformed_videos:
                self.malformed_videos -= 1
                return httpx.Response(200, json={"error": "busy"})
            label = self.states.pop(0) if len(self.states) > 1 else self.states[0]
            return httpx.Response(
                200,
                json={"id": 42, "uuid": "u-42", "shortUUID": "s42", "state": {"label": label}},
            )
        return httpx.Response(404)


@pytest.fixture
def server() -> FakePeerTube:
    return FakePeerTube()


@pytest.fixture
def store(tmp_path: Path) -> TokenStore:
    return TokenStore(tmp_path / "peertube-token.json")


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def client(server: FakePeerTube, store: TokenStore, sleeps: list[float]) -> PlatformClient:
    return PlatformClient(
        API,
        "uploader",
        "pw",
        store,
        credentials_retry=TEST_RETRY_CONFIG,
        sleep=sleeps.append,
        http_client=mock_http(server, base_url=API),
    )


class TestTokenLifecycle:
    """Tests for PlatformClient.access_token."""

    def test_password_grant_then_reuse(
        self, client: PlatformClient, server: FakePeerTube, store: TokenStore
    ) -> None:
        """Test one password grant serves later calls and is persisted."""
        first = client.access_token()
        second = client.access_token()

        assert first.access_token == "access-1"
        assert second == first
        assert server.grants == ["password"]
        assert store.load() == first

    def test_stored_token_reused(
        self, client: PlatformClient, server: FakePeerTube, store: TokenStore
    ) -> None:
        """Test a valid token on disk avoids any grant."""
        store.save(OAuthToken(access_token="disk", expires_at=now_ms() + 60_000))

        assert client.access_token().access_token == "disk"
        assert server.grants == []

    def test_expired_token_refreshed(
        self, client: PlatformClient, server: FakePeerTube, store: TokenStore
    ) -> None:
        """Test an expired token with a live refresh token is refreshed."""
        store.save(OAuthToken(access_token="old", refresh_token="r", expires_at=0))

        token = client.access_token()

        assert server.grants == ["refresh_token"]
        assert token.access_token == "access-1"

    def test_failed_refresh_falls_back(
        self, client: PlatformClient, server: FakePeerTube, store: TokenStore
    ) -> None:
        """Test a rejected refresh falls back to the password grant."""
        store.save(OAuthToken(access_token="old", refresh_token="bad", expires_at=0))

        client.access_token()

        assert server.grants == ["refresh_token", "password"]

    def test_authentication_failure(self, store: TokenStore) -> None:
        """Test a rejected password grant raises PlatformError and drops the stored token."""
        store.save(OAuthToken(access_token="stale", expires_at=0))

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/oauth-clients/local"):
                return httpx.Response(200, json={"client_id": "c", "client_secret": "s"})
            return httpx.Response(400, json={"error": "invalid_grant"})

        client = PlatformClient(
            API, "u", "wrong", store, http_client=mock_http(handler, base_url=API)
        )

        with pytest.raises(PlatformError):
            client.access_token()

        assert not store.path.exists()

    def test_malformed_client_credentials(
        self, client: PlatformClient, server: FakePeerTube
    ) -> None:
        """Test an OAuth client body without credentials raises PlatformError."""
        server.oauth_body = {"error": "maintenance"}

        with pytest.raises(PlatformError, match="Malformed OAuth client"):
            client.access_token()

    def test_client_credentials_retried_when_unavailable(
        self, client: PlatformClient, server: FakePeerTube
    ) -> None:
        """Test a 503 from the OAuth client endpoint is retried."""
        server.oauth_statuses = [503]

        assert client.access_token().access_token == "access-1"
        assert server.oauth_calls == 2

    def test_client_credentials_rejection_not_retried(
        self, client: PlatformClient, server: FakePeerTube
    ) -> None:
        """Test a 4xx from the OAuth client endpoint fails on the first attempt."""
        server.oauth_statuses = [403, 403, 403]

        with pytest.raises(PlatformError) as exc_info:
            client.access_token()

        assert isinstance(exc_info.value.__cause__, RemoteRejectedError)
        assert server.oauth_calls == 1


class TestImport:
    """Tests for import_by_url and channel lookup."""

    def test_import_by_url(self, client: PlatformClient, server: FakePeerTube) -> None:
        """Test the import request body and result."""
        options = ImportOptions(channel_id=7, name="Sousou+no+Frieren_S01E01", passwords=["pw1"])

        result = client.import_by_url("https://cdn.example.org/media/a.mp4", options)

        request = server.requests[-1]
        assert request.headers["Authorization"] == "Bearer access-1"
        assert json.loads(request.content) == {
            "channelId": 7,
            "targetUrl": "https://cdn.example.org/media/a.mp4",
            "name": "Sousou+no+Frieren_S01E01",
            "privacy": 5,
            "videoPasswords": ["pw1"],
        }
        assert result.video_id == 42
        assert result.video.short_uuid == "s42"

    def test_import_without_video_id(self, client: PlatformClient, server: FakePeerTube) -> None:
        """Test a response lacking a video id is a rejection."""
        server.import_body = {"id": 3}

        with pytest.raises(ImportRejectedError):
            client.import_by_url("https://x/a.mp4", ImportOptions(channel_id=7, name="a"))

    def test_default_channel_id(self, client: PlatformClient) -> None:
        """Test the first channel of the current user is the default."""
        assert client.default_channel_id() == 7

    def test_base_url(self, client: PlatformClient) -> None:
        """Test the public root drops the API suffix."""
        assert client.base_url == "https://tube.example.org"


class TestWaitReady:
    """Tests for wait_ready."""

    def test_ready_after_polls(self, client: PlatformClient, sleeps: list[float]) -> None:
        """Test polling stops once the state leaves To import."""
        result = client.wait_ready(42, max_minutes=5)

        assert result.success
        assert result.final_state == "Published"
        assert result.video.id == 42
        assert sleeps == [10.0]

    def test_zero_minutes_polls_once(
        self, client: PlatformClient, server: FakePeerTube, sleeps: list[float]
    ) -> None:
        """Test max_minutes=0 makes exactly one check."""
        server.states = ["To import"]

        result = client.wait_ready(42, max_minutes=0)

        assert not result.success
        assert result.final_state == "Timeout"
        assert result.video.state_label == "To import"
        assert sleeps == []

    def test_cancelled(self, client: PlatformClient) -> None:
        """Test a stop request ends the wait as Cancelled."""
        result = client.wait_ready(42, max_minutes=5, should_stop=lambda: True)

        assert not result.success
        assert result.final_state == "Cancelled"

    def test_poll_errors_continue(self, client: PlatformClient, server: FakePeerTube) -> None:
        """Test a failed poll is logged and the next one proceeds."""
        server.video_failures = 1
        server.states = ["Published"]

        result = client.wait_ready(42, max_minutes=1)

        assert result.success

    def test_timeout_after_all_polls(
        self, client: PlatformClient, server: FakePeerTube, sleeps: list[float]
    ) -> None:
        """Test a video that never leaves Pending times out."""
        server.states = ["Pending"]

        result = client.wait_ready(42, max_minutes=1)

        assert result.final_state == "Timeout"
        assert len(sleeps) == 5

    def test_malformed_poll_continues(
        self, client: PlatformClient, server: FakePeerTube, sleeps: list[float]
    ) -> None:
        """Test a poll answered with an unexpected body is logged and retried."""
        server.malformed_videos = 1
        server.states = ["Published"]

        result = client.wait_ready(42, max_minutes=1)

        assert result.success
        assert result.video.id == 42
        assert sleeps == [10.0]

    def test_get_video_unexpected_body(self, client: PlatformClient, server: FakePeerTube) -> None:
        """Test get_video reports a body without an id as PlatformError."""
        server.malformed_videos = 1

        with pytest.raises(PlatformError, match="unexpected video payload"):
            client.get_video(42)
