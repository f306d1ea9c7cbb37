"""HTTP helpers shared by the remote API clients."""

from typing import Any

import httpx

from anitorrent import __version__
from anitorrent.utils.errors import (
    RemoteError,
    RemoteNotFoundError,
    RemoteRejectedError,
    RemoteUnavailableError,
)

USER_AGENT = f"anitorrent-cli/{__version__}"
DEFAULT_TIMEOUT = 10.0


def build_client(
    base_url: str = "",
    timeout: float = DEFAULT_TIMEOUT,
    headers: dict[str, str] | None = None,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """Create an httpx client with the project defaults.

    Args:
        base_url: Base URL prepended to relative request paths
        timeout: Per-request timeout in seconds
        headers: Extra default headers
        transport: Custom transport (tests pass httpx.MockTransport)
    """
    all_headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
    all_headers.update(headers or {})
    return httpx.Client(
        base_url=base_url,
        timeout=timeout,
        headers=all_headers,
        transport=transport,
        follow_redirects=True,
    )


def classify_status(status_code: int, message: str, operation: str) -> RemoteError:
    """Map an HTTP status code to the matching remote error.

    Args:
        status_code: HTTP status code
        message: Error message
        operation: Operation name for the error annotation

    Returns:
        RemoteNotFoundError for 404, RemoteUnavailableError for 408/429/5xx,
        RemoteRejectedError for every other 4xx
    """
    if status_code == 404:
        return RemoteNotFoundError(message, operation, status_code)
    if status_code in (408, 429) or status_code >= 500:
        return RemoteUnavailableError(message, operation, status_code)
    return RemoteRejectedError(message, operation, status_code)


def raise_for_status(response: httpx.Response, operation: str) -> None:
    """Raise a classified RemoteError for non-2xx responses."""
    if response.is_success:
        return
    detail = response.text[:200] if response.text else response.reason_phrase
    raise classify_status(
        response.status_code,
        f"{operation} failed: HTTP {response.status_code}: {detail}",
        operation,
    )


def request_json(
    client: httpx.Client,
    method: str,
    url: str,
    operation: str,
    **kwargs: Any,
) -> Any:
    """Send a request and decode its JSON body.

    Transport errors and timeouts are raised as RemoteUnavailableError so the
    caller's retry policy can treat them like a 5xx.

    Raises:
        RemoteError: Classified by status code
    """
    try:
        response = client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise RemoteUnavailableError(f"{operation} timed out: {e}", operation) from e
    except httpx.TransportError as e:
        raise RemoteUnavailableError(f"{operation} transport error: {e}", operation) from e

    raise_for_status(response, operation)
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise RemoteRejectedError(
            f"{operation} returned invalid JSON: {e}", operation, response.status_code
        ) from e
