"""
Shared httpx client for calls to InsForge. Every call is bounded by HTTP_TIMEOUT_SECONDS.
"""
import httpx

from insforge_client.config import HTTP_TIMEOUT_SECONDS, INSFORGE_URL

_client: httpx.Client | None = None


def build_http_client(transport: httpx.BaseTransport | None = None) -> httpx.Client:
    return httpx.Client(
        base_url=INSFORGE_URL,
        timeout=HTTP_TIMEOUT_SECONDS,
        headers={"Accept": "application/json"},
        transport=transport,
    )


def get_http_client() -> httpx.Client:
    """Dependency: process-wide client (connection pooling). Tests override with a MockTransport client."""
    global _client
    if _client is None:
        _client = build_http_client()
    return _client


def close_http_client() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
