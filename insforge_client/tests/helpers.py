"""
Test helpers: a stub InsForge for httpx.MockTransport, plus login/session shortcuts.
"""
from typing import Callable
from urllib.parse import parse_qs, urlparse

import httpx
from fastapi.testclient import TestClient

from insforge_client.callback import PROFILE_PATH, TOKEN_PATH
from insforge_client.config import SESSION_COOKIE_NAME
from insforge_client.models import ClientSession
from insforge_client.session_store import SessionStore


class StubInsForge:
    """Answers token, profile and resource calls; records every request it sees."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_response: tuple[int, object] = (
            200,
            {"access_token": "T1", "refresh_token": "R1", "expires_in": 3600},
        )
        self.profile_response: tuple[int, object] = (200, {"user": {"id": "u1", "email": "a@b.com"}})
        self.resources: dict[str, tuple[int, object]] = {}
        self.failing_paths: dict[str, type[httpx.RequestError]] = {}
        # Runs while the token request is "in flight" (e.g. to log out concurrently)
        self.on_token: Callable[[], None] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failing_paths:
            raise self.failing_paths[path]("stub failure", request=request)
        if path == TOKEN_PATH:
            if self.on_token is not None:
                self.on_token()
            status, body = self.token_response
        elif path == PROFILE_PATH:
            status, body = self.profile_response
        elif path in self.resources:
            status, body = self.resources[path]
        else:
            status, body = 404, {"error": "not_found"}
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    def calls_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def start_login(client: TestClient, path: str = "/auth/login") -> str:
    """Begin a login; return the state the client sent to /authorize."""
    r = client.get(path)
    assert r.status_code == 302
    query = parse_qs(urlparse(r.headers["location"]).query)
    return query["state"][0]


def session_of(client: TestClient, store: SessionStore) -> ClientSession:
    session_id = client.cookies.get(SESSION_COOKIE_NAME)
    assert session_id, "no session cookie set"
    session = store.load(session_id)
    assert session is not None
    return session
