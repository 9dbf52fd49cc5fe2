"""
Pytest fixtures for insforge_client: a stub InsForge behind httpx.MockTransport and a fresh in-memory session store.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from insforge_client.http_client import build_http_client, get_http_client
from insforge_client.main import app
from insforge_client.session_store import InMemorySessionStore, get_session_store
from insforge_client.tests.helpers import StubInsForge


@pytest.fixture
def insforge():
    return StubInsForge()


@pytest.fixture
def http(insforge):
    client = build_http_client(transport=httpx.MockTransport(insforge.handler))
    yield client
    client.close()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def client(http, store):
    app.dependency_overrides[get_http_client] = lambda: http
    app.dependency_overrides[get_session_store] = lambda: store
    yield TestClient(app, follow_redirects=False)
    app.dependency_overrides.clear()
