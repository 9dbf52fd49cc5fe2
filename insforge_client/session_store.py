"""
Per-browser session storage, keyed by an opaque cookie value.
Handlers get a SessionHandle through FastAPI dependencies; tests override get_session_store.
"""
import json
import logging
import secrets
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Protocol

from fastapi import Depends, Request, Response
from sqlalchemy.orm import sessionmaker

from insforge_client.config import (
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SECURE,
    SESSION_DATABASE_URL,
    SESSION_TTL_SECONDS,
)
from insforge_client.database import create_session_engine, init_db
from insforge_client.models import ClientSession, SessionRecord

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """
    Keyed session storage. Handlers load, mutate, then save the whole session; there is no versioning.
    SessionHandle re-checks that a session still exists before writing it back, so a logout that lands
    mid-request is not undone. Two tabs writing the same session at the same instant can still lose one
    write (last save wins); that is accepted for a single-user browser session.
    """

    def load(self, session_id: str) -> ClientSession | None: ...

    def save(self, session_id: str, session: ClientSession) -> None: ...

    def delete(self, session_id: str) -> None: ...


class InMemorySessionStore:
    """Process-local sessions. Lost on restart; fine for the demo and for tests."""

    def __init__(self, ttl_seconds: int = SESSION_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._sessions: dict[str, tuple[dict, float]] = {}
        self._lock = threading.Lock()

    def load(self, session_id: str) -> ClientSession | None:
        with self._lock:
            self._clean_expired()
            entry = self._sessions.get(session_id)
        if entry is None:
            return None
        # Fresh object per load; the stored dict is never handed out
        return ClientSession.from_dict(entry[0])

    def save(self, session_id: str, session: ClientSession) -> None:
        with self._lock:
            self._sessions[session_id] = (session.to_dict(), time.monotonic())

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def _clean_expired(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [sid for sid, (_, saved_at) in self._sessions.items() if saved_at < cutoff]
        for sid in expired:
            del self._sessions[sid]


class SqlSessionStore:
    """Sessions in a SQL table (one JSON blob per session). Survives restarts."""

    def __init__(self, session_factory: sessionmaker, ttl_seconds: int = SESSION_TTL_SECONDS):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int = SESSION_TTL_SECONDS) -> "SqlSessionStore":
        return cls(init_db(create_session_engine(url)), ttl_seconds=ttl_seconds)

    def load(self, session_id: str) -> ClientSession | None:
        db = self.session_factory()
        try:
            row = db.get(SessionRecord, session_id)
            if row is None:
                return None
            updated_at = row.updated_at.replace(tzinfo=timezone.utc)
            if updated_at < datetime.now(timezone.utc) - timedelta(seconds=self.ttl_seconds):
                db.delete(row)
                db.commit()
                return None
            return ClientSession.from_dict(json.loads(row.data))
        finally:
            db.close()

    def save(self, session_id: str, session: ClientSession) -> None:
        db = self.session_factory()
        try:
            payload = json.dumps(session.to_dict())
            row = db.get(SessionRecord, session_id)
            if row is None:
                db.add(SessionRecord(session_id=session_id, data=payload))
            else:
                row.data = payload
                row.updated_at = datetime.now(timezone.utc)
            db.commit()
        finally:
            db.close()

    def delete(self, session_id: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(SessionRecord, session_id)
            if row is not None:
                db.delete(row)
                db.commit()
        finally:
            db.close()


def _build_default_store() -> SessionStore:
    if SESSION_DATABASE_URL:
        logger.info("Using SQL session store")
        return SqlSessionStore.from_url(SESSION_DATABASE_URL)
    return InMemorySessionStore()


_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Dependency: the process-wide store (created on first use)."""
    global _store
    if _store is None:
        _store = _build_default_store()
    return _store


class SessionHandle:
    """One request's view of its session. Call save() or destroy() on the response you return."""

    def __init__(self, store: SessionStore, session_id: str, data: ClientSession, is_new: bool = False):
        self.store = store
        self.session_id = session_id
        self.data = data
        self.is_new = is_new
        self.discarded = False

    def _destroyed_meanwhile(self) -> bool:
        """An existing session that is gone from the store now was logged out (or expired) during this request."""
        return not self.is_new and self.store.load(self.session_id) is None

    def rotate(self) -> None:
        """Move the session to a fresh id (on login) so a pre-login cookie never becomes an authenticated one."""
        if self._destroyed_meanwhile():
            self.discarded = True
            return
        self.store.delete(self.session_id)
        self.session_id = secrets.token_urlsafe(32)
        self.is_new = True

    def save(self, response: Response) -> Response:
        if self.discarded or self._destroyed_meanwhile():
            logger.info("Session ended while the request was running; not writing it back")
            self.discarded = True
            response.delete_cookie(SESSION_COOKIE_NAME)
            return response
        self.store.save(self.session_id, self.data)
        self.is_new = False
        response.set_cookie(
            SESSION_COOKIE_NAME,
            self.session_id,
            max_age=SESSION_TTL_SECONDS,
            httponly=True,
            samesite="lax",
            secure=SESSION_COOKIE_SECURE,
        )
        return response

    def destroy(self, response: Response) -> Response:
        self.store.delete(self.session_id)
        self.data = ClientSession()
        response.delete_cookie(SESSION_COOKIE_NAME)
        return response


def get_session(request: Request, store: SessionStore = Depends(get_session_store)) -> SessionHandle:
    """Dependency: load the session named by the cookie, or start a fresh one under a new id."""
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    data = store.load(session_id) if session_id else None
    if data is None:
        # Unknown or expired id: never adopt a client-chosen id
        return SessionHandle(store, secrets.token_urlsafe(32), ClientSession(), is_new=True)
    return SessionHandle(store, session_id, data)
