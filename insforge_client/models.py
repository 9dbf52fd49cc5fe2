"""
Session data (pending login, tokens, cached profile) and the SQLAlchemy row it is stored in.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from insforge_client.config import PENDING_FLOW_TTL
from insforge_client.pkce import FlowMode


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingAuthorization:
    """Created at /auth/login*, consumed at the callback. The verifier never leaves the server."""

    verifier: str
    state: str
    mode: FlowMode
    created_at: float = field(default_factory=time.time)

    def expired(self) -> bool:
        return (time.time() - self.created_at) > PENDING_FLOW_TTL

    def to_dict(self) -> dict[str, Any]:
        return {
            "verifier": self.verifier,
            "state": self.state,
            "mode": self.mode.value,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingAuthorization":
        return cls(
            verifier=data.get("verifier", ""),
            state=data.get("state", ""),
            mode=FlowMode(data.get("mode", FlowMode.REDIRECT.value)),
            created_at=float(data.get("created_at", 0)),
        )


@dataclass
class TokenSet:
    """Tokens from the code exchange. refresh_token is kept but never used (no refresh in this client)."""

    access_token: str
    refresh_token: str | None
    expires_in: int | None
    issued_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "issued_at": self.issued_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenSet":
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in"),
            issued_at=float(data.get("issued_at", 0)),
        )


@dataclass
class ClientSession:
    """Everything this client remembers about one browser."""

    pending: PendingAuthorization | None = None
    tokens: TokenSet | None = None
    user: dict[str, Any] | None = None

    @property
    def access_token(self) -> str | None:
        return self.tokens.access_token if self.tokens else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pending": self.pending.to_dict() if self.pending else None,
            "tokens": self.tokens.to_dict() if self.tokens else None,
            "user": self.user,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClientSession":
        pending = data.get("pending")
        tokens = data.get("tokens")
        return cls(
            pending=PendingAuthorization.from_dict(pending) if pending else None,
            tokens=TokenSet.from_dict(tokens) if tokens else None,
            user=data.get("user"),
        )


class Base(DeclarativeBase):
    pass


class SessionRecord(Base):
    __tablename__ = "client_sessions"

    session_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[str] = mapped_column(Text, nullable=False)  # ClientSession as JSON
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)
