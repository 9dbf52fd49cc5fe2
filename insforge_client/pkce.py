"""
PKCE (RFC 7636) and auth request helpers for starting a login.
S256 only. State carries the flow mode (redirect or popup) so the callback can tell which page to answer with.
"""
import enum
import hashlib
import re
import secrets
from base64 import urlsafe_b64encode
from dataclasses import dataclass
from typing import Sequence
from urllib.parse import urlencode

from insforge_client.errors import CsrfMismatch

AUTHORIZE_PATH = "/api/oauth/v1/authorize"

# base64url alphabet; "." below is outside it, so it can never appear inside a nonce
_URLSAFE = re.compile(r"^[A-Za-z0-9_-]+$")
_MODE_DELIMITER = "."


class FlowMode(str, enum.Enum):
    REDIRECT = "redirect"
    POPUP = "popup"


def generate_verifier() -> str:
    """code_verifier: 32 random bytes -> 43 chars base64url, no padding (256 bits entropy)."""
    return secrets.token_urlsafe(32)


def derive_challenge(verifier: str) -> str:
    """code_challenge = base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


@dataclass(frozen=True)
class StateToken:
    """Anti-CSRF nonce tagged with the flow mode. Only `serialize()` output goes on the wire."""

    nonce: str
    mode: FlowMode = FlowMode.REDIRECT

    def serialize(self) -> str:
        if self.mode is FlowMode.POPUP:
            return f"{self.nonce}{_MODE_DELIMITER}{FlowMode.POPUP.value}"
        return self.nonce

    @classmethod
    def parse(cls, raw: str) -> "StateToken":
        """Inverse of serialize(). Anything else is not a state this client issued."""
        nonce, sep, suffix = raw.partition(_MODE_DELIMITER)
        if sep:
            try:
                mode = FlowMode(suffix)
            except ValueError:
                raise CsrfMismatch() from None
            if mode is not FlowMode.POPUP:
                raise CsrfMismatch()
        else:
            mode = FlowMode.REDIRECT
        if not _URLSAFE.match(nonce):
            raise CsrfMismatch()
        return cls(nonce=nonce, mode=mode)


def generate_state(mode: FlowMode = FlowMode.REDIRECT) -> StateToken:
    """128-bit random nonce, tagged with the flow mode."""
    return StateToken(nonce=secrets.token_urlsafe(16), mode=mode)


def build_authorize_url(
    *,
    base_url: str,
    client_id: str,
    redirect_uri: str,
    scopes: Sequence[str],
    state: str,
    code_challenge: str,
) -> str:
    """Build the InsForge /authorize URL. No side effects; caller stores state + verifier first."""
    ordered = list(dict.fromkeys(s for s in scopes if s))
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(ordered),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{base_url.rstrip('/')}{AUTHORIZE_PATH}?{urlencode(params)}"
