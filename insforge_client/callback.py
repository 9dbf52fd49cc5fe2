"""
Callback handling: validate state, exchange the code (server-to-server), fetch the profile.

One flow serves both redirect and popup mode; the mode comes back inside the state token.
Stages: AWAITING_CALLBACK -> VALIDATING -> EXCHANGING -> FETCHING_PROFILE -> COMPLETE, or ERRORED from any of them.
Nothing here is retried: authorization codes are single-use.
"""
import enum
import logging
import secrets
from dataclasses import dataclass
from typing import Any

import httpx

from insforge_client.errors import (
    CsrfMismatch,
    MissingCode,
    OAuthClientError,
    ProfileFetchFailure,
    ProviderError,
    SessionExpired,
    TokenExchangeFailure,
    UpstreamUnavailable,
)
from insforge_client.log_utils import token_prefix
from insforge_client.models import ClientSession, PendingAuthorization, TokenSet
from insforge_client.pkce import FlowMode, StateToken

logger = logging.getLogger(__name__)

TOKEN_PATH = "/api/oauth/v1/token"
PROFILE_PATH = "/auth/v1/profile"


class FlowStage(str, enum.Enum):
    AWAITING_CALLBACK = "awaiting_callback"
    VALIDATING = "validating"
    EXCHANGING = "exchanging"
    FETCHING_PROFILE = "fetching_profile"
    COMPLETE = "complete"
    ERRORED = "errored"


@dataclass
class CallbackParams:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None


@dataclass
class FlowResult:
    mode: FlowMode
    tokens: TokenSet
    user: dict[str, Any] | None


def exchange_code(
    http: httpx.Client,
    *,
    code: str,
    code_verifier: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
) -> TokenSet:
    """POST /api/oauth/v1/token (JSON body). Raises TokenExchangeFailure or UpstreamUnavailable."""
    try:
        r = http.post(
            TOKEN_PATH,
            json={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "client_secret": client_secret,
                "code_verifier": code_verifier,
            },
        )
    except httpx.RequestError as e:
        logger.error("Token exchange failed: %s (%s)", type(e).__name__, UpstreamUnavailable.kind)
        raise UpstreamUnavailable() from e

    try:
        data = r.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        logger.error("Token exchange error: non-JSON response, status=%s", r.status_code)
        raise TokenExchangeFailure("invalid_response", "Token endpoint did not return JSON", r.status_code)

    if data.get("error"):
        error = str(data["error"])
        message = data.get("message") or data.get("error_description")
        logger.error("Token exchange error: error=%s status=%s", error, r.status_code)
        raise TokenExchangeFailure(error, str(message) if message else None, r.status_code)
    if not r.is_success:
        logger.error("Token exchange error: status=%s", r.status_code)
        raise TokenExchangeFailure(f"http_{r.status_code}", None, r.status_code)

    access_token = data.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        logger.error("Token exchange error: response missing access_token")
        raise TokenExchangeFailure("invalid_response", "Token response missing access_token", r.status_code)

    expires_in = data.get("expires_in")
    tokens = TokenSet(
        access_token=access_token,
        refresh_token=data.get("refresh_token") or None,
        expires_in=expires_in if isinstance(expires_in, int) else None,
    )
    logger.info(
        "Tokens received: access_token=%s refresh_token=%s expires_in=%s",
        token_prefix(tokens.access_token),
        token_prefix(tokens.refresh_token),
        tokens.expires_in,
    )
    return tokens


def fetch_profile(http: httpx.Client, access_token: str) -> dict[str, Any]:
    """GET /auth/v1/profile with the new access token; returns the `user` object."""
    try:
        r = http.get(PROFILE_PATH, headers={"Authorization": f"Bearer {access_token}"})
    except httpx.RequestError as e:
        raise ProfileFetchFailure(f"profile request failed: {type(e).__name__}") from e
    if not r.is_success:
        raise ProfileFetchFailure(f"profile request returned {r.status_code}")
    try:
        data = r.json()
    except ValueError:
        raise ProfileFetchFailure("profile response is not JSON") from None
    user = data.get("user") if isinstance(data, dict) else None
    if not isinstance(user, dict):
        raise ProfileFetchFailure("profile response has no user")
    return user


class CallbackFlow:
    """
    Runs one callback against one session. Mutates `session` in place; the caller persists it
    whether run() returns or raises.
    """

    def __init__(
        self,
        http: httpx.Client,
        session: ClientSession,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
    ):
        self.http = http
        self.session = session
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.stage = FlowStage.AWAITING_CALLBACK

    def run(self, params: CallbackParams) -> FlowResult:
        try:
            self.stage = FlowStage.VALIDATING
            pending, mode, code = self._validate(params)

            self.stage = FlowStage.EXCHANGING
            tokens = exchange_code(
                self.http,
                code=code,
                code_verifier=pending.verifier,
                client_id=self.client_id,
                client_secret=self.client_secret,
                redirect_uri=self.redirect_uri,
            )
            self.session.tokens = tokens
            self.session.user = None

            self.stage = FlowStage.FETCHING_PROFILE
            try:
                self.session.user = fetch_profile(self.http, tokens.access_token)
            except ProfileFetchFailure as e:
                logger.warning("Profile fetch failed (%s): %s; continuing without profile", e.kind, e.public_message)

            self.stage = FlowStage.COMPLETE
            logger.info("Login complete (mode=%s)", mode.value)
            return FlowResult(mode=mode, tokens=tokens, user=self.session.user)
        except OAuthClientError as e:
            logger.warning("Login failed at %s (%s)", self.stage.value, e.kind)
            self.stage = FlowStage.ERRORED
            raise

    def _validate(self, params: CallbackParams) -> tuple[PendingAuthorization, FlowMode, str]:
        if params.error:
            logger.error("OAuth error from provider: %s %s", params.error, params.error_description or "")
            raise ProviderError(params.error, params.error_description)

        pending = self.session.pending
        if pending is None or pending.expired():
            logger.warning("Callback without a live pending login (state=%s)", token_prefix(params.state))
            raise SessionExpired("Login session expired or not found. Please try logging in again.")

        if not params.state or not secrets.compare_digest(params.state.encode(), pending.state.encode()):
            logger.error(
                "State mismatch: got=%s expected=%s",
                token_prefix(params.state),
                token_prefix(pending.state),
            )
            raise CsrfMismatch()

        # State matched: this attempt owns the pending login and uses it up, whatever happens next
        self.session.pending = None

        if not pending.verifier:
            raise SessionExpired()

        mode = StateToken.parse(params.state).mode

        if not params.code or not params.code.strip():
            raise MissingCode()
        return pending, mode, params.code
