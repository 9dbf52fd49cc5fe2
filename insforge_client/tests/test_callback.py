"""Tests for the callback flow: validation, code exchange, profile fetch."""
import json
import time

import httpx
import pytest

from insforge_client.callback import PROFILE_PATH, TOKEN_PATH, CallbackFlow, CallbackParams, FlowStage
from insforge_client.config import PENDING_FLOW_TTL
from insforge_client.errors import (
    CsrfMismatch,
    MissingCode,
    ProviderError,
    SessionExpired,
    TokenExchangeFailure,
    UpstreamUnavailable,
)
from insforge_client.models import ClientSession, PendingAuthorization
from insforge_client.pkce import FlowMode

VERIFIER = "verifier-" + "x" * 40


def _session(state: str = "nonce123", mode: FlowMode = FlowMode.REDIRECT) -> ClientSession:
    return ClientSession(pending=PendingAuthorization(verifier=VERIFIER, state=state, mode=mode))


def _flow(http, session) -> CallbackFlow:
    return CallbackFlow(
        http,
        session,
        client_id="cid",
        client_secret="csecret",
        redirect_uri="http://localhost:4000/auth/callback",
    )


def test_success_stores_tokens_and_profile_and_clears_pending(http, insforge):
    session = _session()
    flow = _flow(http, session)
    result = flow.run(CallbackParams(code="ABC123", state="nonce123"))

    assert flow.stage is FlowStage.COMPLETE
    assert result.mode is FlowMode.REDIRECT
    assert session.pending is None
    assert session.tokens.access_token == "T1"
    assert session.tokens.refresh_token == "R1"
    assert session.tokens.expires_in == 3600
    assert session.user == {"id": "u1", "email": "a@b.com"}


def test_token_request_body_carries_code_and_verifier(http, insforge):
    _flow(http, _session()).run(CallbackParams(code="ABC123", state="nonce123"))

    (token_call,) = insforge.calls_to(TOKEN_PATH)
    assert token_call.method == "POST"
    assert token_call.headers["content-type"] == "application/json"
    assert json.loads(token_call.content) == {
        "grant_type": "authorization_code",
        "code": "ABC123",
        "redirect_uri": "http://localhost:4000/auth/callback",
        "client_id": "cid",
        "client_secret": "csecret",
        "code_verifier": VERIFIER,
    }
    (profile_call,) = insforge.calls_to(PROFILE_PATH)
    assert profile_call.headers["authorization"] == "Bearer T1"


def test_popup_mode_comes_back_from_state(http):
    session = _session(state="nonce123.popup", mode=FlowMode.POPUP)
    result = _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123.popup"))
    assert result.mode is FlowMode.POPUP


def test_provider_error_stops_before_anything_else(http, insforge):
    session = _session()
    flow = _flow(http, session)
    with pytest.raises(ProviderError) as exc:
        flow.run(CallbackParams(state="nonce123", error="access_denied", error_description="User denied"))
    assert exc.value.error == "access_denied"
    assert "User denied" in exc.value.public_message
    assert flow.stage is FlowStage.ERRORED
    assert insforge.requests == []


def test_state_mismatch_never_contacts_token_endpoint(http, insforge):
    session = _session()
    flow = _flow(http, session)
    with pytest.raises(CsrfMismatch):
        flow.run(CallbackParams(code="ABC123", state="someone-elses-state"))
    assert flow.stage is FlowStage.ERRORED
    assert insforge.calls_to(TOKEN_PATH) == []
    # A forged callback must not cancel the real pending login
    assert session.pending is not None


def test_missing_state_is_csrf_mismatch(http, insforge):
    with pytest.raises(CsrfMismatch):
        _flow(http, _session()).run(CallbackParams(code="ABC123"))
    assert insforge.requests == []


def test_no_pending_login_is_session_expired(http, insforge):
    with pytest.raises(SessionExpired):
        _flow(http, ClientSession()).run(CallbackParams(code="ABC123", state="nonce123"))
    assert insforge.requests == []


def test_expired_pending_login_is_session_expired(http, insforge):
    session = _session()
    session.pending.created_at = time.time() - PENDING_FLOW_TTL - 1
    with pytest.raises(SessionExpired):
        _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123"))
    assert insforge.requests == []


def test_missing_verifier_is_session_expired(http, insforge):
    session = ClientSession(pending=PendingAuthorization(verifier="", state="nonce123", mode=FlowMode.REDIRECT))
    with pytest.raises(SessionExpired):
        _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123"))
    assert insforge.requests == []


@pytest.mark.parametrize("code", [None, "", "   "])
def test_missing_code(http, insforge, code):
    session = _session()
    with pytest.raises(MissingCode):
        _flow(http, session).run(CallbackParams(code=code, state="nonce123"))
    assert insforge.requests == []
    # State matched, so this attempt used up the pending login
    assert session.pending is None


def test_invalid_grant_surfaces_and_stores_no_tokens(http, insforge):
    insforge.token_response = (400, {"error": "invalid_grant", "message": "Code already used"})
    session = _session()
    flow = _flow(http, session)
    with pytest.raises(TokenExchangeFailure) as exc:
        flow.run(CallbackParams(code="ABC123", state="nonce123"))
    assert exc.value.error == "invalid_grant"
    assert "Code already used" in exc.value.public_message
    assert flow.stage is FlowStage.ERRORED
    assert session.tokens is None
    # Code is spent: the user has to start over
    assert session.pending is None
    assert len(insforge.calls_to(TOKEN_PATH)) == 1
    assert insforge.calls_to(PROFILE_PATH) == []


def test_error_field_with_200_status_is_still_a_failure(http, insforge):
    insforge.token_response = (200, {"error": "invalid_client"})
    session = _session()
    with pytest.raises(TokenExchangeFailure):
        _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123"))
    assert session.tokens is None


def test_non_2xx_without_error_field(http, insforge):
    insforge.token_response = (500, {"detail": "boom"})
    with pytest.raises(TokenExchangeFailure) as exc:
        _flow(http, _session()).run(CallbackParams(code="ABC123", state="nonce123"))
    assert exc.value.error == "http_500"


def test_non_json_token_response(http, insforge):
    insforge.token_response = (502, "<html>Bad Gateway</html>")
    with pytest.raises(TokenExchangeFailure) as exc:
        _flow(http, _session()).run(CallbackParams(code="ABC123", state="nonce123"))
    assert exc.value.error == "invalid_response"


def test_token_response_without_access_token(http, insforge):
    insforge.token_response = (200, {"refresh_token": "R1"})
    session = _session()
    with pytest.raises(TokenExchangeFailure):
        _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123"))
    assert session.tokens is None


@pytest.mark.parametrize("failure", [httpx.ConnectError, httpx.ReadTimeout])
def test_network_failure_is_upstream_unavailable_without_retry(http, insforge, failure):
    insforge.failing_paths[TOKEN_PATH] = failure
    session = _session()
    with pytest.raises(UpstreamUnavailable):
        _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123"))
    assert len(insforge.calls_to(TOKEN_PATH)) == 1
    assert session.tokens is None
    assert session.pending is None


def test_profile_failure_still_completes(http, insforge):
    insforge.profile_response = (401, {"error": "unauthorized"})
    session = _session()
    flow = _flow(http, session)
    flow.run(CallbackParams(code="ABC123", state="nonce123"))
    assert flow.stage is FlowStage.COMPLETE
    assert session.tokens.access_token == "T1"
    assert session.user is None


def test_profile_network_failure_still_completes(http, insforge):
    insforge.failing_paths[PROFILE_PATH] = httpx.ConnectError
    session = _session()
    flow = _flow(http, session)
    flow.run(CallbackParams(code="ABC123", state="nonce123"))
    assert flow.stage is FlowStage.COMPLETE
    assert session.tokens.access_token == "T1"
    assert session.user is None


def test_profile_without_user_object(http, insforge):
    insforge.profile_response = (200, {"profile": {"id": "u1"}})
    session = _session()
    _flow(http, session).run(CallbackParams(code="ABC123", state="nonce123"))
    assert session.user is None
