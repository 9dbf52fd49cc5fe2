"""
InsForge OAuth example client: a third-party app logging users in with InsForge OAuth 2.0 (code flow + PKCE).

1. /auth/login (or /auth/login-popup) stores verifier + state in the session and redirects to InsForge /authorize
2. The user logs in and approves on InsForge
3. InsForge redirects back to /auth/callback with a code
4. The code is exchanged for tokens server-to-server, the profile is fetched, the user is logged in
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from insforge_client.callback import CallbackFlow, CallbackParams
from insforge_client.config import CALLBACK_URL, CLIENT_ID, CLIENT_SECRET, INSFORGE_URL, PORT, SCOPES
from insforge_client.errors import OAuthClientError, Unauthenticated, UpstreamUnavailable
from insforge_client.http_client import close_http_client, get_http_client
from insforge_client.log_utils import configure_logging, token_prefix
from insforge_client.models import PendingAuthorization
from insforge_client.pages import error_page, home_page, popup_complete_page
from insforge_client.pkce import FlowMode, build_authorize_url, derive_challenge, generate_state, generate_verifier
from insforge_client.resources import ORGANIZATIONS_PATH, fetch_resource, list_organizations
from insforge_client.session_store import SessionHandle, get_session

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Warn about placeholder credentials (InsForge will reject them); close the HTTP client on shutdown."""
    if CLIENT_ID == "your_client_id" or CLIENT_SECRET == "your_client_secret":
        logger.warning("INSFORGE_CLIENT_ID / INSFORGE_CLIENT_SECRET not set; token exchange will be rejected")
    logger.info("Callback URL: %s (must match the redirect_uri registered in InsForge)", CALLBACK_URL)
    yield
    close_http_client()


app = FastAPI(title="InsForge OAuth Client", version="1.0.0", lifespan=lifespan)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "insforge_client"}


@app.get("/", response_class=HTMLResponse)
def home(
    session: SessionHandle = Depends(get_session),
    http: httpx.Client = Depends(get_http_client),
):
    """Login buttons, or the user with their organizations/projects when logged in."""
    access_token = session.data.access_token
    organizations = list_organizations(http, access_token) if access_token else []
    return HTMLResponse(home_page(session.data.user, access_token, organizations))


def _start_login(session: SessionHandle, mode: FlowMode) -> Response:
    """New verifier + state for this attempt; stored before redirecting so the callback can check them."""
    verifier = generate_verifier()
    state = generate_state(mode).serialize()
    session.data.pending = PendingAuthorization(verifier=verifier, state=state, mode=mode)

    url = build_authorize_url(
        base_url=INSFORGE_URL,
        client_id=CLIENT_ID,
        redirect_uri=CALLBACK_URL,
        scopes=SCOPES,
        state=state,
        code_challenge=derive_challenge(verifier),
    )
    logger.info("Redirecting to InsForge /authorize (mode=%s, state=%s)", mode.value, token_prefix(state))
    return session.save(RedirectResponse(url=url, status_code=302))


@app.get("/auth/login")
def login(session: SessionHandle = Depends(get_session)):
    """Start the flow in redirect mode (full-page redirect)."""
    return _start_login(session, FlowMode.REDIRECT)


@app.get("/auth/login-popup")
def login_popup(session: SessionHandle = Depends(get_session)):
    """Start the flow inside a popup window opened by the home page."""
    return _start_login(session, FlowMode.POPUP)


@app.get("/auth/callback")
@app.get("/auth/callback-popup")
def callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    session: SessionHandle = Depends(get_session),
    http: httpx.Client = Depends(get_http_client),
):
    """
    InsForge redirects here after the user approves (or denies). Handles both popup and redirect mode.
    /auth/callback-popup is an older path for the same thing.
    """
    flow = CallbackFlow(
        http,
        session.data,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=CALLBACK_URL,
    )
    params = CallbackParams(code=code, state=state, error=error, error_description=error_description)
    try:
        result = flow.run(params)
    except OAuthClientError as e:
        return session.save(HTMLResponse(error_page(e.public_message), status_code=e.status_code))

    # Logged in now: the pre-login session id must not carry the tokens
    session.rotate()
    if result.mode is FlowMode.POPUP:
        return session.save(HTMLResponse(popup_complete_page()))
    return session.save(RedirectResponse(url="/", status_code=302))


@app.get("/auth/logout")
def logout(session: SessionHandle = Depends(get_session)):
    return session.destroy(RedirectResponse(url="/", status_code=302))


@app.get("/api/organizations")
def organizations(
    session: SessionHandle = Depends(get_session),
    http: httpx.Client = Depends(get_http_client),
):
    """Example API call with the user's token: InsForge's answer is passed through as-is."""
    try:
        r = fetch_resource(http, ORGANIZATIONS_PATH, session.data.access_token)
    except Unauthenticated as e:
        return JSONResponse({"error": e.public_message}, status_code=e.status_code)
    except UpstreamUnavailable as e:
        return JSONResponse({"error": "Failed to fetch organizations"}, status_code=e.status_code)
    return Response(content=r.content, status_code=r.status_code, media_type=r.headers.get("content-type"))


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run(
        "insforge_client.main:app",
        host="127.0.0.1",
        port=PORT,
        reload=True,
    )
