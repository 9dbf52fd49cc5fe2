"""
InsForge OAuth client configuration. Values come from the environment (or a local .env file).
Get the client id/secret from the InsForge dashboard; the callback URL must match the registered redirect_uri.
"""
import os

from dotenv import load_dotenv

load_dotenv()

# OAuth client credentials (placeholders are not checked; InsForge rejects them at token exchange)
CLIENT_ID = os.environ.get("INSFORGE_CLIENT_ID", "your_client_id")
CLIENT_SECRET = os.environ.get("INSFORGE_CLIENT_SECRET", "your_client_secret")

# Authorization server base URL (authorize, token, profile and resource APIs all live here)
INSFORGE_URL = os.environ.get("INSFORGE_URL", "http://localhost:3000").rstrip("/")

# Where InsForge redirects after consent; both popup and redirect mode use this one URL
CALLBACK_URL = os.environ.get("CALLBACK_URL", "http://localhost:4000/auth/callback")

# Requested scopes, in order (user:read for profile, the rest for org/project access)
SCOPES = os.environ.get("INSFORGE_SCOPES", "user:read organizations:read projects:read projects:write").split()

PORT = int(os.environ.get("PORT", "4000"))

# Bound on every outbound call (token exchange, profile, resource proxy). Timeout == network failure.
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10"))

# Empty: in-memory sessions (lost on restart). Otherwise any SQLAlchemy URL, e.g. sqlite:///./sessions.db
SESSION_DATABASE_URL = os.environ.get("SESSION_DATABASE_URL", "").strip()
SESSION_COOKIE_NAME = os.environ.get("SESSION_COOKIE_NAME", "insforge_session")
# Set to true when served over HTTPS
SESSION_COOKIE_SECURE = os.environ.get("SESSION_COOKIE_SECURE", "false").strip().lower() in {"1", "true", "yes", "on"}
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", "86400"))

# A pending login (verifier + state) is only good for this long (seconds)
PENDING_FLOW_TTL = 600

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
