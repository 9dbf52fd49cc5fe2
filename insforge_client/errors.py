"""
Error taxonomy for the login flow and resource calls.
Messages are safe to show to the user: never a token, verifier, or client secret.
"""


class OAuthClientError(Exception):
    """Base class. `kind` is the log/classification key; `status_code` is what the user sees."""

    kind = "oauth_client_error"
    status_code = 400

    def __init__(self, public_message: str):
        super().__init__(public_message)
        self.public_message = public_message


class ProviderError(OAuthClientError):
    """Authorization server redirected back with ?error=..."""

    kind = "provider_error"

    def __init__(self, error: str, description: str | None = None):
        self.error = error
        self.description = description or ""
        message = f"Error: {error}. {self.description}".strip()
        super().__init__(message)


class CsrfMismatch(OAuthClientError):
    kind = "csrf_mismatch"

    def __init__(self, public_message: str = "Invalid state parameter. Possible CSRF attack."):
        super().__init__(public_message)


class SessionExpired(OAuthClientError):
    kind = "session_expired"

    def __init__(self, public_message: str = "Missing code verifier. Session may have expired."):
        super().__init__(public_message)


class MissingCode(OAuthClientError):
    kind = "missing_code"

    def __init__(self, public_message: str = "Missing authorization code. Please try logging in again."):
        super().__init__(public_message)


class TokenExchangeFailure(OAuthClientError):
    """Token endpoint answered, but not with tokens. `error`/`message` are the upstream values, verbatim."""

    kind = "token_exchange_failure"

    def __init__(self, error: str, message: str | None = None, upstream_status: int | None = None):
        self.error = error
        self.message = message or ""
        self.upstream_status = upstream_status
        super().__init__(f"Token exchange failed: {error}. {self.message}".strip())


class ProfileFetchFailure(OAuthClientError):
    """Never shown to the user; the login still completes without a cached profile."""

    kind = "profile_fetch_failure"


class UpstreamUnavailable(OAuthClientError):
    """Network-level failure (connect error, timeout) talking to InsForge."""

    kind = "upstream_unavailable"
    status_code = 502

    def __init__(self, public_message: str = "The authorization server could not be reached. Please try again."):
        super().__init__(public_message)


class Unauthenticated(OAuthClientError):
    kind = "unauthenticated"
    status_code = 401

    def __init__(self, public_message: str = "Not authenticated"):
        super().__init__(public_message)
