"""
Error taxonomy for authorization and token handling.

AuthorizationError: the user must run Authorize again (denied, scopes, timeout, revoked...).
CommunicationError: transport or protocol failure talking to the provider; retry later.
ConfigurationError: fatal and non-retryable (bad descriptor, port in use, no crypto).
"""

REASON_ACCESS_DENIED = "access-denied"
REASON_MISSING_CODE = "missing-code"
REASON_INSUFFICIENT_SCOPE = "insufficient-scope"
REASON_EXCHANGE_FAILED = "exchange-failed"
REASON_TIMEOUT = "timeout"
REASON_LISTENER_UNAVAILABLE = "listener-unavailable"
REASON_ABORTED = "cancelled"
REASON_NOT_AUTHORIZED = "not-authorized"
REASON_GRANT_REVOKED = "grant-revoked"
REASON_REFRESH_FAILED = "refresh-failed"
REASON_TOKEN_REJECTED = "token-rejected"
REASON_COMMUNICATION_FAILED = "communication-failed"
REASON_INTERNAL_ERROR = "internal-error"


class OAuthError(Exception):
    """Base class for every error raised by oauth_client."""


class AuthorizationError(OAuthError):
    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or reason)


class NotAuthorized(AuthorizationError):
    def __init__(self, message: str = "No usable tokens stored; authorize this account first"):
        super().__init__(REASON_NOT_AUTHORIZED, message)


class GrantRevoked(AuthorizationError):
    def __init__(self, message: str = "The provider revoked or expired the grant; re-authorize this account"):
        super().__init__(REASON_GRANT_REVOKED, message)


class InsufficientScope(AuthorizationError):
    def __init__(self, missing: list[str], message: str | None = None):
        self.missing = missing
        super().__init__(
            REASON_INSUFFICIENT_SCOPE,
            message or f"The following authorizations are missing: {', '.join(missing)}",
        )


class RefreshFailed(AuthorizationError):
    """Refresh rejected for a reason other than grant revocation. Stored tokens are kept."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(REASON_REFRESH_FAILED, f"Token refresh failed: HTTP {status_code} ({body})")


class CommunicationError(OAuthError):
    pass


class ConfigurationError(OAuthError):
    pass


class PortUnavailable(ConfigurationError):
    def __init__(self, host: str, port: int, cause: Exception | None = None):
        self.host = host
        self.port = port
        detail = f": {cause}" if cause else ""
        super().__init__(f"Cannot listen on {host}:{port}{detail}")


class CryptoUnavailable(ConfigurationError):
    pass
