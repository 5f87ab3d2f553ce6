"""
Authorization session: the transient state of one Authorize call.

The callback listener thread and the waiting caller meet on a single-resolution signal:
the first of {code, error, abort, timeout} to resolve the session wins, later ones are ignored.
Sessions are never shared between Authorize calls.
"""
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum

from oauth_client.errors import (
    REASON_ABORTED,
    REASON_ACCESS_DENIED,
    REASON_INSUFFICIENT_SCOPE,
    REASON_MISSING_CODE,
    REASON_TIMEOUT,
)
from oauth_client.pkce import derive_challenge, generate_verifier
from oauth_client.providers import ProviderDescriptor
from oauth_client.scopes import missing_scopes, parse_scopes

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    INIT = "INIT"
    LISTENING = "LISTENING"
    AWAITING_CODE = "AWAITING_CODE"
    EXCHANGING = "EXCHANGING"
    AUTHORIZED = "AUTHORIZED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    ABORTED = "ABORTED"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.AUTHORIZED, SessionState.FAILED, SessionState.TIMEOUT, SessionState.ABORTED)


@dataclass(frozen=True)
class CallbackResult:
    """Outcome of waiting for the redirect: a code, or a failure reason with description."""

    code: str | None = None
    scopes: frozenset[str] = frozenset()
    reason: str | None = None
    description: str | None = None

    @property
    def ok(self) -> bool:
        return self.reason is None and bool(self.code)


def evaluate_callback(
    provider: ProviderDescriptor,
    code: str | None,
    error: str | None,
    scope: str | None,
    error_description: str | None = None,
) -> CallbackResult:
    """Check the redirect query parameters: no error, non-empty code, granted scopes cover the required ones."""
    if error:
        return CallbackResult(
            reason=REASON_ACCESS_DENIED,
            description=f"{provider.label} returned an error: {error_description or error}",
        )
    if not code:
        return CallbackResult(reason=REASON_MISSING_CODE, description=f"Missing code in {provider.label} response")
    granted = parse_scopes(scope)
    if provider.required_scopes:
        if not granted:
            return CallbackResult(
                reason=REASON_INSUFFICIENT_SCOPE,
                description=f"No allowed scope received in {provider.label} response",
            )
        missing = missing_scopes(provider.required_scopes, granted)
        if missing:
            return CallbackResult(
                reason=REASON_INSUFFICIENT_SCOPE,
                description=f"The following {provider.label} authorizations are missing: {', '.join(missing)}",
            )
    return CallbackResult(code=code, scopes=frozenset(granted))


class AuthorizationSession:
    def __init__(self, provider: ProviderDescriptor, account: str, code_verifier: str | None = None):
        self.provider = provider
        self.account = account
        self.code_verifier = code_verifier or generate_verifier()
        self.code_challenge = derive_challenge(self.code_verifier)
        self.state = SessionState.INIT
        self.redirect_uri: str | None = None
        self.authorize_url: str | None = None
        self.deadline: float | None = None  # time.monotonic() value
        self.failure_reason: str | None = None
        self.failure_message: str | None = None
        self._lock = threading.Lock()
        self._resolved = threading.Event()
        self._result: CallbackResult | None = None
        self._abort_requested = False
        self._listener = None

    def __repr__(self) -> str:
        return f"<AuthorizationSession {self.provider.name}/{self.account} {self.state.value}>"

    @property
    def result(self) -> CallbackResult | None:
        return self._result

    @property
    def received_code(self) -> str | None:
        return self._result.code if self._result else None

    @property
    def received_error(self) -> str | None:
        return self._result.description if self._result and not self._result.ok else None

    @property
    def abort_requested(self) -> bool:
        return self._abort_requested

    @property
    def resolved(self) -> bool:
        return self._resolved.is_set()

    def transition(self, new_state: SessionState) -> None:
        with self._lock:
            if self.state.terminal:
                raise RuntimeError(f"Session already finished in state {self.state.value}")
            logger.debug("Session %s/%s: %s -> %s", self.provider.name, self.account, self.state.value, new_state.value)
            self.state = new_state

    def finish(self, state: SessionState, reason: str | None = None, message: str | None = None) -> None:
        """Move to a terminal state, recording why."""
        with self._lock:
            if self.state.terminal:
                return
            self.state = state
            self.failure_reason = reason
            self.failure_message = message
        logger.info("Authorization %s/%s finished: %s%s", self.provider.name, self.account, state.value, f" ({reason})" if reason else "")

    def attach_listener(self, listener) -> None:
        with self._lock:
            self._listener = listener

    def resolve(self, result: CallbackResult) -> bool:
        """Resolve the session once. Returns False if it was already resolved."""
        with self._lock:
            if self._result is not None:
                return False
            self._result = result
        self._resolved.set()
        return True

    def submit_code(self, code: str | None, scope: str | None = None, error: str | None = None) -> bool:
        """Feed a redirect's parameters into the session (listener thread or manual entry)."""
        return self.resolve(evaluate_callback(self.provider, code, error, scope))

    def submit_error(self, error: str, description: str | None = None) -> bool:
        return self.resolve(evaluate_callback(self.provider, None, error, None, description))

    def abort(self) -> bool:
        """Cancel from any thread. Unblocks the waiter and stops the listener. False if already finished."""
        with self._lock:
            if self.state.terminal:
                return False
            self._abort_requested = True
            listener = self._listener
        self.resolve(CallbackResult(reason=REASON_ABORTED, description="Authorization cancelled"))
        if listener is not None:
            listener.stop()
        return True

    def wait_for_callback(self, timeout: float) -> CallbackResult:
        """Block until resolved or until timeout seconds elapse; a timeout resolves the session itself."""
        self.deadline = time.monotonic() + timeout
        if not self._resolved.wait(timeout):
            self.resolve(CallbackResult(reason=REASON_TIMEOUT, description="Time out waiting for authorization"))
        return self._result
