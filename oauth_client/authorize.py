"""
Authorization orchestrator: one PKCE authorization-code flow per Authorize call.

INIT -> LISTENING -> AWAITING_CODE -> EXCHANGING -> AUTHORIZED
Any step may end in FAILED; the wait may also end in TIMEOUT or ABORTED.
Every terminal state records a reason. The listener is stopped on every exit path;
the token store is written only on AUTHORIZED.
"""
import logging
import webbrowser
from collections.abc import Callable

from oauth_client import config
from oauth_client.callback import CallbackListener
from oauth_client.errors import (
    REASON_ABORTED,
    REASON_COMMUNICATION_FAILED,
    REASON_INTERNAL_ERROR,
    REASON_LISTENER_UNAVAILABLE,
    REASON_TIMEOUT,
    AuthorizationError,
    CommunicationError,
    PortUnavailable,
)
from oauth_client.pkce import build_authorize_url
from oauth_client.providers import ProviderDescriptor
from oauth_client.scopes import format_scopes
from oauth_client.session import AuthorizationSession, SessionState
from oauth_client.token_endpoint import exchange_code
from oauth_client.token_store import TokenRecord, TokenStore

logger = logging.getLogger(__name__)

# (session) -> object with start(), stop(), redirect_uri; lets callers swap in another listener
ListenerFactory = Callable[[AuthorizationSession], object]


def _default_open_browser(url: str) -> bool:
    return webbrowser.open(url)


def authorize_url_for(session: AuthorizationSession, redirect_uri: str) -> str:
    provider = session.provider
    return build_authorize_url(
        authorize_url=provider.authorize_url,
        client_id=provider.client_id,
        redirect_uri=redirect_uri,
        code_challenge=session.code_challenge,
        scope=format_scopes(provider.required_scopes) if provider.required_scopes else None,
        extra_params=dict(provider.extra_authorize_params),
    )


class Authorizer:
    def __init__(
        self,
        store: TokenStore,
        *,
        timeout: float | None = None,
        listener_factory: ListenerFactory | None = None,
        open_browser: Callable[[str], bool] | None = None,
    ):
        self._store = store
        self.timeout = config.AUTHORIZE_TIMEOUT if timeout is None else timeout
        self._listener_factory = listener_factory or CallbackListener
        self._open_browser = open_browser or _default_open_browser

    def new_session(self, provider: ProviderDescriptor, account: str) -> AuthorizationSession:
        """Create a session the caller can keep to abort() while authorize() blocks on another thread."""
        return AuthorizationSession(provider, account)

    def abort(self, session: AuthorizationSession) -> bool:
        return session.abort()

    def authorize(
        self,
        provider: ProviderDescriptor,
        account: str,
        session: AuthorizationSession | None = None,
    ) -> TokenRecord:
        """
        Run the full flow for (provider, account) and store the resulting tokens.
        Raises AuthorizationError (with .reason) or CommunicationError; the session ends in a terminal state.
        """
        if session is None:
            session = self.new_session(provider, account)
        listener = None
        try:
            session.transition(SessionState.LISTENING)
            try:
                listener = self._listener_factory(session)
                listener.start()
            except PortUnavailable as e:
                raise AuthorizationError(
                    REASON_LISTENER_UNAVAILABLE,
                    f"Local callback listener unavailable: {e}",
                ) from e
            session.attach_listener(listener)
            if session.abort_requested:
                raise AuthorizationError(REASON_ABORTED, "Authorization cancelled")

            session.transition(SessionState.AWAITING_CODE)
            session.redirect_uri = listener.redirect_uri
            session.authorize_url = authorize_url_for(session, session.redirect_uri)
            logger.info("Waiting for browser authorization on %s for account %s", provider.label, account)
            if not self._open_browser(session.authorize_url):
                logger.warning("Could not open a browser; open this URL to continue: %s", session.authorize_url)

            result = session.wait_for_callback(self.timeout)
            if not result.ok:
                raise AuthorizationError(result.reason, result.description)

            session.transition(SessionState.EXCHANGING)
            record = exchange_code(
                provider,
                code=result.code,
                code_verifier=session.code_verifier,
                redirect_uri=session.redirect_uri,
                granted_scopes=set(result.scopes),
            )
            if session.abort_requested:
                raise AuthorizationError(REASON_ABORTED, "Authorization cancelled")
            self._store.set(provider.name, account, record)
            session.finish(SessionState.AUTHORIZED)
            return record
        except AuthorizationError as e:
            session.finish(_terminal_state_for(e.reason), e.reason, str(e))
            raise
        except CommunicationError as e:
            session.finish(SessionState.FAILED, REASON_COMMUNICATION_FAILED, str(e))
            raise
        except Exception as e:
            session.finish(SessionState.FAILED, REASON_INTERNAL_ERROR, str(e))
            raise
        finally:
            if listener is not None:
                listener.stop()


def _terminal_state_for(reason: str) -> SessionState:
    if reason == REASON_TIMEOUT:
        return SessionState.TIMEOUT
    if reason == REASON_ABORTED:
        return SessionState.ABORTED
    return SessionState.FAILED
