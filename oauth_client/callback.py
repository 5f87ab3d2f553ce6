"""
Loopback redirect listener. A tiny FastAPI app served by uvicorn on its own thread
receives the provider redirect (?code=...&scope=... or ?error=...) and resolves the session.
Only the first callback counts; duplicates get a page but change nothing.
"""
import html
import logging
import socket
import sys
import threading

import uvicorn
from fastapi import FastAPI
from fastapi.responses import HTMLResponse

from oauth_client import config
from oauth_client.errors import PortUnavailable
from oauth_client.providers import ProviderDescriptor
from oauth_client.session import AuthorizationSession, evaluate_callback

logger = logging.getLogger(__name__)

_PAGE_STYLE = "body{background-color:#222;font-family:sans-serif;color:#ddd;} a{color:#fc0;} a:hover{color:white;}"


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title><style>{_PAGE_STYLE}</style></head>
<body>
{body}
  <p>You may now close this window.</p>
</body>
</html>"""


def confirmation_page(provider: ProviderDescriptor) -> str:
    revoke = html.escape(provider.revoke_url)
    return _page(
        "Authorization received",
        f"""  <h1>Authorization received.</h1>
  <p>Access to your {html.escape(provider.label)} account is now authorized.<br/>
  You can revoke this authorization at any time by visiting <a href="{revoke}">{revoke}</a>.</p>""",
    )


def rejection_page(provider: ProviderDescriptor, message: str | None) -> str:
    return _page(
        "Authorization rejected",
        f"""  <h1>Authorization rejected.</h1>
  <p>The required authorizations to access your {html.escape(provider.label)} account were not received.<br/>
  {html.escape(message or "Operation cancelled.")}</p>""",
    )


def create_callback_app(session: AuthorizationSession) -> FastAPI:
    """App with a single GET route at the provider redirect path, bound to one session."""
    provider = session.provider
    app = FastAPI(title="OAuth callback", docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(provider.redirect_path, response_class=HTMLResponse)
    def callback(
        code: str | None = None,
        error: str | None = None,
        scope: str | None = None,
        error_description: str | None = None,
    ):
        first = session.resolve(evaluate_callback(provider, code, error, scope, error_description))
        result = session.result
        if not first:
            logger.info("Ignoring repeated callback for %s/%s", provider.name, session.account)
        if result.ok:
            return HTMLResponse(confirmation_page(provider))
        if first:
            logger.warning("Authorization callback rejected for %s/%s: %s", provider.name, session.account, result.reason)
            return HTMLResponse(rejection_page(provider, result.description), status_code=400)
        return HTMLResponse(rejection_page(provider, result.description))

    return app


class CallbackListener:
    """Serve the callback app on host:port until stop(). Port 0 picks a free port (tests)."""

    def __init__(self, session: AuthorizationSession, host: str | None = None, port: int | None = None):
        self.session = session
        self.host = host or config.CALLBACK_HOST
        self.port = config.CALLBACK_PORT if port is None else port
        self._app = create_callback_app(session)
        self._lock = threading.Lock()
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self._sock: socket.socket | None = None
        self._stopped = False

    @property
    def redirect_uri(self) -> str:
        return self.session.provider.redirect_uri(self.host, self.port)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stopped

    def start(self) -> "CallbackListener":
        """Bind and listen, then serve on a background thread. Raises PortUnavailable if the bind fails."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        if sys.platform != "win32":
            # Rebinding the fixed port right after a previous session must not hit TIME_WAIT
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            # Listening before uvicorn starts lets an early redirect queue instead of being refused
            sock.listen(16)
        except OSError as e:
            sock.close()
            logger.error("Cannot start callback listener on %s:%s: %s", self.host, self.port, e)
            raise PortUnavailable(self.host, self.port, e) from e
        self.port = sock.getsockname()[1]

        server = uvicorn.Server(
            uvicorn.Config(self._app, log_config=None, log_level="warning", access_log=False, lifespan="off")
        )
        thread = threading.Thread(
            target=server.run,
            kwargs={"sockets": [sock]},
            name=f"oauth-callback-{self.port}",
            daemon=True,
        )
        with self._lock:
            if self._stopped:
                sock.close()
                raise RuntimeError("Callback listener already stopped")
            self._sock, self._server, self._thread = sock, server, thread
        thread.start()
        logger.info("Callback listener started redirect_uri=%s", self.redirect_uri)
        return self

    def stop(self) -> None:
        """Idempotent; safe from any thread."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            server, thread, sock = self._server, self._thread, self._sock
        if server is not None:
            server.should_exit = True
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
        if sock is not None:
            sock.close()
        logger.info("Callback listener stopped on %s:%s", self.host, self.port)
