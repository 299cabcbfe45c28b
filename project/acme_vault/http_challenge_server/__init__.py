import logging
import threading
from typing import Optional

from werkzeug.serving import BaseWSGIServer
from werkzeug.serving import WSGIRequestHandler
from werkzeug.serving import make_server

from acme_vault.errors import ListenerBindError
from acme_vault.http_challenge_server.server import ChallengeSession
from acme_vault.http_challenge_server.server import ChallengeSessions
from acme_vault.http_challenge_server.server import challenge_path
from acme_vault.http_challenge_server.server import create_app
from acme_vault.http_challenge_server.server import key_authorization

__all__ = ["ProviderServer", "challenge_path", "key_authorization"]

logger = logging.getLogger(__name__)


class _RequestHandler(WSGIRequestHandler):
    # No keep-alive, closing the listener must not leave idle connections behind
    protocol_version = "HTTP/1.0"


class ProviderServer:
    """Serves http-01 key authorizations on a single listener.

    The listener is bound and served from a background thread as soon as the
    server is constructed; challenges can then be presented and cleaned up
    while it runs.

    Parameters
    ----------
    iface : str
        The interface to listen on. An empty string listens on all of them.
    port : str
        The port to listen on, "80" when empty. "0" picks a free port.

    Raises
    ------
    ListenerBindError
        When the listener can't be bound, e.g. because the port is taken.
    """

    def __init__(self, iface: str = "", port: str = ""):
        self.iface = iface
        self.port = port or "80"
        self.sessions = ChallengeSessions()
        self._ready: dict[str, threading.Event] = {}
        self._done = threading.Event()

        app = create_app(self.sessions)
        try:
            self._server: Optional[BaseWSGIServer] = make_server(
                self.iface or "0.0.0.0",
                int(self.port),
                app,
                threaded=True,
                request_handler=_RequestHandler,
            )
        # werkzeug reports a failed bind by calling sys.exit(1)
        except (OSError, SystemExit) as e:
            raise ListenerBindError(
                f"Could not start HTTP server for challenge on {self.get_address()}",
                subject=self.get_address(),
            ) from e

        # Let in-flight requests finish when the listener is closed instead
        # of abandoning their daemon threads
        self._server.daemon_threads = False
        self.port = str(self._server.server_port)

        self._thread = threading.Thread(target=self._serve, args=(self._server,), daemon=True)
        self._thread.start()
        logger.debug(f"Challenge server listening on {self.get_address()}")

    def _serve(self, server: BaseWSGIServer) -> None:
        try:
            server.serve_forever()
        except Exception:
            logger.exception("Challenge server stopped unexpectedly")
        finally:
            self._done.set()

    def get_address(self) -> str:
        if ":" in self.iface:
            return f"[{self.iface}]:{self.port}"
        return f"{self.iface}:{self.port}"

    def present(self, domain: str, token: str, key_auth: str) -> threading.Event:
        """Start answering challenge_path(token) with key_auth for domain.

        The route is registered from another thread. Wait on the returned
        event (or call wait_ready) before asking the authority to validate.
        """
        ready = threading.Event()
        self._ready[token] = ready

        def register():
            self.sessions.add(ChallengeSession(domain=domain, token=token, key_auth=key_auth))
            logger.debug(f"[{domain}] Serving {challenge_path(token)}")
            ready.set()

        threading.Thread(target=register, daemon=True).start()
        return ready

    def wait_ready(self, token: str, timeout: Optional[float] = None) -> bool:
        ready = self._ready.get(token)
        if ready is None:
            return False
        return ready.wait(timeout)

    def clean_up(self, domain: str, token: str, key_auth: str) -> None:
        """Remove the challenge and shut the listener down.

        Blocks until in-flight requests are answered and the serving thread
        is gone, so nothing is served after this returns.
        """
        ready = self._ready.pop(token, None)
        if ready is not None:
            # Don't let a late registration revive the session
            ready.wait()
        self.sessions.remove(token)

        if self._server is None:
            return

        server, self._server = self._server, None
        server.shutdown()
        self._done.wait()
        server.server_close()
        self._thread.join()
        logger.debug(f"[{domain}] Challenge server on {self.get_address()} stopped")
