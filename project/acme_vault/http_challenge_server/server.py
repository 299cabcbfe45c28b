import logging
import threading
from dataclasses import dataclass
from typing import Optional

from flask import Flask
from flask import Response
from flask import request

from acme_vault.jws import create_jwk_thumbprint
from acme_vault.keys import PrivateKey

logger = logging.getLogger(__name__)

CHALLENGE_PATH_PREFIX = "/.well-known/acme-challenge/"


def challenge_path(token: str) -> str:
    """The path the authority requests for http-01 (RFC 8555 Section 8.3)."""
    return CHALLENGE_PATH_PREFIX + token


def key_authorization(token: str, key: PrivateKey) -> str:
    return f"{token}.{create_jwk_thumbprint(key)}"


def _hostname(host_header: str) -> str:
    """Strip the port, brackets and trailing dot off a Host header value."""
    host = host_header.strip().lower()
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    return host.rstrip(".")


@dataclass
class ChallengeSession:
    domain: str
    token: str
    key_auth: str

    def matches(self, host_header: str) -> bool:
        return _hostname(host_header) == _hostname(self.domain)


class ChallengeSessions:
    """Token to session table, shared between the thread presenting
    challenges and the server threads answering them."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: dict[str, ChallengeSession] = {}

    def add(self, session: ChallengeSession) -> None:
        with self._lock:
            self._sessions[session.token] = session

    def remove(self, token: str) -> Optional[ChallengeSession]:
        with self._lock:
            return self._sessions.pop(token, None)

    def get(self, token: str) -> Optional[ChallengeSession]:
        with self._lock:
            return self._sessions.get(token)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def create_app(sessions: ChallengeSessions) -> Flask:
    app = Flask(__name__)

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def alive(path: str) -> Response:
        return Response(b"OK", mimetype="text/plain")

    @app.route(CHALLENGE_PATH_PREFIX + "<token>", methods=["GET", "HEAD", "POST", "PUT", "DELETE"])
    def http_challenge(token: str) -> Response:
        """The http-01 challenge endpoint. Returns the key authorization when
        a GET for an active token carries the session's domain as Host."""
        session = sessions.get(token)
        if session is None:
            return alive(request.path)

        if request.method == "GET" and session.matches(request.host):
            logger.info(f"[{session.domain}] Served key authentication")
            return Response(session.key_auth, mimetype="text/plain")

        logger.warning(
            f"Received request for domain {request.host} with method {request.method} "
            "but the domain did not match any challenge. Please ensure you are "
            "passing the HOST header properly."
        )
        return Response(b"TEST", mimetype="text/plain")

    return app
