"""Tests for the http-01 challenge server, over real sockets on localhost."""

import socket
from unittest.mock import patch

import pytest
import requests

from acme_vault.errors import ListenerBindError
from acme_vault.http_challenge_server import ProviderServer
from acme_vault.http_challenge_server import challenge_path
from acme_vault.http_challenge_server import key_authorization
from acme_vault.http_challenge_server.server import ChallengeSession
from acme_vault.jws import create_jwk_thumbprint
from acme_vault.keys import KeyType
from acme_vault.keys import generate_private_key

DOMAIN = "example.com"
TOKEN = "tok1"
KEY_AUTH = "key1"


@pytest.fixture()
def server():
    server = ProviderServer("127.0.0.1", "0")
    yield server
    server.clean_up(DOMAIN, TOKEN, KEY_AUTH)


def _get(server: ProviderServer, path: str, host: str, method: str = "GET") -> requests.Response:
    return requests.request(
        method,
        f"http://{server.get_address()}{path}",
        headers={"Host": host},
        timeout=5,
    )


class TestHelpers:
    def test_challenge_path(self):
        assert challenge_path("abc") == "/.well-known/acme-challenge/abc"

    def test_key_authorization(self):
        key = generate_private_key(KeyType.EC256)
        assert key_authorization("abc", key) == f"abc.{create_jwk_thumbprint(key)}"

    @pytest.mark.parametrize(
        "host, expected",
        [
            ("example.com", True),
            ("EXAMPLE.com", True),
            ("example.com:80", True),
            ("example.com.", True),
            ("example.com.evil.org", False),
            ("other.org", False),
            ("", False),
        ],
    )
    def test_session_host_matching(self, host, expected):
        session = ChallengeSession(domain=DOMAIN, token=TOKEN, key_auth=KEY_AUTH)
        assert session.matches(host) is expected


class TestProviderServer:
    def test_liveness_before_any_challenge(self, server):
        response = _get(server, "/", DOMAIN)
        assert response.status_code == 200
        assert response.text == "OK"
        assert response.headers["Content-Type"].startswith("text/plain")

    @patch("acme_vault.http_challenge_server.threading.Thread")
    @patch("acme_vault.http_challenge_server.make_server")
    def test_default_port(self, make_server, thread_cls):
        make_server.return_value.server_port = 80

        server = ProviderServer("", "")

        host, port = make_server.call_args.args[:2]
        assert (host, port) == ("0.0.0.0", 80)
        assert server.get_address() == ":80"
        thread_cls.return_value.start.assert_called_once()

    def test_ipv6_address(self):
        server = ProviderServer.__new__(ProviderServer)
        server.iface, server.port = "::1", "5002"
        assert server.get_address() == "[::1]:5002"

    def test_address_reports_bound_port(self, server):
        host, port = server.get_address().rsplit(":", 1)
        assert host == "127.0.0.1"
        assert int(port) > 0

    def test_serves_key_authorization(self, server):
        assert server.present(DOMAIN, TOKEN, KEY_AUTH).wait(5)

        response = _get(server, challenge_path(TOKEN), DOMAIN)
        assert response.status_code == 200
        assert response.text == KEY_AUTH
        assert response.headers["Content-Type"].startswith("text/plain")

    def test_foreign_host_gets_fallback(self, server):
        server.present(DOMAIN, TOKEN, KEY_AUTH).wait(5)

        response = _get(server, challenge_path(TOKEN), "other.org")
        assert response.status_code == 200
        assert response.text == "TEST"

    def test_host_prefix_does_not_match(self, server):
        server.present(DOMAIN, TOKEN, KEY_AUTH).wait(5)

        response = _get(server, challenge_path(TOKEN), "example.com.evil.org")
        assert response.text == "TEST"

    def test_non_get_gets_fallback(self, server):
        server.present(DOMAIN, TOKEN, KEY_AUTH).wait(5)

        response = _get(server, challenge_path(TOKEN), DOMAIN, method="POST")
        assert response.status_code == 200
        assert response.text == "TEST"

    def test_unknown_token_gets_liveness(self, server):
        server.present(DOMAIN, TOKEN, KEY_AUTH).wait(5)

        response = _get(server, challenge_path("other-token"), DOMAIN)
        assert response.text == "OK"

    def test_several_domains(self, server):
        server.present(DOMAIN, TOKEN, KEY_AUTH)
        server.present("www.example.com", "tok2", "key2")
        assert server.wait_ready(TOKEN, 5)
        assert server.wait_ready("tok2", 5)

        assert _get(server, challenge_path(TOKEN), DOMAIN).text == KEY_AUTH
        assert _get(server, challenge_path("tok2"), "www.example.com").text == "key2"
        assert _get(server, challenge_path("tok2"), DOMAIN).text == "TEST"

    def test_wait_ready_unknown_token(self, server):
        assert server.wait_ready("never-presented", 0.1) is False

    def test_clean_up_refuses_connections(self):
        server = ProviderServer("127.0.0.1", "0")
        server.present(DOMAIN, TOKEN, KEY_AUTH).wait(5)
        address = server.get_address()
        assert _get(server, challenge_path(TOKEN), DOMAIN).text == KEY_AUTH

        server.clean_up(DOMAIN, TOKEN, KEY_AUTH)

        with pytest.raises(requests.ConnectionError):
            requests.get(f"http://{address}{challenge_path(TOKEN)}", timeout=5)
        assert len(server.sessions) == 0

    def test_clean_up_twice(self):
        server = ProviderServer("127.0.0.1", "0")
        server.clean_up(DOMAIN, TOKEN, KEY_AUTH)
        server.clean_up(DOMAIN, TOKEN, KEY_AUTH)

    def test_bind_failure(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen()
            port = str(taken.getsockname()[1])

            with pytest.raises(ListenerBindError) as exc_info:
                ProviderServer("127.0.0.1", port)

        assert exc_info.value.subject == f"127.0.0.1:{port}"
