"""Live tests for the subscription server lifecycle.

Each test runs a real server on an ephemeral loopback port against an
in-memory database.
"""

import base64
import json
import socket
import time
from pathlib import Path
from unittest.mock import patch

import pytest
import requests
import uvicorn

from database import Client, Link, init_test_db
from services import SettingError, SettingService
from subscription import Server, ServerError, ShutdownError
from subscription.network import bind_listener

DATA_DIR = Path(__file__).parent / "data"
CERT_FILE = DATA_DIR / "cert.pem"
KEY_FILE = DATA_DIR / "key.pem"


@pytest.fixture
def session_factory():
    engine, TestSession = init_test_db()
    with TestSession() as db:
        client = Client(sub_id="abc", email="alice", up=1, down=2, total=3)
        client.links.append(Link(position=0, uri="vless://id@{host}:443?type=tcp&security=none#x", remark="First"))
        client.links.append(Link(position=1, uri="trojan://pw@{host}:443#x", remark="Second"))
        db.add(client)
        db.commit()
    yield TestSession
    engine.dispose()


@pytest.fixture
def settings(session_factory):
    service = SettingService(session_factory)
    service.set_value("subEnable", True)
    service.set_value("subListen", "127.0.0.1")
    service.set_value("subPort", 0)
    service.set_value("subEncrypt", False)
    service.set_value("subShowInfo", False)
    return service


@pytest.fixture
def server(settings, session_factory):
    server = Server(settings, session_factory, shutdown_timeout=1)
    yield server
    server.stop()


def _url(server, path, scheme="http"):
    host, port = server.address[:2]
    return f"{scheme}://{host}:{port}{path}"


class TestStart:
    """Tests for Server.start."""

    def test_disabled_is_noop(self, settings, session_factory):
        settings.set_value("subEnable", False)
        server = Server(settings, session_factory)

        server.start()

        assert server.listener is None
        assert server.address is None
        assert not server.get_ctx().is_set()

    def test_serves_links(self, server):
        server.start()

        response = requests.get(_url(server, "/sub/abc"), timeout=5)

        assert response.status_code == 200
        links = response.text.splitlines()
        assert len(links) == 2
        assert links[0].startswith("vless://id@127.0.0.1:443")
        assert links[1].startswith("trojan://pw@127.0.0.1:443")
        assert response.headers["Subscription-Userinfo"] == "upload=1; download=2; total=3; expire=0"
        assert response.headers["Profile-Update-Interval"] == "12"

    def test_encrypted_links(self, server, settings):
        settings.set_value("subEncrypt", True)
        server.start()

        response = requests.get(_url(server, "/sub/abc"), timeout=5)

        assert base64.b64decode(response.text).decode("utf-8").count("\n") == 2

    def test_unknown_subscription(self, server):
        server.start()

        response = requests.get(_url(server, "/sub/nope"), timeout=5)

        assert response.status_code == 400
        assert response.text == "Error!"

    def test_settings_read_on_start(self, server, settings):
        settings.set_value("subPath", "/links/")
        server.start()

        assert requests.get(_url(server, "/links/abc"), timeout=5).status_code == 200
        assert requests.get(_url(server, "/sub/abc"), timeout=5).status_code == 404

    def test_json_disabled_by_default(self, server):
        server.start()

        assert requests.get(_url(server, "/json/abc"), timeout=5).status_code == 404

    def test_json_enabled(self, server, settings):
        settings.set_value("subJsonEnable", True)
        server.start()

        response = requests.get(_url(server, "/json/abc"), timeout=5)

        assert response.status_code == 200
        assert response.headers["Content-Type"].startswith("application/json")
        configs = json.loads(response.text)
        assert len(configs) == 1
        assert configs[0]["outbounds"][0]["settings"]["vnext"][0]["address"] == "127.0.0.1"

    def test_invalid_setting_binds_nothing(self, server, settings):
        settings.set_value("subEncrypt", "maybe")

        with pytest.raises(SettingError):
            server.start()

        assert server.listener is None
        assert server.http_server is None

    def test_port_in_use(self, server, settings):
        busy = bind_listener("127.0.0.1", 0)
        try:
            settings.set_value("subPort", busy.getsockname()[1])

            with pytest.raises(OSError):
                server.start()

            assert server.listener is None
        finally:
            busy.close()

    def test_serving_thread_dies_during_startup(self, server):
        ports = []

        def exit_at_once(self, sockets=None):
            ports.append(sockets[0].getsockname()[1])

        with patch.object(uvicorn.Server, "run", autospec=True, side_effect=exit_at_once):
            with pytest.raises(ServerError):
                server.start()

        assert server.listener is None
        assert server.http_server is None
        assert server.get_ctx().is_set()
        bind_listener("127.0.0.1", ports[0]).close()


class TestTls:
    """Tests for TLS and plaintext on the same port."""

    def test_https_and_redirect(self, server, settings):
        settings.set_value("subCertFile", str(CERT_FILE))
        settings.set_value("subKeyFile", str(KEY_FILE))
        server.start()

        secure = requests.get(_url(server, "/sub/abc", "https"), verify=False, timeout=5)
        plain = requests.get(_url(server, "/sub/abc?html=1"), allow_redirects=False, timeout=5)

        assert secure.status_code == 200
        assert secure.text.startswith("vless://")
        assert plain.status_code == 307
        assert plain.headers["Location"] == _url(server, "/sub/abc?html=1", "https")

    def test_bad_certificate_falls_back_to_http(self, server, settings, tmp_path):
        cert = tmp_path / "cert.pem"
        key = tmp_path / "key.pem"
        cert.write_text("not a certificate")
        key.write_text("not a key")
        settings.set_value("subCertFile", str(cert))
        settings.set_value("subKeyFile", str(key))

        server.start()

        assert requests.get(_url(server, "/sub/abc"), timeout=5).status_code == 200

    def test_cert_without_key_serves_http(self, server, settings):
        settings.set_value("subCertFile", str(CERT_FILE))
        server.start()

        assert requests.get(_url(server, "/sub/abc"), timeout=5).status_code == 200

    def test_stop_closes_idle_connection(self, server, settings):
        """A client that never sends a byte is disconnected on stop."""
        settings.set_value("subCertFile", str(CERT_FILE))
        settings.set_value("subKeyFile", str(KEY_FILE))
        server.start()
        connections = server.http_server.server_state.connections

        with socket.create_connection(server.address[:2], timeout=5) as client:
            deadline = time.monotonic() + 5
            while not connections and time.monotonic() < deadline:
                time.sleep(0.01)
            assert connections

            server.stop()

            assert client.recv(10) == b""


class TestStop:
    """Tests for Server.stop."""

    def test_stop_closes_listener(self, server):
        server.start()
        url = _url(server, "/sub/abc")

        server.stop()

        assert server.listener is None
        assert server.get_ctx().is_set()
        with pytest.raises(requests.ConnectionError):
            requests.get(url, timeout=2)

    def test_stop_twice(self, server):
        server.start()

        server.stop()
        server.stop()

        assert server.get_ctx().is_set()

    def test_stop_without_start(self, settings, session_factory):
        server = Server(settings, session_factory)

        server.stop()

        assert server.get_ctx().is_set()

    def test_close_error_is_reported(self, server):
        server.start()
        listener = server.listener

        class _BrokenListener:
            def close(self):
                listener.close()
                raise OSError("close failed")

        server.listener = _BrokenListener()

        with pytest.raises(ShutdownError) as excinfo:
            server.stop()

        assert isinstance(excinfo.value.errors[0], OSError)
        assert server.listener is None
