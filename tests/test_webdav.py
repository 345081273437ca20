# tests/test_webdav.py

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from remindsync.errors import TransportError
from remindsync.reminders.models import AppSettings
from remindsync.sync.webdav import WebDavClient, build_base_url, build_url

from .fakes import BASE_URL, FakeWebDavServer


def test_build_base_url_joins_root_path() -> None:
    assert build_base_url("https://h/dav/", "") == "https://h/dav"
    assert build_base_url("https://h/dav", "reminders/") == "https://h/dav/reminders"
    assert build_base_url(" https://h/dav ", "/a/b") == "https://h/dav/a/b"
    assert build_url("https://h/dav/", "/x.db") == "https://h/dav/x.db"


def test_connection_ok_and_auth_failure() -> None:
    server = FakeWebDavServer(username="me", password="secret")

    with server.client() as good:
        check = good.test_connection()
    assert check.ok
    assert check.status_code == 207
    assert server.requests[-1] == ("PROPFIND", httpx.URL(BASE_URL).path)

    with server.client(password="wrong") as bad:
        check = bad.test_connection()
    assert not check.ok
    assert check.status_code == 401
    assert "authentication" in check.message


def test_no_auth_header_without_username(server: FakeWebDavServer) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return server.handler(request)

    client = WebDavClient(BASE_URL, transport=httpx.MockTransport(handler))
    client.exists("x")
    client.close()
    assert "Authorization" not in seen[0].headers


def test_verbs_against_fake_server(server: FakeWebDavServer, tmp_path: Path) -> None:
    source = tmp_path / "up.db"
    source.write_bytes(b"sqlite bytes")

    with server.client() as client:
        assert client.exists("remindsync.db") is False
        assert client.get_bytes("remindsync.db") is None

        client.upload("remindsync.db", source)
        assert server.get("remindsync.db") == b"sqlite bytes"
        assert client.exists("remindsync.db") is True

        target = tmp_path / "down.db"
        client.download("remindsync.db", target)
        assert target.read_bytes() == b"sqlite bytes"

        client.delete("remindsync.db")
        client.delete("remindsync.db")  # missing is fine
        assert server.get("remindsync.db") is None

        with pytest.raises(TransportError):
            client.download("remindsync.db", target)


def test_server_errors_raise_transport_error(server: FakeWebDavServer) -> None:
    server.fail_methods = {"PUT", "GET", "HEAD"}
    with server.client() as client:
        with pytest.raises(TransportError) as excinfo:
            client.put_bytes("a", b"x", content_type="text/plain")
        assert excinfo.value.status_code == 500
        with pytest.raises(TransportError):
            client.get_bytes("a")
        with pytest.raises(TransportError):
            client.exists("a")


def test_network_errors_raise_transport_error(server: FakeWebDavServer) -> None:
    server.offline = True
    with server.client() as client, pytest.raises(TransportError):
        client.test_connection()


def test_from_settings_uses_root_path(server: FakeWebDavServer) -> None:
    settings = AppSettings(
        device_id="d",
        webdav_enabled=True,
        webdav_url="https://dav.example.test/files/",
        webdav_root_path="me",
    )
    with server.client_factory(settings) as client:
        assert client.base_url == BASE_URL
        client.put_bytes("remindsync.lock", b"{}", content_type="application/json")
    assert server.get("remindsync.lock") == b"{}"
