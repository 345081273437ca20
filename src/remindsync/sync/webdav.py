# src/remindsync/sync/webdav.py

"""
Minimal WebDAV client over httpx.

Only the primitive verbs the sync protocol needs:
PROPFIND (Depth: 0), HEAD, GET, PUT, DELETE.

Every request carries a bounded timeout; timeouts, connection errors and
unexpected statuses surface as TransportError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..errors import TransportError
from ..reminders.models import AppSettings

logger = logging.getLogger(__name__)

REMOTE_DB_NAME = "remindsync.db"
LOCK_FILE_NAME = "remindsync.lock"


@dataclass(slots=True, frozen=True)
class ConnectionCheck:
    ok: bool
    message: str
    status_code: int | None = None


def build_base_url(url: str, root: str) -> str:
    """Base URL with the configured root path appended (no trailing slash)."""
    base = url.strip().rstrip("/")
    root = root.strip()
    if root:
        if not root.startswith("/"):
            root = "/" + root
        base += root.rstrip("/")
    return base


def build_url(base: str, name: str) -> str:
    if not name:
        return base
    return f"{base.rstrip('/')}/{name.lstrip('/')}"


class WebDavClient:
    def __init__(
        self,
        base_url: str,
        *,
        username: str = "",
        password: str = "",
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        # Basic auth only when a username is configured.
        auth = httpx.BasicAuth(username, password) if username.strip() else None
        timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=read_timeout,
            pool=connect_timeout,
        )
        self._client = httpx.Client(auth=auth, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        connect_timeout: float = 5.0,
        read_timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> WebDavClient:
        return cls(
            build_base_url(settings.webdav_url, settings.webdav_root_path),
            username=settings.webdav_username,
            password=settings.webdav_password,
            connect_timeout=connect_timeout,
            read_timeout=read_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> WebDavClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def url(self, name: str) -> str:
        return build_url(self.base_url, name)

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {url} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

    # ---- verbs ----

    def test_connection(self) -> ConnectionCheck:
        resp = self._send("PROPFIND", self.base_url, headers={"Depth": "0"})
        code = resp.status_code
        if code in (200, 207):
            return ConnectionCheck(True, "connection ok", code)
        if code in (401, 403):
            return ConnectionCheck(False, "authentication failed", code)
        return ConnectionCheck(False, f"connection failed, status {code}", code)

    def exists(self, name: str) -> bool:
        resp = self._send("HEAD", self.url(name))
        if resp.status_code == 200:
            return True
        if resp.status_code == 404:
            return False
        if resp.status_code in (401, 403):
            raise TransportError(
                f"HEAD {name}: authentication failed", status_code=resp.status_code
            )
        # Not proof of absence: treating it as missing would trigger a first-sync upload.
        raise TransportError(
            f"HEAD {name} failed, status {resp.status_code}", status_code=resp.status_code
        )

    def get_bytes(self, name: str) -> bytes | None:
        """Body of `name`, or None when it does not exist."""
        resp = self._send("GET", self.url(name))
        if resp.status_code == 404:
            return None
        if not resp.is_success:
            raise TransportError(
                f"download of {name} failed, status {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp.content

    def download(self, name: str, target: Path) -> None:
        data = self.get_bytes(name)
        if data is None:
            raise TransportError(f"download of {name} failed: not found", status_code=404)
        target.write_bytes(data)

    def put_bytes(self, name: str, data: bytes, *, content_type: str) -> None:
        resp = self._send(
            "PUT", self.url(name), content=data, headers={"Content-Type": content_type}
        )
        if not resp.is_success:
            raise TransportError(
                f"upload of {name} failed, status {resp.status_code}",
                status_code=resp.status_code,
            )

    def upload(self, name: str, source: Path) -> None:
        self.put_bytes(name, source.read_bytes(), content_type="application/octet-stream")

    def delete(self, name: str) -> None:
        resp = self._send("DELETE", self.url(name))
        if resp.status_code == 404:
            return
        if not resp.is_success:
            raise TransportError(
                f"delete of {name} failed, status {resp.status_code}",
                status_code=resp.status_code,
            )
