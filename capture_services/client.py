"""Lightweight HTTP client for server monitoring endpoints.

The client keeps dependencies minimal by defaulting to the standard library
for HTTP requests, while allowing a drop-in HTTP client (such as
`fastapi.testclient.TestClient`) to be supplied for in-process testing.
"""
from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Dict


class MonitoringError(RuntimeError):
    """Raised when a monitoring endpoint cannot be read."""


@dataclass
class _Response:
    status_code: int
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if not self.content:
            return {}
        return json.loads(self.content)


class _UrllibClient:
    """Simple HTTP client backed by urllib to avoid third-party deps."""

    def __init__(self, timeout: float):
        self.timeout = timeout

    def request(self, method: str, url: str, *, headers: Dict[str, str] | None = None, params: Dict[str, Any] | None = None) -> _Response:
        if params:
            query = urllib.parse.urlencode(params, doseq=True)
            url = f"{url}?{query}"

        req = urllib.request.Request(url, headers=headers or {}, method=method.upper())
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return _Response(status_code=resp.getcode(), content=resp.read())
        except urllib.error.HTTPError as exc:
            return _Response(status_code=exc.code, content=exc.read())
        except (urllib.error.URLError, OSError) as exc:
            raise MonitoringError(f"GET {url} failed: {exc}") from exc


class MonitoringClient:
    """Read JSON and raw payloads from one server's monitoring port.

    Usage:
        client = MonitoringClient("http://localhost:8222", timeout=5)
        varz = client.get_json("/varz")
        heap = client.get_bytes("/debug/pprof/heap")
    """

    def __init__(self, base_url: str, *, timeout: float = 5.0, http_client: Any | None = None):
        self.base_url = base_url.rstrip("/")
        self.http = http_client or _UrllibClient(timeout)

    def __repr__(self) -> str:
        return f"MonitoringClient({self.base_url!r})"

    def get_json(self, path: str, params: Dict[str, Any] | None = None) -> Any:
        response = self._request(path, params)
        try:
            return json.loads(response.content) if response.content else {}
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MonitoringError(f"GET {self.base_url}{path} returned invalid JSON: {exc}") from exc

    def get_bytes(self, path: str, params: Dict[str, Any] | None = None) -> bytes:
        return self._request(path, params).content

    def _request(self, path: str, params: Dict[str, Any] | None) -> _Response:
        url = f"{self.base_url}{path}"
        response = self.http.request("GET", url, headers={"accept": "application/json"}, params=params)

        status = getattr(response, "status_code", 0)
        content = getattr(response, "content", b"")
        if isinstance(content, str):
            content = content.encode("utf-8")

        normalized = _Response(status_code=status, content=content)
        if normalized.status_code >= 400:
            raise MonitoringError(f"GET {url} failed ({normalized.status_code}): {normalized.text[:200]}")
        return normalized
