"""
ControlClient - DevTools HTTP 控制端点

    GET /json/version
    GET /json/list
    PUT /json/new?<url>
    GET /json/activate/<id>
    GET /json/close/<id>

传输层错误和非法 JSON 统一转成 ControlEndpointError；
activate / close 的非成功状态码由调用方转成 TargetNotFound。
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

import httpx

from ..core.errors import ControlEndpointError

logger = logging.getLogger(__name__)


class ControlClient:
    """对 /json/* 端点的薄封装。"""

    def __init__(self, base_url: str, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=self._timeout, transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, *, action: str, target_id: str | None = None) -> httpx.Response:
        try:
            response = await self._http().request(method, path)
        except httpx.HTTPError as e:
            logger.error(f"[Control] {method} {path} failed: {e}")
            raise ControlEndpointError(
                f"control endpoint {self.base_url} unreachable: {e}",
                action=action, target_id=target_id,
            ) from e
        logger.debug(f"[Control] {method} {path} -> {response.status_code}")
        return response

    @staticmethod
    def _json(response: httpx.Response, *, action: str, target_id: str | None = None) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"[Control] Failed to parse response: {response.text[:200]}")
            raise ControlEndpointError(
                f"malformed response from control endpoint: {e}",
                action=action, target_id=target_id,
            ) from e

    # ── 端点 ──────────────────────────────────────────

    async def version(self) -> dict:
        response = await self._request("GET", "/json/version", action="version")
        if response.status_code != 200:
            raise ControlEndpointError(f"/json/version returned {response.status_code}", action="version")
        data = self._json(response, action="version")
        if not isinstance(data, dict):
            raise ControlEndpointError("/json/version did not return an object", action="version")
        return data

    async def list(self) -> list[dict]:
        response = await self._request("GET", "/json/list", action="list")
        if response.status_code != 200:
            raise ControlEndpointError(f"/json/list returned {response.status_code}", action="list")
        data = self._json(response, action="list")
        if not isinstance(data, list):
            raise ControlEndpointError("/json/list did not return an array", action="list")
        return [t for t in data if isinstance(t, dict)]

    async def new(self, url: str) -> dict:
        path = f"/json/new?{urllib.parse.quote(url, safe='')}"
        response = await self._request("PUT", path, action="open")
        if not response.is_success:
            raise ControlEndpointError(f"/json/new returned {response.status_code}", action="open")
        data = self._json(response, action="open")
        if not isinstance(data, dict) or not data.get("id"):
            raise ControlEndpointError("/json/new response has no target id", action="open")
        return data

    async def activate(self, target_id: str) -> int:
        response = await self._request("GET", f"/json/activate/{target_id}", action="activate", target_id=target_id)
        return response.status_code

    async def close(self, target_id: str) -> int:
        response = await self._request("GET", f"/json/close/{target_id}", action="close", target_id=target_id)
        return response.status_code
