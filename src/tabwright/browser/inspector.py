"""
InspectorChannel - 单个标签页的原始 DevTools 协议通道

直接连到 Target 的 webSocketDebuggerUrl，按 id 匹配请求和响应，事件直接丢弃。
通道按 target 缓存在 InspectorPool 中；通过通道设置的 Emulation 覆盖在通道
打开期间一直生效，目标关闭时通道随之关闭。
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any

import websockets
from websockets.asyncio.client import ClientConnection, connect

from ..core.errors import ControlEndpointError, EvalError
from .state import SessionState

logger = logging.getLogger(__name__)


class InspectorChannel:
    """一个 websocket 连接上的 DevTools 协议请求/响应。"""

    def __init__(self, ws_url: str, target_id: str | None = None):
        self.ws_url = ws_url
        self.target_id = target_id
        self._ws: ClientConnection | None = None
        self._next_id = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._reader: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def open(self) -> None:
        try:
            self._ws = await connect(self.ws_url, max_size=None)
        except (OSError, websockets.exceptions.WebSocketException) as e:
            raise ControlEndpointError(
                f"failed to open inspector channel {self.ws_url}: {e}", target_id=self.target_id,
            ) from e
        self._reader = asyncio.create_task(self._listen())
        logger.debug(f"[Inspector] Channel open: {self.ws_url}")

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"[Inspector] Error closing channel: {e}")
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        self._fail_pending(ControlEndpointError("inspector channel closed", target_id=self.target_id))

    async def send(self, method: str, params: dict | None = None) -> dict:
        if self._ws is None:
            raise ControlEndpointError("inspector channel not open", target_id=self.target_id, action=method)

        self._next_id += 1
        msg_id = self._next_id
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future

        try:
            await self._ws.send(json.dumps({"id": msg_id, "method": method, "params": params or {}}))
        except websockets.exceptions.WebSocketException as e:
            self._pending.pop(msg_id, None)
            raise ControlEndpointError(
                f"inspector send failed: {e}", target_id=self.target_id, action=method,
            ) from e
        return await future

    async def _listen(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    data = json.loads(raw)
                except ValueError as e:
                    logger.debug(f"[Inspector] Dropping malformed frame from {self.ws_url}: {e}")
                    continue
                msg_id = data.get("id")
                if msg_id is None:
                    continue
                future = self._pending.pop(msg_id, None)
                if future is None or future.done():
                    continue
                if "error" in data:
                    error = data["error"]
                    future.set_exception(ControlEndpointError(
                        f"protocol error {error.get('code')}: {error.get('message', 'unknown')}",
                        target_id=self.target_id,
                    ))
                else:
                    future.set_result(data.get("result", {}))
        except websockets.exceptions.ConnectionClosed:
            logger.info(f"[Inspector] Channel closed by browser: {self.ws_url}")
        finally:
            self._fail_pending(ControlEndpointError("inspector channel closed", target_id=self.target_id))

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()


class InspectorPool:
    """按 target 缓存 InspectorChannel，并提供原始协议层面的页面操作。"""

    def __init__(self, state: SessionState, host: str = "localhost", port: int = 9222):
        self._state = state
        self._host = host
        self._port = port
        self._channels: dict[str, InspectorChannel] = {}
        self._open_locks: dict[str, asyncio.Lock] = {}
        self._closing: set[asyncio.Task] = set()
        state.on_forget(self.discard)

    def _ws_url(self, target_id: str) -> str:
        target = self._state.get_target(target_id)
        if target and target.debug_endpoint:
            return target.debug_endpoint
        return f"ws://{self._host}:{self._port}/devtools/page/{target_id}"

    async def channel(self, target_id: str) -> InspectorChannel:
        channel = self._channels.get(target_id)
        if channel is not None and channel.is_open:
            return channel

        # 同一 target 同时只允许一个连接在建立
        lock = self._open_locks.setdefault(target_id, asyncio.Lock())
        async with lock:
            channel = self._channels.get(target_id)
            if channel is not None and channel.is_open:
                return channel
            if channel is not None:
                await channel.close()
            channel = InspectorChannel(self._ws_url(target_id), target_id=target_id)
            await channel.open()
            self._channels[target_id] = channel
            return channel

    async def send(self, target_id: str, method: str, params: dict | None = None) -> dict:
        channel = await self.channel(target_id)
        return await channel.send(method, params)

    def discard(self, target_id: str) -> None:
        """forget 回调：后台关闭该 target 的通道。"""
        self._open_locks.pop(target_id, None)
        channel = self._channels.pop(target_id, None)
        if channel is None:
            return
        try:
            task = asyncio.get_running_loop().create_task(channel.close())
        except RuntimeError:
            return
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def close_all(self) -> None:
        channels = list(self._channels.values())
        self._channels.clear()
        self._open_locks.clear()
        for channel in channels:
            await channel.close()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    # ── 原始协议操作 ──────────────────────────────────

    async def screenshot(self, target_id: str, format: str = "png", quality: int = 90,
                         full_page: bool = False) -> bytes:
        params: dict[str, Any] = {
            "format": format,
            "fromSurface": True,
            "captureBeyondViewport": full_page,
        }
        if format == "jpeg":
            params["quality"] = quality
        result = await self.send(target_id, "Page.captureScreenshot", params)
        return base64.b64decode(result.get("data", ""))

    async def outer_html(self, target_id: str) -> str:
        doc = await self.send(target_id, "DOM.getDocument", {"depth": -1})
        node_id = doc["root"]["nodeId"]
        result = await self.send(target_id, "DOM.getOuterHTML", {"nodeId": node_id})
        return result.get("outerHTML", "")

    async def get_cookies(self, target_id: str) -> list[dict]:
        result = await self.send(target_id, "Network.getCookies")
        return result.get("cookies", [])

    async def set_cookie(self, target_id: str, cookie: dict) -> None:
        result = await self.send(target_id, "Network.setCookie", cookie)
        if result.get("success") is False:
            raise ControlEndpointError(
                f"browser rejected cookie {cookie.get('name')!r}", target_id=target_id, action="setCookie",
            )

    async def evaluate(self, target_id: str, expression: str) -> Any:
        result = await self.send(target_id, "Runtime.evaluate", {
            "expression": expression,
            "returnByValue": True,
            "awaitPromise": True,
        })
        if "exceptionDetails" in result:
            details = result["exceptionDetails"]
            text = details.get("exception", {}).get("description") or details.get("text", "evaluation failed")
            raise EvalError(text, target_id=target_id, action="evaluate")
        return result.get("result", {}).get("value")

    async def navigate(self, target_id: str, url: str) -> None:
        result = await self.send(target_id, "Page.navigate", {"url": url})
        if result.get("errorText"):
            raise ControlEndpointError(result["errorText"], target_id=target_id, action="navigate")

    async def set_viewport(self, target_id: str, width: int, height: int) -> None:
        await self.send(target_id, "Emulation.setDeviceMetricsOverride", {
            "width": width,
            "height": height,
            "deviceScaleFactor": 0,
            "mobile": False,
        })
