"""InspectorChannel / InspectorPool 对接本地 websocket 服务"""

import asyncio
import base64
import json

import pytest
from websockets.asyncio.server import serve

from tabwright.browser.inspector import InspectorChannel, InspectorPool
from tabwright.browser.state import Target
from tabwright.core.errors import ControlEndpointError, EvalError


class FakeInspector:
    """按 method 返回预设结果的 DevTools 协议服务端"""

    def __init__(self):
        self.received: list[dict] = []
        self.connections = 0
        self.replies = {
            "Page.captureScreenshot": {"data": base64.b64encode(b"\x89PNG fake").decode()},
            "DOM.getDocument": {"root": {"nodeId": 1}},
            "DOM.getOuterHTML": {"outerHTML": "<html><body>hi</body></html>"},
            "Network.getCookies": {"cookies": [{"name": "sid", "value": "1", "domain": "example.com", "path": "/"}]},
            "Network.setCookie": {"success": True},
            "Runtime.evaluate": {"result": {"type": "number", "value": 2}},
            "Emulation.setDeviceMetricsOverride": {},
        }

    async def handler(self, ws):
        self.connections += 1
        async for raw in ws:
            msg = json.loads(raw)
            self.received.append(msg)
            # 先推一个事件，确认客户端会忽略它
            await ws.send(json.dumps({"method": "Page.frameNavigated", "params": {}}))
            if msg["method"] == "Garbage.first":
                await ws.send("not json {")
            if msg["method"] == "Broken.method":
                await ws.send(json.dumps({"id": msg["id"], "error": {"code": -32601, "message": "not found"}}))
            elif msg["method"] == "Runtime.evaluate" and "throw" in msg["params"]["expression"]:
                await ws.send(json.dumps({"id": msg["id"], "result": {
                    "result": {"type": "object"},
                    "exceptionDetails": {"text": "Uncaught", "exception": {"description": "Error: nope"}},
                }}))
            else:
                await ws.send(json.dumps({"id": msg["id"], "result": self.replies.get(msg["method"], {})}))


@pytest.fixture
def fake_inspector():
    return FakeInspector()


def _port(server):
    return server.sockets[0].getsockname()[1]


class TestInspectorChannel:
    @pytest.mark.asyncio
    async def test_request_response(self, fake_inspector):
        async with serve(fake_inspector.handler, "127.0.0.1", 0) as server:
            channel = InspectorChannel(f"ws://127.0.0.1:{_port(server)}/devtools/page/T1", target_id="T1")
            await channel.open()
            try:
                result = await channel.send("Runtime.evaluate", {"expression": "1+1"})
                assert result["result"]["value"] == 2
                assert fake_inspector.received[0]["method"] == "Runtime.evaluate"
            finally:
                await channel.close()
            assert not channel.is_open

    @pytest.mark.asyncio
    async def test_protocol_error(self, fake_inspector):
        async with serve(fake_inspector.handler, "127.0.0.1", 0) as server:
            channel = InspectorChannel(f"ws://127.0.0.1:{_port(server)}/", target_id="T1")
            await channel.open()
            try:
                with pytest.raises(ControlEndpointError) as exc:
                    await channel.send("Broken.method")
                assert "not found" in str(exc.value)
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_malformed_frame_is_skipped(self, fake_inspector):
        async with serve(fake_inspector.handler, "127.0.0.1", 0) as server:
            channel = InspectorChannel(f"ws://127.0.0.1:{_port(server)}/", target_id="T1")
            await channel.open()
            try:
                assert await channel.send("Garbage.first") == {}
                assert channel.is_open
                result = await channel.send("Runtime.evaluate", {"expression": "1+1"})
                assert result["result"]["value"] == 2
            finally:
                await channel.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        channel = InspectorChannel("ws://127.0.0.1:9/devtools/page/T1", target_id="T1")
        with pytest.raises(ControlEndpointError):
            await channel.open()

    @pytest.mark.asyncio
    async def test_send_before_open(self):
        with pytest.raises(ControlEndpointError):
            await InspectorChannel("ws://127.0.0.1:9/").send("Page.enable")


class TestInspectorPool:
    @pytest.mark.asyncio
    async def test_raw_operations(self, fake_inspector, state):
        async with serve(fake_inspector.handler, "127.0.0.1", 0) as server:
            state.put_target(Target(id="T1", debug_endpoint=f"ws://127.0.0.1:{_port(server)}/devtools/page/T1"))
            pool = InspectorPool(state)
            try:
                assert await pool.screenshot("T1", format="png", full_page=True) == b"\x89PNG fake"
                shot = fake_inspector.received[-1]
                assert shot["params"]["captureBeyondViewport"] is True
                assert "quality" not in shot["params"]

                assert await pool.outer_html("T1") == "<html><body>hi</body></html>"
                assert (await pool.get_cookies("T1"))[0]["name"] == "sid"
                await pool.set_cookie("T1", {"name": "a", "value": "b", "url": "https://example.com"})
                assert await pool.evaluate("T1", "1+1") == 2
                await pool.set_viewport("T1", 1024, 768)
                assert fake_inspector.received[-1]["params"]["width"] == 1024

                with pytest.raises(EvalError) as exc:
                    await pool.evaluate("T1", "throw new Error('nope')")
                assert "nope" in str(exc.value)
            finally:
                await pool.close_all()

    @pytest.mark.asyncio
    async def test_channel_is_cached_and_closed_on_forget(self, fake_inspector, state):
        async with serve(fake_inspector.handler, "127.0.0.1", 0) as server:
            state.put_target(Target(id="T1", debug_endpoint=f"ws://127.0.0.1:{_port(server)}/"))
            pool = InspectorPool(state)
            first = await pool.channel("T1")
            assert await pool.channel("T1") is first

            state.forget("T1")
            await pool.close_all()
            assert not first.is_open

    @pytest.mark.asyncio
    async def test_concurrent_first_use_opens_one_channel(self, fake_inspector, state):
        async with serve(fake_inspector.handler, "127.0.0.1", 0) as server:
            state.put_target(Target(id="T1", debug_endpoint=f"ws://127.0.0.1:{_port(server)}/"))
            pool = InspectorPool(state)
            await asyncio.gather(
                pool.send("T1", "Emulation.setDeviceMetricsOverride"),
                pool.send("T1", "Page.captureScreenshot"),
            )
            channel = await pool.channel("T1")
            assert fake_inspector.connections == 1
            assert len(fake_inspector.received) == 2

            await pool.close_all()
            assert not channel.is_open

    def test_fallback_ws_url(self, state):
        pool = InspectorPool(state, host="localhost", port=19000)
        assert pool._ws_url("T7") == "ws://localhost:19000/devtools/page/T7"
