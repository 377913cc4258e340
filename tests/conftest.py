"""
测试替身

- FakeDevTools: 用 httpx.MockTransport 模拟 /json/* 控制端点，新建标签页时
  同时在 FakeBrowser 中创建对应的 FakePage（模拟 Playwright 观察到新标签页）
- FakePage / FakeContext / FakeBrowser: 只实现被测代码用到的 Playwright 接口
"""

import inspect
import itertools
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from tabwright.browser.state import SessionState
from tabwright.config import Settings


class FakeEmitter:
    def __init__(self):
        self._listeners: dict[str, list] = {}

    def on(self, event, listener):
        self._listeners.setdefault(event, []).append((listener, False))

    def once(self, event, listener):
        self._listeners.setdefault(event, []).append((listener, True))

    def remove_listener(self, event, listener):
        self._listeners[event] = [(f, o) for f, o in self._listeners.get(event, []) if f is not listener]

    def listeners(self, event):
        return [f for f, _ in self._listeners.get(event, [])]

    async def emit(self, event, *args):
        entries = list(self._listeners.get(event, []))
        self._listeners[event] = [(f, o) for f, o in entries if not o]
        for listener, _ in entries:
            result = listener(*args)
            if inspect.isawaitable(result):
                await result


class FakeLocator:
    def __init__(self, page, selector):
        self.page = page
        self.selector = selector

    def _record(self, name, *args, **kwargs):
        self.page.calls.append((name, self.selector, args, kwargs))
        error = self.page.fail_on.get(self.selector)
        if error is not None:
            raise error

    async def click(self, **kwargs):
        self._record("click", **kwargs)

    async def fill(self, value):
        self._record("fill", value)

    async def press(self, key):
        self._record("press", key)

    async def hover(self):
        self._record("hover")

    async def drag_to(self, other):
        self._record("drag_to", other.selector)

    async def select_option(self, values):
        self._record("select_option", values)
        return list(values)

    async def wait_for(self, timeout=None):
        self._record("wait_for", timeout=timeout)

    async def aria_snapshot(self):
        self._record("aria_snapshot")
        return f'- document "{self.page.url}"'


class FakePage(FakeEmitter):
    def __init__(self, url="about:blank", context=None):
        super().__init__()
        self.url = url
        self.context = context
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.eval_results: dict[str, object] = {"() => 1+1": 2}
        self._closed = False
        self.keyboard = SimpleNamespace(press=AsyncMock())
        self.set_viewport_size = AsyncMock()
        self.set_extra_http_headers = AsyncMock()
        self.wait_for_selector = AsyncMock()

    def __repr__(self):
        return f"<FakePage {self.url}>"

    def is_closed(self):
        return self._closed

    def locator(self, selector):
        return FakeLocator(self, selector)

    async def evaluate(self, expression):
        self.calls.append(("evaluate", expression, (), {}))
        if expression in self.fail_on:
            raise self.fail_on[expression]
        return self.eval_results.get(expression)

    async def goto(self, url, **kwargs):
        self.calls.append(("goto", url, (), kwargs))
        self.url = url

    async def close(self):
        if self._closed:
            return
        self._closed = True
        if self.context is not None and self in self.context.pages:
            self.context.pages.remove(self)
        await self.emit("close", self)


class FakeContext:
    def __init__(self):
        self.pages: list[FakePage] = []
        self.set_geolocation = AsyncMock()
        self.set_extra_http_headers = AsyncMock()
        self.cdp_session = SimpleNamespace(send=AsyncMock(return_value={}))
        self.new_cdp_session = AsyncMock(return_value=self.cdp_session)

    def new_page(self, url="about:blank"):
        page = FakePage(url, context=self)
        self.pages.append(page)
        return page


class FakeBrowser:
    def __init__(self, contexts=None):
        self.contexts = contexts if contexts is not None else [FakeContext()]

    @property
    def context(self):
        return self.contexts[0]


class FakeDevTools:
    """模拟 DevTools HTTP 控制端点。"""

    def __init__(self, browser: FakeBrowser | None = None, port: int = 19000):
        self.browser = browser or FakeBrowser()
        self.port = port
        self.targets: dict[str, dict] = {}
        self.pages: dict[str, FakePage] = {}
        self.requests: list[tuple[str, str]] = []
        self.unreachable = False
        self._ids = (f"T{i}" for i in itertools.count(1))

    def add_target(self, url: str, *, type: str = "page", with_page: bool = True) -> str:
        target_id = next(self._ids)
        self.targets[target_id] = {
            "id": target_id,
            "type": type,
            "url": url,
            "title": "",
            "webSocketDebuggerUrl": f"ws://localhost:{self.port}/devtools/page/{target_id}",
        }
        if with_page and type == "page":
            self.pages[target_id] = self.browser.context.new_page(url)
        return target_id

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        self.requests.append((request.method, path))

        if path == "/json/version":
            return httpx.Response(200, json={"Browser": "Chrome/131.0.0.0"})
        if path == "/json/list":
            return httpx.Response(200, json=list(self.targets.values()))
        if path == "/json/new" and request.method == "PUT":
            url = next(iter(request.url.params.keys()), "about:blank")
            target_id = self.add_target(url)
            return httpx.Response(200, json=self.targets[target_id])
        if path.startswith("/json/activate/"):
            target_id = path.rsplit("/", 1)[-1]
            if target_id not in self.targets:
                return httpx.Response(404, text=f"No such target id: {target_id}")
            return httpx.Response(200, text="Target activated")
        if path.startswith("/json/close/"):
            target_id = path.rsplit("/", 1)[-1]
            if target_id not in self.targets:
                return httpx.Response(404, text=f"No such target id: {target_id}")
            del self.targets[target_id]
            page = self.pages.pop(target_id, None)
            if page is not None:
                page._closed = True
                if page in page.context.pages:
                    page.context.pages.remove(page)
            return httpx.Response(200, text="Target is closing")
        return httpx.Response(404)


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        cdp_port=19000,
        settle_delay=0,
        download_dir=str(tmp_path / "downloads"),
        download_timeout=0.2,
        default_wait_ms=1000,
    )


@pytest.fixture
def browser():
    return FakeBrowser()


@pytest.fixture
def devtools(browser):
    return FakeDevTools(browser)


@pytest.fixture
def state():
    s = SessionState(buffer_size=50)
    s.running = True
    return s


@pytest.fixture
def inspector_mock():
    mock = MagicMock()
    mock.set_viewport = AsyncMock()
    return mock
