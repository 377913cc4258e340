"""
BrowserSession - 一个浏览器会话的生命周期与统一入口

同时持有两条控制通道：
- DevTools HTTP 控制端点 + 每个 target 的原始协议通道（标签页生命周期、截图、DOM、cookie）
- Playwright connect_over_cdp（元素定位、输入模拟、事件、上传下载）

浏览器进程本身由外部负责启动，这里只连接已在运行的实例。Playwright 连接失败时
会话降级为 DEGRADED：标签页和原始协议操作仍可用，需要页面句柄的操作抛 AutomationUnavailable。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from ..config import Settings
from ..config import settings as default_settings
from ..core.errors import ControlEndpointError, EvalError, ResolutionFailed
from .actions import ActionDescriptor, Cookie
from .capture import EventCapture
from .control import ControlClient
from .dispatcher import ActionDispatcher
from .inspector import InspectorPool
from .registry import TargetRegistry
from .resolver import PageResolver
from .state import LogEntry, SessionState, Target
from .transfer import TransferCoordinator

logger = logging.getLogger(__name__)


class BrowserState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    DEGRADED = "degraded"
    ERROR = "error"
    STOPPING = "stopping"


@dataclass
class Snapshot:
    """页面快照"""

    format: str  # "aria" | "html"
    content: str
    url: str

    def to_dict(self) -> dict:
        return {"format": self.format, "content": self.content, "url": self.url}


class BrowserSession:
    """会话状态机 + 各组件的组装与门面。"""

    def __init__(self, config: Settings | None = None, *, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config or default_settings
        self.state = BrowserState.IDLE

        self._state = SessionState(buffer_size=self.config.capture_buffer_size)
        self._control = ControlClient(self.config.control_url, timeout=self.config.control_timeout,
                                      transport=transport)
        self._inspector = InspectorPool(self._state, host=self.config.cdp_host, port=self.config.cdp_port)

        # Playwright 资源
        self._playwright: Any | None = None
        self._browser: Any | None = None

        self._startup_lock = asyncio.Lock()
        self._startup_errors: list[str] = []

        self.registry = TargetRegistry(self._state, self._control)
        self.resolver = PageResolver(
            self._state, self.registry, lambda: self._browser, settle_delay=self.config.settle_delay,
        )
        self.dispatcher = ActionDispatcher(
            self._state, self.resolver, self._inspector,
            devices_provider=self._devices, default_wait_ms=self.config.default_wait_ms,
        )
        self.capture = EventCapture(self._state, self.resolver)
        self.transfer = TransferCoordinator(
            self.resolver, self.config.download_path, download_timeout=self.config.download_timeout,
        )

    # ── 公共属性 ────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._state.running

    @property
    def automation_available(self) -> bool:
        return self._browser is not None

    @property
    def session_state(self) -> SessionState:
        return self._state

    @property
    def inspector(self) -> InspectorPool:
        return self._inspector

    async def __aenter__(self) -> BrowserSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # ── 启动 / 停止 ────────────────────────────────────

    async def start(self) -> None:
        async with self._startup_lock:
            if self._state.running:
                return

            self.state = BrowserState.STARTING
            self._startup_errors.clear()
            logger.info(f"[Browser] Connecting to {self.config.control_url}")

            try:
                version = await self._control.version()
            except ControlEndpointError as e:
                self._startup_errors.append(str(e))
                self.state = BrowserState.ERROR
                logger.error(f"[Browser] Control endpoint unavailable: {e}")
                raise

            self._state.running = True
            logger.info(f"[Browser] Control endpoint ready ({version.get('Browser', 'unknown browser')})")

            if await self._attach_playwright():
                self.state = BrowserState.READY
            else:
                self.state = BrowserState.DEGRADED
                logger.warning("[Browser] Actions will not be available")

    async def _attach_playwright(self) -> bool:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await asyncio.wait_for(
                self._playwright.chromium.connect_over_cdp(self.config.control_url),
                timeout=self.config.connect_timeout,
            )
        except Exception as e:
            self._startup_errors.append(f"connect_over_cdp: {type(e).__name__}: {e}")
            logger.warning(f"[Browser] Playwright connection failed: {e}", exc_info=True)
            await self._cleanup_playwright()
            return False

        logger.info(f"[Browser] Playwright connected (contexts: {len(self._browser.contexts)})")
        return True

    async def stop(self) -> None:
        async with self._startup_lock:
            prev = self.state
            self.state = BrowserState.STOPPING

            await self._inspector.close_all()
            await self._cleanup_playwright()
            try:
                await self._control.aclose()
            except Exception as e:
                logger.warning(f"[Browser] Error closing control client: {e}")

            self._state.clear()
            self._state.running = False
            self.state = BrowserState.IDLE
            if prev in (BrowserState.READY, BrowserState.DEGRADED):
                logger.info("[Browser] Session stopped")

    async def _cleanup_playwright(self) -> None:
        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"[Browser] Error closing Playwright browser: {e}")
            self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"[Browser] Error stopping Playwright: {e}")
            self._playwright = None

    def _devices(self) -> dict:
        return self._playwright.devices if self._playwright else {}

    async def status(self) -> dict:
        return {
            "running": self._state.running,
            "state": self.state.value,
            "cdp_port": self.config.cdp_port,
            "tab_count": len(self._state.targets()),
            "automation": self.automation_available,
            "errors": list(self._startup_errors),
        }

    # ── 标签页 ──────────────────────────────────────────

    async def list_tabs(self) -> list[Target]:
        return await self.registry.list_targets()

    async def open_tab(self, url: str) -> Target:
        return await self.registry.open_target(url)

    async def focus_tab(self, target_id: str) -> None:
        await self.registry.activate_target(target_id)

    async def close_tab(self, target_id: str) -> None:
        await self.registry.close_target(target_id)

    async def resolve(self, target_id: str) -> Any:
        return await self.resolver.resolve(target_id)

    async def navigate(self, target_id: str, url: str) -> None:
        self._state.require_running(target_id=target_id, action="navigate")
        logger.info(f"[Browser] Navigating {target_id} to {url}")

        if self.automation_available:
            page = await self.resolver.resolve(target_id, action="navigate")
            await page.goto(url, wait_until="domcontentloaded", timeout=self.config.navigation_timeout_ms)
        else:
            await self._inspector.navigate(target_id, url)
        self.registry.update_url(target_id, url)

    # ── 原始协议操作 ──────────────────────────────────

    async def screenshot(self, target_id: str, format: str = "png", quality: int = 90,
                         full_page: bool = False) -> bytes:
        self._state.require_running(target_id=target_id, action="screenshot")
        logger.info(f"[Browser] Taking screenshot of {target_id}")
        return await self._inspector.screenshot(target_id, format=format, quality=quality, full_page=full_page)

    async def snapshot(self, target_id: str, format: str = "aria") -> Snapshot:
        self._state.require_running(target_id=target_id, action="snapshot")

        if format == "aria" and self.automation_available:
            try:
                page = await self.resolver.resolve(target_id, action="snapshot")
                content = await page.locator("body").aria_snapshot()
                return Snapshot(format="aria", content=content, url=page.url)
            except (ResolutionFailed, PlaywrightError) as e:
                logger.warning(f"[Browser] ARIA snapshot failed for {target_id}, falling back to HTML: {e}")

        html = await self._inspector.outer_html(target_id)
        target = self._state.get_target(target_id)
        return Snapshot(format="html", content=html, url=target.url if target else "unknown")

    async def get_cookies(self, target_id: str) -> list[Cookie]:
        self._state.require_running(target_id=target_id, action="getCookies")
        return [Cookie.model_validate(c) for c in await self._inspector.get_cookies(target_id)]

    async def set_cookie(self, target_id: str, cookie: Cookie | dict) -> None:
        self._state.require_running(target_id=target_id, action="setCookie")
        if not isinstance(cookie, Cookie):
            cookie = Cookie.model_validate(cookie)
        await self._inspector.set_cookie(target_id, cookie.to_protocol())

    async def evaluate(self, target_id: str, expression: str) -> Any:
        self._state.require_running(target_id=target_id, action="evaluate")
        if not expression:
            raise EvalError("expression is required", target_id=target_id, action="evaluate")
        logger.debug(f"[Browser] Evaluating on {target_id}: {expression[:80]}")
        return await self._inspector.evaluate(target_id, expression)

    # ── 动作 / 事件 / 传输 ────────────────────────────

    async def act(self, target_id: str, action: ActionDescriptor | dict) -> Any:
        return await self.dispatcher.dispatch(target_id, action)

    async def start_console_capture(self, target_id: str) -> None:
        await self.capture.start_console_capture(target_id)

    def get_console_logs(self, target_id: str, level: str | None = None) -> list[LogEntry]:
        return self.capture.get_console_logs(target_id, level)

    def clear_console_logs(self, target_id: str) -> None:
        self.capture.clear_console_logs(target_id)

    async def start_network_capture(self, target_id: str) -> None:
        await self.capture.start_network_capture(target_id)

    def get_network_logs(self, target_id: str, url_filter: str | None = None) -> list[LogEntry]:
        return self.capture.get_network_logs(target_id, url_filter)

    def clear_network_logs(self, target_id: str) -> None:
        self.capture.clear_network_logs(target_id)

    async def arm_upload(self, target_id: str, file_paths: list[str]) -> None:
        await self.transfer.arm_upload(target_id, file_paths)

    async def await_download(self, target_id: str, save_as: str | None = None) -> Path:
        return await self.transfer.await_download(target_id, save_as)
