"""
ActionDispatcher - 统一的动作分发

dispatch(target_id, descriptor) 先校验动作（未知类型、缺少引用时不做任何协议调用），
再解析 Playwright Page 并执行。resize 只需要原始 DevTools 协议，不解析 page。

Playwright 的 TimeoutError 转成 ActionTimeout，其它 Playwright Error 转成 ActionFailed
（evaluate 转成 EvalError），异常都带上动作类型和 target id。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..core.errors import (
    ActionFailed,
    ActionTimeout,
    BrowserDriverError,
    EvalError,
    MalformedAction,
    MissingReference,
    UnsupportedAction,
)
from .actions import ActionDescriptor, ActionKind, ref_selector

if TYPE_CHECKING:
    from .inspector import InspectorPool
    from .resolver import PageResolver
    from .state import SessionState

logger = logging.getLogger(__name__)

_DEFAULT_WIDTH = 1280
_DEFAULT_HEIGHT = 720
_SLOW_KEY_DELAY_MS = 100

# 需要 ref 的动作
_REF_REQUIRED = {ActionKind.CLICK, ActionKind.TYPE, ActionKind.HOVER, ActionKind.SELECT}

# 不需要解析 page 的动作
_RAW_PROTOCOL = {ActionKind.RESIZE}


class ActionDispatcher:
    def __init__(
        self,
        state: SessionState,
        resolver: PageResolver,
        inspector: InspectorPool,
        devices_provider: Callable[[], dict] | None = None,
        default_wait_ms: int = 30000,
    ):
        self._state = state
        self._resolver = resolver
        self._inspector = inspector
        self._devices_provider = devices_provider or (lambda: {})
        self._default_wait_ms = default_wait_ms

        self._handlers: dict[ActionKind, Callable[[str, Any, ActionDescriptor], Awaitable[Any]]] = {
            ActionKind.CLICK: self._click,
            ActionKind.TYPE: self._type,
            ActionKind.PRESS: self._press,
            ActionKind.HOVER: self._hover,
            ActionKind.DRAG: self._drag,
            ActionKind.SELECT: self._select,
            ActionKind.FILL: self._fill,
            ActionKind.WAIT: self._wait,
            ActionKind.RESIZE: self._resize,
            ActionKind.EVALUATE: self._evaluate,
            ActionKind.CLOSE: self._close,
            ActionKind.EMULATE_DEVICE: self._emulate_device,
            ActionKind.SET_GEOLOCATION: self._set_geolocation,
            ActionKind.CLEAR_GEOLOCATION: self._clear_geolocation,
            ActionKind.SET_TIMEZONE: self._set_timezone,
            ActionKind.SET_HEADERS: self._set_headers,
        }

    async def dispatch(self, target_id: str, descriptor: ActionDescriptor | dict) -> Any:
        action = ActionDescriptor.parse(descriptor)
        kind = self._kind(target_id, action)
        self._validate(target_id, kind, action)
        self._state.require_running(target_id=target_id, action=kind.value)

        logger.info(f"[Dispatch] {kind.value} on {target_id}" + (f" ref={action.ref}" if action.ref else ""))

        page = None
        if kind not in _RAW_PROTOCOL and not (kind == ActionKind.PRESS and not action.key):
            page = await self._resolver.resolve(target_id, action=kind.value)

        try:
            return await self._handlers[kind](target_id, page, action)
        except PlaywrightTimeoutError as e:
            raise ActionTimeout(str(e), target_id=target_id, action=kind.value) from e
        except PlaywrightError as e:
            if kind == ActionKind.EVALUATE:
                raise EvalError(str(e), target_id=target_id, action=kind.value) from e
            raise ActionFailed(str(e), target_id=target_id, action=kind.value) from e

    # ── 校验 ──────────────────────────────────────────

    @staticmethod
    def _kind(target_id: str, action: ActionDescriptor) -> ActionKind:
        try:
            return ActionKind(action.kind)
        except ValueError:
            raise UnsupportedAction(
                f"unknown action kind: {action.kind}", target_id=target_id, action=action.kind,
            ) from None

    @staticmethod
    def _validate(target_id: str, kind: ActionKind, action: ActionDescriptor) -> None:
        def missing(what: str) -> MissingReference:
            return MissingReference(f"{kind.value} action requires {what}", target_id=target_id, action=kind.value)

        if kind in _REF_REQUIRED and not action.ref:
            raise missing("ref")
        if kind == ActionKind.DRAG and not (action.start_ref and action.end_ref):
            raise missing("startRef and endRef")
        if kind == ActionKind.EVALUATE and not action.fn:
            raise missing("fn")
        if kind == ActionKind.EMULATE_DEVICE and not action.device:
            raise missing("device")
        if kind == ActionKind.SET_GEOLOCATION and (action.latitude is None or action.longitude is None):
            raise missing("latitude and longitude")
        if kind == ActionKind.SET_TIMEZONE and not action.timezone_id:
            raise missing("timezoneId")
        if kind == ActionKind.SET_HEADERS and action.headers is None:
            raise missing("headers")

    # ── 输入类 ────────────────────────────────────────

    async def _click(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        await page.locator(ref_selector(action.ref)).click(
            button=action.button,
            click_count=2 if action.double_click else 1,
            modifiers=action.modifiers or [],
        )
        return _result(action, target_id, ref=action.ref)

    async def _type(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        locator = page.locator(ref_selector(action.ref))
        await locator.fill(action.text or "")
        if action.submit:
            await locator.press("Enter")
        return _result(action, target_id, ref=action.ref, submitted=action.submit)

    async def _press(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        if not action.key:
            logger.debug(f"[Dispatch] press without key on {target_id}, nothing to do")
            return _result(action, target_id, key=None)
        await page.keyboard.press(action.key, delay=_SLOW_KEY_DELAY_MS if action.slowly else 0)
        return _result(action, target_id, key=action.key)

    async def _hover(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        await page.locator(ref_selector(action.ref)).hover()
        return _result(action, target_id, ref=action.ref)

    async def _drag(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        source = page.locator(ref_selector(action.start_ref))
        await source.drag_to(page.locator(ref_selector(action.end_ref)))
        return _result(action, target_id, startRef=action.start_ref, endRef=action.end_ref)

    async def _select(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        values = action.values or []
        selected = await page.locator(ref_selector(action.ref)).select_option(values)
        return _result(action, target_id, ref=action.ref, selected=selected)

    async def _fill(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        """逐个字段填写，单个字段失败只记录，不中断整批。"""
        filled: list[str] = []
        failed: list[dict] = []
        for field in action.fields or []:
            if not field.ref:
                failed.append({"ref": None, "error": "field requires ref"})
                continue
            try:
                await page.locator(ref_selector(field.ref)).fill(field.value)
                filled.append(field.ref)
            except PlaywrightError as e:
                logger.warning(f"[Dispatch] fill {field.ref} on {target_id} failed: {e}")
                failed.append({"ref": field.ref, "error": str(e)})
        logger.info(f"[Dispatch] Filled {len(filled)}/{len(action.fields or [])} fields on {target_id}")
        return _result(action, target_id, filled=filled, failed=failed)

    # ── 等待 / 视口 ───────────────────────────────────

    async def _wait(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        timeout = action.time_ms or self._default_wait_ms
        if action.text:
            await page.wait_for_selector(f"text={action.text}", timeout=timeout)
            return _result(action, target_id, text=action.text)
        if action.ref:
            await page.locator(ref_selector(action.ref)).wait_for(timeout=timeout)
            return _result(action, target_id, ref=action.ref)
        if action.time_ms:
            await asyncio.sleep(action.time_ms / 1000)
            return _result(action, target_id, waitedMs=action.time_ms)
        logger.debug(f"[Dispatch] wait without condition on {target_id}, nothing to do")
        return _result(action, target_id)

    async def _resize(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        width = action.width or _DEFAULT_WIDTH
        height = action.height or _DEFAULT_HEIGHT
        await self._inspector.set_viewport(target_id, width, height)
        return _result(action, target_id, width=width, height=height)

    # ── 页面 ──────────────────────────────────────────

    async def _evaluate(self, target_id: str, page: Any, action: ActionDescriptor) -> Any:
        fn = action.fn
        if callable(fn):
            try:
                value = fn(page)
                if inspect.isawaitable(value):
                    value = await value
            except (BrowserDriverError, PlaywrightError):
                raise
            except Exception as e:
                raise EvalError(str(e), target_id=target_id, action=action.kind) from e
            return value
        return await page.evaluate(fn)

    async def _close(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        await page.close()
        self._state.forget(target_id)
        logger.info(f"[Dispatch] Closed page for {target_id}")
        return _result(action, target_id)

    # ── 覆盖类 ────────────────────────────────────────

    async def _emulate_device(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        descriptor = self._devices_provider().get(action.device)
        if not descriptor:
            raise MalformedAction(
                f"unknown device: {action.device}", target_id=target_id, action=action.kind,
            )
        if descriptor.get("viewport"):
            await page.set_viewport_size(descriptor["viewport"])
        if descriptor.get("user_agent"):
            await page.context.set_extra_http_headers({"User-Agent": descriptor["user_agent"]})
        return _result(action, target_id, device=action.device)

    async def _set_geolocation(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        location = {
            "latitude": action.latitude,
            "longitude": action.longitude,
            "accuracy": action.accuracy or 0,
        }
        await page.context.set_geolocation(location)
        return _result(action, target_id, **location)

    async def _clear_geolocation(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        await page.context.set_geolocation(None)
        return _result(action, target_id)

    async def _set_timezone(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        session = await page.context.new_cdp_session(page)
        await session.send("Emulation.setTimezoneOverride", {"timezoneId": action.timezone_id})
        return _result(action, target_id, timezoneId=action.timezone_id)

    async def _set_headers(self, target_id: str, page: Any, action: ActionDescriptor) -> dict:
        await page.set_extra_http_headers(action.headers)
        return _result(action, target_id, headers=sorted(action.headers))


def _result(action: ActionDescriptor, target_id: str, **extra: Any) -> dict:
    return {"kind": action.kind, "targetId": target_id, **extra}
