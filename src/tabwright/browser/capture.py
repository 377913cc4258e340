"""
EventCapture - 每个标签页的 console / network 事件缓冲

通过 page.on(...) 显式订阅，事件异步追加到 SessionState 中有上限的缓冲区
（超过 capture_buffer_size 时丢弃最旧的记录）。事件是异步到达的：触发动作后
立即读取不一定能看到全部记录，需要等待一小段时间。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .state import LogEntry, LogKind, SessionState

if TYPE_CHECKING:
    from .resolver import PageResolver

logger = logging.getLogger(__name__)


class EventCapture:
    def __init__(self, state: SessionState, resolver: PageResolver):
        self._state = state
        self._resolver = resolver

    # ── console ───────────────────────────────────────

    async def start_console_capture(self, target_id: str) -> None:
        page = await self._resolver.resolve(target_id, action="consoleCapture")
        if self._armed(target_id, "console", page):
            return

        def _on_console(msg: Any) -> None:
            self._state.append(target_id, LogEntry(
                kind="console", fields={"type": msg.type, "text": msg.text},
            ))

        self._state.buffer(target_id, "console")
        page.on("console", _on_console)
        self._state.set_subscription(target_id, "console", page, [("console", _on_console)])
        logger.info(f"[Capture] Console capture enabled for {target_id}")

    def get_console_logs(self, target_id: str, level: str | None = None) -> list[LogEntry]:
        logs = list(self._state.peek_buffer(target_id, "console") or ())
        if level:
            return [entry for entry in logs if entry.get("type") == level]
        return logs

    def clear_console_logs(self, target_id: str) -> None:
        self._state.clear_buffer(target_id, "console")
        logger.info(f"[Capture] Console logs cleared for {target_id}")

    # ── network ───────────────────────────────────────

    async def start_network_capture(self, target_id: str) -> None:
        page = await self._resolver.resolve(target_id, action="networkCapture")
        if self._armed(target_id, "network", page):
            return

        def _on_request(request: Any) -> None:
            self._state.append(target_id, LogEntry(
                kind="network", fields={"type": "request", "url": request.url, "method": request.method},
            ))

        def _on_response(response: Any) -> None:
            self._state.append(target_id, LogEntry(
                kind="network", fields={"type": "response", "url": response.url, "status": response.status},
            ))

        self._state.buffer(target_id, "network")
        page.on("request", _on_request)
        page.on("response", _on_response)
        self._state.set_subscription(
            target_id, "network", page, [("request", _on_request), ("response", _on_response)],
        )
        logger.info(f"[Capture] Network monitoring enabled for {target_id}")

    def get_network_logs(self, target_id: str, url_filter: str | None = None) -> list[LogEntry]:
        logs = list(self._state.peek_buffer(target_id, "network") or ())
        if url_filter:
            return [entry for entry in logs if url_filter in entry.get("url", "")]
        return logs

    def clear_network_logs(self, target_id: str) -> None:
        self._state.clear_buffer(target_id, "network")
        logger.info(f"[Capture] Network logs cleared for {target_id}")

    # ── 内部 ──────────────────────────────────────────

    def _armed(self, target_id: str, kind: LogKind, page: Any) -> bool:
        sub = self._state.get_subscription(target_id, kind)
        return sub is not None and sub.handle is page and not page.is_closed()
