"""
SessionState - 单个浏览器会话的全部可变状态

包含三张表：
- targets:   targetId -> Target（由 TargetRegistry 维护）
- bindings:  targetId -> PageBinding（由 PageResolver 维护）
- buffers:   targetId -> console / network 日志缓冲区（由 EventCapture 维护）

所有组件都通过这里的访问器读写状态，不持有自己的全局表，
这样多个会话可以并存，生命周期也清晰。

并发模型：所有访问都在同一个事件循环上进行，访问器内部没有 await，
因此 forget() 对后续查找是原子的。
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from ..core.errors import SessionNotRunning

logger = logging.getLogger(__name__)

PLACEHOLDER_TITLE = "Loading..."

LogKind = Literal["console", "network"]


@dataclass
class Target:
    """控制端点看到的一个标签页"""

    id: str
    url: str = ""
    title: str = PLACEHOLDER_TITLE
    debug_endpoint: str | None = None  # webSocketDebuggerUrl

    def to_dict(self) -> dict:
        return {
            "targetId": self.id,
            "url": self.url,
            "title": self.title,
            "webSocketDebuggerUrl": self.debug_endpoint,
        }


@dataclass
class PageBinding:
    """Target 与 Playwright Page 的绑定"""

    target_id: str
    handle: Any
    bound_at: float = field(default_factory=time.time)

    @property
    def is_open(self) -> bool:
        try:
            return not self.handle.is_closed()
        except Exception:
            return False


@dataclass(frozen=True)
class LogEntry:
    """console / network 事件记录，只追加不修改"""

    kind: LogKind
    fields: dict = field(default_factory=dict)
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)

    def to_dict(self) -> dict:
        return {"kind": self.kind, **self.fields, "timestamp": self.timestamp}


@dataclass
class _Subscription:
    """已挂到某个 handle 上的事件监听，forget 时用于摘除"""

    handle: Any
    listeners: list[tuple[str, Callable]] = field(default_factory=list)

    def detach(self) -> None:
        for event, listener in self.listeners:
            try:
                self.handle.remove_listener(event, listener)
            except Exception as e:
                logger.debug(f"[State] remove_listener({event}) failed: {e}")
        self.listeners.clear()


class SessionState:
    """单个会话的 targets / bindings / buffers。"""

    def __init__(self, buffer_size: int = 1000):
        self.buffer_size = buffer_size
        self.running: bool = False

        self._targets: dict[str, Target] = {}
        self._bindings: dict[str, PageBinding] = {}
        self._buffers: dict[tuple[str, LogKind], deque[LogEntry]] = {}
        self._subscriptions: dict[tuple[str, LogKind], _Subscription] = {}
        self._forget_hooks: list[Callable[[str], None]] = []

    # ── 会话 ──────────────────────────────────────────

    def require_running(self, *, target_id: str | None = None, action: str | None = None) -> None:
        if not self.running:
            raise SessionNotRunning(target_id=target_id, action=action)

    def on_forget(self, hook: Callable[[str], None]) -> None:
        """注册 forget(target_id) 时的回调（如关闭 inspector 通道）。"""
        self._forget_hooks.append(hook)

    # ── targets ───────────────────────────────────────

    def get_target(self, target_id: str) -> Target | None:
        return self._targets.get(target_id)

    def put_target(self, target: Target) -> None:
        self._targets[target.id] = target

    def targets(self) -> list[Target]:
        return list(self._targets.values())

    def target_ids(self) -> set[str]:
        return set(self._targets)

    # ── bindings ──────────────────────────────────────

    def get_binding(self, target_id: str) -> PageBinding | None:
        return self._bindings.get(target_id)

    def bind(self, target_id: str, handle: Any) -> PageBinding:
        binding = PageBinding(target_id=target_id, handle=handle)
        self._bindings[target_id] = binding
        return binding

    def unbind(self, target_id: str) -> PageBinding | None:
        """移除绑定，同时摘除挂在该 handle 上的事件监听。"""
        binding = self._bindings.pop(target_id, None)
        for kind in ("console", "network"):
            sub = self._subscriptions.pop((target_id, kind), None)
            if sub:
                sub.detach()
        return binding

    def bound_handles(self, exclude: str | None = None) -> list[Any]:
        return [b.handle for tid, b in self._bindings.items() if tid != exclude]

    def binding_count(self) -> int:
        return len(self._bindings)

    def target_for_handle(self, handle: Any) -> str | None:
        for tid, binding in self._bindings.items():
            if binding.handle is handle:
                return tid
        return None

    # ── buffers ───────────────────────────────────────

    def buffer(self, target_id: str, kind: LogKind) -> deque[LogEntry]:
        key = (target_id, kind)
        buf = self._buffers.get(key)
        if buf is None:
            buf = deque(maxlen=self.buffer_size)
            self._buffers[key] = buf
        return buf

    def peek_buffer(self, target_id: str, kind: LogKind) -> deque[LogEntry] | None:
        return self._buffers.get((target_id, kind))

    def append(self, target_id: str, entry: LogEntry) -> None:
        buf = self._buffers.get((target_id, entry.kind))
        if buf is not None:
            buf.append(entry)

    def clear_buffer(self, target_id: str, kind: LogKind) -> None:
        buf = self._buffers.get((target_id, kind))
        if buf is not None:
            buf.clear()

    def get_subscription(self, target_id: str, kind: LogKind) -> _Subscription | None:
        return self._subscriptions.get((target_id, kind))

    def set_subscription(self, target_id: str, kind: LogKind, handle: Any,
                         listeners: list[tuple[str, Callable]]) -> None:
        old = self._subscriptions.pop((target_id, kind), None)
        if old:
            old.detach()
        self._subscriptions[(target_id, kind)] = _Subscription(handle, list(listeners))

    # ── 生命周期 ──────────────────────────────────────

    def drop_handle_state(self, target_id: str) -> None:
        """handle 已关闭：移除绑定和日志缓冲区，保留 Target。"""
        self.unbind(target_id)
        self._buffers.pop((target_id, "console"), None)
        self._buffers.pop((target_id, "network"), None)

    def forget(self, target_id: str) -> Target | None:
        """目标已关闭：一次性移除 Target、绑定和日志缓冲区。"""
        target = self._targets.pop(target_id, None)
        self.drop_handle_state(target_id)
        for hook in self._forget_hooks:
            hook(target_id)
        return target

    def clear(self) -> None:
        for target_id in list(set(self._targets) | set(self._bindings)):
            self.forget(target_id)
        self._buffers.clear()
        self._subscriptions.clear()
