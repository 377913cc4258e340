"""
PageResolver - 把 DevTools target 绑定到 Playwright Page

两套协议之间没有共享的标识符，所以绑定靠启发式规则。规则按顺序求值，
第一个命中的生效（顺序本身就是约定）：

1. 已有绑定且 handle 仍打开 → 直接返回
2. 已有绑定但 handle 已关闭 → 移除绑定，继续
3. 等待 settle_delay，让 Playwright 观察到刚创建的标签页，然后枚举所有 context 的 page
4. MATCHERS 依次尝试：
   - url:    Target 最近一次已知 URL 恰好匹配一个未绑定 page
   - single: 全局只有一个 page 且还没有任何绑定
   - recent: 最新创建且未绑定到其它 target 的 page
5. 都不命中 → ResolutionFailed

已知限制：两个标签页在任一个稳定前以相同 URL 打开时，只有一个能正确绑定；
需要精确对应时调用方应串行创建标签页。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..core.errors import AutomationUnavailable, ResolutionFailed
from .state import SessionState, Target

if TYPE_CHECKING:
    from .registry import TargetRegistry

logger = logging.getLogger(__name__)


@dataclass
class Candidates:
    """一次解析时看到的所有 page"""

    handles: list[Any] = field(default_factory=list)  # 按创建顺序
    bound: list[Any] = field(default_factory=list)  # 已绑定到其它 target
    binding_count: int = 0

    def is_bound(self, handle: Any) -> bool:
        return any(handle is b for b in self.bound)

    def unbound(self) -> list[Any]:
        return [h for h in self.handles if not self.is_bound(h)]


Matcher = Callable[[Target, Candidates], Any | None]


def match_by_url(target: Target, candidates: Candidates) -> Any | None:
    if not target.url:
        return None
    matches = [h for h in candidates.unbound() if h.url == target.url]
    if len(matches) == 1:
        return matches[0]
    return None


def match_single_handle(target: Target, candidates: Candidates) -> Any | None:
    if len(candidates.handles) == 1 and candidates.binding_count == 0:
        return candidates.handles[0]
    return None


def match_most_recent_unbound(target: Target, candidates: Candidates) -> Any | None:
    unbound = candidates.unbound()
    return unbound[-1] if unbound else None


MATCHERS: tuple[tuple[str, Matcher], ...] = (
    ("url", match_by_url),
    ("single", match_single_handle),
    ("recent", match_most_recent_unbound),
)


def open_handles(browser: Any) -> list[Any]:
    """枚举所有 context 中仍打开的 page（按创建顺序）。"""
    handles = []
    for context in browser.contexts:
        for page in context.pages:
            if not page.is_closed():
                handles.append(page)
    return handles


class PageResolver:
    """targetId -> Playwright Page，结果缓存在 SessionState 中。"""

    def __init__(
        self,
        state: SessionState,
        registry: TargetRegistry,
        browser_provider: Callable[[], Any | None],
        settle_delay: float = 0.5,
        matchers: tuple[tuple[str, Matcher], ...] = MATCHERS,
    ):
        self._state = state
        self._registry = registry
        self._browser_provider = browser_provider
        self._settle_delay = settle_delay
        self._matchers = matchers

    async def resolve(self, target_id: str, *, action: str | None = None) -> Any:
        self._state.require_running(target_id=target_id, action=action)

        browser = self._browser_provider()
        if browser is None:
            raise AutomationUnavailable(target_id=target_id, action=action)

        handle = self._cached(target_id)
        if handle is not None:
            return handle

        if self._state.get_target(target_id) is None:
            await self._registry.list_targets()
            if self._state.get_target(target_id) is None:
                raise ResolutionFailed(f"unknown target {target_id}", target_id=target_id, action=action)

        await asyncio.sleep(self._settle_delay)

        # settle 期间可能已被并发的 resolve 绑定，或目标已被关闭
        handle = self._cached(target_id)
        if handle is not None:
            return handle
        target = self._state.get_target(target_id)
        if target is None:
            raise ResolutionFailed(f"target {target_id} was closed", target_id=target_id, action=action)

        candidates = Candidates(
            handles=open_handles(browser),
            bound=self._state.bound_handles(exclude=target_id),
            binding_count=self._state.binding_count(),
        )
        for name, matcher in self._matchers:
            handle = matcher(target, candidates)
            if handle is not None:
                self._bind(target_id, handle, rule=name)
                return handle

        raise ResolutionFailed(
            f"no Playwright page found for target {target_id} ({len(candidates.handles)} open pages)",
            target_id=target_id, action=action,
        )

    def _cached(self, target_id: str) -> Any | None:
        binding = self._state.get_binding(target_id)
        if binding is None:
            return None
        if binding.is_open:
            return binding.handle
        logger.info(f"[Resolver] Binding for {target_id} is closed, evicting")
        self._state.drop_handle_state(target_id)
        return None

    def _bind(self, target_id: str, handle: Any, *, rule: str) -> None:
        self._state.bind(target_id, handle)
        logger.info(f"[Resolver] Bound {target_id} -> {handle.url} (rule={rule})")

        def _on_close(*_args: Any) -> None:
            binding = self._state.get_binding(target_id)
            if binding is not None and binding.handle is handle:
                logger.info(f"[Resolver] Page for {target_id} closed, dropping binding and logs")
                self._state.drop_handle_state(target_id)

        handle.once("close", _on_close)

    def evict(self, target_id: str) -> None:
        self._state.drop_handle_state(target_id)
