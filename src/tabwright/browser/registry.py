"""
TargetRegistry - 标签页生命周期

控制端点是标签页是否存在的唯一依据：list_targets() 用 /json/list 的结果
替换已知集合；close_target() 只有在端点确认成功后才清理本地状态。
"""

from __future__ import annotations

import logging

from ..core.errors import TargetNotFound
from .control import ControlClient
from .state import PLACEHOLDER_TITLE, SessionState, Target

logger = logging.getLogger(__name__)


def _target_from_descriptor(data: dict) -> Target:
    return Target(
        id=data["id"],
        url=data.get("url", ""),
        title=data.get("title") or PLACEHOLDER_TITLE,
        debug_endpoint=data.get("webSocketDebuggerUrl"),
    )


class TargetRegistry:
    """通过 HTTP 控制端点枚举、创建、激活、关闭标签页。"""

    def __init__(self, state: SessionState, control: ControlClient):
        self._state = state
        self._control = control

    async def list_targets(self) -> list[Target]:
        """刷新并返回当前所有 page 类型的目标。"""
        self._state.require_running(action="list")

        descriptors = await self._control.list()
        seen: set[str] = set()
        for data in descriptors:
            if data.get("type") != "page" or not data.get("id"):
                continue
            target = _target_from_descriptor(data)
            known = self._state.get_target(target.id)
            if known and not target.debug_endpoint:
                target.debug_endpoint = known.debug_endpoint
            self._state.put_target(target)
            seen.add(target.id)

        for stale in self._state.target_ids() - seen:
            logger.info(f"[Registry] Target gone: {stale}")
            self._state.forget(stale)

        return self._state.targets()

    async def open_target(self, url: str) -> Target:
        """新建标签页，标题在页面加载前是占位符。"""
        self._state.require_running(action="open")

        url = url or "about:blank"
        logger.info(f"[Registry] Opening tab: {url}")
        data = await self._control.new(url)
        target = _target_from_descriptor(data)
        if not target.url:
            target.url = url
        self._state.put_target(target)
        return target

    async def activate_target(self, target_id: str) -> None:
        self._state.require_running(target_id=target_id, action="activate")

        logger.info(f"[Registry] Focusing tab: {target_id}")
        status = await self._control.activate(target_id)
        if status != 200:
            raise TargetNotFound(
                f"failed to activate tab: {status}", target_id=target_id, action="activate",
            )

    async def close_target(self, target_id: str) -> None:
        self._state.require_running(target_id=target_id, action="close")

        logger.info(f"[Registry] Closing tab: {target_id}")
        status = await self._control.close(target_id)
        if status != 200:
            raise TargetNotFound(
                f"failed to close tab: {status}", target_id=target_id, action="close",
            )
        self._state.forget(target_id)

    def get(self, target_id: str) -> Target | None:
        return self._state.get_target(target_id)

    def update_url(self, target_id: str, url: str) -> None:
        target = self._state.get_target(target_id)
        if target is not None:
            target.url = url
