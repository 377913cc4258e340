"""
核心异常类

所有异常都继承 BrowserDriverError，并携带 target_id / action，
方便调用方定位是哪个标签页上的哪个动作失败。
"""

from __future__ import annotations


class BrowserDriverError(Exception):
    """tabwright 所有异常的基类。

    Attributes:
        target_id: 出错的标签页（可能为空）
        action: 出错的动作类型（可能为空）
    """

    def __init__(self, message: str = "", *, target_id: str | None = None, action: str | None = None):
        self.message = message
        self.target_id = target_id
        self.action = action
        super().__init__(self._format())

    def _format(self) -> str:
        if self.action and self.target_id:
            return f"[{self.action} @ {self.target_id}] {self.message}"
        if self.target_id:
            return f"[{self.target_id}] {self.message}"
        if self.action:
            return f"[{self.action}] {self.message}"
        return self.message


class SessionNotRunning(BrowserDriverError):
    """浏览器未连接。"""

    def __init__(self, message: str = "Browser not running", **kwargs):
        super().__init__(message, **kwargs)


class ControlEndpointError(BrowserDriverError):
    """DevTools HTTP 控制端点或 websocket 通道失败。"""


class TargetNotFound(BrowserDriverError):
    """控制端点报告目标不存在。"""


class ResolutionFailed(BrowserDriverError):
    """无法为目标绑定 Playwright 页面。"""


class AutomationUnavailable(ResolutionFailed):
    """Playwright 未连接，需要页面句柄的操作不可用。"""

    def __init__(self, message: str = "Playwright not connected, actions are unavailable", **kwargs):
        super().__init__(message, **kwargs)


class MalformedAction(BrowserDriverError):
    """动作描述不合法。"""


class MissingReference(MalformedAction):
    """动作缺少必需的元素引用或参数。"""


class UnsupportedAction(MalformedAction):
    """未知的动作类型。"""


class EvalError(BrowserDriverError):
    """页面内执行的表达式抛出异常。"""


class ActionFailed(BrowserDriverError):
    """Playwright 执行动作失败（非超时）。"""


class ActionTimeout(BrowserDriverError):
    """等待条件在超时前未满足。"""


class DownloadTimeout(ActionTimeout):
    """超时时间内没有发生下载事件。"""
