"""
浏览器控制模块

核心组件：
- BrowserSession: 会话生命周期（状态机）与统一入口
- TargetRegistry: 通过 DevTools HTTP 控制端点管理标签页
- PageResolver: target -> Playwright Page 的启发式绑定
- ActionDispatcher: 把动作描述翻译成 Playwright / DevTools 调用
- EventCapture: 每个标签页的 console / network 缓冲
- TransferCoordinator: 文件上传与下载
"""

from .actions import ActionDescriptor, ActionKind, Cookie, FieldValue, ref_selector
from .capture import EventCapture
from .control import ControlClient
from .dispatcher import ActionDispatcher
from .inspector import InspectorChannel, InspectorPool
from .manager import BrowserSession, BrowserState, Snapshot
from .registry import TargetRegistry
from .resolver import MATCHERS, PageResolver
from .state import LogEntry, PageBinding, SessionState, Target
from .transfer import TransferCoordinator

__all__ = [
    "BrowserSession",
    "BrowserState",
    "Snapshot",
    "SessionState",
    "Target",
    "PageBinding",
    "LogEntry",
    "ControlClient",
    "InspectorChannel",
    "InspectorPool",
    "TargetRegistry",
    "PageResolver",
    "MATCHERS",
    "ActionDescriptor",
    "ActionKind",
    "FieldValue",
    "Cookie",
    "ref_selector",
    "ActionDispatcher",
    "EventCapture",
    "TransferCoordinator",
]
