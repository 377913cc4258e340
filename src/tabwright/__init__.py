"""
tabwright - 通过 DevTools 控制端点和 Playwright 同时驱动一个正在运行的 Chromium

两套协议之间没有共享的标识符，tabwright 把它们对齐成每个标签页一个会话，
并在其上提供统一的动作接口。
"""

from .browser import ActionDescriptor, BrowserSession, BrowserState
from .config import Settings, settings

__version__ = "0.3.0"

__all__ = [
    "BrowserSession",
    "BrowserState",
    "ActionDescriptor",
    "Settings",
    "settings",
    "__version__",
]
