"""核心模块"""

from .errors import (
    ActionFailed,
    ActionTimeout,
    AutomationUnavailable,
    BrowserDriverError,
    ControlEndpointError,
    DownloadTimeout,
    EvalError,
    MalformedAction,
    MissingReference,
    ResolutionFailed,
    SessionNotRunning,
    TargetNotFound,
    UnsupportedAction,
)

__all__ = [
    "BrowserDriverError",
    "SessionNotRunning",
    "ControlEndpointError",
    "TargetNotFound",
    "ResolutionFailed",
    "AutomationUnavailable",
    "MalformedAction",
    "MissingReference",
    "UnsupportedAction",
    "EvalError",
    "ActionFailed",
    "ActionTimeout",
    "DownloadTimeout",
]
