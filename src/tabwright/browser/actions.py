"""
动作描述

调用方传入的 JSON 使用 camelCase（doubleClick / startRef / timeMs ...），
Python 侧属性使用 snake_case，两种写法都接受。kind 不做枚举校验，
未知类型交给 ActionDispatcher 报 UnsupportedAction。
"""

from __future__ import annotations

import re
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..core.errors import MalformedAction


class ActionKind(str, Enum):
    CLICK = "click"
    TYPE = "type"
    PRESS = "press"
    HOVER = "hover"
    DRAG = "drag"
    SELECT = "select"
    FILL = "fill"
    WAIT = "wait"
    RESIZE = "resize"
    EVALUATE = "evaluate"
    CLOSE = "close"
    EMULATE_DEVICE = "emulateDevice"
    SET_GEOLOCATION = "setGeolocation"
    CLEAR_GEOLOCATION = "clearGeolocation"
    SET_TIMEZONE = "setTimezone"
    SET_HEADERS = "setHeaders"


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
        arbitrary_types_allowed=True,
    )


class FieldValue(_Model):
    """fill 动作中的一个字段"""

    ref: str | None = None
    value: str = ""


class ActionDescriptor(_Model):
    kind: str

    # 元素引用
    ref: str | None = None
    start_ref: str | None = None
    end_ref: str | None = None

    # 输入
    text: str | None = None
    key: str | None = None
    submit: bool = False
    slowly: bool = False

    # 点击
    button: str = "left"
    double_click: bool = False
    modifiers: list[str] | None = None

    # select / fill
    values: list[str] | None = None
    fields: list[FieldValue] | None = None

    # wait / resize
    time_ms: int | None = None
    width: int | None = None
    height: int | None = None

    # evaluate：JS 字符串，或以 page 为参数的 Python callable
    fn: str | Callable[..., Any] | None = None

    # 覆盖类动作
    device: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    timezone_id: str | None = None
    headers: dict[str, str] | None = None

    @classmethod
    def parse(cls, data: ActionDescriptor | dict) -> ActionDescriptor:
        if isinstance(data, ActionDescriptor):
            return data
        if not isinstance(data, dict):
            raise MalformedAction(f"action must be a mapping, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise MalformedAction(f"invalid action: {e.errors()[0].get('msg', e)}", action=data.get("kind")) from e


class Cookie(_Model):
    """DevTools Network.Cookie / Network.setCookie 参数"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    name: str
    value: str
    domain: str | None = None
    path: str | None = None
    url: str | None = None
    expires: float | None = None
    http_only: bool | None = None
    secure: bool | None = None
    same_site: str | None = None

    def to_protocol(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


_NUMERIC_REF = re.compile(r"^\d+$")
_ROLE_REF = re.compile(r"^e\d+$")


def ref_selector(ref: str) -> str:
    """元素引用 -> Playwright 选择器。

    纯数字按 aria-ref 属性处理，e<数字> 按快照中的角色引用处理，
    其它一律视为原始选择器。只是启发式，不保证正确。
    """
    if _NUMERIC_REF.match(ref):
        return f'[aria-ref="{ref}"]'
    if _ROLE_REF.match(ref):
        return f"aria-ref={ref}"
    return ref
