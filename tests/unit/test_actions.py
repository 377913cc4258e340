"""ActionDescriptor 解析、Cookie 模型、元素引用解析"""

import pytest

from tabwright.browser.actions import ActionDescriptor, ActionKind, Cookie, ref_selector
from tabwright.core.errors import MalformedAction


class TestActionDescriptor:
    def test_camel_case_keys(self):
        action = ActionDescriptor.parse({
            "kind": "click",
            "ref": "12",
            "doubleClick": True,
            "modifiers": ["Shift"],
        })
        assert action.kind == "click"
        assert action.double_click is True
        assert action.modifiers == ["Shift"]

    def test_snake_case_keys_accepted(self):
        action = ActionDescriptor.parse({"kind": "drag", "start_ref": "1", "end_ref": "2"})
        assert (action.start_ref, action.end_ref) == ("1", "2")

    def test_fields_and_time(self):
        action = ActionDescriptor.parse({
            "kind": "fill",
            "fields": [{"ref": "3", "value": "alice"}, {"ref": "4"}],
            "timeMs": 500,
        })
        assert action.fields[0].value == "alice"
        assert action.fields[1].value == ""
        assert action.time_ms == 500

    def test_unknown_kind_is_not_rejected_here(self):
        assert ActionDescriptor.parse({"kind": "bogus"}).kind == "bogus"

    def test_missing_kind_is_malformed(self):
        with pytest.raises(MalformedAction):
            ActionDescriptor.parse({"ref": "1"})

    def test_non_mapping_is_malformed(self):
        with pytest.raises(MalformedAction):
            ActionDescriptor.parse(["click"])

    def test_callable_fn(self):
        fn = lambda page: page.url  # noqa: E731
        action = ActionDescriptor.parse({"kind": "evaluate", "fn": fn})
        assert action.fn is fn

    def test_descriptor_is_frozen(self):
        action = ActionDescriptor.parse({"kind": "press", "key": "Enter"})
        with pytest.raises(Exception):
            action.key = "Tab"

    def test_parse_passes_through_instance(self):
        action = ActionDescriptor(kind="close")
        assert ActionDescriptor.parse(action) is action

    def test_override_fields(self):
        action = ActionDescriptor.parse({"kind": "setTimezone", "timezoneId": "Europe/Berlin"})
        assert action.timezone_id == "Europe/Berlin"
        assert ActionKind(action.kind) is ActionKind.SET_TIMEZONE


class TestRefSelector:
    def test_numeric_ref_is_aria_ref_attribute(self):
        assert ref_selector("12") == '[aria-ref="12"]'

    def test_role_ref(self):
        assert ref_selector("e12") == "aria-ref=e12"

    def test_anything_else_is_raw_selector(self):
        assert ref_selector("#submit") == "#submit"
        assert ref_selector("em.note") == "em.note"


class TestCookie:
    def test_protocol_round_trip_uses_camel_case(self):
        cookie = Cookie.model_validate({
            "name": "sid", "value": "abc", "domain": ".example.com", "path": "/",
            "expires": 1700000000, "httpOnly": True, "sameSite": "Lax", "priority": "Medium",
        })
        data = cookie.to_protocol()
        assert data["httpOnly"] is True
        assert data["sameSite"] == "Lax"
        assert data["priority"] == "Medium"
        assert "secure" not in data
