from __future__ import annotations

from types import SimpleNamespace

import pytest

from ui_scenarios.app.settings import EngineSettings
from ui_scenarios.automation.driver import (
    DEFAULT_SUPPORTED_CRITERIA,
    AutomationError,
    check_action_result,
    create_driver,
    supported_criteria,
)
from ui_scenarios.automation.driver.session import normalized_title_regex
from ui_scenarios.automation.driver.uia import UIADriver, WindowSpec


def test_normalized_title_regex_wraps_plain_titles() -> None:
    assert normalized_title_regex(None) is None
    assert normalized_title_regex("   ") is None
    assert normalized_title_regex("Notepad") == ".*Notepad.*"
    assert normalized_title_regex("Untitled - Notepad") == ".*Untitled\\ \\-\\ Notepad.*"
    assert normalized_title_regex("^Calc.*$") == "^Calc.*$"


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(AutomationError, match="Unknown automation backend"):
        create_driver(EngineSettings(automation_backend="selenium"))


def test_appium_needs_a_server_url() -> None:
    with pytest.raises(AutomationError, match="no server URL"):
        create_driver(EngineSettings(automation_backend="appium"))


def test_check_action_result_only_rejects_false() -> None:
    check_action_result(None, "click")
    check_action_result(True, "click")
    check_action_result(0, "click")
    with pytest.raises(AutomationError, match="'click'"):
        check_action_result(False, "click")


def test_supported_criteria_defaults_without_declaration() -> None:
    assert supported_criteria(object()) == DEFAULT_SUPPORTED_CRITERIA
    assert "xpath" not in DEFAULT_SUPPORTED_CRITERIA
    declared = SimpleNamespace(supported_criteria=["name", "xpath"])
    assert supported_criteria(declared) == frozenset({"name", "xpath"})


class _Rect:
    left, top = 5, 7

    def width(self) -> int:
        return 30

    def height(self) -> int:
        return 10


class _Wrapper:
    element_info = SimpleNamespace(automation_id="Ok", name="OK", class_name="Button", control_type="Button")

    def rectangle(self) -> _Rect:
        return _Rect()

    def is_enabled(self) -> bool:
        return True

    def is_visible(self) -> bool:
        return False

    def window_text(self) -> str:
        return "OK"


class _ChildSpec:
    def __init__(self, present: bool) -> None:
        self.present = present

    def exists(self, timeout: float = 0) -> bool:
        return self.present

    def wrapper_object(self) -> _Wrapper:
        return _Wrapper()


class _Window:
    def __init__(self) -> None:
        self.queries = []

    def child_window(self, **query):
        self.queries.append(query)
        return _ChildSpec(query.get("auto_id") == "Ok")

    def descendants(self, **query):
        self.queries.append(query)
        return [_Wrapper(), _Wrapper()]


def test_uia_driver_maps_criteria_to_pywinauto_queries() -> None:
    driver = UIADriver(WindowSpec(title_regex=".*App.*"))
    window = _Window()
    driver._window = window

    assert driver.find_element({"automation_id": "Missing"}) is None
    assert isinstance(driver.find_element({"automation_id": "Ok"}), _Wrapper)
    assert len(driver.find_elements({"control_type": "Button", "name": "OK"})) == 2
    assert window.queries[-1] == {"control_type": "Button", "title": "OK"}
    with pytest.raises(AutomationError, match="xpath"):
        driver.find_element({"xpath": "//Button"})


def test_uia_driver_reports_element_properties() -> None:
    props = UIADriver(WindowSpec()).get_element_properties(_Wrapper())

    assert props["automation_id"] == "Ok"
    assert props["is_enabled"] is True
    assert props["is_offscreen"] is True
    assert props["bounds"] == {"x": 5, "y": 7, "width": 30, "height": 10}
    assert WindowSpec(title_regex="^A$", class_name="Frame").to_query() == {"title_re": "^A$", "class_name": "Frame"}
