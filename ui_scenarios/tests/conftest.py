from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import pytest
from PIL import Image

from ui_scenarios.automation.driver.base import DEFAULT_SUPPORTED_CRITERIA


@dataclass(eq=False)
class FakeElement:
    automation_id: str = ""
    name: str = ""
    class_name: str = ""
    control_type: str = "Button"
    text: str = ""
    value: str = ""
    checked: bool = False
    enabled: bool = True
    focused: bool = False
    offscreen: bool = False
    bounds: Dict[str, int] = field(default_factory=lambda: {"x": 0, "y": 0, "width": 80, "height": 24})

    @property
    def key(self) -> str:
        return self.automation_id or self.name or self.class_name


class FakeDriver:
    """Scripted in-memory driver; every primitive call is appended to ``calls``."""

    def __init__(
        self,
        elements: Iterable[FakeElement] = (),
        supported: Optional[Iterable[str]] = None,
    ) -> None:
        self.elements: List[FakeElement] = list(elements)
        self.supported_criteria = frozenset(supported) if supported is not None else DEFAULT_SUPPORTED_CRITERIA
        self.calls: List[Tuple[Any, ...]] = []
        self.lookups: List[Dict[str, str]] = []
        self.lookup_errors: Dict[Tuple[str, str], Exception] = {}
        self.screenshot_error: Optional[Exception] = None
        self.screen = Image.new("RGB", (16, 16), "white")
        self.on_find: Optional[Callable[[Mapping[str, str]], None]] = None

    def add(self, element: FakeElement) -> FakeElement:
        self.elements.append(element)
        return element

    @staticmethod
    def _matches(element: FakeElement, criteria: Mapping[str, str]) -> bool:
        return all(getattr(element, key, None) == value for key, value in criteria.items())

    def _raise_scripted(self, criteria: Mapping[str, str]) -> None:
        for key, value in criteria.items():
            error = self.lookup_errors.get((key, value))
            if error is not None:
                raise error

    def find_element(self, criteria: Mapping[str, str]) -> Optional[FakeElement]:
        self.lookups.append(dict(criteria))
        if self.on_find is not None:
            self.on_find(criteria)
        self._raise_scripted(criteria)
        for element in self.elements:
            if self._matches(element, criteria):
                return element
        return None

    def find_elements(self, criteria: Mapping[str, str]) -> List[FakeElement]:
        self.lookups.append(dict(criteria))
        self._raise_scripted(criteria)
        return [element for element in self.elements if self._matches(element, criteria)]

    def element_from_point(self, x: int, y: int) -> Optional[FakeElement]:
        for element in self.elements:
            b = element.bounds
            if b["x"] <= x < b["x"] + b["width"] and b["y"] <= y < b["y"] + b["height"]:
                return element
        return None

    def click(self, element: FakeElement) -> None:
        self.calls.append(("click", element.key))

    def double_click(self, element: FakeElement) -> None:
        self.calls.append(("double_click", element.key))

    def right_click(self, element: FakeElement) -> None:
        self.calls.append(("right_click", element.key))

    def hover(self, element: FakeElement) -> None:
        self.calls.append(("hover", element.key))

    def type(self, element: FakeElement, text: str) -> None:
        self.calls.append(("type", element.key, text))
        element.value += text
        element.text += text

    def fill(self, element: FakeElement, text: str) -> None:
        self.calls.append(("fill", element.key, text))
        element.value = text
        element.text = text

    def clear(self, element: FakeElement) -> None:
        self.calls.append(("clear", element.key))
        element.value = ""
        element.text = ""

    def check(self, element: FakeElement) -> None:
        self.calls.append(("check", element.key))
        element.checked = True

    def uncheck(self, element: FakeElement) -> None:
        self.calls.append(("uncheck", element.key))
        element.checked = False

    def select_option(self, element: FakeElement, value: str) -> None:
        self.calls.append(("select_option", element.key, value))
        element.value = value

    def press_key(self, key: str) -> None:
        self.calls.append(("press_key", key))

    def get_text(self, element: FakeElement) -> str:
        return element.text

    def get_value(self, element: FakeElement) -> str:
        return element.value

    def is_checked(self, element: FakeElement) -> bool:
        return element.checked

    def has_focus(self, element: FakeElement) -> bool:
        return element.focused

    def get_element_properties(self, element: FakeElement) -> Dict[str, Any]:
        return {
            "automation_id": element.automation_id,
            "name": element.name,
            "class_name": element.class_name,
            "control_type": element.control_type,
            "is_enabled": element.enabled,
            "is_offscreen": element.offscreen,
            "bounds": dict(element.bounds),
        }

    def screenshot(self, element: Optional[FakeElement] = None) -> Image.Image:
        self.calls.append(("screenshot", element.key if element is not None else None))
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return self.screen.copy()


@pytest.fixture
def fake_driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def make_element() -> Callable[..., FakeElement]:
    return FakeElement


@pytest.fixture
def make_driver() -> Callable[..., FakeDriver]:
    return FakeDriver
