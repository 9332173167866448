"""
Driver protocol consumed by the scenario engine.

The engine never talks to pywinauto, Appium or the OS directly; it only calls
the methods below. Concrete backends live next to this module and tests use
scripted fakes that satisfy the same surface.
"""

from __future__ import annotations

from typing import Any, FrozenSet, List, Mapping, Optional, Protocol

from .exceptions import AutomationError

# Criterion keys accepted by ``find_element``/``find_elements``.
CRITERION_AUTOMATION_ID = "automation_id"
CRITERION_NAME = "name"
CRITERION_CLASS_NAME = "class_name"
CRITERION_CONTROL_TYPE = "control_type"
CRITERION_XPATH = "xpath"

DEFAULT_SUPPORTED_CRITERIA: FrozenSet[str] = frozenset(
    {
        CRITERION_AUTOMATION_ID,
        CRITERION_NAME,
        CRITERION_CLASS_NAME,
        CRITERION_CONTROL_TYPE,
    }
)


class Driver(Protocol):  # pragma: no cover - interface only
    """Minimal surface the engine expects from a UI driver."""

    supported_criteria: FrozenSet[str]

    def find_element(self, criteria: Mapping[str, str]) -> Optional[Any]:
        ...

    def find_elements(self, criteria: Mapping[str, str]) -> List[Any]:
        ...

    def click(self, element: Any) -> Any:
        ...

    def double_click(self, element: Any) -> Any:
        ...

    def right_click(self, element: Any) -> Any:
        ...

    def hover(self, element: Any) -> Any:
        ...

    def type(self, element: Any, text: str) -> Any:
        ...

    def fill(self, element: Any, text: str) -> Any:
        ...

    def clear(self, element: Any) -> Any:
        ...

    def check(self, element: Any) -> Any:
        ...

    def uncheck(self, element: Any) -> Any:
        ...

    def select_option(self, element: Any, value: str) -> Any:
        ...

    def press_key(self, key: str) -> Any:
        ...

    def get_text(self, element: Any) -> str:
        ...

    def get_value(self, element: Any) -> str:
        ...

    def is_checked(self, element: Any) -> bool:
        ...

    def has_focus(self, element: Any) -> bool:
        ...

    def get_element_properties(self, element: Any) -> Mapping[str, Any]:
        ...

    def screenshot(self, element: Any = None) -> Any:
        ...


def supported_criteria(driver: Any) -> FrozenSet[str]:
    """Return the criteria a driver declares, defaulting to the non-xpath set."""

    declared = getattr(driver, "supported_criteria", None)
    if declared is None:
        return DEFAULT_SUPPORTED_CRITERIA
    return frozenset(declared)


def check_action_result(result: Any, action: str) -> None:
    """Raise when a driver primitive reports failure by returning ``False``."""

    if result is False:
        raise AutomationError(f"Driver reported failure for '{action}'")
