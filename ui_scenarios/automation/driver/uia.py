"""
UI Automation driver backed by pywinauto.

This module provides a thin shim around pywinauto's UIA backend, supplying
retry-aware window attachment and the primitive operations the scenario
engine calls. Keyboard input and full-screen captures go through pyautogui.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .base import DEFAULT_SUPPORTED_CRITERIA
from .exceptions import AutomationError, ControlNotFoundError, DriverUnavailableError

try:
    from pywinauto import Desktop, mouse  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    Desktop = None  # type: ignore
    mouse = None  # type: ignore

try:
    import pyautogui  # type: ignore
except Exception:  # pragma: no cover - needs a display
    pyautogui = None  # type: ignore

logger = logging.getLogger(__name__)

# Engine criterion -> pywinauto child_window() keyword.
_QUERY_KEYS = {
    "automation_id": "auto_id",
    "name": "title",
    "class_name": "class_name",
    "control_type": "control_type",
}


@dataclass(slots=True)
class WindowSpec:
    """Describes the top-level window we want to attach to."""

    title_regex: Optional[str] = None
    class_name: Optional[str] = None

    def to_query(self) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        if self.title_regex:
            query["title_re"] = self.title_regex
        if self.class_name:
            query["class_name"] = self.class_name
        return query


def attach_to_window(
    spec: WindowSpec,
    *,
    timeout: float = 12.0,
    retry_interval: float = 0.5,
) -> Any:
    """
    Attach to the target application's top-level window.

    Parameters
    ----------
    spec:
        Criteria used to find the target window (title regex/class name).
    timeout:
        Overall timeout in seconds when searching for the window.
    retry_interval:
        Delay between successive search attempts.
    """
    if Desktop is None:
        raise DriverUnavailableError("pywinauto is required for the UIA driver but is not installed.")

    deadline = time.monotonic() + max(timeout, 0.1)
    last_exc: Optional[Exception] = None
    while time.monotonic() < deadline:
        try:
            window = Desktop(backend="uia").window(**spec.to_query())
            window.wait("exists ready", timeout=retry_interval)
            return window
        except Exception as exc:  # pragma: no cover - UI timing dependent
            last_exc = exc
            time.sleep(retry_interval)
    raise ControlNotFoundError(f"Unable to locate application window using spec={spec}") from last_exc


class UIADriver:
    """Driver implementation for Windows desktop applications via UI Automation."""

    supported_criteria: FrozenSet[str] = DEFAULT_SUPPORTED_CRITERIA

    def __init__(self, spec: WindowSpec, *, attach_timeout: float = 12.0) -> None:
        self.spec = spec
        self._attach_timeout = attach_timeout
        self._window: Any = None

    @property
    def window(self) -> Any:
        if self._window is None:
            self._window = attach_to_window(self.spec, timeout=self._attach_timeout)
        return self._window

    def reset(self) -> None:
        """Forget the cached window, e.g. after the target application restarts."""
        self._window = None

    @staticmethod
    def _query(criteria: Mapping[str, str]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        for key, value in criteria.items():
            mapped = _QUERY_KEYS.get(key)
            if mapped is None:
                raise AutomationError(f"UIA driver does not support criterion '{key}'")
            query[mapped] = value
        return query

    # -- lookup -------------------------------------------------------------------

    def find_element(self, criteria: Mapping[str, str]) -> Optional[Any]:
        spec = self.window.child_window(**self._query(criteria))
        if not spec.exists(timeout=0):
            return None
        return spec.wrapper_object()

    def find_elements(self, criteria: Mapping[str, str]) -> List[Any]:
        return list(self.window.descendants(**self._query(criteria)))

    def element_from_point(self, x: int, y: int) -> Optional[Any]:
        if Desktop is None:
            raise DriverUnavailableError("pywinauto is required for the UIA driver but is not installed.")
        try:
            return Desktop(backend="uia").from_point(int(x), int(y))
        except Exception as exc:  # pragma: no cover - UI timing dependent
            logger.debug("No element at (%s, %s): %s", x, y, exc)
            return None

    # -- interaction ----------------------------------------------------------------

    def click(self, element: Any) -> None:  # pragma: no cover - UI interaction
        element.click_input()

    def double_click(self, element: Any) -> None:  # pragma: no cover - UI interaction
        element.double_click_input()

    def right_click(self, element: Any) -> None:  # pragma: no cover - UI interaction
        element.right_click_input()

    def hover(self, element: Any) -> None:  # pragma: no cover - UI interaction
        if mouse is None:
            raise DriverUnavailableError("pywinauto is required for the UIA driver but is not installed.")
        mid = element.rectangle().mid_point()
        mouse.move(coords=(int(mid.x), int(mid.y)))

    def type(self, element: Any, text: str) -> None:  # pragma: no cover - UI interaction
        if not hasattr(element, "type_keys"):
            raise AutomationError("Control does not support typing text.")
        element.type_keys(text, with_spaces=True, set_foreground=True)

    def fill(self, element: Any, text: str) -> None:  # pragma: no cover - UI interaction
        if hasattr(element, "set_edit_text"):
            element.set_edit_text(str(text))
            return
        self.clear(element)
        self.type(element, text)

    def clear(self, element: Any) -> None:  # pragma: no cover - UI interaction
        if hasattr(element, "set_edit_text"):
            element.set_edit_text("")
        elif hasattr(element, "type_keys"):
            element.type_keys("^a{BACKSPACE}", set_foreground=True)
        else:
            raise AutomationError("Control does not support clearing text.")

    def check(self, element: Any) -> None:  # pragma: no cover - UI interaction
        self._toggle(element, True)

    def uncheck(self, element: Any) -> None:  # pragma: no cover - UI interaction
        self._toggle(element, False)

    def _toggle(self, element: Any, state: bool) -> None:  # pragma: no cover - UI interaction
        if not hasattr(element, "get_toggle_state"):
            raise AutomationError("Control does not expose toggle state.")
        current = element.get_toggle_state()
        target = 1 if state else 0
        if current != target:
            if hasattr(element, "toggle"):
                element.toggle()
            else:
                element.click_input()

    def select_option(self, element: Any, value: str) -> None:  # pragma: no cover - UI interaction
        if not hasattr(element, "select"):
            raise AutomationError("Control does not support selecting options.")
        element.select(str(value))

    def press_key(self, key: str) -> None:  # pragma: no cover - UI interaction
        if pyautogui is None:
            raise DriverUnavailableError("pyautogui is required for key presses but is not available.")
        parts = [part.strip().lower() for part in str(key).split("+") if part.strip()]
        if len(parts) > 1:
            pyautogui.hotkey(*parts)
        else:
            pyautogui.press(parts[0] if parts else str(key))

    # -- state ------------------------------------------------------------------------

    def get_text(self, element: Any) -> str:
        return str(element.window_text() or "")

    def get_value(self, element: Any) -> str:
        if hasattr(element, "get_value"):
            value = element.get_value()
            return "" if value is None else str(value)
        if hasattr(element, "window_text"):
            return str(element.window_text() or "")
        if hasattr(element, "texts"):
            texts = element.texts()
            return str(texts[0]) if texts else ""
        return ""

    def is_checked(self, element: Any) -> bool:
        if not hasattr(element, "get_toggle_state"):
            raise AutomationError("Control does not expose toggle state.")
        return element.get_toggle_state() == 1

    def has_focus(self, element: Any) -> bool:
        return bool(element.has_keyboard_focus())

    def get_element_properties(self, element: Any) -> Dict[str, Any]:
        info = element.element_info
        rect = element.rectangle()
        return {
            "automation_id": getattr(info, "automation_id", None),
            "name": getattr(info, "name", None),
            "class_name": getattr(info, "class_name", None),
            "control_type": getattr(info, "control_type", None) or "",
            "is_enabled": bool(element.is_enabled()),
            "is_offscreen": not bool(element.is_visible()),
            "bounds": {
                "x": int(rect.left),
                "y": int(rect.top),
                "width": int(rect.width()),
                "height": int(rect.height()),
            },
            "process_id": getattr(info, "process_id", None),
            "framework_id": getattr(info, "framework_id", None),
        }

    def screenshot(self, element: Any = None) -> Any:  # pragma: no cover - UI interaction
        if element is not None and hasattr(element, "capture_as_image"):
            return element.capture_as_image()
        if pyautogui is None:
            raise DriverUnavailableError("pyautogui is required for screen captures but is not available.")
        return pyautogui.screenshot()
