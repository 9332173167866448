"""Appium (WinAppDriver) driver for the scenario engine."""

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from .base import DEFAULT_SUPPORTED_CRITERIA, CRITERION_XPATH
from .exceptions import AutomationError, DriverUnavailableError

try:
    from appium import webdriver
    from appium.options.windows import WindowsOptions
    from appium.webdriver.common.appiumby import AppiumBy
    from selenium.webdriver.common.action_chains import ActionChains
    from selenium.webdriver.common.keys import Keys
except Exception:  # pragma: no cover - optional dependency
    webdriver = None  # type: ignore
    WindowsOptions = None  # type: ignore
    AppiumBy = None  # type: ignore
    ActionChains = None  # type: ignore
    Keys = None  # type: ignore

logger = logging.getLogger(__name__)


def _locator_for(key: str, value: str):
    by = {
        "automation_id": AppiumBy.ACCESSIBILITY_ID,
        "name": AppiumBy.NAME,
        "class_name": AppiumBy.CLASS_NAME,
        "control_type": AppiumBy.TAG_NAME,
        "xpath": AppiumBy.XPATH,
    }.get(key)
    if by is None:
        raise AutomationError(f"Appium driver does not support criterion '{key}'")
    return by, value


class AppiumDriver:
    """Lightweight wrapper around an Appium WebDriver session."""

    supported_criteria: FrozenSet[str] = DEFAULT_SUPPORTED_CRITERIA | {CRITERION_XPATH}

    def __init__(self, session: Any) -> None:
        self.session = session

    def _by(self, criteria: Mapping[str, str]):
        if len(criteria) != 1:
            raise AutomationError("Appium driver expects exactly one criterion per lookup")
        key, value = next(iter(criteria.items()))
        return _locator_for(key, value)

    def find_element(self, criteria: Mapping[str, str]) -> Optional[Any]:
        matches = self.find_elements(criteria)
        return matches[0] if matches else None

    def find_elements(self, criteria: Mapping[str, str]) -> List[Any]:
        by, value = self._by(criteria)
        return list(self.session.find_elements(by, value))

    def _actions(self):
        return ActionChains(self.session)

    def click(self, element: Any) -> None:  # pragma: no cover - UI interaction
        element.click()

    def double_click(self, element: Any) -> None:  # pragma: no cover - UI interaction
        self._actions().double_click(element).perform()

    def right_click(self, element: Any) -> None:  # pragma: no cover - UI interaction
        self._actions().context_click(element).perform()

    def hover(self, element: Any) -> None:  # pragma: no cover - UI interaction
        self._actions().move_to_element(element).perform()

    def type(self, element: Any, text: str) -> None:  # pragma: no cover - UI interaction
        element.send_keys(text)

    def fill(self, element: Any, text: str) -> None:  # pragma: no cover - UI interaction
        element.clear()
        element.send_keys(text)

    def clear(self, element: Any) -> None:  # pragma: no cover - UI interaction
        element.clear()

    def check(self, element: Any) -> None:  # pragma: no cover - UI interaction
        if not self.is_checked(element):
            element.click()

    def uncheck(self, element: Any) -> None:  # pragma: no cover - UI interaction
        if self.is_checked(element):
            element.click()

    def select_option(self, element: Any, value: str) -> None:  # pragma: no cover - UI interaction
        element.click()
        options = element.find_elements(AppiumBy.NAME, value)
        if not options:
            raise AutomationError(f"Option '{value}' not found")
        options[0].click()

    def press_key(self, key: str) -> None:  # pragma: no cover - UI interaction
        parts = [part.strip() for part in str(key).split("+") if part.strip()]
        chain = self._actions()
        resolved = [getattr(Keys, part.upper(), part) for part in parts]
        for modifier in resolved[:-1]:
            chain = chain.key_down(modifier)
        chain = chain.send_keys(resolved[-1] if resolved else key)
        for modifier in reversed(resolved[:-1]):
            chain = chain.key_up(modifier)
        chain.perform()

    def get_text(self, element: Any) -> str:
        return str(element.text or "")

    def get_value(self, element: Any) -> str:
        value = element.get_attribute("Value.Value")
        if value is None:
            value = element.text
        return "" if value is None else str(value)

    def is_checked(self, element: Any) -> bool:
        state = element.get_attribute("Toggle.ToggleState")
        if state is not None:
            return str(state) in {"1", "On"}
        return bool(element.is_selected())

    def has_focus(self, element: Any) -> bool:
        return str(element.get_attribute("HasKeyboardFocus")).lower() == "true"

    def get_element_properties(self, element: Any) -> Dict[str, Any]:
        rect = element.rect or {}
        return {
            "automation_id": element.get_attribute("AutomationId"),
            "name": element.get_attribute("Name"),
            "class_name": element.get_attribute("ClassName"),
            "control_type": element.get_attribute("LocalizedControlType") or element.tag_name or "",
            "is_enabled": bool(element.is_enabled()),
            "is_offscreen": str(element.get_attribute("IsOffscreen")).lower() == "true",
            "bounds": {
                "x": int(rect.get("x", 0)),
                "y": int(rect.get("y", 0)),
                "width": int(rect.get("width", 0)),
                "height": int(rect.get("height", 0)),
            },
        }

    def screenshot(self, element: Any = None) -> bytes:  # pragma: no cover - UI interaction
        if element is not None:
            return element.screenshot_as_png
        return self.session.get_screenshot_as_png()

    def quit(self) -> None:
        try:
            self.session.quit()
        except Exception as exc:
            logger.debug("Appium session quit failed: %s", exc)


def attach_appium_driver(server_url: str, capabilities: Dict[str, Any]) -> AppiumDriver:
    if webdriver is None:
        raise DriverUnavailableError("Appium Python client not available. Install Appium-Python-Client.")
    options = WindowsOptions().load_capabilities(capabilities)
    session = webdriver.Remote(command_executor=server_url, options=options)
    return AppiumDriver(session=session)
