"""Locator resolution shared by the executor, assertions and recorder."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

from .driver.base import supported_criteria
from .driver.exceptions import AutomationError, ControlNotFoundError, DriverUnavailableError
from .models import DEFAULT_STRATEGY_PRIORITIES, ElementSnapshot, Locator, Strategy

logger = logging.getLogger(__name__)

_GENERIC_AUTOMATION_IDS = {"", "window", "pane", "mainwindowcontrol"}

# A missing backend or target window is not a miss on one strategy.
_FATAL_LOOKUP_ERRORS = (DriverUnavailableError, ControlNotFoundError)

DEFAULT_POLL_INTERVAL = 0.1


def is_generic_automation_id(value: Optional[str]) -> bool:
    """Return True when an AutomationId is empty or represents a generic container."""

    if not value:
        return True
    lowered = str(value).strip().lower()
    return lowered in _GENERIC_AUTOMATION_IDS


def locator_from_snapshot(snapshot: Optional[ElementSnapshot]) -> Optional[Locator]:
    """Emit one strategy per identifying attribute, automationId first."""

    if snapshot is None:
        return None
    strategies: List[Strategy] = []
    if snapshot.automation_id and not is_generic_automation_id(snapshot.automation_id):
        strategies.append(Strategy("automationId", snapshot.automation_id, DEFAULT_STRATEGY_PRIORITIES["automationId"]))
    if snapshot.name:
        strategies.append(Strategy("name", snapshot.name, DEFAULT_STRATEGY_PRIORITIES["name"]))
    if snapshot.class_name:
        strategies.append(Strategy("className", snapshot.class_name, DEFAULT_STRATEGY_PRIORITIES["className"]))
    if snapshot.control_type:
        strategies.append(Strategy("controlType", snapshot.control_type, DEFAULT_STRATEGY_PRIORITIES["controlType"]))
    if not strategies:
        return None
    return Locator(strategies=tuple(strategies))


@dataclass(frozen=True)
class NotFound:
    """Resolution outcome when no strategy produced an element. Always falsy."""

    locator: Optional[Locator]
    reason: str = "not found"
    tried: Tuple[str, ...] = ()
    invalid: bool = False

    def __bool__(self) -> bool:
        return False

    @property
    def message(self) -> str:
        target = self.locator.describe() if self.locator is not None else "<no locator>"
        if self.invalid:
            return f"Element not found: locator {target} has no usable strategies"
        if self.reason == "cancelled":
            return f"Element not found: search for {target} was cancelled"
        if self.tried:
            return f"Element not found: {target} ({self.reason}; tried {', '.join(self.tried)})"
        return f"Element not found: {target} ({self.reason})"

    def __str__(self) -> str:
        return self.message


Resolution = Union[Any, NotFound]


class ElementNotFoundError(AutomationError):
    """Raised inside a step when its locator could not be resolved."""

    def __init__(self, outcome: NotFound) -> None:
        super().__init__(outcome.message)
        self.outcome = outcome


class LocatorResolver:
    """Turns a Locator into a driver element handle.

    Strategies are tried in ascending priority and the first handle wins.
    Criteria the driver does not declare are skipped, never treated as a
    match. Lookup errors count as a miss on that strategy, except a missing
    backend or target window, which propagates. ``resolve_with_timeout`` is
    the only polling loop in the engine and honours the shared ``stop_event``.
    """

    def __init__(
        self,
        driver: Any,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.driver = driver
        self.poll_interval = max(float(poll_interval), 0.001)
        self.stop_event = stop_event if stop_event is not None else threading.Event()

    def _criteria(self, strategy: Strategy) -> Optional[Mapping[str, str]]:
        criterion = strategy.criterion
        if criterion is None or criterion not in supported_criteria(self.driver):
            logger.debug("Skipping %s strategy; driver does not support '%s'", strategy.type, criterion)
            return None
        return {criterion: strategy.value}

    def resolve(self, locator: Optional[Locator]) -> Resolution:
        if locator is None:
            return NotFound(locator=None, reason="no locator", invalid=True)
        ordered = locator.ordered()
        if not ordered:
            return NotFound(locator=locator, reason="no usable strategies", invalid=True)
        tried: List[str] = []
        for strategy in ordered:
            criteria = self._criteria(strategy)
            if criteria is None:
                continue
            tried.append(strategy.describe())
            try:
                element = self.driver.find_element(criteria)
            except _FATAL_LOOKUP_ERRORS:
                raise
            except Exception as exc:
                logger.debug("Lookup %s raised %s; treating as miss", strategy.describe(), exc)
                continue
            if element is not None:
                logger.debug("Resolved %s via %s", locator.describe(), strategy.describe())
                return element
        reason = "strategies exhausted" if tried else "no strategy supported by driver"
        return NotFound(locator=locator, reason=reason, tried=tuple(tried))

    def resolve_all(self, locator: Optional[Locator]) -> List[Any]:
        """Every match of the first strategy that matches anything."""

        if locator is None:
            return []
        for strategy in locator.ordered():
            criteria = self._criteria(strategy)
            if criteria is None:
                continue
            try:
                matches = list(self.driver.find_elements(criteria) or [])
            except _FATAL_LOOKUP_ERRORS:
                raise
            except Exception as exc:
                logger.debug("Lookup %s raised %s; treating as miss", strategy.describe(), exc)
                continue
            if matches:
                return matches
        return []

    def is_visible(self, element: Any) -> bool:
        try:
            props = self.driver.get_element_properties(element) or {}
        except Exception as exc:
            logger.debug("Could not read properties for visibility check: %s", exc)
            return False
        return element_is_visible(props)

    def resolve_with_timeout(
        self,
        locator: Optional[Locator],
        timeout_ms: int,
        require_visible: bool = False,
    ) -> Resolution:
        deadline = time.monotonic() + max(int(timeout_ms), 0) / 1000.0
        last: Resolution = NotFound(locator=locator, reason="timed out")
        while True:
            if self.stop_event.is_set():
                return NotFound(locator=locator, reason="cancelled")
            result = self.resolve(locator)
            if isinstance(result, NotFound):
                if result.invalid:
                    return result
                last = result
            elif not require_visible or self.is_visible(result):
                return result
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if self.stop_event.wait(min(self.poll_interval, remaining)):
                return NotFound(locator=locator, reason="cancelled")
        tried = last.tried if isinstance(last, NotFound) else ()
        return NotFound(locator=locator, reason=f"timed out after {int(timeout_ms)}ms", tried=tried)


def element_is_visible(props: Mapping[str, Any]) -> bool:
    """Positive-size bounds and not reported off-screen."""

    if props.get("is_offscreen"):
        return False
    bounds = props.get("bounds") or {}
    if isinstance(bounds, Mapping):
        width, height = bounds.get("width", 0), bounds.get("height", 0)
    else:
        width, height = getattr(bounds, "width", 0), getattr(bounds, "height", 0)
    try:
        return float(width or 0) > 0 and float(height or 0) > 0
    except (TypeError, ValueError):
        return False
