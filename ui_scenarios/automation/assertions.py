"""
Assertion registry and built-in predicates.

Handlers are plain callables ``handler(element, expected)`` returning either an
:class:`AssertionResult` or a bool. They read element state through the
driver and never mutate it. :meth:`AssertionRegistry.run_assertion` never
raises: unknown types, malformed specs and handler exceptions all come back
as failed results.
"""

from __future__ import annotations

import dataclasses
import logging
import time
import traceback
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .locator import LocatorResolver, element_is_visible
from .models import AssertionSpec, Locator
from .snapshots import SnapshotStore

logger = logging.getLogger(__name__)

_CHECKABLE_CONTROL_TYPES = {"checkbox", "radiobutton"}
_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class AssertionResult:
    type: str
    passed: bool
    message: str = ""
    actual: Any = None
    expected: Any = None
    timestamp: float = 0.0
    error: Optional[str] = None
    stack: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "passed": self.passed,
            "message": self.message,
            "timestamp": int(round(self.timestamp * 1000)),
        }
        if self.actual is not None:
            payload["actual"] = self.actual
        if self.expected is not None:
            payload["expected"] = self.expected
        if self.error is not None:
            payload["error"] = self.error
        if self.stack is not None:
            payload["stack"] = self.stack
        return payload


class AssertionFailedError(AssertionError):
    """Raised inside a step when an assertion evaluates to false or errors."""

    def __init__(self, result: AssertionResult) -> None:
        super().__init__(result.message)
        self.result = result


AssertionHandler = Callable[[Any, Any], Union[AssertionResult, bool]]


def _as_bool(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"Expected a boolean, got '{value}'")
    return bool(value)


def _snake_case(name: str) -> str:
    out: List[str] = []
    for idx, char in enumerate(name):
        if char.isupper() and idx and not name[idx - 1].isupper():
            out.append("_")
        out.append(char.lower())
    return "".join(out)


def _result(passed: bool, message: str, actual: Any = None, expected: Any = None) -> AssertionResult:
    # type and timestamp are filled in by the registry
    return AssertionResult(type="", passed=passed, message=message, actual=actual, expected=expected)


class BuiltinAssertions:
    """Built-in predicates bound to one driver."""

    def __init__(
        self,
        driver: Any,
        resolver: Optional[LocatorResolver] = None,
        snapshots: Optional[SnapshotStore] = None,
    ) -> None:
        self.driver = driver
        self.resolver = resolver or LocatorResolver(driver)
        self.snapshots = snapshots

    def handlers(self) -> Dict[str, AssertionHandler]:
        return {
            "visible": self.visible,
            "text": self.text,
            "contains-text": self.contains_text,
            "enabled": self.enabled,
            "checked": self.checked,
            "focused": self.focused,
            "value": self.value,
            "attribute": self.attribute,
            "count": self.count,
            "matches-snapshot": self.matches_snapshot,
        }

    def _properties(self, element: Any) -> Mapping[str, Any]:
        return self.driver.get_element_properties(element) or {}

    def visible(self, element: Any, expected: Any) -> AssertionResult:
        want = _as_bool(expected)
        actual = element_is_visible(self._properties(element))
        state = "visible" if want else "hidden"
        if actual == want:
            return _result(True, f"Element is {state}", actual, want)
        return _result(False, f"Expected element to be {state}", actual, want)

    def text(self, element: Any, expected: Any) -> AssertionResult:
        want = "" if expected is None else str(expected)
        actual = str(self.driver.get_text(element) or "")
        if actual == want:
            return _result(True, f"Text equals '{want}'", actual, want)
        return _result(False, f"Expected text '{want}' but found '{actual}'", actual, want)

    def contains_text(self, element: Any, expected: Any) -> AssertionResult:
        want = "" if expected is None else str(expected)
        actual = str(self.driver.get_text(element) or "")
        if want in actual:
            return _result(True, f"Text contains '{want}'", actual, want)
        return _result(False, f"Expected text to contain '{want}' but found '{actual}'", actual, want)

    def enabled(self, element: Any, expected: Any) -> AssertionResult:
        want = _as_bool(expected)
        actual = bool(self._properties(element).get("is_enabled"))
        state = "enabled" if want else "disabled"
        if actual == want:
            return _result(True, f"Element is {state}", actual, want)
        return _result(False, f"Expected element to be {state}", actual, want)

    def checked(self, element: Any, expected: Any) -> AssertionResult:
        want = _as_bool(expected)
        control_type = str(self._properties(element).get("control_type") or "")
        normalized = control_type.replace(" ", "").lower()
        if normalized not in _CHECKABLE_CONTROL_TYPES:
            return _result(
                False,
                f"Element is not a checkbox or radio button (control type '{control_type or 'unknown'}')",
                control_type,
                want,
            )
        actual = bool(self.driver.is_checked(element))
        state = "checked" if want else "unchecked"
        if actual == want:
            return _result(True, f"Element is {state}", actual, want)
        return _result(False, f"Expected element to be {state}", actual, want)

    def focused(self, element: Any, expected: Any) -> AssertionResult:
        want = _as_bool(expected)
        actual = bool(self.driver.has_focus(element))
        if actual == want:
            return _result(True, "Element focus matches", actual, want)
        return _result(False, f"Expected element {'to have' if want else 'not to have'} focus", actual, want)

    def value(self, element: Any, expected: Any) -> AssertionResult:
        want = "" if expected is None else str(expected)
        actual = str(self.driver.get_value(element) or "")
        if actual == want:
            return _result(True, f"Value equals '{want}'", actual, want)
        return _result(False, f"Expected value '{want}' but found '{actual}'", actual, want)

    def attribute(self, element: Any, expected: Any) -> AssertionResult:
        if not isinstance(expected, Mapping) or not expected.get("name"):
            return _result(False, "Attribute assertion needs a {name, value} pair", None, expected)
        name = str(expected["name"])
        want = expected.get("value")
        props = self._properties(element)
        key = name if name in props else _snake_case(name)
        if key not in props:
            return _result(False, f"Element has no attribute '{name}'", None, want)
        actual = props[key]
        if actual == want or (actual is not None and want is not None and str(actual) == str(want)):
            return _result(True, f"Attribute '{name}' equals '{want}'", actual, want)
        return _result(False, f"Expected attribute '{name}' to be '{want}' but found '{actual}'", actual, want)

    def count(self, element: Any, expected: Any) -> AssertionResult:
        try:
            want = int(expected)
        except (TypeError, ValueError):
            return _result(False, f"Count assertion needs an integer, got '{expected}'", None, expected)
        if isinstance(element, Locator):
            actual = len(self.resolver.resolve_all(element))
        elif isinstance(element, (list, tuple)):
            actual = len(element)
        else:
            return _result(False, "Count assertion needs a locator", None, want)
        if actual == want:
            return _result(True, f"Found {actual} matching elements", actual, want)
        return _result(False, f"Expected {want} matching elements but found {actual}", actual, want)

    def matches_snapshot(self, element: Any, expected: Any) -> AssertionResult:
        if self.snapshots is None:
            return _result(False, "No snapshot store configured", None, expected)
        name = expected.get("name") if isinstance(expected, Mapping) else expected
        if not name:
            return _result(False, "Snapshot assertion needs a snapshot name", None, expected)
        outcome = self.snapshots.compare(str(name), self.driver.screenshot(element))
        if outcome.created:
            return _result(True, f"Stored new baseline '{name}'", str(outcome.baseline_path), name)
        if outcome.passed:
            return _result(True, f"Snapshot '{name}' matches baseline", round(outcome.diff_percent, 4), name)
        return _result(
            False,
            f"Snapshot '{name}' differs from baseline by {outcome.diff_percent:.3f}%",
            str(outcome.actual_path) if outcome.actual_path else round(outcome.diff_percent, 4),
            name,
        )


class AssertionRegistry:
    """Name -> handler map with the built-ins pre-registered."""

    def __init__(
        self,
        driver: Any,
        resolver: Optional[LocatorResolver] = None,
        snapshots: Optional[SnapshotStore] = None,
    ) -> None:
        self.driver = driver
        self.builtins = BuiltinAssertions(driver, resolver=resolver, snapshots=snapshots)
        self._handlers: Dict[str, AssertionHandler] = dict(self.builtins.handlers())

    @property
    def resolver(self) -> LocatorResolver:
        return self.builtins.resolver

    def register(self, name: str, handler: AssertionHandler) -> None:
        if not name or not callable(handler):
            raise ValueError("Assertion handlers need a name and a callable")
        if name in self._handlers:
            logger.info("Replacing assertion handler '%s'", name)
        self._handlers[name] = handler

    def unregister(self, name: str) -> bool:
        return self._handlers.pop(name, None) is not None

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def run_assertion(self, spec: Union[AssertionSpec, Mapping[str, Any], str], element: Any = None) -> AssertionResult:
        started = time.time()
        try:
            parsed = AssertionSpec.from_value(spec)
        except Exception as exc:
            kind = spec.get("type") if isinstance(spec, Mapping) else None
            return AssertionResult(
                type=str(kind or "unknown"),
                passed=False,
                message=f"Invalid assertion spec: {exc}",
                timestamp=started,
                error=str(exc),
            )
        handler = self._handlers.get(parsed.type)
        if handler is None:
            return AssertionResult(
                type=parsed.type,
                passed=False,
                message=f"Unknown assertion type: {parsed.type}",
                expected=parsed.expected,
                timestamp=started,
            )
        try:
            outcome = handler(element, parsed.expected)
        except Exception as exc:
            logger.debug("Assertion '%s' raised %s", parsed.type, exc)
            return AssertionResult(
                type=parsed.type,
                passed=False,
                message=f"Assertion '{parsed.type}' errored: {exc}",
                expected=parsed.expected,
                timestamp=started,
                error=str(exc),
                stack=traceback.format_exc(),
            )
        return self._normalise(parsed, outcome, started)

    @staticmethod
    def _normalise(spec: AssertionSpec, outcome: Any, started: float) -> AssertionResult:
        if isinstance(outcome, AssertionResult):
            expected = outcome.expected if outcome.expected is not None else spec.expected
            return dataclasses.replace(outcome, type=spec.type, timestamp=started, expected=expected)
        if isinstance(outcome, bool):
            verdict = "passed" if outcome else "failed"
            return AssertionResult(
                type=spec.type,
                passed=outcome,
                message=f"Assertion '{spec.type}' {verdict}",
                expected=spec.expected,
                timestamp=started,
            )
        return AssertionResult(
            type=spec.type,
            passed=False,
            message=f"Assertion '{spec.type}' returned unsupported result {type(outcome).__name__}",
            expected=spec.expected,
            timestamp=started,
        )

    def run_assertions(
        self,
        specs: Iterable[Union[AssertionSpec, Mapping[str, Any], str]],
        element: Any = None,
        *,
        stop_on_failure: bool = False,
    ) -> List[AssertionResult]:
        results: List[AssertionResult] = []
        for spec in specs:
            result = self.run_assertion(spec, element)
            results.append(result)
            if stop_on_failure and not result.passed:
                break
        return results

    def expect(self, element: Any, *, raise_on_failure: bool = False) -> "Expectation":
        return Expectation(self, element, raise_on_failure=raise_on_failure)


class Expectation:
    """Fluent wrapper: ``registry.expect(el).to_have_text("x")``."""

    def __init__(self, registry: AssertionRegistry, element: Any, *, raise_on_failure: bool = False) -> None:
        self._registry = registry
        self._element = element
        self._raise = raise_on_failure

    def _run(self, kind: str, expected: Any = None) -> AssertionResult:
        result = self._registry.run_assertion(AssertionSpec(type=kind, expected=expected), self._element)
        if self._raise and not result.passed:
            raise AssertionFailedError(result)
        return result

    def to_be_visible(self) -> AssertionResult:
        return self._run("visible", True)

    def to_be_hidden(self) -> AssertionResult:
        return self._run("visible", False)

    def to_have_text(self, text: str) -> AssertionResult:
        return self._run("text", text)

    def to_contain_text(self, text: str) -> AssertionResult:
        return self._run("contains-text", text)

    def to_be_enabled(self) -> AssertionResult:
        return self._run("enabled", True)

    def to_be_disabled(self) -> AssertionResult:
        return self._run("enabled", False)

    def to_be_checked(self, checked: bool = True) -> AssertionResult:
        return self._run("checked", checked)

    def to_be_focused(self) -> AssertionResult:
        return self._run("focused", True)

    def to_have_value(self, value: str) -> AssertionResult:
        return self._run("value", value)

    def to_have_attribute(self, name: str, value: Any) -> AssertionResult:
        return self._run("attribute", {"name": name, "value": value})

    def to_have_count(self, count: int) -> AssertionResult:
        return self._run("count", count)

    def to_match_snapshot(self, name: str) -> AssertionResult:
        return self._run("matches-snapshot", name)
