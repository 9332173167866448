"""Scenario, step, locator and result records shared by the engine."""

from __future__ import annotations

import json
from pathlib import PurePath
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

# Step action kinds
ACTION_CLICK = "click"
ACTION_TYPE = "type"
ACTION_FILL = "fill"
ACTION_CLEAR = "clear"
ACTION_HOVER = "hover"
ACTION_DOUBLE_CLICK = "doubleClick"
ACTION_RIGHT_CLICK = "rightClick"
ACTION_SELECT_OPTION = "selectOption"
ACTION_CHECK = "check"
ACTION_UNCHECK = "uncheck"
ACTION_KEYPRESS = "keypress"
ACTION_WAIT = "wait"
ACTION_WAIT_FOR_SELECTOR = "waitForSelector"
ACTION_SCREENSHOT = "screenshot"
ACTION_ASSERT = "assert"

INTERACTION_ACTIONS = frozenset(
    {
        ACTION_CLICK,
        ACTION_TYPE,
        ACTION_FILL,
        ACTION_CLEAR,
        ACTION_HOVER,
        ACTION_DOUBLE_CLICK,
        ACTION_RIGHT_CLICK,
        ACTION_SELECT_OPTION,
        ACTION_CHECK,
        ACTION_UNCHECK,
    }
)
KNOWN_ACTIONS = INTERACTION_ACTIONS | {
    ACTION_KEYPRESS,
    ACTION_WAIT,
    ACTION_WAIT_FOR_SELECTOR,
    ACTION_SCREENSHOT,
    ACTION_ASSERT,
}

# Locator strategy type -> driver criterion
STRATEGY_CRITERIA: Dict[str, str] = {
    "automationId": "automation_id",
    "name": "name",
    "className": "class_name",
    "controlType": "control_type",
    "xpath": "xpath",
}
DEFAULT_STRATEGY_PRIORITIES: Dict[str, int] = {
    "automationId": 1,
    "name": 2,
    "className": 3,
    "controlType": 4,
    "xpath": 5,
}

STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"
STATUS_ERROR = "error"

DEFAULT_WAIT_MS = 1000
DEFAULT_WAIT_FOR_SELECTOR_MS = 30000


class ScenarioFormatError(ValueError):
    """Raised when a scenario document is structurally invalid."""


class StepValueError(ValueError):
    """Raised when a step's value is missing or cannot be parsed for its action."""


def _reference(ref: Any) -> Optional[str]:
    """Paths serialise as strings; in-memory images are not serialised."""
    if ref is None:
        return None
    if isinstance(ref, (str, PurePath)):
        return str(ref)
    return None


def _to_ms(seconds: Optional[float]) -> Optional[int]:
    if seconds is None:
        return None
    return int(round(seconds * 1000))


@dataclass(frozen=True)
class Strategy:
    """One way of identifying an element, tried in ascending ``priority``."""

    type: str
    value: str
    priority: int = 0

    @property
    def usable(self) -> bool:
        return self.type in STRATEGY_CRITERIA and bool(str(self.value or "").strip())

    @property
    def criterion(self) -> Optional[str]:
        return STRATEGY_CRITERIA.get(self.type)

    def describe(self) -> str:
        return f'{self.type}="{self.value}"'


@dataclass(frozen=True)
class Locator:
    """Declarative, strategy-ordered description of how to find an element."""

    strategies: Tuple[Strategy, ...] = ()
    name: Optional[str] = None

    def ordered(self) -> List[Strategy]:
        """Usable strategies sorted by priority; ties keep declaration order."""
        indexed = [(s.priority, idx, s) for idx, s in enumerate(self.strategies) if s.usable]
        indexed.sort(key=lambda item: (item[0], item[1]))
        return [s for _, _, s in indexed]

    @property
    def is_valid(self) -> bool:
        return any(s.usable for s in self.strategies)

    def describe(self) -> str:
        if self.name:
            return self.name
        if not self.strategies:
            return "<empty locator>"
        return " ".join(s.describe() for s in self.strategies)

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class AssertionSpec:
    """Assertion type tag plus the expected value its handler compares against."""

    type: str
    expected: Any = None
    params: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Union[str, Mapping[str, Any], "AssertionSpec"]) -> "AssertionSpec":
        if isinstance(value, AssertionSpec):
            return value
        data: Any = value
        if isinstance(value, str):
            try:
                data = json.loads(value)
            except ValueError as exc:
                raise StepValueError(f"Assertion spec is not valid JSON: {exc}") from exc
        if not isinstance(data, Mapping):
            raise StepValueError("Assertion spec must be a JSON object")
        kind = data.get("type")
        if not isinstance(kind, str) or not kind.strip():
            raise StepValueError("Assertion spec is missing its 'type'")
        params = {k: v for k, v in data.items() if k not in ("type", "expected")}
        if "expected" in data:
            expected = data["expected"]
        elif params:
            # {"type": "attribute", "name": ..., "value": ...}
            expected = dict(params)
        else:
            expected = None
        return cls(type=kind.strip(), expected=expected, params=params)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        payload.update(dict(self.params))
        if self.expected is not None and self.expected != dict(self.params):
            payload["expected"] = self.expected
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


# Step payload variants; the wire form is always the step's string value.
@dataclass(frozen=True)
class TextPayload:
    text: str


@dataclass(frozen=True)
class OptionPayload:
    value: str


@dataclass(frozen=True)
class KeyPayload:
    key: str


@dataclass(frozen=True)
class WaitPayload:
    ms: int


@dataclass(frozen=True)
class TimeoutPayload:
    ms: int


@dataclass(frozen=True)
class AssertPayload:
    spec: AssertionSpec


StepPayload = Union[TextPayload, OptionPayload, KeyPayload, WaitPayload, TimeoutPayload, AssertPayload, None]


def parse_duration_ms(value: Optional[str], default: int) -> int:
    if value is None or str(value).strip() == "":
        return int(default)
    try:
        ms = int(float(str(value).strip()))
    except (TypeError, ValueError) as exc:
        raise StepValueError(f"Invalid duration '{value}'") from exc
    if ms < 0:
        raise StepValueError(f"Duration must be non-negative, got {ms}")
    return ms


def _require(action: str, value: Optional[str]) -> str:
    if value is None or value == "":
        raise StepValueError(f"Action '{action}' requires a value")
    return value


def parse_payload(
    action: str,
    value: Optional[str],
    *,
    default_wait_ms: int = DEFAULT_WAIT_MS,
    default_timeout_ms: int = DEFAULT_WAIT_FOR_SELECTOR_MS,
) -> StepPayload:
    """Interpret a step's string value according to its action kind."""

    if action in (ACTION_TYPE, ACTION_FILL):
        return TextPayload(_require(action, value))
    if action == ACTION_SELECT_OPTION:
        return OptionPayload(_require(action, value))
    if action == ACTION_KEYPRESS:
        return KeyPayload(_require(action, value))
    if action == ACTION_WAIT:
        return WaitPayload(parse_duration_ms(value, default_wait_ms))
    if action == ACTION_WAIT_FOR_SELECTOR:
        return TimeoutPayload(parse_duration_ms(value, default_timeout_ms))
    if action == ACTION_ASSERT:
        return AssertPayload(AssertionSpec.from_value(_require(action, value)))
    return None


@dataclass(frozen=True)
class Step:
    step: int
    action: str
    locator: Optional[Locator] = None
    value: Optional[str] = None
    description: Optional[str] = None

    @property
    def payload(self) -> StepPayload:
        return parse_payload(self.action, self.value)

    @classmethod
    def assertion(
        cls,
        step: int,
        spec: Union[AssertionSpec, Mapping[str, Any]],
        locator: Optional[Locator] = None,
        description: Optional[str] = None,
    ) -> "Step":
        spec = AssertionSpec.from_value(spec)
        return cls(step=step, action=ACTION_ASSERT, locator=locator, value=spec.to_json(), description=description)


@dataclass(frozen=True)
class Scenario:
    name: str
    steps: Tuple[Step, ...] = ()
    id: Optional[str] = None
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Freeze list input so a run cannot mutate its scenario.
        if not isinstance(self.steps, tuple):
            object.__setattr__(self, "steps", tuple(self.steps))
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))


@dataclass
class StepResult:
    step: int
    action: str
    status: str = STATUS_PENDING
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    description: Optional[str] = None
    error: Optional[str] = None
    stack: Optional[str] = None
    screenshot: Any = None
    failure_screenshot: Any = None

    @property
    def duration(self) -> Optional[int]:
        """Elapsed milliseconds, once the step has finished."""
        if self.start_time is None or self.end_time is None:
            return None
        return max(0, _to_ms(self.end_time - self.start_time) or 0)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "step": self.step,
            "action": self.action,
            "status": self.status,
            "startTime": _to_ms(self.start_time),
            "endTime": _to_ms(self.end_time),
            "duration": self.duration,
        }
        for key, value in (
            ("description", self.description),
            ("error", self.error),
            ("stack", self.stack),
            ("screenshot", _reference(self.screenshot)),
            ("failureScreenshot", _reference(self.failure_screenshot)),
        ):
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class ExecutionResult:
    scenario_name: str
    status: str = STATUS_RUNNING
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    steps: List[StepResult] = field(default_factory=list)
    error: Optional[str] = None
    stack: Optional[str] = None

    @property
    def duration(self) -> Optional[int]:
        if self.start_time is None or self.end_time is None:
            return None
        return max(0, _to_ms(self.end_time - self.start_time) or 0)

    def _count(self, status: str) -> int:
        return sum(1 for result in self.steps if result.status == status)

    @property
    def passed_count(self) -> int:
        return self._count(STATUS_PASSED)

    @property
    def failed_count(self) -> int:
        return self._count(STATUS_FAILED)

    @property
    def skipped_count(self) -> int:
        return self._count(STATUS_SKIPPED)

    @property
    def first_failure(self) -> Optional[StepResult]:
        for result in self.steps:
            if result.status == STATUS_FAILED:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "testName": self.scenario_name,
            "status": self.status,
            "startTime": _to_ms(self.start_time),
            "endTime": _to_ms(self.end_time),
            "duration": self.duration,
            "steps": [result.to_dict() for result in self.steps],
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.stack is not None:
            payload["stack"] = self.stack
        return payload


@dataclass(frozen=True)
class Bounds:
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    @classmethod
    def from_value(cls, value: Any) -> Optional["Bounds"]:
        if value is None:
            return None
        if isinstance(value, Bounds):
            return value
        if isinstance(value, Mapping):
            return cls(
                x=int(value.get("x", 0) or 0),
                y=int(value.get("y", 0) or 0),
                width=int(value.get("width", 0) or 0),
                height=int(value.get("height", 0) or 0),
            )
        x, y, width, height = value
        return cls(int(x), int(y), int(width), int(height))


@dataclass(frozen=True)
class ElementSnapshot:
    """Identifying attributes of an element captured while recording."""

    automation_id: Optional[str] = None
    name: Optional[str] = None
    class_name: Optional[str] = None
    control_type: Optional[str] = None
    bounds: Optional[Bounds] = None

    @classmethod
    def from_properties(cls, props: Mapping[str, Any]) -> "ElementSnapshot":
        def _text(key: str) -> Optional[str]:
            raw = props.get(key)
            if raw is None:
                return None
            text = str(raw).strip()
            return text or None

        return cls(
            automation_id=_text("automation_id"),
            name=_text("name"),
            class_name=_text("class_name"),
            control_type=_text("control_type"),
            bounds=Bounds.from_value(props.get("bounds")),
        )

    def identity(self) -> Tuple[Optional[str], ...]:
        return (self.automation_id, self.name, self.class_name, self.control_type)


@dataclass(frozen=True)
class RecordedEvent:
    kind: str
    timestamp: float
    element: Optional[ElementSnapshot] = None
    coordinates: Optional[Tuple[int, int]] = None
    value: Optional[str] = None
    key: Optional[str] = None
    button: Optional[str] = None
