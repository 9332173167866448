from __future__ import annotations

import pytest

from ui_scenarios.automation.models import (
    STATUS_FAILED,
    STATUS_PASSED,
    STATUS_SKIPPED,
    AssertPayload,
    ElementSnapshot,
    ExecutionResult,
    KeyPayload,
    Locator,
    Scenario,
    Step,
    StepResult,
    StepValueError,
    Strategy,
    TextPayload,
    TimeoutPayload,
    WaitPayload,
    parse_duration_ms,
    parse_payload,
)


def test_payload_variants_by_action() -> None:
    assert parse_payload("fill", "abc") == TextPayload("abc")
    assert parse_payload("keypress", "enter") == KeyPayload("enter")
    assert parse_payload("wait", None) == WaitPayload(1000)
    assert parse_payload("wait", "250") == WaitPayload(250)
    assert parse_payload("waitForSelector", "") == TimeoutPayload(30000)
    assert parse_payload("waitForSelector", None, default_timeout_ms=5) == TimeoutPayload(5)
    assert parse_payload("click", "ignored") is None
    assert isinstance(parse_payload("assert", '{"type": "visible"}'), AssertPayload)


@pytest.mark.parametrize("action", ["type", "fill", "selectOption", "keypress", "assert"])
def test_required_values(action: str) -> None:
    with pytest.raises(StepValueError):
        parse_payload(action, None)


def test_type_accepts_whitespace_text() -> None:
    assert parse_payload("type", " ") == TextPayload(" ")


def test_duration_parsing() -> None:
    assert parse_duration_ms("1.9", 0) == 1
    with pytest.raises(StepValueError):
        parse_duration_ms("-5", 0)
    with pytest.raises(StepValueError):
        parse_duration_ms("soon", 0)


def test_locator_ordering_skips_blank_strategies() -> None:
    locator = Locator(
        strategies=(
            Strategy("name", "Save", 2),
            Strategy("automationId", "  ", 1),
            Strategy("className", "Button", 2),
        )
    )
    assert [s.type for s in locator.ordered()] == ["name", "className"]
    assert locator.is_valid
    assert Locator().describe() == "<empty locator>"


def test_scenario_freezes_step_lists() -> None:
    steps = [Step(1, "click")]
    scenario = Scenario("s", steps, tags=["a"])
    steps.append(Step(2, "click"))
    assert len(scenario.steps) == 1
    assert scenario.tags == ("a",)


def test_step_assertion_builder_serialises_spec() -> None:
    step = Step.assertion(4, {"type": "text", "expected": "Hi"})
    assert step.action == "assert"
    assert step.payload.spec.type == "text"


def test_result_counts_and_wire_shape() -> None:
    result = ExecutionResult(scenario_name="demo", status=STATUS_FAILED, start_time=10.0, end_time=10.5)
    result.steps = [
        StepResult(1, "click", STATUS_PASSED, 10.0, 10.1, screenshot="shots/1.png"),
        StepResult(2, "fill", STATUS_FAILED, 10.1, 10.3, error="boom"),
        StepResult(3, "click", STATUS_SKIPPED, 10.3, 10.3),
    ]

    data = result.to_dict()

    assert (result.passed_count, result.failed_count, result.skipped_count) == (1, 1, 1)
    assert result.first_failure is result.steps[1]
    assert data["testName"] == "demo"
    assert data["duration"] == 500
    assert data["steps"][0]["screenshot"] == "shots/1.png"
    assert data["steps"][1]["error"] == "boom"
    assert data["steps"][1]["duration"] == 200
    assert "error" not in data["steps"][2]


def test_element_snapshot_from_properties() -> None:
    snapshot = ElementSnapshot.from_properties(
        {"automation_id": " ", "name": "OK", "control_type": "Button", "bounds": (1, 2, 3, 4)}
    )
    assert snapshot.automation_id is None
    assert snapshot.bounds.width == 3
    assert snapshot.identity() == (None, "OK", None, "Button")
