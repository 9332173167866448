from __future__ import annotations

import threading
import time
from typing import Callable, List

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from ui_scenarios.automation.driver.exceptions import ControlNotFoundError, DriverUnavailableError
from ui_scenarios.automation.locator import (
    LocatorResolver,
    NotFound,
    is_generic_automation_id,
    locator_from_snapshot,
)
from ui_scenarios.automation.models import ElementSnapshot, Locator, Strategy


def _locator(*strategies: Strategy) -> Locator:
    return Locator(strategies=tuple(strategies))


def test_is_generic_automation_id_handles_common_cases() -> None:
    assert is_generic_automation_id(None) is True
    assert is_generic_automation_id("") is True
    assert is_generic_automation_id("Window") is True
    assert is_generic_automation_id("pane") is True
    assert is_generic_automation_id("MainWindowControl") is True
    assert is_generic_automation_id("SubmitButton") is False


def test_lower_priority_strategy_still_resolves(make_driver, make_element) -> None:
    target = make_element(automation_id="", name="Submit")
    driver = make_driver([target])
    locator = _locator(Strategy("automationId", "missing", 1), Strategy("name", "Submit", 2))

    found = LocatorResolver(driver).resolve(locator)

    assert found is target
    assert driver.lookups == [{"automation_id": "missing"}, {"name": "Submit"}]


def test_first_match_stops_the_search(make_driver, make_element) -> None:
    target = make_element(automation_id="ok", name="Submit")
    driver = make_driver([target])
    locator = _locator(Strategy("name", "Submit", 2), Strategy("automationId", "ok", 1))

    assert LocatorResolver(driver).resolve(locator) is target
    assert driver.lookups == [{"automation_id": "ok"}]


def test_ties_keep_declaration_order(make_driver) -> None:
    driver = make_driver([])
    locator = _locator(Strategy("className", "Edit", 1), Strategy("name", "Field", 1))

    LocatorResolver(driver).resolve(locator)

    assert driver.lookups == [{"class_name": "Edit"}, {"name": "Field"}]


def test_exhausted_strategies_report_not_found(make_driver) -> None:
    driver = make_driver([])
    locator = _locator(Strategy("automationId", "A", 1), Strategy("name", "A", 2))

    outcome = LocatorResolver(driver).resolve(locator)

    assert isinstance(outcome, NotFound)
    assert not outcome
    assert outcome.locator is locator
    assert outcome.tried == ('automationId="A"', 'name="A"')
    assert "Element not found" in outcome.message


def test_locator_without_usable_strategies_fails_fast(make_driver) -> None:
    driver = make_driver([])
    locator = _locator(Strategy("automationId", "   ", 1), Strategy("name", "", 2))

    outcome = LocatorResolver(driver).resolve(locator)

    assert isinstance(outcome, NotFound)
    assert outcome.invalid is True
    assert driver.lookups == []


def test_unsupported_xpath_is_skipped_not_matched(make_driver, make_element) -> None:
    target = make_element(name="Row")
    driver = make_driver([target])
    locator = _locator(Strategy("xpath", "//Row", 1), Strategy("name", "Row", 2))

    assert LocatorResolver(driver).resolve(locator) is target
    assert driver.lookups == [{"name": "Row"}]


def test_only_unsupported_strategies_is_not_a_success(make_driver) -> None:
    driver = make_driver([])
    outcome = LocatorResolver(driver).resolve(_locator(Strategy("xpath", "//Row", 1)))

    assert isinstance(outcome, NotFound)
    assert outcome.tried == ()
    assert outcome.reason == "no strategy supported by driver"


def test_driver_error_on_one_strategy_is_a_miss(make_driver, make_element) -> None:
    target = make_element(name="Save")
    driver = make_driver([target])
    driver.lookup_errors[("automation_id", "flaky")] = RuntimeError("COM error")
    locator = _locator(Strategy("automationId", "flaky", 1), Strategy("name", "Save", 2))

    assert LocatorResolver(driver).resolve(locator) is target


def test_missing_backend_is_not_treated_as_a_miss(make_driver, make_element) -> None:
    driver = make_driver([make_element(name="Save")])
    driver.lookup_errors[("automation_id", "A")] = DriverUnavailableError("pywinauto is required")
    locator = _locator(Strategy("automationId", "A", 1), Strategy("name", "Save", 2))

    with pytest.raises(DriverUnavailableError, match="pywinauto"):
        LocatorResolver(driver).resolve(locator)
    assert driver.lookups == [{"automation_id": "A"}]


def test_missing_window_propagates_from_resolve_all(make_driver) -> None:
    driver = make_driver([])
    driver.lookup_errors[("class_name", "Row")] = ControlNotFoundError("Unable to locate application window")

    with pytest.raises(ControlNotFoundError):
        LocatorResolver(driver).resolve_all(_locator(Strategy("className", "Row", 1)))


def test_resolve_all_uses_first_matching_strategy_only(make_driver, make_element) -> None:
    rows = [make_element(class_name="Row", name=f"r{i}") for i in range(3)]
    extra = make_element(control_type="DataItem", name="other")
    driver = make_driver(rows + [extra])
    locator = _locator(
        Strategy("automationId", "none", 1),
        Strategy("className", "Row", 2),
        Strategy("controlType", "DataItem", 3),
    )

    matches = LocatorResolver(driver).resolve_all(locator)

    assert matches == rows


def test_resolve_all_returns_empty_when_nothing_matches(make_driver) -> None:
    assert LocatorResolver(make_driver([])).resolve_all(_locator(Strategy("name", "x", 1))) == []


def test_wait_variant_times_out_without_raising(make_driver) -> None:
    resolver = LocatorResolver(make_driver([]), poll_interval=0.05)
    started = time.monotonic()

    outcome = resolver.resolve_with_timeout(_locator(Strategy("name", "never", 1)), 200)

    elapsed = time.monotonic() - started
    assert isinstance(outcome, NotFound)
    assert elapsed >= 0.2
    assert "timed out" in outcome.reason


def test_wait_variant_returns_element_once_it_appears(make_driver, make_element) -> None:
    driver = make_driver([])
    late = make_element(name="Dialog")
    attempts: List[int] = []

    def appear_on_third_lookup(_criteria) -> None:
        attempts.append(1)
        if len(attempts) == 3:
            driver.add(late)

    driver.on_find = appear_on_third_lookup
    outcome = LocatorResolver(driver, poll_interval=0.01).resolve_with_timeout(
        _locator(Strategy("name", "Dialog", 1)), 2000
    )

    assert outcome is late


def test_wait_variant_requires_visibility_when_asked(make_driver, make_element) -> None:
    hidden = make_element(name="Toast", offscreen=True)
    resolver = LocatorResolver(make_driver([hidden]), poll_interval=0.01)

    outcome = resolver.resolve_with_timeout(_locator(Strategy("name", "Toast", 1)), 50, require_visible=True)

    assert isinstance(outcome, NotFound)
    assert resolver.resolve_with_timeout(_locator(Strategy("name", "Toast", 1)), 50) is hidden


def test_wait_variant_is_cancellable(make_driver) -> None:
    stop = threading.Event()
    resolver = LocatorResolver(make_driver([]), poll_interval=0.05, stop_event=stop)
    timer = threading.Timer(0.1, stop.set)
    timer.start()
    started = time.monotonic()
    try:
        outcome = resolver.resolve_with_timeout(_locator(Strategy("name", "never", 1)), 5000)
    finally:
        timer.cancel()

    assert isinstance(outcome, NotFound)
    assert outcome.reason == "cancelled"
    assert time.monotonic() - started < 2.0


def test_locator_from_snapshot_orders_identifying_attributes() -> None:
    snapshot = ElementSnapshot(automation_id="SaveBtn", name="Save", class_name="Button", control_type="Button")

    locator = locator_from_snapshot(snapshot)

    assert [(s.type, s.value, s.priority) for s in locator.strategies] == [
        ("automationId", "SaveBtn", 1),
        ("name", "Save", 2),
        ("className", "Button", 3),
        ("controlType", "Button", 4),
    ]


def test_locator_from_snapshot_skips_generic_ids() -> None:
    locator = locator_from_snapshot(ElementSnapshot(automation_id="pane", name="Canvas"))
    assert [s.type for s in locator.strategies] == ["name"]
    assert locator_from_snapshot(ElementSnapshot(automation_id="window")) is None


_TYPES = ["automationId", "name", "className", "controlType"]
_CRITERIA = {"automationId": "automation_id", "name": "name", "className": "class_name", "controlType": "control_type"}


@settings(max_examples=60, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    priorities=st.lists(st.integers(min_value=0, max_value=5), min_size=1, max_size=6),
    data=st.data(),
)
def test_strategies_are_tried_in_ascending_priority(
    make_driver: Callable, make_element: Callable, priorities: List[int], data
) -> None:
    strategies = [
        Strategy(data.draw(st.sampled_from(_TYPES)), f"v{idx}", priority)
        for idx, priority in enumerate(priorities)
    ]
    winner_index = data.draw(st.one_of(st.none(), st.integers(min_value=0, max_value=len(strategies) - 1)))
    elements = []
    if winner_index is not None:
        winner = strategies[winner_index]
        elements.append(make_element(**{_CRITERIA[winner.type]: winner.value}))
    driver = make_driver(elements)
    locator = Locator(strategies=tuple(strategies))

    outcome = LocatorResolver(driver).resolve(locator)

    expected_order = [s for _, _, s in sorted((s.priority, i, s) for i, s in enumerate(strategies))]
    tried = [{_CRITERIA[s.type]: s.value} for s in expected_order]
    if winner_index is None:
        assert isinstance(outcome, NotFound)
        assert driver.lookups == tried
    else:
        stop_at = expected_order.index(strategies[winner_index])
        assert outcome is elements[0]
        assert driver.lookups == tried[: stop_at + 1]
