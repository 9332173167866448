from __future__ import annotations

import threading
import time
from typing import Any, List

from ui_scenarios.app.settings import EngineSettings
from ui_scenarios.automation.batch import BatchRunner, run_batch
from ui_scenarios.automation.executor import StepExecutor
from ui_scenarios.automation.models import (
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_PASSED,
    Locator,
    Scenario,
    Step,
    Strategy,
)

_SETTINGS = EngineSettings(enable_allure=False, poll_interval=0.01)


def _click(value: str) -> Step:
    return Step(1, "click", Locator(strategies=(Strategy("automationId", value, 1),)))


def test_results_follow_input_order(make_driver, make_element) -> None:
    driver = make_driver([make_element(automation_id="A")])
    scenarios = [Scenario(f"s{i}", [_click("A" if i % 2 == 0 else "Nope")]) for i in range(5)]

    results = run_batch(scenarios, driver, max_parallel=2, settings=_SETTINGS)

    assert [r.scenario_name for r in results] == ["s0", "s1", "s2", "s3", "s4"]
    assert [r.status for r in results] == [STATUS_PASSED, STATUS_FAILED] * 2 + [STATUS_PASSED]


def test_concurrency_never_exceeds_max_parallel(make_driver, make_element) -> None:
    driver = make_driver([make_element(automation_id="A")])
    lock = threading.Lock()
    active = [0]
    peak = [0]

    def slow_click(element: Any) -> None:
        with lock:
            active[0] += 1
            peak[0] = max(peak[0], active[0])
        time.sleep(0.05)
        with lock:
            active[0] -= 1

    driver.click = slow_click
    runner = BatchRunner(lambda: StepExecutor(driver, settings=_SETTINGS), max_parallel=3)

    results = runner.run([Scenario(f"s{i}", [_click("A")]) for i in range(7)])

    assert all(r.status == STATUS_PASSED for r in results)
    assert 1 <= peak[0] <= 3


def test_each_scenario_gets_its_own_executor(make_driver, make_element) -> None:
    driver = make_driver([make_element(automation_id="A")])
    created: List[StepExecutor] = []

    def factory() -> StepExecutor:
        executor = StepExecutor(driver, settings=_SETTINGS)
        created.append(executor)
        return executor

    BatchRunner(factory, max_parallel=2).run([Scenario(f"s{i}", [_click("A")]) for i in range(4)])

    assert len({id(e) for e in created}) == 4


def test_stop_marks_unstarted_scenarios_failed(make_driver, make_element) -> None:
    driver = make_driver([make_element(automation_id="A")])
    runner_box: List[BatchRunner] = []
    started = threading.Event()

    def blocking_click(element: Any) -> None:
        started.set()
        runner_box[0].stop()

    driver.click = blocking_click
    runner = BatchRunner(lambda: StepExecutor(driver, settings=_SETTINGS), max_parallel=1)
    runner_box.append(runner)
    scenarios = [Scenario(f"s{i}", [_click("A"), _click("A")]) for i in range(3)]

    results = runner.run(scenarios)

    assert started.is_set()
    assert runner.stopped is True
    assert results[0].status == STATUS_FAILED
    assert results[0].skipped_count == 1
    for later in results[1:]:
        assert later.status == STATUS_FAILED
        assert later.steps == []
        assert "stopped" in (later.error or "")


def test_stop_while_creating_an_executor_skips_that_scenario(make_driver, make_element) -> None:
    driver = make_driver([make_element(automation_id="A")])
    runner_box: List[BatchRunner] = []

    def factory() -> StepExecutor:
        runner_box[0].stop()
        return StepExecutor(driver, settings=_SETTINGS)

    runner = BatchRunner(factory, max_parallel=1)
    runner_box.append(runner)

    results = runner.run([Scenario(f"s{i}", [_click("A")]) for i in range(2)])

    assert [r.status for r in results] == [STATUS_FAILED, STATUS_FAILED]
    assert all(r.steps == [] for r in results)
    assert "Batch stopped" in (results[0].error or "")
    assert ("click", "A") not in driver.calls


def test_factory_errors_become_error_results(make_driver) -> None:
    def broken_factory() -> StepExecutor:
        raise RuntimeError("no driver session")

    results = BatchRunner(broken_factory).run([Scenario("s", [_click("A")])])

    assert results[0].status == STATUS_ERROR
    assert results[0].error == "no driver session"


def test_invalid_scenario_does_not_affect_siblings(make_driver, make_element) -> None:
    driver = make_driver([make_element(automation_id="A")])
    scenarios = [Scenario("bad", [Step(1, "teleport")]), Scenario("good", [_click("A")])]

    results = run_batch(scenarios, driver, max_parallel=2, settings=_SETTINGS)

    assert [r.status for r in results] == [STATUS_ERROR, STATUS_PASSED]
