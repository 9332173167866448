"""
Step executor: runs a scenario's steps in order against a driver.

Per step the executor resolves the locator (except for steps that resolve
on their own), dispatches on the action kind and records a
:class:`StepResult`. Resolution, action and assertion problems are recovered
at the step boundary and abort the rest of the scenario with status
``failed``. Structural problems in the scenario itself end the run with
status ``error`` before any step executes.
"""

from __future__ import annotations

import logging
import threading
import time
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..app.settings import EngineSettings
from .assertions import AssertionFailedError, AssertionRegistry
from .driver.base import check_action_result
from .driver.exceptions import ActionTimeoutError, AutomationError
from .flake_tracker import FlakeTracker
from .locator import ElementNotFoundError, LocatorResolver, NotFound
from .models import (
    ACTION_ASSERT,
    ACTION_CHECK,
    ACTION_CLEAR,
    ACTION_CLICK,
    ACTION_DOUBLE_CLICK,
    ACTION_FILL,
    ACTION_HOVER,
    ACTION_KEYPRESS,
    ACTION_RIGHT_CLICK,
    ACTION_SCREENSHOT,
    ACTION_SELECT_OPTION,
    ACTION_TYPE,
    ACTION_UNCHECK,
    ACTION_WAIT,
    ACTION_WAIT_FOR_SELECTOR,
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_PASSED,
    STATUS_RUNNING,
    STATUS_SKIPPED,
    AssertionSpec,
    ExecutionResult,
    Scenario,
    ScenarioFormatError,
    Step,
    StepResult,
    StepValueError,
    parse_payload,
)
from .reporting.allure_helpers import attach_image, attach_json
from .serialization import coerce_scenario, load_scenario, validate_scenario
from .snapshots import ScreenshotComparator, SnapshotStore, snapshot_filename, to_image

logger = logging.getLogger(__name__)

StepHandler = Callable[[Step, Any], Any]


class ExecutorBusyError(RuntimeError):
    """Raised when a run is started on an executor that is already running."""


def source_name(source: Any) -> str:
    if isinstance(source, Scenario):
        return source.name
    if isinstance(source, Mapping) and source.get("name"):
        return str(source["name"])
    if isinstance(source, Path):
        return source.stem or "<scenario>"
    return "<scenario>"


class StepExecutor:
    """Runs one scenario at a time; create one executor per concurrent run."""

    def __init__(
        self,
        driver: Any,
        registry: Optional[AssertionRegistry] = None,
        resolver: Optional[LocatorResolver] = None,
        settings: Optional[EngineSettings] = None,
        flake_tracker: Optional[FlakeTracker] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.driver = driver
        self.settings = settings or EngineSettings()
        if flake_tracker is None and self.settings.flake_stats_path:
            flake_tracker = FlakeTracker(Path(self.settings.flake_stats_path))
        self.flake_tracker = flake_tracker
        self._clock = clock
        if resolver is None:
            resolver = LocatorResolver(driver, poll_interval=self.settings.poll_interval)
        self.resolver = resolver
        self._stop_event = resolver.stop_event
        if registry is None:
            registry = AssertionRegistry(driver, resolver=resolver, snapshots=self._snapshot_store())
        self.registry = registry
        self._run_lock = threading.Lock()
        self._running = False
        self._current: Optional[Scenario] = None
        self._log: List[StepResult] = []
        self._evidence_prefix = "adhoc"
        self._handlers: Dict[str, StepHandler] = {
            ACTION_CLICK: self._click,
            ACTION_DOUBLE_CLICK: self._double_click,
            ACTION_RIGHT_CLICK: self._right_click,
            ACTION_HOVER: self._hover,
            ACTION_TYPE: self._type,
            ACTION_FILL: self._fill,
            ACTION_CLEAR: self._clear,
            ACTION_CHECK: self._check,
            ACTION_UNCHECK: self._uncheck,
            ACTION_SELECT_OPTION: self._select_option,
            ACTION_KEYPRESS: self._keypress,
            ACTION_WAIT: self._wait,
            ACTION_WAIT_FOR_SELECTOR: self._wait_for_selector,
            ACTION_SCREENSHOT: self._screenshot,
            ACTION_ASSERT: self._assert,
        }

    def _snapshot_store(self) -> Optional[SnapshotStore]:
        if not self.settings.snapshot_dir:
            return None
        comparator = ScreenshotComparator(self.settings.use_ssim, self.settings.ssim_threshold)
        return SnapshotStore(
            self.settings.snapshot_dir,
            tolerance_percent=self.settings.snapshot_tolerance_percent,
            comparator=comparator,
        )

    # ------------------------------------------------------------------
    # Run control
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def current_scenario(self) -> Optional[Scenario]:
        return self._current

    @property
    def execution_log(self) -> List[StepResult]:
        return list(self._log)

    def clear_execution_log(self) -> None:
        self._log.clear()

    def stop(self) -> None:
        """Request a cooperative stop; checked between steps and inside waits.

        Every run starts with the flag cleared, so a stop requested while idle
        has no effect on the next run.
        """
        logger.info("Stop requested for scenario %s", self._current.name if self._current else "<idle>")
        self._stop_event.set()

    def run_file(self, path: Union[str, Path]) -> ExecutionResult:
        try:
            scenario = load_scenario(path)
        except (OSError, ScenarioFormatError) as exc:
            now = self._clock()
            logger.error("Could not load scenario %s: %s", path, exc)
            return ExecutionResult(
                scenario_name=source_name(Path(path)),
                status=STATUS_ERROR,
                start_time=now,
                end_time=now,
                error=str(exc),
                stack=traceback.format_exc(),
            )
        return self.run(scenario)

    def run(self, source: Union[Scenario, Mapping[str, Any], str]) -> ExecutionResult:
        if not self._run_lock.acquire(blocking=False):
            raise ExecutorBusyError("This executor is already running a scenario; create one executor per run")
        try:
            return self._run_locked(source)
        finally:
            self._stop_event.clear()
            self._run_lock.release()

    def _run_locked(self, source: Union[Scenario, Mapping[str, Any], str]) -> ExecutionResult:
        self._stop_event.clear()
        self._log = []
        result = ExecutionResult(scenario_name=source_name(source), status=STATUS_RUNNING, start_time=self._clock())
        try:
            scenario = validate_scenario(coerce_scenario(source))
        except (ScenarioFormatError, StepValueError) as exc:
            result.status = STATUS_ERROR
            result.error = str(exc)
            result.stack = traceback.format_exc()
            result.end_time = self._clock()
            logger.error("Scenario '%s' rejected: %s", result.scenario_name, exc)
            return result

        result.scenario_name = scenario.name
        self._current = scenario
        self._running = True
        self._evidence_prefix = snapshot_filename(scenario.name)[:-4]
        logger.info("Running scenario '%s' (%d steps)", scenario.name, len(scenario.steps))
        try:
            self._run_steps(scenario, result)
        except Exception as exc:
            result.status = STATUS_ERROR
            result.error = f"Scenario execution aborted: {exc}"
            result.stack = traceback.format_exc()
            logger.exception("Scenario '%s' aborted", scenario.name)
        finally:
            self._running = False
            self._current = None
            result.end_time = self._clock()

        logger.info(
            "Scenario '%s' %s: %d passed, %d failed, %d skipped in %sms",
            scenario.name,
            result.status,
            result.passed_count,
            result.failed_count,
            result.skipped_count,
            result.duration,
        )
        if self.settings.enable_allure:
            attach_json(f"{scenario.name} result", result.to_dict())
        return result

    def _run_steps(self, scenario: Scenario, result: ExecutionResult) -> None:
        steps = scenario.steps
        for index, step in enumerate(steps):
            if self._stop_event.is_set():
                self._skip_remaining(steps[index:], result)
                result.status = STATUS_FAILED
                result.error = f"Execution stopped before step {step.step}"
                return
            step_result = self.execute_step(step, scenario_name=scenario.name)
            result.steps.append(step_result)
            if step_result.status == STATUS_FAILED:
                result.status = STATUS_FAILED
                result.error = f"Step {step.step} ({step.action}) failed: {step_result.error}"
                if self._stop_event.is_set():
                    self._skip_remaining(steps[index + 1:], result)
                return
        result.status = STATUS_PASSED

    def _skip_remaining(self, steps: Any, result: ExecutionResult) -> None:
        now = self._clock()
        for step in steps:
            skipped = StepResult(
                step=step.step,
                action=step.action,
                status=STATUS_SKIPPED,
                start_time=now,
                end_time=now,
                description=step.description,
            )
            result.steps.append(skipped)
            self._log.append(skipped)

    # ------------------------------------------------------------------
    # Single step
    # ------------------------------------------------------------------

    def execute_step(self, step: Step, scenario_name: Optional[str] = None) -> StepResult:
        result = StepResult(
            step=step.step,
            action=step.action,
            status=STATUS_RUNNING,
            start_time=self._clock(),
            description=step.description,
        )
        logger.info(
            "Step %s: %s%s",
            step.step,
            step.action,
            f" on {step.locator.describe()}" if step.locator is not None else "",
        )
        try:
            element = None
            if step.locator is not None and not self._resolves_itself(step):
                resolved = self.resolver.resolve(step.locator)
                if isinstance(resolved, NotFound):
                    raise ElementNotFoundError(resolved)
                element = resolved
            handler = self._handlers.get(step.action)
            if handler is None:
                raise ScenarioFormatError(f"Unknown action: {step.action}")
            screenshot = handler(step, element)
            if screenshot is not None:
                result.screenshot = screenshot
            result.status = STATUS_PASSED
        except Exception as exc:
            result.status = STATUS_FAILED
            result.error = str(exc) or exc.__class__.__name__
            result.stack = traceback.format_exc()
            logger.warning("Step %s (%s) failed: %s", step.step, step.action, result.error)
            if self.settings.screenshot_on_failure:
                result.failure_screenshot = self._failure_screenshot(step)
            if self.flake_tracker is not None:
                self.flake_tracker.record_failure(scenario_name or "<adhoc>", f"step-{step.step}:{step.action}")
        finally:
            result.end_time = self._clock()
            self._log.append(result)
        return result

    @staticmethod
    def _resolves_itself(step: Step) -> bool:
        if step.action == ACTION_WAIT_FOR_SELECTOR:
            return True
        if step.action == ACTION_ASSERT:
            try:
                return AssertionSpec.from_value(step.value).type == "count"
            except (StepValueError, TypeError):
                return False
        return False

    def _payload(self, step: Step) -> Any:
        return parse_payload(
            step.action,
            step.value,
            default_wait_ms=self.settings.default_wait_ms,
            default_timeout_ms=self.settings.wait_for_selector_timeout_ms,
        )

    @staticmethod
    def _require_element(step: Step, element: Any) -> Any:
        if element is None:
            raise StepValueError(f"Action '{step.action}' requires a locator")
        return element

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def _store_evidence(self, image: Any, label: str) -> Any:
        """Persist an image under the evidence dir when one is configured."""
        if not self.settings.evidence_dir or image is None:
            return image
        directory = Path(self.settings.evidence_dir) / self._evidence_prefix
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{label}-{int(self._clock() * 1000)}.png"
        to_image(image).save(path, format="PNG")
        if self.settings.enable_allure:
            attach_image(label, path)
        return str(path)

    def _failure_screenshot(self, step: Step) -> Any:
        try:
            return self._store_evidence(self.driver.screenshot(None), f"step-{step.step}-failure")
        except Exception as exc:
            logger.debug("Failure screenshot for step %s not captured: %s", step.step, exc)
            return None

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    def _click(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.click(self._require_element(step, element)), step.action)

    def _double_click(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.double_click(self._require_element(step, element)), step.action)

    def _right_click(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.right_click(self._require_element(step, element)), step.action)

    def _hover(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.hover(self._require_element(step, element)), step.action)

    def _type(self, step: Step, element: Any) -> None:
        payload = self._payload(step)
        check_action_result(self.driver.type(self._require_element(step, element), payload.text), step.action)

    def _fill(self, step: Step, element: Any) -> None:
        payload = self._payload(step)
        check_action_result(self.driver.fill(self._require_element(step, element), payload.text), step.action)

    def _clear(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.clear(self._require_element(step, element)), step.action)

    def _check(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.check(self._require_element(step, element)), step.action)

    def _uncheck(self, step: Step, element: Any) -> None:
        check_action_result(self.driver.uncheck(self._require_element(step, element)), step.action)

    def _select_option(self, step: Step, element: Any) -> None:
        payload = self._payload(step)
        check_action_result(
            self.driver.select_option(self._require_element(step, element), payload.value), step.action
        )

    def _keypress(self, step: Step, element: Any) -> None:
        payload = self._payload(step)
        check_action_result(self.driver.press_key(payload.key), step.action)

    def _wait(self, step: Step, element: Any) -> None:
        payload = self._payload(step)
        if self._stop_event.wait(payload.ms / 1000.0):
            raise AutomationError("Execution stopped during wait")

    def _wait_for_selector(self, step: Step, element: Any) -> None:
        if step.locator is None:
            raise StepValueError("Action 'waitForSelector' requires a locator")
        payload = self._payload(step)
        found = self.resolver.resolve_with_timeout(
            step.locator,
            payload.ms,
            require_visible=self.settings.wait_for_selector_visible,
        )
        if isinstance(found, NotFound):
            if found.reason.startswith("timed out"):
                raise ActionTimeoutError(found.message)
            raise ElementNotFoundError(found)

    def _screenshot(self, step: Step, element: Any) -> Any:
        image = self.driver.screenshot(element)
        if image is None:
            raise AutomationError("Driver returned no screenshot")
        return self._store_evidence(image, f"step-{step.step}-screenshot")

    def _assert(self, step: Step, element: Any) -> None:
        payload = self._payload(step)
        target = step.locator if payload.spec.type == "count" else element
        outcome = self.registry.run_assertion(payload.spec, target)
        if not outcome.passed:
            raise AssertionFailedError(outcome)
        logger.info("Assertion '%s' passed: %s", outcome.type, outcome.message)
