"""Parallel scenario runner: concurrency across scenarios, never within one."""

from __future__ import annotations

import logging
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Set, Union

from ..app.settings import EngineSettings
from .executor import StepExecutor, source_name
from .flake_tracker import FlakeTracker
from .models import STATUS_ERROR, STATUS_FAILED, ExecutionResult, Scenario

logger = logging.getLogger(__name__)

ScenarioSource = Union[Scenario, Mapping[str, Any], str]


class BatchRunner:
    """Runs scenarios in fixed-size chunks with one fresh executor per scenario.

    Results come back in input order. ``stop()`` stops the executors that
    are live and keeps later chunks from starting; scenarios that never ran
    are reported as failed with no steps.
    """

    def __init__(self, executor_factory: Callable[[], StepExecutor], max_parallel: int = 2) -> None:
        self._factory = executor_factory
        self.max_parallel = max(1, int(max_parallel))
        self._stopped = threading.Event()
        self._lock = threading.Lock()
        self._live: Set[StepExecutor] = set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()
        with self._lock:
            live = list(self._live)
        logger.info("Batch stop requested; stopping %d running scenario(s)", len(live))
        for executor in live:
            executor.stop()

    def run(self, scenarios: Iterable[ScenarioSource]) -> List[ExecutionResult]:
        pending = list(scenarios)
        self._stopped.clear()
        results: List[ExecutionResult] = []
        for offset in range(0, len(pending), self.max_parallel):
            chunk = pending[offset:offset + self.max_parallel]
            if self._stopped.is_set():
                results.extend(self._not_started(source) for source in chunk)
                continue
            logger.info("Running scenarios %d-%d of %d", offset + 1, offset + len(chunk), len(pending))
            with ThreadPoolExecutor(max_workers=len(chunk), thread_name_prefix="scenario") as pool:
                futures = [pool.submit(self._run_one, source) for source in chunk]
                results.extend(future.result() for future in futures)
        return results

    def _run_one(self, source: ScenarioSource) -> ExecutionResult:
        executor: Optional[StepExecutor] = None
        try:
            executor = self._factory()
            with self._lock:
                self._live.add(executor)
            if self._stopped.is_set():
                return self._not_started(source)
            return executor.run(source)
        except Exception as exc:
            logger.exception("Scenario '%s' could not be run", source_name(source))
            now = time.time()
            return ExecutionResult(
                scenario_name=source_name(source),
                status=STATUS_ERROR,
                start_time=now,
                end_time=now,
                error=str(exc),
                stack=traceback.format_exc(),
            )
        finally:
            if executor is not None:
                with self._lock:
                    self._live.discard(executor)

    @staticmethod
    def _not_started(source: ScenarioSource) -> ExecutionResult:
        now = time.time()
        return ExecutionResult(
            scenario_name=source_name(source),
            status=STATUS_FAILED,
            start_time=now,
            end_time=now,
            error="Batch stopped before this scenario started",
        )


def run_batch(
    scenarios: Iterable[ScenarioSource],
    driver: Any,
    max_parallel: Optional[int] = None,
    settings: Optional[EngineSettings] = None,
    **executor_kwargs: Any,
) -> List[ExecutionResult]:
    """Run scenarios against one driver with ``max_parallel`` executors at a time."""

    settings = settings or EngineSettings()
    limit = max_parallel if max_parallel is not None else settings.max_parallel
    if settings.flake_stats_path and "flake_tracker" not in executor_kwargs:
        # shared by every worker
        executor_kwargs["flake_tracker"] = FlakeTracker(Path(settings.flake_stats_path))
    runner = BatchRunner(lambda: StepExecutor(driver, settings=settings, **executor_kwargs), limit)
    return runner.run(scenarios)
