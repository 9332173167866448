"""Scenario execution engine: resolver, assertions, executor and recorder."""

from .assertions import AssertionFailedError, AssertionRegistry, AssertionResult, Expectation
from .batch import BatchRunner, run_batch
from .executor import ExecutorBusyError, StepExecutor
from .flake_tracker import FlakeTracker
from .hooks import InputHookSource
from .locator import ElementNotFoundError, LocatorResolver, NotFound, locator_from_snapshot
from .models import (
    AssertionSpec,
    ElementSnapshot,
    ExecutionResult,
    Locator,
    RecordedEvent,
    Scenario,
    ScenarioFormatError,
    Step,
    StepResult,
    StepValueError,
    Strategy,
)
from .recorder import ActionRecorder
from .serialization import dumps_scenario, load_scenario, loads_scenario, save_scenario
from .snapshots import ScreenshotComparator, SnapshotStore
