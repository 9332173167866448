"""Per-scenario failure statistics persisted as JSON."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)


@dataclass
class FlakeTracker:
    """Counts failing steps per scenario so repeat offenders stand out.

    Shared between batch workers, so updates go through a lock.
    """

    path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._stats: Dict[str, Dict[str, int]] = {}
        if self.path.exists():
            try:
                loaded = json.loads(self.path.read_text(encoding="utf-8"))
            except Exception as exc:
                logger.warning("Resetting unreadable flake stats %s: %s", self.path, exc)
                loaded = {}
            if isinstance(loaded, dict):
                self._stats = {
                    str(scenario): {str(k): int(v) for k, v in steps.items()}
                    for scenario, steps in loaded.items()
                    if isinstance(steps, dict)
                }

    def record_failure(self, scenario: str, identifier: str) -> None:
        with self._lock:
            scenario_stats = self._stats.setdefault(scenario, {})
            scenario_stats[identifier] = scenario_stats.get(identifier, 0) + 1
            self._flush()

    def failures(self, scenario: str) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats.get(scenario, {}))

    def most_frequent(self, limit: int = 10) -> List[Tuple[str, str, int]]:
        with self._lock:
            rows = [
                (scenario, identifier, count)
                for scenario, steps in self._stats.items()
                for identifier, count in steps.items()
            ]
        rows.sort(key=lambda row: (-row[2], row[0], row[1]))
        return rows[:limit]

    def _flush(self) -> None:
        try:
            self.path.write_text(json.dumps(self._stats, indent=2, sort_keys=True), encoding="utf-8")
        except Exception as exc:
            logger.debug("Could not write flake stats %s: %s", self.path, exc)
