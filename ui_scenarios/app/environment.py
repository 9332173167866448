# ui_scenarios/app/environment.py
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


@dataclass
class Paths:
    """Resolved filesystem locations used by the scenario engine."""

    root: Path
    data_root: Path
    scenarios_dir: Path
    snapshots_dir: Path
    evidence_dir: Path
    logs_dir: Path

    @property
    def log_file(self) -> Path:
        return self.logs_dir / "ui_scenarios.log"

    @property
    def flake_stats(self) -> Path:
        return self.data_root / "flake_stats.json"


def build_default_paths(data_root: Optional[Path] = None) -> Paths:
    """Create the default Paths collection and ensure directories exist."""
    package_root = Path(getattr(sys, "_MEIPASS", Path(__file__).resolve().parents[1]))
    root = Path(data_root) if data_root is not None else package_root / "data"
    paths = Paths(
        root=package_root,
        data_root=root,
        scenarios_dir=root / "scenarios",
        snapshots_dir=root / "snapshots",
        evidence_dir=root / "evidence",
        logs_dir=root / "logs",
    )
    _ensure_dirs(paths.data_root, paths.scenarios_dir, paths.snapshots_dir, paths.evidence_dir, paths.logs_dir)
    return paths


def _ensure_dirs(*directories: Path) -> None:
    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


def configure_logging(log_file: Optional[Path] = None, level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Attach a rotating file handler (once per file) and make sure console output exists."""

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root_logger = logging.getLogger()
    formatter = logging.Formatter(_LOG_FORMAT)
    if log_file is not None:
        log_file = Path(log_file)
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            attached = any(
                isinstance(handler, logging.FileHandler)
                and getattr(handler, "baseFilename", None) == str(log_file.resolve())
                for handler in root_logger.handlers
            )
            if not attached:
                file_handler = RotatingFileHandler(log_file, maxBytes=1_048_576, backupCount=3, encoding="utf-8")
                file_handler.setFormatter(formatter)
                root_logger.addHandler(file_handler)
        except Exception:
            logging.exception("Failed to initialize file logging")

    if not any(type(handler) is logging.StreamHandler for handler in root_logger.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root_logger.addHandler(console)
    root_logger.setLevel(level)
    return root_logger
