from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class EngineSettings:
    default_wait_ms: int = 1000
    wait_for_selector_timeout_ms: int = 30000
    wait_for_selector_visible: bool = False
    poll_interval: float = 0.1
    screenshot_on_failure: bool = True
    max_parallel: int = 2
    snapshot_dir: Optional[str] = None
    evidence_dir: Optional[str] = None
    snapshot_tolerance_percent: float = 0.0
    use_ssim: bool = False
    ssim_threshold: float = 0.99
    enable_allure: bool = True
    flake_stats_path: Optional[str] = None
    automation_backend: str = "uia"
    target_app_regex: Optional[str] = None
    appium_server_url: Optional[str] = None
    appium_capabilities: Optional[Dict[str, Any]] = None

    @classmethod
    def load(cls, path: Path) -> EngineSettings:
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
            return cls()
        if not isinstance(data, dict):
            return cls()
        return cls(
            default_wait_ms=int(data.get("default_wait_ms", cls.default_wait_ms)),
            wait_for_selector_timeout_ms=int(data.get("wait_for_selector_timeout_ms", cls.wait_for_selector_timeout_ms)),
            wait_for_selector_visible=bool(data.get("wait_for_selector_visible", cls.wait_for_selector_visible)),
            poll_interval=float(data.get("poll_interval", cls.poll_interval)),
            screenshot_on_failure=bool(data.get("screenshot_on_failure", cls.screenshot_on_failure)),
            max_parallel=max(1, int(data.get("max_parallel", cls.max_parallel))),
            snapshot_dir=data.get("snapshot_dir"),
            evidence_dir=data.get("evidence_dir"),
            snapshot_tolerance_percent=float(data.get("snapshot_tolerance_percent", cls.snapshot_tolerance_percent)),
            use_ssim=bool(data.get("use_ssim", cls.use_ssim)),
            ssim_threshold=float(data.get("ssim_threshold", cls.ssim_threshold)),
            enable_allure=bool(data.get("enable_allure", cls.enable_allure)),
            flake_stats_path=data.get("flake_stats_path"),
            automation_backend=str(data.get("automation_backend", cls.automation_backend)).lower(),
            target_app_regex=data.get("target_app_regex", cls.target_app_regex),
            appium_server_url=data.get("appium_server_url"),
            appium_capabilities=data.get("appium_capabilities") if isinstance(data.get("appium_capabilities"), dict) else None,
        )

    def save(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(asdict(self), indent=2), encoding="utf-8")
        except Exception as exc:
            logger.warning("Could not save settings to %s: %s", path, exc)
