"""Runtime configuration loading helpers for the scenario engine."""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .environment import configure_logging
from .settings import EngineSettings

logger = logging.getLogger(__name__)

_ENV_PREFIX = "UI_SCENARIOS_"
_BOOL_TRUE = {"1", "true", "yes", "on"}
_BOOL_FALSE = {"0", "false", "no", "off"}


@dataclass(slots=True)
class RuntimeConfig:
    """Declarative overrides sourced from environment variables or config files."""

    config_source: Optional[Path] = None
    default_wait_ms: Optional[int] = None
    wait_for_selector_timeout_ms: Optional[int] = None
    wait_for_selector_visible: Optional[bool] = None
    poll_interval: Optional[float] = None
    screenshot_on_failure: Optional[bool] = None
    max_parallel: Optional[int] = None
    snapshot_dir: Optional[str] = None
    evidence_dir: Optional[str] = None
    snapshot_tolerance_percent: Optional[float] = None
    use_ssim: Optional[bool] = None
    ssim_threshold: Optional[float] = None
    enable_allure: Optional[bool] = None
    flake_stats_path: Optional[str] = None
    automation_backend: Optional[str] = None
    target_app_regex: Optional[str] = None
    appium_server_url: Optional[str] = None
    log_level: Optional[str] = None

    def apply_to_settings(self, settings: EngineSettings) -> None:
        """Project runtime overrides onto persisted settings without destroying saved values."""

        for name in (
            "default_wait_ms",
            "wait_for_selector_timeout_ms",
            "wait_for_selector_visible",
            "poll_interval",
            "screenshot_on_failure",
            "snapshot_dir",
            "evidence_dir",
            "snapshot_tolerance_percent",
            "use_ssim",
            "ssim_threshold",
            "enable_allure",
            "flake_stats_path",
            "target_app_regex",
            "appium_server_url",
        ):
            value = getattr(self, name)
            if value is not None:
                setattr(settings, name, value)
        if self.max_parallel is not None:
            settings.max_parallel = max(1, self.max_parallel)
        if self.automation_backend is not None:
            settings.automation_backend = self.automation_backend.lower()

    def configure_logging(self, log_file: Optional[Path] = None) -> logging.Logger:
        """Install the engine's log handlers at ``log_level`` (INFO when unset)."""

        return configure_logging(log_file, level=self.log_level or logging.INFO)


def load_runtime_config(
    env: Mapping[str, str] | None = None,
    config_path: Optional[Path] = None,
) -> RuntimeConfig:
    """Load runtime configuration overrides from environment variables and optional INI files."""

    source_env = os.environ if env is None else env
    config_file = _determine_config_path(source_env, config_path)
    config = RuntimeConfig(config_source=config_file)

    if config_file is not None and config_file.is_file():
        parser: Optional[configparser.ConfigParser] = configparser.ConfigParser()
        try:
            parser.read(config_file, encoding="utf-8")
        except configparser.Error as exc:
            logger.warning("Ignoring malformed config file %s: %s", config_file, exc)
            parser = None
        if parser and parser.has_section("runtime"):
            _apply_overrides(config, parser["runtime"], "")

    _apply_overrides(config, source_env, _ENV_PREFIX)
    return config


def _determine_config_path(env: Mapping[str, str], explicit: Optional[Path]) -> Optional[Path]:
    if explicit is not None:
        return explicit
    env_override = env.get(f"{_ENV_PREFIX}CONFIG_FILE")
    if env_override:
        return Path(env_override).expanduser()
    candidates = (
        Path(env.get(f"{_ENV_PREFIX}ROOT", "")) / "ui_scenarios.ini" if env.get(f"{_ENV_PREFIX}ROOT") else None,
        Path.cwd() / "ui_scenarios.ini",
        Path.cwd() / "ui-scenarios.ini",
    )
    for candidate in candidates:
        if candidate and candidate.is_file():
            return candidate
    return None


def _apply_overrides(config: RuntimeConfig, source: Mapping[str, str], prefix: str) -> None:
    """Read every known key from ``source``; INI keys are lower case, env keys upper case."""

    def key(name: str) -> str:
        return f"{prefix}{name.upper()}" if prefix else name

    config.default_wait_ms = _get_int(source, key("default_wait_ms"), config.default_wait_ms)
    config.wait_for_selector_timeout_ms = _get_int(
        source, key("wait_for_selector_timeout_ms"), config.wait_for_selector_timeout_ms
    )
    config.wait_for_selector_visible = _get_bool(
        source, key("wait_for_selector_visible"), config.wait_for_selector_visible
    )
    config.poll_interval = _get_float(source, key("poll_interval"), config.poll_interval)
    config.screenshot_on_failure = _get_bool(source, key("screenshot_on_failure"), config.screenshot_on_failure)
    config.max_parallel = _get_int(source, key("max_parallel"), config.max_parallel)
    config.snapshot_dir = source.get(key("snapshot_dir"), config.snapshot_dir)
    config.evidence_dir = source.get(key("evidence_dir"), config.evidence_dir)
    config.snapshot_tolerance_percent = _get_float(
        source, key("snapshot_tolerance_percent"), config.snapshot_tolerance_percent
    )
    config.use_ssim = _get_bool(source, key("use_ssim"), config.use_ssim)
    config.ssim_threshold = _get_float(source, key("ssim_threshold"), config.ssim_threshold)
    config.enable_allure = _get_bool(source, key("enable_allure"), config.enable_allure)
    config.flake_stats_path = source.get(key("flake_stats_path"), config.flake_stats_path)
    config.automation_backend = source.get(key("automation_backend"), config.automation_backend)
    config.target_app_regex = source.get(key("target_app_regex"), config.target_app_regex)
    config.appium_server_url = source.get(key("appium_server_url"), config.appium_server_url)
    config.log_level = source.get(key("log_level"), config.log_level)


def _get_int(source: Mapping[str, str], key: str, default: Optional[int]) -> Optional[int]:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return int(float(str(raw).strip()))
    except (TypeError, ValueError):
        return default


def _get_float(source: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    raw = source.get(key)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except (TypeError, ValueError):
        return default


def _get_bool(source: Mapping[str, str], key: str, default: Optional[bool]) -> Optional[bool]:
    raw = source.get(key)
    if raw is None:
        return default
    value = str(raw).strip().lower()
    if value in _BOOL_TRUE:
        return True
    if value in _BOOL_FALSE:
        return False
    return default
