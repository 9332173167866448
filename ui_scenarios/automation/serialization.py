"""
Loading and saving of scenario documents.

A scenario document is YAML (or JSON when the file extension is ``.json``)
with a top-level ``name``, optional ``description``/``tags`` and a list of
``steps``. Each step declares an ``action`` and, where applicable, a
``locator`` in the ``{selectors: [{type, value, priority}]}`` shape or as the
legacy selector string ``automationId="x" name="y"``. Assertion steps carry
their spec serialized as JSON in ``value``; a mapping is accepted there too
and serialized on load.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from .models import (
    DEFAULT_STRATEGY_PRIORITIES,
    KNOWN_ACTIONS,
    STRATEGY_CRITERIA,
    Locator,
    Scenario,
    ScenarioFormatError,
    Step,
    Strategy,
)

_SELECTOR_PATTERN = re.compile(r'(?<![\w])(automationId|name|className|controlType|xpath)="([^"]*)"')


def parse_selector(selector: str) -> Locator:
    """Parse the legacy ``key="value"`` selector string into a Locator.

    Unrecognised text yields a locator with no strategies; resolving it fails
    fast instead of rejecting the whole scenario.
    """

    text = str(selector or "").strip()
    strategies: List[Strategy] = []
    for match in _SELECTOR_PATTERN.finditer(text):
        kind, value = match.group(1), match.group(2)
        strategies.append(Strategy(type=kind, value=value, priority=DEFAULT_STRATEGY_PRIORITIES[kind]))
    if not strategies and text.startswith("/"):
        strategies.append(Strategy(type="xpath", value=text, priority=DEFAULT_STRATEGY_PRIORITIES["xpath"]))
    return Locator(strategies=tuple(strategies), name=text or None)


def _strategy_from_dict(data: Any) -> Strategy:
    if not isinstance(data, Mapping):
        raise ScenarioFormatError(f"Selector entries must be mappings, got {type(data).__name__}")
    kind = data.get("type")
    if kind not in STRATEGY_CRITERIA:
        raise ScenarioFormatError(f"Unknown locator strategy type: {kind}")
    raw_priority = data.get("priority", DEFAULT_STRATEGY_PRIORITIES[kind])
    try:
        priority = int(raw_priority)
    except (TypeError, ValueError) as exc:
        raise ScenarioFormatError(f"Invalid priority '{raw_priority}' for {kind} selector") from exc
    if priority < 0:
        raise ScenarioFormatError(f"Priority must be non-negative, got {priority}")
    value = data.get("value")
    return Strategy(type=kind, value="" if value is None else str(value), priority=priority)


def locator_from_value(value: Any) -> Optional[Locator]:
    if value is None or value == "":
        return None
    if isinstance(value, Locator):
        return value
    if isinstance(value, str):
        return parse_selector(value)
    if isinstance(value, Mapping):
        selectors = value.get("selectors", value.get("strategies"))
        if selectors is None and "selector" in value:
            legacy = parse_selector(str(value["selector"]))
            return Locator(strategies=legacy.strategies, name=value.get("name") or legacy.name)
        if not isinstance(selectors, list):
            raise ScenarioFormatError("Locator mapping must contain a 'selectors' list")
        name = value.get("name")
        return Locator(
            strategies=tuple(_strategy_from_dict(item) for item in selectors),
            name=str(name) if name else None,
        )
    if isinstance(value, list):
        return Locator(strategies=tuple(_strategy_from_dict(item) for item in value))
    raise ScenarioFormatError(f"Unsupported locator value: {value!r}")


def locator_to_dict(locator: Locator) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "selectors": [
            {"type": s.type, "value": s.value, "priority": s.priority} for s in locator.strategies
        ]
    }
    if locator.name:
        payload["name"] = locator.name
    return payload


def _coerce_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (Mapping, list)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def step_from_dict(data: Any, position: int) -> Step:
    if not isinstance(data, Mapping):
        raise ScenarioFormatError(f"Step {position} must be a mapping")
    action = data.get("action")
    if not isinstance(action, str) or not action:
        raise ScenarioFormatError(f"Step {position} is missing its action")
    raw_number = data.get("step", position)
    try:
        number = int(raw_number)
    except (TypeError, ValueError) as exc:
        raise ScenarioFormatError(f"Step {position} has an invalid step number '{raw_number}'") from exc
    locator_value = data.get("locator", data.get("selector"))
    description = data.get("description")
    return Step(
        step=number,
        action=action,
        locator=locator_from_value(locator_value),
        value=_coerce_value(data.get("value")),
        description=str(description) if description is not None else None,
    )


def step_to_dict(step: Step) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"step": step.step, "action": step.action}
    if step.locator is not None:
        payload["locator"] = locator_to_dict(step.locator)
    if step.value is not None:
        payload["value"] = step.value
    if step.description is not None:
        payload["description"] = step.description
    return payload


def scenario_from_dict(data: Any) -> Scenario:
    if not isinstance(data, Mapping):
        raise ScenarioFormatError("Scenario document must be a mapping")
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ScenarioFormatError("Scenario is missing its name")
    steps = data.get("steps") or []
    if not isinstance(steps, list):
        raise ScenarioFormatError("Scenario 'steps' must be a list")
    tags = data.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    identifier = data.get("id")
    description = data.get("description")
    return Scenario(
        name=name,
        steps=tuple(step_from_dict(item, idx) for idx, item in enumerate(steps, start=1)),
        id=str(identifier) if identifier is not None else None,
        description=str(description) if description is not None else None,
        tags=tuple(str(tag) for tag in tags),
    )


def scenario_to_dict(scenario: Scenario) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"name": scenario.name}
    if scenario.id is not None:
        payload["id"] = scenario.id
    if scenario.description is not None:
        payload["description"] = scenario.description
    if scenario.tags:
        payload["tags"] = list(scenario.tags)
    payload["steps"] = [step_to_dict(step) for step in scenario.steps]
    return payload


def validate_scenario(scenario: Scenario) -> Scenario:
    """Reject scenarios the executor could not even attempt.

    Runs before any step executes so structural problems surface as a
    scenario-level error with no step results.
    """

    if not isinstance(scenario, Scenario):
        raise ScenarioFormatError(f"Expected a Scenario, got {type(scenario).__name__}")
    for step in scenario.steps:
        if step.action not in KNOWN_ACTIONS:
            raise ScenarioFormatError(f"Unknown action '{step.action}' in step {step.step}")
        if step.locator is None:
            continue
        for strategy in step.locator.strategies:
            if strategy.type not in STRATEGY_CRITERIA:
                raise ScenarioFormatError(f"Unknown locator strategy type: {strategy.type}")
            if strategy.priority < 0:
                raise ScenarioFormatError(f"Priority must be non-negative in step {step.step}")
    return scenario


def loads_scenario(text: str, fmt: str = "yaml") -> Scenario:
    try:
        data = json.loads(text) if fmt == "json" else yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ScenarioFormatError(f"Could not parse scenario document: {exc}") from exc
    return scenario_from_dict(data)


def load_scenario(path: Union[str, Path]) -> Scenario:
    path = Path(path)
    content = path.read_text(encoding="utf-8")
    fmt = "json" if path.suffix.lower() == ".json" else "yaml"
    return loads_scenario(content, fmt)


def dumps_scenario(scenario: Scenario, fmt: str = "yaml") -> str:
    data = scenario_to_dict(scenario)
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def save_scenario(scenario: Scenario, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fmt = "json" if path.suffix.lower() == ".json" else "yaml"
    path.write_text(dumps_scenario(scenario, fmt), encoding="utf-8")
    return path


def coerce_scenario(source: Union[Scenario, Mapping[str, Any], str]) -> Scenario:
    """Accept a Scenario, a mapping or a YAML/JSON document string."""

    if isinstance(source, Scenario):
        return source
    if isinstance(source, Mapping):
        return scenario_from_dict(source)
    if isinstance(source, str):
        stripped = source.lstrip()
        fmt = "json" if stripped.startswith("{") else "yaml"
        return loads_scenario(source, fmt)
    raise ScenarioFormatError(f"Unsupported scenario input: {type(source).__name__}")
