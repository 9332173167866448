"""Allure attachments for step evidence."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

try:
    import allure  # type: ignore
except Exception:  # pragma: no cover - optional dependency
    allure = None  # type: ignore

logger = logging.getLogger(__name__)


def allure_available() -> bool:
    return allure is not None


def attach_image(name: str, path: Path, attachment_type: Optional[Any] = None) -> bool:
    if allure is None or not path.exists():
        return False
    attachment_type = attachment_type or allure.attachment_type.PNG
    try:
        allure.attach(path.read_bytes(), name=name, attachment_type=attachment_type)
        return True
    except Exception as exc:
        logger.debug("Allure image attachment failed for %s: %s", path, exc)
        return False


def attach_json(name: str, payload: Mapping[str, Any]) -> bool:
    """Attach a serialisable mapping, e.g. an ExecutionResult's ``to_dict()``."""
    if allure is None:
        return False
    try:
        body = json.dumps(payload, indent=2, default=str)
        allure.attach(body, name=name, attachment_type=allure.attachment_type.JSON)
        return True
    except Exception as exc:
        logger.debug("Allure JSON attachment failed for %s: %s", name, exc)
        return False
