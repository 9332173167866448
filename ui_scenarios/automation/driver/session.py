"""Backend selection for the automation driver layer."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from .exceptions import AutomationError

logger = logging.getLogger(__name__)


def normalized_title_regex(raw: Optional[str]) -> Optional[str]:
    """Return a window title regex, wrapping plain titles so partial matches still work."""

    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    # If it already looks like a regex (contains meta characters), trust it;
    # otherwise escape and wrap so partial titles still match.
    if re.search(r"[.^$*+\[\]|()?]", value):
        return value
    return f".*{re.escape(value)}.*"


def create_driver(settings: Any) -> Any:
    """Build the driver selected by ``settings.automation_backend``."""

    backend = str(getattr(settings, "automation_backend", "uia") or "uia").lower()
    if backend == "appium":
        from .appium import attach_appium_driver

        server_url = getattr(settings, "appium_server_url", None)
        if not server_url:
            raise AutomationError("Appium backend selected but no server URL provided.")
        capabilities = getattr(settings, "appium_capabilities", None) or {}
        logger.info("Attaching Appium driver at %s", server_url)
        return attach_appium_driver(server_url, capabilities)
    if backend == "uia":
        from .uia import UIADriver, WindowSpec

        spec = WindowSpec(title_regex=normalized_title_regex(getattr(settings, "target_app_regex", None)))
        logger.info("Using UIA driver for window %s", spec)
        return UIADriver(spec)
    raise AutomationError(f"Unknown automation backend '{backend}'")
