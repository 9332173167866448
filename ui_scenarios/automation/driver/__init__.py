"""Public exports for the automation driver layer."""

from .base import (
    CRITERION_AUTOMATION_ID,
    CRITERION_CLASS_NAME,
    CRITERION_CONTROL_TYPE,
    CRITERION_NAME,
    CRITERION_XPATH,
    DEFAULT_SUPPORTED_CRITERIA,
    Driver,
    check_action_result,
    supported_criteria,
)
from .exceptions import ActionTimeoutError, AutomationError, ControlNotFoundError, DriverUnavailableError
from .session import create_driver

__all__ = [
    "CRITERION_AUTOMATION_ID",
    "CRITERION_CLASS_NAME",
    "CRITERION_CONTROL_TYPE",
    "CRITERION_NAME",
    "CRITERION_XPATH",
    "DEFAULT_SUPPORTED_CRITERIA",
    "Driver",
    "check_action_result",
    "supported_criteria",
    "ActionTimeoutError",
    "AutomationError",
    "ControlNotFoundError",
    "DriverUnavailableError",
    "create_driver",
]
