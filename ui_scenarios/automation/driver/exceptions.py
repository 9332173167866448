"""Custom exception types for the automation driver layer."""

from __future__ import annotations


class AutomationError(RuntimeError):
    """Base class for automation-related failures."""


class ControlNotFoundError(AutomationError):
    """Raised when a driver cannot produce a handle for a control."""


class ActionTimeoutError(AutomationError):
    """Raised when an operation exceeds the allotted wait interval."""


class DriverUnavailableError(AutomationError):
    """Raised when the backend library for a driver is not installed."""
