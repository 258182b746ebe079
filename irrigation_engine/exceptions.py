"""Exceptions raised by the irrigation engine."""
from typing import Optional, Dict, Any


class IrrigationEngineError(Exception):
    """Base exception for all irrigation engine errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class StoreUnavailable(IrrigationEngineError):
    """The durable state store could not be read or written."""

    def __init__(self, operation: str, key: Optional[str] = None, cause: Optional[Exception] = None):
        details = {'operation': operation}
        if key:
            details['key'] = key
        if cause is not None:
            details['cause'] = str(cause)
        super().__init__(f"State store unavailable during {operation}" + (f" of '{key}'" if key else ''), details)
        self.operation = operation
        self.key = key


class CommandWriteFailed(StoreUnavailable):
    """A valve command could not be written to the store."""

    def __init__(self, desired_open: bool, cause: Optional[Exception] = None):
        super().__init__('valve command write', 'valveCommand', cause)
        self.desired_open = desired_open


class InvalidConfigurationError(IrrigationEngineError):
    """Operator-supplied configuration failed validation."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {'field': field} if field else {}
        super().__init__(f"Invalid configuration: {message}", details)
        self.field = field


class PermissionDenied(IrrigationEngineError):
    """The caller's role may not mutate irrigation state."""

    def __init__(self, role: Optional[str]):
        super().__init__(f"Role '{role or 'anonymous'}' is not allowed to change irrigation settings",
                         {'role': role})
        self.role = role


class OperationRejected(IrrigationEngineError):
    """A well-formed operator request that cannot be honoured right now."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, details)
        self.reason = reason


class InvalidStoreValue(IrrigationEngineError):
    """A value in the shared store could not be parsed into a domain record."""

    def __init__(self, key: str, value: Any, cause: Optional[Exception] = None):
        details = {'key': key, 'value': repr(value)}
        if cause is not None:
            details['cause'] = str(cause)
        super().__init__(f"Malformed value stored under '{key}'", details)
        self.key = key
        self.value = value
