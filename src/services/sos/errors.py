"""
SOS error taxonomy

Every error that can block or accompany an SOS lifecycle operation carries an
ErrorKind so callers can react without matching on exception types.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Error kinds reported by the lifecycle controller"""
    NOT_AUTHENTICATED = "not_authenticated"
    UNSUPPORTED_ENVIRONMENT = "unsupported_environment"
    LOCATION_UNAVAILABLE = "location_unavailable"
    ALERT_CREATION_FAILED = "alert_creation_failed"
    NO_ACTIVE_ALERT = "no_active_alert"
    CANCELLATION_FAILED = "cancellation_failed"
    HEARTBEAT_FAILED = "heartbeat_failed"
    OPERATION_IN_PROGRESS = "operation_in_progress"
    RECONCILIATION_FAILED = "reconciliation_failed"


class SOSError(Exception):
    """Base class for SOS lifecycle errors"""
    kind: ErrorKind = ErrorKind.LOCATION_UNAVAILABLE

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message or self.kind.value)
        self.cause = cause


class NotAuthenticated(SOSError):
    """No user is signed in"""
    kind = ErrorKind.NOT_AUTHENTICATED


class LocationUnavailable(SOSError):
    """The position source denied, failed or timed out"""
    kind = ErrorKind.LOCATION_UNAVAILABLE


class PositionUnavailable(LocationUnavailable):
    """Raised by the tracker when a one-shot fetch fails"""
    pass


class UnsupportedEnvironment(LocationUnavailable):
    """No position source is available at all"""
    kind = ErrorKind.UNSUPPORTED_ENVIRONMENT


class AlertCreationFailed(SOSError):
    kind = ErrorKind.ALERT_CREATION_FAILED


class NoActiveAlert(SOSError):
    kind = ErrorKind.NO_ACTIVE_ALERT


class CancellationFailed(SOSError):
    kind = ErrorKind.CANCELLATION_FAILED


class HeartbeatFailed(SOSError):
    """A location heartbeat could not be delivered (never fatal)"""
    kind = ErrorKind.HEARTBEAT_FAILED


class OperationInProgress(SOSError):
    """A trigger or cancel is already in flight"""
    kind = ErrorKind.OPERATION_IN_PROGRESS


class ReconciliationFailed(SOSError):
    """Looking up the active alert failed (recorded, never raised to callers)"""
    kind = ErrorKind.RECONCILIATION_FAILED


@dataclass
class OperationResult:
    """Outcome of a trigger or cancel request"""
    success: bool
    error: Optional[SOSError] = None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    @classmethod
    def ok(cls) -> 'OperationResult':
        return cls(success=True)

    @classmethod
    def failure(cls, error: SOSError) -> 'OperationResult':
        return cls(success=False, error=error)
