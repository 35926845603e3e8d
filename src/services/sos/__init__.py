"""
SOS Service Module

Provides the SOS alert lifecycle:
- Location tracking over a pluggable position source
- Alert trigger, cancel and reconciliation against the backend
- Continuous location heartbeats while an alert is active
"""

from .alert_service import AlertServiceError, HttpAlertService, RemoteAlertService
from .errors import ErrorKind, OperationResult, SOSError
from .lifecycle_controller import SOSLifecycleController
from .location_tracker import LocationTracker, TrackingHandle
from .position_source import (
    PositionError, PositionErrorCode, PositionOptions,
    PositionSource, ReplayPositionSource
)
from .session import (
    ApiSessionProvider, AuthenticationError, CredentialStore,
    SessionProvider, StaticSessionProvider
)

__all__ = [
    'SOSLifecycleController',
    'LocationTracker',
    'TrackingHandle',
    'RemoteAlertService',
    'HttpAlertService',
    'AlertServiceError',
    'PositionSource',
    'ReplayPositionSource',
    'PositionError',
    'PositionErrorCode',
    'PositionOptions',
    'SessionProvider',
    'StaticSessionProvider',
    'ApiSessionProvider',
    'CredentialStore',
    'AuthenticationError',
    'ErrorKind',
    'OperationResult',
    'SOSError'
]
