"""
Data models for SOS Beacon

Contains the data classes shared by the tracker, controller and backend clients.
"""

from .alert import (
    AlertRecord, AlertStatus, ControllerState,
    HeartbeatOrigin, PositionSample, User
)

__all__ = [
    'AlertRecord', 'AlertStatus', 'ControllerState',
    'HeartbeatOrigin', 'PositionSample', 'User'
]
