"""
Alert data models for SOS Beacon

Defines the position samples, alert records and identities that flow between
the location tracker, the lifecycle controller and the backend.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class AlertStatus(Enum):
    """Server-side alert status"""
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class HeartbeatOrigin(Enum):
    """Where a location heartbeat came from"""
    MANUAL = "BROWSER"   # Sample taken when the user pressed SOS
    AUTO = "AUTO"        # Sample delivered by the continuous watch


class ControllerState(Enum):
    """SOS lifecycle controller states"""
    IDLE = "idle"
    LOADING = "loading"
    ACTIVE = "active"
    TRANSITIONING = "transitioning"


@dataclass(frozen=True)
class PositionSample:
    """A single position fix"""
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None

    def to_heartbeat(self, origin: HeartbeatOrigin) -> Dict[str, Any]:
        """Build the heartbeat request body for this sample"""
        return {
            'lat': self.latitude,
            'lng': self.longitude,
            'accuracy': self.accuracy_meters,
            'source': origin.value
        }

    def map_url(self) -> str:
        return f"https://www.google.com/maps?q={self.latitude},{self.longitude}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PositionSample':
        """Create from a dictionary using either long or short coordinate keys"""
        latitude = data.get('latitude', data.get('lat'))
        longitude = data.get('longitude', data.get('lng', data.get('lon')))
        if latitude is None or longitude is None:
            raise ValueError(f"Position is missing coordinates: {data}")

        accuracy = data.get('accuracy_meters', data.get('accuracy'))
        return cls(
            latitude=float(latitude),
            longitude=float(longitude),
            accuracy_meters=float(accuracy) if accuracy is not None else None
        )


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return datetime.now(timezone.utc)
    text = str(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.fromisoformat(text)


def _location_from_fields(data: Dict[str, Any], prefix: str) -> Optional[PositionSample]:
    latitude = data.get(f'{prefix}_latitude')
    longitude = data.get(f'{prefix}_longitude')
    if latitude is None or longitude is None:
        return None

    accuracy = data.get(f'{prefix}_accuracy')
    return PositionSample(
        latitude=float(latitude),
        longitude=float(longitude),
        accuracy_meters=float(accuracy) if accuracy is not None else None
    )


@dataclass
class AlertRecord:
    """An SOS alert as reported by the backend"""
    id: str
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    initial_location: Optional[PositionSample] = None
    current_location: Optional[PositionSample] = None
    notes: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status == AlertStatus.ACTIVE

    @property
    def display_location(self) -> Optional[PositionSample]:
        """Most recent known location, falling back to where the alert started"""
        return self.current_location or self.initial_location

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the backend's wire format"""
        data = {
            'id': self.id,
            'status': self.status.value,
            'createdAt': self.created_at.isoformat(),
            'notes': self.notes
        }
        for prefix, location in (('initial', self.initial_location),
                                 ('current', self.current_location)):
            if location is not None:
                data[f'{prefix}_latitude'] = location.latitude
                data[f'{prefix}_longitude'] = location.longitude
                if location.accuracy_meters is not None:
                    data[f'{prefix}_accuracy'] = location.accuracy_meters
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AlertRecord':
        """
        Create from a backend response body

        Raises:
            ValueError: If the record has no id or an unknown status
        """
        alert_id = data.get('id', data.get('_id'))
        if alert_id is None or alert_id == '':
            raise ValueError("Alert record has no id")

        return cls(
            id=str(alert_id),
            status=AlertStatus(str(data.get('status', 'ACTIVE')).upper()),
            created_at=_parse_timestamp(data.get('createdAt', data.get('created_at'))),
            initial_location=_location_from_fields(data, 'initial'),
            current_location=_location_from_fields(data, 'current'),
            notes=data.get('notes')
        )


@dataclass
class User:
    """Authenticated user identity"""
    id: str
    name: str = ""
    email: str = ""
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'phone': self.phone
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        user_id = data.get('id', data.get('_id'))
        if user_id is None:
            raise ValueError("User has no id")
        return cls(
            id=str(user_id),
            name=data.get('name', ''),
            email=data.get('email', ''),
            phone=data.get('phone')
        )
