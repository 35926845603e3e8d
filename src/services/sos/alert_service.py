"""
Remote Alert Service

Contract for the backend that stores SOS alerts and location heartbeats, and
its HTTP implementation.
"""

from typing import Dict, Optional

from ...core.http_client import ApiClient, HTTPRequestError
from ...core.logging import get_logger
from ...models.alert import AlertRecord, HeartbeatOrigin, PositionSample


DEFAULT_ENDPOINTS = {
    'active_alert': '/api/sos/active',
    'create_alert': '/api/sos',
    'cancel_alert': '/api/sos/cancel',
    'heartbeat': '/api/locations/heartbeat',
}


class AlertServiceError(Exception):
    """Backend alert call failed"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RemoteAlertService:
    """Backend operations the SOS controller depends on"""

    async def fetch_active_alert(self, user_id: str) -> Optional[AlertRecord]:
        """Return the user's active alert, or None"""
        raise NotImplementedError

    async def create_alert(self, notes: Optional[str] = None) -> AlertRecord:
        """Create a new alert; the server assigns id, status and location"""
        raise NotImplementedError

    async def cancel_alert(self, alert_id: str, reason: str) -> None:
        """Cancel an alert by id"""
        raise NotImplementedError

    async def push_heartbeat(self, sample: PositionSample, origin: HeartbeatOrigin) -> None:
        """Report the user's current position"""
        raise NotImplementedError


class HttpAlertService(RemoteAlertService):
    """RemoteAlertService backed by the REST API"""

    def __init__(self, client: ApiClient, endpoints: Optional[Dict[str, str]] = None):
        self.logger = get_logger("sos.alert_service")
        self.client = client
        self.endpoints = dict(DEFAULT_ENDPOINTS)
        if endpoints:
            self.endpoints.update(endpoints)

    def _parse_alert(self, data) -> AlertRecord:
        if not isinstance(data, dict):
            raise AlertServiceError(f"Unexpected alert payload: {data!r}")
        try:
            return AlertRecord.from_dict(data)
        except (ValueError, TypeError) as e:
            raise AlertServiceError(f"Invalid alert record: {e}")

    async def fetch_active_alert(self, user_id: str) -> Optional[AlertRecord]:
        self.logger.debug(f"Fetching active alert for user {user_id}")
        try:
            data = await self.client.get(self.endpoints['active_alert'])
        except HTTPRequestError as e:
            if e.status == 404:
                return None
            raise AlertServiceError(f"Failed to fetch active alert: {e}", status=e.status)

        if not data:
            return None

        alert = self._parse_alert(data)
        if not alert.is_active:
            self.logger.debug(f"Ignoring non-active alert {alert.id} ({alert.status.value})")
            return None
        return alert

    async def create_alert(self, notes: Optional[str] = None) -> AlertRecord:
        body = {'notes': notes} if notes else None
        try:
            data = await self.client.post(self.endpoints['create_alert'], data=body)
        except HTTPRequestError as e:
            raise AlertServiceError(f"Failed to create alert: {e}", status=e.status)

        alert = self._parse_alert(data)
        self.logger.info(f"Alert {alert.id} created")
        return alert

    async def cancel_alert(self, alert_id: str, reason: str) -> None:
        try:
            await self.client.post(
                self.endpoints['cancel_alert'],
                data={'sosId': alert_id, 'reason': reason}
            )
        except HTTPRequestError as e:
            raise AlertServiceError(f"Failed to cancel alert {alert_id}: {e}", status=e.status)

        self.logger.info(f"Alert {alert_id} cancelled ({reason})")

    async def push_heartbeat(self, sample: PositionSample, origin: HeartbeatOrigin) -> None:
        try:
            await self.client.post(self.endpoints['heartbeat'], data=sample.to_heartbeat(origin))
        except HTTPRequestError as e:
            raise AlertServiceError(f"Failed to push heartbeat: {e}", status=e.status)
