"""
SOS Lifecycle Controller

Owns the user's active alert and the location watch that feeds it:
- Reconciles with the backend whenever the session identity changes
- Triggers and cancels alerts, one operation at a time
- Forwards every watched position to the backend as a heartbeat
- Stops tracking on every exit path
"""

import asyncio
from typing import Callable, List, Optional, Set

from ...core.logging import get_logger, get_structured_logger
from ...models.alert import AlertRecord, ControllerState, HeartbeatOrigin, PositionSample, User
from .alert_service import RemoteAlertService
from .errors import (
    AlertCreationFailed, CancellationFailed, HeartbeatFailed, LocationUnavailable,
    NoActiveAlert, NotAuthenticated, OperationInProgress, OperationResult,
    ReconciliationFailed, SOSError
)
from .location_tracker import LocationTracker, TrackingHandle
from .session import SessionProvider


StateListener = Callable[['SOSLifecycleController'], None]


class SOSLifecycleController:
    """
    State machine for a single user's SOS alert.

    IDLE -> LOADING -> IDLE | ACTIVE on session change or refresh,
    IDLE -> TRANSITIONING -> ACTIVE | IDLE on trigger,
    ACTIVE -> TRANSITIONING -> IDLE | ACTIVE on cancel.

    ACTIVE normally means a location watch is running. The one exception is
    an alert adopted while the tracker cannot start a watch (no position
    source, or the source refused): the alert is still held and reported as
    ACTIVE so a real emergency is never hidden, is_tracking is False and
    last_error is a LocationUnavailable describing why.
    """

    def __init__(self, tracker: LocationTracker, alert_service: RemoteAlertService,
                 session: SessionProvider, config: dict = None):
        self.logger = get_logger("sos.controller")
        self.events = get_structured_logger('sos')
        self.tracker = tracker
        self.alert_service = alert_service
        self.session = session
        self.config = config or {}

        self.cancel_reason = self.config.get('cancel_reason', 'user safe')

        self._state = ControllerState.IDLE
        self._alert: Optional[AlertRecord] = None
        self._watch_handle: Optional[TrackingHandle] = None
        self._busy = False
        self._generation = 0
        self._reconcile_task: Optional[asyncio.Task] = None
        self._heartbeat_tasks: Set[asyncio.Task] = set()
        self._listeners: List[StateListener] = []
        self._attached = False
        self._closed = False

        # Diagnostics
        self.last_error: Optional[SOSError] = None
        self.heartbeats_sent = 0
        self.heartbeat_failures = 0

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # Observable state

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def current_alert(self) -> Optional[AlertRecord]:
        return self._alert

    @property
    def is_transitioning(self) -> bool:
        return self._state == ControllerState.TRANSITIONING

    @property
    def is_tracking(self) -> bool:
        return self._watch_handle is not None

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register a listener called after every state change

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self):
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"Error in SOS state listener: {e}")

    def _set_state(self, state: ControllerState):
        if state != self._state:
            self.logger.debug(f"SOS state {self._state.value} -> {state.value}")
        self._state = state
        self._notify()

    # Session handling

    async def start(self):
        """Attach to the session provider and reconcile with the backend"""
        if self._attached:
            return
        self._attached = True
        self._closed = False
        self.session.add_listener(self._on_session_changed)

        if self.session.current_user is not None:
            await self.refresh()

    def _on_session_changed(self, user: Optional[User]):
        if user is None:
            self.logger.info("Session ended, releasing local alert state")
            self._release_alert()
            self._settle()
            return

        if self._reconcile_task and not self._reconcile_task.done():
            self._reconcile_task.cancel()
        self._reconcile_task = asyncio.create_task(self.refresh())

    async def refresh(self) -> None:
        """Align local alert state with the backend's active alert"""
        user = self.session.current_user
        if user is None or self._closed:
            return
        if self._busy:
            self.logger.debug("Skipping refresh while a trigger or cancel is in flight")
            return

        generation = self._generation
        self._set_state(ControllerState.LOADING)
        try:
            alert = await self.alert_service.fetch_active_alert(user.id)
        except Exception as e:
            self.logger.error(f"Error loading active alert: {e}")
            self.events.warning("reconciliation_failed", user_id=user.id, error=str(e))
            self.last_error = ReconciliationFailed(str(e), cause=e)
            self._settle()
            return

        # Session or alert may have changed while the request was in flight
        current = self.session.current_user
        if (current is None or current.id != user.id or self._closed
                or self._busy or generation != self._generation):
            self.logger.debug("Discarding stale active alert lookup")
            self._settle()
            return

        if alert is None:
            if self._alert is not None:
                self.logger.info(f"Alert {self._alert.id} is no longer active on the server")
            self._release_alert()
        else:
            self._adopt_alert(alert)

        self._settle()

    # Operations

    async def trigger(self, notes: Optional[str] = None) -> OperationResult:
        """
        Raise an SOS alert

        Args:
            notes: Optional free text sent with the alert

        Returns:
            OperationResult; on failure the controller is left as it was
        """
        if self.session.current_user is None:
            return self._fail(NotAuthenticated("User not authenticated"))
        if self._busy:
            return self._fail(OperationInProgress("An SOS operation is already in progress"))
        if self._alert is not None:
            self.logger.info(f"Alert {self._alert.id} is already active")
            return OperationResult.ok()

        user = self.session.current_user
        self._busy = True
        self._generation += 1
        self._set_state(ControllerState.TRANSITIONING)
        try:
            try:
                sample = await self.tracker.fetch_once()
            except LocationUnavailable as e:
                return self._fail(e)

            await self._push_heartbeat(sample, HeartbeatOrigin.MANUAL)

            try:
                alert = await self.alert_service.create_alert(notes)
            except Exception as e:
                self.logger.error(f"Error creating SOS alert: {e}")
                return self._fail(AlertCreationFailed(str(e), cause=e))

            if self._closed:
                self.logger.warning(f"Alert {alert.id} created after shutdown, not tracking it")
                return OperationResult.ok()

            current = self.session.current_user
            if current is None or current.id != user.id:
                self.logger.warning(f"Alert {alert.id} created after the session ended, not tracking it")
                self.events.warning("orphaned_alert", alert_id=alert.id, user_id=user.id)
                if current is not None:
                    # The new user's lookup was skipped while this trigger was busy
                    self._reconcile_task = asyncio.create_task(self.refresh())
                return OperationResult.ok()

            self.last_error = None
            self._adopt_alert(alert)
            self.logger.info(f"SOS alert {alert.id} triggered")
            return OperationResult.ok()
        finally:
            self._busy = False
            self._settle()

    async def cancel(self) -> OperationResult:
        """
        Cancel the active alert

        Returns:
            OperationResult; on failure the alert and its tracking stay active
        """
        if self._alert is None:
            return self._fail(NoActiveAlert("No active alert"))
        if self._busy:
            return self._fail(OperationInProgress("An SOS operation is already in progress"))

        alert = self._alert
        self._busy = True
        self._generation += 1
        self._set_state(ControllerState.TRANSITIONING)
        try:
            try:
                await self.alert_service.cancel_alert(alert.id, self.cancel_reason)
            except Exception as e:
                self.logger.error(f"Error cancelling SOS: {e}")
                return self._fail(CancellationFailed(str(e), cause=e))

            self._release_alert()
            self.logger.info(f"SOS alert {alert.id} cancelled")
            self.last_error = None
            return OperationResult.ok()
        finally:
            self._busy = False
            self._settle()

    def close(self):
        """Stop tracking and detach. Safe to call more than once."""
        self._closed = True
        if self._attached:
            self.session.remove_listener(self._on_session_changed)
            self._attached = False
        if self._reconcile_task and not self._reconcile_task.done():
            self._reconcile_task.cancel()
        self._reconcile_task = None

        self._stop_tracking()

    async def flush_heartbeats(self, timeout: float = 5.0) -> None:
        """Wait for heartbeat pushes still in flight, cancelling any left after timeout"""
        pending = set(self._heartbeat_tasks)
        if not pending:
            return
        _, pending = await asyncio.wait(pending, timeout=timeout)
        for task in pending:
            self.logger.warning("Abandoning heartbeat push still in flight")
            task.cancel()

    # Internals

    def _fail(self, error: SOSError) -> OperationResult:
        self.last_error = error
        return OperationResult.failure(error)

    def _settle(self):
        """Derive the resting state from whether an alert is held"""
        if self._busy:
            return
        self._set_state(ControllerState.ACTIVE if self._alert is not None else ControllerState.IDLE)

    def _adopt_alert(self, alert: AlertRecord):
        same_alert = self._alert is not None and self._alert.id == alert.id
        self._alert = alert
        if not (same_alert and self._watch_handle is not None):
            self._start_tracking()

    def _release_alert(self):
        self._stop_tracking()
        self._alert = None

    def _start_tracking(self):
        self._stop_tracking()
        self._watch_handle = self.tracker.start_watch(self._on_sample)
        if self._watch_handle is None:
            reason = self.tracker.last_error or "location tracking is unavailable"
            self.last_error = LocationUnavailable(reason)
            self.logger.warning(f"Alert is active but location tracking is unavailable: {reason}")

    def _stop_tracking(self):
        if self._watch_handle is not None:
            self.tracker.stop_watch(self._watch_handle)
            self._watch_handle = None

    def _on_sample(self, sample: PositionSample):
        if self._alert is None:
            return
        task = asyncio.create_task(self._push_heartbeat(sample, HeartbeatOrigin.AUTO))
        self._heartbeat_tasks.add(task)
        task.add_done_callback(self._heartbeat_tasks.discard)

    async def _push_heartbeat(self, sample: PositionSample, origin: HeartbeatOrigin):
        """Best-effort heartbeat; failures are recorded and never raised"""
        try:
            await self.alert_service.push_heartbeat(sample, origin)
            self.heartbeats_sent += 1
        except Exception as e:
            self.heartbeat_failures += 1
            self.last_error = HeartbeatFailed(str(e), cause=e)
            self.logger.error(f"Failed to sync location with backend: {e}")
            self.events.warning(
                "heartbeat_failed",
                alert_id=self._alert.id if self._alert else None,
                origin=origin.value,
                error=str(e)
            )
