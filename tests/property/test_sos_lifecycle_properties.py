"""
Property-Based Tests for the SOS Lifecycle Controller

Drives the controller through random sequences of triggers, cancels,
refreshes and position updates with random backend failures, and checks the
tracking invariants after every step.
"""

import asyncio

from hypothesis import given, settings, strategies as st

from src.models.alert import ControllerState, HeartbeatOrigin, PositionSample, User
from src.services.sos.errors import ErrorKind
from src.services.sos.lifecycle_controller import SOSLifecycleController
from src.services.sos.location_tracker import LocationTracker
from src.services.sos.session import StaticSessionProvider
from tests.mocks.sos_mocks import MockAlertService, MockPositionSource


# Strategies for generating test data

positions = st.builds(
    PositionSample,
    latitude=st.floats(min_value=-90, max_value=90, allow_nan=False),
    longitude=st.floats(min_value=-180, max_value=180, allow_nan=False),
    accuracy_meters=st.one_of(st.none(), st.floats(min_value=0, max_value=5000, allow_nan=False))
)


@st.composite
def operations(draw):
    """Generate a single controller operation with its failure switches"""
    kind = draw(st.sampled_from(['trigger', 'cancel', 'refresh', 'sample', 'server_cancel']))
    return {
        'kind': kind,
        'fail_location': draw(st.booleans()),
        'fail_backend': draw(st.booleans()),
        'sample': draw(positions),
    }


async def settle(rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)


def assert_tracking_invariants(controller, source):
    """A held alert always has exactly one watch, no alert never has one"""
    assert controller.state in (ControllerState.IDLE, ControllerState.ACTIVE)
    if controller.current_alert is None:
        assert controller.state == ControllerState.IDLE
        assert not controller.is_tracking
        assert source.active_watches == 0
    else:
        assert controller.state == ControllerState.ACTIVE
        assert controller.is_tracking
        assert source.active_watches == 1


async def run_sequence(ops):
    source = MockPositionSource()
    service = MockAlertService()
    session = StaticSessionProvider(User(id="u1"))
    tracker = LocationTracker(source, {'fetch_timeout': 0.2})
    controller = SOSLifecycleController(tracker, service, session)
    await controller.start()

    try:
        for op in ops:
            had_alert = controller.current_alert is not None
            service.calls.clear()

            if op['kind'] == 'trigger':
                source.next_error = None
                if op['fail_location']:
                    source.fail_next()
                service.fail_create = op['fail_backend']
                result = await controller.trigger()

                if had_alert:
                    assert result.success
                    assert service.calls == []
                elif op['fail_location']:
                    assert result.error_kind == ErrorKind.LOCATION_UNAVAILABLE
                    assert service.calls == []
                elif op['fail_backend']:
                    assert result.error_kind == ErrorKind.ALERT_CREATION_FAILED
                    assert controller.current_alert is None
                else:
                    assert result.success
                    assert controller.current_alert is not None

            elif op['kind'] == 'cancel':
                service.fail_cancel = op['fail_backend']
                result = await controller.cancel()

                if not had_alert:
                    assert result.error_kind == ErrorKind.NO_ACTIVE_ALERT
                    assert service.calls == []
                elif op['fail_backend']:
                    assert result.error_kind == ErrorKind.CANCELLATION_FAILED
                    assert controller.current_alert is not None
                else:
                    assert result.success
                    assert controller.current_alert is None

            elif op['kind'] == 'refresh':
                service.fail_fetch = op['fail_backend']
                alert_before = controller.current_alert
                await controller.refresh()
                service.fail_fetch = False

                if op['fail_backend']:
                    assert controller.current_alert == alert_before

            elif op['kind'] == 'server_cancel':
                # Alert resolved by someone else; picked up on the next refresh
                service.active_alert = None
                await controller.refresh()
                assert controller.current_alert is None

            else:
                service.fail_heartbeat = op['fail_backend']
                source.emit(op['sample'])
                await settle()
                service.fail_heartbeat = False

                expected = [(op['sample'], HeartbeatOrigin.AUTO)] if had_alert else []
                assert service.heartbeats == expected
                # Heartbeat failures never end the alert
                assert (controller.current_alert is not None) == had_alert

            assert_tracking_invariants(controller, source)
    finally:
        controller.close()
        await settle()

    assert source.active_watches == 0


class TestLifecycleInvariants:
    """
    For any sequence of operations and failures, the controller holds a watch
    exactly when it holds an alert, and heartbeats flow only while it does.
    """

    @settings(max_examples=50, deadline=None)
    @given(ops=st.lists(operations(), min_size=1, max_size=15))
    def test_tracking_matches_alert(self, ops):
        asyncio.run(run_sequence(ops))

    @settings(max_examples=25, deadline=None)
    @given(samples=st.lists(positions, min_size=1, max_size=10))
    def test_heartbeats_preserve_sample_order(self, samples):
        async def scenario():
            source = MockPositionSource()
            service = MockAlertService()
            tracker = LocationTracker(source, {'fetch_timeout': 0.2})
            controller = SOSLifecycleController(tracker, service, StaticSessionProvider(User(id="u1")))

            await controller.trigger()
            service.calls.clear()
            for sample in samples:
                source.emit(sample)
            await settle(len(samples) + 10)

            assert service.heartbeats == [(s, HeartbeatOrigin.AUTO) for s in samples]
            controller.close()

        asyncio.run(scenario())

    @settings(max_examples=25, deadline=None)
    @given(refreshes=st.integers(min_value=1, max_value=5), has_alert=st.booleans())
    def test_refresh_is_idempotent(self, refreshes, has_alert):
        async def scenario():
            source = MockPositionSource()
            service = MockAlertService()
            tracker = LocationTracker(source, {'fetch_timeout': 0.2})
            controller = SOSLifecycleController(tracker, service, StaticSessionProvider(User(id="u1")))
            if has_alert:
                await service.create_alert()

            await controller.refresh()
            snapshot = (controller.state, controller.current_alert, controller._watch_handle)
            for _ in range(refreshes):
                await controller.refresh()
                assert (controller.state, controller.current_alert, controller._watch_handle) == snapshot

            assert len(source.cancelled) == 0
            controller.close()

        asyncio.run(scenario())
