import pytest

from src.game.constants import MSG_DEALING_TIMEOUT, GamePhase, SessionStatus
from src.game.phase import (
    DeviceEvent,
    DeviceState,
    DeviceStateKind,
    reconcile_phase,
    reduce_device_state,
)


class TestReconcile:
    def test_discussion_survives_late_dealing_rows(self):
        local = GamePhase.DISCUSSION
        for status in (
            SessionStatus.LOBBY, SessionStatus.DEALING, SessionStatus.DEALING,
        ):
            assert reconcile_phase(status, local) == GamePhase.DISCUSSION
        assert reconcile_phase(SessionStatus.FINISHED, local) == GamePhase.FINISHED

    @pytest.mark.parametrize("local", [None, GamePhase.DISCUSSION, GamePhase.DEALING])
    def test_closed_always_wins(self, local):
        assert reconcile_phase(SessionStatus.CLOSED, local) == GamePhase.CLOSED

    def test_status_adopted_without_discussion(self):
        assert reconcile_phase(SessionStatus.DEALING, None) == GamePhase.DEALING
        assert reconcile_phase("lobby", GamePhase.FINISHED) == GamePhase.LOBBY

    def test_no_session_falls_back_to_local(self):
        assert reconcile_phase(None, None) == GamePhase.LOBBY
        assert reconcile_phase(None, GamePhase.DISCUSSION) == GamePhase.DISCUSSION


class TestReducer:
    def test_deal_request_is_not_reentrant(self):
        state = reduce_device_state(DeviceState(), DeviceEvent.DEAL_REQUESTED)
        assert state.kind == DeviceStateKind.DEALING
        assert reduce_device_state(state, DeviceEvent.DEAL_REQUESTED) is state

    def test_waiting_for_word_then_arrival(self):
        state = reduce_device_state(DeviceState(), DeviceEvent.DEAL_REQUESTED)
        state = reduce_device_state(
            state, DeviceEvent.WORD_MISSING, now=100.0, timeout=10
        )
        assert state.waiting_for_assignment
        assert state.dealing_requested
        assert state.deadline == 110.0

        state = reduce_device_state(state, DeviceEvent.WORD_ARRIVED)
        assert state.kind == DeviceStateKind.DEALING
        state = reduce_device_state(state, DeviceEvent.DEALT)
        assert state.kind == DeviceStateKind.READY
        assert not state.dealing_requested

    def test_watchdog_respects_deadline(self):
        state = DeviceState(DeviceStateKind.AWAITING_ASSIGNMENT, deadline=110.0)
        early = reduce_device_state(state, DeviceEvent.WATCHDOG_EXPIRED, now=105.0)
        assert early is state

        expired = reduce_device_state(state, DeviceEvent.WATCHDOG_EXPIRED, now=110.0)
        assert expired.kind == DeviceStateKind.ERROR
        assert expired.error == MSG_DEALING_TIMEOUT
        assert not expired.dealing_requested

    def test_watchdog_ignored_outside_waiting(self):
        ready = DeviceState(DeviceStateKind.READY)
        assert reduce_device_state(ready, DeviceEvent.WATCHDOG_EXPIRED) is ready

    def test_loading_flags(self):
        assert reduce_device_state(DeviceState(), DeviceEvent.LOAD_STARTED).loading
        assert reduce_device_state(DeviceState(), DeviceEvent.CREATE_STARTED).loading
        failed = reduce_device_state(
            DeviceState(), DeviceEvent.FAILED, error="nope"
        )
        assert failed.kind == DeviceStateKind.ERROR
        assert failed.error == "nope"
