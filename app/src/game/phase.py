"""
Phase reconciliation and the per-device state reducer.

The displayed phase is derived from the persisted status and the device's
last known ephemeral phase. The device's own activity (loading, dealing,
waiting for a word) is a single enum-valued state advanced only through
``reduce_device_state``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.game.constants import MSG_DEALING_TIMEOUT, GamePhase, SessionStatus


def reconcile_phase(
    status: Optional[SessionStatus], local_phase: Optional[GamePhase]
) -> GamePhase:
    """
    Derive the displayed phase.

    A finished or closed status always wins. Otherwise a device already in
    discussion stays there even while the row still says dealing, so a late
    row-change cannot pull it back to the dealing screen. In every other
    case the persisted status is adopted.
    """
    if status is None:
        return local_phase or GamePhase.LOBBY
    status = SessionStatus(status)
    if status in (SessionStatus.FINISHED, SessionStatus.CLOSED):
        return GamePhase(status.value)
    if local_phase == GamePhase.DISCUSSION:
        return GamePhase.DISCUSSION
    return GamePhase(status.value)


class DeviceStateKind(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    CREATING = "creating"
    READY = "ready"
    DEALING = "dealing"
    AWAITING_ASSIGNMENT = "awaiting_assignment"
    ERROR = "error"


class DeviceEvent(str, Enum):
    LOAD_STARTED = "load_started"
    CREATE_STARTED = "create_started"
    LOADED = "loaded"
    DEAL_REQUESTED = "deal_requested"
    WORD_MISSING = "word_missing"
    WORD_ARRIVED = "word_arrived"
    DEALT = "dealt"
    WATCHDOG_EXPIRED = "watchdog_expired"
    FAILED = "failed"
    RESET = "reset"


@dataclass(frozen=True)
class DeviceState:
    kind: DeviceStateKind = DeviceStateKind.IDLE
    deadline: Optional[float] = None
    error: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.kind in (DeviceStateKind.LOADING, DeviceStateKind.CREATING)

    @property
    def dealing_requested(self) -> bool:
        return self.kind in (
            DeviceStateKind.DEALING, DeviceStateKind.AWAITING_ASSIGNMENT
        )

    @property
    def waiting_for_assignment(self) -> bool:
        return self.kind == DeviceStateKind.AWAITING_ASSIGNMENT


def reduce_device_state(
    state: DeviceState,
    event: DeviceEvent,
    now: Optional[float] = None,
    timeout: Optional[float] = None,
    error: Optional[str] = None,
) -> DeviceState:
    """Return the state that follows *event*; unknown moves keep *state*."""
    kind = state.kind

    if event == DeviceEvent.LOAD_STARTED:
        return DeviceState(DeviceStateKind.LOADING)
    if event == DeviceEvent.CREATE_STARTED:
        return DeviceState(DeviceStateKind.CREATING)
    if event in (DeviceEvent.LOADED, DeviceEvent.DEALT):
        return DeviceState(DeviceStateKind.READY)
    if event == DeviceEvent.RESET:
        return DeviceState(DeviceStateKind.IDLE)
    if event == DeviceEvent.FAILED:
        return DeviceState(DeviceStateKind.ERROR, error=error)

    if event == DeviceEvent.DEAL_REQUESTED:
        if state.dealing_requested:
            return state
        return DeviceState(DeviceStateKind.DEALING)
    if event == DeviceEvent.WORD_MISSING and kind == DeviceStateKind.DEALING:
        return DeviceState(
            DeviceStateKind.AWAITING_ASSIGNMENT, deadline=now + timeout
        )
    if (
        event == DeviceEvent.WORD_ARRIVED
        and kind == DeviceStateKind.AWAITING_ASSIGNMENT
    ):
        return DeviceState(DeviceStateKind.DEALING)
    if (
        event == DeviceEvent.WATCHDOG_EXPIRED
        and kind == DeviceStateKind.AWAITING_ASSIGNMENT
        and (now is None or now >= state.deadline)
    ):
        return DeviceState(
            DeviceStateKind.ERROR, error=error or MSG_DEALING_TIMEOUT
        )
    return state
