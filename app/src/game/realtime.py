"""
Per-session realtime bus.

Two message classes share one topic per session:

* row-change notifications, published by the session store whenever a
  persisted session/player row is mutated;
* broadcast messages, ephemeral and fire-and-forget (phase_change,
  phase_sync_request, phase_sync_state). Nothing broadcast is stored.

Delivery is at-most-once, in arrival order per subscriber, and a broadcast
is never echoed back to its sender.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from src.game.constants import CHANNEL_CLOSED, CHANNEL_SUBSCRIBED
from src.game.errors import ChannelUnavailableError

logger = logging.getLogger(__name__)

BroadcastHandler = Callable[[str, Dict], None]
RowChangeHandler = Callable[[str, Dict], None]
StatusHandler = Callable[[str], None]


def _noop(*_args) -> None:
    return None


@dataclass(eq=False)
class Subscription:
    session_id: str
    on_broadcast: BroadcastHandler = _noop
    on_row_change: RowChangeHandler = _noop
    on_status: StatusHandler = _noop
    active: bool = field(default=True)


class RealtimeHub:
    """In-process fan-out of session topics to their subscribers."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._topics: Dict[str, List[Subscription]] = {}

    # ── Subscriptions ────────────────────────────────────────────────────

    def subscribe(
        self,
        session_id: str,
        on_broadcast: BroadcastHandler = _noop,
        on_row_change: RowChangeHandler = _noop,
        on_status: StatusHandler = _noop,
    ) -> Subscription:
        """Register a subscriber and acknowledge with SUBSCRIBED."""
        subscription = Subscription(
            session_id, on_broadcast, on_row_change, on_status
        )
        with self._lock:
            self._topics.setdefault(session_id, []).append(subscription)
        logger.debug(
            "Subscribed to session %s (%d subscribers)",
            session_id, self.subscriber_count(session_id),
        )
        self._deliver_status(subscription, CHANNEL_SUBSCRIBED)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscription.active = False
            bucket = self._topics.get(subscription.session_id, [])
            if subscription in bucket:
                bucket.remove(subscription)
            if not bucket:
                self._topics.pop(subscription.session_id, None)
        self._deliver_status(subscription, CHANNEL_CLOSED)

    def subscriber_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._topics.get(session_id, []))

    def _snapshot(self, session_id: str) -> List[Subscription]:
        with self._lock:
            return list(self._topics.get(session_id, []))

    # ── Publishing ───────────────────────────────────────────────────────

    def broadcast(
        self,
        session_id: str,
        event: str,
        payload: Optional[Dict] = None,
        sender: Optional[Subscription] = None,
    ) -> int:
        """Fan an ephemeral message out to every other subscriber."""
        payload = dict(payload or {})
        delivered = 0
        for subscription in self._snapshot(session_id):
            if subscription is sender or not subscription.active:
                continue
            try:
                subscription.on_broadcast(event, payload)
                delivered += 1
            except Exception as exc:
                logger.error(
                    "Broadcast %s to a subscriber of %s failed: %s",
                    event, session_id, exc, exc_info=True,
                )
        logger.debug(
            "Broadcast %s on session %s delivered to %d",
            event, session_id, delivered,
        )
        return delivered

    def publish_row_change(self, table: str, session_id: str, row: Dict) -> int:
        """Notify every subscriber that a persisted row changed."""
        delivered = 0
        for subscription in self._snapshot(session_id):
            if not subscription.active:
                continue
            try:
                subscription.on_row_change(table, dict(row))
                delivered += 1
            except Exception as exc:
                logger.error(
                    "Row change %s to a subscriber of %s failed: %s",
                    table, session_id, exc, exc_info=True,
                )
        return delivered

    def _deliver_status(self, subscription: Subscription, status: str) -> None:
        try:
            subscription.on_status(status)
        except Exception as exc:
            logger.error(
                "Status %s handler for %s failed: %s",
                status, subscription.session_id, exc, exc_info=True,
            )


class RealtimeChannel:
    """One device's duplex view of a session topic."""

    def __init__(self, hub: Optional[RealtimeHub], session_id: str) -> None:
        self._hub = hub
        self.session_id = session_id
        self._subscription: Optional[Subscription] = None

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def subscribe(
        self,
        on_broadcast: BroadcastHandler,
        on_row_change: RowChangeHandler,
        on_status: StatusHandler = _noop,
    ) -> None:
        if self._hub is None:
            raise ChannelUnavailableError("No realtime hub configured")
        if self.is_subscribed:
            self.unsubscribe()
        # hub.subscribe acks before returning; hold the ack until the
        # subscription is stored so handlers can already send().
        ready = False
        queued: List[str] = []

        def _status(status: str) -> None:
            if not ready:
                queued.append(status)
                return
            on_status(status)

        self._subscription = self._hub.subscribe(
            self.session_id, on_broadcast, on_row_change, _status
        )
        ready = True
        for status in queued:
            on_status(status)

    def send(self, event: str, payload: Optional[Dict] = None) -> int:
        """Broadcast to the other subscribers of this session."""
        if not self.is_subscribed:
            raise ChannelUnavailableError(
                f"Channel for session {self.session_id} is not subscribed"
            )
        return self._hub.broadcast(
            self.session_id, event, payload, sender=self._subscription
        )

    def unsubscribe(self) -> None:
        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            self._hub.unsubscribe(subscription)
