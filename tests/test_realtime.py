import pytest

from src.game.constants import (
    CHANNEL_CLOSED,
    CHANNEL_SUBSCRIBED,
    EVENT_PHASE_CHANGE,
    EVENT_PHASE_SYNC_REQUEST,
    GamePhase,
)
from src.game.errors import ChannelUnavailableError
from src.game.realtime import RealtimeChannel, RealtimeHub


class Recorder:
    def __init__(self):
        self.broadcasts = []
        self.rows = []
        self.statuses = []

    def on_broadcast(self, event, payload):
        self.broadcasts.append((event, payload))

    def on_row_change(self, table, row):
        self.rows.append((table, row))

    def on_status(self, status):
        self.statuses.append(status)


def _channel(hub, session_id="s1"):
    recorder = Recorder()
    channel = RealtimeChannel(hub, session_id)
    channel.subscribe(
        recorder.on_broadcast, recorder.on_row_change, recorder.on_status
    )
    return channel, recorder


def test_broadcast_is_not_echoed_to_sender():
    hub = RealtimeHub()
    a, rec_a = _channel(hub)
    b, rec_b = _channel(hub)

    delivered = a.send(EVENT_PHASE_CHANGE, {"phase": "discussion"})

    assert delivered == 1
    assert rec_a.broadcasts == []
    assert rec_b.broadcasts == [(EVENT_PHASE_CHANGE, {"phase": "discussion"})]


def test_topics_are_isolated_per_session():
    hub = RealtimeHub()
    a, _ = _channel(hub, "s1")
    _, other = _channel(hub, "s2")
    a.send(EVENT_PHASE_CHANGE, {"phase": "finished"})
    hub.publish_row_change("game_sessions", "s1", {"id": "s1"})
    assert other.broadcasts == []
    assert other.rows == []


def test_row_changes_reach_every_subscriber():
    hub = RealtimeHub()
    _, rec_a = _channel(hub)
    _, rec_b = _channel(hub)
    assert hub.publish_row_change("game_sessions", "s1", {"id": "s1"}) == 2
    assert rec_a.rows == rec_b.rows == [("game_sessions", {"id": "s1"})]


def test_status_lifecycle_and_send_after_unsubscribe():
    hub = RealtimeHub()
    channel, recorder = _channel(hub)
    assert recorder.statuses == [CHANNEL_SUBSCRIBED]
    assert hub.subscriber_count("s1") == 1

    channel.unsubscribe()
    assert recorder.statuses == [CHANNEL_SUBSCRIBED, CHANNEL_CLOSED]
    assert hub.subscriber_count("s1") == 0
    with pytest.raises(ChannelUnavailableError):
        channel.send(EVENT_PHASE_CHANGE, {})


def test_handler_may_send_from_subscribed_ack():
    hub = RealtimeHub()
    _, host = _channel(hub)
    channel = RealtimeChannel(hub, "s1")

    def on_status(status):
        if status == CHANNEL_SUBSCRIBED:
            channel.send(EVENT_PHASE_SYNC_REQUEST, {})

    channel.subscribe(lambda *a: None, lambda *a: None, on_status)
    assert host.broadcasts == [(EVENT_PHASE_SYNC_REQUEST, {})]


def test_failing_subscriber_does_not_stop_fanout():
    hub = RealtimeHub()

    def broken(event, payload):
        raise RuntimeError("boom")

    hub.subscribe("s1", on_broadcast=broken)
    _, recorder = _channel(hub)
    hub.broadcast("s1", EVENT_PHASE_CHANGE, {"phase": "lobby"})
    assert recorder.broadcasts == [(EVENT_PHASE_CHANGE, {"phase": "lobby"})]


def test_channel_without_hub_is_unavailable():
    with pytest.raises(ChannelUnavailableError):
        RealtimeChannel(None, "s1").subscribe(lambda *a: None, lambda *a: None)


def test_late_joiner_gets_discussion_from_host(make_device, players):
    """A device subscribing after the phase change catches up via sync."""
    host = make_device("host-guest", allow_offline=False)
    session = host.create_session(1, ["pack-animals", "pack-town"], players=players)
    assert host.start_dealing()
    assert host.continue_to_discussion()

    late = make_device("late-guest")
    assert late.load(session.id)

    assert late.local_phase == GamePhase.DISCUSSION
    assert late.phase == GamePhase.DISCUSSION
    assert late.session.first_speaker_player_id == host.session.first_speaker_player_id
