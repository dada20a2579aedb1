"""
Session orchestrator for the Topo game.

Owns one device's view of a session: creation (with the card chosen up
front), dealing, reveals, the ephemeral discussion phase and reset. Persisted
fields come from the session store; the discussion phase only travels over
realtime broadcasts, with the host as its single source of truth.

Every public operation returns an explicit result (bool / Optional) and
leaves a user-facing message in ``error`` on failure.
"""

import logging
import random
import threading
import time
import uuid
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as ModelValidationError

from commons import generate_join_code
from configs.config import get_config
from src.database.local_store import LocalStore
from src.game.card_cache import CardCache
from src.game.card_picker import pick_random_card
from src.game.connectivity import ConnectivityMonitor
from src.game.constants import (
    CHANNEL_SUBSCRIBED,
    EVENT_PHASE_CHANGE,
    EVENT_PHASE_SYNC_REQUEST,
    EVENT_PHASE_SYNC_STATE,
    KEY_VARIANT,
    MSG_NO_ACTIVE_WORDS,
    MSG_NO_CATEGORIES,
    MSG_NO_CHANNEL,
    MSG_NO_CONNECTION,
    MSG_NO_PLAYERS,
    MSG_NO_WORD_ASSIGNED,
    MSG_NOT_HOST,
    NO_CLUE_TEXT,
    OFFLINE_SESSION_PREFIX,
    PLACEHOLDER_DECEIVED_CLUE,
    PLACEHOLDER_DECEIVED_WORD,
    TABLE_PLAYERS,
    TABLE_SESSIONS,
    GameMode,
    GamePhase,
    GameVariant,
    Gender,
    PlayerRole,
    SessionStatus,
)
from src.game.dealing import deal_roles
from src.game.errors import (
    ChannelUnavailableError,
    GameError,
    StoreError,
)
from src.game.identity import Identity
from src.game.models import (
    Card,
    Player,
    PlayerCard,
    Session,
    is_offline_session_id,
)
from src.game.phase import (
    DeviceEvent,
    DeviceState,
    reduce_device_state,
    reconcile_phase,
)
from src.game.realtime import RealtimeChannel, RealtimeHub
from src.game.session_store import SessionStore
from src.game.word_history import WordHistory

logger = logging.getLogger(__name__)

cfg = get_config()


class SessionOrchestrator:
    """State machine for one device's participation in a session."""

    def __init__(
        self,
        identity: Identity,
        local_store: LocalStore,
        session_store: SessionStore,
        card_cache: CardCache,
        connectivity: ConnectivityMonitor,
        hub: Optional[RealtimeHub] = None,
        allow_offline_sessions: bool = True,
        rng=random,
        clock=time.monotonic,
    ) -> None:
        self.identity = identity
        self._local = local_store
        self._store = session_store
        self._cache = card_cache
        self._connectivity = connectivity
        self._hub = hub
        self._allow_offline = allow_offline_sessions
        self._rng = rng
        self._clock = clock
        self._history = WordHistory(local_store)

        self.session: Optional[Session] = None
        self.players: List[Player] = []
        self.local_phase: Optional[GamePhase] = None
        self.state = DeviceState()
        self.error: Optional[str] = None

        self._channel: Optional[RealtimeChannel] = None
        self._watchdog: Optional[threading.Timer] = None
        self._lock = threading.RLock()

    # ── Derived state ────────────────────────────────────────────────────

    @property
    def phase(self) -> GamePhase:
        status = self.session.status if self.session else None
        return reconcile_phase(status, self.local_phase)

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def dealing_requested(self) -> bool:
        return self.state.dealing_requested

    @property
    def waiting_for_assignment(self) -> bool:
        return self.state.waiting_for_assignment

    @property
    def is_host(self) -> bool:
        return self.identity.is_host(self.session)

    @property
    def variant(self) -> GameVariant:
        if self.session is None:
            return GameVariant.CLASSIC
        stored = self._local.get(KEY_VARIANT.format(session_id=self.session.id))
        return GameVariant(stored) if stored else self.session.variant

    @property
    def is_ready_for_dealing(self) -> bool:
        return (
            self.session is not None
            and not self.loading
            and self.session.status == SessionStatus.LOBBY
            and len(self.players) >= cfg.MIN_PLAYERS
            and self.session.has_word
        )

    def _dispatch(self, event: DeviceEvent, **kwargs) -> None:
        self.state = reduce_device_state(self.state, event, **kwargs)

    def _fail(self, message: str) -> None:
        logger.warning("Session %s: %s", self._session_id, message)
        self.error = message
        self._dispatch(DeviceEvent.FAILED, error=message)

    @property
    def _session_id(self) -> Optional[str]:
        return self.session.id if self.session else None

    # ── Loading / subscription ───────────────────────────────────────────

    def load(self, session_id: str) -> bool:
        """Fetch a session with its players and subscribe to its channel."""
        self._dispatch(DeviceEvent.LOAD_STARTED)
        self.error = None
        try:
            session, players = self._store.fetch(session_id)
        except GameError as exc:
            self._fail(str(exc))
            return False
        self._adopt(session, players)
        self._dispatch(DeviceEvent.LOADED)
        return True

    def load_by_join_code(self, join_code: str) -> bool:
        self._dispatch(DeviceEvent.LOAD_STARTED)
        self.error = None
        try:
            session, players = self._store.find_by_join_code(join_code)
        except GameError as exc:
            self._fail(str(exc))
            return False
        self._adopt(session, players)
        self._dispatch(DeviceEvent.LOADED)
        return True

    def _adopt(self, session: Session, players: List[Player]) -> None:
        if self._session_id != session.id:
            self.local_phase = None
            self._unsubscribe()
        self.session = session
        self.players = players
        self._subscribe()

    def _subscribe(self) -> None:
        if self.session is None or self.session.is_offline or self._hub is None:
            return
        if self._channel is not None and self._channel.is_subscribed:
            return
        self._channel = RealtimeChannel(self._hub, self.session.id)
        self._channel.subscribe(
            self._on_broadcast, self._on_row_change, self._on_channel_status
        )
        self._connectivity.add_listener(self._on_connectivity_change)

    def _unsubscribe(self) -> None:
        self._connectivity.remove_listener(self._on_connectivity_change)
        if self._channel is not None:
            self._channel.unsubscribe()
            self._channel = None

    def resubscribe(self) -> None:
        """Drop and re-open the channel, e.g. after reconnecting."""
        self._unsubscribe()
        self._subscribe()

    def close(self) -> None:
        self._cancel_watchdog()
        self._unsubscribe()

    def _on_connectivity_change(self, is_online: bool) -> None:
        if is_online and self._channel is not None:
            logger.info("Back online, resubscribing to %s", self._session_id)
            self.resubscribe()

    # ── Realtime handlers ────────────────────────────────────────────────

    def _on_channel_status(self, status: str) -> None:
        if status != CHANNEL_SUBSCRIBED or self._channel is None:
            return
        try:
            self._channel.send(
                EVENT_PHASE_SYNC_REQUEST, {"requester": self.identity.key}
            )
        except ChannelUnavailableError as exc:
            logger.warning("Phase sync request not sent: %s", exc)

    def _on_broadcast(self, event: str, payload: Dict) -> None:
        if event in (EVENT_PHASE_CHANGE, EVENT_PHASE_SYNC_STATE):
            self._apply_phase(payload)
        elif event == EVENT_PHASE_SYNC_REQUEST:
            self._answer_sync_request()
        else:
            logger.debug("Ignoring broadcast %s", event)

    def _apply_phase(self, payload: Dict) -> None:
        try:
            phase = GamePhase(payload.get("phase"))
        except ValueError:
            logger.warning("Malformed phase payload: %s", payload)
            return
        # lobby carries no ephemeral state
        self.local_phase = None if phase == GamePhase.LOBBY else phase
        first_speaker = payload.get("first_speaker_player_id")
        if first_speaker and self.session is not None:
            self.session = self.session.model_copy(
                update={"first_speaker_player_id": first_speaker}
            )
        logger.info(
            "Session %s: phase now %s", self._session_id, self.phase.value
        )

    def _answer_sync_request(self) -> None:
        if (
            not self.is_host
            or self.local_phase != GamePhase.DISCUSSION
            or self._channel is None
        ):
            return
        try:
            self._channel.send(
                EVENT_PHASE_SYNC_STATE,
                {
                    "phase": GamePhase.DISCUSSION.value,
                    "first_speaker_player_id": (
                        self.session.first_speaker_player_id
                    ),
                },
            )
        except ChannelUnavailableError as exc:
            logger.warning("Phase sync reply not sent: %s", exc)

    def _on_row_change(self, table: str, row: Dict) -> None:
        with self._lock:
            try:
                if table == TABLE_SESSIONS:
                    self._merge_session_row(row)
                elif table == TABLE_PLAYERS:
                    self._merge_player_row(row)
            except ModelValidationError as exc:
                logger.error("Discarding malformed %s row: %s", table, exc)
                self.error = "Received an invalid update"

    def _merge_session_row(self, row: Dict) -> None:
        if self.session is None or row.get("id") != self.session.id:
            return
        previous = self.session
        self.session = Session(**row)
        if (
            self.session.status == SessionStatus.LOBBY
            and previous.status != SessionStatus.LOBBY
        ):
            # back in the lobby means the game was reset
            self.local_phase = None
        if self.waiting_for_assignment and self.session.has_word:
            logger.info("Word arrived for session %s", self.session.id)
            self._cancel_watchdog()
            self._dispatch(DeviceEvent.WORD_ARRIVED)
            self._deal()

    def _merge_player_row(self, row: Dict) -> None:
        player = Player(**row)
        if self.session is None or player.session_id != self.session.id:
            return
        players = [p for p in self.players if p.id != player.id]
        players.append(player)
        self.players = sorted(
            players, key=lambda p: (p.turn_order is None, p.turn_order or 0)
        )

    def _broadcast_phase(self, phase: GamePhase) -> None:
        """Send a phase_change; raises ChannelUnavailableError."""
        if self._channel is None or not self._channel.is_subscribed:
            raise ChannelUnavailableError(MSG_NO_CHANNEL)
        self._channel.send(
            EVENT_PHASE_CHANGE,
            {
                "phase": phase.value,
                "first_speaker_player_id": (
                    self.session.first_speaker_player_id
                ),
            },
        )

    # ── Creation ─────────────────────────────────────────────────────────

    def create_session(
        self,
        topo_count: int,
        selected_pack_ids: Iterable[str],
        exclude_card_id: Optional[str] = None,
        clues_enabled: bool = True,
        mode: GameMode = GameMode.SINGLE,
        variant: GameVariant = GameVariant.CLASSIC,
        players: Iterable[Dict] = (),
        session_id: Optional[str] = None,
        max_players: Optional[int] = None,
    ) -> Optional[Session]:
        """
        Create a session with its card already chosen.

        The card comes from the local cache whenever it can; single-device
        sessions built that way never touch the network. Otherwise a card is
        picked remotely, which needs a connection. Passing *session_id* of an
        existing online session replays it with a fresh card.
        """
        selected_pack_ids = [pid for pid in selected_pack_ids if pid]
        self.error = None
        if not selected_pack_ids:
            self._fail(MSG_NO_CATEGORIES)
            return None

        self._dispatch(DeviceEvent.CREATE_STARTED)
        card = self._draw_cached_card(selected_pack_ids, exclude_card_id)
        if session_id is not None:
            offline = is_offline_session_id(session_id)
        else:
            offline = (
                card is not None
                and self._allow_offline
                and mode == GameMode.SINGLE
            )
        if offline and card is None:
            self._fail(MSG_NO_ACTIVE_WORDS)
            return None

        if not offline and not self._connectivity.is_online:
            self._fail(MSG_NO_CONNECTION)
            return None
        if card is None:
            try:
                card = pick_random_card(
                    selected_pack_ids, exclude_card_id, rng=self._rng
                )
            except StoreError as exc:
                self._fail(str(exc))
                return None
            if card is None:
                self._fail(MSG_NO_ACTIVE_WORDS)
                return None

        if session_id is not None:
            new_id = session_id
        elif offline:
            new_id = f"{OFFLINE_SESSION_PREFIX}{uuid.uuid4()}"
        else:
            new_id = str(uuid.uuid4())

        try:
            session = Session(
                id=new_id,
                **self.identity.host_fields(),
                mode=mode,
                join_code=(
                    generate_join_code() if mode == GameMode.MULTI else None
                ),
                status=SessionStatus.LOBBY,
                topo_count=topo_count,
                max_players=max_players,
                selected_pack_ids=selected_pack_ids,
                variant=variant,
                clues_enabled=clues_enabled,
                card_id=card.id,
                word_text=card.word,
                clue_text=card.clue,
            )
            new_players = [
                self._new_player(new_id, index=i, **spec)
                for i, spec in enumerate(players)
            ]
        except ModelValidationError as exc:
            self._fail(f"Invalid session data: {exc}")
            return None

        try:
            if session_id is not None:
                if self.session is not None and self.session.id == session_id:
                    session = session.model_copy(
                        update={
                            "join_code": self.session.join_code,
                            "host_user_id": self.session.host_user_id,
                            "host_guest_id": self.session.host_guest_id,
                        }
                    )
                self._store.replace_game_fields(session)
                for player in new_players:
                    self._store.add_player(player)
                session, stored_players = self._store.fetch(session_id)
            else:
                self._store.create_session(session, new_players)
                stored_players = new_players
        except GameError as exc:
            self._fail(str(exc))
            return None

        self._local.set(KEY_VARIANT.format(session_id=session.id), variant.value)
        self._history.add(card.id)
        self._adopt(session, stored_players)
        self.local_phase = None
        self._dispatch(DeviceEvent.LOADED)
        logger.info(
            "Session %s created (%s, %s) with card %s",
            session.id,
            "offline" if session.is_offline else "online",
            variant.value,
            card.id,
        )
        return session

    def _draw_cached_card(
        self, selected_pack_ids: List[str], exclude_card_id: Optional[str]
    ) -> Optional[Card]:
        if not self._cache.has_data():
            return None
        excluded = [exclude_card_id, *self._history.get()]
        return self._cache.get_random_card(selected_pack_ids, excluded)

    def _new_player(
        self,
        session_id: str,
        display_name: str,
        index: Optional[int] = None,
        gender: Gender = Gender.OTHER,
        avatar_key: Optional[str] = None,
        photo_url: Optional[str] = None,
        user_id: Optional[str] = None,
        guest_id: Optional[str] = None,
    ) -> Player:
        return Player(
            id=str(uuid.uuid4()),
            session_id=session_id,
            user_id=user_id,
            guest_id=guest_id or (None if user_id else str(uuid.uuid4())),
            display_name=display_name.strip(),
            gender=gender,
            avatar_key=avatar_key,
            photo_url=photo_url,
            turn_order=index,
        )

    # ── Players ──────────────────────────────────────────────────────────

    def add_player(
        self,
        display_name: str,
        gender: Gender = Gender.OTHER,
        avatar_key: Optional[str] = None,
        user_id: Optional[str] = None,
        guest_id: Optional[str] = None,
    ) -> Optional[Player]:
        """Add a player to the loaded session while it is in the lobby."""
        if self.session is None:
            self.error = "No session loaded"
            return None
        if self.session.status != SessionStatus.LOBBY:
            self.error = (
                "Game is closed"
                if self.session.status == SessionStatus.CLOSED
                else "Game has already started"
            )
            return None
        limit = self.session.max_players or cfg.MAX_PLAYERS
        try:
            # other devices may have joined since our last row change
            stored = self._store.count_players(self.session.id)
        except GameError as exc:
            self.error = f"Error joining game: {exc}"
            return None
        if max(stored, len(self.players)) >= limit:
            self.error = "Game is full"
            return None

        try:
            player = self._new_player(
                self.session.id,
                display_name,
                index=len(self.players),
                gender=gender,
                avatar_key=avatar_key,
                user_id=user_id,
                guest_id=guest_id,
            )
            self._store.add_player(player)
        except (GameError, ModelValidationError) as exc:
            self.error = f"Error joining game: {exc}"
            logger.error("Adding player failed: %s", exc)
            return None

        if all(p.id != player.id for p in self.players):
            self.players = [*self.players, player]
        return player

    def join_session(
        self,
        join_code: str,
        display_name: str,
        gender: Gender = Gender.OTHER,
        avatar_key: Optional[str] = None,
    ) -> Optional[Player]:
        """Join a multi-device session as this device's identity."""
        if not self.load_by_join_code(join_code):
            return None
        existing = next(
            (p for p in self.players if self.identity.owns(p)), None
        )
        if existing is not None:
            return existing
        return self.add_player(
            display_name,
            gender=gender,
            avatar_key=avatar_key,
            user_id=self.identity.user_id,
            guest_id=None if self.identity.user_id else self.identity.guest_id,
        )

    def close_lobby(self) -> bool:
        """Host-only: stop accepting joins."""
        if self.session is None or not self.is_host:
            self.error = MSG_NOT_HOST
            return False
        if self.session.status != SessionStatus.LOBBY:
            self.error = "Only a lobby can be closed"
            return False
        try:
            self.session = self._store.update_status(
                self.session.id, SessionStatus.CLOSED
            )
        except GameError as exc:
            self.error = str(exc)
            return False
        return True

    # ── Dealing ──────────────────────────────────────────────────────────

    def start_dealing(self) -> bool:
        """
        Assign roles, turn order and first speaker.

        Returns True once the deal is persisted. When the word is not there
        yet on an online session, the device waits for it (up to the
        watchdog timeout) and deals as soon as a row change delivers it.
        """
        with self._lock:
            if self.session is None:
                self.error = "No session loaded"
                return False
            if self.dealing_requested:
                logger.info(
                    "Dealing already in progress for %s", self.session.id
                )
                return False
            if not self.players:
                self._fail(MSG_NO_PLAYERS)
                return False

            self.error = None
            self._dispatch(DeviceEvent.DEAL_REQUESTED)

            if not self.session.has_word and not self.session.is_offline:
                try:
                    self.session, _ = self._store.fetch(self.session.id)
                except GameError as exc:
                    logger.warning("Refreshing session failed: %s", exc)

            if not self.session.has_word:
                if self.session.is_offline:
                    self._fail(MSG_NO_WORD_ASSIGNED)
                    return False
                self._dispatch(
                    DeviceEvent.WORD_MISSING,
                    now=self._clock(),
                    timeout=cfg.DEALING_TIMEOUT_SECONDS,
                )
                self.error = MSG_NO_WORD_ASSIGNED
                self._arm_watchdog()
                return False

            return self._deal()

    def _deal(self) -> bool:
        session = self.session
        variant = self.variant
        try:
            result = deal_roles(
                [p.id for p in self.players],
                session.topo_count,
                variant,
                rng=self._rng,
            )
        except GameError as exc:
            self._fail(str(exc))
            return False

        dealt = [
            p.model_copy(
                update={
                    "role": result.roles[p.id],
                    "turn_order": result.turn_orders[p.id],
                    "has_revealed": False,
                }
            )
            for p in self.players
        ]
        fields = {
            "status": SessionStatus.DEALING,
            "first_speaker_player_id": result.first_speaker_id,
            "deceived_word_text": None,
            "deceived_clue_text": None,
        }
        if variant == GameVariant.MISTERIOSO:
            decoy = self._draw_decoy_card(session)
            fields["deceived_word_text"] = (
                decoy.word if decoy else PLACEHOLDER_DECEIVED_WORD
            )
            fields["deceived_clue_text"] = (
                decoy.clue if decoy else PLACEHOLDER_DECEIVED_CLUE
            )

        try:
            self.session, self.players = self._store.save_deal(
                session, dealt, fields
            )
        except GameError as exc:
            self._fail(f"Error dealing roles: {exc}")
            return False

        self.local_phase = None
        if not self.session.is_offline:
            try:
                self._broadcast_phase(GamePhase.DEALING)
            except ChannelUnavailableError as exc:
                logger.warning("Dealing broadcast skipped: %s", exc)
        self._dispatch(DeviceEvent.DEALT)
        logger.info(
            "Session %s dealt: %d topo(s), first speaker %s",
            session.id, result.topo_count, result.first_speaker_id,
        )
        return True

    def _draw_decoy_card(self, session: Session) -> Optional[Card]:
        """A second card, different from the real one, for deceived topos."""
        card = None
        if session.is_offline or self._cache.has_data():
            card = self._cache.get_random_card(
                session.selected_pack_ids, [session.card_id]
            )
        if (card is None or card.id == session.card_id) and not session.is_offline:
            try:
                card = pick_random_card(
                    session.selected_pack_ids, session.card_id, rng=self._rng
                )
            except StoreError as exc:
                logger.warning("Decoy card lookup failed: %s", exc)
                card = None
        if card is None or card.id == session.card_id:
            logger.info("No decoy card for %s, using placeholder", session.id)
            return None
        return card

    # ── Watchdog ─────────────────────────────────────────────────────────

    def _arm_watchdog(self) -> None:
        self._cancel_watchdog()
        self._watchdog = threading.Timer(
            cfg.DEALING_TIMEOUT_SECONDS, self.on_dealing_timeout
        )
        self._watchdog.daemon = True
        self._watchdog.start()

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None

    def on_dealing_timeout(self) -> None:
        """Watchdog expiry: give up waiting and allow a clean retry."""
        with self._lock:
            if not self.waiting_for_assignment:
                return
            self._cancel_watchdog()
            self._dispatch(DeviceEvent.WATCHDOG_EXPIRED)
            self.error = self.state.error
            logger.error(
                "Session %s: word assignment timed out", self._session_id
            )

    # ── Reveal / discussion / finish ─────────────────────────────────────

    def mark_player_revealed(self, player_id: str) -> bool:
        """
        Mark a player's card as seen.

        The local view is updated first; a failed write is reported in
        ``error`` but not rolled back.
        """
        player = next((p for p in self.players if p.id == player_id), None)
        if self.session is None or player is None:
            self.error = f"Player {player_id} not found"
            return False
        if player.has_revealed:
            return True

        self.players = [
            p.model_copy(update={"has_revealed": True}) if p.id == player_id
            else p
            for p in self.players
        ]
        try:
            self._store.mark_revealed(self.session.id, player_id)
        except GameError as exc:
            self.error = f"Could not save reveal: {exc}"
            logger.error(
                "Persisting reveal of %s failed: %s", player_id, exc
            )
            return False
        return True

    @property
    def all_revealed(self) -> bool:
        return bool(self.players) and all(p.has_revealed for p in self.players)

    def continue_to_discussion(self) -> bool:
        """Host-only: enter the ephemeral discussion phase for everyone."""
        if self.session is None:
            self.error = "No session loaded"
            return False
        if not self.is_host:
            self.error = MSG_NOT_HOST
            return False
        if not self.session.is_offline and (
            self._channel is None or not self._channel.is_subscribed
        ):
            self.error = MSG_NO_CHANNEL
            logger.error("Session %s: no channel for discussion", self.session.id)
            return False

        self.local_phase = GamePhase.DISCUSSION
        if not self.session.is_offline:
            try:
                self._broadcast_phase(GamePhase.DISCUSSION)
            except ChannelUnavailableError as exc:
                self.error = MSG_NO_CHANNEL
                logger.error("Discussion broadcast failed: %s", exc)
                return False
        logger.info(
            "Session %s in discussion, first speaker %s",
            self.session.id, self.session.first_speaker_player_id,
        )
        return True

    def finish_game(self) -> bool:
        """End the game: broadcast finished and persist it."""
        if self.session is None:
            self.error = "No session loaded"
            return False
        if not self.session.is_offline:
            try:
                self._broadcast_phase(GamePhase.FINISHED)
            except ChannelUnavailableError as exc:
                self.error = MSG_NO_CHANNEL
                logger.error("Finish broadcast failed: %s", exc)
                return False
        self.local_phase = GamePhase.FINISHED
        try:
            self.session = self._store.update_status(
                self.session.id, SessionStatus.FINISHED
            )
        except GameError as exc:
            self.error = f"Error finishing game: {exc}"
            logger.error("Persisting finish failed: %s", exc)
            return False
        return True

    def reset_game(self) -> bool:
        """
        Clear the game so it can be replayed.

        Offline sessions are deleted; online sessions return to the lobby
        with every role, reveal flag and game field cleared.
        """
        if self.session is None:
            self.error = "No session loaded"
            return False
        session_id = self.session.id
        self._cancel_watchdog()
        try:
            session = self._store.reset_session(session_id)
            players = [] if session is None else self._store.fetch_players(session_id)
        except GameError as exc:
            self._fail(f"Error resetting game: {exc}")
            return False

        self.local_phase = None
        if session is None:
            self._local.remove(KEY_VARIANT.format(session_id=session_id))
            self._unsubscribe()
            self.session = None
            self.players = []
            self._dispatch(DeviceEvent.RESET)
            return True

        self.session = session
        self.players = players
        try:
            self._broadcast_phase(GamePhase.LOBBY)
        except ChannelUnavailableError as exc:
            logger.warning("Reset broadcast skipped: %s", exc)
        self._dispatch(DeviceEvent.LOADED)
        return True

    # ── Views ────────────────────────────────────────────────────────────

    def first_speaker(self) -> Optional[Player]:
        """Persisted first speaker, else the first player in turn order."""
        if not self.players:
            return None
        speaker_id = self.session.first_speaker_player_id if self.session else None
        return next(
            (p for p in self.players if p.id == speaker_id), self.players[0]
        )

    def card_for_player(self, player_id: str) -> Optional[PlayerCard]:
        """What *player_id* sees on reveal, or None before dealing."""
        player = next((p for p in self.players if p.id == player_id), None)
        session = self.session
        if (
            session is None
            or player is None
            or player.role == PlayerRole.UNASSIGNED
            or not session.has_word
        ):
            return None

        if player.role == PlayerRole.TOPO:
            clue = session.clue_text if session.clues_enabled else None
            return PlayerCard(
                player_id=player.id,
                role=player.role,
                clue=clue or NO_CLUE_TEXT,
                is_topo=True,
            )
        if player.role == PlayerRole.DECEIVED_TOPO:
            return PlayerCard(
                player_id=player.id,
                role=player.role,
                word=session.deceived_word_text or PLACEHOLDER_DECEIVED_WORD,
            )
        return PlayerCard(
            player_id=player.id, role=player.role, word=session.word_text
        )
