"""
Composition of the game core.

``GameRuntime`` is the API server's process-wide state: the shared realtime
hub, session store and card cache, and one orchestrator per
(session, identity) so every HTTP client and WebSocket bridge drives the
same in-process state. Orchestrators left idle are evicted.

``open_device`` wires a single device's orchestrator over its own local
store.
"""

import logging
import random
import threading
import time
from typing import Dict, Optional, Tuple

from configs.config import get_config
from src.database.local_store import LocalStore
from src.game.card_cache import CardCache
from src.game.connectivity import ConnectivityMonitor
from src.game.identity import Identity
from src.game.orchestrator import SessionOrchestrator
from src.game.realtime import RealtimeHub
from src.game.session_store import SessionStore

logger = logging.getLogger(__name__)

cfg = get_config()


def open_device(
    local_store: LocalStore,
    hub: Optional[RealtimeHub] = None,
    user_id: Optional[str] = None,
    online: bool = True,
    allow_offline_sessions: bool = True,
    rng=random,
) -> SessionOrchestrator:
    """Orchestrator for one device, acting as its persisted guest identity."""
    cache = CardCache(local_store, rng=rng)
    connectivity = ConnectivityMonitor(online=online)
    connectivity.add_listener(cache.maybe_sync)
    return SessionOrchestrator(
        Identity.load(local_store, user_id=user_id),
        local_store,
        SessionStore(local_store, hub),
        cache,
        connectivity,
        hub=hub,
        allow_offline_sessions=allow_offline_sessions,
        rng=rng,
    )


class GameRuntime:
    def __init__(
        self, local_store: Optional[LocalStore] = None, clock=time.monotonic
    ) -> None:
        # the server has no device-local state worth persisting
        self.local_store = local_store or LocalStore()
        self.hub = RealtimeHub()
        self.store = SessionStore(self.local_store, self.hub)
        self.cache = CardCache(self.local_store)
        self.connectivity = ConnectivityMonitor(online=True)
        self.connectivity.add_listener(self.cache.maybe_sync)
        self._orchestrators: Dict[Tuple[str, str], SessionOrchestrator] = {}
        self._last_used: Dict[Tuple[str, str], float] = {}
        self._clock = clock
        self._lock = threading.RLock()

    def orchestrator(
        self, session_id: Optional[str], identity: Identity
    ) -> SessionOrchestrator:
        """Return (creating if needed) the orchestrator for this caller."""
        key = (session_id or "", identity.key)
        with self._lock:
            self._evict_idle()
            orchestrator = self._orchestrators.get(key)
            if orchestrator is None:
                orchestrator = SessionOrchestrator(
                    identity,
                    self.local_store,
                    self.store,
                    self.cache,
                    self.connectivity,
                    hub=self.hub,
                    allow_offline_sessions=False,
                )
                if session_id:
                    self._orchestrators[key] = orchestrator
            if session_id:
                self._last_used[key] = self._clock()
            return orchestrator

    def register(self, orchestrator: SessionOrchestrator) -> None:
        """Index an orchestrator under the session it just created."""
        key = (orchestrator.session.id, orchestrator.identity.key)
        with self._lock:
            self._orchestrators[key] = orchestrator
            self._last_used[key] = self._clock()

    def drop_session(self, session_id: str) -> None:
        """Close every orchestrator of a session; later calls reload it."""
        with self._lock:
            keys = [key for key in self._orchestrators if key[0] == session_id]
            for key in keys:
                self._last_used.pop(key, None)
                self._orchestrators.pop(key).close()
        logger.info(
            "Dropped %d orchestrator(s) for session %s", len(keys), session_id
        )

    def _evict_idle(self) -> None:
        cutoff = self._clock() - cfg.ORCHESTRATOR_IDLE_SECONDS
        idle = [key for key, used in self._last_used.items() if used < cutoff]
        for key in idle:
            del self._last_used[key]
            self._orchestrators.pop(key).close()
        if idle:
            logger.info("Evicted %d idle orchestrator(s)", len(idle))

    def shutdown(self) -> None:
        with self._lock:
            for orchestrator in self._orchestrators.values():
                orchestrator.close()
            self._orchestrators.clear()
            self._last_used.clear()


_runtime: Optional[GameRuntime] = None
_runtime_lock = threading.Lock()


def get_runtime() -> GameRuntime:
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = GameRuntime()
        return _runtime


def reset_runtime() -> None:
    """Discard the shared runtime (used between tests)."""
    global _runtime
    with _runtime_lock:
        if _runtime is not None:
            _runtime.shutdown()
        _runtime = None
