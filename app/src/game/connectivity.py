"""
Online/offline tracking.

Purely reactive: the platform reports transitions through handle_online /
handle_offline. No polling, no retries.
"""

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Current online state plus an edge-triggered ``was_offline`` flag."""

    def __init__(self, online: bool = True) -> None:
        self._online = online
        self._was_offline = False
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def was_offline(self) -> bool:
        return self._was_offline

    def add_listener(self, callback: Callable[[bool], None]) -> None:
        """Call *callback(is_online)* on every transition."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[bool], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def handle_online(self) -> None:
        if self._online:
            return
        logger.info("Connection restored")
        self._online = True
        self._was_offline = False
        self._notify()

    def handle_offline(self) -> None:
        if not self._online:
            return
        logger.info("Connection lost - switching to offline mode")
        self._online = False
        self._was_offline = True
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._listeners):
            try:
                callback(self._online)
            except Exception as exc:
                logger.error("Connectivity listener failed: %s", exc)
