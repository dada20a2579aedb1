"""
Error taxonomy for the game core.

Orchestrator operations catch these at their boundary and turn them into
an explicit result plus a user-facing ``error`` message.
"""


class GameError(Exception):
    """Base class for all game core errors."""


class ValidationError(GameError):
    """Input rejected before any mutation."""


class SessionNotFoundError(GameError):
    """Session or player does not exist."""


class StoreError(GameError):
    """Remote store operation failed."""


class ConnectivityError(GameError):
    """Operation needs a capability the device currently lacks."""


class ChannelUnavailableError(ConnectivityError):
    """Broadcast attempted without a subscribed realtime channel."""
