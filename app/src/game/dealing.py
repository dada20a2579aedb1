"""
Role, turn-order and first-speaker assignment.

Every randomization is an unbiased Fisher–Yates shuffle (``random.shuffle``)
or a uniform pick. Roles, turn order and first speaker come from separate
draws so none of them leaks information about the others.
"""

import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Sequence

from src.game.constants import MSG_NO_PLAYERS, GameVariant, PlayerRole
from src.game.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class DealResult:
    roles: Dict[str, PlayerRole]
    turn_orders: Dict[str, int]
    first_speaker_id: str
    topo_count: int

    @property
    def topo_ids(self) -> List[str]:
        return [
            player_id for player_id, role in self.roles.items()
            if role != PlayerRole.CREW
        ]


def effective_topo_count(
    configured: int, player_count: int, variant: GameVariant, rng=random
) -> int:
    """Topo count for this deal; ``caos`` ignores the configured value."""
    if variant == GameVariant.CAOS:
        return rng.randint(1, player_count)
    return max(1, min(configured, player_count))


def deal_roles(
    player_ids: Sequence[str],
    topo_count: int,
    variant: GameVariant = GameVariant.CLASSIC,
    rng=random,
) -> DealResult:
    """Assign roles, a fresh turn order and a first speaker."""
    player_ids = list(player_ids)
    if not player_ids:
        raise ValidationError(MSG_NO_PLAYERS)

    count = effective_topo_count(topo_count, len(player_ids), variant, rng)

    # 1. role selection, independent of join or turn order
    role_draw = list(player_ids)
    rng.shuffle(role_draw)
    topo_ids = set(role_draw[:count])
    topo_role = (
        PlayerRole.DECEIVED_TOPO
        if variant == GameVariant.MISTERIOSO
        else PlayerRole.TOPO
    )
    roles = {
        player_id: topo_role if player_id in topo_ids else PlayerRole.CREW
        for player_id in player_ids
    }

    # 2. turn order, decorrelated from the role draw
    turn_draw = list(player_ids)
    rng.shuffle(turn_draw)
    turn_orders = {player_id: index for index, player_id in enumerate(turn_draw)}

    # 3. first speaker, independent of both
    first_speaker_id = rng.choice(player_ids)

    logger.debug(
        "Dealt %d topo(s) among %d players (variant=%s)",
        count, len(player_ids), variant.value,
    )
    return DealResult(roles, turn_orders, first_speaker_id, count)
