"""
Shared utility functions and singletons used across multiple modules.
"""

import random

from slowapi import Limiter
from slowapi.util import get_remote_address

from configs.config import get_config

cfg = get_config()

# ── Shared rate-limiter instance ─────────────────────────────────────────
# Created here (not in main.py) so that route modules can import it
# without a circular dependency.
limiter = Limiter(key_func=get_remote_address)


def generate_join_code() -> str:
    """Generate a short join code without look-alike characters (e.g. 'K7QP')."""
    return "".join(
        random.choices(cfg.JOIN_CODE_ALPHABET, k=cfg.JOIN_CODE_LENGTH)
    )
