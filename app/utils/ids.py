"""Record id generation."""

import secrets
import time


def generate_id(prefix: str) -> str:
    """Build ids like ``msg_1718000000000_k3j9x2a1b``.

    The millisecond prefix keeps ids roughly time-ordered; the random suffix
    keeps ids unique across processes writing the same file mirror.
    """
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(5)}"
