"""Synthetic history for rooms with nothing persisted yet.

The seed is a pure function of its arguments: the same ``count`` and
``start_from`` always produce the same ids, texts and timestamps. Messages
alternate user/synthetic, oldest first, spaced ``interval_ms`` apart and
ending one interval before ``start_from``.
"""
from typing import List

from .schemas import Message, Sender

DEFAULT_SEED_COUNT = 60
DEFAULT_SEED_INTERVAL_MS = 60_000


def generate_seed_history(
    count: int = DEFAULT_SEED_COUNT,
    start_from: int = 0,
    interval_ms: int = DEFAULT_SEED_INTERVAL_MS,
) -> List[Message]:
    """Build ``count`` alternating past messages ending before ``start_from``."""
    history = []
    for i in range(count):
        is_user = i % 2 == 0
        history.append(Message(
            id=f"seed-{start_from}-{i}",
            sender=Sender.USER if is_user else Sender.SYNTHETIC,
            text=f"Past message {i + 1}" if is_user else f"Past reply {i + 1}",
            timestamp=start_from - (count - i) * interval_ms,
        ))
    return history
