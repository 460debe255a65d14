"""
Sample message generator for development runs.

Produces deterministic batches (seeded) so a demo run can be repeated
exactly without any connector.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import List, Optional
import random

from .contracts import Message, utc_now


PLATFORMS = ('slack', 'teams', 'zoom')
UNITS = ('general', 'engineering', 'product', 'leadership')

SAMPLE_TEXTS = (
    'The new initiative is moving forward smoothly',
    'We need to pivot our strategy for next quarter',
    'Great progress on the project milestone',
    'There are some concerns about the timeline',
    'Let me circle back on that proposal',
    'We should align on the objectives',
    'The data shows promising results',
    'We need more visibility into the process',
    'Our mission is to empower every customer, and we build that trust together.',
    'I am not sure I can fix this problem, it is difficult and nobody has time.',
)

DEFAULT_MISSION = (
    "To empower organizations with breakthrough technology that transforms how "
    "people work, collaborate, and achieve their potential while maintaining "
    "human connection and purpose."
)


def generate_messages(
    count: int = 10,
    seed: int = 42,
    now: Optional[datetime] = None,
    units: tuple = UNITS
) -> List[Message]:
    """
    Random-looking but reproducible messages, newest first.

    Same (count, seed, now) always yields the same batch.
    """
    rng = random.Random(seed)
    now = now or utc_now()

    messages = []
    for i in range(count):
        messages.append(Message(
            message_id=f"sample_{seed}_{i}",
            unit_id=rng.choice(units),
            text=rng.choice(SAMPLE_TEXTS),
            timestamp=now - timedelta(seconds=rng.uniform(0, 24 * 60 * 60)),
            user_id=f"raw_user_{rng.randrange(100)}",
            platform=rng.choice(PLATFORMS),
            channel=rng.choice(units)
        ))

    return sorted(messages, key=lambda m: m.timestamp, reverse=True)
