"""
Client-side filtering of episode search batches: name prefix, duration window,
random offset selection and the final uniform pick.
"""
from __future__ import annotations

import random
from typing import Iterable, List, Optional

from lib.meditation.models import Episode

NAME_PREFIX = "Meditation:"
DURATION_TOLERANCE_MS = 120000
BATCH_LIMIT = 50
# Spotify search rejects offset + limit beyond this
SEARCH_OFFSET_CEILING = 1000


def filter_by_name_prefix(episodes: Iterable[Episode], prefix: str = NAME_PREFIX) -> List[Episode]:
    return [ep for ep in episodes if ep.name.startswith(prefix)]


def filter_by_duration(
    episodes: Iterable[Episode],
    target_ms: int,
    tolerance_ms: int = DURATION_TOLERANCE_MS,
) -> List[Episode]:
    """
    Keep episodes whose length is within tolerance_ms of target_ms, in either
    direction. The bound is inclusive.
    """
    return [ep for ep in episodes if abs(ep.duration_ms - target_ms) <= tolerance_ms]


def random_offset(
    total: int,
    batch_size: int = BATCH_LIMIT,
    rng: Optional[random.Random] = None,
    ceiling: int = SEARCH_OFFSET_CEILING,
) -> int:
    """
    Uniform offset in [0, max(0, min(total, ceiling) - batch_size)).
    An empty range yields 0.
    """
    rng = rng or random
    max_offset = max(0, min(int(total), ceiling) - batch_size)
    if max_offset == 0:
        return 0
    return rng.randrange(max_offset)


def pick_episode(candidates: List[Episode], rng: Optional[random.Random] = None) -> Optional[Episode]:
    if not candidates:
        return None
    rng = rng or random
    return candidates[rng.randrange(len(candidates))]
