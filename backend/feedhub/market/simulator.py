"""Seeded mean-reverting probability simulator."""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from .models import FeedState, HistoryPoint, iso_timestamp
from .sim_params import (
    BACKFILL_KEEP,
    BACKFILL_SHOCK,
    BACKFILL_SPACING_MINUTES,
    BASE_LEVEL_MIN,
    BASE_LEVEL_SPAN,
    HISTORY_CAP,
    LIVE_KEEP,
    LIVE_SHOCK,
    PROBABILITY_CEILING,
    PROBABILITY_FLOOR,
)

logger = logging.getLogger(__name__)

_MASK32 = 0xFFFFFFFF
FNV_OFFSET = 2166136261
FNV_PRIME = 16777619


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash over the UTF-16 code units of ``text``.

    Characters outside the BMP contribute both halves of their surrogate
    pair, so ids hash the same as in browser clients.
    """
    h = FNV_OFFSET
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = (h * FNV_PRIME) & _MASK32
    return h


class SeededRandom:
    """Mulberry32 generator: small, fast, and identical across runs for a seed.

    Not suitable for anything security related.
    """

    def __init__(self, seed: int) -> None:
        self._state = seed & _MASK32

    @classmethod
    def for_entity(cls, entity_id: str) -> SeededRandom:
        return cls(fnv1a_32(entity_id))

    def random(self) -> float:
        """Next float in [0, 1)."""
        self._state = (self._state + 0x6D2B79F5) & _MASK32
        h = self._state
        t = ((h ^ (h >> 15)) * (1 | h)) & _MASK32
        t ^= (t + ((t ^ (t >> 7)) * (61 | t))) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296.0

    __call__ = random


def displayed_probability(level: float) -> int:
    """Clamp a raw level to the displayable band and round half up."""
    return math.floor(max(PROBABILITY_FLOOR, min(PROBABILITY_CEILING, level)) + 0.5)


def backfill(entity_id: str, now: datetime | None = None) -> FeedState:
    """Build the initial FeedState for an entity.

    Deterministic in ``entity_id``: the base level, the final level and every
    probability are identical on every call. Dates count back from ``now`` in
    5-minute steps, oldest first, so they are identical too when ``now`` is
    pinned.
    """
    rand = SeededRandom.for_entity(entity_id)
    now = now or datetime.now(timezone.utc)

    base = BASE_LEVEL_MIN + rand() * BASE_LEVEL_SPAN
    state = FeedState(base_level=base, level=base)

    for i in range(HISTORY_CAP - 1, -1, -1):
        moment = now - timedelta(minutes=i * BACKFILL_SPACING_MINUTES)
        shock = (rand() - 0.5) * BACKFILL_SHOCK
        state.level = BACKFILL_KEEP * state.level + (1 - BACKFILL_KEEP) * base + shock
        state.history.append(
            HistoryPoint(date=iso_timestamp(moment), probability=displayed_probability(state.level))
        )

    logger.debug("Backfilled %s: base=%.2f level=%.2f", entity_id, base, state.level)
    return state


def step(state: FeedState, rng: Callable[[], float] = random.random) -> HistoryPoint:
    """Advance the walk by one live tick and append the new point.

    Live ticks draw from the process-wide random source, not the entity's
    seeded stream, so only the backfill is reproducible.
    """
    shock = (rng() - 0.5) * LIVE_SHOCK
    state.level = LIVE_KEEP * state.level + (1 - LIVE_KEEP) * state.base_level + shock
    point = HistoryPoint(date=iso_timestamp(), probability=displayed_probability(state.level))
    state.history.append(point)  # deque(maxlen) evicts the oldest point
    return point
