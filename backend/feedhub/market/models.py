"""Data models for the market feed."""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from .sim_params import HISTORY_CAP

Side = Literal["bid", "ask"]


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC ISO-8601 string with millisecond precision and a trailing 'Z'."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class HistoryPoint:
    """One displayed point of a probability history."""

    date: str
    probability: int

    def to_dict(self) -> dict:
        return {"date": self.date, "probability": self.probability}


@dataclass(frozen=True, slots=True)
class PriceLevel:
    """One level of an order book."""

    price: float
    size: float
    cumulative: float
    side: Side

    def to_dict(self) -> dict:
        """Serialize for JSON / WebSocket transmission. The side travels as 'type'."""
        return {
            "price": self.price,
            "size": self.size,
            "cumulative": self.cumulative,
            "type": self.side,
        }


@dataclass(slots=True)
class FeedState:
    """Mean-reverting probability walk for one entity.

    ``level`` is the latest unclamped level; ``history`` holds at most
    HISTORY_CAP points, oldest first.
    """

    base_level: float
    level: float
    history: deque[HistoryPoint] = field(default_factory=lambda: deque(maxlen=HISTORY_CAP))

    def history_dicts(self) -> list[dict]:
        return [point.to_dict() for point in self.history]


@dataclass(slots=True)
class OrderbookState:
    """Synthetic order book for one entity."""

    mid_price: float
    levels: list[PriceLevel] = field(default_factory=list)
    token_id: str | None = None  # Live token reference, if any subscriber supplied one


@dataclass(frozen=True, slots=True)
class LiveBook:
    """Normalized order book fetched from the live venue."""

    levels: list[PriceLevel]
    mid_price: float


@dataclass(frozen=True, slots=True)
class EnrichmentItem:
    """An entity reference plus its last-known price (0 means no price yet)."""

    ref: str
    price: float = 0.0
    payload: Any = None

    @property
    def has_price(self) -> bool:
        return is_valid_price(self.price)


def is_valid_price(value: Any) -> bool:
    """True for finite, strictly positive numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def history_message(state: FeedState) -> dict:
    return {"type": "history", "history": state.history_dicts()}


def tick_message(point: HistoryPoint) -> dict:
    return {"type": "tick", "point": point.to_dict()}


def book_message(kind: Literal["snapshot", "update"], mid_price: float, levels: list[PriceLevel]) -> dict:
    return {
        "type": kind,
        "midPrice": mid_price,
        "levels": [level.to_dict() for level in levels],
    }
