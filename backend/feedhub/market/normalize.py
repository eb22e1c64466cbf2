"""Normalization of heterogeneous CLOB payloads.

The CLOB API is not consistent about shapes: order-book sides arrive as
lists of ``[price, size]`` pairs, lists of ``{"price", "size"}`` objects or
``{price: size}`` maps; prices arrive as strings or numbers; price histories
arrive as flat lists, as ``{"history": [...]}`` or as ``{timestamp: price}``
maps. Each shape is one small adapter that either normalizes the payload or
declines by returning None. Adapters are tried in priority order.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Adapter(Generic[T]):
    """A named normalizer. ``normalize`` returns None to decline."""

    name: str
    normalize: Callable[[Any], T | None]


def first_match(adapters: Sequence[Adapter[T]], payload: Any) -> T | None:
    """Run adapters in order; return the first non-None result."""
    for adapter in adapters:
        try:
            result = adapter.normalize(payload)
        except (TypeError, ValueError, KeyError, AttributeError) as e:
            logger.debug("Adapter %s failed: %s", adapter.name, e)
            continue
        if result is not None:
            return result
    return None


def coerce_float(value: Any) -> float | None:
    """Coerce a number or numeric string to a finite float, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


# --- Order-book sides ---

Pair = tuple[float, float]


def _finite_pairs(raw: list[tuple[Any, Any]]) -> list[Pair]:
    pairs = []
    for price, size in raw:
        p, s = coerce_float(price), coerce_float(size)
        if p is not None and s is not None:
            pairs.append((p, s))
    return pairs


def _side_from_pairs(side: Any) -> list[Pair] | None:
    if not isinstance(side, list):
        return None
    entries = [e for e in side if isinstance(e, (list, tuple)) and len(e) >= 2]
    if side and not entries:
        return None
    return _finite_pairs([(e[0], e[1]) for e in entries])


def _side_from_objects(side: Any) -> list[Pair] | None:
    if not isinstance(side, list):
        return None
    entries = [e for e in side if isinstance(e, dict) and "price" in e]
    if not entries:
        return None
    return _finite_pairs([(e.get("price"), e.get("size")) for e in entries])


def _side_from_map(side: Any) -> list[Pair] | None:
    if not isinstance(side, dict):
        return None
    return _finite_pairs(list(side.items()))


BOOK_SIDE_ADAPTERS: tuple[Adapter[list[Pair]], ...] = (
    Adapter("pairs", _side_from_pairs),
    Adapter("objects", _side_from_objects),
    Adapter("map", _side_from_map),
)


def normalize_book_side(side: Any) -> list[Pair]:
    """Coerce one order-book side to finite (price, size) pairs; [] if unusable."""
    return first_match(BOOK_SIDE_ADAPTERS, side) or []


# --- Single prices ---

PRICE_KEYS = ("price", "midpoint", "value")


def _price_from_object(payload: Any) -> float | None:
    if not isinstance(payload, dict):
        return None
    for key in PRICE_KEYS:
        if payload.get(key):
            return coerce_float(payload[key])
    return None


PRICE_ADAPTERS: tuple[Adapter[float], ...] = (
    Adapter("object", _price_from_object),
    Adapter("scalar", coerce_float),
)


def normalize_price(payload: Any) -> float | None:
    """Extract a strictly positive price from a /price payload, else None."""
    price = first_match(PRICE_ADAPTERS, payload)
    if price is None or price <= 0:
        return None
    return price


# --- Price histories ---

@dataclass(frozen=True, slots=True)
class HistorySample:
    """One point of an upstream price history."""

    timestamp: str
    price: float
    volume: float | None = None

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "price": self.price, "volume": self.volume}


def _first_present(point: dict, *keys: str) -> Any:
    for key in keys:
        if point.get(key) not in (None, ""):
            return point[key]
    return None


def _sample_from_point(point: Any) -> HistorySample | None:
    if not isinstance(point, dict):
        return None
    price = coerce_float(_first_present(point, "p", "price"))
    if price is None:
        return None
    timestamp = _first_present(point, "t", "timestamp")
    volume = _first_present(point, "v", "volume")
    return HistorySample(
        timestamp=str(timestamp) if timestamp is not None else "",
        price=price,
        volume=coerce_float(volume) if volume is not None else None,
    )


def _samples(points: list) -> list[HistorySample]:
    return [s for s in (_sample_from_point(p) for p in points) if s is not None]


def _history_from_list(payload: Any) -> list[HistorySample] | None:
    if not isinstance(payload, list):
        return None
    return _samples(payload)


def _history_from_nested(payload: Any) -> list[HistorySample] | None:
    if not isinstance(payload, dict) or not isinstance(payload.get("history"), list):
        return None
    return _samples(payload["history"])


def _history_from_map(payload: Any) -> list[HistorySample] | None:
    if not isinstance(payload, dict) or "history" in payload:
        return None
    samples = []
    for timestamp, value in payload.items():
        price = coerce_float(value)
        if price is not None:
            samples.append(HistorySample(timestamp=str(timestamp), price=price))
    return samples


HISTORY_ADAPTERS: tuple[Adapter[list[HistorySample]], ...] = (
    Adapter("list", _history_from_list),
    Adapter("nested", _history_from_nested),
    Adapter("timestamp-map", _history_from_map),
)


def normalize_history(payload: Any) -> list[HistorySample]:
    """Normalize any of the three history shapes; [] for anything else."""
    return first_match(HISTORY_ADAPTERS, payload) or []
