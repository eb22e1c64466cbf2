"""Market feed subsystem for feedhub.

Public API:
    FeedRegistry         - Owns per-entity feed state and one ticker per entity
    Subscription         - Ordered message queue handed to each subscriber
    OrderbookSynthesizer - Synthetic 5x5 order book around a mid-price
    ClobClient           - Live CLOB books, prices and histories (soft-failing).
                           fetch_price_history is library API for callers;
                           no route serves it yet.
    LiveBookSource       - Abstract interface for live book providers
    create_live_source   - Factory that selects the CLOB client or none
    create_stream_router - FastAPI router factory for the WebSocket channels
    enrich               - Rate-limited batch backfill of missing prices
    clob_price_fetcher   - enrich() fetcher pricing a single CLOB token
    clob_market_price_fetcher - enrich() fetcher pricing a YES/NO market pair
    EnrichmentItem       - Entity reference plus last-known price
"""

from .clob_client import ClobClient
from .enrichment import clob_market_price_fetcher, clob_price_fetcher, enrich
from .factory import create_live_source
from .interface import LiveBookSource
from .models import EnrichmentItem
from .orderbook import OrderbookSynthesizer
from .registry import FeedRegistry, Subscription
from .stream import create_stream_router

__all__ = [
    "ClobClient",
    "EnrichmentItem",
    "FeedRegistry",
    "LiveBookSource",
    "OrderbookSynthesizer",
    "Subscription",
    "clob_market_price_fetcher",
    "clob_price_fetcher",
    "create_live_source",
    "create_stream_router",
    "enrich",
]
