"""Factory for the optional live order-book source."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .interface import LiveBookSource

if TYPE_CHECKING:
    from ..config import FeedSettings

logger = logging.getLogger(__name__)


def create_live_source(settings: FeedSettings) -> LiveBookSource | None:
    """Create the live book source selected by settings.

    - live_books enabled → ClobClient against settings.clob_api_url
    - Otherwise → None (order-book channels stay fully synthetic)

    The caller owns the returned source and must await source.aclose().
    """
    if not settings.live_books:
        logger.info("Live order books: disabled (synthetic only)")
        return None

    from .clob_client import ClobClient

    logger.info("Live order books: CLOB API at %s", settings.clob_api_url)
    return ClobClient(
        base_url=settings.clob_api_url,
        timeout=settings.clob_timeout,
        max_retries=settings.clob_max_retries,
    )
