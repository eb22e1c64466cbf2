"""WebSocket streaming endpoints for probability history and order books."""

from __future__ import annotations

import asyncio
import logging
import math

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from .registry import FeedRegistry, Subscription
from .sim_params import DEFAULT_ENTITY_ID

logger = logging.getLogger(__name__)


def resolve_entity_id(raw: str | None) -> str:
    """Trimmed entity id, or the default id when missing or blank."""
    value = (raw or "").strip()
    return value or DEFAULT_ENTITY_ID


def parse_mid_price(raw: str | None) -> float | None:
    """Parse an optional mid-price query value; None when absent or unusable."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) and value > 0 else None


def create_stream_router(registry: FeedRegistry) -> APIRouter:
    """Create the WebSocket router bound to a feed registry.

    Only the two paths below are routed. A WebSocket upgrade for any other
    path is closed by the router before it is accepted, so no handshake
    completes.
    """
    router = APIRouter(prefix="/ws", tags=["streaming"])

    @router.websocket("/price-history")
    async def price_history(websocket: WebSocket) -> None:
        """Probability feed.

        Sends {"type": "history", "history": [...]} once, then
        {"type": "tick", "point": {...}} on every registry tick.
        """
        entity_id = resolve_entity_id(websocket.query_params.get("marketId"))
        await websocket.accept()
        subscription = registry.subscribe_history(entity_id)
        await _pump(websocket, subscription)

    @router.websocket("/orderbook")
    async def orderbook(websocket: WebSocket) -> None:
        """Order-book feed.

        Sends {"type": "snapshot", "midPrice": ..., "levels": [...]} once,
        then {"type": "update", ...} on every registry tick. A tokenId query
        parameter enables live books for the entity.
        """
        params = websocket.query_params
        entity_id = resolve_entity_id(params.get("marketId"))
        initial_mid = parse_mid_price(params.get("midPrice"))
        token_id = (params.get("tokenId") or "").strip() or None

        await websocket.accept()
        subscription = await registry.subscribe_book(entity_id, initial_mid, token_id)
        await _pump(websocket, subscription)

    return router


async def _watch_disconnect(websocket: WebSocket, subscription: Subscription) -> None:
    """Read (and ignore) client frames until the client goes away."""
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except (WebSocketDisconnect, RuntimeError):
        pass
    finally:
        subscription.close()


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    """Forward subscription messages to the client in order.

    Whatever ends the connection (client close, send error, cancellation,
    server shutdown), the subscription is released exactly once.
    """
    client = websocket.client.host if websocket.client else "unknown"
    logger.info("WS %s subscribed to %s/%s", client, subscription.channel, subscription.entity_id)
    watcher = asyncio.create_task(_watch_disconnect(websocket, subscription))
    try:
        async for message in subscription:
            await websocket.send_json(message)
    except WebSocketDisconnect:
        logger.info("WS %s disconnected from %s/%s", client, subscription.channel, subscription.entity_id)
    except RuntimeError as e:
        # Starlette raises RuntimeError when sending on a socket that is already closed
        logger.info("WS %s send failed on %s/%s: %s", client, subscription.channel, subscription.entity_id, e)
    finally:
        subscription.close()
        watcher.cancel()
        if websocket.client_state == WebSocketState.CONNECTED and websocket.application_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                pass
    logger.info("WS %s released %s/%s", client, subscription.channel, subscription.entity_id)
