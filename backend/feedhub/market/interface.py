"""Abstract interface for live order-book sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import LiveBook


class LiveBookSource(ABC):
    """Contract for providers of real order books.

    Live books are used opportunistically: the feed registry asks for one on
    every order-book tick for entities that carry a token reference, and
    falls back to its synthetic book whenever the answer is None.

    Lifecycle:
        source = create_live_source(settings)
        book = await source.fetch_book("123456")
        # ... app shutting down ...
        await source.aclose()
    """

    @abstractmethod
    async def fetch_book(self, token_id: str) -> LiveBook | None:
        """Fetch and normalize the book for a token.

        Must never raise for network, status or payload problems. Returns None
        when nothing usable came back.
        """

    @abstractmethod
    async def aclose(self) -> None:
        """Release network resources. Safe to call multiple times."""
