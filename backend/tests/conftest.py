"""Pytest configuration and fixtures."""

import pytest

from feedhub.config import FeedSettings


@pytest.fixture
def fast_settings():
    """Settings with sub-second tick cadence and no live venue."""
    return FeedSettings(live_books=False, history_interval=0.05, book_interval=0.05)
