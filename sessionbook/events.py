"""Per-provider booking feed for downstream consumers.

Committed and cancelled bookings (and wizard transitions, for tracing) are
emitted here. Calendar display, session notes and messaging subscribe; the
core itself never delivers notifications.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TypedDict

log = logging.getLogger("sessionbook.events")


class FeedEvent(TypedDict):
    type: str          # booking_committed | booking_cancelled | wizard_transition | commit_failed
    timestamp: float
    provider_id: str
    data: dict


class BookingFeed:
    """Per-provider event broadcaster using asyncio.Queue per subscriber."""

    def __init__(self, provider_id: str, log_limit: int = 1000) -> None:
        self._provider_id = provider_id
        self._subscribers: list[asyncio.Queue[FeedEvent]] = []
        self._event_log: list[FeedEvent] = []
        self._log_limit = log_limit

    def subscribe(self) -> asyncio.Queue[FeedEvent]:
        """Create a new subscriber queue and return it."""
        q: asyncio.Queue[FeedEvent] = asyncio.Queue(maxsize=200)
        self._subscribers.append(q)
        log.info("Feed subscriber added for provider %s (total: %d)",
                 self._provider_id, len(self._subscribers))
        return q

    def unsubscribe(self, q: asyncio.Queue[FeedEvent]) -> None:
        """Remove a subscriber queue."""
        if q in self._subscribers:
            self._subscribers.remove(q)
        log.info("Feed subscriber removed for provider %s (total: %d)",
                 self._provider_id, len(self._subscribers))

    def emit(self, event_type: str, data: dict) -> FeedEvent:
        """Broadcast an event to all subscribers and append to the event log."""
        event: FeedEvent = {
            "type": event_type,
            "timestamp": time.time(),
            "provider_id": self._provider_id,
            "data": data,
        }
        self._event_log.append(event)
        if len(self._event_log) > self._log_limit:
            del self._event_log[: len(self._event_log) - self._log_limit]

        for q in self._subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                # Drop oldest event to make room
                try:
                    q.get_nowait()
                    q.put_nowait(event)
                except (asyncio.QueueEmpty, asyncio.QueueFull):
                    log.warning("Feed subscriber for %s is stuck, event dropped",
                                self._provider_id)
        return event

    @property
    def event_log(self) -> list[FeedEvent]:
        return list(self._event_log)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)


# ── Global feed registry ─────────────────────────────────────────────

_feeds: dict[str, BookingFeed] = {}


def get_feed(provider_id: str) -> BookingFeed:
    """Get or create the feed for a provider."""
    if provider_id not in _feeds:
        _feeds[provider_id] = BookingFeed(provider_id)
        log.info("BookingFeed created for provider %s", provider_id)
    return _feeds[provider_id]


def remove_feed(provider_id: str) -> None:
    """Drop a provider's feed (and its history)."""
    if _feeds.pop(provider_id, None) is not None:
        log.info("BookingFeed removed for provider %s", provider_id)
