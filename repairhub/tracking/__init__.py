"""
Client-side optimistic tracking of quote requests

Boundary names used by the apps:
    trackSend    -> QuoteTrackingStore.mark_sending
    trackConfirm -> QuoteTrackingStore.mark_sent
    trackFail    -> QuoteTrackingStore.mark_failed
    trackSync    -> QuoteTrackingStore.sync_from_server
    queryActive  -> QuoteTrackingStore.is_quote_active
"""

from .storage import JSONFileStorage, MemoryStorage, RedisStorage
from .store import (
    QuoteKey,
    QuoteTrackingStore,
    TrackedQuoteEntry,
    TrackedQuoteStatus,
    entry_from_bid,
    reconcile,
    tracked_status_for,
)
