"""
Optimistic quote tracking store

Client-held record of "have I already asked this workshop for a quote on this
request". It lets a UI show a sent state immediately, blocks duplicate sends
while a submission is in flight, and converges with server state on sync.

State per (request_id, workshop_id):
- sending set: in flight, never persisted
- tracked entry: last known outcome, persisted through a StorageBackend

A tracked entry only blocks a new submission while its status is active
(submitted, viewed, quoted). Terminal statuses leave the pair free again and
the next mark_sent overwrites the old entry.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..domain.quotes.schemas import BidResponse
from ..models import (
    BID_ACCEPTED,
    BID_DECLINED,
    BID_EXPIRED,
    BID_PENDING,
    BID_QUOTED,
    BID_SUBMITTED,
    BID_VIEWED,
)
from .storage import MemoryStorage, StorageBackend

logger = logging.getLogger(__name__)


class TrackedQuoteStatus(str, Enum):
    submitted = "submitted"
    viewed = "viewed"
    quoted = "quoted"
    accepted = "accepted"
    rejected = "rejected"
    expired = "expired"
    failed = "failed"


ACTIVE_STATUSES = (TrackedQuoteStatus.submitted, TrackedQuoteStatus.viewed, TrackedQuoteStatus.quoted)


class ModalView(str, Enum):
    vehicles = "vehicles"
    services = "services"
    workshops = "workshops"
    vehicle_registration = "vehicle-registration"
    service_request = "service-request"
    closed = "closed"


BID_TO_TRACKED_STATUS = {
    BID_PENDING: TrackedQuoteStatus.submitted,
    BID_VIEWED: TrackedQuoteStatus.viewed,
    BID_SUBMITTED: TrackedQuoteStatus.quoted,
    BID_QUOTED: TrackedQuoteStatus.quoted,
    BID_ACCEPTED: TrackedQuoteStatus.accepted,
    BID_DECLINED: TrackedQuoteStatus.rejected,
    BID_EXPIRED: TrackedQuoteStatus.expired,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def is_active_status(status: TrackedQuoteStatus) -> bool:
    return status in ACTIVE_STATUSES


def tracked_status_for(bid_status: str) -> TrackedQuoteStatus:
    """
    Map a server bid status to what the customer tracks.

    From the customer's side an invitation is a sent request and a priced
    bid is a quote.
    """
    try:
        return BID_TO_TRACKED_STATUS[bid_status]
    except KeyError:
        raise ValueError(f"Unknown bid status: {bid_status}") from None


class QuoteKey(NamedTuple):
    request_id: str
    workshop_id: str

    @classmethod
    def of(cls, request_id: Any, workshop_id: Any) -> Optional["QuoteKey"]:
        """Build a key, or None when either id is missing"""
        if request_id is None or workshop_id is None:
            return None
        if str(request_id) == "" or str(workshop_id) == "":
            return None
        return cls(str(request_id), str(workshop_id))


class TrackedQuoteEntry(BaseModel):
    request_id: str
    workshop_id: str
    workshop_name: Optional[str] = None
    quotation_id: Optional[str] = None  # server bid id once known
    timestamp: datetime = Field(default_factory=utc_now)
    status: TrackedQuoteStatus = TrackedQuoteStatus.submitted
    quoted_amount: Optional[float] = None
    quoted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    last_updated: datetime = Field(default_factory=utc_now)
    retry_count: int = 0

    @field_validator("request_id", "workshop_id", "quotation_id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return None if v is None else str(v)

    @field_validator("timestamp", "quoted_at", "expires_at", "last_updated")
    @classmethod
    def assume_utc(cls, v):
        # Server timestamps are naive UTC
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def key(self) -> QuoteKey:
        return QuoteKey(self.request_id, self.workshop_id)


# Per-key state, derived from the sending set and the tracked map


class Idle(BaseModel):
    kind: Literal["idle"] = "idle"


class Sending(BaseModel):
    kind: Literal["sending"] = "sending"
    last_entry: Optional[TrackedQuoteEntry] = None


class Sent(BaseModel):
    kind: Literal["sent"] = "sent"
    entry: TrackedQuoteEntry


class Failed(BaseModel):
    kind: Literal["failed"] = "failed"
    last_entry: TrackedQuoteEntry


QuoteState = Union[Idle, Sending, Sent, Failed]


def reconcile(local: Optional[TrackedQuoteEntry], server: TrackedQuoteEntry) -> TrackedQuoteEntry:
    """
    Merge a server-reported entry into local state.

    The server wins unless the local entry was written after the server's
    copy and is not a failure; that is an optimistic write the server has
    not caught up with yet.
    """
    if local is None:
        return server
    if local.status == TrackedQuoteStatus.failed:
        return server
    if server.last_updated >= local.last_updated:
        return server
    return local


def entry_from_bid(bid: BidResponse, workshop_name: Optional[str] = None) -> TrackedQuoteEntry:
    """Build a sync entry from a bid as the API returns it"""
    last_updated = bid.updated_at or bid.submitted_at or utc_now()
    return TrackedQuoteEntry(
        request_id=bid.request_id,
        workshop_id=bid.workshop_id,
        workshop_name=workshop_name or bid.workshop_name,
        quotation_id=bid.id,
        timestamp=bid.submitted_at or last_updated,
        status=tracked_status_for(bid.status),
        quoted_amount=bid.amount,
        quoted_at=bid.submitted_at,
        expires_at=bid.valid_until,
        last_updated=last_updated,
    )


class QuoteTrackingStore:
    """
    Injectable state container for optimistic quote submissions.

    Commands mutate state and persist the durable part. Queries never raise
    on missing ids; they return False or None.
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.clock = clock
        self._entries: dict[QuoteKey, TrackedQuoteEntry] = {}
        self._sending: set[QuoteKey] = set()
        self.selected_request: Optional[dict] = None
        self.selected_vehicle: Optional[dict] = None
        self.view: ModalView = ModalView.closed
        self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        state = self.storage.load()
        if not state:
            return
        self.selected_request = state.get("selected_request")
        self.selected_vehicle = state.get("selected_vehicle")
        for raw in state.get("entries", []):
            entry = TrackedQuoteEntry.model_validate(raw)
            self._entries[entry.key] = entry
        logger.debug(f"📦 Loaded {len(self._entries)} tracked quotes")

    def _persist(self) -> None:
        self.storage.save(
            {
                "selected_request": self.selected_request,
                "selected_vehicle": self.selected_vehicle,
                "entries": [e.model_dump(mode="json") for e in self._entries.values()],
            }
        )

    @staticmethod
    def _require_key(request_id: Any, workshop_id: Any) -> QuoteKey:
        key = QuoteKey.of(request_id, workshop_id)
        if key is None:
            raise ValueError("request_id and workshop_id are required")
        return key

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def mark_sending(self, request_id: Any, workshop_id: Any) -> None:
        """Mark a submission as in flight. Idempotent; callers check is_quote_active first."""
        self._sending.add(self._require_key(request_id, workshop_id))

    def mark_sent(self, entry: Union[TrackedQuoteEntry, dict]) -> TrackedQuoteEntry:
        """Server confirmed the submission; replaces any previous entry for the pair"""
        entry = TrackedQuoteEntry.model_validate(entry)
        stored = entry.model_copy(
            update={
                "status": TrackedQuoteStatus.submitted,
                "last_updated": self.clock(),
                "retry_count": 0,
            }
        )
        self._sending.discard(stored.key)
        self._entries[stored.key] = stored
        self._persist()
        return stored

    def mark_failed(self, request_id: Any, workshop_id: Any) -> Optional[TrackedQuoteEntry]:
        """Submission failed. An existing entry becomes failed so the UI can offer a retry."""
        key = self._require_key(request_id, workshop_id)
        self._sending.discard(key)
        existing = self._entries.get(key)
        if existing is None:
            return None

        failed = existing.model_copy(
            update={
                "status": TrackedQuoteStatus.failed,
                "last_updated": self.clock(),
                "retry_count": existing.retry_count + 1,
            }
        )
        self._entries[key] = failed
        self._persist()
        logger.info(f"❌ Quote request {key.request_id}/{key.workshop_id} marked failed")
        return failed

    def update_status(
        self,
        request_id: Any,
        workshop_id: Any,
        status: Union[TrackedQuoteStatus, str],
        **metadata,
    ) -> Optional[TrackedQuoteEntry]:
        """Merge metadata and overwrite the status. No-op when the pair is not tracked."""
        key = QuoteKey.of(request_id, workshop_id)
        existing = self._entries.get(key) if key else None
        if existing is None:
            return None

        merged = existing.model_dump()
        merged.update(metadata)
        merged.update(
            status=TrackedQuoteStatus(status),
            last_updated=self.clock(),
            request_id=existing.request_id,
            workshop_id=existing.workshop_id,
        )
        updated = TrackedQuoteEntry.model_validate(merged)
        self._entries[key] = updated
        self._persist()
        return updated

    def mark_many_sent(self, entries: Iterable[Union[TrackedQuoteEntry, dict]]) -> list[TrackedQuoteEntry]:
        """Bulk confirmation for "request from all selected workshops" """
        now = self.clock()
        stored = []
        for raw in entries:
            entry = TrackedQuoteEntry.model_validate(raw).model_copy(
                update={"status": TrackedQuoteStatus.submitted, "last_updated": now, "retry_count": 0}
            )
            self._sending.discard(entry.key)
            self._entries[entry.key] = entry
            stored.append(entry)
        self._persist()
        return stored

    def sync_from_server(self, server_entries: Iterable[Union[TrackedQuoteEntry, dict]]) -> int:
        """
        Converge with server-reported entries through reconcile().

        Returns:
            Number of keys whose local entry was replaced
        """
        replaced = 0
        for raw in server_entries:
            server = TrackedQuoteEntry.model_validate(raw)
            local = self._entries.get(server.key)
            resolved = reconcile(local, server)
            if resolved is not local:
                self._entries[server.key] = resolved
                replaced += 1
            elif local is not None:
                logger.debug(
                    f"🔄 Kept newer local entry for {server.request_id}/{server.workshop_id}"
                )
        self._persist()
        logger.info(f"🔄 Synced tracked quotes from server ({replaced} updated)")
        return replaced

    def select_request(self, request: Optional[dict]) -> None:
        self.selected_request = request
        self._persist()

    def select_vehicle(self, vehicle: Optional[dict]) -> None:
        self.selected_vehicle = vehicle
        self._persist()

    def set_view(self, view: Union[ModalView, str]) -> None:
        self.view = ModalView(view)

    def reset(self) -> None:
        """Back to the initial state (selection, entries and in-flight keys)"""
        self._entries = {}
        self._sending = set()
        self.selected_request = None
        self.selected_vehicle = None
        self.view = ModalView.closed
        self._persist()

    def clear_all(self) -> None:
        """Reset and drop the persisted document (logout)"""
        self.reset()
        self.storage.clear()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entry(self, request_id: Any, workshop_id: Any) -> Optional[TrackedQuoteEntry]:
        key = QuoteKey.of(request_id, workshop_id)
        return self._entries.get(key) if key else None

    def is_quote_active(self, request_id: Any, workshop_id: Any) -> bool:
        entry = self.get_entry(request_id, workshop_id)
        return entry is not None and is_active_status(entry.status)

    def has_quote_sent(self, request_id: Any, workshop_id: Any) -> bool:
        return self.is_quote_active(request_id, workshop_id)

    def is_quote_sending(self, request_id: Any, workshop_id: Any) -> bool:
        key = QuoteKey.of(request_id, workshop_id)
        return key is not None and key in self._sending

    def state_of(self, request_id: Any, workshop_id: Any) -> QuoteState:
        key = QuoteKey.of(request_id, workshop_id)
        if key is None:
            return Idle()
        entry = self._entries.get(key)
        if key in self._sending:
            return Sending(last_entry=entry)
        if entry is None:
            return Idle()
        if entry.status == TrackedQuoteStatus.failed:
            return Failed(last_entry=entry)
        return Sent(entry=entry)

    def entries_by_status(self, status: Union[TrackedQuoteStatus, str]) -> list[TrackedQuoteEntry]:
        return [e for e in self._entries.values() if e.status == TrackedQuoteStatus(status)]

    def entries_for_request(self, request_id: Any) -> list[TrackedQuoteEntry]:
        if request_id is None:
            return []
        return [e for e in self._entries.values() if e.request_id == str(request_id)]
