"""Quote service - Bidding lifecycle and competitor-blind visibility"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...config import REQUEST_EXPIRY_DAYS
from ...errors import (
    AuthorizationDenied,
    Conflict,
    Expired,
    InvalidState,
    NotFound,
    ValidationError,
)
from ...models import (
    BID_ACCEPTED,
    BID_CUSTOMER_VISIBLE_STATUSES,
    BID_DECLINED,
    BID_INVITATION_STATUSES,
    BID_PENDING,
    BID_PRICED_STATUSES,
    BID_QUOTED,
    BID_SUBMITTED,
    BID_VIEWED,
    REQUEST_ACCEPTED,
    REQUEST_CANCELLED,
    REQUEST_COMPLETED,
    REQUEST_DRAFT,
    REQUEST_EXPIRED,
    REQUEST_OPEN_STATUSES,
    REQUEST_SUBMITTED,
    Bid,
    ServiceRequest,
    Workshop,
    utcnow,
)
from ...services.geo import distance_km
from ...services.notification_service import send_bid_result_notifications
from .repository import QuoteRepository
from .schemas import (
    BidResponse,
    BidRevise,
    BidSubmit,
    CompetitionSummary,
    CompetitionView,
    PriceRange,
    RequestCreate,
    RequestResponse,
)

logger = logging.getLogger(__name__)


# ============================================================================
# PURE PROJECTIONS
# ============================================================================


def bid_response(bid: Bid, request: Optional[ServiceRequest] = None) -> BidResponse:
    """Serialize a bid, adding customer-to-workshop distance when both ends are known"""
    distance = None
    if request is not None and bid.workshop is not None:
        distance = distance_km(
            request.latitude, request.longitude, bid.workshop.latitude, bid.workshop.longitude
        )
    return BidResponse(
        id=bid.id,
        public_id=bid.public_id,
        request_id=bid.request_id,
        workshop_id=bid.workshop_id,
        workshop_name=bid.workshop_name,
        status=bid.status,
        amount=bid.amount,
        currency=bid.currency,
        valid_until=bid.valid_until,
        notes=bid.notes,
        submitted_at=bid.submitted_at,
        updated_at=bid.updated_at,
        distance_km=distance,
    )


def price_range_for(bids: list[Bid]) -> Optional[PriceRange]:
    amounts = [b.amount for b in bids if b.amount is not None]
    if not amounts:
        return None
    return PriceRange(
        min=min(amounts), max=max(amounts), average=round(sum(amounts) / len(amounts), 2)
    )


def customer_view(request: ServiceRequest) -> CompetitionView:
    """Full bid list for the request owner, cheapest first. Invitations are hidden."""
    visible = sorted(
        (b for b in request.bids if b.status in BID_CUSTOMER_VISIBLE_STATUSES),
        key=lambda b: (b.amount if b.amount is not None else float("inf"), b.id),
    )
    return CompetitionView(
        role="customer",
        request=RequestResponse.model_validate(request),
        bids=[bid_response(b, request) for b in visible],
        price_range=price_range_for(visible),
    )


def workshop_status_message(
    request_status: str, own_bid: Optional[Bid], total_competitors: int, submitted_competitors: int
) -> str:
    if request_status in (REQUEST_ACCEPTED, REQUEST_COMPLETED):
        if own_bid is not None and own_bid.status == BID_ACCEPTED:
            return "Congratulations! Your quote was selected by the customer."
        return (
            f"Competition closed. Another workshop was selected from "
            f"{total_competitors + 1} participants."
        )

    if request_status in (REQUEST_CANCELLED, REQUEST_EXPIRED):
        return "This quotation request is no longer active."

    if own_bid is None or own_bid.status in BID_INVITATION_STATUSES:
        if submitted_competitors == 0:
            return f"You can submit your quote. {total_competitors} other workshops invited."
        return (
            f"{submitted_competitors} of {total_competitors} competitors have submitted quotes. "
            "You can still submit yours."
        )

    if own_bid.status in BID_PRICED_STATUSES:
        if submitted_competitors == 0:
            return f"Your quote is submitted. Waiting for {total_competitors} competitors."
        return (
            f"Your quote is submitted. {submitted_competitors} of {total_competitors} "
            "competitors have also submitted."
        )

    return "Competition is active. You can submit or update your quote."


def workshop_view(request: ServiceRequest, workshop_id: int) -> CompetitionView:
    """
    A workshop sees its own bid and counts only.

    Competitor identities and amounts never leave this function; whether the
    viewer won is only disclosed once the request has been accepted.
    """
    own_bid = next((b for b in request.bids if b.workshop_id == workshop_id), None)
    competitors = [b for b in request.bids if b.workshop_id != workshop_id]
    submitted = [b for b in competitors if b.amount is not None]

    decided = request.accepted_bid_id is not None
    summary = CompetitionSummary(
        total_competitors=len(competitors),
        competitors_submitted=len(submitted),
        competition_status="active" if request.status in REQUEST_OPEN_STATUSES else "closed",
        is_winner=(own_bid is not None and own_bid.id == request.accepted_bid_id) if decided else None,
        status_message=workshop_status_message(
            request.status, own_bid, len(competitors), len(submitted)
        ),
    )
    return CompetitionView(
        role="workshop",
        request=RequestResponse.model_validate(request),
        own_bid=bid_response(own_bid, request) if own_bid is not None else None,
        summary=summary,
    )


# ============================================================================
# SERVICE
# ============================================================================


class QuoteService:
    """Service layer for request/bid business logic"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = QuoteRepository()
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_request(self, request_id: int) -> ServiceRequest:
        request = self.repo.get_request(self.db, request_id)
        if not request:
            raise NotFound("Request not found")
        return request

    def get_owned_request(self, request_id: int, customer: CurrentUser) -> ServiceRequest:
        request = self.get_request(request_id)
        if not customer.is_customer or request.customer_id != customer.user_id:
            logger.warning(f"⚠️ User {customer.user_id} is not the owner of request {request_id}")
            raise AuthorizationDenied("You do not own this request")
        return request

    def get_workshop_profile(self, user: CurrentUser) -> Workshop:
        if not user.is_workshop:
            raise AuthorizationDenied("Workshop account required")
        workshop = self.repo.get_workshop_by_user(self.db, user.user_id)
        if not workshop:
            raise NotFound("Workshop profile not found")
        return workshop

    def list_requests(self, user: CurrentUser, status: Optional[str] = None) -> list[ServiceRequest]:
        """Customers see their own requests; workshops see requests still open for bids"""
        self.expire_stale_requests()
        if user.is_customer:
            return self.repo.get_requests_for_customer(self.db, user.user_id, status)
        self.get_workshop_profile(user)
        return self.repo.get_open_requests(self.db)

    def _expire_if_stale(self, request: ServiceRequest) -> bool:
        """Lazily expire a request whose deadline has passed. Commits when it does."""
        now = self.clock()
        if request.status not in (REQUEST_DRAFT,) + REQUEST_OPEN_STATUSES:
            return False
        if request.expires_at > now:
            return False
        if self.repo.expire_request(self.db, request.id, now):
            self.db.commit()
            self.db.refresh(request)
            logger.info(f"⏰ Request {request.id} expired (deadline {request.expires_at})")
            return True
        return False

    # ------------------------------------------------------------------
    # Request lifecycle
    # ------------------------------------------------------------------

    def create_request(self, data: RequestCreate, customer: CurrentUser) -> ServiceRequest:
        """Open a repair request, optionally inviting workshops straight away"""
        if not customer.is_customer:
            raise AuthorizationDenied("Customer account required")

        now = self.clock()
        expires_at = data.expires_at or now + timedelta(days=REQUEST_EXPIRY_DAYS)
        if expires_at.tzinfo is not None:
            expires_at = expires_at.replace(tzinfo=None)
        if expires_at <= now:
            raise ValidationError("Request deadline must be in the future")

        logger.info(f"📥 Creating request for customer {customer.user_id}")
        request = self.repo.create_request(
            self.db,
            customer_id=customer.user_id,
            customer_name=data.customer_name or customer.name,
            vehicle=data.vehicle,
            service_categories=data.service_categories,
            description=data.description,
            status=REQUEST_DRAFT if data.draft else REQUEST_SUBMITTED,
            expires_at=expires_at,
            latitude=data.latitude,
            longitude=data.longitude,
        )

        if data.invite_workshop_ids:
            self._invite(request, data.invite_workshop_ids)

        self.db.commit()
        logger.info(f"✅ Request {request.id} created in status {request.status}")
        return self.get_request(request.id)

    def publish_request(self, request_id: int, customer: CurrentUser) -> ServiceRequest:
        request = self.get_owned_request(request_id, customer)
        if self._expire_if_stale(request):
            raise Expired()
        if not self.repo.publish_request(self.db, request.id):
            raise InvalidState(f"Only draft requests can be published (status: {request.status})")
        self.db.commit()
        logger.info(f"✅ Request {request_id} published")
        return self.get_request(request_id)

    def _invite(self, request: ServiceRequest, workshop_ids: list[int]) -> list[Bid]:
        unique_ids = list(dict.fromkeys(workshop_ids))
        workshops = {w.id: w for w in self.repo.get_active_workshops(self.db, unique_ids)}
        missing = [wid for wid in unique_ids if wid not in workshops]
        if missing:
            raise NotFound(f"Workshops not found: {missing}")

        bids = []
        for workshop_id in unique_ids:
            if self.repo.get_bid_for_workshop(self.db, request.id, workshop_id):
                self.db.rollback()
                raise Conflict(f"Workshop {workshop_id} already has a bid on this request")
            try:
                bids.append(
                    self.repo.add_bid(
                        self.db,
                        request_id=request.id,
                        workshop_id=workshop_id,
                        workshop_name=workshops[workshop_id].name,
                        status=BID_PENDING,
                    )
                )
            except IntegrityError as e:
                self.db.rollback()
                raise Conflict(f"Workshop {workshop_id} already has a bid on this request") from e
        return bids

    def invite_workshops(
        self, request_id: int, workshop_ids: list[int], customer: CurrentUser
    ) -> list[Bid]:
        """Ask specific workshops for a quote; each invitation is a pending bid"""
        request = self.get_owned_request(request_id, customer)
        if self._expire_if_stale(request):
            raise Expired()
        if request.status not in (REQUEST_DRAFT,) + REQUEST_OPEN_STATUSES:
            raise InvalidState(f"Cannot invite workshops to a {request.status} request")

        bids = self._invite(request, workshop_ids)
        self.db.commit()
        logger.info(f"📤 Invited {len(bids)} workshops to request {request_id}")
        return bids

    def cancel_request(self, request_id: int, customer: CurrentUser) -> ServiceRequest:
        request = self.get_owned_request(request_id, customer)
        now = self.clock()
        cancellable = (REQUEST_DRAFT,) + REQUEST_OPEN_STATUSES + (REQUEST_ACCEPTED,)
        if not self.repo.close_request(self.db, request.id, cancellable, REQUEST_CANCELLED, now):
            raise InvalidState(f"Cannot cancel a {request.status} request")
        declined = self.repo.close_open_bids(self.db, request.id, BID_DECLINED, now)
        self.db.commit()
        logger.info(f"✅ Request {request_id} cancelled, {declined} open bids declined")
        return self.get_request(request_id)

    def complete_request(self, request_id: int, user: CurrentUser) -> ServiceRequest:
        """Close an accepted request once the work is done (owner or winning workshop)"""
        request = self.get_request(request_id)
        if user.is_customer:
            if request.customer_id != user.user_id:
                raise AuthorizationDenied("You do not own this request")
        else:
            workshop = self.get_workshop_profile(user)
            winner = next((b for b in request.bids if b.id == request.accepted_bid_id), None)
            if winner is None or winner.workshop_id != workshop.id:
                raise AuthorizationDenied("Only the selected workshop can complete this request")

        if not self.repo.close_request(
            self.db, request.id, (REQUEST_ACCEPTED,), REQUEST_COMPLETED, self.clock()
        ):
            raise InvalidState(f"Only accepted requests can be completed (status: {request.status})")
        self.db.commit()
        logger.info(f"✅ Request {request_id} completed by {user.role} {user.user_id}")
        return self.get_request(request_id)

    def expire_stale_requests(self, now: Optional[datetime] = None) -> int:
        """Expire every open request whose deadline has passed"""
        now = now or self.clock()
        expired = 0
        for request_id in self.repo.get_stale_request_ids(self.db, now):
            if self.repo.expire_request(self.db, request_id, now):
                expired += 1
        if expired:
            self.db.commit()
            logger.info(f"⏰ Expired {expired} stale requests")
        return expired

    # ------------------------------------------------------------------
    # Bids
    # ------------------------------------------------------------------

    def open_invitation(self, request_id: int, user: CurrentUser) -> Bid:
        """Record that a workshop has seen its invitation (pending → viewed)"""
        workshop = self.get_workshop_profile(user)
        bid = self.repo.get_bid_for_workshop(self.db, request_id, workshop.id)
        if not bid:
            raise NotFound("No invitation for this workshop on this request")
        if bid.status == BID_PENDING:
            bid.status = BID_VIEWED
            bid.viewed_at = self.clock()
            self.db.commit()
            self.db.refresh(bid)
            logger.info(f"👀 Workshop {workshop.id} opened invitation for request {request_id}")
        return bid

    def submit_bid(self, request_id: int, data: BidSubmit, user: CurrentUser) -> Bid:
        """
        Price a request. One bid per (request, workshop).

        An invitation (pending/viewed) for the same workshop is promoted in
        place; any other existing bid is a Conflict.

        Raises:
            Conflict: the workshop already has a priced or decided bid
            Expired: the request deadline has passed
            InvalidState: the request is not accepting bids
        """
        workshop = self.get_workshop_profile(user)
        request = self.get_request(request_id)
        now = self.clock()

        existing = self.repo.get_bid_for_workshop(self.db, request.id, workshop.id)
        if existing and existing.status not in BID_INVITATION_STATUSES:
            logger.warning(f"⚠️ Workshop {workshop.id} already bid on request {request_id}")
            raise Conflict("You have already submitted a quote for this request")

        if request.status == REQUEST_EXPIRED or self._expire_if_stale(request):
            raise Expired("This request is no longer accepting quotes")

        if request.status not in REQUEST_OPEN_STATUSES:
            raise InvalidState(f"Request is {request.status}, not accepting quotes")

        valid_until = data.valid_until.replace(tzinfo=None) if data.valid_until else None
        if valid_until is not None and valid_until <= now:
            raise ValidationError("Quote validity must end in the future")

        fields = {
            "amount": data.amount,
            "currency": data.currency,
            "valid_until": valid_until,
            "notes": data.notes,
            "status": BID_SUBMITTED,
            "submitted_at": now,
        }

        try:
            if existing:
                for key, value in fields.items():
                    setattr(existing, key, value)
                bid = existing
                self.db.flush()
            else:
                bid = self.repo.add_bid(
                    self.db,
                    request_id=request.id,
                    workshop_id=workshop.id,
                    workshop_name=workshop.name,
                    **fields,
                )
            self.repo.mark_request_quoted(self.db, request.id)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise Conflict("You have already submitted a quote for this request") from e

        self.db.refresh(bid)
        logger.info(
            f"✅ Workshop {workshop.id} bid {bid.currency} {bid.amount} on request {request_id}"
        )
        return bid

    def revise_bid(self, request_id: int, data: BidRevise, user: CurrentUser) -> Bid:
        """Update the price of an already submitted bid while the request is open"""
        workshop = self.get_workshop_profile(user)
        request = self.get_request(request_id)
        bid = self.repo.get_bid_for_workshop(self.db, request.id, workshop.id)
        if not bid:
            raise NotFound("You have not submitted a quote for this request")

        if request.status == REQUEST_EXPIRED or self._expire_if_stale(request):
            raise Expired("This request is no longer accepting quotes")
        if request.status not in REQUEST_OPEN_STATUSES:
            raise InvalidState(f"Request is {request.status}, quotes can no longer change")
        if bid.status not in BID_PRICED_STATUSES:
            raise InvalidState(f"A {bid.status} quote cannot be revised")

        now = self.clock()
        valid_until = data.valid_until.replace(tzinfo=None) if data.valid_until else bid.valid_until
        if valid_until is not None and valid_until <= now:
            raise ValidationError("Quote validity must end in the future")

        bid.amount = data.amount
        bid.valid_until = valid_until
        if data.notes is not None:
            bid.notes = data.notes
        bid.status = BID_QUOTED
        self.db.commit()
        self.db.refresh(bid)
        logger.info(f"✅ Workshop {workshop.id} revised quote on request {request_id} to {bid.amount}")
        return bid

    def accept_bid(self, request_id: int, bid_id: int, customer: CurrentUser) -> ServiceRequest:
        """
        Accept one bid and decline the other priced bids, atomically.

        The request row is claimed with a conditional UPDATE; a concurrent
        second acceptance matches no row and is rejected with Conflict.
        """
        request = self.get_owned_request(request_id, customer)
        bid = self.repo.get_bid(self.db, request.id, bid_id)
        if not bid:
            raise NotFound("Quote not found for this request")

        if self._expire_if_stale(request):
            raise Expired()
        if request.status not in REQUEST_OPEN_STATUSES:
            raise InvalidState(f"Request is already {request.status}")
        if bid.status not in BID_PRICED_STATUSES:
            raise InvalidState(f"A {bid.status} quote cannot be accepted")

        now = self.clock()
        if not self.repo.claim_acceptance(self.db, request.id, bid.id, now):
            self.db.rollback()
            logger.warning(f"⚠️ Lost acceptance race on request {request_id} (bid {bid_id})")
            raise Conflict("Another quote has already been accepted for this request")

        if not self.repo.settle_bids(self.db, request.id, bid.id, now):
            self.db.rollback()
            raise InvalidState("Quote is no longer available for acceptance")

        self.db.commit()
        logger.info(f"✅ Request {request_id} accepted bid {bid_id}")

        request = self.get_request(request_id)
        winning_bid = next(b for b in request.bids if b.id == bid_id)
        send_bid_result_notifications(self.db, request, winning_bid)
        return request

    def decline_bid(self, request_id: int, bid_id: int, customer: CurrentUser) -> Bid:
        """Turn down one quote without closing the request"""
        request = self.get_owned_request(request_id, customer)
        bid = self.repo.get_bid(self.db, request.id, bid_id)
        if not bid:
            raise NotFound("Quote not found for this request")
        if request.status not in REQUEST_OPEN_STATUSES:
            raise InvalidState(f"Request is already {request.status}")
        if bid.status not in BID_PRICED_STATUSES:
            raise InvalidState(f"A {bid.status} quote cannot be declined")

        bid.status = BID_DECLINED
        bid.decided_at = self.clock()
        self.db.commit()
        self.db.refresh(bid)
        logger.info(f"✅ Request {request_id} declined bid {bid_id}")
        return bid

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def get_competition_view(self, request_id: int, viewer: CurrentUser) -> CompetitionView:
        request = self.get_request(request_id)
        self._expire_if_stale(request)

        if viewer.is_customer:
            if request.customer_id != viewer.user_id:
                raise AuthorizationDenied("You do not own this request")
            return customer_view(request)

        if viewer.is_workshop:
            workshop = self.get_workshop_profile(viewer)
            if not any(b.workshop_id == workshop.id for b in request.bids):
                logger.warning(f"⚠️ Workshop {workshop.id} has no quote on request {request_id}")
                raise AuthorizationDenied("You are not invited to quote on this request")
            return workshop_view(request, workshop.id)

        raise AuthorizationDenied("Unknown role")
