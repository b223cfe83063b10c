"""Quote router - FastAPI endpoints for requests and bids"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_customer, require_workshop
from ...database import get_db
from .schemas import (
    BidDecision,
    BidResponse,
    BidRevise,
    BidSubmit,
    CompetitionView,
    InviteWorkshopsRequest,
    RequestCreate,
    RequestResponse,
)
from .service import QuoteService, bid_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["Quotes"])


def get_quote_service(db: Session = Depends(get_db)) -> QuoteService:
    """Dependency injection for QuoteService"""
    return QuoteService(db)


# ============================================================================
# REQUESTS
# ============================================================================


@router.get("", response_model=list[RequestResponse])
async def list_requests(
    status: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    service: QuoteService = Depends(get_quote_service),
):
    """Customers get their own requests, workshops get requests open for bids"""
    return service.list_requests(current_user, status)


@router.post("", response_model=RequestResponse, status_code=201)
async def create_request(
    data: RequestCreate,
    current_user: CurrentUser = Depends(require_customer),
    service: QuoteService = Depends(get_quote_service),
):
    return service.create_request(data, current_user)


@router.post("/{request_id}/publish", response_model=RequestResponse)
async def publish_request(
    request_id: int,
    current_user: CurrentUser = Depends(require_customer),
    service: QuoteService = Depends(get_quote_service),
):
    return service.publish_request(request_id, current_user)


@router.post("/{request_id}/invitations", response_model=list[BidResponse], status_code=201)
async def invite_workshops(
    request_id: int,
    data: InviteWorkshopsRequest,
    current_user: CurrentUser = Depends(require_customer),
    service: QuoteService = Depends(get_quote_service),
):
    """Request quotes from specific workshops"""
    bids = service.invite_workshops(request_id, data.workshop_ids, current_user)
    return [bid_response(b) for b in bids]


@router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: int,
    current_user: CurrentUser = Depends(require_customer),
    service: QuoteService = Depends(get_quote_service),
):
    return service.cancel_request(request_id, current_user)


@router.post("/{request_id}/complete", response_model=RequestResponse)
async def complete_request(
    request_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: QuoteService = Depends(get_quote_service),
):
    return service.complete_request(request_id, current_user)


# ============================================================================
# BIDS
# ============================================================================


@router.get("/{request_id}/bids", response_model=CompetitionView)
async def get_competition_view(
    request_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: QuoteService = Depends(get_quote_service),
):
    """Role-sensitive bid view: full list for the owner, own bid plus summary for workshops"""
    return service.get_competition_view(request_id, current_user)


@router.post("/{request_id}/bids", response_model=BidResponse, status_code=201)
async def submit_bid(
    request_id: int,
    data: BidSubmit,
    current_user: CurrentUser = Depends(require_workshop),
    service: QuoteService = Depends(get_quote_service),
):
    bid = service.submit_bid(request_id, data, current_user)
    return bid_response(bid)


@router.put("/{request_id}/bids/mine", response_model=BidResponse)
async def revise_bid(
    request_id: int,
    data: BidRevise,
    current_user: CurrentUser = Depends(require_workshop),
    service: QuoteService = Depends(get_quote_service),
):
    bid = service.revise_bid(request_id, data, current_user)
    return bid_response(bid)


@router.post("/{request_id}/bids/mine/view", response_model=BidResponse)
async def open_invitation(
    request_id: int,
    current_user: CurrentUser = Depends(require_workshop),
    service: QuoteService = Depends(get_quote_service),
):
    bid = service.open_invitation(request_id, current_user)
    return bid_response(bid)


@router.post("/{request_id}/accept", response_model=RequestResponse)
async def accept_bid(
    request_id: int,
    data: BidDecision,
    current_user: CurrentUser = Depends(require_customer),
    service: QuoteService = Depends(get_quote_service),
):
    return service.accept_bid(request_id, data.bid_id, current_user)


@router.post("/{request_id}/decline", response_model=BidResponse)
async def decline_bid(
    request_id: int,
    data: BidDecision,
    current_user: CurrentUser = Depends(require_customer),
    service: QuoteService = Depends(get_quote_service),
):
    bid = service.decline_bid(request_id, data.bid_id, current_user)
    return bid_response(bid)
