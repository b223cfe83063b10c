"""Quote repository - Database operations for requests and bids"""

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from ...models import (
    BID_ACCEPTED,
    BID_DECLINED,
    BID_EXPIRED,
    BID_INVITATION_STATUSES,
    BID_PRICED_STATUSES,
    REQUEST_ACCEPTED,
    REQUEST_DRAFT,
    REQUEST_EXPIRED,
    REQUEST_OPEN_STATUSES,
    REQUEST_QUOTED,
    REQUEST_SUBMITTED,
    Bid,
    ServiceRequest,
    Workshop,
)


class QuoteRepository:
    """Repository for request/bid database operations"""

    @staticmethod
    def get_request(db: Session, request_id: int) -> Optional[ServiceRequest]:
        return (
            db.query(ServiceRequest)
            .options(selectinload(ServiceRequest.bids).selectinload(Bid.workshop))
            .filter(ServiceRequest.id == request_id)
            .first()
        )

    @staticmethod
    def get_requests_for_customer(
        db: Session, customer_id: str, status: Optional[str] = None
    ) -> list[ServiceRequest]:
        query = db.query(ServiceRequest).filter(ServiceRequest.customer_id == customer_id)
        if status:
            query = query.filter(ServiceRequest.status == status)
        return query.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc()).all()

    @staticmethod
    def get_open_requests(db: Session) -> list[ServiceRequest]:
        """Requests still accepting bids"""
        return (
            db.query(ServiceRequest)
            .filter(ServiceRequest.status.in_(REQUEST_OPEN_STATUSES))
            .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
            .all()
        )

    @staticmethod
    def create_request(db: Session, **request_data) -> ServiceRequest:
        request = ServiceRequest(**request_data)
        db.add(request)
        db.flush()
        return request

    @staticmethod
    def get_workshop(db: Session, workshop_id: int) -> Optional[Workshop]:
        return db.query(Workshop).filter(Workshop.id == workshop_id).first()

    @staticmethod
    def get_workshop_by_user(db: Session, user_id: str) -> Optional[Workshop]:
        return db.query(Workshop).filter(Workshop.user_id == user_id).first()

    @staticmethod
    def get_active_workshops(db: Session, workshop_ids: list[int]) -> list[Workshop]:
        if not workshop_ids:
            return []
        return (
            db.query(Workshop)
            .filter(Workshop.id.in_(workshop_ids), Workshop.is_active.is_(True))
            .all()
        )

    @staticmethod
    def get_bid(db: Session, request_id: int, bid_id: int) -> Optional[Bid]:
        return db.query(Bid).filter(Bid.id == bid_id, Bid.request_id == request_id).first()

    @staticmethod
    def get_bid_for_workshop(db: Session, request_id: int, workshop_id: int) -> Optional[Bid]:
        return (
            db.query(Bid)
            .filter(Bid.request_id == request_id, Bid.workshop_id == workshop_id)
            .first()
        )

    @staticmethod
    def add_bid(db: Session, **bid_data) -> Bid:
        bid = Bid(**bid_data)
        db.add(bid)
        db.flush()
        return bid

    @staticmethod
    def publish_request(db: Session, request_id: int) -> bool:
        """draft → submitted, only if still a draft"""
        result = db.execute(
            update(ServiceRequest)
            .where(ServiceRequest.id == request_id, ServiceRequest.status == REQUEST_DRAFT)
            .values(status=REQUEST_SUBMITTED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def mark_request_quoted(db: Session, request_id: int) -> None:
        """submitted → quoted on the first priced bid; no-op when already quoted"""
        db.execute(
            update(ServiceRequest)
            .where(ServiceRequest.id == request_id, ServiceRequest.status == REQUEST_SUBMITTED)
            .values(status=REQUEST_QUOTED)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    def claim_acceptance(db: Session, request_id: int, bid_id: int, now: datetime) -> bool:
        """
        Conditional check-and-set on the request row. Exactly one caller can
        move a request from open to accepted; everyone else gets False.
        """
        result = db.execute(
            update(ServiceRequest)
            .where(
                ServiceRequest.id == request_id,
                ServiceRequest.status.in_(REQUEST_OPEN_STATUSES),
                ServiceRequest.accepted_bid_id.is_(None),
            )
            .values(status=REQUEST_ACCEPTED, accepted_bid_id=bid_id, accepted_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def settle_bids(db: Session, request_id: int, bid_id: int, now: datetime) -> bool:
        """
        Accept the winning bid and decline every other priced bid.
        Returns False when the winner is no longer in a priced status.
        """
        accepted = db.execute(
            update(Bid)
            .where(
                Bid.id == bid_id,
                Bid.request_id == request_id,
                Bid.status.in_(BID_PRICED_STATUSES),
            )
            .values(status=BID_ACCEPTED, decided_at=now)
            .execution_options(synchronize_session=False)
        )
        if accepted.rowcount != 1:
            return False

        db.execute(
            update(Bid)
            .where(
                Bid.request_id == request_id,
                Bid.id != bid_id,
                Bid.status.in_(BID_PRICED_STATUSES),
            )
            .values(status=BID_DECLINED, decided_at=now)
            .execution_options(synchronize_session=False)
        )
        return True

    @staticmethod
    def close_request(
        db: Session, request_id: int, from_statuses: tuple, to_status: str, now: datetime
    ) -> bool:
        result = db.execute(
            update(ServiceRequest)
            .where(ServiceRequest.id == request_id, ServiceRequest.status.in_(from_statuses))
            .values(status=to_status, closed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    def close_open_bids(db: Session, request_id: int, to_status: str, now: datetime) -> int:
        """Move every invitation and priced bid on a request to a terminal status"""
        result = db.execute(
            update(Bid)
            .where(
                Bid.request_id == request_id,
                Bid.status.in_(BID_INVITATION_STATUSES + BID_PRICED_STATUSES),
            )
            .values(status=to_status, decided_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def expire_request(db: Session, request_id: int, now: datetime) -> bool:
        """Expire a request whose deadline passed, along with its open bids"""
        result = db.execute(
            update(ServiceRequest)
            .where(
                ServiceRequest.id == request_id,
                ServiceRequest.status.in_((REQUEST_DRAFT,) + REQUEST_OPEN_STATUSES),
                ServiceRequest.expires_at <= now,
            )
            .values(status=REQUEST_EXPIRED, closed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        QuoteRepository.close_open_bids(db, request_id, BID_EXPIRED, now)
        return True

    @staticmethod
    def get_stale_request_ids(db: Session, now: datetime) -> list[int]:
        rows = (
            db.query(ServiceRequest.id)
            .filter(
                ServiceRequest.status.in_((REQUEST_DRAFT,) + REQUEST_OPEN_STATUSES),
                ServiceRequest.expires_at <= now,
            )
            .all()
        )
        return [row.id for row in rows]
