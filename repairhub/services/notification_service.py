"""
Best-effort notification collaborator
Writes in-app notifications and optionally forwards them to a webhook.
Failures are logged and swallowed; they never fail the operation that
triggered them.
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import NOTIFICATION_TIMEOUT_SECONDS, NOTIFICATION_WEBHOOK_URL
from ..errors import DependencyFailure
from ..models import BID_DECLINED, Appointment, Bid, Notification, ServiceRequest

logger = logging.getLogger(__name__)


def _store(db: Session, user_id: str, kind: str, title: str, message: str, payload: dict) -> None:
    try:
        db.add(
            Notification(user_id=user_id, kind=kind, title=title, message=message, payload=payload)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise DependencyFailure(f"Could not store {kind} notification") from e


def _forward(kind: str, user_id: str, payload: dict, webhook_url: Optional[str]) -> bool:
    if not webhook_url:
        return False
    try:
        response = httpx.post(
            webhook_url,
            json={"kind": kind, "user_id": user_id, "payload": payload},
            timeout=NOTIFICATION_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise DependencyFailure(f"Notification webhook failed for {kind}") from e
    return True


def send_notification(
    db: Session,
    user_id: str,
    kind: str,
    title: str,
    message: str,
    payload: dict,
    webhook_url: Optional[str] = NOTIFICATION_WEBHOOK_URL,
) -> dict:
    """
    Unified notification sender for both channels (in-app row + webhook)

    Returns:
        Dict with stored / forwarded flags and per-channel errors
    """
    result = {"stored": False, "forwarded": False, "store_error": None, "forward_error": None}

    try:
        _store(db, user_id, kind, title, message, payload)
        result["stored"] = True
        logger.info(f"✅ {kind} notification stored for user {user_id}")
    except DependencyFailure as e:
        result["store_error"] = e.detail
        logger.error(f"❌ {e.detail} for user {user_id}: {e.__cause__}")

    try:
        result["forwarded"] = _forward(kind, user_id, payload, webhook_url)
        if result["forwarded"]:
            logger.info(f"📤 {kind} notification forwarded for user {user_id}")
    except DependencyFailure as e:
        result["forward_error"] = e.detail
        logger.error(f"❌ {e.detail} for user {user_id}: {e.__cause__}")

    return result


def send_bid_result_notifications(
    db: Session, request: ServiceRequest, winning_bid: Bid
) -> list[dict]:
    """Tell the winning workshop it won and every other priced bidder it lost"""
    vehicle = request.vehicle or {}
    title_vehicle = " ".join(
        str(part) for part in (vehicle.get("year"), vehicle.get("make"), vehicle.get("model")) if part
    )
    results = []

    for bid in request.bids:
        if bid.workshop is None:
            continue
        if bid.id == winning_bid.id:
            results.append(
                send_notification(
                    db,
                    user_id=bid.workshop.user_id,
                    kind="quotation_won",
                    title="Congratulations! Your Quote Was Accepted",
                    message=(
                        f"Your quote of {bid.currency} {bid.amount:,.2f} for {title_vehicle} "
                        "has been accepted by the customer."
                    ),
                    payload={
                        "request_id": request.id,
                        "bid_id": bid.id,
                        "amount": bid.amount,
                        "currency": bid.currency,
                    },
                )
            )
        elif bid.status == BID_DECLINED and bid.amount is not None:
            # Losers only learn that they lost, never the winner's identity or price
            results.append(
                send_notification(
                    db,
                    user_id=bid.workshop.user_id,
                    kind="quotation_lost",
                    title="Quote Not Selected",
                    message=f"Unfortunately, your quote was not selected for {title_vehicle}.",
                    payload={"request_id": request.id, "bid_id": bid.id},
                )
            )

    logger.info(f"📊 Sent {len(results)} bid result notifications for request {request.id}")
    return results


def send_appointment_created_notification(db: Session, appointment: Appointment) -> dict:
    """Notify the workshop that a customer booked a slot"""
    workshop = appointment.workshop
    if workshop is None:
        logger.warning(f"⚠️ Appointment {appointment.id} has no workshop to notify")
        return {"stored": False, "forwarded": False, "store_error": None, "forward_error": None}

    return send_notification(
        db,
        user_id=workshop.user_id,
        kind="appointment_created",
        title="New Appointment Requested",
        message=(
            f"A customer booked {appointment.scheduled_date.isoformat()} "
            f"from {appointment.start_time} to {appointment.end_time}."
        ),
        payload={
            "appointment_id": appointment.id,
            "request_id": appointment.request_id,
            "scheduled_date": appointment.scheduled_date.isoformat(),
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
        },
    )
