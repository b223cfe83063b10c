"""
Test data factories for RepairHub tests
Create persisted workshops, requests, bids and appointments with sensible defaults
"""

from datetime import date, datetime, timedelta
from typing import Optional

from faker import Faker

from repairhub.models import (
    APPOINTMENT_CONFIRMED,
    BID_SUBMITTED,
    REQUEST_SUBMITTED,
    Appointment,
    Bid,
    ServiceRequest,
    Workshop,
)

fake = Faker()


class WorkshopFactory:
    """Factory for workshop profiles"""

    @staticmethod
    def create(db, user_id: Optional[str] = None, **overrides) -> Workshop:
        data = {
            "user_id": user_id or f"ws-{fake.unique.uuid4()}",
            "name": f"{fake.last_name()} Auto Repair",
            "email": fake.company_email(),
            "phone": fake.phone_number()[:50],
            "address": fake.street_address(),
            "latitude": None,
            "longitude": None,
            "operating_hours": None,
            "is_active": True,
        }
        data.update(overrides)
        workshop = Workshop(**data)
        db.add(workshop)
        db.commit()
        db.refresh(workshop)
        return workshop


class RequestFactory:
    """Factory for customer repair requests"""

    @staticmethod
    def create(
        db,
        customer_id: str = "customer-1",
        now: Optional[datetime] = None,
        **overrides,
    ) -> ServiceRequest:
        now = now or datetime(2026, 3, 2, 9, 0)
        data = {
            "customer_id": customer_id,
            "customer_name": fake.name(),
            "vehicle": {"make": "Toyota", "model": "Corolla", "year": 2019},
            "service_categories": ["brakes"],
            "description": "Squealing when braking",
            "status": REQUEST_SUBMITTED,
            "expires_at": now + timedelta(days=7),
        }
        data.update(overrides)
        request = ServiceRequest(**data)
        db.add(request)
        db.commit()
        db.refresh(request)
        return request


class BidFactory:
    """Factory for bids"""

    @staticmethod
    def create(
        db,
        request: ServiceRequest,
        workshop: Workshop,
        amount: Optional[float] = 400.0,
        status: str = BID_SUBMITTED,
        **overrides,
    ) -> Bid:
        data = {
            "request_id": request.id,
            "workshop_id": workshop.id,
            "workshop_name": workshop.name,
            "status": status,
            "amount": amount,
            "currency": "AED" if amount is not None else None,
            "submitted_at": datetime(2026, 3, 2, 8, 0) if amount is not None else None,
        }
        data.update(overrides)
        bid = Bid(**data)
        db.add(bid)
        db.commit()
        db.refresh(bid)
        return bid


class AppointmentFactory:
    """Factory for existing bookings that block a workshop's calendar"""

    @staticmethod
    def create(
        db,
        workshop: Workshop,
        scheduled_date: date,
        start_time: str,
        end_time: str,
        status: str = APPOINTMENT_CONFIRMED,
        customer_id: str = "customer-9",
    ) -> Appointment:
        request = RequestFactory.create(db, customer_id=customer_id, status="accepted")
        bid = BidFactory.create(db, request, workshop, status="accepted")
        request.accepted_bid_id = bid.id
        start_hours, start_minutes = (int(p) for p in start_time.split(":"))
        end_hours, end_minutes = (int(p) for p in end_time.split(":"))
        duration = ((end_hours * 60 + end_minutes) - (start_hours * 60 + start_minutes)) / 60

        appointment = Appointment(
            request_id=request.id,
            bid_id=bid.id,
            customer_id=customer_id,
            workshop_id=workshop.id,
            scheduled_date=scheduled_date,
            start_time=start_time,
            end_time=end_time,
            estimated_duration=duration,
            status=status,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment
