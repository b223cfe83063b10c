"""Scheduling repository - Database operations for appointments"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from ...database import is_sqlite
from ...models import (
    APPOINTMENT_CANCELLED,
    Appointment,
    AppointmentStatusChange,
    Bid,
    ServiceRequest,
    Workshop,
)


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_workshop(db: Session, workshop_id: int) -> Optional[Workshop]:
        return db.query(Workshop).filter(Workshop.id == workshop_id).first()

    @staticmethod
    def get_workshops(db: Session, workshop_ids: list[int]) -> list[Workshop]:
        return (
            db.query(Workshop)
            .filter(Workshop.id.in_(workshop_ids), Workshop.is_active.is_(True))
            .all()
        )

    @staticmethod
    def get_workshop_by_user(db: Session, user_id: str) -> Optional[Workshop]:
        return db.query(Workshop).filter(Workshop.user_id == user_id).first()

    @staticmethod
    def lock_workshop(db: Session, workshop_id: int) -> Optional[Workshop]:
        """
        Take the per-workshop write lock (SELECT ... FOR UPDATE).
        SQLite has no row locks; callers also hold a process-local lock there.
        """
        query = db.query(Workshop).filter(Workshop.id == workshop_id)
        if not is_sqlite(str(db.get_bind().url)):
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_request(db: Session, request_id: int) -> Optional[ServiceRequest]:
        return db.query(ServiceRequest).filter(ServiceRequest.id == request_id).first()

    @staticmethod
    def get_bid(db: Session, bid_id: int) -> Optional[Bid]:
        return db.query(Bid).filter(Bid.id == bid_id).first()

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(selectinload(Appointment.status_history), selectinload(Appointment.workshop))
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def get_appointment_for_bid(db: Session, bid_id: int) -> Optional[Appointment]:
        return db.query(Appointment).filter(Appointment.bid_id == bid_id).first()

    @staticmethod
    def get_blocking_appointments(
        db: Session, workshop_id: int, day: date, exclude_id: Optional[int] = None
    ) -> list[Appointment]:
        """Every non-cancelled appointment for a workshop on a date"""
        query = db.query(Appointment).filter(
            Appointment.workshop_id == workshop_id,
            Appointment.scheduled_date == day,
            Appointment.status != APPOINTMENT_CANCELLED,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time).all()

    @staticmethod
    def get_blocking_appointments_between(
        db: Session, workshop_ids: list[int], start: date, end: date
    ) -> list[Appointment]:
        """Non-cancelled appointments for several workshops over [start, end]"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.workshop_id.in_(workshop_ids),
                Appointment.scheduled_date >= start,
                Appointment.scheduled_date <= end,
                Appointment.status != APPOINTMENT_CANCELLED,
            )
            .all()
        )

    @staticmethod
    def list_for_customer(
        db: Session, customer_id: str, status: Optional[str] = None
    ) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.customer_id == customer_id)
        if status:
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.scheduled_date, Appointment.start_time).all()

    @staticmethod
    def list_for_workshop(
        db: Session, workshop_id: int, status: Optional[str] = None
    ) -> list[Appointment]:
        query = db.query(Appointment).filter(Appointment.workshop_id == workshop_id)
        if status:
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.scheduled_date, Appointment.start_time).all()

    @staticmethod
    def add_appointment(db: Session, **appointment_data) -> Appointment:
        appointment = Appointment(**appointment_data)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def add_status_change(
        db: Session,
        appointment: Appointment,
        status: str,
        changed_by: Optional[str],
        reason: Optional[str] = None,
    ) -> AppointmentStatusChange:
        change = AppointmentStatusChange(
            appointment_id=appointment.id, status=status, changed_by=changed_by, reason=reason
        )
        db.add(change)
        return change
