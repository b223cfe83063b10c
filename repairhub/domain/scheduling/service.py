"""Appointment service - Booking an accepted bid and driving the appointment lifecycle"""

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...config import MAX_BOOKING_DAYS_AHEAD, RESCHEDULE_NOTICE_HOURS
from ...errors import AuthorizationDenied, Conflict, InvalidState, NotFound, ValidationError
from ...models import (
    APPOINTMENT_CANCELLED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_IN_PROGRESS,
    APPOINTMENT_NO_SHOW,
    APPOINTMENT_REQUESTED,
    APPOINTMENT_RESCHEDULED,
    APPOINTMENT_SCHEDULED,
    REQUEST_ACCEPTED,
    REQUEST_COMPLETED,
    Appointment,
    Workshop,
    utcnow,
)
from ...services.notification_service import send_appointment_created_notification
from ..quotes.repository import QuoteRepository
from .availability_service import (
    AvailabilityService,
    busy_intervals,
    check_window,
    estimate_duration,
    parse_start_time,
)
from .repository import AppointmentRepository
from .schemas import AppointmentCreate, AppointmentReschedule, SlotCheck
from .time_calculator import at_minutes

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    APPOINTMENT_REQUESTED: [APPOINTMENT_CONFIRMED, APPOINTMENT_CANCELLED],
    APPOINTMENT_CONFIRMED: [APPOINTMENT_SCHEDULED, APPOINTMENT_CANCELLED],
    APPOINTMENT_SCHEDULED: [APPOINTMENT_IN_PROGRESS, APPOINTMENT_CANCELLED, APPOINTMENT_NO_SHOW],
    APPOINTMENT_IN_PROGRESS: [APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED],
    APPOINTMENT_RESCHEDULED: [APPOINTMENT_CONFIRMED, APPOINTMENT_CANCELLED],
    APPOINTMENT_COMPLETED: [],
    APPOINTMENT_CANCELLED: [],
    APPOINTMENT_NO_SHOW: [],
}

CUSTOMER_CANCELLABLE = (
    APPOINTMENT_REQUESTED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_SCHEDULED,
    APPOINTMENT_RESCHEDULED,
)
RESCHEDULABLE = CUSTOMER_CANCELLABLE

# SQLite has no SELECT ... FOR UPDATE, so writers for the same workshop are
# also serialized inside the process.
_workshop_locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
_workshop_locks_guard = threading.Lock()


@contextmanager
def workshop_write_lock(workshop_id: int):
    with _workshop_locks_guard:
        lock = _workshop_locks[workshop_id]
    with lock:
        yield


def can_transition(current: str, new: str) -> bool:
    return new in VALID_TRANSITIONS.get(current, [])


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = AppointmentRepository()
        self.clock = clock
        self.availability = AvailabilityService(db, clock)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _workshop_for(self, user: CurrentUser) -> Workshop:
        workshop = self.repo.get_workshop_by_user(self.db, user.user_id)
        if not workshop:
            raise NotFound("Workshop profile not found")
        return workshop

    def get_appointment(self, appointment_id: int, user: CurrentUser) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")

        if user.is_customer and appointment.customer_id == user.user_id:
            return appointment
        if user.is_workshop and appointment.workshop_id == self._workshop_for(user).id:
            return appointment

        logger.warning(f"⚠️ {user.role} {user.user_id} denied access to appointment {appointment_id}")
        raise AuthorizationDenied("You do not have access to this appointment")

    def list_appointments(self, user: CurrentUser, status: Optional[str] = None) -> list[Appointment]:
        if user.is_customer:
            return self.repo.list_for_customer(self.db, user.user_id, status)
        return self.repo.list_for_workshop(self.db, self._workshop_for(user).id, status)

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def _validate_booking_time(self, day: date, start_time: str) -> datetime:
        """Start must be in the future and at most MAX_BOOKING_DAYS_AHEAD days away"""
        starts_at = at_minutes(day, parse_start_time(start_time))
        now = self.clock()
        if starts_at <= now:
            raise ValidationError("Appointment must be scheduled for a future date and time")
        if starts_at > now + timedelta(days=MAX_BOOKING_DAYS_AHEAD):
            raise ValidationError(
                f"Appointment cannot be scheduled more than {MAX_BOOKING_DAYS_AHEAD} days in advance"
            )
        return starts_at

    @staticmethod
    def _raise_unavailable(check: SlotCheck) -> None:
        if check.conflicting_appointment_id is not None:
            raise Conflict(check.reason)
        raise ValidationError(check.reason)

    def _check_under_lock(
        self,
        workshop: Workshop,
        day: date,
        start_time: str,
        duration: float,
        exclude_id: Optional[int] = None,
    ) -> SlotCheck:
        """Re-read the workshop's bookings for the day after taking the write lock"""
        self.repo.lock_workshop(self.db, workshop.id)
        busy = busy_intervals(
            self.repo.get_blocking_appointments(self.db, workshop.id, day, exclude_id=exclude_id)
        )
        return check_window(workshop.id, workshop.operating_hours, day, start_time, duration, busy)

    def create_appointment(self, data: AppointmentCreate, customer: CurrentUser) -> Appointment:
        """
        Book the accepted bid of a request into a free slot.

        The slot is checked on read and checked again under the per-workshop
        write lock; the unique index on live (workshop, date, start) backs both.

        Raises:
            NotFound: unknown request or bid
            AuthorizationDenied: caller does not own the request
            InvalidState: request is not accepted with this bid
            Conflict: the bid already has an appointment, or the slot is taken
            ValidationError: bad time, or the slot is outside operating hours
        """
        if not customer.is_customer:
            raise AuthorizationDenied("Customer account required")

        request = self.repo.get_request(self.db, data.request_id)
        if not request:
            raise NotFound("Request not found")
        if request.customer_id != customer.user_id:
            raise AuthorizationDenied("You do not own this request")

        bid = self.repo.get_bid(self.db, data.bid_id)
        if not bid or bid.request_id != request.id:
            raise NotFound("Quote not found for this request")
        if request.status != REQUEST_ACCEPTED or request.accepted_bid_id != bid.id:
            raise InvalidState("Appointments can only be booked for the accepted quote")

        if self.repo.get_appointment_for_bid(self.db, bid.id):
            raise Conflict("An appointment already exists for this quote")

        self._validate_booking_time(data.scheduled_date, data.start_time)
        duration = estimate_duration(request.service_categories or [])

        logger.info(
            f"📥 Booking request {request.id} at workshop {bid.workshop_id} on "
            f"{data.scheduled_date} {data.start_time} ({duration:g}h)"
        )
        check = self.availability.check_slot(
            bid.workshop_id, data.scheduled_date, data.start_time, duration
        )
        if not check.available:
            self._raise_unavailable(check)

        workshop = self.repo.get_workshop(self.db, bid.workshop_id)
        with workshop_write_lock(workshop.id):
            try:
                check = self._check_under_lock(workshop, data.scheduled_date, data.start_time, duration)
                if not check.available:
                    self.db.rollback()
                    logger.warning(
                        f"⚠️ Slot taken between check and insert at workshop {workshop.id}: "
                        f"{check.reason}"
                    )
                    self._raise_unavailable(check)

                appointment = self.repo.add_appointment(
                    self.db,
                    request_id=request.id,
                    bid_id=bid.id,
                    customer_id=customer.user_id,
                    workshop_id=workshop.id,
                    scheduled_date=data.scheduled_date,
                    start_time=check.start_time,
                    end_time=check.end_time,
                    estimated_duration=duration,
                    status=APPOINTMENT_REQUESTED,
                    service_location=data.service_location or {"type": "workshop"},
                    customer_notes=data.customer_notes,
                )
                self.repo.add_status_change(
                    self.db, appointment, APPOINTMENT_REQUESTED, customer.user_id, "Appointment booked"
                )
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                logger.warning(f"⚠️ Booking collided on a unique constraint: {e.orig}")
                raise Conflict("This time slot or quote is already booked") from e

        logger.info(f"✅ Appointment {appointment.id} booked for request {request.id}")
        self.db.refresh(appointment)
        send_appointment_created_notification(self.db, appointment)
        return self.repo.get_appointment(self.db, appointment.id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _apply_status(
        self, appointment: Appointment, new_status: str, actor: CurrentUser, reason: Optional[str]
    ) -> None:
        now = self.clock()
        appointment.status = new_status
        if new_status == APPOINTMENT_CONFIRMED:
            appointment.confirmed_at = now
        elif new_status == APPOINTMENT_COMPLETED:
            appointment.completed_at = now
            QuoteRepository.close_request(
                self.db, appointment.request_id, (REQUEST_ACCEPTED,), REQUEST_COMPLETED, now
            )
        elif new_status == APPOINTMENT_CANCELLED:
            appointment.cancelled_at = now
        self.repo.add_status_change(self.db, appointment, new_status, actor.user_id, reason)

    def update_appointment_status(
        self,
        appointment_id: int,
        new_status: str,
        actor: CurrentUser,
        reason: Optional[str] = None,
        workshop_notes: Optional[str] = None,
    ) -> Appointment:
        """Workshop-driven status change following VALID_TRANSITIONS"""
        if not actor.is_workshop:
            raise AuthorizationDenied("Only the workshop can update appointment status")
        appointment = self.get_appointment(appointment_id, actor)

        if new_status not in VALID_TRANSITIONS:
            raise ValidationError(f"Unknown appointment status: {new_status}")
        if not can_transition(appointment.status, new_status):
            raise InvalidState(f"Cannot transition from {appointment.status} to {new_status}")

        old_status = appointment.status
        self._apply_status(appointment, new_status, actor, reason)
        if workshop_notes is not None:
            appointment.workshop_notes = workshop_notes
        self.db.commit()
        logger.info(f"✅ Appointment {appointment_id}: {old_status} → {new_status}")
        return self.repo.get_appointment(self.db, appointment_id)

    def cancel_appointment(
        self, appointment_id: int, customer: CurrentUser, reason: Optional[str] = None
    ) -> Appointment:
        if not customer.is_customer:
            raise AuthorizationDenied("Customer account required")
        appointment = self.get_appointment(appointment_id, customer)
        if appointment.status not in CUSTOMER_CANCELLABLE:
            raise InvalidState(f"A {appointment.status} appointment cannot be cancelled")

        self._apply_status(appointment, APPOINTMENT_CANCELLED, customer, reason or "Cancelled by customer")
        self.db.commit()
        logger.info(f"✅ Appointment {appointment_id} cancelled by customer {customer.user_id}")
        return self.repo.get_appointment(self.db, appointment_id)

    def reschedule_appointment(
        self, appointment_id: int, data: AppointmentReschedule, customer: CurrentUser
    ) -> Appointment:
        """Move an appointment to a new slot with at least RESCHEDULE_NOTICE_HOURS notice"""
        if not customer.is_customer:
            raise AuthorizationDenied("Customer account required")
        appointment = self.get_appointment(appointment_id, customer)
        if appointment.status not in RESCHEDULABLE:
            raise InvalidState(f"A {appointment.status} appointment cannot be rescheduled")

        current_start = at_minutes(appointment.scheduled_date, parse_start_time(appointment.start_time))
        if current_start - self.clock() < timedelta(hours=RESCHEDULE_NOTICE_HOURS):
            raise InvalidState(
                f"Appointments must be rescheduled at least {RESCHEDULE_NOTICE_HOURS} hours in advance"
            )

        self._validate_booking_time(data.scheduled_date, data.start_time)
        workshop = appointment.workshop

        with workshop_write_lock(workshop.id):
            try:
                check = self._check_under_lock(
                    workshop,
                    data.scheduled_date,
                    data.start_time,
                    appointment.estimated_duration,
                    exclude_id=appointment.id,
                )
                if not check.available:
                    self.db.rollback()
                    self._raise_unavailable(check)

                appointment.scheduled_date = data.scheduled_date
                appointment.start_time = check.start_time
                appointment.end_time = check.end_time
                self._apply_status(appointment, APPOINTMENT_RESCHEDULED, customer, data.reason)
                self.db.commit()
            except IntegrityError as e:
                self.db.rollback()
                raise Conflict("This time slot is already booked") from e

        logger.info(
            f"✅ Appointment {appointment_id} rescheduled to {data.scheduled_date} {check.start_time}"
        )
        return self.repo.get_appointment(self.db, appointment_id)
