"""
Unit tests for AppointmentService
Tests booking an accepted bid, conflict detection and the status lifecycle
"""

from datetime import date

import pytest

from repairhub.domain.quotes.service import QuoteService
from repairhub.domain.scheduling.schemas import AppointmentCreate, AppointmentReschedule
from repairhub.domain.scheduling.service import AppointmentService, can_transition
from repairhub.errors import (
    AuthorizationDenied,
    Conflict,
    InvalidState,
    NotFound,
    ValidationError,
)
from repairhub.models import (
    APPOINTMENT_CANCELLED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_IN_PROGRESS,
    APPOINTMENT_REQUESTED,
    APPOINTMENT_RESCHEDULED,
    APPOINTMENT_SCHEDULED,
    REQUEST_COMPLETED,
    Notification,
)
from tests.factories import AppointmentFactory, BidFactory, RequestFactory, WorkshopFactory

TUESDAY = date(2026, 3, 3)
WEDNESDAY = date(2026, 3, 4)


@pytest.fixture
def workshop(db_session):
    return WorkshopFactory.create(db_session, user_id="ws-1")


@pytest.fixture
def accepted(db_session, clock, customer, workshop):
    """A brakes request (2h job) with an accepted bid from ws-1"""
    request = RequestFactory.create(db_session, service_categories=["brakes"])
    bid = BidFactory.create(db_session, request, workshop, 350.0)
    QuoteService(db_session, clock).accept_bid(request.id, bid.id, customer)
    return request, bid


def booking(accepted, day=TUESDAY, start_time="10:00") -> AppointmentCreate:
    request, bid = accepted
    return AppointmentCreate(
        request_id=request.id, bid_id=bid.id, scheduled_date=day, start_time=start_time
    )


@pytest.mark.unit
class TestCreateAppointment:
    def test_books_accepted_bid(self, db_session, clock, customer, accepted):
        service = AppointmentService(db_session, clock)

        appointment = service.create_appointment(booking(accepted, start_time="9:30"), customer)

        assert appointment.status == APPOINTMENT_REQUESTED
        assert appointment.start_time == "09:30"
        assert appointment.end_time == "11:30"
        assert appointment.estimated_duration == 2
        assert appointment.service_location == {"type": "workshop"}
        assert [h.status for h in appointment.status_history] == [APPOINTMENT_REQUESTED]

    def test_notifies_workshop(self, db_session, clock, customer, accepted):
        AppointmentService(db_session, clock).create_appointment(booking(accepted), customer)

        kinds = [
            n.kind for n in db_session.query(Notification).filter(Notification.user_id == "ws-1")
        ]
        assert "appointment_created" in kinds

    def test_second_booking_for_same_bid_conflicts(self, db_session, clock, customer, accepted):
        service = AppointmentService(db_session, clock)
        service.create_appointment(booking(accepted), customer)

        with pytest.raises(Conflict):
            service.create_appointment(booking(accepted, start_time="14:00"), customer)

    def test_overlapping_booking_conflicts(self, db_session, clock, customer, workshop, accepted):
        AppointmentFactory.create(db_session, workshop, TUESDAY, "10:00", "12:00")
        service = AppointmentService(db_session, clock)

        with pytest.raises(Conflict):
            service.create_appointment(booking(accepted, start_time="11:00"), customer)

        appointment = service.create_appointment(booking(accepted, start_time="12:00"), customer)
        assert appointment.end_time == "14:00"

    def test_slot_taken_after_read_check_conflicts(
        self, db_session, clock, customer, workshop, accepted
    ):
        service = AppointmentService(db_session, clock)
        read_check = service.availability.check_slot

        def check_then_lose_race(*args, **kwargs):
            result = read_check(*args, **kwargs)
            AppointmentFactory.create(db_session, workshop, TUESDAY, "09:00", "11:00")
            return result

        service.availability.check_slot = check_then_lose_race

        with pytest.raises(Conflict):
            service.create_appointment(booking(accepted), customer)

        assert service.repo.get_appointment_for_bid(db_session, accepted[1].id) is None

    def test_outside_operating_hours(self, db_session, clock, customer, accepted):
        service = AppointmentService(db_session, clock)

        with pytest.raises(ValidationError):
            service.create_appointment(booking(accepted, start_time="16:00"), customer)

    def test_past_start_is_rejected(self, db_session, clock, customer, accepted):
        service = AppointmentService(db_session, clock)

        with pytest.raises(ValidationError):
            service.create_appointment(
                booking(accepted, day=date(2026, 3, 2), start_time="08:00"), customer
            )

    def test_too_far_ahead_is_rejected(self, db_session, clock, customer, accepted):
        service = AppointmentService(db_session, clock)

        with pytest.raises(ValidationError):
            service.create_appointment(booking(accepted, day=date(2026, 7, 1)), customer)

    def test_request_must_be_accepted_with_this_bid(self, db_session, clock, customer, workshop):
        request = RequestFactory.create(db_session)
        bid = BidFactory.create(db_session, request, workshop)
        service = AppointmentService(db_session, clock)

        with pytest.raises(InvalidState):
            service.create_appointment(booking((request, bid)), customer)

    def test_other_customer_is_denied(self, db_session, clock, other_customer, accepted):
        service = AppointmentService(db_session, clock)

        with pytest.raises(AuthorizationDenied):
            service.create_appointment(booking(accepted), other_customer)

    def test_unknown_request(self, db_session, clock, customer):
        service = AppointmentService(db_session, clock)
        data = AppointmentCreate(
            request_id=404, bid_id=1, scheduled_date=TUESDAY, start_time="10:00"
        )

        with pytest.raises(NotFound):
            service.create_appointment(data, customer)


@pytest.mark.unit
class TestAppointmentLifecycle:
    @pytest.fixture
    def appointment(self, db_session, clock, customer, accepted):
        return AppointmentService(db_session, clock).create_appointment(booking(accepted), customer)

    def test_transition_table(self):
        assert can_transition(APPOINTMENT_REQUESTED, APPOINTMENT_CONFIRMED)
        assert can_transition(APPOINTMENT_SCHEDULED, APPOINTMENT_IN_PROGRESS)
        assert not can_transition(APPOINTMENT_REQUESTED, APPOINTMENT_COMPLETED)
        assert not can_transition(APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED)

    def test_workshop_walks_to_completion(
        self, db_session, clock, appointment, workshop_user_factory
    ):
        service = AppointmentService(db_session, clock)
        user = workshop_user_factory("ws-1")

        for status in (
            APPOINTMENT_CONFIRMED,
            APPOINTMENT_SCHEDULED,
            APPOINTMENT_IN_PROGRESS,
            APPOINTMENT_COMPLETED,
        ):
            updated = service.update_appointment_status(appointment.id, status, user)
            assert updated.status == status

        assert updated.confirmed_at == clock()
        assert updated.completed_at == clock()
        assert len(updated.status_history) == 5
        assert QuoteService(db_session, clock).get_request(updated.request_id).status == (
            REQUEST_COMPLETED
        )

    def test_invalid_transition(self, db_session, clock, appointment, workshop_user_factory):
        service = AppointmentService(db_session, clock)

        with pytest.raises(InvalidState):
            service.update_appointment_status(
                appointment.id, APPOINTMENT_COMPLETED, workshop_user_factory("ws-1")
            )

    def test_unknown_status(self, db_session, clock, appointment, workshop_user_factory):
        service = AppointmentService(db_session, clock)

        with pytest.raises(ValidationError):
            service.update_appointment_status(
                appointment.id, "teleported", workshop_user_factory("ws-1")
            )

    def test_customer_cannot_drive_status(self, db_session, clock, customer, appointment):
        service = AppointmentService(db_session, clock)

        with pytest.raises(AuthorizationDenied):
            service.update_appointment_status(appointment.id, APPOINTMENT_CONFIRMED, customer)

    def test_other_workshop_cannot_see_appointment(
        self, db_session, clock, appointment, workshop_user_factory
    ):
        WorkshopFactory.create(db_session, user_id="ws-2")
        service = AppointmentService(db_session, clock)

        with pytest.raises(AuthorizationDenied):
            service.get_appointment(appointment.id, workshop_user_factory("ws-2"))

    def test_cancel_frees_the_slot(self, db_session, clock, customer, workshop, appointment):
        service = AppointmentService(db_session, clock)

        cancelled = service.cancel_appointment(appointment.id, customer, "Changed plans")

        assert cancelled.status == APPOINTMENT_CANCELLED
        assert cancelled.cancelled_at == clock()
        assert cancelled.status_history[-1].reason == "Changed plans"
        assert service.availability.check_slot(workshop.id, TUESDAY, "10:00", 2).available
        with pytest.raises(InvalidState):
            service.cancel_appointment(appointment.id, customer)

        request = RequestFactory.create(db_session, service_categories=["brakes"])
        bid = BidFactory.create(db_session, request, workshop, 380.0)
        QuoteService(db_session, clock).accept_bid(request.id, bid.id, customer)

        rebooked = service.create_appointment(booking((request, bid)), customer)

        assert rebooked.start_time == "10:00"
        assert rebooked.scheduled_date == TUESDAY

    def test_reschedule(self, db_session, clock, customer, appointment):
        service = AppointmentService(db_session, clock)

        moved = service.reschedule_appointment(
            appointment.id,
            AppointmentReschedule(scheduled_date=WEDNESDAY, start_time="13:00", reason="Work trip"),
            customer,
        )

        assert moved.status == APPOINTMENT_RESCHEDULED
        assert moved.scheduled_date == WEDNESDAY
        assert moved.start_time == "13:00"
        assert moved.end_time == "15:00"

    def test_reschedule_within_same_day_may_overlap_itself(
        self, db_session, clock, customer, appointment
    ):
        service = AppointmentService(db_session, clock)

        moved = service.reschedule_appointment(
            appointment.id,
            AppointmentReschedule(scheduled_date=TUESDAY, start_time="11:00"),
            customer,
        )

        assert moved.start_time == "11:00"

    def test_reschedule_needs_notice(self, db_session, clock, customer, appointment):
        service = AppointmentService(db_session, clock)
        # Tuesday 10:00 is now 23 hours away
        clock.advance(hours=2)

        with pytest.raises(InvalidState):
            service.reschedule_appointment(
                appointment.id,
                AppointmentReschedule(scheduled_date=WEDNESDAY, start_time="10:00"),
                customer,
            )

    def test_list_by_role(
        self, db_session, clock, customer, other_customer, appointment, workshop_user_factory
    ):
        service = AppointmentService(db_session, clock)

        assert [a.id for a in service.list_appointments(customer)] == [appointment.id]
        assert service.list_appointments(other_customer) == []
        assert [a.id for a in service.list_appointments(workshop_user_factory("ws-1"))] == [
            appointment.id
        ]
