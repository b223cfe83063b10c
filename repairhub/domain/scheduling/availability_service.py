"""
Availability service - duration estimates, slot checks and workshop comparison

The pure functions at the top take plain data (operating hours, existing
appointments) so they can be exercised without a database. AvailabilityService
wires them to the repository.
"""

import logging
import math
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from ...config import (
    DEFAULT_DAYS_WINDOW,
    DEFAULT_SERVICE_DURATION,
    MAX_COMPARE_WORKSHOPS,
    MAX_DURATION_HOURS,
    MIN_DURATION_HOURS,
    SERVICE_DURATIONS,
)
from ...errors import NotFound, ValidationError
from ...models import Appointment, utcnow
from ...services.geo import distance_km
from .repository import AppointmentRepository
from .schemas import ComparisonResult, Recommendations, SlotCheck, TimeSlot, WorkshopAvailability
from .time_calculator import (
    at_minutes,
    duration_to_minutes,
    hours_between,
    intervals_overlap,
    minutes_to_time,
    operating_window,
    time_to_minutes,
)

logger = logging.getLogger(__name__)

SLOTS_WEIGHT = 60
WAIT_WEIGHT = 40
NEXT_SLOTS_SHOWN = 5


# ============================================================================
# DURATION
# ============================================================================


def estimate_duration(service_categories: Iterable[str]) -> float:
    """Sum per-category base hours, then clamp to [MIN_DURATION_HOURS, MAX_DURATION_HOURS]"""
    total = sum(SERVICE_DURATIONS.get(c, DEFAULT_SERVICE_DURATION) for c in service_categories)
    return float(min(max(total, MIN_DURATION_HOURS), MAX_DURATION_HOURS))


def validate_duration(duration: Optional[float]) -> float:
    if duration is None or not MIN_DURATION_HOURS <= duration <= MAX_DURATION_HOURS:
        raise ValidationError(
            f"Duration must be between {MIN_DURATION_HOURS:g} and {MAX_DURATION_HOURS:g} hours"
        )
    return float(duration)


def parse_start_time(start_time: str) -> int:
    try:
        return time_to_minutes(start_time)
    except ValueError as e:
        raise ValidationError(str(e)) from e


# ============================================================================
# SLOT CHECKS
# ============================================================================


def busy_intervals(appointments: Iterable[Appointment]) -> list[tuple[int, int, int]]:
    """(start, end, appointment_id) in minutes for each blocking appointment"""
    return [
        (time_to_minutes(a.start_time), time_to_minutes(a.end_time), a.id) for a in appointments
    ]


def check_window(
    workshop_id: int,
    operating_hours: Optional[dict],
    day: date,
    start_time: str,
    duration: float,
    busy: list[tuple[int, int, int]],
) -> SlotCheck:
    """
    Decide whether [start, start + duration) is bookable on a day.

    The window must sit inside that weekday's operating hours and must not
    overlap any busy interval (half-open, so back-to-back bookings are fine).
    """
    start = parse_start_time(start_time)
    end = start + duration_to_minutes(duration)
    result = {"workshop_id": workshop_id, "date": day, "start_time": minutes_to_time(start)}

    window = operating_window(operating_hours, day)
    if window is None:
        return SlotCheck(available=False, reason="Workshop is closed on this day", **result)

    open_minutes, close_minutes = window
    if start < open_minutes or start >= close_minutes:
        return SlotCheck(
            available=False,
            reason=(
                f"Workshop operates from {minutes_to_time(open_minutes)} "
                f"to {minutes_to_time(close_minutes)}"
            ),
            **result,
        )
    if end > close_minutes:
        return SlotCheck(
            available=False,
            reason=f"Service duration ({duration:g}h) does not fit within operating hours",
            **result,
        )

    result["end_time"] = minutes_to_time(end)
    for busy_start, busy_end, appointment_id in busy:
        if intervals_overlap(start, end, busy_start, busy_end):
            return SlotCheck(
                available=False,
                reason="Time slot is already booked",
                conflicting_appointment_id=appointment_id,
                **result,
            )

    return SlotCheck(available=True, **result)


def free_slots_for_day(
    operating_hours: Optional[dict],
    day: date,
    duration: float,
    busy: list[tuple[int, int, int]],
    not_before: Optional[datetime] = None,
) -> list[TimeSlot]:
    """Free slots stepping by the job duration from opening until the job no longer fits"""
    window = operating_window(operating_hours, day)
    if window is None:
        return []

    open_minutes, close_minutes = window
    step = duration_to_minutes(duration)
    slots = []
    start = open_minutes
    while start + step <= close_minutes:
        end = start + step
        if not_before is None or at_minutes(day, start) >= not_before:
            if not any(intervals_overlap(start, end, b_start, b_end) for b_start, b_end, _ in busy):
                slots.append(
                    TimeSlot(date=day, start_time=minutes_to_time(start), end_time=minutes_to_time(end))
                )
        start += step
    return slots


# ============================================================================
# COMPARISON
# ============================================================================


def sort_by_availability(results: list[WorkshopAvailability]) -> list[WorkshopAvailability]:
    """Soonest first slot first (no slot last), then the most open slots"""
    return sorted(
        results,
        key=lambda r: (
            r.average_wait_time is None,
            r.average_wait_time if r.average_wait_time is not None else 0,
            -r.available_slots_count,
        ),
    )


def recommendation_for(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "limited"
    return "poor"


def score_availability(results: list[WorkshopAvailability]) -> list[WorkshopAvailability]:
    """
    60% relative slot abundance + 40% relative speed to first slot, both
    normalized against the best in the set (maxima floored at 1). A workshop
    with no slot at all is scored as if it had the longest wait.
    """
    if not results:
        return results

    max_slots = max([r.available_slots_count for r in results] + [1])
    waits = [r.average_wait_time for r in results if r.average_wait_time is not None]
    max_wait = max(waits + [1])

    for r in results:
        wait = r.average_wait_time if r.average_wait_time is not None else max_wait
        raw = (
            SLOTS_WEIGHT * r.available_slots_count / max_slots
            + WAIT_WEIGHT * (max_wait - wait) / max_wait
        )
        r.availability_score = int(math.floor(raw + 0.5))
        r.recommendation = recommendation_for(r.availability_score)
    return results


def recommend(results: list[WorkshopAvailability]) -> Recommendations:
    """Best overall (first after sorting), most open slots, and earliest first slot"""
    if not results:
        return Recommendations()

    most_flexible = max(results, key=lambda r: r.available_slots_count)
    waits = [r for r in results if r.average_wait_time is not None]
    earliest = min(waits, key=lambda r: r.average_wait_time) if waits else None
    return Recommendations(
        best_availability=results[0].workshop_id,
        most_flexible=most_flexible.workshop_id,
        earliest=earliest.workshop_id if earliest else None,
    )


class AvailabilityService:
    """Slot checks and multi-workshop comparison backed by the appointment table"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.repo = AppointmentRepository()
        self.clock = clock

    def _get_workshop(self, workshop_id: int):
        workshop = self.repo.get_workshop(self.db, workshop_id)
        if not workshop:
            raise NotFound("Workshop not found")
        return workshop

    def resolve_duration(
        self,
        duration: Optional[float] = None,
        service_categories: Optional[list[str]] = None,
        request_id: Optional[int] = None,
    ) -> float:
        """Explicit duration wins, then the given categories, then the request's categories"""
        if duration is not None:
            return validate_duration(duration)
        if service_categories:
            return estimate_duration(service_categories)
        if request_id is not None:
            request = self.repo.get_request(self.db, request_id)
            if not request:
                raise NotFound("Request not found")
            return estimate_duration(request.service_categories or [])
        raise ValidationError("Provide a duration, service categories or a request id")

    def check_slot(
        self,
        workshop_id: int,
        day: date,
        start_time: str,
        duration: float,
        exclude_appointment_id: Optional[int] = None,
    ) -> SlotCheck:
        duration = validate_duration(duration)
        workshop = self._get_workshop(workshop_id)
        busy = busy_intervals(
            self.repo.get_blocking_appointments(
                self.db, workshop.id, day, exclude_id=exclude_appointment_id
            )
        )
        result = check_window(workshop.id, workshop.operating_hours, day, start_time, duration, busy)
        if not result.available:
            logger.info(
                f"📅 Slot {day} {start_time} ({duration:g}h) unavailable at workshop "
                f"{workshop_id}: {result.reason}"
            )
        return result

    def get_day_slots(self, workshop_id: int, day: date, duration: float) -> list[TimeSlot]:
        duration = validate_duration(duration)
        workshop = self._get_workshop(workshop_id)
        busy = busy_intervals(self.repo.get_blocking_appointments(self.db, workshop.id, day))
        return free_slots_for_day(workshop.operating_hours, day, duration, busy, self.clock())

    def compare_availability(
        self,
        workshop_ids: list[int],
        duration: float,
        preferred_date: Optional[date] = None,
        days_window: int = DEFAULT_DAYS_WINDOW,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> ComparisonResult:
        """
        Rank workshops by how soon and how flexibly they can take a job.

        The scan starts at the later of now and midnight of preferred_date and
        covers days_window days. Wait time is hours from that reference point
        to the first free slot.
        """
        if not workshop_ids:
            raise ValidationError("At least one workshop is required")
        if len(workshop_ids) > MAX_COMPARE_WORKSHOPS:
            raise ValidationError(f"Cannot compare more than {MAX_COMPARE_WORKSHOPS} workshops")
        if days_window < 1:
            raise ValidationError("days_window must be at least 1")
        duration = validate_duration(duration)

        unique_ids = list(dict.fromkeys(workshop_ids))
        workshops = {w.id: w for w in self.repo.get_workshops(self.db, unique_ids)}
        missing = [wid for wid in unique_ids if wid not in workshops]
        if missing:
            raise NotFound(f"Workshops not found: {missing}")

        now = self.clock()
        reference = now
        if preferred_date is not None:
            reference = max(now, datetime.combine(preferred_date, datetime.min.time()))
        first_day = reference.date()
        last_day = first_day + timedelta(days=days_window - 1)

        busy_by_day = defaultdict(list)
        for appointment in self.repo.get_blocking_appointments_between(
            self.db, unique_ids, first_day, last_day
        ):
            busy_by_day[(appointment.workshop_id, appointment.scheduled_date)].append(appointment)

        results = []
        for workshop_id in unique_ids:
            workshop = workshops[workshop_id]
            slots: list[TimeSlot] = []
            for offset in range(days_window):
                day = first_day + timedelta(days=offset)
                busy = busy_intervals(busy_by_day[(workshop_id, day)])
                slots.extend(
                    free_slots_for_day(workshop.operating_hours, day, duration, busy, reference)
                )

            first = slots[0] if slots else None
            wait = None
            if first is not None:
                first_start = at_minutes(first.date, time_to_minutes(first.start_time))
                wait = round(hours_between(reference, first_start), 2)

            results.append(
                WorkshopAvailability(
                    workshop_id=workshop_id,
                    workshop_name=workshop.name,
                    available_slots_count=len(slots),
                    average_wait_time=wait,
                    first_available=first,
                    next_slots=slots[:NEXT_SLOTS_SHOWN],
                    distance_km=distance_km(
                        latitude, longitude, workshop.latitude, workshop.longitude
                    ),
                )
            )

        ranked = score_availability(sort_by_availability(results))
        logger.info(
            f"📊 Compared {len(ranked)} workshops for a {duration:g}h job over {days_window} days"
        )
        return ComparisonResult(
            estimated_duration=duration,
            preferred_date=preferred_date,
            days_checked=days_window,
            results=ranked,
            recommendations=recommend(ranked),
        )
