"""Scheduling router - FastAPI endpoints for availability and appointments"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user, require_customer, require_workshop
from ...database import get_db
from ...errors import ValidationError
from ...shared.validators import validate_service_categories
from .availability_service import AvailabilityService, estimate_duration
from .schemas import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatusUpdate,
    CompareRequest,
    ComparisonResult,
    DurationEstimate,
    SlotCheck,
    TimeSlot,
)
from .service import AppointmentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Scheduling"])


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/estimate", response_model=DurationEstimate)
async def estimate_service_duration(
    categories: list[str] = Query(...),
    current_user: CurrentUser = Depends(get_current_user),
):
    try:
        normalized = validate_service_categories(categories)
    except ValueError as e:
        raise ValidationError(str(e)) from e
    return DurationEstimate(
        service_categories=normalized, estimated_duration=estimate_duration(normalized)
    )


@router.get("/check-slot", response_model=SlotCheck)
async def check_slot(
    workshop_id: int,
    start_time: str,
    duration: float,
    day: date = Query(..., alias="date"),
    current_user: CurrentUser = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Is [start_time, start_time + duration) free at this workshop on this date?"""
    return service.check_slot(workshop_id, day, start_time, duration)


@router.get("/workshops/{workshop_id}/slots", response_model=list[TimeSlot])
async def get_day_slots(
    workshop_id: int,
    duration: float,
    day: date = Query(..., alias="date"),
    current_user: CurrentUser = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    return service.get_day_slots(workshop_id, day, duration)


@router.post("/compare", response_model=ComparisonResult)
async def compare_availability(
    data: CompareRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Rank up to 10 workshops by availability for one job"""
    duration = service.resolve_duration(data.duration, data.service_categories, data.request_id)
    return service.compare_availability(
        data.workshop_ids,
        duration,
        preferred_date=data.preferred_date,
        days_window=data.days_window,
        latitude=data.latitude,
        longitude=data.longitude,
    )


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.get("", response_model=list[AppointmentResponse])
async def list_appointments(
    status: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_appointments(current_user, status)


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    current_user: CurrentUser = Depends(require_customer),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book the accepted quote of a request"""
    return service.create_appointment(data, current_user)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment(appointment_id, current_user)


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    current_user: CurrentUser = Depends(require_workshop),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.update_appointment_status(
        appointment_id, data.status, current_user, data.reason, data.workshop_notes
    )


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: Optional[AppointmentCancel] = None,
    current_user: CurrentUser = Depends(require_customer),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.cancel_appointment(appointment_id, current_user, data.reason if data else None)


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: AppointmentReschedule,
    current_user: CurrentUser = Depends(require_customer),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.reschedule_appointment(appointment_id, data, current_user)
