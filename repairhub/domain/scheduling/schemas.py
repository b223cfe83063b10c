"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...config import DEFAULT_DAYS_WINDOW
from ...shared.validators import validate_service_categories, validate_time_string


class TimeSlot(BaseModel):
    date: date
    start_time: str
    end_time: str


class SlotCheck(BaseModel):
    """Outcome of a single slot availability check"""

    available: bool
    reason: Optional[str] = None
    workshop_id: int
    date: date
    start_time: str
    end_time: Optional[str] = None
    conflicting_appointment_id: Optional[int] = None


class DurationEstimate(BaseModel):
    service_categories: list[str]
    estimated_duration: float


class CompareRequest(BaseModel):
    """
    Compare up to MAX_COMPARE_WORKSHOPS workshops for one job.

    Either `duration` or `service_categories` (or a `request_id` whose
    categories are used) determines the job length.
    """

    workshop_ids: list[int]
    duration: Optional[float] = None
    service_categories: Optional[list[str]] = None
    request_id: Optional[int] = None
    preferred_date: Optional[date] = None
    days_window: int = Field(default=DEFAULT_DAYS_WINDOW, ge=1, le=31)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

    @field_validator("service_categories")
    @classmethod
    def normalize_categories(cls, v):
        if v is None:
            return v
        return validate_service_categories(v)


class WorkshopAvailability(BaseModel):
    workshop_id: int
    workshop_name: Optional[str] = None
    available_slots_count: int
    average_wait_time: Optional[float] = None  # hours until the first open slot
    first_available: Optional[TimeSlot] = None
    next_slots: list[TimeSlot] = Field(default_factory=list)
    availability_score: int = 0
    recommendation: str = "poor"  # excellent | good | limited | poor
    distance_km: Optional[float] = None


class Recommendations(BaseModel):
    best_availability: Optional[int] = None
    most_flexible: Optional[int] = None
    earliest: Optional[int] = None


class ComparisonResult(BaseModel):
    estimated_duration: float
    preferred_date: Optional[date] = None
    days_checked: int
    results: list[WorkshopAvailability]
    recommendations: Recommendations


class AppointmentCreate(BaseModel):
    request_id: int
    bid_id: int
    scheduled_date: date
    start_time: str
    service_location: Optional[dict] = None
    customer_notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, v):
        return validate_time_string(v)


class AppointmentStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = Field(default=None, max_length=500)
    workshop_notes: Optional[str] = Field(default=None, max_length=1000)


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AppointmentReschedule(BaseModel):
    scheduled_date: date
    start_time: str
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("start_time")
    @classmethod
    def normalize_start_time(cls, v):
        return validate_time_string(v)


class StatusChangeResponse(BaseModel):
    status: str
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    public_id: Optional[str] = None
    request_id: int
    bid_id: int
    customer_id: str
    workshop_id: int
    scheduled_date: date
    start_time: str
    end_time: str
    estimated_duration: float
    status: str
    service_location: Optional[dict] = None
    customer_notes: Optional[str] = None
    workshop_notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    status_history: list[StatusChangeResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True
