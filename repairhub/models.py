import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC now, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Request lifecycle: draft → submitted → quoted → accepted → {completed | cancelled | expired}
REQUEST_DRAFT = "draft"
REQUEST_SUBMITTED = "submitted"
REQUEST_QUOTED = "quoted"
REQUEST_ACCEPTED = "accepted"
REQUEST_COMPLETED = "completed"
REQUEST_CANCELLED = "cancelled"
REQUEST_EXPIRED = "expired"

REQUEST_OPEN_STATUSES = (REQUEST_SUBMITTED, REQUEST_QUOTED)
REQUEST_TERMINAL_STATUSES = (REQUEST_COMPLETED, REQUEST_CANCELLED, REQUEST_EXPIRED)

# Bid lifecycle: pending → (viewed) → submitted → (quoted) → {accepted | declined}
# pending/viewed: the customer asked this workshop for a quote, no price yet
# submitted: workshop sent a price; quoted: workshop revised its price
BID_PENDING = "pending"
BID_VIEWED = "viewed"
BID_SUBMITTED = "submitted"
BID_QUOTED = "quoted"
BID_ACCEPTED = "accepted"
BID_DECLINED = "declined"
BID_EXPIRED = "expired"

BID_INVITATION_STATUSES = (BID_PENDING, BID_VIEWED)
BID_PRICED_STATUSES = (BID_SUBMITTED, BID_QUOTED)
BID_CUSTOMER_VISIBLE_STATUSES = (BID_SUBMITTED, BID_QUOTED, BID_ACCEPTED, BID_DECLINED)

# Appointment lifecycle (see domain.scheduling.service.VALID_TRANSITIONS)
APPOINTMENT_REQUESTED = "requested"
APPOINTMENT_CONFIRMED = "confirmed"
APPOINTMENT_SCHEDULED = "scheduled"
APPOINTMENT_IN_PROGRESS = "in_progress"
APPOINTMENT_COMPLETED = "completed"
APPOINTMENT_CANCELLED = "cancelled"
APPOINTMENT_NO_SHOW = "no_show"
APPOINTMENT_RESCHEDULED = "rescheduled"


class Workshop(Base):
    __tablename__ = "workshops"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(
        String(36), unique=True, nullable=False, index=True, default=generate_public_id
    )
    # Identity collaborator user id of the workshop account
    user_id = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)

    # Geocoding collaborator output; both null when unknown
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # {"monday": {"open": "08:00", "close": "17:00", "closed": false}, ...}
    # Null falls back to config.DEFAULT_OPERATING_HOURS
    operating_hours = Column(JSON, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    bids = relationship("Bid", back_populates="workshop")
    appointments = relationship("Appointment", back_populates="workshop")


class ServiceRequest(Base):
    """A customer's repair request, open to competing bids"""

    __tablename__ = "service_requests"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(
        String(36), unique=True, nullable=False, index=True, default=generate_public_id
    )

    # Identity collaborator user id (not a local FK)
    customer_id = Column(String(255), nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)

    # {"make": "toyota", "model": "Corolla", "year": 2019, ...}
    vehicle = Column(JSON, nullable=False)
    service_categories = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)

    status = Column(String(50), default=REQUEST_SUBMITTED, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)

    # Set once by accept_bid, never rewritten
    accepted_bid_id = Column(Integer, nullable=True)
    accepted_at = Column(DateTime, nullable=True)
    closed_at = Column(DateTime, nullable=True)

    # Customer location for distance display
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    bids = relationship(
        "Bid", back_populates="request", cascade="all, delete-orphan", order_by="Bid.id"
    )
    appointment = relationship("Appointment", back_populates="request", uselist=False)


class Bid(Base):
    """One workshop's offer against a request"""

    __tablename__ = "bids"
    __table_args__ = (UniqueConstraint("request_id", "workshop_id", name="uq_bid_request_workshop"),)

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(
        String(36), unique=True, nullable=False, index=True, default=generate_public_id
    )
    request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, index=True)
    workshop_id = Column(Integer, ForeignKey("workshops.id"), nullable=False, index=True)
    workshop_name = Column(String(255), nullable=True)  # cached from workshop profile

    status = Column(String(50), default=BID_PENDING, nullable=False, index=True)

    # Null while the bid is still an invitation
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)
    valid_until = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    submitted_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    decided_at = Column(DateTime, nullable=True)  # accepted/declined/expired

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    request = relationship("ServiceRequest", back_populates="bids")
    workshop = relationship("Workshop", back_populates="bids")


class Appointment(Base):
    """Conflict-checked booking created from an accepted bid"""

    __tablename__ = "appointments"
    # Cancelled bookings stay in the table but no longer hold their start slot
    __table_args__ = (
        Index(
            "uq_appointment_workshop_start",
            "workshop_id",
            "scheduled_date",
            "start_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(
        String(36), unique=True, nullable=False, index=True, default=generate_public_id
    )

    request_id = Column(Integer, ForeignKey("service_requests.id"), nullable=False, index=True)
    bid_id = Column(Integer, ForeignKey("bids.id"), nullable=False, unique=True)
    customer_id = Column(String(255), nullable=False, index=True)
    workshop_id = Column(Integer, ForeignKey("workshops.id"), nullable=False, index=True)

    scheduled_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM, same day
    estimated_duration = Column(Float, nullable=False)  # hours

    status = Column(String(50), default=APPOINTMENT_REQUESTED, nullable=False, index=True)

    # {"type": "workshop" | "customer_location" | "pickup_delivery", "address": ..., "coordinates": [lng, lat]}
    service_location = Column(JSON, nullable=True)
    customer_notes = Column(Text, nullable=True)
    workshop_notes = Column(Text, nullable=True)

    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    request = relationship("ServiceRequest", back_populates="appointment")
    workshop = relationship("Workshop", back_populates="appointments")
    status_history = relationship(
        "AppointmentStatusChange",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentStatusChange.id",
    )


class AppointmentStatusChange(Base):
    __tablename__ = "appointment_status_changes"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    changed_by = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime, default=utcnow, nullable=False)

    appointment = relationship("Appointment", back_populates="status_history")


class Notification(Base):
    """In-app notification written by the best-effort notification service"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    kind = Column(String(50), nullable=False)  # quotation_won, quotation_lost, appointment_created
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
