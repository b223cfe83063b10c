import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./repairhub.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# Frontend base URL, also the default CORS origin
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:5173").split(",")

# Redis (optional durable backend for the client-side quote tracking store)
REDIS_URL = os.getenv("REDIS_URL")

# Best-effort notification delivery. Rows are always written to the DB;
# the webhook is only called when configured.
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_TIMEOUT_SECONDS = float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5"))

# Quote competition
REQUEST_EXPIRY_DAYS = int(os.getenv("REQUEST_EXPIRY_DAYS", "7"))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "AED")

# Scheduling
MIN_DURATION_HOURS = float(os.getenv("MIN_DURATION_HOURS", "0.5"))
MAX_DURATION_HOURS = float(os.getenv("MAX_DURATION_HOURS", "12"))
MAX_COMPARE_WORKSHOPS = int(os.getenv("MAX_COMPARE_WORKSHOPS", "10"))
DEFAULT_DAYS_WINDOW = int(os.getenv("DEFAULT_DAYS_WINDOW", "7"))
MAX_BOOKING_DAYS_AHEAD = int(os.getenv("MAX_BOOKING_DAYS_AHEAD", "90"))
RESCHEDULE_NOTICE_HOURS = int(os.getenv("RESCHEDULE_NOTICE_HOURS", "24"))

# Base duration per service category, in hours. Summed then clamped to
# [MIN_DURATION_HOURS, MAX_DURATION_HOURS].
SERVICE_DURATIONS = {
    # Mechanical
    "engine": 4,
    "transmission": 6,
    "brakes": 2,
    "suspension": 3,
    "clutch": 4,
    # Electrical
    "electrical": 2,
    "battery": 0.5,
    "alternator": 2,
    "lights": 1,
    "electronics": 2,
    # Body & exterior
    "bodywork": 8,
    "paint": 6,
    "glass": 2,
    "bumper": 3,
    "dents": 2,
    # Maintenance
    "maintenance": 1,
    "oil_change": 0.5,
    "inspection": 1,
    "tune_up": 2,
    "filters": 0.5,
    # Tires & wheels
    "tires": 1,
    "wheel_alignment": 1,
    "tire_rotation": 0.5,
    "wheel_balancing": 1,
    # Other
    "detailing": 3,
    "diagnostic": 1,
    "repair": 2,
    "other": 2,
}
DEFAULT_SERVICE_DURATION = float(os.getenv("DEFAULT_SERVICE_DURATION", "2"))

# Used when a workshop has not configured its own week
DEFAULT_OPERATING_HOURS = {
    "monday": {"open": "08:00", "close": "17:00", "closed": False},
    "tuesday": {"open": "08:00", "close": "17:00", "closed": False},
    "wednesday": {"open": "08:00", "close": "17:00", "closed": False},
    "thursday": {"open": "08:00", "close": "17:00", "closed": False},
    "friday": {"open": "08:00", "close": "17:00", "closed": False},
    "saturday": {"open": "08:00", "close": "15:00", "closed": False},
    "sunday": {"open": "00:00", "close": "00:00", "closed": True},
}
