"""
Scheduling domain - Turning an accepted bid into a conflict-checked appointment

Structure:
- time_calculator.py      # "HH:MM" parsing, minute arithmetic, operating hours
- availability_service.py # Duration estimates, slot checks, workshop comparison
- repository.py           # Appointment database queries
- service.py              # Booking, status transitions, cancel, reschedule
- router.py               # /appointments endpoints
"""
