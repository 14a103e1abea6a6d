"""
Appointment services. Import from the submodules directly, e.g.
``from app.services.appointment_service import create_appointment``.
"""
from .exceptions import (
    AppointmentError,
    ValidationError,
    SlotUnavailableError,
    NotFoundError,
    AuthorizationError,
)

__all__ = [
    "AppointmentError",
    "ValidationError",
    "SlotUnavailableError",
    "NotFoundError",
    "AuthorizationError",
]
