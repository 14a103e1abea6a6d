"""
Errors raised by the appointment services.
Routes let these propagate; create_app() renders them as JSON.
"""


class AppointmentError(Exception):
    """Base class; status_code is the HTTP status the error maps to."""
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(AppointmentError):
    """Bad input, invalid state transition, or a rule violation."""
    status_code = 400


class SlotUnavailableError(ValidationError):
    """The (date, time, department) slot is already at capacity."""


class NotFoundError(AppointmentError):
    status_code = 404


class AuthorizationError(AppointmentError):
    """Caller is authenticated but may not act on this record."""
    status_code = 403
