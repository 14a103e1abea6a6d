from .enums import (
    Role,
    Gender,
    Department,
    AppointmentStatus,
    TERMINAL_STATUSES,
    NotificationKind,
    DeliveryStatus,
)
from .user import User
from .appointment import Appointment
from .notification import NotificationDelivery
from .audit_log import AuditLog

__all__ = [
    "Role", "Gender", "Department", "AppointmentStatus", "TERMINAL_STATUSES",
    "NotificationKind", "DeliveryStatus",
    "User", "Appointment", "NotificationDelivery", "AuditLog",
]
