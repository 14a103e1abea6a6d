"""
Slot Availability Checker

A slot is an exact (date, time, department) tuple. It holds at most
SLOT_CAPACITY appointments whose status is not CANCELLED.

Booking is check-then-insert, so the check and the insert run under
slot_lock(): a PostgreSQL transaction-scoped advisory lock keyed by the slot
(serialises every app instance sharing the database) plus a striped
in-process lock (covers SQLite and the single-process dev server, where
advisory locks do not exist). The caller must commit inside the lock.
"""
import logging
import threading
import zlib
from contextlib import contextmanager
from datetime import date, time
from typing import Optional

from flask import current_app

from app.extensions import db
from app.models import Appointment, AppointmentStatus, Department

logger = logging.getLogger(__name__)

DEFAULT_SLOT_CAPACITY = 3

_LOCK_STRIPES = [threading.Lock() for _ in range(64)]


def slot_capacity() -> int:
    return current_app.config.get('SLOT_CAPACITY', DEFAULT_SLOT_CAPACITY)


def slot_key(appointment_date: date, appointment_time: time, department: Department) -> int:
    """Stable 32-bit key for a slot, shared by every process"""
    raw = f"{appointment_date.isoformat()}|{appointment_time.strftime('%H:%M:%S')}|{department.value}"
    return zlib.crc32(raw.encode('utf-8'))


@contextmanager
def slot_lock(appointment_date: date, appointment_time: time, department: Department):
    key = slot_key(appointment_date, appointment_time, department)
    with _LOCK_STRIPES[key % len(_LOCK_STRIPES)]:
        if db.engine.dialect.name == 'postgresql':
            # Released automatically when the surrounding transaction ends
            db.session.execute(db.text('SELECT pg_advisory_xact_lock(:key)'), {'key': key})
        yield


def count_active_bookings(
    appointment_date: date,
    appointment_time: time,
    department: Department,
    exclude_id: Optional[int] = None,
) -> int:
    """Non-cancelled appointments in exactly this slot"""
    query = Appointment.query.filter(
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.department == department,
        Appointment.status != AppointmentStatus.CANCELLED,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.count()


def is_available(
    appointment_date: date,
    appointment_time: time,
    department: Department,
    exclude_id: Optional[int] = None,
) -> bool:
    count = count_active_bookings(appointment_date, appointment_time, department, exclude_id)
    available = count < slot_capacity()
    logger.debug(
        "Slot %s %s %s: %d booked, available=%s",
        appointment_date, appointment_time, department.value, count, available,
    )
    return available
