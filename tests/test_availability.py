import threading
from datetime import date, time, timedelta

import pytest

from app import create_app
from app.extensions import db
from app.models import AppointmentStatus, Department
from app.services.appointment_service import create_appointment, cancel_appointment, check_availability
from app.services.availability import is_available, count_active_bookings, slot_key
from app.services.exceptions import SlotUnavailableError, ValidationError


def test_fourth_booking_on_a_full_slot_is_rejected(booking_payload):
    for i in range(3):
        create_appointment(booking_payload(fullName=f'Patient {i}', email=f'p{i}@example.com'))

    with pytest.raises(SlotUnavailableError):
        create_appointment(booking_payload(fullName='Patient 4', email='p4@example.com'))


def test_cancelling_frees_the_slot(booking_payload):
    booked = [create_appointment(booking_payload(email=f'p{i}@example.com')) for i in range(3)]
    cancel_appointment(booked[0].id)

    fourth = create_appointment(booking_payload(email='late@example.com'))

    assert fourth.status == AppointmentStatus.PENDING
    assert count_active_bookings(fourth.appointment_date, fourth.appointment_time, fourth.department) == 3


@pytest.fixture
def file_backed_app(tmp_path, gateway):
    """A second app on a SQLite file so worker threads each get their own connection"""
    shared = create_app('testing', {
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'slots.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30, 'check_same_thread': False}},
    })
    shared.extensions['notification_gateway'] = gateway
    with shared.app_context():
        db.create_all()
    yield shared
    with shared.app_context():
        db.drop_all()
        db.engine.dispose()


def test_concurrent_bookings_fill_a_slot_exactly_to_capacity(file_backed_app, booking_payload):
    workers = 6
    start = threading.Barrier(workers)
    outcomes = []

    def book(n):
        with file_backed_app.app_context():
            start.wait()
            try:
                create_appointment(booking_payload(fullName=f'Patient {n}', email=f'p{n}@example.com'))
                outcomes.append('booked')
            except SlotUnavailableError:
                outcomes.append('full')
            finally:
                db.session.remove()

    threads = [threading.Thread(target=book, args=(n,)) for n in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ['booked'] * 3 + ['full'] * 3
    with file_backed_app.app_context():
        day = date.today() + timedelta(days=7)
        assert count_active_bookings(day, time(9, 0), Department.NEUROLOGY) == 3


def test_capacity_is_per_exact_date_time_and_department(make_appointment):
    day = date.today() + timedelta(days=3)
    for _ in range(3):
        make_appointment(appointment_date=day, appointment_time=time(9, 0), department=Department.NEUROLOGY)

    assert not is_available(day, time(9, 0), Department.NEUROLOGY)
    assert is_available(day, time(9, 30), Department.NEUROLOGY)
    assert is_available(day, time(9, 0), Department.CARDIOLOGY)
    assert is_available(day + timedelta(days=1), time(9, 0), Department.NEUROLOGY)


def test_only_cancelled_appointments_release_capacity(make_appointment):
    day = date.today() + timedelta(days=3)
    make_appointment(appointment_date=day, status=AppointmentStatus.NO_SHOW)
    make_appointment(appointment_date=day, status=AppointmentStatus.COMPLETED)
    make_appointment(appointment_date=day, status=AppointmentStatus.CANCELLED)

    assert count_active_bookings(day, time(9, 0), Department.NEUROLOGY) == 2
    assert is_available(day, time(9, 0), Department.NEUROLOGY)


def test_exclude_id_ignores_the_appointment_being_moved(make_appointment):
    day = date.today() + timedelta(days=3)
    rows = [make_appointment(appointment_date=day) for _ in range(3)]

    assert not is_available(day, time(9, 0), Department.NEUROLOGY)
    assert is_available(day, time(9, 0), Department.NEUROLOGY, exclude_id=rows[0].id)


def test_slot_capacity_follows_config(app, make_appointment):
    app.config['SLOT_CAPACITY'] = 1
    day = date.today() + timedelta(days=3)
    make_appointment(appointment_date=day)

    assert not is_available(day, time(9, 0), Department.NEUROLOGY)


def test_slot_key_is_stable_and_distinguishes_slots():
    day = date(2030, 5, 1)
    assert slot_key(day, time(9, 0), Department.ENT) == slot_key(day, time(9, 0), Department.ENT)
    assert slot_key(day, time(9, 0), Department.ENT) != slot_key(day, time(9, 0), Department.UROLOGY)


def test_public_check_rejects_past_dates():
    with pytest.raises(ValidationError, match='past date'):
        check_availability('2020-01-01', '09:00', 'NEUROLOGY', today=date(2030, 1, 1))


def test_public_check_accepts_display_name():
    future = (date.today() + timedelta(days=2)).isoformat()
    assert check_availability(future, '10:30', 'Internal Medicine') is True


@pytest.mark.parametrize('args', [
    ('', '09:00', 'NEUROLOGY'),
    ('2030-01-01', '', 'NEUROLOGY'),
    ('2030-01-01', '09:00', ''),
    ('01/01/2030', '09:00', 'NEUROLOGY'),
    ('2030-01-01', '9 o\'clock', 'NEUROLOGY'),
    ('2030-01-01', '09:00', 'ASTROLOGY'),
])
def test_public_check_rejects_bad_input(args):
    with pytest.raises(ValidationError):
        check_availability(*args, today=date(2029, 1, 1))
