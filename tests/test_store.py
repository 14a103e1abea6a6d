from datetime import date, time, timedelta

from app.models import AppointmentStatus, Department, Role
from app.services.appointment_store import store

TODAY = date(2030, 6, 1)


def test_search_matches_name_email_or_phone_once(make_appointment):
    both = make_appointment(full_name='Le Van Binh', email='binh@example.com')
    other = make_appointment(full_name='Someone Else', email='else@example.com', phone='0911111111')

    results = store.search('binh')

    assert [a.id for a in results] == [both.id]
    assert [a.id for a in store.search('0911')] == [other.id]


def test_search_is_case_insensitive(make_appointment):
    appointment = make_appointment(full_name='Pham Thu')

    assert [a.id for a in store.search('PHAM')] == [appointment.id]


def test_blank_search_returns_everything(make_appointment):
    make_appointment()
    make_appointment()

    assert len(store.search('')) == 2
    assert len(store.search(None)) == 2


def test_listing_is_newest_date_first_then_time(make_appointment):
    early_today = make_appointment(appointment_date=TODAY, appointment_time=time(8, 0))
    late_today = make_appointment(appointment_date=TODAY, appointment_time=time(15, 0))
    tomorrow = make_appointment(appointment_date=TODAY + timedelta(days=1), appointment_time=time(10, 0))

    assert [a.id for a in store.all()] == [tomorrow.id, early_today.id, late_today.id]


def test_todays_covers_pending_and_confirmed_only(make_appointment):
    pending = make_appointment(appointment_date=TODAY, appointment_time=time(11, 0))
    confirmed = make_appointment(appointment_date=TODAY, appointment_time=time(8, 0), status=AppointmentStatus.CONFIRMED)
    make_appointment(appointment_date=TODAY, status=AppointmentStatus.CANCELLED)
    make_appointment(appointment_date=TODAY + timedelta(days=1))

    assert [a.id for a in store.todays(TODAY)] == [confirmed.id, pending.id]


def test_upcoming_is_an_inclusive_seven_day_window(make_appointment):
    first = make_appointment(appointment_date=TODAY)
    last = make_appointment(appointment_date=TODAY + timedelta(days=7))
    make_appointment(appointment_date=TODAY + timedelta(days=8))
    make_appointment(appointment_date=TODAY - timedelta(days=1))
    make_appointment(appointment_date=TODAY + timedelta(days=2), status=AppointmentStatus.PAID)

    assert [a.id for a in store.upcoming(TODAY)] == [first.id, last.id]


def test_stats(make_appointment):
    make_appointment(appointment_date=TODAY)
    make_appointment(appointment_date=TODAY, status=AppointmentStatus.CONFIRMED)
    make_appointment(appointment_date=TODAY + timedelta(days=3), status=AppointmentStatus.CANCELLED)

    stats = store.stats(TODAY)

    assert stats['totalAppointments'] == 3
    assert stats['pendingAppointments'] == 1
    assert stats['confirmedAppointments'] == 1
    assert stats['todaysAppointments'] == 2
    assert stats['byStatus']['CANCELLED'] == 1
    assert set(stats['byStatus']) == {s.value for s in AppointmentStatus}


def test_filter_combines_criteria(make_appointment, doctor):
    match = make_appointment(
        appointment_date=TODAY, department=Department.CARDIOLOGY, doctor_id=doctor.id,
        status=AppointmentStatus.CONFIRMED,
    )
    make_appointment(appointment_date=TODAY, department=Department.CARDIOLOGY)
    make_appointment(appointment_date=TODAY, department=Department.NEUROLOGY, doctor_id=doctor.id)

    results = store.filter(department=Department.CARDIOLOGY, doctor_id=doctor.id)

    assert [a.id for a in results] == [match.id]
    assert store.filter(status=AppointmentStatus.CONFIRMED, appointment_date=TODAY)[0].id == match.id


def test_filter_by_date_range(make_appointment):
    inside = make_appointment(appointment_date=TODAY + timedelta(days=2))
    make_appointment(appointment_date=TODAY + timedelta(days=9))

    results = store.filter(start_date=TODAY, end_date=TODAY + timedelta(days=5))

    assert [a.id for a in results] == [inside.id]


def test_patient_views_match_account_or_email(make_appointment, make_user):
    patient = make_user(Role.PATIENT, username='mai@example.com', email='mai@example.com')
    linked = make_appointment(user_id=patient.id, email='old@example.com')
    by_email = make_appointment(email='MAI@example.com', status=AppointmentStatus.COMPLETED)
    make_appointment(email='notmai@example.com.vn')

    assert {a.id for a in store.for_patient(patient)} == {linked.id, by_email.id}
    assert [a.id for a in store.medical_history(patient)] == [by_email.id]


def test_doctor_queue(make_appointment, doctor):
    waiting = make_appointment(doctor_id=doctor.id, status=AppointmentStatus.AWAITING_DOCTOR_APPROVAL)
    make_appointment(doctor_id=doctor.id, status=AppointmentStatus.CONFIRMED)

    queue = store.by_doctor_and_status(doctor.id, AppointmentStatus.AWAITING_DOCTOR_APPROVAL)

    assert [a.id for a in queue] == [waiting.id]
    assert len(store.by_doctor(doctor.id)) == 2
