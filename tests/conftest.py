from datetime import date, datetime, time, timedelta

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from app.extensions import db
from app.models import User, Role, Appointment, AppointmentStatus, Department


class FakeGateway:
    """Records every send; succeed / fail_for control the outcome"""

    def __init__(self):
        self.succeed = True
        self.fail_for = set()
        self.raise_for = set()
        self.calls = []

    def _outcome(self, kind, appointment_id=None, *extra):
        self.calls.append((kind, appointment_id) + extra)
        if appointment_id in self.raise_for:
            raise RuntimeError('smtp exploded')
        if appointment_id in self.fail_for:
            return False
        return self.succeed

    def send_confirmation(self, appointment):
        return self._outcome('confirmation', appointment.id)

    def send_reminder(self, appointment):
        return self._outcome('reminder', appointment.id)

    def send_cancellation(self, appointment, reason):
        return self._outcome('cancellation', appointment.id, reason)

    def send_payment_request(self, appointment):
        return self._outcome('payment_request', appointment.id)

    def send_simple(self, to, subject, body):
        self.calls.append(('simple', to, subject, body))
        return self.succeed

    def sent(self, kind):
        return [c for c in self.calls if c[0] == kind]


class FakeClock:
    def __init__(self, today):
        self._today = today

    def today(self):
        return self._today

    def now(self):
        return datetime.combine(self._today, time(8, 0))


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def gateway(app):
    fake = FakeGateway()
    app.extensions['notification_gateway'] = fake
    return fake


@pytest.fixture
def client(app, gateway):
    return app.test_client()


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role=Role.STAFF, username=None, email=None, password='secret123', **kwargs):
        counter['n'] += 1
        username = username or f'{role.value.lower()}{counter["n"]}'
        user = User(
            username=username,
            email=email or f'{username}@clinic.test',
            full_name=kwargs.pop('full_name', username.title()),
            role=role,
            is_active=kwargs.pop('is_active', True),
            **kwargs,
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def doctor(make_user):
    return make_user(Role.DOCTOR, specialty=Department.NEUROLOGY)


@pytest.fixture
def staff(make_user):
    return make_user(Role.STAFF)


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN)


@pytest.fixture
def make_appointment(app):
    """Insert an appointment directly, bypassing the engine's side effects"""

    def _make(**overrides):
        values = dict(
            full_name='Nguyen Van A',
            phone='0901234567',
            email='patient@example.com',
            appointment_date=date.today() + timedelta(days=7),
            appointment_time=time(9, 0),
            department=Department.NEUROLOGY,
            status=AppointmentStatus.PENDING,
        )
        values.update(overrides)
        appointment = Appointment(**values)
        db.session.add(appointment)
        db.session.commit()
        return appointment

    return _make


@pytest.fixture
def booking_payload():
    def _payload(**overrides):
        data = {
            'fullName': 'Nguyen Van A',
            'phone': '0901234567',
            'email': 'patient@example.com',
            'appointmentDate': (date.today() + timedelta(days=7)).isoformat(),
            'appointmentTime': '09:00',
            'department': 'NEUROLOGY',
            'reason': 'Headaches',
        }
        data.update(overrides)
        return data

    return _payload


@pytest.fixture
def auth(app):
    """auth(user) -> Authorization header for a JWT issued to user"""

    def _headers(user):
        token = create_access_token(identity=str(user.id), additional_claims={"role": user.role.value})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def clock():
    """clock(day) -> a clock frozen on day"""
    return FakeClock
