from datetime import date, timedelta

import pytest

from app.models import AppointmentStatus, Role, User


# --- public booking ---

def test_public_booking_returns_201(client, booking_payload):
    resp = client.post('/api/appointments/public', json=booking_payload())

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['success'] is True
    assert body['data']['status'] == 'PENDING'
    assert body['data']['appointmentTime'] == '09:00'
    assert body['data']['departmentName'] == 'Neurology'
    assert body['appointmentId'] == body['data']['id']


def test_public_booking_without_body(client):
    resp = client.post('/api/appointments/public', data='nope', content_type='text/plain')

    assert resp.status_code == 400
    assert resp.get_json()['success'] is False


def test_public_booking_validation_error(client, booking_payload):
    resp = client.post('/api/appointments/public', json=booking_payload(appointmentDate='12/31/2030'))

    assert resp.status_code == 400
    assert 'YYYY-MM-DD' in resp.get_json()['error']


def test_public_booking_full_slot(client, booking_payload):
    for i in range(3):
        assert client.post('/api/appointments/public', json=booking_payload(email=f'p{i}@example.com')).status_code == 201

    resp = client.post('/api/appointments/public', json=booking_payload())

    assert resp.status_code == 400
    assert resp.get_json() == {'success': False, 'error': 'Time slot is not available'}


def test_availability_endpoint(client, make_appointment):
    day = date.today() + timedelta(days=5)
    for _ in range(3):
        make_appointment(appointment_date=day)
    query = {'date': day.isoformat(), 'time': '09:00', 'department': 'NEUROLOGY'}

    full = client.get('/api/appointments/public/availability', query_string=query)
    query['time'] = '10:00'
    free = client.get('/api/appointments/public/availability', query_string=query)

    assert full.get_json()['data']['available'] is False
    assert free.get_json()['data']['available'] is True


def test_availability_endpoint_rejects_past_date(client):
    resp = client.get('/api/appointments/public/availability',
                      query_string={'date': '2001-01-01', 'time': '09:00', 'department': 'ENT'})

    assert resp.status_code == 400


def test_departments_are_listed(client):
    data = client.get('/api/appointments/public/departments').get_json()['data']

    assert {'code': 'ENT', 'name': 'Ear, Nose and Throat', 'specialtyName': 'Ear, Nose and Throat'} in data


def test_complete_payment_returns_login_credentials(app, client, auth, staff, make_appointment):
    appointment = make_appointment(status=AppointmentStatus.PAYMENT_REQUESTED, email='vy@example.com')

    body = client.post(f'/api/appointments/{appointment.id}/complete-payment', headers=auth(staff)).get_json()

    assert body['success'] is True
    assert body['data']['status'] == 'PAID'
    assert body['accountCreated'] is True
    assert body['loginCredentials']['username'] == 'vy@example.com'
    assert body['loginCredentials']['password'] == app.config['PATIENT_DEFAULT_PASSWORD']


def test_complete_payment_for_existing_account(client, auth, staff, make_appointment, make_user):
    make_user(Role.PATIENT, username='vy@example.com', email='vy@example.com')
    appointment = make_appointment(status=AppointmentStatus.PAYMENT_REQUESTED, email='vy@example.com')

    body = client.post(f'/api/appointments/{appointment.id}/complete-payment', headers=auth(staff)).get_json()

    assert body['accountCreated'] is False
    assert 'loginCredentials' not in body
    assert body['accountMessage']


def test_complete_payment_on_cancelled_appointment(client, auth, staff, make_appointment):
    appointment = make_appointment(status=AppointmentStatus.CANCELLED)

    resp = client.post(f'/api/appointments/{appointment.id}/complete-payment', headers=auth(staff))

    assert resp.status_code == 400


def test_complete_payment_requires_front_desk_login(client, auth, doctor, make_appointment):
    appointment = make_appointment(status=AppointmentStatus.PAYMENT_REQUESTED, email='vy@example.com')

    anonymous = client.post(f'/api/appointments/{appointment.id}/complete-payment')
    as_doctor = client.post(f'/api/appointments/{appointment.id}/complete-payment', headers=auth(doctor))

    assert anonymous.status_code == 401
    assert as_doctor.status_code == 403
    assert appointment.status == AppointmentStatus.PAYMENT_REQUESTED
    assert User.query.filter_by(email='vy@example.com').count() == 0
    assert client.post(f'/api/appointments/public/{appointment.id}/complete-payment').status_code == 404


# --- authentication and roles ---

def test_staff_endpoints_require_a_token(client):
    assert client.get('/api/appointments').status_code == 401


@pytest.mark.parametrize('path', ['/api/appointments', '/api/appointments/today', '/api/appointments/stats'])
def test_patients_cannot_use_staff_views(client, auth, make_user, path):
    patient = make_user(Role.PATIENT)

    resp = client.get(path, headers=auth(patient))

    assert resp.status_code == 403


def test_deactivated_user_is_rejected(client, auth, make_user):
    user = make_user(Role.STAFF, is_active=False)

    assert client.get('/api/appointments', headers=auth(user)).status_code == 401


def test_only_admin_deletes(client, auth, staff, admin, make_appointment):
    appointment = make_appointment()

    denied = client.delete(f'/api/appointments/{appointment.id}', headers=auth(staff))
    allowed = client.delete(f'/api/appointments/{appointment.id}', headers=auth(admin))

    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert client.get(f'/api/appointments/{appointment.id}', headers=auth(admin)).status_code == 404


def test_doctor_cannot_assign(client, auth, doctor, make_appointment):
    appointment = make_appointment()

    resp = client.put(f'/api/appointments/{appointment.id}/assign-doctor',
                      json={'doctorId': doctor.id}, headers=auth(doctor))

    assert resp.status_code == 403


def test_unknown_appointment_is_404(client, auth, staff):
    resp = client.get('/api/appointments/999', headers=auth(staff))

    assert resp.status_code == 404
    assert resp.get_json()['success'] is False


# --- staff workflow over HTTP ---

def test_assign_accept_request_and_pay(client, auth, staff, doctor, make_appointment, gateway):
    appointment = make_appointment(email='kim@example.com')
    base = f'/api/appointments/{appointment.id}'

    resp = client.put(f'{base}/assign-doctor', json={'doctorId': doctor.id}, headers=auth(staff))
    assert resp.get_json()['data']['status'] == 'AWAITING_DOCTOR_APPROVAL'

    pending = client.get('/api/appointments/pending-my-approval', headers=auth(doctor)).get_json()
    assert [a['id'] for a in pending['data']] == [appointment.id]

    resp = client.put(f'{base}/doctor-accept', json={'response': 'OK'}, headers=auth(doctor))
    assert resp.get_json()['data']['doctorResponse'] == 'ACCEPTED: OK'

    resp = client.put(f'{base}/request-payment', json={'amount': 300000}, headers=auth(staff))
    assert resp.get_json()['data']['paymentAmount'] == 300000.0
    assert gateway.sent('payment_request')

    resp = client.post(f'{base}/handle-payment', json={'status': 'SUCCESS'}, headers=auth(staff))
    body = resp.get_json()
    assert body['data']['status'] == 'PAID'
    assert body['patientAccountCreated'] is True
    assert body['patientAccount']['username'] == 'kim@example.com'


def test_stranger_doctor_gets_403(client, auth, doctor, make_user, make_appointment):
    stranger = make_user(Role.DOCTOR)
    appointment = make_appointment(status=AppointmentStatus.AWAITING_DOCTOR_APPROVAL, doctor_id=doctor.id)

    resp = client.put(f'/api/appointments/{appointment.id}/doctor-decline', json={}, headers=auth(stranger))

    assert resp.status_code == 403
    assert resp.get_json()['error'] == 'You are not assigned to this appointment'


def test_handle_payment_requires_status(client, auth, staff, make_appointment):
    appointment = make_appointment(status=AppointmentStatus.PAYMENT_REQUESTED)

    resp = client.post(f'/api/appointments/{appointment.id}/handle-payment', json={}, headers=auth(staff))

    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Payment status is required'


def test_handle_payment_rejects_failed_status(client, auth, staff, make_appointment):
    appointment = make_appointment(status=AppointmentStatus.PAYMENT_REQUESTED)

    resp = client.post(f'/api/appointments/{appointment.id}/handle-payment',
                       json={'status': 'failed'}, headers=auth(staff))

    assert resp.status_code == 400
    assert appointment.payment_completed is False


def test_confirm_response_includes_account(client, auth, staff, make_appointment):
    appointment = make_appointment(email='tuan@example.com')

    body = client.put(f'/api/appointments/{appointment.id}/confirm', json={}, headers=auth(staff)).get_json()

    assert body['data']['status'] == 'CONFIRMED'
    assert body['patientAccountCreated'] is True
    assert body['patientAccount']['temporaryPassword']


def test_confirm_with_doctor_requires_doctor(client, auth, staff, make_appointment):
    appointment = make_appointment()

    resp = client.put(f'/api/appointments/{appointment.id}/confirm-with-doctor', json={}, headers=auth(staff))

    assert resp.status_code == 400


def test_update_to_completed_before_payment_is_rejected(client, auth, staff, make_appointment):
    appointment = make_appointment(status=AppointmentStatus.CONFIRMED)

    resp = client.put(f'/api/appointments/{appointment.id}', json={'status': 'COMPLETED'}, headers=auth(staff))

    assert resp.status_code == 400
    assert client.get(f'/api/appointments/{appointment.id}', headers=auth(staff)).get_json()['data']['status'] == 'CONFIRMED'


def test_cancel_and_notifications_listing(client, auth, staff, make_appointment, gateway):
    appointment = make_appointment()

    client.put(f'/api/appointments/{appointment.id}/cancel', json={'reason': 'Clinic closed'}, headers=auth(staff))
    rows = client.get(f'/api/appointments/{appointment.id}/notifications', headers=auth(staff)).get_json()['data']

    assert [(r['kind'], r['status']) for r in rows] == [('CANCELLATION', 'SENT')]
    assert gateway.sent('cancellation')[0][2] == 'Clinic closed'


def test_search_and_list_counts(client, auth, staff, make_appointment):
    make_appointment(full_name='Hoang Long')
    make_appointment(full_name='Other Person', email='other@example.com')

    body = client.get('/api/appointments/search', query_string={'q': 'long'}, headers=auth(staff)).get_json()

    assert body['count'] == 1
    assert body['data'][0]['fullName'] == 'Hoang Long'


def test_list_rejects_unknown_status_filter(client, auth, staff):
    resp = client.get('/api/appointments', query_string={'status': 'LOST'}, headers=auth(staff))

    assert resp.status_code == 400


def test_list_rejects_non_numeric_doctor_filter(client, auth, staff, make_appointment):
    make_appointment()

    resp = client.get('/api/appointments', query_string={'doctor_id': 'abc'}, headers=auth(staff))

    assert resp.status_code == 400
    assert resp.get_json() == {'success': False, 'error': 'Invalid doctor_id: abc'}


def test_list_filters_by_doctor(client, auth, staff, doctor, make_appointment):
    mine = make_appointment(doctor_id=doctor.id)
    make_appointment(email='other@example.com')

    body = client.get('/api/appointments', query_string={'doctor_id': str(doctor.id)}, headers=auth(staff)).get_json()

    assert [row['id'] for row in body['data']] == [mine.id]


# --- patient self-service ---

def test_patient_sees_own_appointments(client, auth, make_user, make_appointment):
    patient = make_user(Role.PATIENT, username='dao@example.com', email='dao@example.com')
    mine = make_appointment(email='dao@example.com')
    make_appointment(email='someone@example.com')

    body = client.get('/api/appointments/my-appointments', headers=auth(patient)).get_json()

    assert [a['id'] for a in body['data']] == [mine.id]


# --- auth endpoints ---

def test_login_with_email_and_me(client, make_user):
    make_user(Role.PATIENT, username='lien@example.com', email='lien@example.com', password='123456')

    resp = client.post('/api/auth/login', json={'username': 'lien@example.com', 'password': '123456'})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['data']['role'] == 'PATIENT'
    me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['access_token']}"}).get_json()
    assert me['data']['loginCount'] == 1


def test_login_email_ignores_case(client, make_user):
    make_user(Role.PATIENT, username='lien@example.com', email='lien@example.com', password='123456')

    resp = client.post('/api/auth/login', json={'username': 'Lien@Example.com', 'password': '123456'})

    assert resp.status_code == 200


def test_login_with_wrong_password(client, staff):
    resp = client.post('/api/auth/login', json={'username': staff.username, 'password': 'wrong'})

    assert resp.status_code == 401


def test_login_of_deactivated_account(client, make_user):
    user = make_user(Role.STAFF, is_active=False)

    resp = client.post('/api/auth/login', json={'username': user.username, 'password': 'secret123'})

    assert resp.status_code == 403


def test_refresh_issues_a_new_access_token(client, staff):
    tokens = client.post('/api/auth/login', json={'username': staff.username, 'password': 'secret123'}).get_json()

    resp = client.post('/api/auth/refresh', headers={'Authorization': f"Bearer {tokens['refresh_token']}"})

    assert resp.status_code == 200
    assert resp.get_json()['access_token']


def test_provisioned_patient_can_sign_in(app, client, auth, staff, make_appointment):
    appointment = make_appointment(email='new@example.com')
    client.put(f'/api/appointments/{appointment.id}/confirm', json={}, headers=auth(staff))

    resp = client.post('/api/auth/login', json={
        'username': 'new@example.com',
        'password': app.config['PATIENT_DEFAULT_PASSWORD'],
    })

    assert resp.status_code == 200
    assert User.query.filter_by(email='new@example.com').one().login_count == 1


def test_health_ready(client):
    assert client.get('/health/ready').get_json()['status'] == 'ready'


def test_health_ready_reports_failed_notifications(client, booking_payload, gateway):
    gateway.succeed = False
    client.post('/api/appointments/public', json=booking_payload())

    body = client.get('/health/ready').get_json()

    assert body['notificationBacklog'] == {'FAILED': 1}


def test_history_lists_audited_changes(client, auth, staff, doctor, make_appointment):
    appointment = make_appointment()
    client.put(f'/api/appointments/{appointment.id}/assign-doctor', json={'doctorId': doctor.id}, headers=auth(staff))
    client.put(f'/api/appointments/{appointment.id}/cancel', json={}, headers=auth(staff))

    rows = client.get(f'/api/appointments/{appointment.id}/history', headers=auth(staff)).get_json()['data']

    assert [r['action'] for r in rows] == ['assign_doctor', 'cancel']
    assert rows[0]['actor'] == staff.username
    assert rows[0]['details'] == {'doctor_id': doctor.id}
    assert rows[1]['details'] == {'reason': 'Cancelled by staff'}
