from datetime import date

from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required

from app.models import Role, Department, AppointmentStatus, NotificationDelivery
from app.services import appointment_service as engine
from app.services.appointment_store import store
from app.services.validators import parse_date, parse_department, parse_id, parse_status
from app.utils.audit import audit_history
from app.utils.decorators import require_role, get_current_user

appointment_bp = Blueprint('appointment', __name__, url_prefix='/api/appointments')

STAFF = (Role.ADMIN, Role.DOCTOR, Role.STAFF)
FRONT_DESK = (Role.ADMIN, Role.STAFF)


def _iso(value):
    return value.isoformat() if value else None


def _appointment_to_dict(apt):
    doctor = apt.doctor
    return {
        'id': apt.id,
        'fullName': apt.full_name,
        'phone': apt.phone,
        'email': apt.email,
        'appointmentDate': apt.appointment_date.isoformat(),
        'appointmentTime': apt.appointment_time.strftime('%H:%M'),
        'department': apt.department.value,
        'departmentName': apt.department.display_name,
        'reason': apt.reason,
        'status': apt.status.value,
        'notes': apt.notes,
        'userId': apt.user_id,
        'doctorId': apt.doctor_id,
        'doctor': {
            'id': doctor.id,
            'fullName': doctor.full_name,
            'specialty': doctor.specialty.value if doctor.specialty else None,
        } if doctor else None,
        'doctorNotifiedAt': _iso(apt.doctor_notified_at),
        'doctorRespondedAt': _iso(apt.doctor_responded_at),
        'doctorResponse': apt.doctor_response,
        'paymentRequested': apt.payment_requested,
        'paymentAmount': float(apt.payment_amount) if apt.payment_amount is not None else None,
        'paymentRequestedAt': _iso(apt.payment_requested_at),
        'paymentCompleted': apt.payment_completed,
        'paymentCompletedAt': _iso(apt.payment_completed_at),
        'emailSent': apt.email_sent,
        'reminderSent': apt.reminder_sent,
        'createdAt': _iso(apt.created_at),
        'updatedAt': _iso(apt.updated_at),
    }


def _list_response(appointments):
    return jsonify({
        'success': True,
        'data': [_appointment_to_dict(a) for a in appointments],
        'count': len(appointments)
    }), 200


def _body():
    return request.get_json(silent=True) or {}


# ---------------------------------------------------------------------------
# Public booking
# ---------------------------------------------------------------------------

@appointment_bp.route('/public', methods=['POST'])
def create_public_appointment():
    """
    Book an appointment (no authentication).
    Body: fullName, phone, email?, appointmentDate (YYYY-MM-DD),
          appointmentTime (HH:MM), department, reason?
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({
            'success': False,
            'error': 'Request body must be JSON'
        }), 400

    appointment = engine.create_appointment(data)
    return jsonify({
        'success': True,
        'message': f'Appointment booked successfully! Booking number: #{appointment.id}',
        'appointmentId': appointment.id,
        'data': _appointment_to_dict(appointment)
    }), 201


@appointment_bp.route('/public/availability', methods=['GET'])
def check_availability():
    """Query params: date (YYYY-MM-DD), time (HH:MM), department"""
    available = engine.check_availability(
        request.args.get('date'),
        request.args.get('time'),
        request.args.get('department'),
    )
    return jsonify({
        'success': True,
        'data': {'available': available},
        'message': 'This time slot is available' if available
        else 'This time slot is full. Please choose another time.'
    }), 200


@appointment_bp.route('/public/departments', methods=['GET'])
def list_departments():
    return jsonify({
        'success': True,
        'data': [
            {'code': d.value, 'name': d.display_name, 'specialtyName': d.display_name}
            for d in Department
        ]
    }), 200


# ---------------------------------------------------------------------------
# Staff views
# ---------------------------------------------------------------------------

@appointment_bp.route('', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def list_appointments():
    """
    List appointments, newest date first.
    Query params (all optional): status, date, department, doctor_id, email,
    start_date, end_date
    """
    args = request.args
    appointments = store.filter(
        status=parse_status(args['status']) if args.get('status') else None,
        appointment_date=parse_date(args['date'], 'date') if args.get('date') else None,
        department=parse_department(args['department']) if args.get('department') else None,
        doctor_id=parse_id(args['doctor_id'], 'doctor_id') if args.get('doctor_id') else None,
        email=args.get('email') or None,
        start_date=parse_date(args['start_date'], 'start_date') if args.get('start_date') else None,
        end_date=parse_date(args['end_date'], 'end_date') if args.get('end_date') else None,
    )
    return _list_response(appointments)


@appointment_bp.route('/<int:appointment_id>', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def get_appointment(appointment_id):
    appointment = store.get_or_404(appointment_id)
    return jsonify({
        'success': True,
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/notifications', methods=['GET'])
@jwt_required()
@require_role(*FRONT_DESK)
def list_appointment_notifications(appointment_id):
    """Outbox rows for one appointment, oldest first"""
    appointment = store.get_or_404(appointment_id)
    deliveries = appointment.deliveries.order_by(NotificationDelivery.id).all()
    return jsonify({
        'success': True,
        'data': [d.to_dict() for d in deliveries]
    }), 200


@appointment_bp.route('/<int:appointment_id>/history', methods=['GET'])
@jwt_required()
@require_role(*FRONT_DESK)
def appointment_history(appointment_id):
    """Audit trail: who changed what, oldest first"""
    appointment = store.get_or_404(appointment_id)
    return jsonify({
        'success': True,
        'data': [entry.to_dict() for entry in audit_history('appointment', appointment.id)]
    }), 200


@appointment_bp.route('/status/<status>', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def list_by_status(status):
    return _list_response(store.by_status(parse_status(status), with_people=True))


@appointment_bp.route('/today', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def list_today():
    return _list_response(store.todays(date.today()))


@appointment_bp.route('/upcoming', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def list_upcoming():
    """Next 7 days, PENDING and CONFIRMED"""
    return _list_response(store.upcoming(date.today()))


@appointment_bp.route('/search', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def search_appointments():
    """?q= matches name, email or phone; empty returns everything"""
    return _list_response(store.search(request.args.get('q')))


@appointment_bp.route('/stats', methods=['GET'])
@jwt_required()
@require_role(*STAFF)
def appointment_stats():
    return jsonify({
        'success': True,
        'data': store.stats(date.today())
    }), 200


# ---------------------------------------------------------------------------
# Staff transitions
# ---------------------------------------------------------------------------

@appointment_bp.route('/<int:appointment_id>', methods=['PUT'])
@jwt_required()
@require_role(*STAFF)
def update_appointment(appointment_id):
    """Partial update; only non-null fields in the body are applied"""
    appointment = engine.update_appointment(appointment_id, _body(), actor=get_current_user())
    return jsonify({
        'success': True,
        'message': 'Appointment updated',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/confirm', methods=['PUT'])
@jwt_required()
@require_role(*STAFF)
def confirm_appointment(appointment_id):
    """Confirm and open a patient account for the booking email. Body: doctorId?"""
    appointment, account = engine.confirm_appointment(
        appointment_id,
        doctor_id=_body().get('doctorId'),
        actor=get_current_user(),
    )
    response = {
        'success': True,
        'message': 'Appointment confirmed',
        'data': _appointment_to_dict(appointment),
    }
    response.update(account.to_response())
    return jsonify(response), 200


@appointment_bp.route('/<int:appointment_id>/complete-payment', methods=['POST'])
@jwt_required()
@require_role(*FRONT_DESK)
def complete_payment(appointment_id):
    """
    Record a payment confirmed by the provider and hand the patient their
    sign-in details at the desk.
    """
    appointment, account = engine.complete_payment(appointment_id, actor=get_current_user())

    response = {
        'success': True,
        'message': 'Payment successful!',
        'appointmentId': appointment.id,
        'data': _appointment_to_dict(appointment),
    }
    if account.error:
        response.update(accountCreated=False, accountError=account.error)
    elif account.created:
        response.update(
            accountCreated=True,
            loginCredentials={
                'username': account.username,
                'password': account.temporary_password,
                'message': 'Your account has been created. You can now sign in to follow your appointments.',
            },
        )
    elif account.username:
        response.update(accountCreated=False, accountMessage='An account with this email already exists. You can sign in now.')
    return jsonify(response), 200


@appointment_bp.route('/<int:appointment_id>/confirm-with-doctor', methods=['PUT'])
@jwt_required()
@require_role(*STAFF)
def confirm_with_doctor(appointment_id):
    doctor_id = _body().get('doctorId')
    if doctor_id is None:
        return jsonify({
            'success': False,
            'error': 'Doctor ID is required'
        }), 400

    appointment, _ = engine.confirm_appointment(
        appointment_id,
        doctor_id=doctor_id,
        actor=get_current_user(),
        provision=False,
    )
    return jsonify({
        'success': True,
        'message': 'Appointment confirmed and doctor assigned',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/cancel', methods=['PUT'])
@jwt_required()
@require_role(*STAFF)
def cancel_appointment(appointment_id):
    """Body: reason? (defaults to "Cancelled by staff")"""
    appointment = engine.cancel_appointment(
        appointment_id,
        reason=_body().get('reason'),
        actor=get_current_user(),
    )
    return jsonify({
        'success': True,
        'message': 'Appointment cancelled',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/no-show', methods=['PUT'])
@jwt_required()
@require_role(*STAFF)
def mark_no_show(appointment_id):
    appointment = engine.mark_no_show(appointment_id, actor=get_current_user())
    return jsonify({
        'success': True,
        'message': 'Appointment marked as no-show',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>', methods=['DELETE'])
@jwt_required()
@require_role(Role.ADMIN)
def delete_appointment(appointment_id):
    engine.delete_appointment(appointment_id, actor=get_current_user())
    return jsonify({
        'success': True,
        'message': 'Appointment deleted successfully'
    }), 200


@appointment_bp.route('/<int:appointment_id>/assign-doctor', methods=['PUT'])
@jwt_required()
@require_role(*FRONT_DESK)
def assign_doctor(appointment_id):
    """Step 2 of the workflow: PENDING -> AWAITING_DOCTOR_APPROVAL. Body: doctorId"""
    appointment = engine.assign_doctor(appointment_id, _body().get('doctorId'), actor=get_current_user())
    return jsonify({
        'success': True,
        'message': 'Doctor assigned. Waiting for the doctor to respond.',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/request-payment', methods=['PUT'])
@jwt_required()
@require_role(*FRONT_DESK)
def request_payment(appointment_id):
    """Body: amount (> 0)"""
    appointment = engine.request_payment(appointment_id, _body().get('amount'), actor=get_current_user())
    return jsonify({
        'success': True,
        'message': 'Payment request sent',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/handle-payment', methods=['POST'])
@jwt_required()
@require_role(*STAFF)
def handle_payment(appointment_id):
    """
    Record a payment taken at the desk.
    Body: status (the payment provider's status; failures are rejected)
    """
    payment_status = _body().get('status')
    if not payment_status or not str(payment_status).strip():
        return jsonify({
            'success': False,
            'error': 'Payment status is required'
        }), 400
    if str(payment_status).strip().upper() in ('FAILED', 'CANCELLED', 'DECLINED', 'ERROR'):
        return jsonify({
            'success': False,
            'error': f'Payment was not successful: {payment_status}'
        }), 400

    appointment, account = engine.complete_payment(appointment_id, actor=get_current_user())
    if appointment.status == AppointmentStatus.COMPLETED:
        message = 'Payment successful! The appointment is completed.'
    else:
        message = 'Payment successful! Waiting for the doctor to complete the examination.'

    response = {
        'success': True,
        'message': message,
        'data': _appointment_to_dict(appointment),
    }
    response.update(account.to_response())
    return jsonify(response), 200


@appointment_bp.route('/<int:appointment_id>/send-payment-confirmation', methods=['POST'])
@jwt_required()
@require_role(*FRONT_DESK)
def send_payment_confirmation(appointment_id):
    """Body: patientEmail? (defaults to the booking email)"""
    sent = engine.send_payment_confirmation(appointment_id, _body().get('patientEmail'))
    return jsonify({
        'success': sent,
        'message': 'Payment confirmation email sent successfully' if sent
        else 'Failed to send payment confirmation email'
    }), 200


@appointment_bp.route('/<int:appointment_id>/send-update-notification', methods=['POST'])
@jwt_required()
@require_role(*FRONT_DESK)
def send_update_notification(appointment_id):
    """Body: patientEmail?, patientName?, changes (list of strings)"""
    sent = engine.send_update_notification(appointment_id, _body())
    return jsonify({
        'success': sent,
        'message': 'Email notification sent successfully' if sent
        else 'Failed to send email notification'
    }), 200


# ---------------------------------------------------------------------------
# Doctor views
# ---------------------------------------------------------------------------

@appointment_bp.route('/<int:appointment_id>/doctor-accept', methods=['PUT'])
@jwt_required()
@require_role(Role.DOCTOR)
def doctor_accept(appointment_id):
    """Body: response?"""
    appointment = engine.doctor_accept(appointment_id, get_current_user(), _body().get('response'))
    return jsonify({
        'success': True,
        'message': 'Appointment accepted',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/<int:appointment_id>/doctor-decline', methods=['PUT'])
@jwt_required()
@require_role(Role.DOCTOR)
def doctor_decline(appointment_id):
    """Body: reason?"""
    appointment = engine.doctor_decline(appointment_id, get_current_user(), _body().get('reason'))
    return jsonify({
        'success': True,
        'message': 'Appointment declined. It is back with staff for reassignment.',
        'data': _appointment_to_dict(appointment)
    }), 200


@appointment_bp.route('/pending-my-approval', methods=['GET'])
@jwt_required()
@require_role(Role.DOCTOR)
def pending_my_approval():
    doctor = get_current_user()
    return _list_response(store.by_doctor_and_status(doctor.id, AppointmentStatus.AWAITING_DOCTOR_APPROVAL))


@appointment_bp.route('/my-patients', methods=['GET'])
@jwt_required()
@require_role(Role.DOCTOR)
def my_patients():
    return _list_response(store.by_doctor(get_current_user().id))


# ---------------------------------------------------------------------------
# Patient self-service
# ---------------------------------------------------------------------------

@appointment_bp.route('/my-appointments', methods=['GET'])
@jwt_required()
@require_role(Role.PATIENT)
def my_appointments():
    return _list_response(store.for_patient(get_current_user()))


@appointment_bp.route('/my-medical-history', methods=['GET'])
@jwt_required()
@require_role(Role.PATIENT)
def my_medical_history():
    """Completed visits, newest first"""
    return _list_response(store.medical_history(get_current_user()))
