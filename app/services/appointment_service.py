"""
Appointment Lifecycle Engine

Every status change goes through here. Each operation loads the appointment
row-locked, re-checks its guard against the current state, commits, and only
then runs side effects (audit, notifications, account provisioning). A
side-effect failure never undoes or fails the transition.

    PENDING -> AWAITING_DOCTOR_APPROVAL -> CONFIRMED -> PAYMENT_REQUESTED
            -> PAID / NEEDS_PAYMENT -> COMPLETED
    CANCELLED and NO_SHOW are side exits; a doctor decline returns to PENDING.
"""
import logging
from datetime import date, datetime
from typing import Optional, Tuple

from app.extensions import db
from app.models import Appointment, AppointmentStatus, NotificationKind, Role, User
from app.services.appointment_store import store
from app.services.availability import slot_lock, is_available
from app.services.exceptions import (
    ValidationError,
    SlotUnavailableError,
    AuthorizationError,
)
from app.services.notification_service import notify
from app.services.provisioning import ProvisioningResult, provision_patient_account
from app.services.validators import (
    parse_date,
    parse_time,
    parse_department,
    parse_status,
    parse_amount,
    parse_email,
    require_text,
    optional_text,
)
from app.utils.audit import log_audit

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_RESPONSE = 'Accepted by doctor'
DEFAULT_DECLINE_REASON = 'Declined by doctor'
DEFAULT_CANCEL_REASON = 'Cancelled by staff'

# Statuses from which the generic update may move an appointment to COMPLETED
COMPLETABLE_STATUSES = frozenset({AppointmentStatus.PAID, AppointmentStatus.NEEDS_PAYMENT})


def _actor_id(actor: Optional[User]) -> Optional[int]:
    return actor.id if actor is not None else None


def _commit():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _audit(appointment: Appointment, action: str, actor: Optional[User] = None, **details):
    log_audit('appointment', action, user_id=_actor_id(actor), entity_id=appointment.id, details=details or None)


def _load_doctor(doctor_id) -> User:
    try:
        doctor_id = int(doctor_id)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid doctor ID: {doctor_id}')
    doctor = db.session.get(User, doctor_id)
    if doctor is None:
        raise ValidationError(f'Doctor not found with ID: {doctor_id}')
    if doctor.role != Role.DOCTOR:
        raise ValidationError(f'User with ID {doctor_id} is not a doctor')
    return doctor


def _bounded(text: Optional[str], default: str, max_length: int) -> str:
    value = text.strip() if isinstance(text, str) and text.strip() else default
    if len(value) > max_length:
        raise ValidationError(f'Text must be at most {max_length} characters')
    return value


# --- booking ---

def check_availability(date_value, time_value, department_value, today: Optional[date] = None) -> bool:
    """Public pre-flight check. Past dates are rejected outright."""
    appointment_date = parse_date(date_value, 'date')
    appointment_time = parse_time(time_value, 'time')
    department = parse_department(department_value)
    if appointment_date < (today or date.today()):
        raise ValidationError('Cannot book an appointment for a past date')
    return is_available(appointment_date, appointment_time, department)


def create_appointment(data: dict) -> Appointment:
    """
    Book a slot. The capacity check and the insert commit together under
    the slot lock, so a full slot can never gain a fourth booking.
    """
    full_name = require_text(data, 'fullName', 100)
    phone = require_text(data, 'phone', 20)
    email = parse_email(data.get('email'))
    if email and len(email) > 100:
        raise ValidationError('Field "email" must be at most 100 characters')
    appointment_date = parse_date(data.get('appointmentDate'), 'appointmentDate')
    appointment_time = parse_time(data.get('appointmentTime'), 'appointmentTime')
    department = parse_department(data.get('department'))
    reason = optional_text(data, 'reason', 1000)

    with slot_lock(appointment_date, appointment_time, department):
        if not is_available(appointment_date, appointment_time, department):
            db.session.rollback()
            raise SlotUnavailableError('Time slot is not available')

        appointment = Appointment(
            full_name=full_name,
            phone=phone,
            email=email,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            department=department,
            reason=reason,
            status=AppointmentStatus.PENDING,
        )
        if email:
            patient = User.query.filter(db.func.lower(User.email) == email.lower()).first()
            if patient is not None:
                appointment.user_id = patient.id
                logger.info("Linked appointment with existing user: %s", patient.username)
        store.add(appointment)
        _commit()

    logger.info("Appointment %s created for %s on %s %s (%s)",
                appointment.id, full_name, appointment_date, appointment_time, department.value)
    _audit(appointment, 'create', department=department.value)
    notify(appointment, NotificationKind.CONFIRMATION)
    return appointment


# --- doctor assignment handshake ---

def assign_doctor(appointment_id: int, doctor_id, actor: Optional[User] = None) -> Appointment:
    if doctor_id is None or doctor_id == '':
        raise ValidationError('Doctor ID is required')

    appointment = store.get_for_update(appointment_id)
    if appointment.status != AppointmentStatus.PENDING:
        raise ValidationError(
            f'Can only assign doctor to PENDING appointments. Current status: {appointment.status.value}'
        )
    doctor = _load_doctor(doctor_id)

    appointment.doctor_id = doctor.id
    appointment.status = AppointmentStatus.AWAITING_DOCTOR_APPROVAL
    appointment.doctor_notified_at = datetime.utcnow()
    _commit()

    logger.info("Doctor %s assigned to appointment %s", doctor.username, appointment.id)
    _audit(appointment, 'assign_doctor', actor, doctor_id=doctor.id)
    return appointment


def _check_assigned(appointment: Appointment, doctor: User, verb: str):
    # Identity before status
    if appointment.doctor_id is None or appointment.doctor_id != doctor.id:
        raise AuthorizationError('You are not assigned to this appointment')
    if appointment.status != AppointmentStatus.AWAITING_DOCTOR_APPROVAL:
        raise ValidationError(
            f'Can only {verb} appointments with AWAITING_DOCTOR_APPROVAL status. '
            f'Current status: {appointment.status.value}'
        )


def doctor_accept(appointment_id: int, doctor: User, response: Optional[str] = None) -> Appointment:
    appointment = store.get_for_update(appointment_id)
    _check_assigned(appointment, doctor, 'accept')
    text = _bounded(response, DEFAULT_ACCEPT_RESPONSE, 480)

    appointment.status = AppointmentStatus.CONFIRMED
    appointment.doctor_responded_at = datetime.utcnow()
    appointment.doctor_response = f'ACCEPTED: {text}'
    _commit()

    logger.info("Doctor %s accepted appointment %s", doctor.username, appointment.id)
    _audit(appointment, 'doctor_accept', doctor)
    return appointment


def doctor_decline(appointment_id: int, doctor: User, reason: Optional[str] = None) -> Appointment:
    """Hand the appointment back to staff: PENDING, no doctor."""
    appointment = store.get_for_update(appointment_id)
    _check_assigned(appointment, doctor, 'decline')
    text = _bounded(reason, DEFAULT_DECLINE_REASON, 480)

    appointment.status = AppointmentStatus.PENDING
    appointment.doctor_id = None
    appointment.doctor_notified_at = None
    appointment.doctor_responded_at = datetime.utcnow()
    appointment.doctor_response = f'DECLINED: {text}'
    _commit()

    logger.info("Doctor %s declined appointment %s", doctor.username, appointment.id)
    _audit(appointment, 'doctor_decline', doctor, reason=text)
    return appointment


def confirm_appointment(
    appointment_id: int,
    doctor_id=None,
    actor: Optional[User] = None,
    provision: bool = True,
) -> Tuple[Appointment, Optional[ProvisioningResult]]:
    """
    Older single-step confirmation used by staff screens that skip the
    doctor handshake. Sets CONFIRMED from any non-terminal status.
    """
    appointment = store.get_for_update(appointment_id)
    if appointment.status.is_terminal:
        raise ValidationError(f'Cannot confirm appointment with status: {appointment.status.value}')
    if doctor_id is not None and doctor_id != '':
        doctor = _load_doctor(doctor_id)
        appointment.doctor_id = doctor.id
    appointment.status = AppointmentStatus.CONFIRMED
    _commit()

    logger.info("Appointment %s confirmed", appointment.id)
    _audit(appointment, 'confirm', actor, doctor_id=appointment.doctor_id)

    provisioning = None
    if provision:
        provisioning = provision_patient_account(appointment.email, appointment.full_name)
    return appointment, provisioning


# --- payment ---

def request_payment(appointment_id: int, amount, actor: Optional[User] = None) -> Appointment:
    amount = parse_amount(amount)
    appointment = store.get_for_update(appointment_id)
    if appointment.status.is_terminal:
        raise ValidationError(
            f'Cannot request payment for appointments with status: {appointment.status.value}'
        )

    appointment.status = AppointmentStatus.PAYMENT_REQUESTED
    appointment.payment_requested = True
    appointment.payment_amount = amount
    appointment.payment_requested_at = datetime.utcnow()
    _commit()

    logger.info("Payment of %s requested for appointment %s", amount, appointment.id)
    _audit(appointment, 'request_payment', actor, amount=str(amount))
    notify(appointment, NotificationKind.PAYMENT_REQUEST)
    return appointment


def complete_payment(appointment_id: int, actor: Optional[User] = None) -> Tuple[Appointment, ProvisioningResult]:
    """
    Record a successful payment. If the doctor already finished the
    examination (notes written, or NEEDS_PAYMENT) the visit is COMPLETED,
    otherwise it is PAID and waits for the doctor.
    """
    appointment = store.get_for_update(appointment_id)
    if appointment.status.is_terminal:
        raise ValidationError(
            f'Cannot complete payment for appointments with status: {appointment.status.value}. '
            'Payment updates are not allowed for completed, cancelled, or no-show appointments.'
        )

    if appointment.has_doctor_notes() or appointment.status == AppointmentStatus.NEEDS_PAYMENT:
        appointment.status = AppointmentStatus.COMPLETED
    else:
        appointment.status = AppointmentStatus.PAID
    appointment.payment_completed = True
    appointment.payment_completed_at = datetime.utcnow()
    _commit()

    logger.info("Payment completed for appointment %s -> %s", appointment.id, appointment.status.value)
    _audit(appointment, 'complete_payment', actor, status=appointment.status.value)
    provisioning = provision_patient_account(appointment.email, appointment.full_name)
    return appointment, provisioning


# --- generic edit, cancel, no-show, delete ---

def update_appointment(appointment_id: int, data: dict, actor: Optional[User] = None) -> Appointment:
    """
    Partial update: only fields present with a non-null value are applied.

    The status field is an operator override. The one rule it keeps is that
    COMPLETED is reachable only from PAID or NEEDS_PAYMENT. Moving to another
    slot, or bringing a CANCELLED appointment back, re-checks capacity.
    """
    appointment = store.get_for_update(appointment_id)
    old_status = appointment.status
    changes = {}

    if data.get('fullName') is not None:
        appointment.full_name = require_text(data, 'fullName', 100)
        changes['fullName'] = appointment.full_name
    if data.get('phone') is not None:
        appointment.phone = require_text(data, 'phone', 20)
        changes['phone'] = appointment.phone
    if data.get('email') is not None:
        appointment.email = parse_email(data.get('email'))
        changes['email'] = appointment.email
    if data.get('reason') is not None:
        appointment.reason = optional_text(data, 'reason', 1000)
        changes['reason'] = appointment.reason
    if data.get('notes') is not None:
        appointment.notes = optional_text(data, 'notes', 500)
        changes['notes'] = appointment.notes
    if data.get('doctorId') is not None:
        appointment.doctor_id = _load_doctor(data.get('doctorId')).id
        changes['doctorId'] = appointment.doctor_id

    if data.get('status') is not None:
        new_status = parse_status(data.get('status'))
        if (
            new_status == AppointmentStatus.COMPLETED
            and appointment.status != AppointmentStatus.COMPLETED
            and appointment.status not in COMPLETABLE_STATUSES
        ):
            raise ValidationError(
                'Cannot mark appointment as COMPLETED. '
                f'Current status is {appointment.status.value}; payment must be completed first '
                '(status PAID or NEEDS_PAYMENT).'
            )
        changes['status'] = new_status.value
        appointment.status = new_status

    old_slot = appointment.slot
    if data.get('appointmentDate') is not None:
        appointment.appointment_date = parse_date(data.get('appointmentDate'), 'appointmentDate')
    if data.get('appointmentTime') is not None:
        appointment.appointment_time = parse_time(data.get('appointmentTime'), 'appointmentTime')
    if data.get('department') is not None:
        appointment.department = parse_department(data.get('department'))
    new_slot = appointment.slot
    revived = old_status == AppointmentStatus.CANCELLED and appointment.status != AppointmentStatus.CANCELLED

    if (new_slot != old_slot or revived) and appointment.status != AppointmentStatus.CANCELLED:
        if new_slot != old_slot:
            changes['slot'] = f'{new_slot[0]} {new_slot[1]} {new_slot[2].value}'
        with slot_lock(*new_slot):
            if not is_available(*new_slot, exclude_id=appointment.id):
                db.session.rollback()
                raise SlotUnavailableError('Time slot is not available')
            _commit()
    else:
        _commit()

    logger.info("Appointment %s updated: %s", appointment.id, ', '.join(changes) or 'no changes')
    _audit(appointment, 'update', actor, **changes)
    return appointment


def cancel_appointment(appointment_id: int, reason: Optional[str] = None, actor: Optional[User] = None) -> Appointment:
    appointment = store.get_for_update(appointment_id)
    reason = _bounded(reason, DEFAULT_CANCEL_REASON, 500)

    appointment.status = AppointmentStatus.CANCELLED
    _commit()

    logger.info("Appointment %s cancelled: %s", appointment.id, reason)
    _audit(appointment, 'cancel', actor, reason=reason)
    notify(appointment, NotificationKind.CANCELLATION, reason=reason)
    return appointment


def mark_no_show(appointment_id: int, actor: Optional[User] = None) -> Appointment:
    appointment = store.get_for_update(appointment_id)
    if appointment.status.is_terminal:
        raise ValidationError(
            f'Cannot mark appointment as NO_SHOW. Current status: {appointment.status.value}'
        )
    appointment.status = AppointmentStatus.NO_SHOW
    _commit()

    logger.info("Appointment %s marked as no-show", appointment.id)
    _audit(appointment, 'no_show', actor)
    return appointment


def delete_appointment(appointment_id: int, actor: Optional[User] = None) -> None:
    appointment = store.get_or_404(appointment_id)
    store.delete(appointment)
    _commit()
    logger.info("Appointment %s deleted", appointment_id)
    log_audit('appointment', 'delete', user_id=_actor_id(actor), entity_id=appointment_id)


# --- ad-hoc messages ---

def _send_simple(to: str, subject: str, body: str) -> bool:
    from app.services.email_service import get_notification_gateway

    try:
        return bool(get_notification_gateway().send_simple(to, subject, body))
    except Exception as e:
        logger.error("Failed to send '%s' to %s: %s", subject, to, e, exc_info=True)
        return False


def _details_block(appointment: Appointment) -> str:
    return (
        f"Appointment #: {appointment.id}\n"
        f"Date: {appointment.appointment_date.isoformat()}\n"
        f"Time: {appointment.appointment_time.strftime('%H:%M')}\n"
        f"Department: {appointment.department.display_name}\n"
    )


def send_payment_confirmation(appointment_id: int, patient_email: Optional[str] = None) -> bool:
    """Payment receipt for a PAID appointment. Returns the gateway outcome."""
    appointment = store.get_or_404(appointment_id)
    if appointment.status != AppointmentStatus.PAID:
        raise ValidationError('Can only send payment confirmation for PAID appointments')

    recipient = parse_email(patient_email) or parse_email(appointment.email)
    if not recipient:
        raise ValidationError('No email address available for this appointment')

    amount = appointment.payment_amount if appointment.payment_amount is not None else '-'
    body = (
        f"Hello {appointment.full_name},\n\n"
        f"We have received your payment of {amount}.\n\n"
        f"{_details_block(appointment)}\n"
        "Your doctor will complete the examination at your appointment.\n"
    )
    sent = _send_simple(recipient, 'Payment received - appointment confirmation', body)
    logger.info("Payment confirmation for appointment %s to %s: sent=%s", appointment.id, recipient, sent)
    return sent


def send_update_notification(appointment_id: int, data: dict) -> bool:
    """Tell the patient what staff changed on their booking."""
    appointment = store.get_or_404(appointment_id)
    recipient = parse_email(data.get('patientEmail')) or parse_email(appointment.email)
    if not recipient:
        raise ValidationError('No email address available for this appointment')

    changes = data.get('changes') or []
    if not isinstance(changes, list):
        raise ValidationError('Field "changes" must be a list')
    body = (
        f"Hello {data.get('patientName') or appointment.full_name},\n\n"
        f"Your appointment (#{appointment.id}) has been updated.\n\n"
    )
    if changes:
        body += "Changes:\n" + ''.join(f"- {change}\n" for change in changes) + "\n"
    body += f"Current details:\n{_details_block(appointment)}"
    return _send_simple(recipient, 'Your appointment has been updated', body)
