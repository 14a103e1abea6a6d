"""
Patient account auto-provisioning.

When staff confirm a booking or a payment completes, the patient gets a
PATIENT account keyed by their booking email, stored lowercased. The unique
constraints on users.username / users.email decide races between concurrent
confirmations.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import User, Role
from app.utils.audit import log_audit

logger = logging.getLogger(__name__)

DEFAULT_PATIENT_PASSWORD = '123456'

MSG_CREATED = 'Patient account created. The patient can sign in with their email address.'
MSG_EXISTS = 'Patient account already exists'
MSG_NO_EMAIL = 'Appointment has no email; no patient account created'


@dataclass
class ProvisioningResult:
    created: bool
    username: Optional[str] = None
    temporary_password: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None

    def to_response(self) -> dict:
        """Fields merged into confirm / payment responses"""
        if self.error:
            return {'patientAccountCreated': False, 'patientAccountError': self.error}
        if not self.created:
            return {'patientAccountCreated': False, 'patientAccountMessage': self.message}
        return {
            'patientAccountCreated': True,
            'patientAccount': {
                'username': self.username,
                'temporaryPassword': self.temporary_password,
                'message': self.message,
            },
        }


def account_exists(email: str) -> bool:
    """Matches username or email regardless of case"""
    email = email.lower()
    return db.session.query(
        User.query.filter(or_(func.lower(User.username) == email, func.lower(User.email) == email)).exists()
    ).scalar()


def _queue_welcome_message(email: str, full_name: Optional[str]) -> None:
    from tasks.notification_tasks import send_simple_email

    clinic = current_app.config.get('CLINIC_NAME', 'Clinic')
    portal = current_app.config.get('FRONTEND_BASE_URL', '')
    body = (
        f"Hello {full_name or email},\n\n"
        f"A patient account has been created for you at {clinic}.\n"
        f"Username: {email}\n\n"
        f"Your temporary password is available from the clinic reception. "
        f"Please change it after your first sign-in{f' at {portal}' if portal else ''}.\n\n"
        f"Best regards,\n{clinic}"
    )
    try:
        send_simple_email.delay(email, f'Your patient account at {clinic}', body)
    except Exception as e:
        logger.warning("Could not enqueue welcome email for %s: %s", email, e)


def provision_patient_account(email: Optional[str], full_name: Optional[str] = None) -> ProvisioningResult:
    """
    Ensure a PATIENT account exists for email.

    Never raises: unexpected failures come back in result.error so the
    confirmation or payment that triggered provisioning still succeeds.
    """
    if email is None or not email.strip():
        return ProvisioningResult(created=False, message=MSG_NO_EMAIL)
    email = email.strip().lower()

    try:
        if account_exists(email):
            logger.info("Patient account for %s already exists", email)
            return ProvisioningResult(created=False, username=email, message=MSG_EXISTS)

        password = current_app.config.get('PATIENT_DEFAULT_PASSWORD', DEFAULT_PATIENT_PASSWORD)
        user = User(
            username=email,
            email=email,
            full_name=full_name,
            role=Role.PATIENT,
            is_active=True,
        )
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError:
            # Lost the race to a concurrent confirmation for the same email
            db.session.rollback()
            logger.info("Patient account for %s created concurrently", email)
            return ProvisioningResult(created=False, username=email, message=MSG_EXISTS)

        logger.info("Created patient account %s (id=%s)", email, user.id)
        log_audit('user', 'provision', entity_id=user.id, details={'username': email})
        _queue_welcome_message(email, full_name)
        return ProvisioningResult(
            created=True,
            username=email,
            temporary_password=password,
            message=MSG_CREATED,
        )
    except Exception as e:
        db.session.rollback()
        logger.error("Failed to provision patient account for %s: %s", email, e, exc_info=True)
        return ProvisioningResult(created=False, username=email, error=str(e))
