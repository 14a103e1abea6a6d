"""
Notification outbox.

State changes commit first. Afterwards the engine records what the patient
is owed as a NotificationDelivery row and hands its id to Celery. Sending
is claim-then-send: a conditional UPDATE moves the row to SENDING, so two
workers (or two overlapping sweeps) never send the same row twice.
Nothing in here raises into the request that triggered it.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import or_, and_
from sqlalchemy.exc import IntegrityError

from app.extensions import db
from app.models import Appointment, NotificationDelivery, NotificationKind, DeliveryStatus

logger = logging.getLogger(__name__)

# Kinds an appointment receives at most once
SINGLE_DELIVERY_KINDS = frozenset({NotificationKind.CONFIRMATION, NotificationKind.REMINDER})


def _dedupe_key(appointment_id: int, kind: NotificationKind) -> Optional[str]:
    if kind in SINGLE_DELIVERY_KINDS:
        return f'{kind.value.lower()}:{appointment_id}'
    return None


def has_recipient(appointment: Appointment) -> bool:
    return bool(appointment.email and appointment.email.strip())


def queue_delivery(appointment: Appointment, kind: NotificationKind, context: Optional[dict] = None) -> Optional[NotificationDelivery]:
    """
    Record an owed notification and commit it.
    CONFIRMATION and REMINDER rows are reused, so calling this again for
    the same appointment returns the existing row.
    Returns None when the appointment has no email.
    """
    if not has_recipient(appointment):
        return None

    key = _dedupe_key(appointment.id, kind)
    if key is not None:
        existing = NotificationDelivery.query.filter_by(dedupe_key=key).first()
        if existing is not None:
            return existing

    delivery = NotificationDelivery(
        appointment_id=appointment.id,
        kind=kind,
        recipient=appointment.email.strip(),
        dedupe_key=key,
        status=DeliveryStatus.PENDING,
        attempts=0,
        context=json.dumps(context, default=str) if context else None,
    )
    db.session.add(delivery)
    try:
        db.session.commit()
    except IntegrityError:
        # Another worker queued the same single delivery first
        db.session.rollback()
        return NotificationDelivery.query.filter_by(dedupe_key=key).first()
    return delivery


def schedule_delivery(delivery: NotificationDelivery) -> None:
    """Hand a committed delivery to the Celery worker"""
    from tasks.notification_tasks import deliver_notification

    try:
        deliver_notification.delay(delivery.id)
    except Exception as e:
        # Broker down: the row stays PENDING/FAILED and a sweep retries it
        logger.error("Could not enqueue delivery %s (%s): %s", delivery.id, delivery.kind.value, e)


def notify(appointment: Appointment, kind: NotificationKind, **context) -> Optional[NotificationDelivery]:
    """Queue and schedule a notification. Failures are logged, never raised."""
    try:
        delivery = queue_delivery(appointment, kind, context or None)
    except Exception as e:
        db.session.rollback()
        logger.error("Could not queue %s notification for appointment %s: %s", kind.value, appointment.id, e, exc_info=True)
        return None
    if delivery is None:
        logger.info("Appointment %s has no email; %s notification skipped", appointment.id, kind.value)
        return None
    if delivery.status != DeliveryStatus.SENT:
        schedule_delivery(delivery)
    return delivery


def claim_delivery(delivery_id: int, now: Optional[datetime] = None) -> bool:
    """
    Move a delivery to SENDING if nobody else holds it. Rows stuck in
    SENDING longer than NOTIFICATION_CLAIM_TIMEOUT are considered abandoned.
    """
    now = now or datetime.utcnow()
    timeout = current_app.config.get('NOTIFICATION_CLAIM_TIMEOUT', 600)
    stale_before = now - timedelta(seconds=timeout)

    claimed = (
        NotificationDelivery.query.filter(
            NotificationDelivery.id == delivery_id,
            or_(
                NotificationDelivery.status.in_([DeliveryStatus.PENDING, DeliveryStatus.FAILED]),
                and_(
                    NotificationDelivery.status == DeliveryStatus.SENDING,
                    NotificationDelivery.claimed_at < stale_before,
                ),
            ),
        )
        .update(
            {
                NotificationDelivery.status: DeliveryStatus.SENDING,
                NotificationDelivery.claimed_at: now,
                NotificationDelivery.attempts: NotificationDelivery.attempts + 1,
            },
            synchronize_session=False,
        )
    )
    db.session.commit()
    return claimed == 1


def _send(gateway, delivery: NotificationDelivery, appointment: Appointment) -> bool:
    kind = delivery.kind
    if kind == NotificationKind.CONFIRMATION:
        return gateway.send_confirmation(appointment)
    if kind == NotificationKind.REMINDER:
        return gateway.send_reminder(appointment)
    if kind == NotificationKind.CANCELLATION:
        reason = delivery.get_context().get('reason') or 'Cancelled by staff'
        return gateway.send_cancellation(appointment, reason)
    if kind == NotificationKind.PAYMENT_REQUEST:
        return gateway.send_payment_request(appointment)
    raise ValueError(f'Unknown notification kind: {kind}')


def deliver(delivery_id: int, gateway, now: Optional[datetime] = None) -> Optional[bool]:
    """
    Claim, send and record the outcome of one delivery.
    Returns True when the gateway confirmed the send, False when it failed,
    and None when the delivery was already sent or is held by another worker.
    """
    now = now or datetime.utcnow()
    if not claim_delivery(delivery_id, now):
        logger.info("Delivery %s already sent or in flight; skipping", delivery_id)
        return None

    delivery = db.session.get(NotificationDelivery, delivery_id)
    appointment = delivery.appointment

    error = None
    try:
        sent = bool(_send(gateway, delivery, appointment))
    except Exception as e:
        sent = False
        error = str(e)[:500]
        logger.error("Gateway error for delivery %s (%s): %s", delivery.id, delivery.kind.value, e, exc_info=True)

    if sent:
        delivery.status = DeliveryStatus.SENT
        delivery.sent_at = now
        delivery.last_error = None
        if delivery.kind == NotificationKind.CONFIRMATION:
            appointment.email_sent = True
        elif delivery.kind == NotificationKind.REMINDER:
            appointment.reminder_sent = True
        logger.info("%s sent for appointment %s", delivery.kind.value, appointment.id)
    else:
        delivery.status = DeliveryStatus.FAILED
        delivery.last_error = error or 'Gateway reported failure'
        logger.warning("%s failed for appointment %s (attempt %s)", delivery.kind.value, appointment.id, delivery.attempts)

    db.session.commit()
    return sent
