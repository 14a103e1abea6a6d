"""
Celery tasks for appointment notifications and the scheduled sweeps
"""
import logging
from datetime import timedelta

from celery.schedules import crontab

from app.extensions import celery, db
from app.services.appointment_store import store
from app.services.email_service import get_notification_gateway
from app.services.notification_service import deliver
from app.services.sweeper import ReminderSweep, ConfirmationSweep

logger = logging.getLogger(__name__)


@celery.task(bind=True, name='tasks.deliver_notification')
def deliver_notification(self, delivery_id):
    """
    Send one outbox row (async via Celery)

    Args:
        delivery_id: NotificationDelivery ID

    Returns:
        dict: Delivery result
    """
    try:
        outcome = deliver(delivery_id, get_notification_gateway())
        return {
            'success': bool(outcome),
            'delivery_id': delivery_id,
            'skipped': outcome is None,
        }
    except Exception as e:
        db.session.rollback()
        logger.error(f"Error delivering notification {delivery_id}: {e}", exc_info=True)
        return {'success': False, 'delivery_id': delivery_id, 'error': str(e)}


@celery.task(name='tasks.send_simple_email')
def send_simple_email(to, subject, body):
    try:
        sent = get_notification_gateway().send_simple(to, subject, body)
        return {'success': bool(sent), 'to': to}
    except Exception as e:
        logger.error(f"Error sending '{subject}' to {to}: {e}", exc_info=True)
        return {'success': False, 'to': to, 'error': str(e)}


@celery.task(name='tasks.run_reminder_sweep')
def run_reminder_sweep():
    """Daily: remind patients of tomorrow's confirmed appointments"""
    result = ReminderSweep(store, get_notification_gateway()).run()
    return result.to_dict()


@celery.task(name='tasks.run_confirmation_sweep')
def run_confirmation_sweep():
    """Periodic: retry booking confirmations that never went out"""
    result = ConfirmationSweep(store, get_notification_gateway()).run()
    return result.to_dict()


def beat_schedule(config):
    """Celery beat entries for the sweeps, driven by the Flask config"""
    return {
        'appointment-reminder-sweep': {
            'task': 'tasks.run_reminder_sweep',
            'schedule': crontab(hour=config.get('REMINDER_SWEEP_HOUR', 8), minute=0),
        },
        'appointment-confirmation-sweep': {
            'task': 'tasks.run_confirmation_sweep',
            'schedule': timedelta(minutes=config.get('CONFIRMATION_SWEEP_MINUTES', 30)),
        },
    }
