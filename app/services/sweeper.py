"""
Scheduled notification sweeps.

Celery beat runs these periodically (see tasks/notification_tasks.py). Each
sweep selects due appointments from the store, makes sure an outbox row
exists for each and delivers it through the claim-then-send path, so two
overlapping runs never send the same message twice. One appointment failing
does not stop the rest of the batch.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta

from app.extensions import db
from app.models import NotificationKind, DeliveryStatus
from app.services.notification_service import queue_delivery, deliver

logger = logging.getLogger(__name__)


class SystemClock:
    def today(self) -> date:
        return date.today()

    def now(self) -> datetime:
        return datetime.utcnow()


@dataclass
class SweepResult:
    selected: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def to_dict(self):
        return asdict(self)


class NotificationSweep:
    kind = None

    def __init__(self, store, gateway, clock=None):
        self.store = store
        self.gateway = gateway
        self.clock = clock or SystemClock()

    def select(self):
        raise NotImplementedError

    def run(self) -> SweepResult:
        result = SweepResult()
        candidates = self.select()
        result.selected = len(candidates)

        for appointment in candidates:
            appointment_id = appointment.id
            try:
                delivery = queue_delivery(appointment, self.kind)
                if delivery is None or delivery.status == DeliveryStatus.SENT:
                    result.skipped += 1
                    continue
                outcome = deliver(delivery.id, self.gateway, now=self.clock.now())
                if outcome is None:
                    result.skipped += 1
                elif outcome:
                    result.sent += 1
                else:
                    result.failed += 1
            except Exception as e:
                db.session.rollback()
                result.failed += 1
                logger.error("%s sweep failed for appointment %s: %s", self.kind.value, appointment_id, e, exc_info=True)

        logger.info(
            "%s sweep: %d selected, %d sent, %d failed, %d skipped",
            self.kind.value, result.selected, result.sent, result.failed, result.skipped,
        )
        return result


class ReminderSweep(NotificationSweep):
    """CONFIRMED appointments tomorrow that have not had their reminder"""
    kind = NotificationKind.REMINDER

    def select(self):
        return self.store.reminder_candidates(self.clock.today() + timedelta(days=1))


class ConfirmationSweep(NotificationSweep):
    """Any appointment whose booking confirmation never went out"""
    kind = NotificationKind.CONFIRMATION

    def select(self):
        return self.store.confirmation_candidates()
