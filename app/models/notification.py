"""
Notification outbox: one row per message the clinic owes a patient.
The sweeper and the Celery dispatch task both work from these rows.
"""
import json

from app.extensions import db
from .base import TimestampMixin
from .enums import NotificationKind, DeliveryStatus


class NotificationDelivery(db.Model, TimestampMixin):
    __tablename__ = 'notification_deliveries'
    __table_args__ = (
        db.Index('ix_notification_deliveries_status_kind', 'status', 'kind'),
    )

    id = db.Column(db.Integer, primary_key=True)
    appointment_id = db.Column(
        db.Integer,
        db.ForeignKey('appointments.id', ondelete='CASCADE'),
        nullable=False,
        index=True,
    )
    kind = db.Column(db.Enum(NotificationKind, native_enum=False, length=20), nullable=False)
    recipient = db.Column(db.String(100), nullable=False)
    # "<kind>:<appointment_id>" for kinds sent at most once per appointment, NULL otherwise
    dedupe_key = db.Column(db.String(64), unique=True, nullable=True)
    status = db.Column(
        db.Enum(DeliveryStatus, native_enum=False, length=10),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    attempts = db.Column(db.Integer, default=0, nullable=False)
    last_error = db.Column(db.String(500))
    context = db.Column(db.Text)  # JSON, e.g. {"reason": "..."} for cancellations

    claimed_at = db.Column(db.DateTime, nullable=True)
    sent_at = db.Column(db.DateTime, nullable=True)

    def get_context(self):
        return json.loads(self.context) if self.context else {}

    def to_dict(self):
        return {
            'id': self.id,
            'appointmentId': self.appointment_id,
            'kind': self.kind.value,
            'recipient': self.recipient,
            'status': self.status.value,
            'attempts': self.attempts,
            'lastError': self.last_error,
            'sentAt': self.sent_at.isoformat() if self.sent_at else None,
        }

    def __repr__(self):
        return f"<NotificationDelivery {self.id} {self.kind} -> {self.recipient} [{self.status}]>"
