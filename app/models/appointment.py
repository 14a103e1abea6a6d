from app.extensions import db
from .base import TimestampMixin
from .enums import AppointmentStatus, Department


class Appointment(db.Model, TimestampMixin):
    __tablename__ = 'appointments'
    __table_args__ = (
        # Slot lookups: exact (date, time, department) match
        db.Index('ix_appointments_slot', 'appointment_date', 'appointment_time', 'department'),
    )

    id = db.Column(db.Integer, primary_key=True)

    # --- Patient-supplied booking details ---
    full_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    email = db.Column(db.String(100), nullable=True)
    appointment_date = db.Column(db.Date, nullable=False, index=True)
    appointment_time = db.Column(db.Time, nullable=False)
    department = db.Column(db.Enum(Department, native_enum=False, length=40), nullable=False, index=True)
    reason = db.Column(db.String(1000))

    status = db.Column(
        db.Enum(AppointmentStatus, native_enum=False, length=30),
        nullable=False,
        default=AppointmentStatus.PENDING,
        index=True,
    )

    # Registered patient account, matched by email when the booking is made
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    # Assigned doctor (role DOCTOR)
    doctor_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)

    notes = db.Column(db.String(500))  # doctor's notes

    # Doctor assignment handshake
    doctor_notified_at = db.Column(db.DateTime, nullable=True)
    doctor_responded_at = db.Column(db.DateTime, nullable=True)
    doctor_response = db.Column(db.String(500))

    # Payment
    payment_requested = db.Column(db.Boolean, default=False, nullable=False)
    payment_amount = db.Column(db.Numeric(12, 2), nullable=True)
    payment_requested_at = db.Column(db.DateTime, nullable=True)
    payment_completed = db.Column(db.Boolean, default=False, nullable=False)
    payment_completed_at = db.Column(db.DateTime, nullable=True)

    # Mirrors of the CONFIRMATION / REMINDER deliveries reaching SENT
    email_sent = db.Column(db.Boolean, default=False, nullable=False, index=True)
    reminder_sent = db.Column(db.Boolean, default=False, nullable=False)

    # Relationships
    user = db.relationship('User', foreign_keys=[user_id], lazy='select')
    doctor = db.relationship('User', foreign_keys=[doctor_id], lazy='select')
    deliveries = db.relationship(
        'NotificationDelivery',
        backref='appointment',
        lazy='dynamic',
        cascade='all, delete-orphan',
        passive_deletes=True,
    )

    @property
    def slot(self):
        return self.appointment_date, self.appointment_time, self.department

    def has_doctor_notes(self):
        return bool(self.notes and self.notes.strip())

    def __repr__(self):
        return f"<Appointment {self.id} {self.full_name} - {self.department} on {self.appointment_date} {self.appointment_time} [{self.status}]>"
