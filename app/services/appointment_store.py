"""
Appointment Store
Query surface used by the lifecycle engine, the sweeper and the routes.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional, Dict

from sqlalchemy import or_, func
from sqlalchemy.orm import joinedload

from app.extensions import db
from app.models import Appointment, AppointmentStatus, Department, User
from app.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class AppointmentStore:
    """Reads and writes appointments through the Flask-SQLAlchemy session."""

    def _ordered(self, query):
        return query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.asc(), Appointment.id.asc())

    def _with_people(self, query):
        return query.options(joinedload(Appointment.user), joinedload(Appointment.doctor))

    # --- single records ---

    def get(self, appointment_id: int) -> Optional[Appointment]:
        return db.session.get(Appointment, appointment_id)

    def get_or_404(self, appointment_id: int) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment is None:
            raise NotFoundError(f'Appointment not found with ID: {appointment_id}')
        return appointment

    def get_for_update(self, appointment_id: int) -> Appointment:
        """Row-locked read (SELECT ... FOR UPDATE where the database supports it)"""
        appointment = (
            Appointment.query.filter(Appointment.id == appointment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if appointment is None:
            raise NotFoundError(f'Appointment not found with ID: {appointment_id}')
        return appointment

    def add(self, appointment: Appointment) -> Appointment:
        db.session.add(appointment)
        db.session.flush()
        return appointment

    def delete(self, appointment: Appointment) -> None:
        db.session.delete(appointment)

    # --- lists ---

    def all(self, with_people: bool = False) -> List[Appointment]:
        query = Appointment.query
        if with_people:
            query = self._with_people(query)
        return self._ordered(query).all()

    def by_status(self, status: AppointmentStatus, with_people: bool = False) -> List[Appointment]:
        query = Appointment.query.filter(Appointment.status == status)
        if with_people:
            query = self._with_people(query)
        return self._ordered(query).all()

    def by_date(self, appointment_date: date) -> List[Appointment]:
        return (
            Appointment.query.filter(Appointment.appointment_date == appointment_date)
            .order_by(Appointment.appointment_time.asc(), Appointment.id.asc())
            .all()
        )

    def by_department(self, department: Department) -> List[Appointment]:
        return self._ordered(Appointment.query.filter(Appointment.department == department)).all()

    def by_email(self, email_fragment: str) -> List[Appointment]:
        """Case-insensitive substring match on the booking email"""
        return self._ordered(
            Appointment.query.filter(Appointment.email.ilike(f'%{email_fragment}%'))
        ).all()

    def by_user(self, user: User) -> List[Appointment]:
        return self._ordered(Appointment.query.filter(Appointment.user_id == user.id)).all()

    def for_patient(self, user: User) -> List[Appointment]:
        """Bookings linked to the account or made with its email"""
        return self._ordered(
            Appointment.query.filter(
                or_(
                    Appointment.user_id == user.id,
                    func.lower(Appointment.email) == user.email.lower(),
                )
            )
        ).all()

    def medical_history(self, user: User) -> List[Appointment]:
        return self._ordered(
            Appointment.query.filter(
                Appointment.status == AppointmentStatus.COMPLETED,
                or_(
                    Appointment.user_id == user.id,
                    func.lower(Appointment.email) == user.email.lower(),
                ),
            )
        ).all()

    def by_doctor(self, doctor_id: int) -> List[Appointment]:
        return self._ordered(Appointment.query.filter(Appointment.doctor_id == doctor_id)).all()

    def by_doctor_and_status(self, doctor_id: int, status: AppointmentStatus) -> List[Appointment]:
        return self._ordered(
            Appointment.query.filter(
                Appointment.doctor_id == doctor_id,
                Appointment.status == status,
            )
        ).all()

    def by_date_range(self, start_date: date, end_date: date) -> List[Appointment]:
        """Inclusive on both ends"""
        return (
            Appointment.query.filter(Appointment.appointment_date.between(start_date, end_date))
            .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
            .all()
        )

    def todays(self, today: date) -> List[Appointment]:
        return (
            Appointment.query.filter(
                Appointment.appointment_date == today,
                Appointment.status.in_([AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING]),
            )
            .order_by(Appointment.appointment_time.asc())
            .all()
        )

    def upcoming(self, today: date, days: int = 7) -> List[Appointment]:
        return (
            Appointment.query.filter(
                Appointment.appointment_date.between(today, today + timedelta(days=days)),
                Appointment.status.in_([AppointmentStatus.CONFIRMED, AppointmentStatus.PENDING]),
            )
            .order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc())
            .all()
        )

    def search(self, term: Optional[str]) -> List[Appointment]:
        """
        Case-insensitive substring match on name, email or phone.
        One row per appointment even when several fields match.
        """
        if term is None or not term.strip():
            return self.all()
        pattern = f'%{term.strip()}%'
        return self._ordered(
            Appointment.query.filter(
                or_(
                    Appointment.full_name.ilike(pattern),
                    Appointment.email.ilike(pattern),
                    Appointment.phone.ilike(pattern),
                )
            )
        ).all()

    def filter(
        self,
        status: Optional[AppointmentStatus] = None,
        appointment_date: Optional[date] = None,
        department: Optional[Department] = None,
        doctor_id: Optional[int] = None,
        email: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[Appointment]:
        """Combined filters for the staff list view; every argument is optional"""
        query = self._with_people(Appointment.query)
        if status is not None:
            query = query.filter(Appointment.status == status)
        if appointment_date is not None:
            query = query.filter(Appointment.appointment_date == appointment_date)
        if department is not None:
            query = query.filter(Appointment.department == department)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if email:
            query = query.filter(Appointment.email.ilike(f'%{email}%'))
        if start_date is not None:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date is not None:
            query = query.filter(Appointment.appointment_date <= end_date)
        return self._ordered(query).all()

    # --- sweeper selections ---

    def reminder_candidates(self, reminder_date: date) -> List[Appointment]:
        """CONFIRMED appointments on reminder_date still owed a reminder"""
        return (
            Appointment.query.filter(
                Appointment.appointment_date == reminder_date,
                Appointment.status == AppointmentStatus.CONFIRMED,
                Appointment.reminder_sent.is_(False),
                Appointment.email.isnot(None),
                Appointment.email != '',
            )
            .order_by(Appointment.appointment_time.asc(), Appointment.id.asc())
            .all()
        )

    def confirmation_candidates(self) -> List[Appointment]:
        """Appointments of any status whose confirmation was never delivered"""
        return (
            Appointment.query.filter(
                Appointment.email_sent.is_(False),
                Appointment.email.isnot(None),
                Appointment.email != '',
            )
            .order_by(Appointment.id.asc())
            .all()
        )

    # --- counts ---

    def count(self) -> int:
        return Appointment.query.count()

    def count_by_status(self, status: AppointmentStatus) -> int:
        return Appointment.query.filter(Appointment.status == status).count()

    def count_for_date(self, appointment_date: date) -> int:
        return Appointment.query.filter(Appointment.appointment_date == appointment_date).count()

    def stats(self, today: date) -> Dict[str, int]:
        by_status = {status.value: self.count_by_status(status) for status in AppointmentStatus}
        return {
            'totalAppointments': self.count(),
            'pendingAppointments': by_status[AppointmentStatus.PENDING.value],
            'confirmedAppointments': by_status[AppointmentStatus.CONFIRMED.value],
            'todaysAppointments': self.count_for_date(today),
            'byStatus': by_status,
        }


store = AppointmentStore()
