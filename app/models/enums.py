"""
Closed enumerations shared by appointments and user accounts
"""
import enum


class Role(str, enum.Enum):
    ADMIN = 'ADMIN'
    DOCTOR = 'DOCTOR'
    STAFF = 'STAFF'
    PATIENT = 'PATIENT'


class Gender(str, enum.Enum):
    MALE = 'MALE'
    FEMALE = 'FEMALE'
    OTHER = 'OTHER'


class AppointmentStatus(str, enum.Enum):
    PENDING = 'PENDING'
    AWAITING_DOCTOR_APPROVAL = 'AWAITING_DOCTOR_APPROVAL'
    CONFIRMED = 'CONFIRMED'
    PAYMENT_REQUESTED = 'PAYMENT_REQUESTED'
    PAID = 'PAID'
    NEEDS_PAYMENT = 'NEEDS_PAYMENT'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    NO_SHOW = 'NO_SHOW'

    @property
    def is_terminal(self):
        return self in TERMINAL_STATUSES

    @classmethod
    def parse(cls, value):
        """Return the member for a status code (case-insensitive) or None"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        return cls.__members__.get(value.strip().upper())


TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})


class Department(str, enum.Enum):
    """
    Medical specialty. Used as the booking department and as a doctor's
    specialty, so a booking maps onto doctors of the same member.
    """
    CARDIOLOGY = 'CARDIOLOGY'
    NEUROLOGY = 'NEUROLOGY'
    DERMATOLOGY = 'DERMATOLOGY'
    ORTHOPEDICS = 'ORTHOPEDICS'
    PEDIATRICS = 'PEDIATRICS'
    GYNECOLOGY = 'GYNECOLOGY'
    INTERNAL_MEDICINE = 'INTERNAL_MEDICINE'
    SURGERY = 'SURGERY'
    ONCOLOGY = 'ONCOLOGY'
    PSYCHIATRY = 'PSYCHIATRY'
    OPHTHALMOLOGY = 'OPHTHALMOLOGY'
    ENT = 'ENT'
    UROLOGY = 'UROLOGY'
    GASTROENTEROLOGY = 'GASTROENTEROLOGY'
    PULMONOLOGY = 'PULMONOLOGY'
    ENDOCRINOLOGY = 'ENDOCRINOLOGY'
    NEPHROLOGY = 'NEPHROLOGY'
    RHEUMATOLOGY = 'RHEUMATOLOGY'
    RADIOLOGY = 'RADIOLOGY'
    ANESTHESIOLOGY = 'ANESTHESIOLOGY'
    EMERGENCY_MEDICINE = 'EMERGENCY_MEDICINE'
    GENERAL_PRACTICE = 'GENERAL_PRACTICE'

    @property
    def display_name(self):
        return DEPARTMENT_NAMES[self]

    @classmethod
    def parse(cls, value):
        """
        Resolve a department from its code or, for older clients that still
        send free text, from its display name. Returns None when unknown.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            return None
        text = value.strip()
        member = cls.__members__.get(text.upper())
        if member is not None:
            return member
        for dept, name in DEPARTMENT_NAMES.items():
            if name.lower() == text.lower():
                return dept
        return None


DEPARTMENT_NAMES = {
    Department.CARDIOLOGY: 'Cardiology',
    Department.NEUROLOGY: 'Neurology',
    Department.DERMATOLOGY: 'Dermatology',
    Department.ORTHOPEDICS: 'Orthopedics',
    Department.PEDIATRICS: 'Pediatrics',
    Department.GYNECOLOGY: 'Gynecology',
    Department.INTERNAL_MEDICINE: 'Internal Medicine',
    Department.SURGERY: 'Surgery',
    Department.ONCOLOGY: 'Oncology',
    Department.PSYCHIATRY: 'Psychiatry',
    Department.OPHTHALMOLOGY: 'Ophthalmology',
    Department.ENT: 'Ear, Nose and Throat',
    Department.UROLOGY: 'Urology',
    Department.GASTROENTEROLOGY: 'Gastroenterology',
    Department.PULMONOLOGY: 'Pulmonology',
    Department.ENDOCRINOLOGY: 'Endocrinology',
    Department.NEPHROLOGY: 'Nephrology',
    Department.RHEUMATOLOGY: 'Rheumatology',
    Department.RADIOLOGY: 'Radiology',
    Department.ANESTHESIOLOGY: 'Anesthesiology',
    Department.EMERGENCY_MEDICINE: 'Emergency Medicine',
    Department.GENERAL_PRACTICE: 'General Practice',
}


class NotificationKind(str, enum.Enum):
    CONFIRMATION = 'CONFIRMATION'
    REMINDER = 'REMINDER'
    CANCELLATION = 'CANCELLATION'
    PAYMENT_REQUEST = 'PAYMENT_REQUEST'


class DeliveryStatus(str, enum.Enum):
    PENDING = 'PENDING'
    SENDING = 'SENDING'
    SENT = 'SENT'
    FAILED = 'FAILED'
