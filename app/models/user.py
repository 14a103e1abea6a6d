from app.extensions import db, bcrypt
from .base import TimestampMixin
from .enums import Role, Gender, Department
from flask_login import UserMixin


class User(db.Model, TimestampMixin, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False, index=True)
    email = db.Column(db.String(100), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Personal Information
    full_name = db.Column(db.String(100))
    birth_date = db.Column(db.Date)
    gender = db.Column(db.Enum(Gender, native_enum=False, length=10))
    phone = db.Column(db.String(20))

    role = db.Column(db.Enum(Role, native_enum=False, length=20), nullable=False, default=Role.PATIENT, index=True)
    # Only meaningful for doctors
    specialty = db.Column(db.Enum(Department, native_enum=False, length=40), nullable=True)

    # Status
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Last login tracking
    last_login = db.Column(db.DateTime, nullable=True)
    login_count = db.Column(db.Integer, default=0)

    def set_password(self, password):
        """Hash and set password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    def has_any_role(self, *roles):
        return self.role in roles

    def is_doctor(self):
        return self.role == Role.DOCTOR

    def is_admin(self):
        return self.role == Role.ADMIN

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'fullName': self.full_name,
            'birthDate': self.birth_date.isoformat() if self.birth_date else None,
            'gender': self.gender.value if self.gender else None,
            'phone': self.phone,
            'role': self.role.value,
            'specialty': self.specialty.value if self.specialty else None,
            'specialtyName': self.specialty.display_name if self.specialty else None,
            'active': self.is_active,
        }

    def __repr__(self):
        return f"<User {self.username} ({self.full_name}) - {self.role.value if self.role else None}>"
