"""
Input parsing for appointment requests.
Every helper raises ValidationError with a message fit for the API response.
"""
import re
from datetime import datetime, date, time
from decimal import Decimal, InvalidOperation
from typing import Optional

from app.models import Department, AppointmentStatus
from app.services.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def parse_date(value, field='date') -> date:
    """Parse YYYY-MM-DD"""
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        raise ValidationError(f'Field "{field}" is required')
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'Invalid {field} format. Use YYYY-MM-DD')


def parse_time(value, field='time') -> time:
    """Parse HH:MM or HH:MM:SS"""
    if isinstance(value, time):
        return value
    if not value or not str(value).strip():
        raise ValidationError(f'Field "{field}" is required')
    text = str(value).strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f'Invalid {field} format. Use HH:MM (e.g., 10:30)')


def parse_department(value) -> Department:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError('Field "department" is required')
    department = Department.parse(value)
    if department is None:
        raise ValidationError(f'Invalid department: {value}')
    return department


def parse_status(value) -> AppointmentStatus:
    status = AppointmentStatus.parse(value)
    if status is None:
        raise ValidationError(f'Invalid status: {value}')
    return status


def parse_id(value, field='id') -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f'Invalid {field}: {value}')


def parse_amount(value) -> Decimal:
    """Payment amounts must be strictly positive"""
    if value is None or value == '':
        raise ValidationError('Payment amount is required')
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f'Invalid payment amount: {value}')
    if not amount.is_finite() or amount <= 0:
        raise ValidationError('Payment amount must be greater than 0')
    return amount


def parse_email(value) -> Optional[str]:
    """Optional email; blank becomes None"""
    if value is None or not str(value).strip():
        return None
    email = str(value).strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(f'Invalid email address: {email}')
    return email


def require_text(data: dict, field: str, max_length: int) -> str:
    value = (data.get(field) or '')
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'Field "{field}" is required')
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f'Field "{field}" must be at most {max_length} characters')
    return value


def optional_text(data: dict, field: str, max_length: int) -> Optional[str]:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f'Field "{field}" must be a string')
    if len(value) > max_length:
        raise ValidationError(f'Field "{field}" must be at most {max_length} characters')
    return value
