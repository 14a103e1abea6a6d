from .auth import auth_bp
from .appointment import appointment_bp
from .health import health_bp

__all__ = ['auth_bp', 'appointment_bp', 'health_bp']
