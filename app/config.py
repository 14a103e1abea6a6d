import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or SECRET_KEY
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv('JWT_ACCESS_TOKEN_HOURS', '1')))

    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///clinic.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Booking rules
    SLOT_CAPACITY = int(os.getenv('SLOT_CAPACITY', '3'))  # non-cancelled bookings per date/time/department
    PATIENT_DEFAULT_PASSWORD = os.getenv('PATIENT_DEFAULT_PASSWORD', '123456')

    # Celery Configuration
    CELERY_BROKER_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_RESULT_BACKEND = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    CELERY_ACCEPT_CONTENT = ['json']
    CELERY_TASK_SERIALIZER = 'json'
    CELERY_RESULT_SERIALIZER = 'json'
    CELERY_TIMEZONE = os.getenv('CELERY_TIMEZONE', 'UTC')
    CELERY_ENABLE_UTC = True
    CELERY_TASK_ALWAYS_EAGER = False

    # Sweeper schedule
    REMINDER_SWEEP_HOUR = int(os.getenv('REMINDER_SWEEP_HOUR', '8'))
    CONFIRMATION_SWEEP_MINUTES = int(os.getenv('CONFIRMATION_SWEEP_MINUTES', '30'))
    # A delivery stuck in SENDING longer than this may be claimed again
    NOTIFICATION_CLAIM_TIMEOUT = int(os.getenv('NOTIFICATION_CLAIM_TIMEOUT', '600'))  # seconds

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')

    # Email Configuration
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', '587'))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USE_SSL = os.getenv('MAIL_USE_SSL', 'false').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.getenv('MAIL_DEFAULT_SENDER', 'noreply@clinic.com')
    MAIL_TIMEOUT = int(os.getenv('MAIL_TIMEOUT', '15'))  # seconds per SMTP operation

    # Clinic details used in outgoing messages
    CLINIC_NAME = os.getenv('CLINIC_NAME', 'Clinic')
    CLINIC_CONTACT_PHONE = os.getenv('CLINIC_CONTACT_PHONE', '1900 1234')
    CLINIC_CONTACT_EMAIL = os.getenv('CLINIC_CONTACT_EMAIL', 'contact@clinic.com')
    FRONTEND_BASE_URL = os.getenv('FRONTEND_BASE_URL', 'http://localhost:5173')

    # Comma-separated origins allowed to call the API, or *
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Security
    SESSION_COOKIE_SECURE = False  # Set to True when using HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Database connection pool for production
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 3600,
        'pool_size': 20,
        'max_overflow': 40,
        'connect_args': {
            'connect_timeout': 10,
            'options': '-c statement_timeout=30000'
        }
    }

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'WARNING')

    @classmethod
    def validate(cls):
        """Refuse to boot with the development secret"""
        secret = os.getenv('SECRET_KEY')
        if not secret or secret == 'dev-secret-key-change-in-production':
            raise ValueError("SECRET_KEY environment variable must be set in production and must not be the default value")


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ENGINE_OPTIONS = {}
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    BCRYPT_LOG_ROUNDS = 4


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on FLASK_ENV"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
