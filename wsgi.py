"""
WSGI entry point for production deployment
Used by Gunicorn, uWSGI, and other WSGI servers:
    gunicorn wsgi:application
FLASK_ENV picks the config class (production validates SECRET_KEY on boot).
"""
from app import create_app

application = app = create_app()
