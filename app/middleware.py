"""
Middleware for request logging and security headers
"""
from flask import request
import logging
import time

logger = logging.getLogger(__name__)


def setup_middleware(app):
    """Setup production middleware"""

    @app.before_request
    def before_request():
        request.environ['clinic.started_at'] = time.perf_counter()

    @app.after_request
    def after_request(response):
        """Log the request and add security headers"""
        started = request.environ.get('clinic.started_at')
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        logger.info(f"{request.method} {request.path} {response.status_code} "
                    f"{elapsed_ms:.1f}ms - {request.remote_addr}")

        if not app.debug:
            # Prevent clickjacking
            response.headers['X-Frame-Options'] = 'DENY'
            # Prevent MIME type sniffing
            response.headers['X-Content-Type-Options'] = 'nosniff'
            # XSS protection
            response.headers['X-XSS-Protection'] = '1; mode=block'
            # Referrer policy
            response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
            # Only add HSTS if using HTTPS
            if request.is_secure:
                response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response
