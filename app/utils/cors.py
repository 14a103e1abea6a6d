"""
CORS Configuration
The booking form and the staff dashboard are served from other origins,
so /api/* and /health/* accept cross-origin calls from CORS_ORIGINS.
"""

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
CORS_HEADERS = [
    "Content-Type",
    "Authorization",
    "X-Requested-With",
    "Accept",
    "Origin",
]


def allowed_origins(app):
    """CORS_ORIGINS is '*' or a comma-separated list of origins"""
    raw = app.config.get('CORS_ORIGINS', '*') or '*'
    if raw.strip() == '*':
        return '*'
    return [origin.strip() for origin in raw.split(',') if origin.strip()]


def init_cors(app):
    """
    Initialize CORS for the Flask application
    """
    from flask_cors import CORS

    origins = allowed_origins(app)
    CORS(app,
         resources={r"/api/*": {"origins": origins}, r"/health/*": {"origins": origins}},
         methods=CORS_METHODS,
         allow_headers=CORS_HEADERS,
         expose_headers=["Content-Type"],
         # Credentials only with an explicit origin list
         supports_credentials=origins != '*',
         max_age=app.config.get('CORS_MAX_AGE', 86400))

    app.logger.info("CORS enabled for %s", origins if origins != '*' else 'all origins')
