from flask import Flask, jsonify, has_app_context
from werkzeug.exceptions import HTTPException
from .extensions import db, migrate, bcrypt, login_manager, celery
import logging
import os

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(config_name=None, config_overrides=None):
    """Create Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    from app.config import config, get_config, ProductionConfig
    config_class = config.get(config_name, config['default']) if config_name else get_config()
    if issubclass(config_class, ProductionConfig):
        config_class.validate()
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Initialize extensions first (before error handlers)
    db.init_app(app)
    migrate.init_app(app, db)
    bcrypt.init_app(app)
    login_manager.init_app(app)

    # Initialize JWT
    from flask_jwt_extended import JWTManager
    JWTManager(app)

    # Initialize CORS
    from app.utils.cors import init_cors
    init_cors(app)

    # Notification gateway used by the outbox, the sweeps and ad-hoc messages
    from app.services.email_service import EmailNotificationGateway
    app.extensions['notification_gateway'] = EmailNotificationGateway()

    # Initialize Celery
    from tasks.notification_tasks import beat_schedule
    celery.conf.update(
        broker_url=app.config['CELERY_BROKER_URL'],
        result_backend=app.config['CELERY_RESULT_BACKEND'],
        task_serializer=app.config['CELERY_TASK_SERIALIZER'],
        accept_content=app.config['CELERY_ACCEPT_CONTENT'],
        result_serializer=app.config['CELERY_RESULT_SERIALIZER'],
        timezone=app.config['CELERY_TIMEZONE'],
        enable_utc=app.config['CELERY_ENABLE_UTC'],
        task_always_eager=app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        beat_schedule=beat_schedule(app.config),
    )

    class FlaskAppContextTask(celery.Task):
        """Make celery tasks work with Flask app context."""
        def __call__(self, *args, **kwargs):
            # Eager tasks run inside the caller's request and share its session
            if has_app_context():
                return self.run(*args, **kwargs)
            with app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskAppContextTask

    # Error handlers
    from app.services.exceptions import AppointmentError

    @app.errorhandler(AppointmentError)
    def appointment_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            logger.error("Appointment error: %s", error.message, exc_info=True)
        return jsonify({
            'success': False,
            'error': error.message
        }), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Endpoint not found'
        }), 404

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({
            'success': False,
            'error': error.description
        }), error.code

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal Server Error: {error}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'Internal server error. Check server logs for details.'
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        db.session.rollback()
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify({
            'success': False,
            'error': f'An error occurred: {str(e)}'
        }), 500

    # File logging outside debug/testing
    if not app.debug and not app.testing:
        from logging.handlers import RotatingFileHandler

        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10240000,
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        logging.getLogger().addHandler(file_handler)
        app.logger.info('Application startup')

    # Request logging and security headers
    from app.middleware import setup_middleware
    setup_middleware(app)

    # Configure Flask-Login
    login_manager.session_protection = 'strong'

    @login_manager.user_loader
    def load_user(user_id):
        from app.models import User
        return db.session.get(User, int(user_id))

    # Unauthorized handler - returns JSON instead of redirect
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            'success': False,
            'error': 'Authentication required'
        }), 401

    # Import models to register them with SQLAlchemy
    with app.app_context():
        from .models import User, Appointment, NotificationDelivery, AuditLog  # noqa: F401

        # Register blueprints
        from .routes import auth_bp, appointment_bp, health_bp
        app.register_blueprint(health_bp)  # Register health check first
        app.register_blueprint(auth_bp)
        app.register_blueprint(appointment_bp)

    return app
