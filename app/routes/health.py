"""
Health check endpoints for monitoring and load balancers
"""
from flask import Blueprint, jsonify
from sqlalchemy import func
from app.extensions import db
from app.models import NotificationDelivery, DeliveryStatus
from datetime import datetime

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('', methods=['GET'])
@health_bp.route('/ping', methods=['GET'])
def health_check():
    """Basic health check - no database connection"""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.utcnow().isoformat(),
        'service': 'clinic-appointments'
    }), 200


def _outbox_backlog():
    """Deliveries per status other than SENT; a growing FAILED count means SMTP trouble"""
    rows = (
        db.session.query(NotificationDelivery.status, func.count(NotificationDelivery.id))
        .filter(NotificationDelivery.status != DeliveryStatus.SENT)
        .group_by(NotificationDelivery.status)
        .all()
    )
    return {status.value: count for status, count in rows}


@health_bp.route('/ready', methods=['GET'])
def readiness_check():
    """Readiness check - database reachable and appointment schema present"""
    backlog = None
    try:
        db.session.execute(db.text('SELECT 1 FROM appointments LIMIT 1'))
        backlog = _outbox_backlog()
        db_status = 'connected'
    except Exception as e:
        db.session.rollback()
        db_status = f'error: {str(e)}'

    return jsonify({
        'status': 'ready' if db_status == 'connected' else 'not_ready',
        'database': db_status,
        'notificationBacklog': backlog,
        'timestamp': datetime.utcnow().isoformat()
    }), 200 if db_status == 'connected' else 503


@health_bp.route('/live', methods=['GET'])
def liveness_check():
    """Liveness check for Kubernetes/containers"""
    return jsonify({
        'status': 'alive',
        'timestamp': datetime.utcnow().isoformat()
    }), 200
