from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity
from app.extensions import db
from app.models import User


def get_current_user():
    """The active User behind the request's JWT, or None"""
    try:
        user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        return None
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user


def require_role(*roles):
    """
    Decorator to require specific roles
    Usage: @require_role(Role.ADMIN, Role.STAFF)
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            """
            Require that the current JWT-authenticated user has one of the given roles.
            Must be used together with @jwt_required() on the route.
            """
            user = get_current_user()
            if user is None:
                return jsonify({
                    'success': False,
                    'error': 'Authentication required'
                }), 401

            if not user.has_any_role(*roles):
                return jsonify({
                    'success': False,
                    'error': f'Permission denied. Required roles: {", ".join(r.value for r in roles)}'
                }), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
