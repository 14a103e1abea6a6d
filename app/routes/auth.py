from flask import Blueprint, request, jsonify
from flask_jwt_extended import (
    create_access_token,
    create_refresh_token,
    jwt_required,
    get_jwt_identity,
    get_jwt,
)
from sqlalchemy import func, or_
from app.models import User
from app.extensions import db
from app.utils.decorators import get_current_user
from datetime import datetime

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def token_claims(user):
    return {
        "username": user.username,
        "role": user.role.value,
    }


@auth_bp.route('/login', methods=['POST'])
def login():
    """Login endpoint - authenticates a user and returns JWT tokens"""
    data = request.get_json(silent=True)

    if not data:
        return jsonify({
            'success': False,
            'error': 'Request body must be JSON'
        }), 400

    username = data.get('username')
    password = data.get('password')

    if not username or not password:
        return jsonify({
            'success': False,
            'error': 'Username and password required'
        }), 400

    # Patients sign in with the email their account was provisioned from
    user = User.query.filter(or_(User.username == username, func.lower(User.email) == str(username).lower())).first()

    if not user or not user.check_password(password):
        return jsonify({
            'success': False,
            'error': 'Invalid username or password'
        }), 401

    if not user.is_active:
        return jsonify({
            'success': False,
            'error': 'Account is deactivated'
        }), 403

    # Update login tracking
    user.last_login = datetime.utcnow()
    user.login_count = (user.login_count or 0) + 1
    db.session.commit()

    # Identity is the user id (JWT "sub" must be a string); role travels as a claim
    identity = str(user.id)
    additional_claims = token_claims(user)

    access_token = create_access_token(
        identity=identity,
        additional_claims=additional_claims,
        fresh=True,
    )
    refresh_token = create_refresh_token(
        identity=identity,
        additional_claims=additional_claims,
    )

    return jsonify({
        'success': True,
        'data': user.to_dict(),
        'access_token': access_token,
        'refresh_token': refresh_token,
        'token_type': 'bearer',
        'expires_in': 3600
    }), 200


@auth_bp.route('/logout', methods=['POST'])
@jwt_required()
def logout():
    """Stateless JWT: the client discards its tokens"""
    return jsonify({
        'success': True,
        'message': 'Logged out successfully (delete tokens on client)'
    }), 200


@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def me():
    """Profile of the signed-in user"""
    user = get_current_user()

    if not user:
        return jsonify({'success': False, 'error': 'User not found'}), 404

    data = user.to_dict()
    data['lastLogin'] = user.last_login.isoformat() if user.last_login else None
    data['loginCount'] = user.login_count
    return jsonify({
        'success': True,
        'data': data
    }), 200


@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """Refresh access token using refresh token"""
    identity = get_jwt_identity()
    claims = get_jwt()
    new_access_token = create_access_token(
        identity=identity,
        additional_claims={
            "username": claims.get("username"),
            "role": claims.get("role"),
        },
        fresh=False  # refreshed tokens are not fresh
    )
    return jsonify({
        'success': True,
        'access_token': new_access_token,
        'token_type': 'bearer',
        'expires_in': 3600
    }), 200
