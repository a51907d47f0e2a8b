"""
Authentication routes and utilities
"""
import re
from functools import wraps

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from solvem8 import login_manager
from solvem8.quota import refresh_subscription
from solvem8.storage import get_storage

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_USERNAME_LENGTH = 2
MIN_PASSWORD_LENGTH = 8


@login_manager.user_loader
def load_user(user_id):
    """Load user by ID"""
    try:
        return get_storage().get_user(int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'message': 'Authentication required'}), 401


def json_body():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def validate_email(email):
    if not EMAIL_RE.match(email or ""):
        return "Please enter a valid email address"
    return None


def validate_password(password):
    if len(password or "") < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def validate_signup(username, email, password):
    """Return the first validation message, or None"""
    if len(username or "") < MIN_USERNAME_LENGTH:
        return f"Username must be at least {MIN_USERNAME_LENGTH} characters"
    return validate_email(email) or validate_password(password)


def with_account(f):
    """Require a session and pass the caller's fresh account record in as
    `account`."""
    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        storage = get_storage()
        account = storage.get_user(current_user.id)
        if account is None:
            return jsonify({'message': 'User not found'}), 404
        account = refresh_subscription(storage, account)
        return f(*args, account=account, **kwargs)
    return decorated_function


@auth_bp.route('/auth/signup', methods=['POST'])
def signup():
    """User registration"""
    payload = json_body()
    username = (payload.get('username') or '').strip()
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''

    error = validate_signup(username, email, password)
    if error:
        return jsonify({'message': error}), 400

    storage = get_storage()
    if storage.get_user_by_email(email):
        return jsonify({'message': 'Email already in use'}), 409
    if storage.get_user_by_username(username):
        return jsonify({'message': 'Username already taken'}), 409

    try:
        user = storage.create_user(username=username, email=email, password=password)
    except Exception:
        current_app.logger.exception('Signup failed for %s', email)
        return jsonify({'message': 'Internal server error'}), 500

    current_app.logger.info('User %s registered (id=%s)', username, user.id)
    return jsonify({
        'message': 'User created successfully',
        'userId': user.id
    }), 201


@auth_bp.route('/auth/login', methods=['POST'])
def login():
    """User login"""
    payload = json_body()
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''

    error = validate_email(email) or validate_password(password)
    if error:
        return jsonify({'message': error}), 400

    user = get_storage().get_user_by_email(email)
    if user is None or not check_password_hash(user.password_hash, password):
        current_app.logger.info('Failed login for %s', email)
        return jsonify({'message': 'Invalid email or password'}), 401

    login_user(user)
    current_app.logger.info('User %s logged in', user.id)
    return jsonify({
        'message': 'Login successful',
        'user': user.summary()
    }), 200


@auth_bp.route('/auth/logout', methods=['POST'])
def logout():
    """User logout"""
    if current_user.is_authenticated:
        current_app.logger.info('User %s logged out', current_user.id)
    logout_user()
    session.clear()
    return jsonify({'message': 'Logged out successfully'}), 200


@auth_bp.route('/user', methods=['GET'])
@with_account
def user_info(account):
    """Current user summary"""
    return jsonify(account.summary()), 200
