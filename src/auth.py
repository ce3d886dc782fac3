"""
Registration, login and the bearer-token gate for protected routes.

Tokens are flask-jwt-extended access tokens: identity is the user id (as a
string), plus an is_admin claim. Nothing is stored server-side, so a token
stays valid until it expires; logout is the client discarding it. A change
to a user's admin flag takes effect at their next login.
"""

from collections import namedtuple
from functools import wraps

from flask import current_app, g, jsonify
from flask_jwt_extended import (
    create_access_token,
    get_jwt,
    get_jwt_identity,
    verify_jwt_in_request,
)

import config
from errors import (
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidCredentialError,
    MissingCredentialError,
    ValidationError,
)
from user_repository import UserAlreadyExistsError

Identity = namedtuple('Identity', ['user_id', 'is_admin'])


def _length_ok(value, bounds):
    low, high = bounds
    return low <= len(value) <= high


def register_user(user_repo, data):
    """
    Create an account from a {username, password} body.

    Returns:
        dict: Created user (without password_hash)

    Raises:
        ValidationError: Missing fields or lengths outside 4..25
        ConflictError: Username already taken
    """
    if not isinstance(data, dict) or not data.get('username') or not data.get('password'):
        raise ValidationError('Username and password are required.')

    username = data['username']
    password = data['password']
    if not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError('Username and password must be strings.')

    username = username.strip()
    if not _length_ok(username, config.USERNAME_LENGTH):
        raise ValidationError('Username must be between {} and {} characters.'.format(*config.USERNAME_LENGTH))
    if not _length_ok(password, config.PASSWORD_LENGTH):
        raise ValidationError('Password must be between {} and {} characters.'.format(*config.PASSWORD_LENGTH))

    try:
        return user_repo.create_user(username, password)
    except UserAlreadyExistsError:
        raise ConflictError('Username already exists.')


def login_user(user_repo, data):
    """
    Check credentials and issue a token.

    Returns:
        tuple: (token, user dict)

    Raises:
        ValidationError: Missing fields
        AuthError: Unknown user or wrong password (same message for both)
    """
    if not isinstance(data, dict) or not data.get('username') or not data.get('password'):
        raise ValidationError('Missing username or password.')

    username = data['username']
    password = data['password']
    if not isinstance(username, str) or not isinstance(password, str):
        raise ValidationError('Username and password must be strings.')

    user = user_repo.find_by_username(username.strip())
    if not user or not user_repo.verify_password(password, user['password_hash']):
        raise AuthError('Invalid credentials.')

    return create_token(user), user


def create_token(user):
    return create_access_token(
        identity=str(user['id']),
        additional_claims={'is_admin': bool(user['is_admin'])},
    )


def current_identity():
    """Reads the verified token of the current request."""
    return Identity(int(get_jwt_identity()), bool(get_jwt().get('is_admin', False)))


def require_admin(identity):
    if not identity.is_admin:
        raise ForbiddenError('Admin access required.')
    return identity


def login_required(f):
    """
    Decorator for routes that need a valid bearer token.

    Stores the caller's Identity in g.identity.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        verify_jwt_in_request()
        g.identity = current_identity()
        return f(*args, **kwargs)
    return decorated


def admin_required(f):
    """Decorator for routes that need a valid token with is_admin set."""
    @wraps(f)
    def decorated(*args, **kwargs):
        verify_jwt_in_request()
        g.identity = require_admin(current_identity())
        return f(*args, **kwargs)
    return decorated


def register_jwt_callbacks(jwt):
    """Makes token failures use the same JSON error shape as every other error."""

    def _respond(error):
        return jsonify(error.to_dict()), error.status_code

    @jwt.unauthorized_loader
    def missing_token(reason):
        current_app.logger.warning(f"Rejected request without token: {reason}")
        return _respond(MissingCredentialError())

    @jwt.invalid_token_loader
    def invalid_token(reason):
        current_app.logger.warning(f"Rejected invalid token: {reason}")
        return _respond(InvalidCredentialError())

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        current_app.logger.info(f"Rejected expired token for user {jwt_payload.get('sub')}")
        return _respond(InvalidCredentialError('Token has expired'))
