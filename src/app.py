"""
Flashcard API

Flask app serving a per-user flashcard collection:
- JWT bearer authentication (flask-jwt-extended), bcrypt password hashes
- Card CRUD and bulk import scoped to the token's user, 500-card ceiling
- Admin routes for listing/deleting users and their cards
- Per-IP sliding-window rate limits on register, login and bulk import

Run locally with `python app.py`; use Gunicorn or similar in production.
"""

import logging
import sqlite3

from flask import Flask, g, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

import config
from auth import admin_required, login_required, login_user, register_jwt_callbacks, register_user
from card_repository import CardLimitError, CardRepository
from database import close_db, get_db, init_db
from errors import (
    FlashcardError,
    ForbiddenError,
    InvalidCredentialError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)
from rate_limiter import rate_limited
from sanitizer import sanitize_card, sanitize_cards
from user_repository import UserRepository

# --- Logging Configuration ---
logging.basicConfig(level=config.LOG_LEVEL,
                    format='%(asctime)s %(levelname)s %(name)s %(threadName)s : %(message)s')

# --- App Initialization ---
app = Flask(__name__)
app.config['JWT_SECRET_KEY'] = config.JWT_SECRET_KEY
app.config['JWT_ACCESS_TOKEN_EXPIRES'] = config.TOKEN_LIFETIME
app.config['JWT_TOKEN_LOCATION'] = ['headers']
app.config['DATABASE_PATH'] = config.DATABASE_PATH
app.config['BCRYPT_ROUNDS'] = config.BCRYPT_ROUNDS
app.config['CARD_LIMIT'] = config.CARD_LIMIT
app.config['RATELIMIT_ENABLED'] = config.RATELIMIT_ENABLED

if config.TRUST_PROXY:
    # Use the client address from X-Forwarded-For when behind one proxy
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1)

jwt = JWTManager(app)
register_jwt_callbacks(jwt)

CORS(app,
     origins=config.CORS_ORIGINS,
     methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
     allow_headers=['Content-Type', 'Authorization'])

app.teardown_appcontext(close_db)

config.warn_if_default_secret()
init_db(app.config['DATABASE_PATH'])


# --- Helper Functions ---

def users():
    return UserRepository(get_db(), rounds=app.config['BCRYPT_ROUNDS'])


def cards():
    return CardRepository(get_db())


# Largest value SQLite stores in an INTEGER column
MAX_ID = 2**63 - 1


def parse_id(value, label='ID'):
    """Parses a path id. Anything but a positive integer is a ValidationError."""
    if not (value.isascii() and value.isdigit()):
        raise ValidationError(f'Invalid {label}.')
    parsed = int(value)
    if parsed <= 0 or parsed > MAX_ID:
        raise ValidationError(f'Invalid {label}.')
    return parsed


def truncate(text, length=15):
    return text[:length] + "..." if len(text) > length else text


def card_json(card):
    return {
        "id": card['id'],
        "question": card['question'],
        "answer": card['answer'],
        "createdAt": card['created_at'],
    }


def user_json(user):
    return {
        "id": user['id'],
        "username": user['username'],
        "isAdmin": user['is_admin'],
        "createdAt": user['created_at'],
    }


@app.before_request
def log_request():
    app.logger.info(f"Incoming request: {request.method} {request.path}")


# --- Authentication Routes ---

@app.route('/health', methods=['GET'])
def health():
    """Liveness check. Does not touch the database."""
    return jsonify({"status": "ok"}), 200


@app.route('/auth/register', methods=['POST'])
@rate_limited('register')
def register():
    """
    Register a new user.

    Request body:
        {"username": "john_doe", "password": "secret123"}

    Returns:
        201: {"message": "User registered successfully"}
        400: {"error": ...} (missing fields, bad lengths)
        409: {"error": "Username already exists."}
        429: {"error": ..., "retryAfter": seconds}
    """
    user = register_user(users(), request.get_json(silent=True))
    app.logger.info(f"User registered: {user['username']} (ID: {user['id']})")
    return jsonify({"message": "User registered successfully"}), 201


@app.route('/auth/login', methods=['POST'])
@rate_limited('login')
def login():
    """
    Login user and return JWT token.

    Request body:
        {"username": "john_doe", "password": "secret123"}

    Returns:
        200: {"token": "eyJ..."}
        400: {"error": "Missing username or password."}
        401: {"error": "Invalid credentials."}
    """
    try:
        token, user = login_user(users(), request.get_json(silent=True))
    except FlashcardError as e:
        app.logger.warning(f"Failed login attempt from {request.remote_addr}: {e.code}")
        raise

    app.logger.info(f"User logged in: {user['username']} (ID: {user['id']})")
    return jsonify({"token": token}), 200


@app.route('/auth/me', methods=['GET'])
@login_required
def me():
    """Returns the identity carried by the caller's token."""
    return jsonify({"id": g.identity.user_id, "isAdmin": g.identity.is_admin}), 200


# --- Card Routes ---

@app.route('/cards', methods=['GET'])
@login_required
def list_cards():
    """
    Lists the caller's cards, oldest first.

    Returns:
        200: [{"id", "question", "answer", "createdAt"}, ...]
    """
    user_cards = cards().list_cards(g.identity.user_id)
    app.logger.debug(f"[user {g.identity.user_id}] Fetched {len(user_cards)} cards")
    return jsonify([card_json(c) for c in user_cards]), 200


@app.route('/cards', methods=['POST'])
@login_required
def create_card():
    """
    Adds a card for the caller.

    Request body:
        {"question": str, "answer": str}

    Returns:
        201: the stored card
        400: {"error": "Question and answer are required."}
        403: {"error": ..., "code": "LIMIT_EXCEEDED"}
    """
    user_id = g.identity.user_id
    question, answer = sanitize_card(request.get_json(silent=True))

    repo = cards()
    limit = app.config['CARD_LIMIT']
    if repo.count_cards(user_id) >= limit:
        app.logger.warning(f"[user {user_id}] Card limit ({limit}) reached")
        raise LimitExceededError(f'Card limit of {limit} reached.')

    try:
        card = repo.create_card(user_id, question, answer)
    except sqlite3.IntegrityError:
        # Token outlived its user
        raise InvalidCredentialError('Account no longer exists.')

    app.logger.info(f"[user {user_id}] Created card {card['id']}: \"{truncate(question)}\"")
    return jsonify(card_json(card)), 201


@app.route('/cards/all', methods=['DELETE'])
@login_required
def delete_all_cards():
    """Deletes every card of the caller. Always 204, even when there were none."""
    user_id = g.identity.user_id
    deleted = cards().delete_all_cards(user_id)
    app.logger.info(f"[user {user_id}] Deleted all cards ({deleted})")
    return '', 204


@app.route('/cards/bulk', methods=['POST'])
@rate_limited('bulk_import')
@login_required
def bulk_import():
    """
    Imports an array of cards in one transaction.

    Request body:
        [{"question": str, "answer": str}, ...]

    Returns:
        201: {"importedCount": int}
        400: empty array or an entry without question/answer (nothing stored)
        403: would exceed the card limit (nothing stored)
    """
    user_id = g.identity.user_id
    batch = sanitize_cards(request.get_json(silent=True))

    try:
        imported_count = cards().bulk_insert(user_id, batch, app.config['CARD_LIMIT'])
    except CardLimitError as e:
        app.logger.warning(f"[user {user_id}] Bulk import rejected: {e}")
        raise LimitExceededError(
            f"Import would exceed the card limit of {e.limit} "
            f"(you have {e.current}, importing {e.incoming})."
        )
    except sqlite3.IntegrityError:
        raise InvalidCredentialError('Account no longer exists.')

    app.logger.info(f"[user {user_id}] Bulk imported {imported_count} cards")
    return jsonify({"importedCount": imported_count}), 201


@app.route('/cards/<card_id>', methods=['PUT'])
@login_required
def update_card(card_id):
    """
    Replaces question and answer of one of the caller's cards.

    Returns:
        200: the updated card
        400: invalid id or empty fields
        404: no such card owned by the caller
    """
    user_id = g.identity.user_id
    card_id = parse_id(card_id, 'card ID')
    question, answer = sanitize_card(request.get_json(silent=True))

    card = cards().update_card(card_id, user_id, question, answer)
    if card is None:
        app.logger.warning(f"[user {user_id}] Card {card_id} not found for update")
        raise NotFoundError('Card not found.')

    app.logger.info(f"[user {user_id}] Updated card {card_id}")
    return jsonify(card_json(card)), 200


@app.route('/cards/<card_id>', methods=['DELETE'])
@login_required
def delete_card(card_id):
    """
    Deletes one of the caller's cards.

    Returns:
        204: deleted
        400: invalid id
        404: no such card owned by the caller
    """
    user_id = g.identity.user_id
    card_id = parse_id(card_id, 'card ID')

    if not cards().delete_card(card_id, user_id):
        app.logger.warning(f"[user {user_id}] Card {card_id} not found for delete")
        raise NotFoundError('Card not found or already deleted.')

    app.logger.info(f"[user {user_id}] Deleted card {card_id}")
    return '', 204


# --- Admin Routes ---

@app.route('/admin/users', methods=['GET'])
@admin_required
def admin_list_users():
    """Lists every user (never the password hash)."""
    return jsonify([user_json(u) for u in users().list_users()]), 200


@app.route('/admin/users/<user_id>', methods=['DELETE'])
@admin_required
def admin_delete_user(user_id):
    """
    Deletes a user and, by cascade, all of their cards.

    Returns:
        204: deleted
        400: invalid id
        403: admin tried to delete themselves
        404: no such user
    """
    admin_id = g.identity.user_id
    target_id = parse_id(user_id, 'user ID')

    if target_id == admin_id:
        app.logger.warning(f"[admin {admin_id}] Attempted self-deletion")
        raise ForbiddenError('Admins cannot delete their own account.')

    if not users().delete_user(target_id):
        raise NotFoundError('User not found.')

    app.logger.info(f"[admin {admin_id}] Deleted user {target_id} and their cards")
    return '', 204


@app.route('/admin/users/<user_id>/cards', methods=['GET'])
@admin_required
def admin_list_user_cards(user_id):
    """Lists the cards of any user. Unknown users simply have no cards."""
    target_id = parse_id(user_id, 'user ID')
    return jsonify([card_json(c) for c in cards().list_cards(target_id)]), 200


@app.route('/admin/cards/<card_id>', methods=['DELETE'])
@admin_required
def admin_delete_card(card_id):
    """Deletes any card regardless of owner."""
    admin_id = g.identity.user_id
    card_id = parse_id(card_id, 'card ID')

    if not cards().delete_card(card_id):
        raise NotFoundError('Card not found.')

    app.logger.info(f"[admin {admin_id}] Deleted card {card_id}")
    return '', 204


# --- Error Handlers ---

@app.errorhandler(FlashcardError)
def handle_flashcard_error(e):
    return jsonify(e.to_dict()), e.status_code, e.headers()


@app.errorhandler(HTTPException)
def handle_http_error(e):
    if e.code == 404:
        return jsonify({"error": "Endpoint not found"}), 404
    return jsonify({"error": e.description}), e.code


@app.errorhandler(sqlite3.Error)
def handle_database_error(e):
    app.logger.exception(f"Database error on {request.method} {request.path}: {e}")
    return jsonify({"error": "A database error occurred"}), 500


@app.errorhandler(Exception)
def internal_error(e):
    app.logger.exception(f"Internal error on {request.method} {request.path}: {e}")
    return jsonify({"error": "Internal server error"}), 500


# --- Local Development ---

if __name__ == '__main__':
    # For local testing only
    print("WARNING: Running Flask development server. NOT for production use.")
    app.run(host='0.0.0.0', port=config.PORT, debug=False)
