"""
Configuration for the flashcard API.

Values are read from environment variables (a local .env file is loaded
first) so the same code runs in development, tests and production.
"""

import os
import logging
from datetime import timedelta

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))

logger = logging.getLogger(__name__)


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# --- Server ---
PORT = int(os.environ.get('PORT', '3000'))
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
TRUST_PROXY = _env_bool('TRUST_PROXY', False)
CORS_ORIGINS = [o.strip() for o in os.environ.get('CORS_ORIGINS', '*').split(',') if o.strip()]

# --- Security ---
DEFAULT_SECRET = 'dev-secret-change-in-production'
JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or os.environ.get('SECRET_KEY') or DEFAULT_SECRET
TOKEN_LIFETIME = timedelta(days=1)
BCRYPT_ROUNDS = int(os.environ.get('BCRYPT_ROUNDS', '10'))

# --- Storage ---
DATABASE_PATH = os.environ.get('DATABASE_PATH', os.path.join(basedir, 'flashcards.db'))

# --- Limits ---
CARD_LIMIT = 500  # Maximum number of cards a single user may own
USERNAME_LENGTH = (4, 25)
PASSWORD_LENGTH = (4, 25)

RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', True)

# name -> (requests allowed, window in seconds)
RATE_LIMITS = {
    'register': (2, 60),
    'login': (3, 60),
    'bulk_import': (5, 300),
}


def warn_if_default_secret():
    """Logs a warning when the development signing key is in use."""
    if JWT_SECRET_KEY == DEFAULT_SECRET:
        logger.warning("JWT_SECRET_KEY not set, using development default. Do NOT use in production.")
