"""
Shared fixtures for the flashcard API tests.

Environment variables are set before the app is imported so module-level
configuration picks them up. Every test gets its own SQLite file, fast
bcrypt hashing and rate limiting switched off (limiter tests turn it back on).
"""

import os
import tempfile
import threading

import pytest

os.environ['JWT_SECRET_KEY'] = 'test-secret-key-with-enough-length-for-hs256'
os.environ['DATABASE_PATH'] = os.path.join(tempfile.mkdtemp(prefix='flashcards-'), 'import.db')
os.environ['BCRYPT_ROUNDS'] = '4'
os.environ['RATELIMIT_ENABLED'] = 'false'

import config  # noqa: E402
import rate_limiter  # noqa: E402
from app import app as flask_application  # noqa: E402
from database import connect, init_db  # noqa: E402
from user_repository import UserRepository  # noqa: E402

TEST_PASSWORD = 'password123'


@pytest.fixture
def app(tmp_path):
    db_path = str(tmp_path / 'test.db')
    flask_application.config.update(
        TESTING=True,
        DATABASE_PATH=db_path,
        BCRYPT_ROUNDS=4,
        CARD_LIMIT=config.CARD_LIMIT,
        RATELIMIT_ENABLED=False,
    )
    init_db(db_path)
    rate_limiter.reset_all()
    yield flask_application
    rate_limiter.reset_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    """Direct connection to the test database, for setup and assertions."""
    conn = connect(app.config['DATABASE_PATH'])
    yield conn
    conn.close()


def auth_header(token):
    return {'Authorization': f'Bearer {token}'}


def register_and_login(client, username, password=TEST_PASSWORD):
    """Registers a user through the API and returns their token."""
    response = client.post('/auth/register', json={'username': username, 'password': password})
    assert response.status_code == 201, response.get_json()
    response = client.post('/auth/login', json={'username': username, 'password': password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def user_id_of(db, username):
    return db.execute("SELECT id FROM users WHERE username = ?", (username,)).fetchone()[0]


@pytest.fixture
def user_token(client):
    return register_and_login(client, 'alice')


@pytest.fixture
def admin_token(client, db):
    register_and_login(client, 'root_admin')
    UserRepository(db, rounds=4).set_admin('root_admin', True)
    # Log in again so the token carries the admin claim
    response = client.post('/auth/login', json={'username': 'root_admin', 'password': TEST_PASSWORD})
    return response.get_json()['token']


@pytest.fixture
def live_server(app):
    """Runs the app on an ephemeral port for tests that go through requests."""
    from werkzeug.serving import make_server

    server = make_server('127.0.0.1', 0, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    thread.join(timeout=5)
