"""
SQLite storage for users and their flashcards.

One database file holds both tables. Inside a request the connection lives
on flask.g and is closed by the app teardown.
"""

import os
import sqlite3
import logging

from flask import g, current_app

logger = logging.getLogger(__name__)

# Seconds a writer waits for another transaction's lock before failing
BUSY_TIMEOUT = 10

SCHEMA = """
    CREATE TABLE IF NOT EXISTS users (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        username        TEXT UNIQUE NOT NULL,
        password_hash   TEXT NOT NULL,
        is_admin        INTEGER NOT NULL DEFAULT 0,
        created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE TABLE IF NOT EXISTS cards (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        question        TEXT NOT NULL,
        answer          TEXT NOT NULL,
        owner_id        INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at      TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );
    CREATE INDEX IF NOT EXISTS ix_cards_owner ON cards (owner_id);
"""


def connect(db_path):
    """Opens a connection with row access by name and cascading deletes enabled."""
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT, check_same_thread=False)
    conn.row_factory = sqlite3.Row  # Return rows as dictionary-like objects
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path):
    """Creates the users and cards tables if they don't exist yet."""
    db_dir = os.path.dirname(os.path.abspath(db_path))
    if not os.path.exists(db_dir):
        os.makedirs(db_dir)

    conn = connect(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    logger.info(f"Database '{db_path}' initialized.")


def get_db():
    """Returns the connection for the current request, opening it on first use."""
    if 'db' not in g:
        g.db = connect(current_app.config['DATABASE_PATH'])
    return g.db


def close_db(exception=None):
    """Closes the request connection. Registered as an app-context teardown."""
    db = g.pop('db', None)
    if db is not None:
        if exception is not None:
            db.rollback()
        db.close()
