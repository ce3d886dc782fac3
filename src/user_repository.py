"""
UserRepository - SQLite-based credential store

Persists usernames, bcrypt password hashes and the admin flag. The admin
flag has no API setter; it only changes through set_admin(), which the
management CLI calls against the database directly.
"""

import sqlite3

import bcrypt

import config


class UserRepository:
    """
    Repository for user authentication and management.

    Usage:
        repo = UserRepository(conn)

        # Create new user
        repo.create_user('alice', 'password123')

        # Authenticate user
        user = repo.find_by_username('alice')
        if user and repo.verify_password('password123', user['password_hash']):
            print(f"Welcome {user['username']}!")

    Table Structure:
        users(id, username, password_hash, is_admin, created_at)
    """

    def __init__(self, conn, rounds=None):
        """
        Initialize UserRepository.

        Args:
            conn: Open sqlite3 connection (row_factory = sqlite3.Row)
            rounds (int, optional): bcrypt cost factor, defaults to config.BCRYPT_ROUNDS
        """
        self.conn = conn
        self.rounds = rounds or config.BCRYPT_ROUNDS

    def hash_password(self, password):
        return bcrypt.hashpw(
            password.encode('utf-8'),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode('utf-8')

    @staticmethod
    def verify_password(password, password_hash):
        """
        Check a plain text password against a stored bcrypt hash.

        Returns:
            bool: True if the password matches
        """
        try:
            return bcrypt.checkpw(
                password.encode('utf-8'),
                password_hash.encode('utf-8')
            )
        except ValueError:
            # Malformed hash in the store
            return False

    def create_user(self, username, password):
        """
        Create a new user with is_admin = false.

        Args:
            username (str): Username (must be unique)
            password (str): Plain text password (will be hashed)

        Returns:
            dict: Created user (without password_hash)

        Raises:
            UserAlreadyExistsError: If username already exists
        """
        password_hash = self.hash_password(password)

        try:
            cursor = self.conn.execute(
                "INSERT INTO users (username, password_hash) VALUES (?, ?)",
                (username, password_hash)
            )
            self.conn.commit()
        except sqlite3.IntegrityError:
            self.conn.rollback()
            raise UserAlreadyExistsError(f"Username '{username}' already exists")

        return self.get_user(cursor.lastrowid)

    def find_by_username(self, username):
        """
        Get user by username, including the password hash.

        Returns:
            dict: User row, or None if not found
        """
        row = self.conn.execute(
            "SELECT id, username, password_hash, is_admin, created_at FROM users WHERE username = ?",
            (username,)
        ).fetchone()
        if not row:
            return None
        user = dict(row)
        user['is_admin'] = bool(user['is_admin'])
        return user

    def get_user(self, user_id):
        """
        Get user by id.

        Returns:
            dict: User data (without password_hash), or None if not found
        """
        row = self.conn.execute(
            "SELECT id, username, is_admin, created_at FROM users WHERE id = ?",
            (user_id,)
        ).fetchone()
        return _public_user(row) if row else None

    def list_users(self):
        """
        List all users ordered by id.

        Returns:
            list: List of user dicts (without password_hash)
        """
        rows = self.conn.execute(
            "SELECT id, username, is_admin, created_at FROM users ORDER BY id ASC"
        ).fetchall()
        return [_public_user(row) for row in rows]

    def delete_user(self, user_id):
        """
        Delete a user. Their cards go with them (ON DELETE CASCADE).

        Returns:
            bool: True if deleted, False if user not found
        """
        cursor = self.conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        self.conn.commit()
        return cursor.rowcount > 0

    def set_admin(self, username, is_admin=True):
        """
        Grant or revoke the admin flag.

        Returns:
            bool: True if the user exists
        """
        cursor = self.conn.execute(
            "UPDATE users SET is_admin = ? WHERE username = ?",
            (1 if is_admin else 0, username)
        )
        self.conn.commit()
        return cursor.rowcount > 0


def _public_user(row):
    return {
        'id': row['id'],
        'username': row['username'],
        'is_admin': bool(row['is_admin']),
        'created_at': row['created_at'],
    }


class UserAlreadyExistsError(Exception):
    """Raised when attempting to create a user that already exists."""
    pass
