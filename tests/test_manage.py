import pytest

import manage
from database import connect, init_db
from user_repository import UserRepository


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / 'manage.db')
    init_db(path)
    conn = connect(path)
    UserRepository(conn, rounds=4).create_user('maria', 'secret1')
    conn.close()
    return path


def is_admin(db_path, username):
    conn = connect(db_path)
    try:
        return UserRepository(conn).find_by_username(username)['is_admin']
    finally:
        conn.close()


def test_init_db_creates_file(tmp_path, capsys):
    path = str(tmp_path / 'nested' / 'fresh.db')

    assert manage.main(['--db', path, 'init-db']) == 0

    assert 'Database initialized' in capsys.readouterr().out
    conn = connect(path)
    tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    conn.close()
    assert {'users', 'cards'} <= tables


def test_set_admin_and_revoke(db_path, capsys):
    assert manage.main(['--db', db_path, 'set-admin', 'maria']) == 0
    assert is_admin(db_path, 'maria') is True
    assert 'next login' in capsys.readouterr().out

    assert manage.main(['--db', db_path, 'set-admin', 'maria', '--revoke']) == 0
    assert is_admin(db_path, 'maria') is False


def test_set_admin_unknown_user(db_path, capsys):
    assert manage.main(['--db', db_path, 'set-admin', 'ghost']) == 1
    assert "User 'ghost' not found." in capsys.readouterr().out


def test_list_users(db_path, capsys):
    manage.main(['--db', db_path, 'set-admin', 'maria'])
    capsys.readouterr()

    assert manage.main(['--db', db_path, 'list-users']) == 0

    out = capsys.readouterr().out
    assert 'maria (admin)' in out
    assert '1 user(s)' in out


def test_command_is_required():
    with pytest.raises(SystemExit):
        manage.main([])
