#!/usr/bin/env python3
"""
Database management for the flashcard API.

The admin flag has no HTTP endpoint; this script is the way to set it.

Usage:
    python manage.py init-db
    python manage.py set-admin alice
    python manage.py set-admin alice --revoke
    python manage.py list-users
"""

import argparse
import sqlite3
import sys

import config
from database import connect, init_db
from user_repository import UserRepository


def cmd_init_db(args):
    init_db(args.db)
    print(f"Database initialized at {args.db}")
    return 0


def cmd_set_admin(args):
    conn = connect(args.db)
    try:
        if not UserRepository(conn).set_admin(args.username, not args.revoke):
            print(f"User '{args.username}' not found.")
            return 1
    finally:
        conn.close()

    action = "revoked from" if args.revoke else "granted to"
    print(f"Admin rights {action} '{args.username}'. Takes effect at their next login.")
    return 0


def cmd_list_users(args):
    conn = connect(args.db)
    try:
        users = UserRepository(conn).list_users()
    finally:
        conn.close()

    for user in users:
        flag = " (admin)" if user['is_admin'] else ""
        print(f"{user['id']:>5}  {user['username']}{flag}  {user['created_at']}")
    print(f"{len(users)} user(s)")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(description='Manage the flashcard database')
    parser.add_argument('--db', default=config.DATABASE_PATH,
                        help=f'Path to the database (default: {config.DATABASE_PATH})')
    subparsers = parser.add_subparsers(dest='command', required=True)

    init_parser = subparsers.add_parser('init-db', help='Create the tables')
    init_parser.set_defaults(func=cmd_init_db)

    admin_parser = subparsers.add_parser('set-admin', help='Grant (or revoke) admin rights')
    admin_parser.add_argument('username')
    admin_parser.add_argument('--revoke', action='store_true', help='Remove admin rights instead')
    admin_parser.set_defaults(func=cmd_set_admin)

    list_parser = subparsers.add_parser('list-users', help='Show all users')
    list_parser.set_defaults(func=cmd_list_users)

    args = parser.parse_args(argv)

    try:
        return args.func(args)
    except sqlite3.Error as e:
        print(f"\nDatabase error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
