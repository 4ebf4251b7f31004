from __future__ import annotations

from typing import Optional

import bcrypt
import psycopg

from folio.auth.models import AuthUser, LocalUser

_USER_COLUMNS = "id, email, username, password_hash, name, created_at, last_login_at, password_changed_at, is_active"


def hash_password(password: str) -> str:
    """Hash password with bcrypt (cost factor 12)."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash with constant-time comparison."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Invalid hash format
        return False


def _row_to_user(row) -> LocalUser:
    return LocalUser(*row)


def get_local_user(conn: psycopg.Connection, login: str) -> Optional[LocalUser]:
    """Get a local user by username or (case-insensitive) email."""
    with conn.cursor() as cur:
        cur.execute(
            f"""
            SELECT {_USER_COLUMNS}
            FROM local_users
            WHERE username = %s OR email = lower(%s)
            ORDER BY (username = %s) DESC
            LIMIT 1
            """,
            (login, login, login),
        )
        row = cur.fetchone()
    return _row_to_user(row) if row else None


def get_local_user_by_id(conn: psycopg.Connection, user_id: int) -> Optional[LocalUser]:
    with conn.cursor() as cur:
        cur.execute(f"SELECT {_USER_COLUMNS} FROM local_users WHERE id = %s", (user_id,))
        row = cur.fetchone()
    return _row_to_user(row) if row else None


def authenticate_local(conn: psycopg.Connection, login: str, password: str) -> Optional[AuthUser]:
    """
    Authenticate a local user with username-or-email and password.

    Returns AuthUser if authentication succeeds, None otherwise.
    """
    user = get_local_user(conn, login)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    with conn.cursor() as cur:
        cur.execute("UPDATE local_users SET last_login_at = NOW() WHERE id = %s", (user.id,))
    conn.commit()

    return user.to_auth_user()


_INSERT_USER = f"""
    INSERT INTO local_users (email, username, password_hash, name, created_by, is_active)
    VALUES (lower(%s), %s, %s, %s, %s, TRUE)
    {{on_conflict}}
    RETURNING {_USER_COLUMNS}
"""


def create_local_user(
    conn: psycopg.Connection,
    email: str,
    username: str,
    password: str,
    name: Optional[str],
    created_by: Optional[str],
) -> LocalUser:
    """
    Add a console account. Accounts are only created by an operator, never by sign-up.

    Raises psycopg.IntegrityError when the email or username is taken.
    """
    with conn.cursor() as cur:
        cur.execute(
            _INSERT_USER.format(on_conflict=""),
            (email, username, hash_password(password), name, created_by),
        )
        row = cur.fetchone()
    conn.commit()
    if not row:
        raise ValueError(f"insert of user {username!r} returned no row")
    return _row_to_user(row)


def set_password(conn: psycopg.Connection, user_id: int, password: str) -> None:
    with conn.cursor() as cur:
        cur.execute(
            "UPDATE local_users SET password_hash = %s, password_changed_at = NOW() WHERE id = %s",
            (hash_password(password), user_id),
        )
    conn.commit()


def initialize_admin_user(conn: psycopg.Connection, username: str, password: str, email: Optional[str] = None) -> None:
    """Seed the owner account at startup, but only into an empty `local_users` table."""
    if not (username and password):
        return

    with conn.cursor() as cur:
        cur.execute("SELECT EXISTS (SELECT 1 FROM local_users)")
        row = cur.fetchone()
        if row and row[0]:
            return
        cur.execute(
            _INSERT_USER.format(on_conflict="ON CONFLICT (username) DO NOTHING"),
            (email or f"{username}@local", username, hash_password(password), "Portfolio Owner", None),
        )
    conn.commit()
