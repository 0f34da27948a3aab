"""SQLite encryption helpers using sqlcipher (optional ``encryption`` extra).

A password selects sqlcipher; without one the standard library driver is used.
Asking for encryption without sqlcipher installed is an error, never a silent
downgrade to plaintext.
"""
import os
import sqlite3
from typing import Optional


def has_sqlcipher() -> bool:
    """Check if sqlcipher is available."""
    try:
        import sqlcipher3  # type: ignore  # noqa: F401
        return True
    except ImportError:
        return False


def _quote(password: str) -> str:
    return "'" + password.replace("'", "''") + "'"


def get_encrypted_connection(db_path: str, password: str, timeout: int = 30, check_same_thread: bool = True):
    """Get an encrypted SQLite connection using sqlcipher.

    Raises:
        RuntimeError: If sqlcipher is not installed or the password is wrong
    """
    try:
        import sqlcipher3 as sqlite3_enc  # type: ignore
    except ImportError:
        raise RuntimeError(
            "sqlcipher3 is not installed. Install with: pip install tradebot-backend[encryption]\n"
            "Or leave persistence.encryption_password unset for an unencrypted database."
        )

    conn = sqlite3_enc.connect(db_path, timeout=timeout, check_same_thread=check_same_thread)
    conn.execute(f"PRAGMA key = {_quote(password)}")
    conn.execute("PRAGMA cipher_page_size = 4096")
    try:
        conn.execute("SELECT name FROM sqlite_master LIMIT 1")
    except Exception as e:
        conn.close()
        raise RuntimeError(f"Failed to open encrypted database (wrong password?): {e}")

    return conn


def get_connection(db_path: str, password: Optional[str] = None, timeout: int = 30, check_same_thread: bool = True):
    """Get a SQLite connection, encrypted when ``password`` is given."""
    if password:
        return get_encrypted_connection(db_path, password, timeout, check_same_thread)
    return sqlite3.connect(db_path, timeout=timeout, check_same_thread=check_same_thread)


def encrypt_existing_db(unencrypted_path: str, encrypted_path: str, password: str) -> None:
    """Copy an unencrypted trade database into a new sqlcipher database.

    The source is left untouched; ``encrypted_path`` must not exist yet.

    Raises:
        RuntimeError: sqlcipher3 missing, or the destination already exists
    """
    try:
        import sqlcipher3  # type: ignore
    except ImportError:
        raise RuntimeError("sqlcipher3 is required for encryption. Install with: pip install tradebot-backend[encryption]")
    if os.path.exists(encrypted_path):
        raise RuntimeError(f"Refusing to overwrite existing file {encrypted_path}")

    src = sqlite3.connect(unencrypted_path)
    dst = sqlcipher3.connect(encrypted_path)
    try:
        dst.execute(f"PRAGMA key = {_quote(password)}")
        dst.execute("PRAGMA cipher_page_size = 4096")
        sql = "\n".join(src.iterdump())
        dst.executescript(sql)
        dst.commit()
    finally:
        src.close()
        dst.close()
