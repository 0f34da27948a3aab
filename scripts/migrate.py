#!/usr/bin/env python
"""Schema migration CLI for the trade database.

Usage:
    python scripts/migrate.py --db tradebot.db list
    python scripts/migrate.py --db tradebot.db apply [--dry-run]
    python scripts/migrate.py --db tradebot.db rollback --version 2
    python scripts/migrate.py --db tradebot.db rollback --last --yes
    python scripts/migrate.py --db tradebot.db --password ... encrypt --output tradebot.enc.db

Rolling back migration 1 drops the trades and positions tables. ``encrypt``
writes a sqlcipher copy of a plaintext database and needs the ``encryption``
extra; point persistence.db_path at the copy afterwards.
"""
import argparse
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from tradebot.db_encryption import encrypt_existing_db, get_connection
from tradebot.db_migrations import MIGRATIONS, applied_at, applied_versions, apply_migrations, pending_versions, rollback_migration


def cmd_list(conn, args):
    applied = applied_at(conn)
    print("Available migrations:")
    for version, migration in sorted(MIGRATIONS.items()):
        status = "applied" if version in applied else "pending"
        print(f"  {version}: {status} - {migration.description} (applied_at={applied.get(version, '-')})")


def cmd_apply(conn, args):
    if args.dry_run:
        pending = pending_versions(conn)
        print(f"Pending migrations: {pending}" if pending else "No pending migrations; database up-to-date.")
        return
    applied = apply_migrations(conn)
    print(f"Applied migrations: {applied}" if applied else "No migrations applied; database up-to-date.")


def _confirmed(version: int) -> bool:
    answer = input(f"Rollback migration {version}? This may DROP trade data. Type 'yes' to continue: ")
    return answer.strip().lower() == "yes"


def cmd_rollback(conn, args):
    if args.version is not None:
        version = args.version
    else:
        versions = applied_versions(conn)
        if not versions:
            print("No applied migrations to rollback")
            return
        version = versions[-1]

    if args.dry_run:
        print(f"Would rollback migration {version} (dry-run)")
        return
    if not args.yes:
        try:
            if not _confirmed(version):
                print("Aborted.")
                return
        except EOFError:
            print("No confirmation on stdin; pass --yes to rollback non-interactively.")
            return
    rollback_migration(conn, version)
    print(f"Rolled back migration {version}")


def cmd_encrypt(args):
    if not args.password:
        raise RuntimeError("encrypt needs --password or TRADEBOT_DB_PASSWORD")
    if not Path(args.db).exists():
        raise RuntimeError(f"Database {args.db} does not exist")
    encrypt_existing_db(args.db, args.output, args.password)
    print(f"Encrypted copy of {args.db} written to {args.output}")


def build_parser():
    parser = argparse.ArgumentParser(description="Manage trade database schema migrations")
    parser.add_argument("--db", required=True, help="Path to sqlite DB file")
    parser.add_argument("--password", default=os.getenv("TRADEBOT_DB_PASSWORD"), help="sqlcipher password (encrypted databases)")
    sub = parser.add_subparsers(dest="cmd")

    list_p = sub.add_parser("list", help="Show every migration and whether it is applied")
    list_p.set_defaults(func=cmd_list)

    apply_p = sub.add_parser("apply", help="Apply pending migrations")
    apply_p.add_argument("--dry-run", action="store_true", help="Show pending migrations without applying them")
    apply_p.set_defaults(func=cmd_apply)

    rb = sub.add_parser("rollback", help="Undo a migration")
    target = rb.add_mutually_exclusive_group(required=True)
    target.add_argument("--version", type=int, help="Rollback a specific migration version")
    target.add_argument("--last", action="store_true", help="Rollback the last applied migration")
    rb.add_argument("--dry-run", action="store_true", help="Show which migration would be rolled back")
    rb.add_argument("--yes", action="store_true", help="Do not prompt for confirmation")
    rb.set_defaults(func=cmd_rollback)

    enc = sub.add_parser("encrypt", help="Write an encrypted (sqlcipher) copy of a plaintext database")
    enc.add_argument("--output", required=True, help="Path of the encrypted copy; must not exist")
    enc.set_defaults(func=cmd_encrypt, plaintext_source=True)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.cmd:
        parser.print_help()
        return 0

    if getattr(args, "plaintext_source", False):
        try:
            args.func(args)
        except RuntimeError as e:
            print(f"Error: {e}")
            return 1
        return 0

    db = Path(args.db)
    db.parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(str(db), args.password)
    try:
        args.func(conn, args)
    except RuntimeError as e:
        print(f"Error: {e}")
        return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
