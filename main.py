#!/usr/bin/env python3
"""
Portal - account and session web application
Local email/password accounts, OAuth sign-in (Google, Facebook, Twitter) and a
server-side session store.
"""

import argparse
import logging
import sys

from dotenv import load_dotenv

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep portal imports lazy (inside functions) so `.env` is loaded before any
# config loader runs.
#


def _postgres_dsn() -> str:
    from portal.storage.config import build_postgres_dsn, load_storage_config

    dsn = build_postgres_dsn(load_storage_config())
    if not dsn:
        raise SystemExit("Postgres is not configured (set POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD)")
    return dsn


def migrate() -> None:
    """Apply pending SQL migrations."""
    from portal.storage.migrate import apply_migrations

    n, versions = apply_migrations(dsn=_postgres_dsn())
    if n:
        print(f"✅ Applied {n} migration(s): {', '.join(versions)}")
    else:
        print("✅ No pending migrations")


def create_user(email: str, password: str) -> None:
    """Create a local account in the configured Postgres user store."""
    from portal.auth.local import create_local_user
    from portal.errors import DuplicateEmailError
    from portal.storage.users import PostgresUserStore

    if len(password) < 4:
        raise SystemExit("Password must be at least 4 characters long")
    try:
        user = create_local_user(PostgresUserStore(_postgres_dsn()), email, password)
    except DuplicateEmailError:
        raise SystemExit(f"Account with email {email} already exists")
    print(f"✅ Created user id={user.id} email={user.email}")


def purge_sessions() -> None:
    """Delete expired sessions from the Postgres session store."""
    from portal.storage.sessions import PostgresSessionStore

    n = PostgresSessionStore(_postgres_dsn()).purge_expired()
    print(f"✅ Purged {n} expired session(s)")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Portal web application",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the web server (PORT from the environment, default 3000)
  python main.py --serve

  # Apply database migrations
  python main.py --migrate

  # Create a local account
  python main.py --create-user alice@example.com --password s3cret
        """,
    )

    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--host", default=None, help="Server bind host (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, default=None, help="Server listen port (default: PORT or 3000)")
    parser.add_argument("--migrate", action="store_true", help="Apply pending Postgres migrations and exit")
    parser.add_argument("--create-user", metavar="EMAIL", help="Create a local account (requires --password)")
    parser.add_argument("--password", help="Password for --create-user")
    parser.add_argument(
        "--purge-sessions", action="store_true", help="Delete expired sessions from the Postgres session store"
    )

    args = parser.parse_args()
    load_dotenv()

    try:
        if args.migrate:
            migrate()
            return

        if args.create_user:
            if not args.password:
                parser.error("--create-user requires --password")
            create_user(args.create_user, args.password)
            return

        if args.purge_sessions:
            purge_sessions()
            return

        if args.serve:
            from portal.api.server import run

            run(host=args.host, port=args.port)
            return

        # No arguments provided
        parser.print_help()

    except Exception as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
