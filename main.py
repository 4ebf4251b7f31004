#!/usr/bin/env python3
"""
Portfolio console - owner dashboard API for a personal portfolio site.
"""

import argparse
import getpass
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep folio imports lazy (inside functions) so `--migrate` doesn't pull in FastAPI.
#


def create_user(username: str, email: str, password: str, name: str = "") -> int:
    """Create a local console user (there is no self-registration)."""
    import psycopg

    from folio.auth.local import create_local_user
    from folio.docstore.config import build_postgres_dsn, load_docstore_config

    dsn = build_postgres_dsn(load_docstore_config())
    if not dsn:
        print("Error: Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars).", file=sys.stderr)
        return 2

    with psycopg.connect(dsn) as conn:
        try:
            user = create_local_user(conn, email, username, password, name or None, created_by="cli")
        except psycopg.IntegrityError:
            print(f"Error: A user with username '{username}' or email '{email}' already exists", file=sys.stderr)
            return 1
    print(f"Created user {user.username} <{user.email}> (id={user.id})")
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Portfolio console API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API server
  python main.py --serve --port 8080

  # Apply pending DB migrations
  python main.py --migrate

  # Create a console user
  python main.py --create-user owner --email owner@example.com
        """,
    )

    parser.add_argument("--serve", action="store_true", help="Run the HTTP API server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")
    parser.add_argument("--migrate", action="store_true", help="Apply pending Postgres migrations and exit")
    parser.add_argument("--create-user", metavar="USERNAME", help="Create a local console user")
    parser.add_argument("--email", help="Email for --create-user")
    parser.add_argument("--password", help="Password for --create-user (prompted when omitted)")
    parser.add_argument("--name", default="", help="Display name for --create-user")

    args = parser.parse_args()

    if args.serve:
        from folio.api.server import run

        run(host=args.host, port=args.port)
        return 0

    if args.migrate:
        from folio.docstore.migrate import main as migrate_main

        return migrate_main()

    if args.create_user:
        if not args.email:
            parser.error("--create-user requires --email")
        password = args.password or getpass.getpass("Password: ")
        from folio.auth.reset import validate_new_password

        problem = validate_new_password(password)
        if problem:
            print(f"Error: {problem}", file=sys.stderr)
            return 1
        return create_user(args.create_user, args.email, password, args.name)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
