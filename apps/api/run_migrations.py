#!/usr/bin/env python3
"""Database bootstrap for the API container.

    python run_migrations.py                # wait for Postgres, upgrade to head
    python run_migrations.py --check-heads  # CI: fail unless there is one head

The create_all fallback only ever runs against an empty database; anything
holding users must go through Alembic.
"""

import argparse
import os
import sys
import time
from dotenv import load_dotenv

load_dotenv()

DB_WAIT_SECONDS = int(os.getenv("MIGRATION_DB_WAIT_SECONDS", "30"))


def _alembic_config():
    from alembic.config import Config

    here = os.path.dirname(os.path.abspath(__file__))
    return Config(os.path.join(here, "alembic.ini"))


def migration_heads() -> list[str]:
    from alembic.script import ScriptDirectory

    return list(ScriptDirectory.from_config(_alembic_config()).get_heads())


def wait_for_database(timeout_seconds: int = DB_WAIT_SECONDS) -> bool:
    from core.database import check_db_connection

    for attempt in range(1, timeout_seconds + 1):
        if check_db_connection():
            return True
        print(f"Database is unavailable - sleeping (attempt {attempt}/{timeout_seconds})")
        time.sleep(1)
    return False


def user_count() -> int:
    from sqlalchemy import inspect, text
    from core.database import engine

    if not inspect(engine).has_table("users"):
        return 0
    with engine.connect() as conn:
        return conn.execute(text("SELECT COUNT(*) FROM users")).scalar() or 0


def create_schema_directly():
    """Build the schema from the models on an empty database, then stamp head."""
    from alembic import command
    from core.database import Base, engine
    import models  # noqa: F401  (registers tables on Base.metadata)

    existing = user_count()
    if existing:
        raise RuntimeError(
            f"Refusing direct schema creation on non-empty DB (users={existing}). "
            f"Run Alembic migrations instead."
        )

    Base.metadata.create_all(engine, checkfirst=True)
    command.stamp(_alembic_config(), "head")


def check_heads() -> int:
    heads = migration_heads()
    if len(heads) != 1:
        print(f"ERROR: expected exactly one migration head, found {len(heads)}: {', '.join(heads) or 'none'}")
        return 1
    print(f"Single migration head: {heads[0]}")
    return 0


def upgrade() -> int:
    from alembic import command

    print("Waiting for database to be ready...")
    if not wait_for_database():
        print("ERROR: Database is not ready after maximum retries")
        return 1

    try:
        command.upgrade(_alembic_config(), "head")
        print("Migrations completed successfully!")
        return 0
    except Exception as e:
        print(f"ERROR: Alembic upgrade failed: {e}")

    try:
        create_schema_directly()
    except Exception as e:
        print(f"ERROR: Schema bootstrap failed: {e}")
        return 1
    print("Schema bootstrap completed via create_all fallback.")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Apply Kava Training database migrations")
    parser.add_argument("--check-heads", action="store_true", help="only verify the migration graph has one head")
    args = parser.parse_args(argv)
    return check_heads() if args.check_heads else upgrade()


if __name__ == '__main__':
    sys.exit(main())
