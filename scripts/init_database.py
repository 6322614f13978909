#!/usr/bin/env python3
"""
Initialize the Lending Library database.

Creates all tables, optionally loads sample data, and checks that the
expected tables exist.

Usage:
    python scripts/init_database.py [--drop-existing] [--sample-data] [--database-url URL]
"""

import argparse
import logging
import sys

from sqlalchemy import inspect

from lending_library.database import get_db_manager
from lending_library.database.seed import seed_database

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"users", "books", "loans", "reviews", "notifications"}


def main() -> None:
    parser = argparse.ArgumentParser(description="Initialize the Lending Library database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load generated users, books and loans after creating tables",
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed for sample data")
    parser.add_argument("--database-url", help="Override the configured database URL")
    args = parser.parse_args()

    db_manager = get_db_manager(args.database_url)
    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        logger.info("Tables: %s", ", ".join(sorted(tables)))
        missing = EXPECTED_TABLES - tables
        if missing:
            logger.error("Missing expected tables: %s", ", ".join(sorted(missing)))
            sys.exit(1)

        if args.sample_data:
            with db_manager.session_scope() as session:
                counts = seed_database(session, seed=args.seed)
            logger.info(
                "Loaded %(users)d users, %(books)d books and %(loans)d loans", counts
            )

        logger.info("Database initialization complete")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
