#!/usr/bin/env python3
"""
Initialize the Library Lending database.

This script:
1. Applies any pending schema migrations
2. Optionally loads a few sample books
3. Verifies the expected tables exist

A failing migration stops the script with a non-zero exit code; a host
must not serve requests against a partially migrated schema.

Usage:
    python scripts/init_database.py [--database-url URL] [--sample-data] [--status]
"""

import argparse
import logging
import sys

from sqlalchemy import text

from library_lending import (
    BookRepository,
    DatabaseManager,
    DuplicateIsbnError,
    MigrationError,
    MigrationRunner,
    configure_logging,
    get_config,
)

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"_migrations", "books", "checkout_history"}

SAMPLE_BOOKS = [
    {
        "title": "Dune",
        "author": "Frank Herbert",
        "isbn": "978-0-441-01359-3",
        "published_year": 1965,
    },
    {
        "title": "The Left Hand of Darkness",
        "author": "Ursula K. Le Guin",
        "isbn": "978-0-441-47812-5",
        "published_year": 1969,
    },
    {
        "title": "Kindred",
        "author": "Octavia E. Butler",
        "isbn": "978-0-8070-8305-2",
        "published_year": 1979,
    },
]


def main() -> int:
    """Main entry point for database initialization."""
    parser = argparse.ArgumentParser(description="Initialize the Library Lending database")
    parser.add_argument(
        "--database-url",
        help="Override the configured database URL",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample books after migrating",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Only report applied and pending migrations",
    )

    args = parser.parse_args()

    config = get_config()
    configure_logging(config)

    db_manager = DatabaseManager(args.database_url, config=config)
    runner = MigrationRunner()

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        return 1

    try:
        if args.status:
            with db_manager.session_scope() as session:
                for name in runner.applied(session):
                    logger.info("applied  %s", name)
                for name in runner.pending(session):
                    logger.info("pending  %s", name)
            return 0

        with db_manager.session_scope() as session:
            applied = runner.apply(session)
        logger.info("Applied %d migration(s)", len(applied))

        if args.sample_data:
            load_sample_data(db_manager)

        with db_manager.session_scope() as session:
            result = session.execute(
                text("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
            )
            tables = {row[0] for row in result}

        missing_tables = EXPECTED_TABLES - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", ", ".join(sorted(missing_tables)))
            return 1

        logger.info("Database initialization complete")
        return 0

    except MigrationError as e:
        logger.error("Schema migration failed, refusing to continue: %s", e)
        return 1
    finally:
        db_manager.close()


def load_sample_data(db_manager: DatabaseManager) -> None:
    """Create the sample books, skipping any whose ISBN is already present."""
    created = 0
    with db_manager.session_scope() as session:
        books = BookRepository(session)
        for fields in SAMPLE_BOOKS:
            try:
                books.create(fields)
                created += 1
            except DuplicateIsbnError:
                logger.debug("Sample book %s already present", fields["isbn"])

    logger.info("Created %d sample book(s)", created)


if __name__ == "__main__":
    sys.exit(main())
