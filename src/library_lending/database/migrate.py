"""
SQL migration runner for the Library Lending store.

Schema changes live as ``.sql`` files in ``migrations/``. Filenames define the
order they are applied in (plain lexicographic sort), so new scripts must sort
after the existing ones: ``003_...sql`` follows ``002_...sql``.

Each script is applied at most once. The ``_migrations`` ledger table records
the name of every applied script; the script's statements and its ledger row
are written in one transaction, so a script that fails halfway leaves neither
behind and is retried from the start on the next run.
"""

import logging
import sqlite3
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .repository import MigrationError
from .schema import MigrationRecord, utc_now
from .session import write_transaction

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS _migrations (
  name       TEXT PRIMARY KEY,
  applied_at TEXT NOT NULL
)
"""


def split_statements(script: str) -> list[str]:
    """
    Split a SQL script into individual statements.

    A ``;`` only ends a statement when SQLite agrees the text so far is
    complete, so semicolons inside string literals and trigger bodies do not
    split anything.
    """
    statements = []
    buffer = ""
    for piece in script.split(";"):
        buffer += piece + ";"
        if sqlite3.complete_statement(buffer):
            if _has_sql(buffer):
                statements.append(buffer.strip())
            buffer = ""

    # split() adds a ";" after the last piece that the script never had
    leftover = buffer[:-1].strip()
    if _has_sql(leftover):
        statements.append(leftover)

    return statements


def _has_sql(chunk: str) -> bool:
    """True when the chunk holds more than whitespace, semicolons and -- comments."""
    for line in chunk.splitlines():
        line = line.strip().strip(";").strip()
        if line and not line.startswith("--"):
            return True
    return False


class MigrationRunner:
    """Applies the ``.sql`` scripts of one directory in filename order."""

    def __init__(self, migrations_dir: Path | str = MIGRATIONS_DIR):
        self.migrations_dir = Path(migrations_dir)

    def scripts(self) -> list[Path]:
        """All migration scripts, in application order."""
        return sorted(self.migrations_dir.glob("*.sql"), key=lambda p: p.name)

    def applied(self, session: Session) -> list[str]:
        """Names recorded in the ledger, in the order they were applied."""
        with write_transaction(session):
            session.connection().exec_driver_sql(LEDGER_DDL)
            return self._applied_names(session)

    def pending(self, session: Session) -> list[str]:
        """Names of scripts that have not been applied yet."""
        applied = set(self.applied(session))
        return [script.name for script in self.scripts() if script.name not in applied]

    def apply(self, session: Session) -> list[str]:
        """
        Apply every script that is not yet in the ledger.

        Safe to call on every start; a second call with nothing pending does
        nothing.

        Returns:
            Names of the scripts applied by this call

        Raises:
            MigrationError: A script failed. It was rolled back and no later
                script was attempted.
        """
        applied = set(self.applied(session))
        newly_applied = []

        for script in self.scripts():
            if script.name in applied:
                logger.debug("Skipping already applied migration %s", script.name)
                continue

            statements = split_statements(script.read_text(encoding="utf-8"))
            try:
                with write_transaction(session):
                    connection = session.connection()
                    for statement in statements:
                        connection.exec_driver_sql(statement)
                    session.add(MigrationRecord(name=script.name, applied_at=utc_now()))
            except SQLAlchemyError as e:
                raise MigrationError(script.name, e) from e

            logger.info("Applied migration %s (%d statements)", script.name, len(statements))
            newly_applied.append(script.name)

        if not newly_applied:
            logger.debug("Schema is up to date")

        return newly_applied

    @staticmethod
    def _applied_names(session: Session) -> list[str]:
        query = select(MigrationRecord.name).order_by(
            MigrationRecord.applied_at, MigrationRecord.name
        )
        return list(session.scalars(query))


def apply_migrations(session: Session, migrations_dir: Path | str | None = None) -> list[str]:
    """Apply the packaged migrations (or those in ``migrations_dir``)."""
    runner = MigrationRunner(migrations_dir or MIGRATIONS_DIR)
    return runner.apply(session)
