"""
Tests for the SQL migration runner.

Covers the packaged scripts, idempotent re-runs, ordering by filename and the
all-or-nothing behaviour of a failing script.
"""

from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from library_lending.database import MigrationError, MigrationRunner, apply_migrations
from library_lending.database.migrate import split_statements

PACKAGED = ["001_create_books.sql", "002_create_checkout_history.sql"]


def table_names(session) -> set[str]:
    result = session.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))
    return {row[0] for row in result}


def schema_sql(session) -> list[str]:
    result = session.execute(
        text("SELECT sql FROM sqlite_master WHERE sql IS NOT NULL ORDER BY name")
    )
    return [row[0] for row in result]


def ledger(session) -> list[tuple[str, str]]:
    result = session.execute(text("SELECT name, applied_at FROM _migrations ORDER BY name"))
    return [tuple(row) for row in result]


@pytest.fixture
def bare_session(bare_db_manager):
    session = bare_db_manager.create_session()
    yield session
    session.close()


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    path = tmp_path / "migrations"
    path.mkdir()
    return path


class TestPackagedMigrations:
    def test_fresh_store_gets_full_schema(self, bare_session):
        applied = apply_migrations(bare_session)

        assert applied == PACKAGED
        assert {"_migrations", "books", "checkout_history"} <= table_names(bare_session)
        assert [name for name, _ in ledger(bare_session)] == PACKAGED

    def test_second_run_changes_nothing(self, bare_session):
        apply_migrations(bare_session)
        ledger_before = ledger(bare_session)
        schema_before = schema_sql(bare_session)

        assert apply_migrations(bare_session) == []
        assert ledger(bare_session) == ledger_before
        assert schema_sql(bare_session) == schema_before

    def test_pending_and_applied(self, bare_session):
        runner = MigrationRunner()

        assert runner.applied(bare_session) == []
        assert runner.pending(bare_session) == PACKAGED

        runner.apply(bare_session)

        assert runner.applied(bare_session) == PACKAGED
        assert runner.pending(bare_session) == []

    def test_status_check_constraint(self, bare_session):
        apply_migrations(bare_session)

        with pytest.raises(IntegrityError, match="CHECK constraint failed"):
            bare_session.execute(
                text(
                    "INSERT INTO books (id, title, author, isbn, published_year, status) "
                    "VALUES ('x', 't', 'a', 'i', 2000, 'lost')"
                )
            )
        bare_session.rollback()


class TestCustomMigrations:
    def test_applied_in_filename_order(self, bare_session, migrations_dir):
        # 002 depends on the table from 001; 010 on the column from 002
        (migrations_dir / "010_index.sql").write_text("CREATE INDEX idx_t_note ON t (note);")
        (migrations_dir / "002_column.sql").write_text("ALTER TABLE t ADD COLUMN note TEXT;")
        (migrations_dir / "001_table.sql").write_text("CREATE TABLE t (id INTEGER PRIMARY KEY);")

        applied = MigrationRunner(migrations_dir).apply(bare_session)

        assert applied == ["001_table.sql", "002_column.sql", "010_index.sql"]

    def test_failing_script_is_rolled_back(self, bare_session, migrations_dir):
        (migrations_dir / "001_ok.sql").write_text("CREATE TABLE t1 (id INTEGER);")
        (migrations_dir / "002_broken.sql").write_text(
            "CREATE TABLE t2 (id INTEGER);\nINSERT INTO no_such_table VALUES (1);\n"
        )
        (migrations_dir / "003_later.sql").write_text("CREATE TABLE t3 (id INTEGER);")
        runner = MigrationRunner(migrations_dir)

        with pytest.raises(MigrationError) as exc_info:
            runner.apply(bare_session)

        assert exc_info.value.name == "002_broken.sql"
        tables = table_names(bare_session)
        assert "t1" in tables
        # The half-applied script left nothing behind and later scripts never ran
        assert "t2" not in tables
        assert "t3" not in tables
        assert runner.applied(bare_session) == ["001_ok.sql"]

        (migrations_dir / "002_broken.sql").write_text("CREATE TABLE t2 (id INTEGER);")

        assert runner.apply(bare_session) == ["002_broken.sql", "003_later.sql"]
        assert {"t1", "t2", "t3"} <= table_names(bare_session)

    def test_conflicting_scripts_fail(self, bare_session, migrations_dir):
        (migrations_dir / "001_a.sql").write_text("CREATE TABLE shared (id INTEGER);")
        (migrations_dir / "002_b.sql").write_text("CREATE TABLE shared (name TEXT);")

        with pytest.raises(MigrationError, match="002_b.sql"):
            MigrationRunner(migrations_dir).apply(bare_session)

    def test_empty_directory(self, bare_session, migrations_dir):
        assert MigrationRunner(migrations_dir).apply(bare_session) == []
        assert "_migrations" in table_names(bare_session)


class TestSplitStatements:
    def test_simple_statements(self):
        script = "CREATE TABLE a (id INTEGER);\nCREATE TABLE b (id INTEGER);\n"
        assert split_statements(script) == [
            "CREATE TABLE a (id INTEGER);",
            "CREATE TABLE b (id INTEGER);",
        ]

    def test_semicolon_in_string_literal(self):
        script = "INSERT INTO notes VALUES ('a;b');\nSELECT 1;"
        assert split_statements(script) == ["INSERT INTO notes VALUES ('a;b');", "SELECT 1;"]

    def test_trigger_body_kept_whole(self):
        script = (
            "CREATE TRIGGER touch AFTER UPDATE ON books BEGIN\n"
            "  UPDATE books SET title = title WHERE id = NEW.id;\n"
            "  SELECT 1;\n"
            "END;\n"
            "SELECT 2;"
        )
        statements = split_statements(script)

        assert len(statements) == 2
        assert statements[0].startswith("CREATE TRIGGER")
        assert statements[0].endswith("END;")
        assert statements[1] == "SELECT 2;"

    def test_comments_and_missing_final_semicolon(self):
        script = "-- leading comment\nCREATE TABLE a (id INTEGER);\nSELECT 1\n-- trailing\n"
        statements = split_statements(script)

        assert len(statements) == 2
        assert statements[0].endswith("CREATE TABLE a (id INTEGER);")
        assert statements[1].startswith("SELECT 1")

    def test_comment_only_script(self):
        assert split_statements("-- nothing here\n") == []
