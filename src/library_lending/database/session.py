"""
Database session management for the Library Lending core.

``DatabaseManager`` is the connection provider: it owns the SQLAlchemy engine
for the SQLite store and hands out sessions. The host creates one manager per
process and passes it (or sessions made from it) to the repositories; there is
no module-level manager.

Every DBAPI connection is configured once, when the pool opens it:

1. ``journal_mode=WAL`` so readers never block the single writer
2. ``foreign_keys=ON`` so history rows cannot point at missing books
3. pysqlite's own transaction handling is switched off and SQLAlchemy emits
   ``BEGIN`` itself, which makes DDL transactional and lets write
   transactions start with ``BEGIN IMMEDIATE``

Sessions made by the manager carry its ``LendingConfig`` in ``Session.info``
(page sizes for list operations) and track whether their open transaction has
written anything, which ``write_transaction`` uses to decide whether an open
transaction can be ended before taking the write lock.
"""

import logging
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import LendingConfig, get_config
from .repository import CONFIG_INFO_KEY, LendingError

logger = logging.getLogger(__name__)

# Connection execution option read by the "begin" listener
BEGIN_MODE_OPTION = "sqlite_begin_mode"

IMMEDIATE = {BEGIN_MODE_OPTION: "IMMEDIATE"}

# Session.info flags
WRITES_PENDING = "library_lending.writes_pending"
LOCK_HELD = "library_lending.transaction_lock_held"


class DatabaseManager:
    """
    Owns the engine and session factory for one SQLite store.

    File databases use SQLAlchemy's default pool, so concurrently active
    sessions get their own DBAPI connections and serialize on SQLite's write
    lock. In-memory databases live on a single shared connection (StaticPool);
    the manager's lock lets one session transaction at a time use it.
    """

    def __init__(self, database_url: str | None = None, config: LendingConfig | None = None):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL. If None, built from configuration.
            config: Settings to use instead of the process-wide configuration.
        """
        self.config = config or get_config()

        if database_url is None:
            database_url = self.config.get_database_url()
            logger.info("Using SQLite database at: %s", self.config.database_path)

        if not database_url.startswith("sqlite"):
            raise ValueError(f"Unsupported database URL: {database_url}")

        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None
        self._transaction_lock = threading.Lock() if self.is_memory else None

    @property
    def is_memory(self) -> bool:
        return ":memory:" in self.database_url or self.database_url in ("sqlite://", "sqlite:///")

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            connect_args = {
                "check_same_thread": False,
                # sqlite3 busy handler, in seconds
                "timeout": self.config.busy_timeout,
            }

            if self.is_memory:
                self._engine = create_engine(
                    self.database_url,
                    poolclass=StaticPool,
                    connect_args=connect_args,
                    echo=self.config.sql_echo,
                )
            else:
                self._engine = create_engine(
                    self.database_url,
                    connect_args=connect_args,
                    echo=self.config.sql_echo,
                )

            _install_sqlite_listeners(self._engine)
            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                # Returned models are built before commit; keep rows loaded
                expire_on_commit=False,
                info={CONFIG_INFO_KEY: self.config},
            )
            _track_session_writes(self._session_factory)
            if self._transaction_lock is not None:
                _serialize_transactions(
                    self._session_factory, self._transaction_lock, self.config.busy_timeout
                )
        return self._session_factory

    def create_session(self) -> Session:
        """
        Create a new database session.

        Sessions are not thread-safe; each thread or request takes its own.
        """
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a session that is committed on success and rolled back on error.

        ```python
        with db_manager.session_scope() as session:
            book = BookRepository(session).find_by_id(book_id)
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except LendingError:
            session.rollback()
            raise
        except Exception:
            logger.exception("Database error, rolling back")
            session.rollback()
            raise
        finally:
            session.close()

    def verify_connection(self) -> bool:
        """
        Check that the store answers a trivial query.

        Returns:
            True if the connection works, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection verified")
            return True
        except Exception:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None


def _install_sqlite_listeners(engine: Engine) -> None:
    """Apply per-connection pragmas and take over BEGIN from pysqlite."""

    @event.listens_for(engine, "connect")
    def configure_sqlite_connection(dbapi_connection, connection_record):  # noqa: ARG001
        # pysqlite would otherwise skip BEGIN before DDL and SELECT
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def begin_sqlite_transaction(conn):
        mode = conn.get_execution_options().get(BEGIN_MODE_OPTION, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


def _track_session_writes(factory: sessionmaker) -> None:
    """Flag sessions whose open transaction has written something."""

    @event.listens_for(factory, "after_flush")
    def mark_flushed_writes(session, flush_context):  # noqa: ARG001
        session.info[WRITES_PENDING] = True

    @event.listens_for(factory, "do_orm_execute")
    def mark_statement_writes(orm_execute_state):
        state = orm_execute_state
        if state.is_insert or state.is_update or state.is_delete:
            state.session.info[WRITES_PENDING] = True

    @event.listens_for(factory, "after_transaction_end")
    def clear_writes(session, transaction):
        if transaction.parent is None:
            session.info.pop(WRITES_PENDING, None)


def _serialize_transactions(factory: sessionmaker, lock: threading.Lock, timeout: float) -> None:
    """
    Let one session transaction at a time use a shared connection.

    The lock is taken when a session's transaction starts, before ``BEGIN``
    is sent, and released once it has committed or rolled back. Waiting longer
    than ``timeout`` fails the same way a busy file database does.
    """

    @event.listens_for(factory, "after_transaction_create")
    def acquire_connection(session, transaction):
        if transaction.parent is not None:
            return
        if not lock.acquire(timeout=timeout):
            raise OperationalError("BEGIN", None, sqlite3.OperationalError("database is locked"))
        session.info[LOCK_HELD] = True

    @event.listens_for(factory, "after_transaction_end")
    def release_connection(session, transaction):
        if transaction.parent is None and session.info.pop(LOCK_HELD, False):
            lock.release()


def _has_writes(session: Session) -> bool:
    return bool(
        session.new or session.dirty or session.deleted or session.info.get(WRITES_PENDING)
    )


@contextmanager
def write_transaction(session: Session) -> Generator[Session, None, None]:
    """
    Run a block of writes as one all-or-nothing transaction.

    The transaction is opened with ``BEGIN IMMEDIATE``: the write lock is
    taken before the first read, so a concurrent writer waits for this
    transaction to finish and then reads the committed state. A read-only
    transaction the session still has open (from an earlier lookup) is ended
    first, so the block never works from an outdated snapshot. A transaction
    that already holds writes is joined instead, keeping those writes atomic
    with the block.

    The block is committed when it exits cleanly and rolled back when it
    raises; the exception propagates unchanged.
    """
    if session.in_transaction() and not _has_writes(session):
        session.commit()

    opened = False
    if not session.in_transaction():
        session.connection(execution_options=IMMEDIATE)
        session.info[WRITES_PENDING] = True
        opened = True

    try:
        yield session
        session.commit()
    except LendingError as e:
        session.rollback()
        logger.debug("Rolled back write transaction: %s", e)
        raise
    except Exception:
        logger.exception("Write transaction failed, rolling back")
        session.rollback()
        raise
    finally:
        if opened:
            session.info.pop(WRITES_PENDING, None)
