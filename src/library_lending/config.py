"""Configuration management for the Library Lending core.

Settings are loaded from the environment (``LIBRARY_LENDING_`` prefix) or an
optional ``.env`` file and validated with Pydantic v2:
1. Storage - where the SQLite database lives and how long writers wait for it
2. Pagination - default and maximum page sizes for list operations
3. Logging - level and format used by the bootstrap script
"""

import logging
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MEMORY_DATABASE = Path(":memory:")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class LendingConfig(BaseSettings):
    """Runtime configuration for the lending core.

    The core itself only reads storage and pagination settings; the logging
    settings are consumed by whatever bootstraps the process.
    """

    model_config = SettingsConfigDict(
        # LIBRARY_LENDING_DATABASE_PATH, LIBRARY_LENDING_LOG_LEVEL, ...
        env_prefix="LIBRARY_LENDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Storage ===

    database_path: Path = Field(
        default=Path("data/books.db"),
        description="SQLite database file path, or ':memory:' for a private in-memory store",
    )

    busy_timeout: float = Field(
        default=5.0,
        description="Seconds a writer waits for the SQLite write lock before failing",
        ge=0,
    )

    sql_echo: bool = Field(
        default=False,
        description="Log every SQL statement emitted by the engine",
    )

    # === Pagination ===

    default_page_size: int = Field(
        default=20,
        description="Page size used when a list operation is called without a limit",
        ge=1,
    )

    max_page_size: int = Field(
        default=100,
        description="Largest page a caller may request",
        ge=1,
    )

    # === Logging ===

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept lowercase level names from the environment."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        if v == MEMORY_DATABASE:
            return v

        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)

        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")

        return abs_path

    @property
    def is_memory_database(self) -> bool:
        return self.database_path == MEMORY_DATABASE

    def get_database_url(self) -> str:
        """Get the SQLAlchemy database URL for the configured store."""
        if self.is_memory_database:
            return "sqlite:///:memory:"
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for the configuration singleton."""

    _instance: LendingConfig | None = None


def get_config() -> LendingConfig:
    """Get or create the process-wide configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LendingConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Drop the cached configuration (used by tests)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]


def configure_logging(config: LendingConfig | None = None) -> None:
    """Install a root handler at the configured level.

    Library modules only create loggers; this is meant to be called once by
    the process that hosts the core.
    """
    config = config or get_config()
    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)

    # Engine echo goes through the sqlalchemy.engine logger
    if not config.sql_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
