"""Tests for Library Lending configuration.

These tests cover:
1. Default values
2. Environment variable loading
3. Validation of bad values
4. The cached configuration and its reset
"""

import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from library_lending.config import (
    LendingConfig,
    configure_logging,
    get_config,
    reset_config,
)


@pytest.fixture
def in_tmp_dir(tmp_path: Path, monkeypatch, clean_env) -> Path:
    """Run the test from an empty directory so relative paths land in tmp_path."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


class TestLendingConfig:
    """Test configuration loading and validation."""

    def test_default_configuration(self, in_tmp_dir: Path):
        config = LendingConfig()

        assert config.database_path == Path("data/books.db").absolute()
        assert config.database_path.parent.is_dir()
        assert config.busy_timeout == 5.0
        assert config.sql_echo is False
        assert config.default_page_size == 20
        assert config.max_page_size == 100
        assert config.log_level == "INFO"

    def test_environment_variable_loading(self, in_tmp_dir: Path):
        env_vars = {
            "LIBRARY_LENDING_DATABASE_PATH": str(in_tmp_dir / "env" / "lending.db"),
            "LIBRARY_LENDING_BUSY_TIMEOUT": "1.5",
            "LIBRARY_LENDING_SQL_ECHO": "true",
            "LIBRARY_LENDING_LOG_LEVEL": "debug",
        }

        with patch.dict(os.environ, env_vars):
            config = LendingConfig()

        assert config.database_path == in_tmp_dir / "env" / "lending.db"
        assert (in_tmp_dir / "env").is_dir()
        assert config.busy_timeout == 1.5
        assert config.sql_echo is True
        assert config.log_level == "DEBUG"

    def test_invalid_log_level_rejected(self, in_tmp_dir: Path):
        with pytest.raises(ValidationError):
            LendingConfig(log_level="VERBOSE")

    def test_negative_busy_timeout_rejected(self, in_tmp_dir: Path):
        with pytest.raises(ValidationError):
            LendingConfig(busy_timeout=-1)

    def test_database_url_for_file(self, in_tmp_dir: Path):
        config = LendingConfig(database_path=in_tmp_dir / "books.db")
        assert config.get_database_url() == f"sqlite:///{in_tmp_dir / 'books.db'}"
        assert config.is_memory_database is False

    def test_database_url_for_memory(self, in_tmp_dir: Path):
        config = LendingConfig(database_path=":memory:")
        assert config.is_memory_database is True
        assert config.get_database_url() == "sqlite:///:memory:"
        # Nothing is created on disk for an in-memory store
        assert not (in_tmp_dir / "data").exists()


class TestConfigSingleton:
    """Test the cached process-wide configuration."""

    def test_get_config_is_cached(self, in_tmp_dir: Path):
        assert get_config() is get_config()

    def test_reset_config_reloads(self, in_tmp_dir: Path):
        first = get_config()
        reset_config()

        with patch.dict(os.environ, {"LIBRARY_LENDING_LOG_LEVEL": "ERROR"}):
            second = get_config()

        assert second is not first
        assert second.log_level == "ERROR"


def test_configure_logging_quiets_engine_logger(in_tmp_dir: Path):
    configure_logging(LendingConfig(sql_echo=False))
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING
