"""Tests for config, logging and the admin predicate."""

import json
import logging
import os
import sys
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest

from land_kpr.auth import is_admin, require_admin
from land_kpr.config import AuthConfig, LandKprConfig, PenaltyPolicy, StorageConfig
from land_kpr.exceptions import ConfigurationError, UnauthorizedError
from land_kpr.logging import JsonFormatter, get_logger, setup_logging

ENV_VARS = [
    "STORAGE_DIR",
    "ADMIN_TOKEN",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "PENALTY_FLAT_PER_MONTH",
    "PENALTY_CAP_PCT",
    "MAX_BACKUPS",
    "RECONCILE_ON_LOAD",
]


@pytest.fixture
def clean_env():
    """Environment without any land-kpr variables."""
    env = {k: v for k, v in os.environ.items() if k not in ENV_VARS}
    with patch.dict(os.environ, env, clear=True):
        yield


class TestStorageConfig:
    """Tests for StorageConfig and PenaltyPolicy defaults."""

    def test_default_values(self) -> None:
        config = StorageConfig()

        assert config.directory == Path("storage")
        assert config.max_backups is None
        assert config.reconcile_on_load is True

    def test_penalty_defaults(self) -> None:
        policy = PenaltyPolicy()

        assert policy.flat_per_month == Decimal("50000")
        assert policy.cap_pct == Decimal("0.10")

    def test_auth_defaults(self) -> None:
        auth = AuthConfig()

        assert auth.admin_token is None
        assert auth.header_name == "X-Admin-Token"


class TestLandKprConfig:
    """Tests for LandKprConfig.from_env."""

    def test_from_env_requires_storage_dir(self, clean_env) -> None:
        with pytest.raises(ConfigurationError, match="STORAGE_DIR"):
            LandKprConfig.from_env()

    def test_from_env_default(self, clean_env) -> None:
        with patch.dict(os.environ, {"STORAGE_DIR": "/data/storage"}):
            config = LandKprConfig.from_env()

        assert config.storage.directory == Path("/data/storage")
        assert config.storage.max_backups is None
        assert config.storage.reconcile_on_load is True
        assert config.penalty == PenaltyPolicy()
        assert config.auth.admin_token is None
        assert config.log_level == "INFO"
        assert config.log_format == "standard"

    def test_from_env_custom(self, clean_env) -> None:
        env = {
            "STORAGE_DIR": "/srv/kpr",
            "ADMIN_TOKEN": " secret ",
            "LOG_LEVEL": "DEBUG",
            "LOG_FORMAT": "json",
            "PENALTY_FLAT_PER_MONTH": "75000",
            "PENALTY_CAP_PCT": "0.05",
            "MAX_BACKUPS": "3",
            "RECONCILE_ON_LOAD": "false",
        }
        with patch.dict(os.environ, env):
            config = LandKprConfig.from_env()

        assert config.auth.admin_token == "secret"
        assert config.log_level == "DEBUG"
        assert config.log_format == "json"
        assert config.penalty.flat_per_month == Decimal("75000")
        assert config.penalty.cap_pct == Decimal("0.05")
        assert config.storage.max_backups == 3
        assert config.storage.reconcile_on_load is False

    @pytest.mark.parametrize("value", ["many", "-1"])
    def test_from_env_bad_max_backups(self, clean_env, value: str) -> None:
        with patch.dict(os.environ, {"STORAGE_DIR": "/x", "MAX_BACKUPS": value}):
            with pytest.raises(ConfigurationError):
                LandKprConfig.from_env()

    def test_from_env_bad_penalty(self, clean_env) -> None:
        with patch.dict(os.environ, {"STORAGE_DIR": "/x", "PENALTY_CAP_PCT": "ten"}):
            with pytest.raises(ConfigurationError):
                LandKprConfig.from_env()


class TestAdminPredicate:
    """Tests for the admin token check."""

    def test_matching_token(self) -> None:
        assert is_admin("secret", "secret") is True

    def test_token_is_stripped(self) -> None:
        assert is_admin("  secret ", "secret") is True

    def test_mismatch(self) -> None:
        assert is_admin("guess", "secret") is False

    def test_missing_token(self) -> None:
        assert is_admin(None, "secret") is False
        assert is_admin("", "secret") is False

    def test_unconfigured_means_nobody_is_admin(self) -> None:
        assert is_admin("anything", None) is False
        assert is_admin("", "") is False

    def test_require_admin(self) -> None:
        require_admin("secret", "secret")

        with pytest.raises(UnauthorizedError, match="unauthorized"):
            require_admin("guess", "secret")
        with pytest.raises(UnauthorizedError, match="not configured"):
            require_admin("secret", None)


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_default(self) -> None:
        setup_logging()

        assert logging.getLogger("land_kpr").level == logging.INFO

    def test_setup_logging_debug(self) -> None:
        setup_logging(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG

    def test_setup_logging_invalid_level(self) -> None:
        setup_logging(level="INVALID")

        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_json_format(self) -> None:
        setup_logging(format_type="json")

        logger = logging.getLogger()
        assert any(isinstance(h.formatter, JsonFormatter) for h in logger.handlers)

    def test_setup_logging_replaces_handlers(self) -> None:
        logger = logging.getLogger()
        logger.addHandler(logging.StreamHandler())
        logger.addHandler(logging.StreamHandler())

        setup_logging()

        assert len(logger.handlers) == 1

    def test_faker_logger_quieted(self) -> None:
        setup_logging(level="DEBUG")

        assert logging.getLogger("faker").level == logging.WARNING


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, **kwargs) -> logging.LogRecord:
        defaults = dict(
            name="land_kpr.store",
            level=logging.INFO,
            pathname="/path/to/file.py",
            lineno=42,
            msg="Wrote %s",
            args=("payments.json",),
            exc_info=None,
        )
        defaults.update(kwargs)
        return logging.LogRecord(**defaults)

    def test_format_basic(self) -> None:
        data = json.loads(JsonFormatter().format(self._record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "land_kpr.store"
        assert data["message"] == "Wrote payments.json"
        assert "timestamp" in data

    def test_format_with_exception(self) -> None:
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(self._record(exc_info=exc_info)))

        assert "ValueError" in data["exception"]

    def test_format_with_extra(self) -> None:
        record = self._record()
        record.extra = {"collection": "payments", "id": "payment_1"}

        data = json.loads(JsonFormatter().format(record))

        assert data["collection"] == "payments"
        assert data["id"] == "payment_1"


class TestGetLogger:
    """Tests for get_logger function."""

    def test_get_logger(self) -> None:
        logger = get_logger("land_kpr.engine")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "land_kpr.engine"

    def test_get_logger_same_instance(self) -> None:
        assert get_logger("test.same") is get_logger("test.same")


class TestLandKprInit:
    """Tests for land_kpr __init__.py."""

    def test_version_exported(self) -> None:
        from land_kpr import __version__

        assert isinstance(__version__, str)
