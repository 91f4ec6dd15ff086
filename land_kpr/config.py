"""Configuration management for land-kpr."""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path

from land_kpr.exceptions import ConfigurationError


@dataclass
class StorageConfig:
    """Storage directory configuration."""

    directory: Path = field(default_factory=lambda: Path("storage"))
    max_backups: int | None = None  # per collection; None keeps every backup
    reconcile_on_load: bool = True


@dataclass
class PenaltyPolicy:
    """Late-fee constants for overdue installments."""

    flat_per_month: Decimal = Decimal("50000")
    cap_pct: Decimal = Decimal("0.10")


@dataclass
class AuthConfig:
    """Shared-secret admin token configuration."""

    admin_token: str | None = None
    header_name: str = "X-Admin-Token"


@dataclass
class LandKprConfig:
    """Main configuration for land-kpr."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    penalty: PenaltyPolicy = field(default_factory=PenaltyPolicy)
    auth: AuthConfig = field(default_factory=AuthConfig)
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "LandKprConfig":
        """Create config from environment variables."""
        import os

        storage_dir = os.getenv("STORAGE_DIR", "").strip()
        if not storage_dir:
            raise ConfigurationError("STORAGE_DIR is required")

        max_backups_str = os.getenv("MAX_BACKUPS", "").strip()
        try:
            max_backups = int(max_backups_str) if max_backups_str else None
        except ValueError as exc:
            raise ConfigurationError(f"MAX_BACKUPS must be an integer: {max_backups_str}") from exc
        if max_backups is not None and max_backups < 0:
            raise ConfigurationError("MAX_BACKUPS must be >= 0")

        storage = StorageConfig(
            directory=Path(storage_dir),
            max_backups=max_backups,
            reconcile_on_load=os.getenv("RECONCILE_ON_LOAD", "true").lower() == "true",
        )

        try:
            penalty = PenaltyPolicy(
                flat_per_month=Decimal(os.getenv("PENALTY_FLAT_PER_MONTH", "50000")),
                cap_pct=Decimal(os.getenv("PENALTY_CAP_PCT", "0.10")),
            )
        except InvalidOperation as exc:
            raise ConfigurationError("penalty settings must be decimal numbers") from exc

        admin_token = os.getenv("ADMIN_TOKEN", "").strip() or None

        return cls(
            storage=storage,
            penalty=penalty,
            auth=AuthConfig(admin_token=admin_token),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )
