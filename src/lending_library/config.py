"""Configuration management for the Lending Library backend.

Settings are loaded from environment variables prefixed with
``LENDING_LIBRARY_`` (or a local ``.env`` file) and validated with
Pydantic v2. The lending rules live here as well so that loan limits,
renewal caps and penalty rates can be changed per deployment.
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .policies import LoanPolicy


class LibraryConfig(BaseSettings):
    """Lending Library configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LENDING_LIBRARY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="lending-library",
        description="Server name announced to MCP clients",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    # === Database Configuration ===

    database_path: Path = Field(
        default=Path("data/library.db"),
        description="SQLite database file path",
    )

    database_url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides database_path (e.g. PostgreSQL)",
    )

    # === Transport Configuration ===

    transport: str = Field(
        default="stdio",
        description="MCP transport",
        pattern=r"^(stdio|http)$",
    )

    http_host: str = Field(
        default="127.0.0.1",
        description="Bind address for the HTTP transport and REST routes",
    )

    http_port: int = Field(
        default=8080,
        description="Port for the HTTP transport and REST routes",
        ge=1024,
        le=65535,
    )

    # === Lending Policy ===

    loan_period_days: int = Field(default=14, ge=1, le=365)
    max_loans_per_user: int = Field(default=5, ge=1, le=50)
    max_renewals: int = Field(default=2, ge=0, le=10)
    renewal_extension_days: int = Field(default=7, ge=1, le=90)
    penalty_per_day: float = Field(
        default=0.25,
        description="Penalty charged per overdue day",
        ge=0.0,
    )
    max_penalty: float = Field(
        default=20.0,
        description="Upper bound for a single loan's penalty",
        ge=0.0,
    )

    # === Maintenance Jobs ===

    reminder_days_ahead: int = Field(default=3, ge=1, le=30)
    notification_retention_days: int = Field(default=30, ge=1)
    overdue_sweep_interval_seconds: int = Field(default=3600, ge=10)

    # === Development / Observability ===

    debug: bool = Field(
        default=False,
        description="Expose internal error detail in responses",
    )

    log_level: str = Field(
        default="INFO",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    logfire_token: str | None = Field(default=None, repr=False)
    send_to_logfire: bool = Field(default=False)
    environment: str = Field(default="development")

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Resolve the database path and make sure its directory exists."""
        abs_path = v.absolute()
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        if not abs_path.parent.is_dir():
            raise ValueError(f"Database directory {abs_path.parent} is not accessible")
        return abs_path

    @field_validator("max_renewals")
    @classmethod
    def validate_max_renewals(cls, v: int) -> int:
        # The loans table carries a CHECK on renewal_count <= 2
        if v > 2:
            raise ValueError("max_renewals cannot exceed 2")
        return v

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def loan_policy(self) -> LoanPolicy:
        """Lending rules derived from this configuration."""
        return LoanPolicy(
            loan_period_days=self.loan_period_days,
            max_loans_per_user=self.max_loans_per_user,
            max_renewals=self.max_renewals,
            renewal_extension_days=self.renewal_extension_days,
            penalty_per_day=self.penalty_per_day,
            max_penalty=self.max_penalty,
        )

    def get_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.database_path}"


class _ConfigStore:
    """Internal storage for configuration singleton."""

    _instance: LibraryConfig | None = None


def get_config() -> LibraryConfig:
    """Get or create the global configuration instance."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = LibraryConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
