"""Tests for configuration loading and the derived lending policy."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from lending_library.config import LibraryConfig, get_config, reset_config
from lending_library.policies import LoanPolicy


class TestLibraryConfig:
    def test_defaults(self):
        config = LibraryConfig()

        assert config.server_name == "lending-library"
        assert config.transport == "stdio"
        assert config.loan_period_days == 14
        assert config.max_loans_per_user == 5
        assert config.max_renewals == 2
        assert config.renewal_extension_days == 7
        assert config.penalty_per_day == 0.25
        assert config.max_penalty == 20.0
        assert config.reminder_days_ahead == 3
        assert config.notification_retention_days == 30
        assert config.send_to_logfire is False

    def test_environment_variable_loading(self, tmp_path: Path):
        env_vars = {
            "LENDING_LIBRARY_SERVER_NAME": "branch-library",
            "LENDING_LIBRARY_DATABASE_PATH": str(tmp_path / "branch.db"),
            "LENDING_LIBRARY_MAX_LOANS_PER_USER": "3",
            "LENDING_LIBRARY_PENALTY_PER_DAY": "0.5",
            "LENDING_LIBRARY_DEBUG": "true",
        }
        with patch.dict(os.environ, env_vars):
            config = LibraryConfig()

        assert config.server_name == "branch-library"
        assert config.database_path == tmp_path / "branch.db"
        assert config.max_loans_per_user == 3
        assert config.penalty_per_day == 0.5
        assert config.is_development

    def test_database_path_is_made_absolute(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = LibraryConfig(database_path=Path("nested/library.db"))
        assert config.database_path.is_absolute()
        assert config.database_path.parent.is_dir()

    def test_database_url_overrides_path(self):
        config = LibraryConfig(database_url="postgresql://library@localhost/library")
        assert config.get_database_url() == "postgresql://library@localhost/library"

    def test_sqlite_url_from_path(self, tmp_path: Path):
        config = LibraryConfig(database_path=tmp_path / "x.db")
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'x.db'}"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"server_name": "Lending Library"},
            {"transport": "websocket"},
            {"http_port": 80},
            {"max_renewals": 3},
            {"loan_period_days": 0},
            {"penalty_per_day": -1},
            {"log_level": "TRACE"},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(ValidationError):
            LibraryConfig(**overrides)

    def test_loan_policy_follows_settings(self):
        config = LibraryConfig(loan_period_days=21, max_penalty=10.0, max_renewals=1)
        policy = config.loan_policy

        assert isinstance(policy, LoanPolicy)
        assert policy.loan_period_days == 21
        assert policy.max_penalty == 10.0
        assert policy.max_renewals == 1


class TestConfigSingleton:
    def test_get_config_is_cached_until_reset(self):
        first = get_config()
        assert get_config() is first

        reset_config()
        assert get_config() is not first
