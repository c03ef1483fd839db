"""Tests for environment-driven configuration."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from avisos.config import DEFAULT_USERS, MILLIS_PER_DAY, AvisosConfig


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "AVISOS_BASE_DIR",
        "AVISOS_DATABASE_PATH",
        "AVISOS_IN_MEMORY_DB",
        "AVISOS_RETENTION_DAYS",
        "AVISOS_SWEEP_INTERVAL_HOURS",
        "AVISOS_SWEEP_RETRY_SECONDS",
        "AVISOS_AVAILABLE_USERS",
        "AVISOS_LOG_DIR",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestDefaults:
    """Defaults when no environment is set."""

    def test_defaults(self, clean_env):
        cfg = AvisosConfig()
        assert cfg.retention_days == 15
        assert cfg.sweep_interval_hours == 24
        assert cfg.sweep_retry_seconds == 300
        assert cfg.in_memory_db is False
        assert cfg.available_users == list(DEFAULT_USERS)
        assert cfg.database_path == Path("data/db/avisos.db")
        assert cfg.log_dir is None

    def test_retention_millis(self, clean_env):
        assert AvisosConfig().retention_millis == 15 * MILLIS_PER_DAY == 1_296_000_000


class TestEnvironment:
    """Values read from AVISOS_* variables."""

    def test_numeric_values(self, clean_env):
        clean_env.setenv("AVISOS_RETENTION_DAYS", "30")
        clean_env.setenv("AVISOS_SWEEP_INTERVAL_HOURS", "6")
        clean_env.setenv("AVISOS_SWEEP_RETRY_SECONDS", "45")
        cfg = AvisosConfig()
        assert cfg.retention_days == 30
        assert cfg.sweep_interval_hours == 6.0
        assert cfg.sweep_retry_seconds == 45.0

    def test_user_list(self, clean_env):
        clean_env.setenv("AVISOS_AVAILABLE_USERS", " Isa, Joan ,, ")
        assert AvisosConfig().available_users == ["Isa", "Joan"]

    @pytest.mark.parametrize("raw,expected", [("true", True), ("1", True), ("no", False)])
    def test_in_memory_flag(self, clean_env, raw, expected):
        clean_env.setenv("AVISOS_IN_MEMORY_DB", raw)
        assert AvisosConfig().in_memory_db is expected

    def test_log_dir(self, clean_env, tmp_path):
        clean_env.setenv("AVISOS_LOG_DIR", str(tmp_path))
        assert AvisosConfig().log_dir == tmp_path

    @pytest.mark.parametrize(
        "key,value",
        [
            ("AVISOS_RETENTION_DAYS", "0"),
            ("AVISOS_SWEEP_INTERVAL_HOURS", "0"),
            ("AVISOS_SWEEP_RETRY_SECONDS", "-1"),
        ],
    )
    def test_invalid_values_rejected(self, clean_env, key, value):
        clean_env.setenv(key, value)
        with pytest.raises(ValidationError):
            AvisosConfig()

    def test_long_interval_warns(self, clean_env, caplog):
        clean_env.setenv("AVISOS_SWEEP_INTERVAL_HOURS", "48")
        with caplog.at_level("WARNING", logger="avisos.config"):
            AvisosConfig()
        assert "exceeds one day" in caplog.text


class TestDatabaseUrl:
    """Tests for get_db_url and path resolution."""

    def test_in_memory_url(self, clean_env):
        assert AvisosConfig(in_memory_db=True).get_db_url() == "sqlite:///:memory:"

    def test_relative_path_under_base_dir(self, clean_env, tmp_path):
        cfg = AvisosConfig(base_dir=tmp_path, database_path=Path("db/notes.db"))
        url = cfg.get_db_url()
        assert url == f"sqlite:///{tmp_path / 'db' / 'notes.db'}"
        assert (tmp_path / "db").is_dir()

    def test_absolute_path_kept(self, clean_env, tmp_path):
        target = tmp_path / "abs.db"
        cfg = AvisosConfig(base_dir=Path("/elsewhere"), database_path=target)
        assert cfg.get_absolute_path(target) == target
