"""Tests for settings loading and database URL normalisation."""

import pytest

from team_movements.core.config import DatabaseSettings, ImportSettings
from team_movements.core.exceptions import ConfigurationError


class TestConnectionUrl:
    @pytest.mark.parametrize("url", [
        "postgres://user:pw@db:5432/movements",
        "postgresql://user:pw@db:5432/movements",
    ])
    def test_plain_urls_get_the_asyncpg_driver(self, url):
        settings = DatabaseSettings(DATABASE_URL=url)

        assert settings.connection_url == "postgresql+asyncpg://user:pw@db:5432/movements"

    def test_sslmode_becomes_ssl(self):
        settings = DatabaseSettings(DATABASE_URL="postgresql://u:p@db/m?sslmode=require")

        assert settings.connection_url == "postgresql+asyncpg://u:p@db/m?ssl=require"

    def test_asyncpg_urls_are_kept(self):
        url = "postgresql+asyncpg://u:p@db/m"

        assert DatabaseSettings(DATABASE_URL=url).connection_url == url

    @pytest.mark.parametrize("url", ["", "mysql://u:p@db/m"])
    def test_unusable_urls_are_rejected(self, url):
        with pytest.raises(ConfigurationError):
            DatabaseSettings(DATABASE_URL=url).connection_url


class TestImportSettings:
    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("IMPORT_BATCH_SIZE", "7")
        monkeypatch.setenv("IMPORT_CONCURRENCY_MULTIPLIER", "3")

        settings = ImportSettings()

        assert settings.batch_size == 7
        assert settings.max_concurrency >= 3
        assert settings.max_concurrency % 3 == 0

    def test_defaults(self, monkeypatch):
        for name in ("IMPORT_BATCH_SIZE", "ANALYSIS_BATCH_SIZE", "IMPORT_FILE_PATTERN"):
            monkeypatch.delenv(name, raising=False)

        settings = ImportSettings()

        assert settings.batch_size == 20
        assert settings.analysis_batch_size == 100
        assert settings.file_pattern == "tms_team_movements_team_movement_*.json"
