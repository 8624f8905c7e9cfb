"""Tests for export settings."""

from pathlib import Path

import pytest
from reportlab.lib.pagesizes import A4, letter

from notesexporter.config import ExportSettings
from notesexporter.exceptions import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "NOTES_EXPORT_WORKERS",
        "NOTES_EXPORT_TEMP_DIR",
        "NOTES_EXPORT_FALLBACK_NAME",
        "NOTES_EXPORT_PAGE_SIZE",
        "NOTES_EXPORT_MAX_NAME_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)


class TestExportSettings:
    """Tests for ExportSettings."""

    def test_defaults(self):
        settings = ExportSettings()
        assert settings.workers == 4
        assert settings.fallback_name == "Untitled"
        assert settings.temp_dir is None
        assert settings.page_dimensions == letter

    def test_validation(self):
        with pytest.raises(ConfigError):
            ExportSettings(workers=0)
        with pytest.raises(ConfigError):
            ExportSettings(fallback_name="  ")
        with pytest.raises(ConfigError):
            ExportSettings(page_size="legal")
        with pytest.raises(ConfigError):
            ExportSettings(max_name_bytes=4)


class TestFromEnv:
    """Tests for ExportSettings.from_env."""

    def test_unset_keeps_defaults(self):
        assert ExportSettings.from_env() == ExportSettings()

    def test_reads_variables(self, monkeypatch, tmp_path):
        monkeypatch.setenv("NOTES_EXPORT_WORKERS", "2")
        monkeypatch.setenv("NOTES_EXPORT_TEMP_DIR", str(tmp_path))
        monkeypatch.setenv("NOTES_EXPORT_FALLBACK_NAME", "Note")
        monkeypatch.setenv("NOTES_EXPORT_PAGE_SIZE", "A4")
        monkeypatch.setenv("NOTES_EXPORT_MAX_NAME_BYTES", "120")

        settings = ExportSettings.from_env()

        assert settings.workers == 2
        assert settings.temp_dir == Path(tmp_path)
        assert settings.fallback_name == "Note"
        assert settings.page_dimensions == A4
        assert settings.max_name_bytes == 120

    def test_invalid_number(self, monkeypatch):
        monkeypatch.setenv("NOTES_EXPORT_WORKERS", "many")
        with pytest.raises(ConfigError, match="NOTES_EXPORT_WORKERS"):
            ExportSettings.from_env()

    def test_invalid_page_size(self, monkeypatch):
        monkeypatch.setenv("NOTES_EXPORT_PAGE_SIZE", "tabloid")
        with pytest.raises(ConfigError):
            ExportSettings.from_env()
