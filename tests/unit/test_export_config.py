"""
Unit tests for src/common/config.py
"""

import pytest
from pydantic import ValidationError

from src.common.config import ExportSettings, get_settings, validate_config_on_startup


class TestExportSettings:

    def test_defaults(self):
        settings = ExportSettings()

        assert settings.page_budget_px == 900
        assert settings.heading_orphan_px == 150
        assert settings.spacer_px == 8
        assert settings.probe_width_px == settings.content_width_px == 700
        assert settings.probe_engine == "browser"
        assert settings.support_phone == "7904838296"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PAGE_BUDGET_PX", "800")
        monkeypatch.setenv("PROBE_ENGINE", "TEXT-METRICS")

        settings = ExportSettings()

        assert settings.page_budget_px == 800
        assert settings.probe_engine == "text-metrics"

    def test_send_pdf_url_joins_base_and_path(self):
        settings = ExportSettings(content_api_url="https://api.example.com/api/", send_pdf_path="mail/send")

        assert settings.send_pdf_url == "https://api.example.com/api/mail/send"

    def test_invalid_url_rejected(self):
        with pytest.raises(ValidationError):
            ExportSettings(content_api_url="api.example.com")

    def test_invalid_logo_url_rejected(self):
        with pytest.raises(ValidationError):
            ExportSettings(logo_url="ftp://example.com/logo.png")

    def test_unknown_probe_engine_rejected(self):
        with pytest.raises(ValidationError):
            ExportSettings(probe_engine="ruler")

    def test_probe_width_must_match_content_width(self):
        with pytest.raises(ValidationError) as exc_info:
            ExportSettings(probe_width_px=650)

        assert "content width" in str(exc_info.value)

    def test_page_width_change_needs_matching_probe_width(self):
        settings = ExportSettings(page_width_px=894, probe_width_px=800)

        assert settings.content_width_px == 800

    def test_orphan_threshold_below_budget(self):
        with pytest.raises(ValidationError):
            ExportSettings(page_budget_px=300, heading_orphan_px=300)


class TestProductionValidation:

    def test_localhost_is_critical_in_production(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()

        with pytest.raises(ValueError, match="CRITICAL"):
            validate_config_on_startup()

    def test_production_warnings(self):
        settings = ExportSettings(environment="production", content_api_url="http://api.example.com")

        issues = settings.validate_production_config()

        assert any("https" in issue for issue in issues)
        assert any("LOGO_URL" in issue for issue in issues)

    def test_development_has_no_issues(self):
        assert ExportSettings().validate_production_config() == []

    def test_startup_returns_settings(self):
        settings = validate_config_on_startup()

        assert settings is get_settings()
