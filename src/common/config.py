"""
Export Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
Values may also come from a local .env file.
"""

import logging
from functools import lru_cache
from typing import List

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

# Fixed side margins of the page content region (see src/export/templates.py)
CONTENT_MARGIN_LEFT_PX = 40
CONTENT_MARGIN_RIGHT_PX = 54

DEFAULT_FONT_STACK = "'TAU-Paalai', 'Nirmala UI', Arial, sans-serif"
DEFAULT_FOOTER_TAGLINE = "நினை சக்தி பிறக்கும்; செய் வெற்றி கிடைக்கும்"


class ExportSettings(BaseSettings):
    """
    Export pipeline configuration with validation.

    All settings can be overridden via environment variables.
    Validation happens at startup to fail fast on misconfiguration.
    """

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix, use exact env var names
        case_sensitive=False,  # CONTENT_API_URL = content_api_url
        extra="ignore",
    )

    environment: str = Field(
        default="development",
        description="Environment: development, staging, production"
    )

    # === Collaborator endpoints ===
    content_api_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the hierarchy/content REST API"
    )
    content_api_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=120,
        description="Timeout for hierarchy/content API calls"
    )
    send_pdf_path: str = Field(
        default="/export/send-pdf",
        description="Path (relative to content_api_url) of the email delivery endpoint"
    )
    delivery_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=600,
        description="Timeout for the email delivery submission"
    )
    logo_url: str = Field(
        default="",
        description="Header logo URL; empty disables the logo"
    )
    support_phone: str = Field(
        default="7904838296",
        description="Contact number surfaced on failed exports"
    )

    # === Page template ===
    footer_tagline: str = Field(default=DEFAULT_FOOTER_TAGLINE)
    page_label: str = Field(default="பக்கம்", description="Prefix of the 'N / total' counter")
    font_stack: str = Field(default=DEFAULT_FONT_STACK)

    # === Pagination ===
    page_budget_px: int = Field(default=900, ge=100, description="Max content height per page")
    heading_orphan_px: int = Field(
        default=150,
        ge=0,
        description="Minimum space left on a page to start a heading there"
    )
    spacer_px: int = Field(default=8, ge=0, description="Gap inserted between blocks")
    probe_width_px: int = Field(default=700, ge=100)
    font_size_pt: float = Field(default=14.0, gt=0)
    line_height: float = Field(default=1.6, gt=0)
    probe_engine: str = Field(
        default="browser",
        description="Height probe engine: browser or text-metrics"
    )

    # === Page geometry / rasterization ===
    page_width_px: int = Field(default=794, ge=200)
    page_height_px: int = Field(default=1123, ge=200)
    raster_scale: float = Field(default=2.0, gt=0, le=4)

    # === Playwright ===
    playwright_headless: bool = Field(default=True)
    playwright_timeout_ms: int = Field(default=30000, ge=1000)

    # === Logging ===
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="simple", description="simple or json")
    debug_mode: bool = Field(default=False)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is a known value."""
        allowed = {"development", "staging", "production"}
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of: {', '.join(sorted(allowed))}")
        return v_lower

    @field_validator("content_api_url")
    @classmethod
    def validate_url_format(cls, v: str) -> str:
        """Basic URL format validation."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL format: {v}")
        return v.rstrip("/")

    @field_validator("logo_url")
    @classmethod
    def validate_logo_url(cls, v: str) -> str:
        if v and not v.startswith(("http://", "https://", "data:")):
            raise ValueError(f"Invalid logo URL: {v}")
        return v

    @field_validator("send_pdf_path")
    @classmethod
    def validate_send_pdf_path(cls, v: str) -> str:
        return v if v.startswith("/") else f"/{v}"

    @field_validator("probe_engine")
    @classmethod
    def validate_probe_engine(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"browser", "text-metrics"}:
            raise ValueError("probe_engine must be 'browser' or 'text-metrics'")
        return v_lower

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in {"simple", "json"}:
            raise ValueError("log_format must be 'simple' or 'json'")
        return v_lower

    @model_validator(mode="after")
    def validate_geometry(self) -> "ExportSettings":
        """Probe width must equal the page content width, or measured heights drift."""
        content_width = self.page_width_px - CONTENT_MARGIN_LEFT_PX - CONTENT_MARGIN_RIGHT_PX
        if self.probe_width_px != content_width:
            raise ValueError(
                f"probe_width_px ({self.probe_width_px}) must equal the page content "
                f"width ({content_width})"
            )
        if self.heading_orphan_px >= self.page_budget_px:
            raise ValueError("heading_orphan_px must be smaller than page_budget_px")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def content_width_px(self) -> int:
        return self.page_width_px - CONTENT_MARGIN_LEFT_PX - CONTENT_MARGIN_RIGHT_PX

    @property
    def send_pdf_url(self) -> str:
        return f"{self.content_api_url}{self.send_pdf_path}"

    def validate_production_config(self) -> List[str]:
        """
        Validate configuration is suitable for production.

        Returns list of warning/error messages.
        """
        issues = []

        if self.is_production:
            if "localhost" in self.content_api_url:
                issues.append("CRITICAL: CONTENT_API_URL points at localhost in production")
            if not self.content_api_url.startswith("https://"):
                issues.append("WARNING: CONTENT_API_URL is not using https")
            if not self.logo_url:
                issues.append("WARNING: LOGO_URL not configured, pages render without a logo")

        return issues


@lru_cache()
def get_settings() -> ExportSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for performance.
    Use this function to access configuration throughout the app.
    """
    return ExportSettings()


def validate_config_on_startup() -> ExportSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs warnings for non-critical issues.
    """
    try:
        settings = get_settings()
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")

    for issue in settings.validate_production_config():
        if issue.startswith("CRITICAL"):
            raise ValueError(issue)
        logger.warning(issue)

    logger.info(f"Configuration loaded: environment={settings.environment}")
    logger.info(f"  content_api_url={settings.content_api_url}")
    logger.info(f"  page_budget={settings.page_budget_px}px heading_orphan={settings.heading_orphan_px}px")
    logger.info(f"  probe_engine={settings.probe_engine} probe_width={settings.probe_width_px}px")
    logger.info(f"  logo={'configured' if settings.logo_url else 'none'}")
    return settings
