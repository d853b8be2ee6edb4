"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that keep tests hermetic:
- Environment variable isolation (no real API URLs or logo fetches)
- A fresh settings cache per test

and shared helpers for the export pipeline tests.
"""

import math
import os
import re

import pytest

# Set test environment BEFORE any imports to prevent settings from loading real values
os.environ["ENVIRONMENT"] = "development"

from src.common.config import ExportSettings, get_settings

_ENV_VARS = (
    "CONTENT_API_URL",
    "SEND_PDF_PATH",
    "LOGO_URL",
    "SUPPORT_PHONE",
    "PROBE_ENGINE",
    "PAGE_BUDGET_PX",
    "HEADING_ORPHAN_PX",
    "SPACER_PX",
    "PROBE_WIDTH_PX",
    "PAGE_WIDTH_PX",
    "DEBUG_MODE",
    "LOG_LEVEL",
    "LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real configuration.

    This prevents:
    - Real content API / logo URLs being called if a test forgets a mock
    - A developer's .env changing page geometry under the paginator tests
    """
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("ENVIRONMENT", "development")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Default settings with the browser-free probe engine."""
    return ExportSettings(probe_engine="text-metrics")


class MarkerProber:
    """
    Deterministic fake prober.

    Height is the sum of every ``data-h="N"`` marker in the fragment.
    Fragments without markers measure 30px per started line of ten words.
    Every call is recorded.
    """

    _MARKER_RE = re.compile(r'data-h="(\d+)"')

    def __init__(self):
        self.calls = []

    async def measure(self, html: str) -> int:
        self.calls.append(html)
        markers = self._MARKER_RE.findall(html)
        if markers:
            return sum(int(m) for m in markers)
        words = re.sub(r"<[^>]*>", " ", html).split()
        return math.ceil(len(words) / 10) * 30


@pytest.fixture
def marker_prober():
    return MarkerProber()
