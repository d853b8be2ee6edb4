"""
Height probing engines.

A prober answers one question for the paginator: how tall, in layout
pixels, does this HTML fragment render inside the page content region?

Two engines are available:
- BrowserHeightProber measures in the staging surface's offscreen
  container (exact, needs Chromium)
- TextMetricsProber estimates from text length and element type
  (approximate, browser-free; used for previews and tests)
"""

import logging
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from bs4 import BeautifulSoup, NavigableString, Tag

from src.common.config import ExportSettings
from src.export.staging import PROBE_CONTAINER_ID, StagingSession
from src.export.templates import content_stylesheet

logger = logging.getLogger(__name__)

PT_TO_PX = 96 / 72

_HEADING_SIZES_PT = {"h1": 24.0, "h2": 18.0, "h3": 16.0}
_BLOCK_TAGS = {
    "p", "div", "section", "article", "blockquote", "pre", "ul", "ol", "li",
    "table", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "figure",
}


@dataclass(frozen=True)
class ProbeContext:
    """Fixed rendering context that every measurement uses."""

    width_px: int = 700
    font_stack: str = "'TAU-Paalai', 'Nirmala UI', Arial, sans-serif"
    font_size_pt: float = 14.0
    line_height: float = 1.6

    @classmethod
    def from_settings(cls, settings: ExportSettings) -> "ProbeContext":
        return cls(
            width_px=settings.probe_width_px,
            font_stack=settings.font_stack,
            font_size_pt=settings.font_size_pt,
            line_height=settings.line_height,
        )

    def stylesheet(self) -> str:
        """Probe container rules plus the page content stylesheet."""
        selector = f"#{PROBE_CONTAINER_ID}"
        return (
            f"{selector} {{ position: absolute; left: -10000px; top: 0; "
            f"width: {self.width_px}px; padding: 0; margin: 0; display: flow-root; "
            "visibility: hidden; }"
            + content_stylesheet(selector, self.font_stack, self.font_size_pt, self.line_height)
        )


class HeightProber(ABC):
    """Measures the rendered height of an HTML fragment."""

    @abstractmethod
    async def measure(self, html: str) -> int:
        """Height of ``html`` in layout pixels. Must not raise on malformed markup."""


class BrowserHeightProber(HeightProber):
    """Measures inside the staging surface's offscreen probe container."""

    def __init__(self, session: StagingSession, context: ProbeContext):
        self.session = session
        self.context = context
        self._stylesheet = context.stylesheet()

    async def measure(self, html: str) -> int:
        await self.session.prepare_probe(self._stylesheet)
        return await self.session.measure_in_probe(html)


class TextMetricsProber(HeightProber):
    """
    Approximates layout from text length.

    Uses an average glyph width relative to the font size, the same margin
    and heading rules as the content stylesheet, and per-cell widths for
    tables. Deterministic, so paginations from it are reproducible.
    """

    def __init__(self, context: ProbeContext, char_width_ratio: float = 0.55):
        self.context = context
        self.char_width_ratio = char_width_ratio
        self.font_px = context.font_size_pt * PT_TO_PX

    def _lines(self, text: str, width: float, font_px: float) -> int:
        text = re.sub(r"\s+", " ", text).strip()
        if not text:
            return 0
        chars_per_line = max(1, int(width / (font_px * self.char_width_ratio)))
        return max(1, math.ceil(len(text) / chars_per_line))

    def _text_height(self, element, width: float, font_px: float, line_height: float) -> float:
        text = element.get_text(" ") if isinstance(element, Tag) else str(element)
        lines = self._lines(text, width, font_px)
        if isinstance(element, Tag):
            lines += len(element.find_all("br"))
        return lines * font_px * line_height

    def _has_block_children(self, element: Tag) -> bool:
        return any(isinstance(c, Tag) and c.name in _BLOCK_TAGS for c in element.children)

    def _children_height(self, element, width: float) -> float:
        total = 0.0
        for child in element.children:
            if isinstance(child, Tag):
                total += self._element_height(child, width)
            elif isinstance(child, NavigableString) and str(child).strip():
                total += self._text_height(child, width, self.font_px, self.context.line_height)
        return total

    def _element_height(self, element: Tag, width: float) -> float:
        name = (element.name or "").lower()
        line_height = self.context.line_height

        if name in ("h1", "h2", "h3", "h4", "h5", "h6"):
            font_px = _HEADING_SIZES_PT.get(name, self.context.font_size_pt) * PT_TO_PX
            return self._text_height(element, width, font_px, 1.3) + 28

        if name in ("ul", "ol"):
            inner = width - 40
            items = element.find_all("li", recursive=False)
            total = sum(
                (self._children_height(li, inner) if self._has_block_children(li)
                 else self._text_height(li, inner, self.font_px, line_height)) + 5
                for li in items
            )
            return total + 20

        if name == "table":
            total = 20.0
            for row in element.find_all("tr"):
                cells = row.find_all(["td", "th"], recursive=False) or [row]
                cell_width = max(20.0, width / len(cells) - 17)
                tallest = max(self._text_height(c, cell_width, self.font_px, line_height) for c in cells)
                total += max(tallest, self.font_px * line_height) + 17
            return total

        if name == "br":
            return self.font_px * line_height

        if name == "hr":
            return 2.0

        if name == "img":
            try:
                return float(element.get("height", 0))
            except (TypeError, ValueError):
                return 0.0

        if self._has_block_children(element):
            height = self._children_height(element, width)
        else:
            height = self._text_height(element, width, self.font_px, line_height)

        if name == "p":
            height += 12
        return height

    async def measure(self, html: str) -> int:
        if not html:
            return 0
        try:
            soup = BeautifulSoup(html, "html.parser")
            height = self._children_height(soup, float(self.context.width_px))
        except Exception as e:
            logger.debug(f"Falling back to plain-text estimate for malformed fragment: {e}")
            plain = re.sub(r"<[^>]*>", " ", html)
            height = self._lines(plain, self.context.width_px, self.font_px) * self.font_px * self.context.line_height
        return int(math.ceil(height))


def build_prober(
    engine: str,
    settings: ExportSettings,
    session: Optional[StagingSession] = None,
) -> HeightProber:
    """
    Select the height probing engine.

    Args:
        engine: "browser" or "text-metrics"
        settings: Supplies the probe context
        session: Staging session, required by the browser engine
    """
    context = ProbeContext.from_settings(settings)
    if engine == "browser":
        if session is None:
            raise ValueError("The browser probe engine needs a staging session")
        return BrowserHeightProber(session, context)
    if engine == "text-metrics":
        return TextMetricsProber(context)
    raise ValueError(f"Unknown probe engine: {engine}")
