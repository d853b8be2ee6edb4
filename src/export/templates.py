"""
Page template rendering for lesson exports.

Wraps one paginated page of content HTML into a standalone, fixed-size
HTML document (header with logo and hierarchy labels, content region,
footer with tagline and page counter) ready for rasterization.

The content stylesheet is shared with the height prober so that heights
measured during pagination hold at render time.
"""

import re
from dataclasses import dataclass
from datetime import date
from html import escape
from typing import Optional

from src.common.config import (
    CONTENT_MARGIN_LEFT_PX,
    CONTENT_MARGIN_RIGHT_PX,
    ExportSettings,
)
from src.export.models import HierarchyContext

# Anything outside ASCII letters/digits and the Tamil block becomes "_"
_UNSAFE_FILENAME_RE = re.compile(r"[^a-zA-Z0-9\u0B80-\u0BFF]")


def sanitize_for_filename(text: str) -> str:
    """
    Sanitize text for use in a downloaded file name.

    Example:
        >>> sanitize_for_filename("Cell Biology (Part 1)")
        "Cell_Biology__Part_1_"
    """
    return _UNSAFE_FILENAME_RE.sub("_", text)


def suggested_filename(lesson_name: str, resource_label: str, export_date: Optional[date] = None) -> str:
    """File name offered for local saving: ``<lesson>_<label>_<YYYY-MM-DD>.pdf``."""
    export_date = export_date or date.today()
    return f"{sanitize_for_filename(lesson_name)}_{sanitize_for_filename(resource_label)}_{export_date.isoformat()}.pdf"


def content_stylesheet(
    scope: str,
    font_stack: str,
    font_size_pt: float,
    line_height: float,
) -> str:
    """
    Typography rules for content placed inside ``scope``.

    Used verbatim by both the page template (scope ``.pdf-content``) and
    the height probe container, so a block measures the same in both.
    The font stack is forced on every element, overriding inline
    font-family from stored content.
    """
    return f"""
        {scope} {{
            font-size: {font_size_pt}pt;
            line-height: {line_height};
            text-align: justify;
            font-family: {font_stack};
        }}
        {scope} * {{
            margin: 0;
            padding: 0;
            box-sizing: border-box;
            font-family: {font_stack} !important;
        }}
        {scope} p {{
            margin: 0 0 12px 0;
        }}
        {scope} h1, {scope} h2, {scope} h3, {scope} h4, {scope} h5, {scope} h6 {{
            margin: 20px 0 8px 0;
            line-height: 1.3;
        }}
        {scope} h1 {{ font-size: 24pt; }}
        {scope} h2 {{ font-size: 18pt; }}
        {scope} h3 {{ font-size: 16pt; }}
        {scope} ul, {scope} ol {{
            margin: 10px 0 10px 20px;
            padding-left: 20px;
        }}
        {scope} li {{
            margin-bottom: 5px;
        }}
        {scope} table {{
            width: 100%;
            border-collapse: collapse;
            margin: 10px 0;
        }}
        {scope} th, {scope} td {{
            border: 1px solid #ddd;
            padding: 8px;
            text-align: left;
        }}
        {scope} th {{
            background-color: #f2f2f2;
        }}
        {scope} img {{
            max-width: 100%;
        }}
    """


@dataclass
class PageTemplateRenderer:
    """
    Renders page documents for one export job.

    Attributes:
        settings: Page geometry, typography and footer text
        hierarchy: Header labels, fixed for the whole job
        logo_data_uri: Embedded logo image, or "" for no logo
    """

    settings: ExportSettings
    hierarchy: HierarchyContext
    logo_data_uri: str = ""

    def _header_html(self) -> str:
        h = self.hierarchy
        class_line = " - ".join(escape(part) for part in (h.class_name, h.subject_name) if part)
        unit_line = " - ".join(escape(part) for part in (h.unit_name, h.sub_unit_name) if part)
        logo = (
            f'<img src="{escape(self.logo_data_uri, quote=True)}" alt="Logo" class="logo">'
            if self.logo_data_uri else '<div class="logo"></div>'
        )
        return (
            '<div class="pdf-header">'
            f"{logo}"
            '<div class="header-info">'
            f'<div class="class-info">{class_line}</div>'
            f'<div class="unit-info">{unit_line}</div>'
            f'<div class="lesson-name">{escape(h.lesson_name)}</div>'
            "</div>"
            "</div>"
        )

    def _footer_html(self, page_index: int, total_pages: int) -> str:
        s = self.settings
        return (
            '<div class="pdf-footer">'
            f'<span class="tagline">{escape(s.footer_tagline)}</span>'
            f'<span class="page-number">{escape(s.page_label)} {page_index + 1} / {total_pages}</span>'
            "</div>"
        )

    def stylesheet(self) -> str:
        s = self.settings
        return f"""
        * {{
            margin: 0;
            padding: 0;
            box-sizing: border-box;
        }}
        html, body {{
            width: {s.page_width_px}px;
            height: {s.page_height_px}px;
            background: #ffffff;
        }}
        body * {{
            font-family: {s.font_stack} !important;
        }}
        .pdf-page {{
            position: relative;
            width: {s.page_width_px}px;
            height: {s.page_height_px}px;
            overflow: hidden;
            background: #ffffff;
            color: #000;
            font-family: {s.font_stack};
        }}
        .pdf-header {{
            position: absolute;
            top: 20px;
            left: 40px;
            right: 40px;
            display: flex;
            justify-content: space-between;
            align-items: center;
            padding-bottom: 10px;
            border-bottom: 1px solid #ccc;
        }}
        .pdf-header .logo {{
            width: 170px;
            height: 22px;
            object-fit: contain;
        }}
        .header-info {{
            text-align: right;
            font-size: 11px;
            color: #555;
            line-height: 1.4;
        }}
        .header-info .lesson-name {{
            font-size: 12px;
            font-weight: bold;
            color: #000;
        }}
        .pdf-content {{
            position: absolute;
            top: 100px;
            left: {CONTENT_MARGIN_LEFT_PX}px;
            right: {CONTENT_MARGIN_RIGHT_PX}px;
            bottom: 100px;
            overflow: visible;
        }}
        {content_stylesheet(".pdf-content", s.font_stack, s.font_size_pt, s.line_height)}
        .pdf-footer {{
            position: absolute;
            bottom: 30px;
            left: 40px;
            right: 40px;
            display: flex;
            justify-content: space-between;
            align-items: center;
            padding-top: 8px;
            border-top: 1px solid #ccc;
            font-size: 10px;
            color: #666;
        }}
        """

    def render_page(self, page_html: str, page_index: int, total_pages: int) -> str:
        """
        Build the complete HTML document for one page.

        Args:
            page_html: Paginated content, placed verbatim in the content region
            page_index: Zero-based position of the page
            total_pages: Number of pages in the document

        Returns:
            Standalone HTML document string
        """
        return f"""<!DOCTYPE html>
<html lang="ta">
<head>
    <meta charset="UTF-8">
    <title>{escape(self.hierarchy.lesson_name or "Export")}</title>
    <style>{self.stylesheet()}</style>
</head>
<body>
    <div class="pdf-page" data-page-index="{page_index}">
        {self._header_html()}
        <div class="pdf-content">{page_html}</div>
        {self._footer_html(page_index, total_pages)}
    </div>
</body>
</html>"""
