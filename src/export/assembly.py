"""
HTML assembly per resource type.

Builds the content markup for one export from a lesson's content items
and turns it into paginatable blocks:

- notes: note bodies wrapped in sections, flattened into their elements
- qa: numbered question/answer pairs ("Q1." ... "Ans:")
- every other type: numbered title/body pairs
"""

import logging
import re
from typing import Iterable, List

from bs4 import BeautifulSoup

from src.export.blocks import INLINE_TAGS, ContentBlock, blocks_from_html
from src.export.models import CallerIdentity, ContentItem, get_resource_info

logger = logging.getLogger(__name__)

PLACEHOLDER_STYLE = "text-align: center; padding: 100px; color: #666; font-style: italic;"

_UNSAFE_TAGS = ("script", "style")

# Leading tags/whitespace, then a manual number such as "1.", "2)" or "3 -"
_MANUAL_NUMBER_RE = re.compile(r"^(\s*(?:<[^>]+>\s*)*)\s*\d+[.)\-\s]+\s*")
_FIRST_OPEN_TAG_RE = re.compile(r"<([a-zA-Z][a-zA-Z0-9]*)[^>]*>")


def visible_items(items: Iterable[ContentItem], identity: CallerIdentity) -> List[ContentItem]:
    """Privileged users export everything they can see; others only published items."""
    items = list(items)
    if identity.is_privileged:
        return items
    return [item for item in items if item.is_published]


def process_content_for_html(html: str) -> str:
    """Prepare stored rich text for rendering. Script and style elements are dropped."""
    if not html:
        return ""
    if not any(f"<{tag}" in html.lower() for tag in _UNSAFE_TAGS):
        return html
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(_UNSAFE_TAGS):
        element.decompose()
    return str(soup)


def clean_title_numbering(title: str) -> str:
    """
    Strip manual numbering from a title, since exports number items themselves.

    Example:
        >>> clean_title_numbering("<p> 1. What is a cell?</p>")
        "<p>What is a cell?</p>"
    """
    return _MANUAL_NUMBER_RE.sub(lambda m: m.group(1).rstrip(), title, count=1)


def remove_unformatted_duplicates(html: str) -> str:
    """
    Drop plain, untagged text in front of the first element of a note body.

    Editors sometimes store an unformatted copy of a note ahead of the
    formatted one. Text followed only by inline markup, or by no markup
    at all, is kept.
    """
    first_tag = _FIRST_OPEN_TAG_RE.search(html)
    if first_tag and first_tag.start() > 0 and first_tag.group(1).lower() not in INLINE_TAGS:
        return html[first_tag.start():]
    return html


def build_notes_html(items: Iterable[ContentItem]) -> str:
    sections = [
        f'<div class="note-section" style="margin-bottom: 15px;">{body}</div>'
        for body in (remove_unformatted_duplicates(process_content_for_html(item.body)) for item in items)
    ]
    return "".join(sections)


def _pair_html(number_label: str, question_html: str, answer_html: str, answer_label: str = "") -> str:
    answer_prefix = (
        f'<span style="font-weight: bold; color: #16a34a; margin-right: 5px;">{answer_label}</span>'
        if answer_label else ""
    )
    return (
        '<div class="qa-pair-container" style="border: 1px solid #eee; border-radius: 8px; '
        'padding: 8px 12px; margin-bottom: 12px; background-color: #fcfcfc;">'
        '<div class="question-part" style="font-weight: bold; font-size: 15pt; margin-bottom: 4px; '
        'color: #000; line-height: 1.4;">'
        f'<span style="color: #2563eb; margin-right: 5px;">{number_label}</span>'
        f"{question_html}"
        "</div>"
        '<div class="answer-part" style="font-size: 14pt; margin-left: 0px; color: #333; line-height: 1.5;">'
        f"{answer_prefix}{answer_html}"
        "</div>"
        "</div>"
    )


def build_qa_html(items: Iterable[ContentItem]) -> str:
    return "".join(
        _pair_html(
            f"Q{index}.",
            process_content_for_html(clean_title_numbering(item.title)),
            process_content_for_html(item.body),
            answer_label="Ans:",
        )
        for index, item in enumerate(items, start=1)
    )


def build_generic_html(items: Iterable[ContentItem]) -> str:
    return "".join(
        _pair_html(
            f"{index}.",
            process_content_for_html(clean_title_numbering(item.title)) if item.title else "",
            process_content_for_html(item.body) if item.body else "",
        )
        for index, item in enumerate(items, start=1)
    )


def build_content_html(resource_type: str, items: Iterable[ContentItem]) -> str:
    """Assemble the export markup for one resource type."""
    if resource_type == "notes":
        return build_notes_html(items)
    if resource_type == "qa":
        return build_qa_html(items)
    get_resource_info(resource_type)
    return build_generic_html(items)


def assemble_blocks(resource_type: str, items: Iterable[ContentItem]) -> List[ContentBlock]:
    """Assemble markup for ``items`` and split it into paginatable blocks."""
    html = build_content_html(resource_type, items)
    blocks = blocks_from_html(html, flatten_sections=resource_type == "notes")
    logger.debug(f"Assembled {len(blocks)} blocks for resource type {resource_type}")
    return blocks


def placeholder_html(resource_type: str) -> str:
    """Centered 'nothing to show' page body for an export with no blocks."""
    if resource_type == "notes":
        text = "No notes available for this chapter."
    elif resource_type == "qa":
        text = "No Q&amp;A available for this chapter."
    else:
        text = "No content available for this chapter."
    return f'<div style="{PLACEHOLDER_STYLE}">{text}</div>'
