"""
Content block extraction.

Turns assembled lesson HTML into an ordered sequence of tagged block
variants. Each variant declares how it may be split when it does not fit
on a page, so the paginator never has to inspect tag names itself.
"""

import re
from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import ClassVar, Dict, Iterable, List, Tuple

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

HEADING_RE = re.compile(r"^h([1-6])$", re.IGNORECASE)
ATOMIC_CLASS = "qa-pair-container"
INLINE_TAGS = frozenset({
    "a", "abbr", "b", "br", "code", "em", "font", "i", "mark", "s", "small",
    "span", "strike", "strong", "sub", "sup", "u",
})


class SplitStrategy(str, Enum):
    """How an oversized block may be broken across pages."""

    NONE = "none"    # force-placed whole
    WORDS = "words"  # word-by-word text fragments
    ITEMS = "items"  # list items, list tag re-opened per page
    ROWS = "rows"    # table rows, table tag re-opened per page


@dataclass(frozen=True)
class ContentBlock:
    """One semantic unit to paginate."""

    html: str

    kind: ClassVar[str] = "block"
    split_strategy: ClassVar[SplitStrategy] = SplitStrategy.NONE
    atomic: ClassVar[bool] = False

    @property
    def is_heading(self) -> bool:
        return False


@dataclass(frozen=True)
class HeadingBlock(ContentBlock):
    """h1-h6. Never split; starts a new page when too little space is left."""

    level: int = 1

    kind: ClassVar[str] = "heading"

    @property
    def is_heading(self) -> bool:
        return True


@dataclass(frozen=True)
class ParagraphBlock(ContentBlock):
    """p or div. Oversized paragraphs are split word by word."""

    tag: str = "p"
    style: str = ""
    words: Tuple[str, ...] = ()

    kind: ClassVar[str] = "paragraph"
    split_strategy: ClassVar[SplitStrategy] = SplitStrategy.WORDS

    def fragment(self, words: Iterable[str]) -> str:
        """Markup for a text-only fragment of this paragraph."""
        style_attr = f' style="{escape(self.style, quote=True)}"' if self.style else ""
        return f"<{self.tag}{style_attr}>{escape(' '.join(words), quote=False)}</{self.tag}>"


@dataclass(frozen=True)
class ListBlock(ContentBlock):
    """ul or ol. Oversized lists are split between items."""

    ordered: bool = False
    items: Tuple[str, ...] = ()
    attrs: Tuple[Tuple[str, str], ...] = ()
    start: int = 1

    kind: ClassVar[str] = "list"
    split_strategy: ClassVar[SplitStrategy] = SplitStrategy.ITEMS

    @property
    def tag(self) -> str:
        return "ol" if self.ordered else "ul"

    def wrap(self, items: Iterable[str], first_index: int = 0) -> str:
        """Well-formed list markup holding ``items``, numbered from ``first_index``."""
        attrs = [(k, v) for k, v in self.attrs if k != "start"]
        if self.ordered and (first_index or self.start != 1):
            attrs.append(("start", str(self.start + first_index)))
        return f"<{self.tag}{_render_attrs(attrs)}>{''.join(items)}</{self.tag}>"


@dataclass(frozen=True)
class TableBlock(ContentBlock):
    """table. Oversized tables are split between rows.

    The caption and column groups open the first fragment only; the header
    rows are repeated at the top of every fragment.
    """

    rows: Tuple[str, ...] = ()
    attrs: Tuple[Tuple[str, str], ...] = ()
    caption: str = ""
    colgroup: str = ""
    thead: str = ""

    kind: ClassVar[str] = "table"
    split_strategy: ClassVar[SplitStrategy] = SplitStrategy.ROWS

    def wrap(self, rows: Iterable[str], first_index: int = 0) -> str:
        lead = f"{self.caption}{self.colgroup}" if first_index == 0 else ""
        return f"<table{_render_attrs(self.attrs)}>{lead}{self.thead}{''.join(rows)}</table>"


@dataclass(frozen=True)
class AtomicPairBlock(ContentBlock):
    """A question/answer pair. Kept together even when taller than a page."""

    kind: ClassVar[str] = "atomic_pair"
    atomic: ClassVar[bool] = True


@dataclass(frozen=True)
class OpaqueBlock(ContentBlock):
    """Any other element (img, blockquote, pre, hr...). Placed whole."""

    tag: str = ""

    kind: ClassVar[str] = "opaque"


def _render_attrs(attrs: Iterable[Tuple[str, str]]) -> str:
    return "".join(f' {k}="{escape(v, quote=True)}"' for k, v in attrs)


def _attr_pairs(element: Tag) -> Tuple[Tuple[str, str], ...]:
    pairs = []
    for key, value in element.attrs.items():
        if isinstance(value, list):
            value = " ".join(value)
        pairs.append((key, "" if value is None else str(value)))
    return tuple(pairs)


def _list_units(element: Tag) -> Iterable[str]:
    """Direct children of a list as splittable items.

    Stray children (a nested list placed straight inside the list, loose
    text) are kept as items of their own so a split never drops them.
    """
    for child in element.children:
        if isinstance(child, Comment):
            continue
        if isinstance(child, Tag):
            if child.name.lower() == "li":
                yield str(child)
            else:
                yield f"<li>{child}</li>"
        elif str(child).strip():
            yield f"<li>{escape(str(child).strip(), quote=False)}</li>"


def _is_atomic(element: Tag) -> bool:
    return ATOMIC_CLASS in (element.get("class") or [])


def block_from_element(element: Tag) -> ContentBlock:
    """Classify one element into its block variant."""
    name = (element.name or "").lower()
    html = str(element)

    if _is_atomic(element):
        return AtomicPairBlock(html=html)

    heading = HEADING_RE.match(name)
    if heading:
        return HeadingBlock(html=html, level=int(heading.group(1)))

    if name in ("p", "div"):
        return ParagraphBlock(
            html=html,
            tag=name,
            style=element.get("style") or "",
            words=tuple(element.get_text(" ").split()),
        )

    if name in ("ul", "ol"):
        items = tuple(_list_units(element))
        try:
            start = int(element.get("start", 1))
        except (TypeError, ValueError):
            start = 1
        return ListBlock(
            html=html,
            ordered=name == "ol",
            items=items,
            attrs=_attr_pairs(element),
            start=start,
        )

    if name == "table":
        rows = []
        caption, colgroup, thead = [], [], []
        for child in element.find_all(True, recursive=False):
            child_name = child.name.lower()
            if child_name == "tr":
                rows.append(str(child))
            elif child_name in ("tbody", "tfoot"):
                rows.extend(str(tr) for tr in child.find_all("tr", recursive=False))
            elif child_name == "thead":
                thead.append(str(child))
            elif child_name == "caption":
                caption.append(str(child))
            elif child_name in ("colgroup", "col"):
                colgroup.append(str(child))
        return TableBlock(
            html=html,
            rows=tuple(rows),
            attrs=_attr_pairs(element),
            caption="".join(caption),
            colgroup="".join(colgroup),
            thead="".join(thead),
        )

    return OpaqueBlock(html=html, tag=name)


def _top_level_nodes(container: Tag) -> List[Tag]:
    """Element children of ``container``; loose text is wrapped in <p>."""
    nodes: List[Tag] = []
    for child in container.children:
        if isinstance(child, Tag):
            nodes.append(child)
        elif isinstance(child, NavigableString) and not isinstance(child, Comment) and child.strip():
            wrapper = BeautifulSoup("<p></p>", "html.parser").p
            wrapper.string = child.strip()
            nodes.append(wrapper)
    return nodes


def _flatten_section(section: Tag) -> List[Tag]:
    """
    Children of a note section become individual blocks.

    A section holding only text and inline markup is promoted to a single
    paragraph; an empty one contributes nothing.
    """
    children = [c for c in section.children if isinstance(c, Tag)]
    if any((c.name or "").lower() not in INLINE_TAGS for c in children):
        return _top_level_nodes(section)
    if section.get_text().strip():
        soup = BeautifulSoup("<p></p>", "html.parser")
        paragraph = soup.p
        for child in list(section.contents):
            paragraph.append(child.extract())
        return [paragraph]
    return []


def blocks_from_html(html: str, flatten_sections: bool = False) -> List[ContentBlock]:
    """
    Parse assembled content HTML into ordered blocks.

    Args:
        html: Markup whose top-level children are the units to paginate
        flatten_sections: Treat each top-level element as a section whose
            children are the blocks (notes). Atomic pair containers are
            never flattened.

    Returns:
        Blocks in document order
    """
    if not html or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")
    top_level = _top_level_nodes(soup)

    if flatten_sections:
        elements: List[Tag] = []
        for section in top_level:
            if _is_atomic(section):
                elements.append(section)
            else:
                elements.extend(_flatten_section(section))
    else:
        elements = top_level

    return [block_from_element(el) for el in elements]


def describe_blocks(blocks: Iterable[ContentBlock]) -> Dict[str, int]:
    """Count blocks per kind, for logging."""
    counts: Dict[str, int] = {}
    for block in blocks:
        counts[block.kind] = counts.get(block.kind, 0) + 1
    return counts
