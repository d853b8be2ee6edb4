"""
Block paginator.

Partitions an ordered sequence of content blocks into pages whose
measured content height stays within a fixed budget:

1. Each block is measured with the height prober.
2. A heading starts a new page when less than the orphan threshold
   remains on a non-empty page.
3. A block that does not fit on a non-empty page starts a new page.
4. A block taller than a whole page is split according to its
   SplitStrategy (words, list items, table rows) or force-placed alone.
5. A fixed spacer separates consecutive blocks on the same page.

Output order always equals input order, and every fragment produced by a
split is well-formed HTML.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from src.common.config import ExportSettings
from src.common.logger import ExportLogger, get_logger
from src.export.blocks import ContentBlock, ListBlock, ParagraphBlock, SplitStrategy, TableBlock
from src.export.models import Page
from src.export.prober import HeightProber


def spacer_html(height_px: int) -> str:
    return f'<div style="height: {height_px}px;"></div>'


@dataclass(frozen=True)
class MeasuredBlock:
    """A block plus its measured height under the probe context."""

    block: ContentBlock
    height: int


class _PageBuilder:
    """Accumulates units for the page being filled."""

    def __init__(self, budget: int, spacer: str, spacer_px: int):
        self.budget = budget
        self.spacer = spacer
        self.spacer_px = spacer_px
        self.pages: List[Page] = []
        self._reset()

    def _reset(self) -> None:
        self.parts: List[str] = []
        self.height = 0.0
        self.units = 0
        self.oversized = False
        self._trailing_spacer = False

    @property
    def has_content(self) -> bool:
        return self.units > 0

    @property
    def remaining(self) -> float:
        return self.budget - self.height

    def fits(self, height: float) -> bool:
        return self.height + height <= self.budget

    def add(self, html: str, height: float) -> None:
        self.parts.append(html)
        self.height += height
        self.units += 1
        self._trailing_spacer = False
        if height > self.budget:
            self.oversized = True

    def add_spacer(self) -> None:
        self.parts.append(self.spacer)
        self.height += self.spacer_px
        self._trailing_spacer = True

    def flush(self) -> None:
        """Close the current page. Pages holding only spacers are dropped."""
        if self._trailing_spacer:
            self.parts.pop()
            self.height -= self.spacer_px
        if self.units > 0:
            self.pages.append(
                Page(html="".join(self.parts), height=self.height, units=self.units, oversized=self.oversized)
            )
        self._reset()


class BlockPaginator:
    """
    Deterministic measurement-driven paginator.

    Args:
        prober: Height probing engine
        budget_px: Maximum content height per page
        orphan_px: Minimum space that must remain to start a heading
        spacer_px: Gap inserted between consecutive blocks
    """

    def __init__(
        self,
        prober: HeightProber,
        budget_px: int = 900,
        orphan_px: int = 150,
        spacer_px: int = 8,
        log: Optional[ExportLogger] = None,
    ):
        self.prober = prober
        self.budget = budget_px
        self.orphan_px = orphan_px
        self.spacer_px = spacer_px
        self.log = log or get_logger(__name__, stage="paginate")

    @classmethod
    def from_settings(
        cls,
        prober: HeightProber,
        settings: ExportSettings,
        log: Optional[ExportLogger] = None,
    ) -> "BlockPaginator":
        return cls(
            prober,
            budget_px=settings.page_budget_px,
            orphan_px=settings.heading_orphan_px,
            spacer_px=settings.spacer_px,
            log=log,
        )

    async def measure(self, block: ContentBlock) -> MeasuredBlock:
        return MeasuredBlock(block=block, height=await self.prober.measure(block.html))

    async def paginate(self, blocks: Sequence[ContentBlock], placeholder_html: str = "") -> List[Page]:
        """
        Partition ``blocks`` into pages.

        Args:
            blocks: Content blocks in document order
            placeholder_html: Body of the single page emitted for empty input

        Returns:
            Pages in order; never empty
        """
        builder = _PageBuilder(self.budget, spacer_html(self.spacer_px), self.spacer_px)

        for measured in [await self.measure(b) for b in blocks]:
            block, height = measured.block, measured.height

            if builder.has_content and self.spacer_px > 0:
                if builder.fits(self.spacer_px):
                    builder.add_spacer()
                else:
                    builder.flush()

            if block.is_heading and builder.has_content and builder.remaining < self.orphan_px:
                self.log.debug(f"Heading moved to a new page ({builder.remaining:.0f}px left)")
                builder.flush()

            if builder.has_content and not builder.fits(height):
                builder.flush()

            if builder.fits(height):
                builder.add(block.html, height)
                continue

            await self._place_oversized(builder, measured)

        builder.flush()

        if not builder.pages:
            height = await self.prober.measure(placeholder_html) if placeholder_html else 0
            self.log.info("No content blocks, emitting placeholder page")
            return [Page(html=placeholder_html, height=height)]

        oversized = sum(1 for p in builder.pages if p.oversized)
        self.log.info(
            f"Paginated {len(blocks)} blocks into {len(builder.pages)} pages"
            + (f" ({oversized} oversized)" if oversized else "")
        )
        return builder.pages

    async def _place_oversized(self, builder: _PageBuilder, measured: MeasuredBlock) -> None:
        """Handle a block taller than the budget on an empty page."""
        block = measured.block
        strategy = block.split_strategy

        if strategy is SplitStrategy.WORDS and isinstance(block, ParagraphBlock) and block.words:
            await self._split_words(builder, block)
        elif strategy is SplitStrategy.ITEMS and isinstance(block, ListBlock) and block.items:
            await self._split_units(builder, list(block.items), block.wrap)
        elif strategy is SplitStrategy.ROWS and isinstance(block, TableBlock) and block.rows:
            await self._split_units(builder, list(block.rows), block.wrap)
        else:
            self.log.warning(
                f"Force-placing {block.kind} block of {measured.height}px alone "
                f"(budget {self.budget}px)"
            )
            builder.add(block.html, measured.height)

    async def _place_fragment(self, builder: _PageBuilder, html: str, height: float) -> None:
        if builder.has_content and not builder.fits(height):
            builder.flush()
        builder.add(html, height)

    async def _split_words(self, builder: _PageBuilder, block: ParagraphBlock) -> None:
        """Grow a text fragment word by word, starting a new part whenever it would overflow."""
        part: List[str] = []
        part_height = 0
        parts = 0

        for word in block.words:
            candidate = part + [word]
            candidate_height = await self.prober.measure(block.fragment(candidate))
            if candidate_height > self.budget and part:
                await self._place_fragment(builder, block.fragment(part), part_height)
                parts += 1
                part = [word]
                part_height = await self.prober.measure(block.fragment(part))
            else:
                part = candidate
                part_height = candidate_height

        if part:
            await self._place_fragment(builder, block.fragment(part), part_height)
            parts += 1
        self.log.debug(f"Split {block.tag} of {len(block.words)} words into {parts} parts")

    async def _split_units(
        self,
        builder: _PageBuilder,
        units: List[str],
        wrap: Callable[[List[str], int], str],
    ) -> None:
        """
        Split a list by items or a table by rows.

        Units accumulate into an open fragment; before a unit that would
        overflow the page, the fragment is closed, placed and the page
        flushed. ``wrap(units, first_index)`` renders a well-formed fragment.
        """
        fragment: List[str] = []
        fragment_height = 0
        first_index = 0
        fragments = 0

        for index, unit in enumerate(units):
            unit_height = await self.prober.measure(wrap([unit], index))
            overflow = builder.height + fragment_height + unit_height > self.budget
            if overflow and (fragment or builder.has_content):
                if fragment:
                    builder.add(wrap(fragment, first_index), fragment_height)
                    fragments += 1
                builder.flush()
                fragment = []
                first_index = index

            fragment.append(unit)
            fragment_height = await self.prober.measure(wrap(fragment, first_index))

        if fragment:
            await self._place_fragment(builder, wrap(fragment, first_index), fragment_height)
            fragments += 1
        self.log.debug(f"Split {len(units)} units into {fragments} fragments")
