"""
Page rasterization and PDF assembly.

Each rendered page document is loaded into the staging surface and
captured as a fixed-size bitmap (page geometry at the raster scale),
composited onto opaque white, then placed full-bleed on one A4 page of
the output PDF. Pages are processed strictly one after another.
"""

import io
import logging
from typing import List, Optional, Sequence

from PIL import Image
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from src.common.config import ExportSettings
from src.common.error_handling import RasterizationError
from src.common.logger import ExportLogger, get_logger
from src.export.staging import StagingSession

logger = logging.getLogger(__name__)

_BROKEN_IMAGES_JS = """() => Array.from(document.images)
    .filter(img => !img.complete || img.naturalWidth === 0)
    .map(img => img.currentSrc || img.src)"""


def flatten_to_white(image_bytes: bytes) -> bytes:
    """
    Composite a bitmap onto an opaque white background.

    Transparent regions of the capture would otherwise render black in
    some PDF viewers.

    Returns:
        PNG bytes in RGB mode
    """
    with Image.open(io.BytesIO(image_bytes)) as img:
        img.load()
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[-1])
            flattened = background
        else:
            flattened = img.convert("RGB")

    output = io.BytesIO()
    flattened.save(output, format="PNG")
    return output.getvalue()


class BrowserPageRasterizer:
    """Rasterizes page documents in the staging surface."""

    def __init__(self, session: StagingSession, settings: ExportSettings, log: Optional[ExportLogger] = None):
        self.session = session
        self.settings = settings
        self.log = log or get_logger(__name__, job_id=session.job_id, stage="rasterize")

    async def rasterize(self, document_html: str, page_index: int) -> bytes:
        """
        Capture one page document as a white-backed PNG.

        Raises:
            RasterizationError: The page failed to load, referenced an image
                that could not be loaded, or could not be captured
        """
        s = self.settings
        try:
            await self.session.load_document(document_html)
            broken = await self.session.page.evaluate(_BROKEN_IMAGES_JS)
            if broken:
                raise RasterizationError(
                    f"Page {page_index + 1}: {len(broken)} image(s) failed to load: {', '.join(broken[:3])}",
                    page_index=page_index,
                )
            png = await self.session.page.screenshot(
                clip={"x": 0, "y": 0, "width": s.page_width_px, "height": s.page_height_px},
                type="png",
                scale="device",
                timeout=s.playwright_timeout_ms,
            )
            return flatten_to_white(png)
        except RasterizationError:
            raise
        except Exception as e:
            raise RasterizationError(f"Page {page_index + 1} rasterization failed: {e}", page_index=page_index) from e

    async def rasterize_all(self, documents: Sequence[str]) -> List[bytes]:
        """Rasterize every page in order. The first failure ends the job."""
        bitmaps = []
        for index, document_html in enumerate(documents):
            bitmaps.append(await self.rasterize(document_html, index))
            self.log.for_page(index).debug(f"Rasterized ({len(documents)} pages total)")
        self.log.info(f"Rasterized {len(bitmaps)} pages")
        return bitmaps


class PdfAssembler:
    """Stitches page bitmaps into a multi-page A4 PDF, one bitmap per page."""

    def __init__(self, pagesize=A4, title: str = "", author: str = ""):
        self.pagesize = pagesize
        self.title = title
        self.author = author

    def assemble(self, bitmaps: Sequence[bytes]) -> bytes:
        """
        Build the PDF.

        Every bitmap is stretched to fill its page exactly. Pages are
        never reordered or deduplicated.
        """
        if not bitmaps:
            raise RasterizationError("No pages to assemble")

        page_width, page_height = self.pagesize
        buffer = io.BytesIO()
        pdf = canvas.Canvas(buffer, pagesize=self.pagesize)
        if self.title:
            pdf.setTitle(self.title)
        if self.author:
            pdf.setAuthor(self.author)

        for bitmap in bitmaps:
            pdf.drawImage(ImageReader(io.BytesIO(bitmap)), 0, 0, width=page_width, height=page_height)
            pdf.showPage()

        pdf.save()
        pdf_bytes = buffer.getvalue()
        logger.info(f"Assembled PDF: {len(bitmaps)} pages, {len(pdf_bytes)} bytes")
        return pdf_bytes
