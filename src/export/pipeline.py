"""
Export generation pipeline.

Linear async stages for one job:

    hierarchy + logo (degraded on failure)
    -> assemble blocks
    -> [staging surface held] paginate -> template -> rasterize, page by page
    -> assemble PDF

Structural failures raise ExportError subclasses; cosmetic ones are
recorded on job.warnings and the job carries on.
"""

import logging
from typing import List, Optional, Sequence

from src.common.config import ExportSettings, get_settings
from src.common.error_handling import ExportError, NoContentError, degrade_on_failure, log_on_exception
from src.common.logger import get_logger
from src.export.assembly import assemble_blocks, placeholder_html
from src.export.blocks import describe_blocks
from src.export.messages import no_content_message
from src.export.models import ContentItem, ExportJob, GeneratedDocument, HierarchyContext, Page
from src.export.paginator import BlockPaginator
from src.export.prober import build_prober
from src.export.rasterizer import BrowserPageRasterizer, PdfAssembler
from src.export.staging import StagingSession, StagingSurface, get_staging_surface
from src.export.templates import PageTemplateRenderer
from src.services.content_api import ContentApiClient

logger = logging.getLogger(__name__)


class ExportPipeline:
    """
    Produces the PDF for an export job.

    Args:
        settings: Pipeline configuration
        content_api: Hierarchy and logo source
        staging: Shared staging surface (process-wide by default)
    """

    def __init__(
        self,
        settings: Optional[ExportSettings] = None,
        content_api: Optional[ContentApiClient] = None,
        staging: Optional[StagingSurface] = None,
    ):
        self.settings = settings or get_settings()
        self.content_api = content_api or ContentApiClient(self.settings)
        self.staging = staging or get_staging_surface()

    @degrade_on_failure("fetch hierarchy metadata", stage="hierarchy", fallback=HierarchyContext.empty)
    async def load_hierarchy(self, lesson_id: str) -> HierarchyContext:
        return await self.content_api.get_hierarchy(lesson_id)

    @degrade_on_failure("fetch logo", stage="logo", fallback="")
    async def load_logo(self) -> str:
        return await self.content_api.fetch_logo(self.settings.logo_url)

    async def _paginate(
        self,
        session: Optional[StagingSession],
        resource_type: str,
        items: Sequence[ContentItem],
        job_id: Optional[str] = None,
    ) -> List[Page]:
        log = get_logger(__name__, job_id=job_id, stage="paginate")
        blocks = assemble_blocks(resource_type, items)
        log.info(f"Assembled {len(blocks)} blocks {describe_blocks(blocks)}")

        engine = self.settings.probe_engine if session is not None else "text-metrics"
        prober = build_prober(engine, self.settings, session)
        paginator = BlockPaginator.from_settings(prober, self.settings, log=log)
        return await paginator.paginate(blocks, placeholder_html(resource_type))

    async def preview_pages(self, resource_type: str, items: Sequence[ContentItem]) -> List[Page]:
        """
        Paginate without rasterizing.

        Uses the configured probe engine; the browser engine holds the
        staging surface like a real export would.
        """
        if self.settings.probe_engine == "browser":
            return await self.staging.with_staging(
                "preview", lambda session: self._paginate(session, resource_type, items)
            )
        return await self._paginate(None, resource_type, items)

    async def generate(self, job: ExportJob) -> GeneratedDocument:
        """
        Run every generation stage for ``job``.

        Raises:
            NoContentError: The job has no content items
            RasterizationError: A page could not be rasterized
            ExportError: Any other structural failure while generating
        """
        log = get_logger(__name__, job_id=job.job_id, stage="generate")

        if not job.items:
            raise NoContentError(no_content_message(job.resource_type))

        label = job.resource.label
        hierarchy = await self.load_hierarchy(job.lesson_id, collector=job.warnings)
        logo = await self.load_logo(collector=job.warnings)
        lesson_name = hierarchy.display_lesson_name(label)
        renderer = PageTemplateRenderer(self.settings, hierarchy, logo)

        async def render_in_staging(session: StagingSession) -> List[bytes]:
            pages = await self._paginate(session, job.resource_type, job.items, job_id=job.job_id)
            documents = [renderer.render_page(page.html, index, len(pages)) for index, page in enumerate(pages)]
            rasterizer = BrowserPageRasterizer(session, self.settings, log=log.for_stage("rasterize"))
            return await rasterizer.rasterize_all(documents)

        log.info(f"Generating {label} PDF for lesson {job.lesson_id} ({len(job.items)} items)")
        try:
            with log_on_exception(logger, f"job {job.job_id[:8]} generation", level=logging.ERROR, include_traceback=True):
                bitmaps = await self.staging.with_staging(job.job_id, render_in_staging)
        except ExportError:
            raise
        except Exception as e:
            raise ExportError(f"PDF generation failed: {e}", stage="generate") from e

        pdf_bytes = PdfAssembler(title=f"{lesson_name} - {label}").assemble(bitmaps)
        log.info(f"Generated {len(bitmaps)} page PDF ({len(pdf_bytes)} bytes)")
        return GeneratedDocument(
            pdf_bytes=pdf_bytes,
            page_count=len(bitmaps),
            hierarchy=hierarchy,
            lesson_name=lesson_name,
        )
