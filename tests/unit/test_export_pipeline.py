"""
Unit tests for src/export/pipeline.py

Runs the generation stages against a mocked content API and a staging
surface whose Chromium page is a mock returning a fixed bitmap, so the
pagination, templating and PDF assembly code runs for real.
"""

import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from src.common.error_handling import ExportError, NoContentError, RasterizationError
from src.export.models import CallerIdentity, ContentItem, ExportJob, HierarchyContext
from src.export.pipeline import ExportPipeline
from src.export.staging import BLANK_DOCUMENT, StagingSurface


def png_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (10, 10), (255, 255, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def fake_page():
    page = MagicMock()
    page.set_content = AsyncMock()
    page.evaluate = AsyncMock(return_value=[])
    page.screenshot = AsyncMock(return_value=png_bytes())
    page.is_closed = MagicMock(return_value=False)
    return page


@pytest.fixture
def content_api():
    api = MagicMock()
    api.get_hierarchy = AsyncMock(return_value=HierarchyContext(
        class_name="Class 10",
        subject_name="Science",
        lesson_name="Cell Structure",
    ))
    api.fetch_logo = AsyncMock(return_value="data:image/png;base64,AAAA")
    return api


@pytest.fixture
def pipeline(settings, content_api, fake_page):
    staging = StagingSurface(settings=settings, page_factory=AsyncMock(return_value=fake_page))
    return ExportPipeline(settings, content_api=content_api, staging=staging)


def make_job(resource_type="notes", items=None, **identity):
    if items is None:
        items = [ContentItem(title="", body="<h2>Cells</h2><p>Cells are the unit of life.</p>", is_published=True)]
    return ExportJob(
        lesson_id="lesson-1",
        resource_type=resource_type,
        items=items,
        identity=CallerIdentity(**identity),
    )


def rendered_documents(fake_page):
    """Page documents loaded for rasterization (probe and blanking calls excluded)."""
    return [
        c.args[0] for c in fake_page.set_content.await_args_list
        if 'class="pdf-page"' in c.args[0]
    ]


class TestGenerate:

    @pytest.mark.asyncio
    async def test_generates_single_page_pdf(self, pipeline, fake_page):
        document = await pipeline.generate(make_job())

        assert document.page_count == 1
        assert document.pdf_bytes.startswith(b"%PDF")
        assert document.lesson_name == "Cell Structure"
        fake_page.screenshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_page_documents_carry_header_and_content(self, pipeline, fake_page):
        await pipeline.generate(make_job())

        documents = rendered_documents(fake_page)
        assert len(documents) == 1
        assert "Class 10 - Science" in documents[0]
        assert "Cells are the unit of life." in documents[0]
        assert "data:image/png;base64,AAAA" in documents[0]

    @pytest.mark.asyncio
    async def test_long_content_spans_several_pages(self, pipeline, fake_page):
        items = [
            ContentItem(title=f"Question {i}", body="<p>" + "answer " * 120 + "</p>", is_published=True)
            for i in range(12)
        ]

        document = await pipeline.generate(make_job("qa", items))

        assert document.page_count > 1
        documents = rendered_documents(fake_page)
        assert len(documents) == document.page_count
        assert f"1 / {document.page_count}" in documents[0]

    @pytest.mark.asyncio
    async def test_staging_surface_cleared_after_job(self, pipeline, fake_page):
        await pipeline.generate(make_job())

        fake_page.set_content.assert_awaited_with(BLANK_DOCUMENT)
        assert not pipeline.staging.is_busy

    @pytest.mark.asyncio
    async def test_no_items_fails_before_staging(self, pipeline, content_api):
        with pytest.raises(NoContentError) as exc_info:
            await pipeline.generate(make_job("qa", items=[]))

        assert "No Q&A available" in exc_info.value.message
        assert exc_info.value.stage == "assemble"
        assert not pipeline.staging.is_started
        content_api.get_hierarchy.assert_not_awaited()


class TestDegradedStages:

    @pytest.mark.asyncio
    async def test_hierarchy_failure_uses_empty_header(self, pipeline, content_api, fake_page):
        content_api.get_hierarchy.side_effect = RuntimeError("hierarchy API down")
        job = make_job()

        document = await pipeline.generate(job)

        assert document.page_count == 1
        assert document.lesson_name == "Notes"
        assert [e.stage for e in job.warnings.errors] == ["hierarchy"]
        assert '<div class="class-info"></div>' in rendered_documents(fake_page)[0]

    @pytest.mark.asyncio
    async def test_logo_failure_renders_without_logo(self, pipeline, content_api, fake_page):
        content_api.fetch_logo.side_effect = RuntimeError("404")
        job = make_job()

        await pipeline.generate(job)

        assert [e.stage for e in job.warnings.errors] == ["logo"]
        assert "<img" not in rendered_documents(fake_page)[0]


class TestStructuralFailures:

    @pytest.mark.asyncio
    async def test_rasterization_failure_propagates(self, pipeline, fake_page):
        fake_page.screenshot.side_effect = RuntimeError("GPU process crashed")

        with pytest.raises(RasterizationError):
            await pipeline.generate(make_job())

        fake_page.set_content.assert_awaited_with(BLANK_DOCUMENT)

    @pytest.mark.asyncio
    async def test_unexpected_failure_wrapped(self, settings, content_api):
        staging = StagingSurface(settings=settings, page_factory=AsyncMock(side_effect=RuntimeError("no chromium")))
        pipeline = ExportPipeline(settings, content_api=content_api, staging=staging)

        with pytest.raises(ExportError) as exc_info:
            await pipeline.generate(make_job())

        assert exc_info.value.stage == "generate"
        assert "no chromium" in exc_info.value.message


class TestPreview:

    @pytest.mark.asyncio
    async def test_preview_with_text_metrics_skips_staging(self, pipeline):
        items = [ContentItem(body="<p>One</p><p>Two</p>", is_published=True)]

        pages = await pipeline.preview_pages("notes", items)

        assert len(pages) == 1
        assert pages[0].units == 2
        assert not pipeline.staging.is_started

    @pytest.mark.asyncio
    async def test_preview_of_nothing_is_placeholder_page(self, pipeline):
        pages = await pipeline.preview_pages("notes", [])

        assert len(pages) == 1
        assert "No notes available" in pages[0].html
