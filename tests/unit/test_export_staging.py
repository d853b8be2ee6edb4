"""
Unit tests for src/export/staging.py

The Chromium page is replaced by a mock through the surface's
page_factory, so no browser is launched.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.export.staging import (
    BLANK_DOCUMENT,
    PROBE_CONTAINER_ID,
    StagingSession,
    StagingSurface,
    get_staging_surface,
    reset_staging_surface,
)


@pytest.fixture
def fake_page():
    page = MagicMock()
    page.set_content = AsyncMock()
    page.evaluate = AsyncMock(return_value=0)
    page.is_closed = MagicMock(return_value=False)
    return page


@pytest.fixture
def surface(settings, fake_page):
    factory = AsyncMock(return_value=fake_page)
    return StagingSurface(settings=settings, page_factory=factory)


class TestStagingSession:

    @pytest.mark.asyncio
    async def test_prepare_probe_installs_container_once(self, settings, fake_page):
        session = StagingSession(fake_page, "job-1", settings)

        await session.prepare_probe("#export-probe { width: 700px; }")
        await session.prepare_probe("#export-probe { width: 700px; }")

        assert fake_page.set_content.await_count == 1
        document = fake_page.set_content.await_args.args[0]
        assert f'<div id="{PROBE_CONTAINER_ID}"></div>' in document
        assert "width: 700px" in document

    @pytest.mark.asyncio
    async def test_loading_a_document_invalidates_probe(self, settings, fake_page):
        session = StagingSession(fake_page, "job-1", settings)
        await session.prepare_probe("css")

        await session.load_document("<html></html>")
        await session.prepare_probe("css")

        assert fake_page.set_content.await_count == 3

    @pytest.mark.asyncio
    async def test_load_document_waits_for_load_and_fonts(self, settings, fake_page):
        session = StagingSession(fake_page, "job-1", settings)

        await session.load_document("<html></html>")

        kwargs = fake_page.set_content.await_args.kwargs
        assert kwargs["wait_until"] == "load"
        assert kwargs["timeout"] == settings.playwright_timeout_ms
        assert "document.fonts" in fake_page.evaluate.await_args.args[0]

    @pytest.mark.asyncio
    async def test_measure_in_probe_returns_integer_height(self, settings, fake_page):
        fake_page.evaluate.return_value = 88
        session = StagingSession(fake_page, "job-1", settings)

        height = await session.measure_in_probe("<p>x</p>")

        assert height == 88
        assert fake_page.evaluate.await_args.args[1] == [PROBE_CONTAINER_ID, "<p>x</p>"]

    @pytest.mark.asyncio
    async def test_measure_in_probe_treats_missing_height_as_zero(self, settings, fake_page):
        fake_page.evaluate.return_value = None
        session = StagingSession(fake_page, "job-1", settings)

        assert await session.measure_in_probe("") == 0


class TestStagingSurface:

    @pytest.mark.asyncio
    async def test_page_created_lazily_and_reused(self, surface):
        assert not surface.is_started

        await surface.with_staging("job-1", AsyncMock())
        await surface.with_staging("job-2", AsyncMock())

        assert surface.is_started
        surface._page_factory.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_surface_cleared_after_success(self, surface, fake_page):
        result = await surface.with_staging("job-1", AsyncMock(return_value="done"))

        assert result == "done"
        fake_page.set_content.assert_awaited_with(BLANK_DOCUMENT)
        assert surface.active_job_id is None
        assert not surface.is_busy

    @pytest.mark.asyncio
    async def test_surface_cleared_after_failure(self, surface, fake_page):
        with pytest.raises(RuntimeError):
            async with surface.acquire("job-1"):
                raise RuntimeError("boom")

        fake_page.set_content.assert_awaited_with(BLANK_DOCUMENT)
        assert not surface.is_busy

    @pytest.mark.asyncio
    async def test_clear_failure_does_not_mask_result(self, surface, fake_page):
        fake_page.set_content.side_effect = RuntimeError("page crashed")

        result = await surface.with_staging("job-1", AsyncMock(return_value=42))

        assert result == 42
        assert not surface.is_busy

    @pytest.mark.asyncio
    async def test_jobs_hold_surface_one_at_a_time(self, surface):
        events = []
        release_first = asyncio.Event()

        async def first(session):
            events.append(("start", session.job_id))
            await release_first.wait()
            events.append(("end", session.job_id))

        async def second(session):
            events.append(("start", session.job_id))
            events.append(("end", session.job_id))

        task_1 = asyncio.create_task(surface.with_staging("job-1", first))
        await asyncio.sleep(0)
        task_2 = asyncio.create_task(surface.with_staging("job-2", second))
        for _ in range(5):
            await asyncio.sleep(0)

        assert surface.is_busy
        assert surface.active_job_id == "job-1"
        assert ("start", "job-2") not in events

        release_first.set()
        await asyncio.gather(task_1, task_2)

        assert events == [
            ("start", "job-1"),
            ("end", "job-1"),
            ("start", "job-2"),
            ("end", "job-2"),
        ]

    @pytest.mark.asyncio
    async def test_close_without_start_is_safe(self, surface):
        await surface.close()

        assert not surface.is_started

    @pytest.mark.asyncio
    async def test_close_stops_browser_and_relaunches_on_next_use(self, surface):
        await surface.with_staging("job-1", AsyncMock())
        browser = MagicMock()
        browser.close = AsyncMock()
        surface._browser = browser

        await surface.close()

        browser.close.assert_awaited_once()
        assert not surface.is_started

        await surface.with_staging("job-2", AsyncMock())
        assert surface._page_factory.await_count == 2

    @pytest.mark.asyncio
    async def test_closed_page_is_replaced(self, surface, fake_page):
        await surface.with_staging("job-1", AsyncMock())
        fake_page.is_closed.return_value = True

        await surface.with_staging("job-2", AsyncMock())

        assert surface._page_factory.await_count == 2

    @pytest.mark.asyncio
    async def test_disconnected_browser_is_relaunched(self, surface):
        await surface.with_staging("job-1", AsyncMock())
        browser = MagicMock()
        browser.is_connected.return_value = False
        browser.close = AsyncMock()
        surface._browser = browser

        await surface.with_staging("job-2", AsyncMock())

        browser.close.assert_awaited_once()
        assert surface._page_factory.await_count == 2


def test_shared_surface_is_singleton():
    reset_staging_surface()
    try:
        assert get_staging_surface() is get_staging_surface()
    finally:
        reset_staging_surface()
