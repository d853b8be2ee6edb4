"""
Offscreen staging surface shared by height probing and rasterization.

One headless Chromium page per process, launched lazily on first use.
Only one export job may hold the surface at a time; waiting jobs are
served in arrival order. The page is blanked whenever a job releases it,
whether the job succeeded or failed.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from src.common.config import ExportSettings, get_settings
from src.common.logger import get_logger

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROBE_CONTAINER_ID = "export-probe"

BLANK_DOCUMENT = "<!DOCTYPE html><html><head></head><body></body></html>"


class StagingSession:
    """
    A job's exclusive handle on the staging page.

    Handed out by StagingSurface.acquire(); not valid after release.
    """

    def __init__(self, page: Any, job_id: str, settings: ExportSettings):
        self.page = page
        self.job_id = job_id
        self.settings = settings
        self._probe_stylesheet: Optional[str] = None
        self.log = get_logger(__name__, job_id=job_id, stage="staging")

    async def load_document(self, html: str) -> None:
        """Replace the staging page with a full HTML document and wait for its resources."""
        self._probe_stylesheet = None
        await self.page.set_content(
            html,
            wait_until="load",
            timeout=self.settings.playwright_timeout_ms,
        )
        await self.page.evaluate("() => document.fonts ? document.fonts.ready.then(() => true) : true")

    async def prepare_probe(self, stylesheet: str) -> None:
        """
        Install the offscreen probe container, once per stylesheet.

        The container sits outside the viewport with the content width and
        typography of the page content region.
        """
        if self._probe_stylesheet == stylesheet:
            return
        document = (
            "<!DOCTYPE html><html><head><meta charset=\"UTF-8\">"
            f"<style>{stylesheet}</style></head>"
            f'<body><div id="{PROBE_CONTAINER_ID}"></div></body></html>'
        )
        await self.page.set_content(document, wait_until="load", timeout=self.settings.playwright_timeout_ms)
        self._probe_stylesheet = stylesheet

    async def measure_in_probe(self, html: str) -> int:
        """Render ``html`` inside the probe container and return its height in px."""
        height = await self.page.evaluate(
            """([containerId, html]) => {
                const el = document.getElementById(containerId);
                el.innerHTML = html;
                const height = el.getBoundingClientRect().height;
                el.innerHTML = '';
                return Math.ceil(height);
            }""",
            [PROBE_CONTAINER_ID, html],
        )
        return int(height or 0)

    async def clear(self) -> None:
        self._probe_stylesheet = None
        await self.page.set_content(BLANK_DOCUMENT)


class StagingSurface:
    """
    Process-wide, lazily created staging page guarded by an asyncio.Lock.

    Args:
        settings: Page geometry, raster scale and Playwright options
        page_factory: Optional coroutine returning a ready page; replaces
            the Playwright launch (used by tests)
    """

    def __init__(
        self,
        settings: Optional[ExportSettings] = None,
        page_factory: Optional[Callable[[], Awaitable[Any]]] = None,
    ):
        self.settings = settings or get_settings()
        self._page_factory = page_factory
        self._lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._playwright = None
        self._browser = None
        self._page = None
        self.active_job_id: Optional[str] = None

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    @property
    def is_started(self) -> bool:
        return self._page is not None

    async def _launch(self) -> Any:
        from playwright.async_api import async_playwright

        s = self.settings
        logger.info("Launching Chromium for the export staging surface...")
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=s.playwright_headless)
            context = await self._browser.new_context(
                viewport={"width": s.page_width_px, "height": s.page_height_px},
                device_scale_factor=s.raster_scale,
            )
            page = await context.new_page()
        except Exception:
            await self.close()
            raise
        logger.info(f"Staging surface ready ({s.page_width_px}x{s.page_height_px} @{s.raster_scale}x)")
        return page

    def _is_alive(self) -> bool:
        if self._page is None or self._page.is_closed():
            return False
        return self._browser is None or self._browser.is_connected()

    async def _ensure_page(self) -> Any:
        async with self._init_lock:
            if self._page is not None and not self._is_alive():
                logger.warning("Staging page or browser is gone, relaunching")
                await self.close()
            if self._page is None:
                if self._page_factory is not None:
                    self._page = await self._page_factory()
                else:
                    self._page = await self._launch()
            return self._page

    @asynccontextmanager
    async def acquire(self, job_id: str) -> AsyncIterator[StagingSession]:
        """
        Hold the staging surface exclusively for one job.

        Usage:
            async with surface.acquire(job.job_id) as session:
                height = await session.measure_in_probe("<p>...</p>")
        """
        if self.is_busy:
            logger.info(f"[job:{job_id[:8]}] Waiting for staging surface held by job {(self.active_job_id or '?')[:8]}")

        async with self._lock:
            page = await self._ensure_page()
            self.active_job_id = job_id
            session = StagingSession(page, job_id, self.settings)
            try:
                yield session
            finally:
                try:
                    await session.clear()
                except Exception as e:
                    session.log.warning(f"Failed to clear staging surface: {e}")
                self.active_job_id = None

    async def with_staging(self, job_id: str, fn: Callable[[StagingSession], Awaitable[T]]) -> T:
        """Run ``fn`` with exclusive use of the staging surface, clearing it afterwards."""
        async with self.acquire(job_id) as session:
            return await fn(session)

    async def close(self) -> None:
        """Shut down the browser. The surface relaunches on next use."""
        browser, playwright = self._browser, self._playwright
        self._page = None
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except Exception as e:
                logger.warning(f"Error closing staging browser: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")


_surface: Optional[StagingSurface] = None


def get_staging_surface() -> StagingSurface:
    """Return the shared staging surface, creating it on first call."""
    global _surface
    if _surface is None:
        _surface = StagingSurface()
    return _surface


def reset_staging_surface() -> None:
    """Forget the shared surface (the caller is responsible for closing it)."""
    global _surface
    _surface = None
