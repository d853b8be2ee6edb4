"""
Export Service - FastAPI application for lesson PDF exports.

Provides endpoints for exporting lesson resources to paginated PDFs
(downloaded by privileged users, emailed to everyone else) and for
previewing page boundaries, using Playwright/Chromium for measurement
and rasterization.
"""

import re
from datetime import datetime
from io import BytesIO
from typing import Optional
from urllib.parse import quote

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse

from export_service.models import (
    ExportRequestModel,
    ExportResponse,
    HealthResponse,
    PreviewPage,
    PreviewRequestModel,
    PreviewResponse,
)
from src.common.config import get_settings, validate_config_on_startup
from src.common.error_handling import EmailRequiredError
from src.common.logger import get_logger, setup_logging
from src.export.assembly import visible_items
from src.export.controller import ExportController, ExportRequest
from src.export.models import get_resource_info
from src.export.staging import get_staging_surface
from src.services.content_api import ContentApiError
from version import __version__

logger = get_logger(__name__, stage="service")

app = FastAPI(
    title="Lesson Export Service",
    version=__version__,
    description="Paginated lesson PDF export using Playwright/Chromium"
)

# Playwright readiness state
_playwright_ready = False
_playwright_error: Optional[str] = None

_controller: Optional[ExportController] = None

# Failure stage -> HTTP status for failed export outcomes
_FAILURE_STATUS = {
    "assemble": 404,
    "distribute": 502,
}


def get_controller() -> ExportController:
    """Return the process-wide export controller, creating it on first use."""
    global _controller
    if _controller is None:
        _controller = ExportController(get_settings())
    return _controller


def content_disposition(filename: str) -> str:
    """Attachment header carrying an ASCII fallback plus the UTF-8 file name."""
    ascii_name = re.sub(r"[^A-Za-z0-9._-]", "_", filename)
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(filename)}"


# ============================================================================
# Startup / Shutdown
# ============================================================================

@app.on_event("startup")
async def validate_playwright_on_startup():
    """
    Validate configuration and the Playwright/Chromium installation.

    The service won't report as healthy if Chromium can't render a page.
    """
    global _playwright_ready, _playwright_error

    settings = validate_config_on_startup()
    setup_logging(settings.log_level, settings.log_format, debug=settings.debug_mode)
    logger.info("Export Service starting - validating Playwright installation...")

    try:
        from playwright.async_api import async_playwright

        async with async_playwright() as p:
            logger.info("Launching Chromium for validation...")
            browser = await p.chromium.launch(headless=settings.playwright_headless)
            page = await browser.new_page()
            await page.set_content("<html><body><h1>Test</h1></body></html>")
            screenshot = await page.screenshot(type="png")
            await browser.close()

        if screenshot:
            _playwright_ready = True
            logger.info(f"✅ Playwright validation successful - captured {len(screenshot)} byte test page")
        else:
            _playwright_error = "Test screenshot returned empty result"
            logger.error(f"❌ Playwright validation failed: {_playwright_error}")

    except Exception as e:
        _playwright_error = str(e)
        logger.error(f"❌ Playwright validation failed: {_playwright_error}")
        logger.error("PDF export will not work until this is resolved.")


@app.on_event("shutdown")
async def close_staging_surface():
    await get_staging_surface().close()


# ============================================================================
# Health Check Endpoint
# ============================================================================

@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint for container orchestration.

    Returns HTTP 503 if Playwright validation failed on startup.
    """
    active = len(get_controller().active_jobs())
    staging_busy = get_staging_surface().is_busy

    if not _playwright_ready:
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": datetime.utcnow().isoformat(),
                "version": __version__,
                "active_exports": active,
                "staging_busy": staging_busy,
                "playwright_ready": False,
                "playwright_error": _playwright_error,
                "message": "Export service is unhealthy - Playwright/Chromium not available"
            }
        )

    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow(),
        version=__version__,
        active_exports=active,
        staging_busy=staging_busy,
        playwright_ready=True,
        playwright_error=None
    )


# ============================================================================
# Export Endpoints
# ============================================================================

@app.post("/exports")
async def create_export(request: ExportRequestModel):
    """
    Export a lesson resource.

    Privileged callers receive the PDF as an attachment; other callers get
    a JSON confirmation once the PDF has been emailed.

    Raises:
        HTTPException: 400 unknown type, 404 no content, 409 missing email or
            export already running, 502 collaborator failure, 500 otherwise
    """
    try:
        get_resource_info(request.type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    controller = get_controller()

    if request.items is not None:
        items = [item.to_item() for item in request.items]
    else:
        try:
            items = await controller.content_api.get_contents(request.lessonId, request.type)
        except (ContentApiError, httpx.HTTPError) as e:
            logger.error(f"Failed to fetch content for lesson {request.lessonId}: {e}")
            raise HTTPException(status_code=502, detail=f"Content API unavailable: {e}")

    export_request = ExportRequest(
        lesson_id=request.lessonId,
        resource_type=request.type,
        identity=request.identity.to_identity(),
        items=items,
        email=request.email,
    )

    try:
        outcome = await controller.export(export_request)
    except EmailRequiredError as e:
        raise HTTPException(status_code=409, detail={"error": "email_required", "message": e.message})

    if outcome is None:
        raise HTTPException(
            status_code=409,
            detail={"error": "export_in_progress", "message": "An export for this lesson is already running"}
        )

    if not outcome.succeeded:
        status = _FAILURE_STATUS.get(outcome.failure_stage, 500)
        raise HTTPException(status_code=status, detail=outcome.to_dict())

    if outcome.document is not None:
        document = outcome.document
        return StreamingResponse(
            BytesIO(document.pdf_bytes),
            media_type=document.content_type,
            headers={
                "Content-Disposition": content_disposition(document.filename),
                "X-Export-Job-Id": outcome.job_id,
            }
        )

    return ExportResponse(
        job_id=outcome.job_id,
        state=outcome.state.value,
        title=outcome.title,
        message=outcome.message,
        destination=outcome.destination,
        support_phone=outcome.support_phone,
        warnings=outcome.warnings,
    )


@app.post("/preview-pages", response_model=PreviewResponse)
async def preview_pages(request: PreviewRequestModel) -> PreviewResponse:
    """Paginate inline items and return page HTML and heights, without rasterizing."""
    try:
        get_resource_info(request.type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    controller = get_controller()
    items = visible_items([item.to_item() for item in request.items], request.identity.to_identity())

    try:
        pages = await controller.pipeline.preview_pages(request.type, items)
    except Exception as e:
        logger.error(f"Page preview failed: {e}")
        raise HTTPException(status_code=500, detail=f"Page preview failed: {e}")

    return PreviewResponse(
        page_count=len(pages),
        budget_px=controller.settings.page_budget_px,
        pages=[
            PreviewPage(index=i, html=page.html, height=page.height, oversized=page.oversized)
            for i, page in enumerate(pages)
        ],
    )
