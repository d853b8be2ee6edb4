"""
Unit tests for export service endpoints.

Tests health check, export and page preview endpoints with the export
controller's collaborators mocked.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.common.config import ExportSettings
from src.common.error_handling import DeliveryError, NoContentError
from src.export.controller import ExportController
from src.export.models import ContentItem, ExportState, GeneratedDocument, HierarchyContext
from src.export.pipeline import ExportPipeline
from src.services.content_api import ContentApiError


@pytest.fixture
def settings():
    return ExportSettings(probe_engine="text-metrics")


@pytest.fixture
def content_api():
    api = MagicMock()
    api.get_contents = AsyncMock(return_value=[ContentItem(title="Q", body="<p>A</p>", is_published=True)])
    api.increment_download = AsyncMock()
    return api


@pytest.fixture
def mailer():
    mailer = MagicMock()
    mailer.send_pdf = AsyncMock()
    return mailer


@pytest.fixture
def controller(settings, content_api, mailer):
    pipeline = ExportPipeline(settings, content_api=content_api, staging=MagicMock())
    pipeline.generate = AsyncMock(return_value=GeneratedDocument(
        pdf_bytes=b"%PDF-1.4 fake",
        page_count=1,
        hierarchy=HierarchyContext(lesson_name="செல் அமைப்பு"),
        lesson_name="செல் அமைப்பு",
    ))
    return ExportController(settings, pipeline=pipeline, content_api=content_api, mailer=mailer)


@pytest.fixture
def client(controller):
    """Create test client with Playwright marked as ready and a mocked controller."""
    import export_service.app as app_module
    app_module._playwright_ready = True
    app_module._playwright_error = None
    app_module._controller = controller
    from export_service.app import app
    yield TestClient(app)
    app_module._controller = None


@pytest.fixture
def client_playwright_unavailable(controller):
    """Create test client with Playwright marked as unavailable."""
    import export_service.app as app_module
    app_module._playwright_ready = False
    app_module._playwright_error = "Test: Playwright not available"
    app_module._controller = controller
    from export_service.app import app
    yield TestClient(app)
    app_module._controller = None


ADMIN = {"role": "admin", "name": "Admin"}
STUDENT = {"role": "user", "name": "Kavya", "email": "student@example.com"}


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 OK when Playwright is ready."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_returns_correct_structure(self, client):
        """Test that health check returns expected fields."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["active_exports"] == 0
        assert data["staging_busy"] is False
        assert data["playwright_ready"] is True

    def test_health_check_returns_503_when_playwright_unavailable(self, client_playwright_unavailable):
        """Test that health check returns 503 when Playwright is not ready."""
        response = client_playwright_unavailable.get("/health")
        assert response.status_code == 503
        data = response.json()["detail"]
        assert data["status"] == "unhealthy"
        assert data["playwright_ready"] is False
        assert "Playwright not available" in data["playwright_error"]


class TestExportEndpoint:
    """Tests for /exports endpoint."""

    def test_requires_lesson_and_type(self, client):
        """Test that missing fields fail validation."""
        response = client.post("/exports", json={})
        assert response.status_code == 422

    def test_unknown_type_rejected(self, client):
        response = client.post("/exports", json={"lessonId": "abc", "type": "podcast", "identity": ADMIN})
        assert response.status_code == 400

    def test_admin_receives_pdf_attachment(self, client, content_api):
        """Test that privileged callers get the document itself."""
        response = client.post("/exports", json={"lessonId": "abc", "type": "notes", "identity": ADMIN})

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content == b"%PDF-1.4 fake"
        disposition = response.headers["content-disposition"]
        assert disposition.startswith("attachment;")
        assert "filename*=UTF-8''" in disposition
        assert "_Notes_" in disposition
        assert response.headers["x-export-job-id"]
        content_api.get_contents.assert_awaited_once_with("abc", "notes")

    def test_user_gets_email_confirmation(self, client, mailer):
        """Test that other callers get a JSON outcome after the email is sent."""
        response = client.post("/exports", json={"lessonId": "abc", "type": "qa", "identity": STUDENT})

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "succeeded"
        assert data["destination"] == "student@example.com"
        assert mailer.send_pdf.await_args.kwargs["email"] == "student@example.com"

    def test_inline_items_skip_content_api(self, client, controller, content_api):
        payload = {
            "lessonId": "abc",
            "type": "qa",
            "identity": ADMIN,
            "items": [{"_id": "1", "title": "Q1", "body": "<p>A</p>", "isPublished": False}],
        }

        response = client.post("/exports", json=payload)

        assert response.status_code == 200
        content_api.get_contents.assert_not_awaited()
        job = controller.pipeline.generate.await_args.args[0]
        assert [i.id for i in job.items] == ["1"]

    def test_email_required(self, client):
        response = client.post(
            "/exports", json={"lessonId": "abc", "type": "qa", "identity": {"role": "user"}},
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "email_required"

    def test_export_already_running(self, client, controller):
        running = MagicMock(job_id="running-job", state=ExportState.GENERATING)
        controller._active[("Admin", "abc", "notes")] = running

        response = client.post("/exports", json={"lessonId": "abc", "type": "notes", "identity": ADMIN})

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "export_in_progress"

    def test_no_content_maps_to_404(self, client, controller):
        controller.pipeline.generate.side_effect = NoContentError("No notes available")

        response = client.post("/exports", json={"lessonId": "abc", "type": "notes", "identity": ADMIN})

        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["state"] == "failed"
        assert detail["failure_stage"] == "assemble"

    def test_delivery_failure_maps_to_502(self, client, mailer, settings):
        mailer.send_pdf.side_effect = DeliveryError("Mail server down")

        response = client.post("/exports", json={"lessonId": "abc", "type": "qa", "identity": STUDENT})

        assert response.status_code == 502
        detail = response.json()["detail"]
        assert detail["support_phone"] == settings.support_phone
        assert "Mail server down" in detail["message"]

    def test_content_api_failure_maps_to_502(self, client, content_api):
        content_api.get_contents.side_effect = ContentApiError("HTTP 500", status_code=500)

        response = client.post("/exports", json={"lessonId": "abc", "type": "qa", "identity": ADMIN})

        assert response.status_code == 502


class TestPreviewEndpoint:
    """Tests for /preview-pages endpoint."""

    def test_preview_returns_pages(self, client, settings):
        payload = {
            "type": "notes",
            "identity": ADMIN,
            "items": [{"body": "<h2>Cells</h2><p>Cells are the unit of life.</p>", "isPublished": True}],
        }

        response = client.post("/preview-pages", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["page_count"] == 1
        assert data["budget_px"] == settings.page_budget_px
        assert "Cells are the unit of life." in data["pages"][0]["html"]
        assert data["pages"][0]["height"] > 0

    def test_preview_hides_unpublished_from_users(self, client):
        payload = {
            "type": "notes",
            "identity": {"role": "user"},
            "items": [{"body": "<p>Draft</p>", "isPublished": False}],
        }

        data = client.post("/preview-pages", json=payload).json()

        assert data["page_count"] == 1
        assert "No notes available" in data["pages"][0]["html"]

    def test_preview_unknown_type(self, client):
        response = client.post("/preview-pages", json={"type": "podcast"})
        assert response.status_code == 400
