"""
Content API client.

Async HTTP client for the lesson hierarchy/content REST API:
hierarchy labels, published content items, the per-lesson download
counter and the header logo.
"""

import base64
import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.common.config import ExportSettings, get_settings
from src.export.models import ContentItem, HierarchyContext

logger = logging.getLogger(__name__)


class ContentApiError(Exception):
    """The content API answered with an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _error_detail(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or response.reason_phrase
    except Exception:
        return response.reason_phrase or f"HTTP {response.status_code}"


class ContentApiClient:
    """
    Client for the hierarchy/content API.

    Args:
        settings: Supplies the base URL and timeout
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        settings: Optional[ExportSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = self.settings.content_api_url
        self.timeout = self.settings.content_api_timeout_seconds
        self._transport = transport

    def _client(self, **kwargs) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=kwargs.pop("timeout", self.timeout),
            transport=self._transport,
            **kwargs,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(min=1, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        async with self._client() as client:
            response = await client.get(path, params=params)
            if response.is_error:
                raise ContentApiError(
                    f"GET {path} failed: HTTP {response.status_code}: {_error_detail(response)}",
                    status_code=response.status_code,
                )
            return response.json()

    async def get_hierarchy(self, lesson_id: str) -> HierarchyContext:
        """Class/Subject/Unit/SubUnit/Lesson names for a lesson."""
        data = await self._get_json(f"/hierarchy/{lesson_id}")
        hierarchy = HierarchyContext.from_api(data or {})
        logger.debug(f"Hierarchy for lesson {lesson_id}: {hierarchy}")
        return hierarchy

    async def get_contents(self, lesson_id: str, resource_type: str) -> List[ContentItem]:
        """
        Published content items of one type for a lesson.

        The API answers with groups: ``[{"type", "count", "docs"}]``.
        """
        groups = await self._get_json("/content", params={"lessonId": lesson_id, "type": resource_type})
        items: List[ContentItem] = []
        for group in groups or []:
            if group.get("type") == resource_type:
                items.extend(ContentItem.from_api(doc) for doc in group.get("docs") or [])
        logger.info(f"Fetched {len(items)} {resource_type} items for lesson {lesson_id}")
        return items

    async def increment_download(self, lesson_id: str, resource_type: str) -> None:
        """Bump the lesson's download counter for a resource type. Not retried."""
        async with self._client() as client:
            response = await client.post(f"/lessons/{lesson_id}/downloads", json={"type": resource_type})
            if response.is_error:
                raise ContentApiError(
                    f"Download counter update failed: HTTP {response.status_code}: {_error_detail(response)}",
                    status_code=response.status_code,
                )
        logger.info(f"Download counter incremented for lesson {lesson_id} ({resource_type})")

    async def fetch_logo(self, url: str) -> str:
        """
        Fetch an image and return it as a data URI.

        Returns "" when no URL is configured. Data URIs pass through.
        """
        if not url:
            return ""
        if url.startswith("data:"):
            return url
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
        content_type = response.headers.get("content-type", "image/png").split(";")[0].strip()
        if not content_type.startswith("image/"):
            raise ContentApiError(f"Logo URL did not return an image ({content_type})")
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"
