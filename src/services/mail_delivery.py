"""
Email delivery client.

Hands a finished PDF to the external mail endpoint as a multipart
submission and interprets its ``{success, message}`` acknowledgment.
"""

import logging
from io import BytesIO
from typing import Optional

import httpx

from src.common.config import ExportSettings, get_settings
from src.common.error_handling import DeliveryError
from src.export.models import DeliveryAck

logger = logging.getLogger(__name__)


class EmailDeliveryClient:
    """
    Submits documents to the send-pdf endpoint.

    Submissions are never retried: a retry after a timeout could send the
    same email twice.
    """

    def __init__(
        self,
        settings: Optional[ExportSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.url = self.settings.send_pdf_url
        self.timeout = self.settings.delivery_timeout_seconds
        self._transport = transport

    async def send_pdf(
        self,
        pdf_bytes: bytes,
        *,
        filename: str,
        email: str,
        title: str,
        lesson_id: str,
        resource_type: str,
        user_name: str = "User",
    ) -> DeliveryAck:
        """
        Submit a PDF for delivery to ``email``.

        Returns:
            The endpoint's acknowledgment (always successful)

        Raises:
            DeliveryError: Rejected submission, HTTP error or network failure
        """
        files = {"file": (filename, BytesIO(pdf_bytes), "application/pdf")}
        form_data = {
            "email": email,
            "title": title,
            "lessonId": lesson_id,
            "type": resource_type,
            "userName": user_name or "User",
        }

        logger.info(f"Submitting {len(pdf_bytes)} byte PDF for delivery to {email}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, files=files, data=form_data)
                response.raise_for_status()
                ack = DeliveryAck.from_api(response.json())

        except httpx.TimeoutException as e:
            logger.error(f"Email delivery timed out: {e}")
            raise DeliveryError(f"Email delivery timed out: {e}") from e

        except httpx.HTTPStatusError as e:
            try:
                detail = e.response.json().get("message") or str(e)
            except Exception:
                detail = str(e)
            logger.error(f"Email delivery HTTP {e.response.status_code}: {detail}")
            raise DeliveryError(f"HTTP {e.response.status_code}: {detail}") from e

        except httpx.RequestError as e:
            logger.error(f"Email delivery unreachable: {e}")
            raise DeliveryError(f"Email delivery service unreachable: {e}") from e

        except ValueError as e:
            raise DeliveryError(f"Email delivery returned an invalid response: {e}") from e

        if not ack.success:
            logger.error(f"Email delivery rejected: {ack.message}")
            raise DeliveryError(ack.message or "Failed to send email")

        logger.info(f"Email delivery accepted for {email}")
        return ack
