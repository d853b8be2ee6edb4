"""
Clients for the export pipeline's external collaborators.
"""

from src.services.content_api import ContentApiClient, ContentApiError
from src.services.mail_delivery import EmailDeliveryClient

__all__ = [
    "ContentApiClient",
    "ContentApiError",
    "EmailDeliveryClient",
]
