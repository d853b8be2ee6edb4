"""
Request/response models for the export service.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.export.models import CallerIdentity, ContentItem


class IdentityModel(BaseModel):
    """The user invoking an export."""
    role: str = Field("user", description="'admin' or any other role")
    canEdit: bool = Field(False, description="Explicit edit capability")
    email: Optional[str] = Field(None, description="Stored email address")
    name: Optional[str] = Field(None, description="Display name")

    def to_identity(self) -> CallerIdentity:
        return CallerIdentity(role=self.role, can_edit=self.canEdit, email=self.email, name=self.name)


class ContentItemModel(BaseModel):
    """One content item, in the content API's shape."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(None, alias="_id")
    title: str = ""
    body: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    isPublished: bool = False

    def to_item(self) -> ContentItem:
        return ContentItem(
            title=self.title,
            body=self.body,
            metadata=self.metadata,
            is_published=self.isPublished,
            id=self.id,
        )


class ExportRequestModel(BaseModel):
    """Export one lesson resource."""
    lessonId: str = Field(..., min_length=1, description="Lesson identifier")
    type: str = Field(..., description="Resource type key, e.g. 'notes' or 'qa'")
    identity: IdentityModel = Field(default_factory=IdentityModel)
    email: Optional[str] = Field(None, description="Recipient override for emailed exports")
    items: Optional[List[ContentItemModel]] = Field(
        None, description="Inline content items; fetched from the content API when omitted"
    )


class PreviewRequestModel(BaseModel):
    """Paginate inline items without rasterizing."""
    type: str = Field(..., description="Resource type key")
    items: List[ContentItemModel] = Field(default_factory=list)
    identity: IdentityModel = Field(default_factory=IdentityModel)


class PreviewPage(BaseModel):
    index: int
    html: str
    height: float
    oversized: bool = False


class PreviewResponse(BaseModel):
    page_count: int
    budget_px: int
    pages: List[PreviewPage]


class ExportResponse(BaseModel):
    """Outcome of an emailed export."""
    job_id: str
    state: str
    title: str
    message: str
    destination: Optional[str] = None
    support_phone: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime
    version: str
    active_exports: int
    staging_busy: bool
    playwright_ready: bool = True
    playwright_error: Optional[str] = None
