"""
Export Data Models

Defines the data structures that flow through one export job: content
items and caller identity coming in, pages in the middle, and the job,
document and outcome objects going out.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from src.common.error_handling import ErrorCollector, InvalidTransitionError


@dataclass(frozen=True)
class ResourceInfo:
    """A lesson resource type and its human-readable label."""

    key: str
    label: str


RESOURCE_TYPES: Dict[str, ResourceInfo] = {
    info.key: info
    for info in (
        ResourceInfo("book", "Book"),
        ResourceInfo("slide", "Slides"),
        ResourceInfo("flashcard", "Flashcard"),
        ResourceInfo("notes", "Notes"),
        ResourceInfo("qa", "Q-A & More"),
        ResourceInfo("quiz", "Quiz"),
        ResourceInfo("activity", "Bookback Activity"),
        ResourceInfo("video", "Video"),
        ResourceInfo("audio", "Audio"),
        ResourceInfo("worksheet", "Worksheet"),
        ResourceInfo("questionPaper", "Question Papers"),
    )
}


def get_resource_info(resource_type: str) -> ResourceInfo:
    """Look up a resource type, raising ValueError for unknown keys."""
    try:
        return RESOURCE_TYPES[resource_type]
    except KeyError:
        raise ValueError(f"Unknown resource type: {resource_type}")


@dataclass
class ContentItem:
    """One content item of a lesson, as returned by the content API."""

    title: str = ""
    body: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_published: bool = False
    id: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ContentItem":
        return cls(
            title=data.get("title") or "",
            body=data.get("body") or "",
            metadata=data.get("metadata") or {},
            is_published=bool(data.get("isPublished", False)),
            id=data.get("_id") or data.get("id"),
        )


@dataclass(frozen=True)
class CallerIdentity:
    """The user invoking an export."""

    role: str = "user"
    can_edit: bool = False
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        """Admins and editors download directly; everyone else gets email."""
        return self.role == "admin" or self.can_edit

    @property
    def display_name(self) -> str:
        return self.name or "User"


@dataclass(frozen=True)
class HierarchyContext:
    """Read-only Class/Subject/Unit/SubUnit/Lesson names for page headers."""

    class_name: str = ""
    subject_name: str = ""
    unit_name: str = ""
    sub_unit_name: str = ""
    lesson_name: str = ""

    @classmethod
    def empty(cls) -> "HierarchyContext":
        return cls()

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "HierarchyContext":
        return cls(
            class_name=data.get("className") or "",
            subject_name=data.get("subjectName") or "",
            unit_name=data.get("unitName") or "",
            sub_unit_name=data.get("subUnitName") or "",
            lesson_name=data.get("lessonName") or "",
        )

    def display_lesson_name(self, fallback: str) -> str:
        return self.lesson_name or fallback


@dataclass
class Page:
    """
    One paginated page of content HTML.

    Attributes:
        html: Concatenated markup of every unit placed on the page
        height: Cumulative measured height in layout pixels
        units: Number of content units (blocks or fragments) placed on it
        oversized: True when a single unsplittable unit exceeds the budget
    """

    html: str
    height: float
    units: int = 0
    oversized: bool = False


class ExportState(str, Enum):
    """States of one export job."""

    IDLE = "idle"
    GENERATING = "generating"
    DELIVERING_LOCAL = "delivering_local"
    DELIVERING_REMOTE = "delivering_remote"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    ExportState.IDLE: {ExportState.GENERATING},
    ExportState.GENERATING: {
        ExportState.DELIVERING_LOCAL,
        ExportState.DELIVERING_REMOTE,
        ExportState.FAILED,
    },
    ExportState.DELIVERING_LOCAL: {ExportState.SUCCEEDED, ExportState.FAILED},
    ExportState.DELIVERING_REMOTE: {ExportState.SUCCEEDED, ExportState.FAILED},
    ExportState.SUCCEEDED: set(),
    ExportState.FAILED: set(),
}


@dataclass
class ExportJob:
    """
    Transient state of one export invocation. Never persisted.
    """

    lesson_id: str
    resource_type: str
    items: List[ContentItem]
    identity: CallerIdentity
    recipient: Optional[str] = None  # email address, or None for local delivery
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ExportState = ExportState.IDLE
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    failure_reason: Optional[str] = None
    counter_incremented: bool = False
    warnings: ErrorCollector = field(default_factory=ErrorCollector)

    @property
    def resource(self) -> ResourceInfo:
        return get_resource_info(self.resource_type)

    def transition(self, new_state: ExportState, reason: Optional[str] = None) -> None:
        """Move to a new state, rejecting edges the state machine does not allow."""
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot move export job {self.job_id} from {self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.updated_at = datetime.utcnow()
        if new_state is ExportState.FAILED:
            self.failure_reason = reason


@dataclass
class GeneratedDocument:
    """A finished multi-page PDF and the context it was built from."""

    pdf_bytes: bytes
    page_count: int
    hierarchy: HierarchyContext
    lesson_name: str
    content_type: str = "application/pdf"


@dataclass
class LocalDocument:
    """A document handed to the caller for local saving."""

    filename: str
    pdf_bytes: bytes
    content_type: str = "application/pdf"


@dataclass
class DeliveryAck:
    """Acknowledgment returned by the remote delivery channel."""

    success: bool
    message: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DeliveryAck":
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        return cls(success=bool(data.get("success")), message=data.get("message"))


@dataclass
class ExportOutcome:
    """The single terminal notification shown for a job."""

    job_id: str
    state: ExportState
    title: str
    message: str
    destination: Optional[str] = None  # local file name or email address
    support_phone: Optional[str] = None
    document: Optional[LocalDocument] = None
    warnings: List[str] = field(default_factory=list)
    failure_stage: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is ExportState.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "state": self.state.value,
            "title": self.title,
            "message": self.message,
            "destination": self.destination,
            "support_phone": self.support_phone,
            "failure_stage": self.failure_stage,
            "warnings": list(self.warnings),
        }
