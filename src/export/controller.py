"""
Export controller and distribution policy.

Runs one export job end to end:

    idle -> generating -> delivering_local | delivering_remote -> succeeded | failed

Privileged callers (admins, editors) receive the document for local
saving; everyone else has it emailed. The download counter is bumped at
most once per successful job, and exactly one outcome is reported.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from src.common.config import ExportSettings, get_settings
from src.common.error_handling import EmailRequiredError, ExportError
from src.common.logger import get_logger
from src.export import messages
from src.export.assembly import visible_items
from src.export.models import (
    CallerIdentity,
    ContentItem,
    ExportJob,
    ExportOutcome,
    ExportState,
    GeneratedDocument,
    LocalDocument,
)
from src.export.pipeline import ExportPipeline
from src.export.templates import suggested_filename
from src.services.content_api import ContentApiClient
from src.services.mail_delivery import EmailDeliveryClient

logger = logging.getLogger(__name__)

EmailPrompt = Callable[[], Optional[str]]


@dataclass
class ExportRequest:
    """One user's request to export a lesson resource."""

    lesson_id: str
    resource_type: str
    identity: CallerIdentity
    items: List[ContentItem] = field(default_factory=list)
    email: Optional[str] = None  # overrides identity.email for remote delivery
    request_id: str = field(default_factory=lambda: uuid4().hex)

    @property
    def key(self) -> Tuple[str, str, str]:
        """
        Jobs with the same key may not run concurrently.

        Callers are told apart by address or name; an anonymous caller
        only ever collides with its own request.
        """
        caller = self.email or self.identity.email or self.identity.name or self.request_id
        return (caller, self.lesson_id, self.resource_type)


class ExportReporter:
    """
    Receives progress and outcome notifications for jobs.

    The base implementation logs them.
    """

    def progress(self, job: ExportJob, title: str, message: str) -> None:
        logger.info(f"[job:{job.job_id[:8]}] {title}")

    def outcome(self, outcome: ExportOutcome) -> None:
        level = logging.INFO if outcome.succeeded else logging.ERROR
        logger.log(level, f"[job:{outcome.job_id[:8]}] {outcome.state.value}: {outcome.title}")


class CollectingReporter(ExportReporter):
    """Keeps every notification, for callers that render them later."""

    def __init__(self):
        self.progress_updates: List[Tuple[str, str, str]] = []
        self.outcomes: List[ExportOutcome] = []

    def progress(self, job: ExportJob, title: str, message: str) -> None:
        super().progress(job, title, message)
        self.progress_updates.append((job.job_id, title, message))

    def outcome(self, outcome: ExportOutcome) -> None:
        super().outcome(outcome)
        self.outcomes.append(outcome)


def _looks_like_email(value: str) -> bool:
    local, _, domain = value.partition("@")
    return bool(local) and "." in domain and " " not in value


class ExportController:
    """
    Orchestrates export jobs.

    Args:
        settings: Pipeline configuration
        pipeline: PDF generation stages
        content_api: Download counter endpoint
        mailer: Remote delivery channel
        reporter: Notification sink
        today: Date source for suggested file names
    """

    def __init__(
        self,
        settings: Optional[ExportSettings] = None,
        pipeline: Optional[ExportPipeline] = None,
        content_api: Optional[ContentApiClient] = None,
        mailer: Optional[EmailDeliveryClient] = None,
        reporter: Optional[ExportReporter] = None,
        today: Callable[[], date] = date.today,
    ):
        self.settings = settings or get_settings()
        self.content_api = content_api or ContentApiClient(self.settings)
        self.pipeline = pipeline or ExportPipeline(self.settings, content_api=self.content_api)
        self.mailer = mailer or EmailDeliveryClient(self.settings)
        self.reporter = reporter or ExportReporter()
        self.today = today
        self._active: Dict[Tuple[str, str, str], ExportJob] = {}

    def is_busy(self, request: ExportRequest) -> bool:
        return request.key in self._active

    def active_jobs(self) -> List[ExportJob]:
        return list(self._active.values())

    def _collect_recipient(self, request: ExportRequest, email_prompt: Optional[EmailPrompt]) -> Optional[str]:
        """
        Resolve the delivery address for a non-privileged caller.

        Raises:
            EmailRequiredError: No usable address could be obtained
        """
        recipient = request.email or request.identity.email
        if not recipient and email_prompt is not None:
            recipient = email_prompt()
        recipient = (recipient or "").strip()
        if not recipient:
            raise EmailRequiredError(messages.EMAIL_REQUIRED_MESSAGE)
        if not _looks_like_email(recipient):
            raise EmailRequiredError(f"Invalid email address: {recipient}")
        return recipient

    async def export(self, request: ExportRequest, email_prompt: Optional[EmailPrompt] = None) -> Optional[ExportOutcome]:
        """
        Run one export job.

        Args:
            request: What to export and for whom
            email_prompt: Synchronous callback asked for an address when a
                non-privileged caller has none

        Returns:
            The job's outcome, or None when the request was ignored because
            the same caller's job is still running

        Raises:
            EmailRequiredError: Remote delivery has no recipient; no job was started
        """
        if self.is_busy(request):
            running = self._active[request.key]
            logger.warning(
                f"Ignoring export request for lesson {request.lesson_id}: "
                f"job {running.job_id[:8]} is {running.state.value}"
            )
            return None

        identity = request.identity
        recipient = None if identity.is_privileged else self._collect_recipient(request, email_prompt)

        job = ExportJob(
            lesson_id=request.lesson_id,
            resource_type=request.resource_type,
            items=visible_items(request.items, identity),
            identity=identity,
            recipient=recipient,
        )
        log = get_logger(__name__, job_id=job.job_id, stage="export")
        self._active[request.key] = job

        try:
            job.transition(ExportState.GENERATING)
            self.reporter.progress(job, messages.GENERATING_TITLE, messages.GENERATING_MESSAGE)
            try:
                document = await self.pipeline.generate(job)
                if identity.is_privileged:
                    job.transition(ExportState.DELIVERING_LOCAL)
                    outcome = await self._deliver_local(job, document)
                else:
                    job.transition(ExportState.DELIVERING_REMOTE)
                    self.reporter.progress(job, messages.SENDING_TITLE, messages.SENDING_MESSAGE)
                    outcome = await self._deliver_remote(job, document)
            except ExportError as e:
                log.error(f"Export failed at {e.stage}: {e.message}")
                outcome = self._fail(job, e)
            except Exception as e:
                log.exception(f"Unexpected export failure: {e}")
                outcome = self._fail(job, ExportError(str(e) or type(e).__name__))
        finally:
            self._active.pop(request.key, None)

        self.reporter.outcome(outcome)
        return outcome

    async def _deliver_local(self, job: ExportJob, document: GeneratedDocument) -> ExportOutcome:
        filename = suggested_filename(document.lesson_name, job.resource.label, self.today())
        local = LocalDocument(filename=filename, pdf_bytes=document.pdf_bytes, content_type=document.content_type)
        await self._increment_counter(job)
        job.transition(ExportState.SUCCEEDED)
        return ExportOutcome(
            job_id=job.job_id,
            state=job.state,
            title=messages.SUCCESS_TITLE,
            message=messages.DOWNLOAD_SUCCESS_MESSAGE,
            destination=filename,
            document=local,
            warnings=job.warnings.get_error_messages(),
        )

    async def _deliver_remote(self, job: ExportJob, document: GeneratedDocument) -> ExportOutcome:
        label = job.resource.label
        await self.mailer.send_pdf(
            document.pdf_bytes,
            filename=f"{document.lesson_name}_{label}.pdf",
            email=job.recipient,
            title=f"{label}: {document.lesson_name}",
            lesson_id=job.lesson_id,
            resource_type=job.resource_type,
            user_name=job.identity.display_name,
        )
        await self._increment_counter(job)
        job.transition(ExportState.SUCCEEDED)
        return ExportOutcome(
            job_id=job.job_id,
            state=job.state,
            title=messages.SUCCESS_TITLE,
            message=messages.email_sent_message(job.recipient),
            destination=job.recipient,
            warnings=job.warnings.get_error_messages(),
        )

    async def _increment_counter(self, job: ExportJob) -> None:
        """Bump the download counter once. Failures are recorded, never fatal."""
        if job.counter_incremented:
            return
        try:
            await self.content_api.increment_download(job.lesson_id, job.resource_type)
            job.counter_incremented = True
        except Exception as e:
            logger.warning(f"[job:{job.job_id[:8]}] Failed to update download count: {e}")
            job.warnings.add_error(
                stage="usage_counter",
                operation="increment download count",
                message=str(e) or type(e).__name__,
                severity="low",
                exception=e,
            )

    def _fail(self, job: ExportJob, error: ExportError) -> ExportOutcome:
        privileged = job.identity.is_privileged
        phone = self.settings.support_phone
        job.transition(ExportState.FAILED, reason=error.message)
        return ExportOutcome(
            job_id=job.job_id,
            state=job.state,
            title=messages.failure_title(privileged),
            message=messages.failure_message(privileged, error.message, phone, error.user_message),
            support_phone=phone,
            warnings=job.warnings.get_error_messages(),
            failure_stage=error.stage,
        )
