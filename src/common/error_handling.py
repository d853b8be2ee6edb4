"""
Centralized error handling for the lesson export pipeline.

Provides the export error taxonomy plus decorators and utilities for
consistent logging and fallback behavior across pipeline stages.

Structural failures (no content, rasterization, delivery) are raised as
ExportError subclasses and end the job. Cosmetic failures (hierarchy
metadata, logo) are absorbed by degrade_on_failure and recorded on the
job's ErrorCollector.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

T = TypeVar("T")


class ExportError(Exception):
    """
    Base class for failures that end an export job.

    Attributes:
        stage: Pipeline stage that failed (e.g. "rasterize", "distribute")
        message: Technical description, shown to privileged users
        user_message: Optional localized text for regular users
    """

    stage = "export"

    def __init__(self, message: str, *, stage: Optional[str] = None, user_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.user_message = user_message


class NoContentError(ExportError):
    """Zero content items to export. Raised before any staging work."""

    stage = "assemble"


class RasterizationError(ExportError):
    """A page could not be rasterized. No partial document is produced."""

    stage = "rasterize"

    def __init__(self, message: str, *, page_index: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.page_index = page_index


class DeliveryError(ExportError):
    """The remote delivery channel rejected the document or was unreachable."""

    stage = "distribute"


class EmailRequiredError(ExportError):
    """Remote delivery needs a recipient address and none was supplied."""

    stage = "collect_recipient"


class InvalidTransitionError(ExportError):
    """An export job was moved along an edge the state machine does not allow."""

    stage = "state"


@dataclass
class StageError:
    """
    Structured record of a degraded (recoverable) stage failure.
    """

    stage: str  # e.g., "hierarchy", "logo"
    operation: str  # e.g., "fetch hierarchy metadata"
    severity: str  # "critical", "high", "medium", "low"
    message: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    recoverable: bool = True
    exception_type: Optional[str] = None


class ErrorCollector:
    """
    Collects stage errors during one export job.
    """

    def __init__(self):
        self.errors: List[StageError] = []

    def add_error(
        self,
        stage: str,
        operation: str,
        message: str,
        severity: str = "medium",
        recoverable: bool = True,
        exception: Optional[BaseException] = None,
    ) -> None:
        """Convenience method to add an error with parameters."""
        self.errors.append(
            StageError(
                stage=stage,
                operation=operation,
                message=message,
                severity=severity,
                recoverable=recoverable,
                exception_type=type(exception).__name__ if exception else None,
            )
        )

    def get_error_messages(self) -> List[str]:
        return [e.message for e in self.errors]


def degrade_on_failure(
    operation_name: str,
    stage: str = "unknown",
    fallback: Any = None,
):
    """
    Decorator for cosmetic async stages that must never fail the job.

    On failure the exception is logged at WARNING, recorded on the
    ErrorCollector passed as the ``collector`` keyword (if any), and the
    fallback is returned. A callable fallback is invoked to build a fresh
    value per call.

    Usage:
        @degrade_on_failure("fetch hierarchy metadata", stage="hierarchy",
                            fallback=HierarchyContext.empty)
        async def load_hierarchy(self, lesson_id, *, collector=None):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, collector: Optional[ErrorCollector] = None, **kwargs) -> T:
            logger = logging.getLogger(func.__module__)
            try:
                return await func(*args, **kwargs)
            except ExportError:
                raise
            except Exception as e:
                logger.warning(f"[{stage}] [{operation_name}] ✗ Degraded: {e}")
                if collector is not None:
                    collector.add_error(
                        stage=stage,
                        operation=operation_name,
                        message=str(e) or type(e).__name__,
                        severity="low",
                        exception=e,
                    )
                return fallback() if callable(fallback) else fallback

        return wrapper

    return decorator


def log_on_exception(
    logger: logging.Logger,
    operation: str,
    level: int = logging.WARNING,
    include_traceback: bool = False,
):
    """
    Context manager for logging exceptions without swallowing them silently.

    Usage:
        with log_on_exception(logger, "page rasterization", level=logging.ERROR, include_traceback=True):
            await page.screenshot(...)
    """

    class ExceptionLogger:
        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if exc_val is not None:
                logger.log(level, f"[{operation}] Failed: {exc_val}", exc_info=include_traceback)
            # Return False to not suppress the exception
            return False

    return ExceptionLogger()
