"""
Centralized logging configuration for the lesson export pipeline.

Every export log line is tagged with the job it belongs to and the stage
that produced it, and page-level lines also carry the page number, e.g.::

    [job:3f2a9c1e] [rasterize] [page 4] Rasterized (7 pages total)
"""

import logging
import sys
from typing import Optional


class ExportLogger:
    """
    Structured logger for export jobs.

    Adds job, stage and page tags to all log messages.
    """

    def __init__(
        self,
        name: str,
        job_id: Optional[str] = None,
        stage: Optional[str] = None,
        page: Optional[int] = None,
    ):
        """
        Initialize export logger.

        Args:
            name: Logger name (usually __name__)
            job_id: Optional export job identifier for correlation
            stage: Optional stage name (e.g., "paginate", "rasterize")
            page: Optional zero-based page index, shown one-based
        """
        self.logger = logging.getLogger(name)
        self.job_id = job_id
        self.stage = stage
        self.page = page

    def for_stage(self, stage: str) -> "ExportLogger":
        """Return a logger for the same job tagged with another stage."""
        return ExportLogger(self.logger.name, self.job_id, stage)

    def for_page(self, page: int) -> "ExportLogger":
        return ExportLogger(self.logger.name, self.job_id, self.stage, page)

    def _format_message(self, message: str) -> str:
        prefix_parts = []
        if self.job_id:
            prefix_parts.append(f"[job:{self.job_id[:8]}]")
        if self.stage:
            prefix_parts.append(f"[{self.stage}]")
        if self.page is not None:
            prefix_parts.append(f"[page {self.page + 1}]")

        if prefix_parts:
            return f"{' '.join(prefix_parts)} {message}"
        return message

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message), **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message), **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message), **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(self._format_message(message), **kwargs)

    def exception(self, message: str, **kwargs):
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message), **kwargs)


def setup_logging(level: str = "INFO", format: str = "simple", debug: bool = False) -> None:
    """
    Configure global logging settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log format ("simple" or "json")
        debug: Force DEBUG regardless of ``level`` (DEBUG_MODE / --debug)
    """
    log_level = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    # Remove existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if format == "json":
        # JSON format for production (parseable by log aggregators)
        formatter = logging.Formatter(
            '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # httpx logs every request at DEBUG
    for noisy in ("httpx", "httpcore", "asyncio"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.INFO))


def get_logger(
    name: str,
    job_id: Optional[str] = None,
    stage: Optional[str] = None,
) -> ExportLogger:
    """Get an export logger tagged with the job and stage."""
    return ExportLogger(name, job_id, stage)
