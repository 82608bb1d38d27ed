"""
Base Worker Classes
Timing, status and structured logging shared by in-process workers.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from taleframe.schemas.job import JobRecord, JobStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseWorker(ABC):
    """
    Abstract base class for job workers.

    Features:
    - Status transitions stamped with the injected clock
    - Structured start/complete/error logging with durations
    """

    TASK_NAME = "task"

    def __init__(self, clock: Clock = utcnow):
        self.clock = clock
        self.start_time: Optional[datetime] = None

    def _set_status(self, job: JobRecord, status: JobStatus):
        job.status = status
        job.updated_at = self.clock()

    def _duration(self) -> float:
        return (self.clock() - self.start_time).total_seconds() if self.start_time else 0

    def _log_start(self, job: JobRecord, **context):
        self.start_time = self.clock()
        logger.info(f"[START] {self.TASK_NAME} {job.id} | Context: {context}")

    def _log_complete(self, job: JobRecord, result_summary: str = ""):
        logger.info(f"[COMPLETE] {self.TASK_NAME} {job.id} | Duration: {self._duration():.2f}s | {result_summary}")

    def _log_error(self, job: JobRecord, error: Exception, step: str = ""):
        logger.error(f"[ERROR] {self.TASK_NAME} {job.id} {step}| Duration: {self._duration():.2f}s | Error: {error}")

    @abstractmethod
    async def execute(self, job: JobRecord) -> Any:
        """Run the job to completion. Must be implemented by subclasses."""
