"""
Illustration Worker
Generates every scene of a job, one after another, through the orchestrator.
"""

import logging
from typing import Protocol

from taleframe.core.exceptions import IllustrationError
from taleframe.schemas.character import Character
from taleframe.schemas.job import IllustrationResult, JobRecord, JobStatus
from taleframe.workers.base import BaseWorker, Clock, utcnow

logger = logging.getLogger(__name__)


class IllustrationGenerator(Protocol):
    async def generate_illustration(
        self, character: Character, scene_description: str, story_title: str, page_number: int = 1
    ) -> IllustrationResult: ...


class IllustrationWorker(BaseWorker):
    """Worker for illustration jobs."""

    TASK_NAME = "illustration_job"

    def __init__(self, orchestrator: IllustrationGenerator, clock: Clock = utcnow):
        super().__init__(clock)
        self.orchestrator = orchestrator

    async def execute(self, job: JobRecord) -> JobRecord:
        """
        Process a job best-effort.

        A failed scene records ``job.error`` (latest failure wins) and the
        worker moves on to the next scene. Once every scene was attempted the
        job is ``completed``, even if no result was produced.
        """
        request = job.request
        self._set_status(job, JobStatus.PROCESSING)
        self._log_start(job, story_id=request.story_id, scenes=len(request.scenes))

        for scene in request.scenes:
            try:
                result = await self.orchestrator.generate_illustration(
                    request.character,
                    scene.description,
                    request.story_title,
                    scene.page_number,
                )
            except Exception as e:
                message = e.user_message if isinstance(e, IllustrationError) else str(e)
                job.error = f"Failed scene p{scene.page_number}: {message}"
                job.updated_at = self.clock()
                self._log_error(job, e, step=f"scene p{scene.page_number} ")
                continue

            job.results.append(result)
            job.updated_at = self.clock()

        self._set_status(job, JobStatus.COMPLETED)
        self._log_complete(job, f"{len(job.results)}/{len(request.scenes)} scenes illustrated")
        return job
