"""
Illustration Job Queue
In-memory job table drained by a single sequential worker.

Only one job is processed at a time, across all callers: upstream image
providers enforce account-wide rate limits. Reads never wait on the worker
and may observe a record mid-update.
"""

import asyncio
import logging
import uuid
from typing import Callable, Dict, List, Optional

from taleframe.core.exceptions import JobNotFound
from taleframe.schemas.job import IllustrationJobRequest, JobRecord, JobStatus
from taleframe.workers.base import BaseWorker, Clock, utcnow

logger = logging.getLogger(__name__)


def new_job_id() -> str:
    return str(uuid.uuid4())


class IllustrationJobManager:
    """
    Owns illustration job records and the worker that drains them.

    Features:
    - Non-blocking enqueue (the worker is started on demand)
    - Global serialization: a busy flag keeps a single worker alive
    - Optional eviction of the oldest completed jobs (``history_limit``)
    """

    def __init__(
        self,
        worker: BaseWorker,
        clock: Clock = utcnow,
        id_factory: Callable[[], str] = new_job_id,
        history_limit: int = 0,
    ):
        self.worker = worker
        self.clock = clock
        self.id_factory = id_factory
        self.history_limit = history_limit
        self._jobs: Dict[str, JobRecord] = {}
        self._busy = False
        self._worker_task: Optional[asyncio.Task] = None

    @property
    def busy(self) -> bool:
        return self._busy

    def enqueue(self, request: IllustrationJobRequest) -> JobRecord:
        """
        Store a new queued job and wake the worker. Must run inside the event loop.

        Returns:
            The created record (still ``queued``)
        """
        job_id = self.id_factory()
        while job_id in self._jobs:
            job_id = self.id_factory()

        now = self.clock()
        record = JobRecord(
            id=job_id,
            request=request,
            status=JobStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        self._jobs[job_id] = record
        logger.info(f"Enqueued illustration job: {job_id} ({len(request.scenes)} scenes)")
        self._kick()
        return record

    def get(self, job_id: str) -> JobRecord:
        """
        Raises:
            JobNotFound: unknown id
        """
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list(self, limit: int = 50) -> List[JobRecord]:
        """Most recently created jobs first."""
        newest_first = sorted(reversed(list(self._jobs.values())), key=lambda j: j.created_at, reverse=True)
        return newest_first[:max(limit, 0)]

    async def wait_until_idle(self):
        """Await the worker until the queue has drained."""
        while self._worker_task is not None and not self._worker_task.done():
            await asyncio.shield(self._worker_task)

    def _kick(self):
        if self._busy:
            return
        self._busy = True
        self._worker_task = asyncio.get_running_loop().create_task(self._drain())

    def _next_queued(self) -> Optional[JobRecord]:
        return next((j for j in self._jobs.values() if j.status == JobStatus.QUEUED), None)

    async def _drain(self):
        try:
            while True:
                job = self._next_queued()
                if job is None:
                    break
                try:
                    await self.worker.execute(job)
                except Exception as e:
                    # Scene errors are handled by the worker; this is a worker bug.
                    job.status = JobStatus.FAILED
                    job.error = str(e)
                    job.updated_at = self.clock()
                    logger.exception(f"Illustration job {job.id} crashed")
                self._evict_history()
        finally:
            self._busy = False

    def _evict_history(self):
        if self.history_limit <= 0:
            return
        finished = [j for j in self._jobs.values() if j.status == JobStatus.COMPLETED]
        excess = len(finished) - self.history_limit
        if excess <= 0:
            return
        for job in sorted(finished, key=lambda j: j.created_at)[:excess]:
            del self._jobs[job.id]
        logger.debug(f"Evicted {excess} completed illustration job(s)")
