# Workers package - in-process illustration job processing

from taleframe.workers.base import (
    BaseWorker,
    utcnow,
)
from taleframe.workers.illustration import IllustrationWorker
from taleframe.workers.queue import (
    IllustrationJobManager,
    new_job_id,
)

__all__ = [
    "BaseWorker",
    "utcnow",
    "IllustrationWorker",
    "IllustrationJobManager",
    "new_job_id",
]
