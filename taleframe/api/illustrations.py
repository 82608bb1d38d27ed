"""
Illustration API Routes
Job submission and status, plus synchronous single-scene generation.
"""

import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from taleframe.api.deps import get_job_manager, get_orchestrator, get_settings, to_http_exception
from taleframe.core.config import Settings
from taleframe.core.exceptions import IllustrationError
from taleframe.schemas.job import GenerateIllustrationRequest, IllustrationJobRequest, IllustrationResult, JobRecord
from taleframe.services.orchestrator import IllustrationOrchestrator
from taleframe.workers.queue import IllustrationJobManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/jobs", response_model=JobRecord, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    request: IllustrationJobRequest,
    jobs: IllustrationJobManager = Depends(get_job_manager),
):
    """Queue every scene of a story for illustration. Returns immediately."""
    return jobs.enqueue(request)


@router.get("/jobs/{job_id}", response_model=JobRecord)
async def get_job(
    job_id: str,
    jobs: IllustrationJobManager = Depends(get_job_manager),
):
    """Get job status and accumulated results."""
    try:
        return jobs.get(job_id)
    except IllustrationError as e:
        raise to_http_exception(e)


@router.get("/jobs", response_model=List[JobRecord])
async def list_jobs(
    limit: Optional[int] = Query(None, ge=0),
    jobs: IllustrationJobManager = Depends(get_job_manager),
    settings: Settings = Depends(get_settings),
):
    """List the most recently created jobs."""
    return jobs.list(settings.JOB_LIST_DEFAULT_LIMIT if limit is None else limit)


@router.post("/generate", response_model=IllustrationResult)
async def generate_illustration(
    request: GenerateIllustrationRequest,
    orchestrator: IllustrationOrchestrator = Depends(get_orchestrator),
):
    """
    Generate one scene synchronously.
    Blocks for the duration of the provider calls.
    """
    try:
        return await orchestrator.generate_illustration(
            request.character,
            request.scene_description,
            request.story_title,
            request.page_number,
        )
    except IllustrationError as e:
        logger.error(f"Synchronous illustration failed for page {request.page_number}: {e}")
        raise to_http_exception(e)
