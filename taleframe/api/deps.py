"""
API Dependencies
Components built at startup and stored on app.state, plus error mapping.
"""

import logging
from fastapi import HTTPException, Request, status

from taleframe.core.config import Settings
from taleframe.core.exceptions import (
    IllustrationError,
    JobNotFound,
    PayloadTooLarge,
    ProviderUnavailable,
    ReferenceImageMissing,
    UpstreamAPIError,
    UpstreamErrorKind,
)
from taleframe.services.descriptor_cache import DescriptorCache
from taleframe.services.orchestrator import IllustrationOrchestrator
from taleframe.services.storage import AssetStore
from taleframe.workers.queue import IllustrationJobManager

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_asset_store(request: Request) -> AssetStore:
    return request.app.state.asset_store


def get_orchestrator(request: Request) -> IllustrationOrchestrator:
    return request.app.state.orchestrator


def get_descriptor_cache(request: Request) -> DescriptorCache:
    return request.app.state.descriptor_cache


def get_job_manager(request: Request) -> IllustrationJobManager:
    """Job manager, or 400 when async illustrations are switched off."""
    if not request.app.state.settings.ASYNC_ILLUSTRATIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Async illustrations disabled"
        )
    return request.app.state.job_manager


def to_http_exception(error: IllustrationError) -> HTTPException:
    """Map a domain error onto the HTTP status callers expect."""
    if isinstance(error, JobNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    if isinstance(error, ReferenceImageMissing):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    if isinstance(error, PayloadTooLarge):
        return HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(error))
    if isinstance(error, ProviderUnavailable):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error))
    if isinstance(error, UpstreamAPIError):
        code = (
            status.HTTP_402_PAYMENT_REQUIRED
            if error.kind == UpstreamErrorKind.QUOTA_EXCEEDED
            else status.HTTP_502_BAD_GATEWAY
        )
        return HTTPException(status_code=code, detail=error.user_message)

    logger.error(f"Unmapped illustration error: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.user_message)
