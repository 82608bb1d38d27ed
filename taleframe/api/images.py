"""
Image API Routes
Generated asset listing and character image analysis.
"""

from typing import List
from fastapi import APIRouter, Depends

from taleframe.api.deps import (
    get_asset_store,
    get_descriptor_cache,
    get_orchestrator,
    get_settings,
    to_http_exception,
)
from taleframe.core.config import Settings
from taleframe.core.exceptions import IllustrationError, PayloadTooLarge, ProviderUnavailable, ReferenceImageMissing
from taleframe.schemas.assets import AnalyzeImageRequest, DescriptorResult, GeneratedAsset
from taleframe.services.descriptor_cache import DescriptorCache
from taleframe.services.orchestrator import IllustrationOrchestrator
from taleframe.services.storage import AssetStore

router = APIRouter()


@router.get("/images/generated", response_model=List[GeneratedAsset])
async def list_generated_images(store: AssetStore = Depends(get_asset_store)):
    """List persisted illustrations, newest first."""
    return store.list_assets()


@router.post("/character/analyze-image", response_model=DescriptorResult)
async def analyze_character_image(
    request: AnalyzeImageRequest,
    orchestrator: IllustrationOrchestrator = Depends(get_orchestrator),
    cache: DescriptorCache = Depends(get_descriptor_cache),
    settings: Settings = Depends(get_settings),
):
    """
    Derive a reusable appearance descriptor from an uploaded character image.
    Identical images are analyzed once per process.
    """
    try:
        if not settings.ENABLE_IMAGE_ANALYSIS:
            raise ProviderUnavailable("image-analysis", "disabled by configuration")

        path = orchestrator.resolve_reference_image(request.image_url)
        if path is None:
            raise ReferenceImageMissing(request.image_url)
        try:
            size = path.stat().st_size
            if size > settings.IMAGE_ANALYSIS_MAX_BYTES:
                raise PayloadTooLarge(size, settings.IMAGE_ANALYSIS_MAX_BYTES)
            image_bytes = path.read_bytes()
        except OSError as e:
            raise ReferenceImageMissing(request.image_url) from e

        return await cache.analyze(image_bytes, request.traits)
    except IllustrationError as e:
        raise to_http_exception(e)
