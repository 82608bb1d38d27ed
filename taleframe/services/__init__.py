# Services package - provider integrations, orchestration and asset storage
from taleframe.services.storage import AssetStore
from taleframe.services.gemini_image import GeminiImageService
from taleframe.services.openai_image import OpenAIImageService
from taleframe.services.orchestrator import IllustrationOrchestrator
from taleframe.services.descriptor_cache import DescriptorCache

__all__ = [
    "AssetStore",
    "GeminiImageService",
    "OpenAIImageService",
    "IllustrationOrchestrator",
    "DescriptorCache",
]
