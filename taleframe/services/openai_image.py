"""
OpenAI Image Service
Text-only illustration generation (DALL-E 3). Accepts no image input and
returns a remote URL to the generated image.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

from taleframe.core.config import Settings
from taleframe.core.exceptions import (
    IllustrationError,
    ProviderUnavailable,
    UpstreamAPIError,
    UpstreamErrorKind,
    classify_provider_error,
)

logger = logging.getLogger(__name__)


class OpenAIImageService:
    """Service for text-to-image generation through the OpenAI Images API."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.model = settings.OPENAI_IMAGE_MODEL
        self._client: Optional[AsyncOpenAI] = None

    def check_configured(self):
        if not self.settings.OPENAI_API_KEY:
            raise ProviderUnavailable("OpenAI", "OPENAI_API_KEY not set")

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self.check_configured()
            self._client = AsyncOpenAI(
                api_key=self.settings.OPENAI_API_KEY,
                timeout=self.settings.IMAGE_REQUEST_TIMEOUT,
            )
        return self._client

    async def generate(self, prompt: str) -> str:
        """
        Generate an image from a text prompt.

        Returns:
            Remote URL of the generated image
        """
        logger.info(f"[OpenAI] Generating with {self.model}, prompt: {prompt[:100]}...")
        try:
            response = await self.client.images.generate(
                model=self.model,
                prompt=prompt,
                size=self.settings.OPENAI_IMAGE_SIZE,
                quality=self.settings.OPENAI_IMAGE_QUALITY,
                style=self.settings.OPENAI_IMAGE_STYLE,
                n=1,
            )
        except IllustrationError:
            raise
        except Exception as e:
            raise classify_provider_error(e, provider="OpenAI") from e

        data = getattr(response, "data", None) or []
        image_url = data[0].url if data else None
        if not image_url:
            raise UpstreamAPIError(
                UpstreamErrorKind.MALFORMED_RESPONSE,
                "No image URL returned from OpenAI",
                provider="OpenAI",
            )
        return image_url
