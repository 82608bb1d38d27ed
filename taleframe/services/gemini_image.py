"""
Gemini Image Service
Reference-conditioned image generation and vision description using native
Gemini models, either through the Gemini Developer API or through Vertex AI.
Documentation: https://ai.google.dev/gemini-api/docs/image-generation
"""

import logging
from typing import Optional

from google import genai
from google.genai import types

from taleframe.core.config import Settings
from taleframe.core.exceptions import (
    IllustrationError,
    ProviderUnavailable,
    UpstreamAPIError,
    UpstreamErrorKind,
    classify_provider_error,
)

logger = logging.getLogger(__name__)

BLOCKED_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "IMAGE_SAFETY", "BLOCKLIST", "SPII"}


def detect_mime_type(data: bytes) -> str:
    """Sniff an image MIME type from magic bytes, defaulting to JPEG."""
    if data.startswith(b'\x89PNG\r\n\x1a\n'):
        return "image/png"
    if data.startswith(b'RIFF') and data[8:12] == b'WEBP':
        return "image/webp"
    if data.startswith(b'GIF8'):
        return "image/gif"
    return "image/jpeg"


class GeminiImageService:
    """Service for image generation and vision analysis using Gemini models."""

    def __init__(self, settings: Settings, use_vertex: bool = False):
        self.settings = settings
        self.use_vertex = use_vertex
        self.label = "Vertex" if use_vertex else "Gemini"
        self._client: Optional[genai.Client] = None

    def check_configured(self):
        """Raise ProviderUnavailable if credentials for this backend are missing."""
        if self.use_vertex:
            if not self.settings.VERTEX_PROJECT_ID:
                raise ProviderUnavailable(self.label, "VERTEX_PROJECT_ID not set")
        elif not self.settings.GEMINI_API_KEY:
            raise ProviderUnavailable(self.label, "GEMINI_API_KEY not set")

    @property
    def client(self) -> genai.Client:
        """Lazily built client so a missing key never fails at startup."""
        if self._client is None:
            self.check_configured()
            http_options = types.HttpOptions(timeout=int(self.settings.IMAGE_REQUEST_TIMEOUT * 1000))
            if self.use_vertex:
                self._client = genai.Client(
                    vertexai=True,
                    project=self.settings.VERTEX_PROJECT_ID,
                    location=self.settings.VERTEX_LOCATION,
                    http_options=http_options,
                )
            else:
                self._client = genai.Client(
                    api_key=self.settings.GEMINI_API_KEY,
                    http_options=http_options,
                )
            logger.info(f"[{self.label}] Client initialized")
        return self._client

    async def generate_with_reference(self, prompt: str, reference_bytes: bytes, model: str) -> bytes:
        """
        Generate an image conditioned on a reference image.

        Args:
            prompt: Transformation prompt describing the new scene
            reference_bytes: Raw bytes of the character reference image
            model: Image-capable Gemini model id

        Returns:
            Generated image bytes
        """
        logger.info(f"[{self.label}] Generating with reference ({len(reference_bytes)} bytes) using {model}")
        contents = [
            types.Part.from_bytes(data=reference_bytes, mime_type=detect_mime_type(reference_bytes)),
            prompt,
        ]
        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
            )
        except IllustrationError:
            raise
        except Exception as e:
            raise classify_provider_error(e, provider=self.label) from e

        return self._extract_image(response)

    def _extract_image(self, response) -> bytes:
        """Return the first inline image part, or raise a typed failure."""
        candidates = getattr(response, "candidates", None) or []
        finish_reason = None
        for candidate in candidates:
            finish_reason = getattr(candidate, "finish_reason", None)
            content = getattr(candidate, "content", None)
            for part in (getattr(content, "parts", None) or []):
                inline = getattr(part, "inline_data", None)
                if inline is not None and inline.data:
                    logger.info(f"[{self.label}] [OK] Image generated")
                    return inline.data
                if getattr(part, "text", None):
                    logger.debug(f"[{self.label}] Text part: {part.text}")

        reason = getattr(finish_reason, "name", None) or (str(finish_reason) if finish_reason else "Unknown")
        kind = (
            UpstreamErrorKind.CONTENT_POLICY
            if reason in BLOCKED_FINISH_REASONS
            else UpstreamErrorKind.MALFORMED_RESPONSE
        )
        raise UpstreamAPIError(kind, f"No image generated. Finish Reason: {reason}", provider=self.label)

    async def describe_image(self, image_bytes: bytes, prompt: str, model: str) -> str:
        """
        Ask a vision model for a textual description of an image.

        Returns:
            The model's text answer (possibly empty)
        """
        try:
            response = await self.client.aio.models.generate_content(
                model=model,
                contents=[
                    types.Part.from_bytes(data=image_bytes, mime_type=detect_mime_type(image_bytes)),
                    prompt,
                ],
                config=types.GenerateContentConfig(temperature=0.4, max_output_tokens=250),
            )
        except IllustrationError:
            raise
        except Exception as e:
            raise classify_provider_error(e, provider=self.label) from e

        return (getattr(response, "text", None) or "").strip()
