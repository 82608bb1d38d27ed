"""
Illustration Providers
Ordered generation tiers behind a common interface. The orchestrator walks
the list and the last entry is the terminal tier.

Tiers:
1. Gemini with the character reference image (inline image bytes back)
2. Gemini through Vertex AI, same request, managed deployment
3. Text-only DALL-E 3 with consistency instructions (remote URL back)
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from taleframe.core.config import Settings
from taleframe.core.exceptions import ProviderUnavailable, ReferenceImageMissing
from taleframe.schemas.character import Character
from taleframe.schemas.job import IllustrationResult
from taleframe.services.gemini_image import GeminiImageService
from taleframe.services.openai_image import OpenAIImageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IllustrationRequest:
    """One scene to illustrate for one character."""
    character: Character
    scene_description: str
    story_title: str
    page_number: int = 1


def build_reference_prompt(request: IllustrationRequest) -> str:
    """Transformation prompt for reference-conditioned tiers."""
    character = request.character
    prompt = (
        f"Transform this character image into a new illustrated scene: {request.scene_description}.\n"
        f"Maintain exact character appearance: keep the same facial features, hairstyle and clothing "
        f"as in the reference image. Character name: {character.name}, age {character.age}."
    )
    if character.personality:
        prompt += f" Personality traits: {', '.join(character.personality)}."
    prompt += "\nStyle: High-quality whimsical children's book illustration, vibrant, warm, magical atmosphere."
    if request.story_title:
        prompt += f" Story title: {request.story_title}."
    if request.page_number:
        prompt += f" Page number: {request.page_number}."
    return prompt


def describe_character(character: Character) -> str:
    """Detailed textual character block used when no image conditioning is possible."""
    lines = [f"- Main character: {character.name}, a {character.age}-year-old child"]
    if character.personality:
        lines.append(
            f"- Personality: {', '.join(character.personality)} (show these traits through expression and posture)"
        )
    if character.interests:
        lines.append(
            f"- Interests: {', '.join(character.interests)} (may influence clothing or accessories)"
        )
    if character.siblings:
        names = ", ".join(s.name for s in character.siblings)
        lines.append(f"- Family context: Has loving siblings ({names}) - shows family connection")
    lines.append("- Consistent visual traits: Same hairstyle, facial features, and general appearance in every illustration")
    lines.append(f"- Age-appropriate appearance: Clearly shows a {character.age}-year-old child")
    lines.append(f"- Heroic presence: {character.name} should look confident, capable, and ready for adventure")
    return "\n".join(lines)


def build_text_only_prompt(request: IllustrationRequest) -> str:
    """Text-only prompt with explicit cross-call consistency instructions."""
    character = request.character
    personality = ", ".join(character.personality) or "brave and kind"
    return f"""Create a beautiful children's book illustration in a whimsical, bright art style:

MAIN CHARACTER DETAILS:
{describe_character(character)}

SCENE: {request.scene_description}

STORY CONTEXT: "{request.story_title}" - Page {request.page_number}

CHARACTER CONSISTENCY REQUIREMENTS:
- Always show {character.name} as the same person with consistent appearance
- Age {character.age} child with the same hair, facial features, and style throughout
- Keep the character recognizable across all story illustrations
- Show {character.name}'s personality ({personality}) through body language

ART STYLE:
- Bright, cheerful children's book illustration style
- Warm, inviting colors that appeal to children
- Clear, uncluttered composition focusing on the character
- Safe, positive imagery appropriate for age {character.age}

TECHNICAL REQUIREMENTS:
- Square format perfect for storybook pages
- {character.name} should be the clear hero/focus of the illustration"""


class IllustrationProvider(ABC):
    """A single generation tier."""

    name: str = "provider"
    asset_prefix: str = "illustration"  # Base name prefix when persisting output
    requires_reference: bool = False

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    @abstractmethod
    def model(self) -> str:
        """Model identifier reported on results."""

    @abstractmethod
    def check_available(self) -> None:
        """Raise ProviderUnavailable when disabled or misconfigured."""

    @abstractmethod
    async def attempt(self, request: IllustrationRequest, reference: Optional[Path]) -> IllustrationResult:
        """Generate one illustration or raise an IllustrationError."""


class GeminiReferenceProvider(IllustrationProvider):
    """Tier 1: Gemini image generation conditioned on the reference image."""

    name = "gemini-reference"
    asset_prefix = "gemini"
    requires_reference = True
    use_vertex = False

    def __init__(self, settings: Settings, service: Optional[GeminiImageService] = None):
        super().__init__(settings)
        self.service = service or GeminiImageService(settings, use_vertex=self.use_vertex)

    @property
    def enabled(self) -> bool:
        return self.settings.ENABLE_GEMINI_REFERENCE

    @property
    def model(self) -> str:
        return self.settings.GEMINI_MODEL_CHARACTER

    def check_available(self) -> None:
        if not self.enabled:
            raise ProviderUnavailable(self.name, "disabled by configuration")
        self.service.check_configured()

    async def attempt(self, request: IllustrationRequest, reference: Optional[Path]) -> IllustrationResult:
        if reference is None:
            raise ReferenceImageMissing(request.character.image_url)
        try:
            reference_bytes = reference.read_bytes()
        except OSError as e:
            raise ReferenceImageMissing(str(reference)) from e

        image_bytes = await self.service.generate_with_reference(
            build_reference_prompt(request), reference_bytes, self.model
        )
        return IllustrationResult(
            page_number=request.page_number,
            description=request.scene_description,
            model=self.model,
            character_referenced=True,
            b64_json=base64.b64encode(image_bytes).decode("ascii"),
        )


class VertexReferenceProvider(GeminiReferenceProvider):
    """Tier 2: the reference-conditioned request through Vertex AI."""

    name = "vertex-reference"
    asset_prefix = "vertex"
    use_vertex = True

    @property
    def enabled(self) -> bool:
        return self.settings.ENABLE_VERTEX_REFERENCE

    @property
    def model(self) -> str:
        return self.settings.VERTEX_MODEL_CHARACTER


class TextOnlyProvider(IllustrationProvider):
    """Tier 3: text-only generation. No image input, so consistency rests on the prompt."""

    name = "text-only"
    asset_prefix = "consistent"

    def __init__(self, settings: Settings, service: Optional[OpenAIImageService] = None):
        super().__init__(settings)
        self.service = service or OpenAIImageService(settings)

    @property
    def model(self) -> str:
        return self.settings.OPENAI_IMAGE_MODEL

    def check_available(self) -> None:
        if not self.settings.ENABLE_TEXT_FALLBACK:
            raise ProviderUnavailable(self.name, "disabled by configuration")
        self.service.check_configured()

    async def attempt(self, request: IllustrationRequest, reference: Optional[Path]) -> IllustrationResult:
        logger.info(
            f"[TextOnly] Generating character-consistent illustration for "
            f"{request.character.name} - Page {request.page_number}"
        )
        url = await self.service.generate(build_text_only_prompt(request))
        return IllustrationResult(
            page_number=request.page_number,
            description=request.scene_description,
            model=self.model,
            character_referenced=False,
            url=url,
        )


def build_default_providers(settings: Settings) -> List[IllustrationProvider]:
    """Tiers in fallback order; the last one is terminal."""
    return [
        GeminiReferenceProvider(settings),
        VertexReferenceProvider(settings),
        TextOnlyProvider(settings),
    ]
