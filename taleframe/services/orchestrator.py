"""
Illustration Orchestrator
Resolves the character's reference image and walks the provider tiers in
order, returning the first usable illustration.

Non-terminal tiers swallow every failure and fall through. The terminal
tier's failure propagates to the caller (job worker or synchronous API).
"""

import base64
import binascii
import logging
import re
import time
from pathlib import Path
from typing import Awaitable, List, Optional
from urllib.parse import urlparse

from taleframe.core.config import Settings
from taleframe.core.exceptions import (
    IllustrationError,
    ProviderUnavailable,
    ReferenceImageMissing,
    classify_provider_error,
)
from taleframe.schemas.assets import SavedAsset
from taleframe.schemas.character import Character
from taleframe.schemas.job import IllustrationResult
from taleframe.services.providers import IllustrationProvider, IllustrationRequest, build_default_providers
from taleframe.services.storage import AssetStore

logger = logging.getLogger(__name__)

_REMOTE_URL = re.compile(r"^https?://", re.IGNORECASE)


class IllustrationOrchestrator:
    """Provider fallback chain for a single scene."""

    def __init__(
        self,
        settings: Settings,
        providers: Optional[List[IllustrationProvider]] = None,
        asset_store: Optional[AssetStore] = None,
    ):
        self.settings = settings
        self.providers = providers if providers is not None else build_default_providers(settings)
        self.asset_store = asset_store

    def resolve_reference_image(self, locator: Optional[str]) -> Optional[Path]:
        """
        Map a stored image locator to an existing local file.

        Candidates, first existing file wins:
        1. the locator itself, if it is an absolute path
        2. for http(s) URLs, the URL path's basename inside the uploads dir
        3. the locator's basename inside the uploads dir
        4. the locator relative to the storage root
        """
        if not locator:
            return None

        uploads = self.settings.uploads_path
        candidates: List[Path] = []
        try:
            raw = Path(locator)
            if raw.is_absolute():
                candidates.append(raw)
            if _REMOTE_URL.match(locator):
                candidates.append(uploads / Path(urlparse(locator).path).name)
            candidates.append(uploads / raw.name)
            candidates.append(self.settings.storage_root / locator.lstrip("/"))

            for candidate in candidates:
                if candidate.is_file():
                    return candidate
        except (OSError, ValueError) as e:
            logger.warning(f"[Reference] Resolution error for {locator}: {e}")
        return None

    async def generate_illustration(
        self,
        character: Character,
        scene_description: str,
        story_title: str,
        page_number: int = 1,
    ) -> IllustrationResult:
        """
        Generate one illustration, falling back tier by tier.

        Raises:
            IllustrationError: when the terminal tier fails (UpstreamAPIError
                carries the caller-facing message) or no tier is configured
        """
        request = IllustrationRequest(
            character=character,
            scene_description=scene_description,
            story_title=story_title,
            page_number=page_number,
        )
        reference = self.resolve_reference_image(character.image_url)
        last_index = len(self.providers) - 1

        for index, provider in enumerate(self.providers):
            terminal = index == last_index
            try:
                if provider.requires_reference and reference is None:
                    raise ReferenceImageMissing(character.image_url)
                provider.check_available()
                logger.info(f"[Tier {index + 1}] Attempting {provider.name} for page {page_number}")
                result = await provider.attempt(request, reference)
            except (ProviderUnavailable, ReferenceImageMissing) as e:
                if terminal:
                    logger.error(f"[Tier {index + 1}] Terminal provider {provider.name} unavailable: {e}")
                    raise
                logger.info(f"[Fallback] Skipping {provider.name}: {e}")
                continue
            except IllustrationError as e:
                if terminal:
                    logger.error(f"[Tier {index + 1}] Terminal provider {provider.name} failed: {e}")
                    raise
                logger.warning(f"[Fallback] {provider.name} failed ({e.details.get('kind', 'error')}): {e}")
                continue
            except Exception as e:
                error = classify_provider_error(e, provider=provider.name)
                if terminal:
                    logger.error(f"[Tier {index + 1}] Terminal provider {provider.name} failed: {error}")
                    raise error from e
                logger.warning(f"[Fallback] {provider.name} failed ({error.kind.value}): {e}")
                continue

            await self._persist(provider, result)
            return result

        raise ProviderUnavailable("illustration", "no providers configured")

    async def _persist(self, provider: IllustrationProvider, result: IllustrationResult):
        """Attach a local copy when persistence is on. Never raises."""
        if not self.settings.SAVE_GENERATED_IMAGES or self.asset_store is None:
            return

        base_name = f"{provider.asset_prefix}-{int(time.time() * 1000)}-p{result.page_number}"
        saved = None
        if result.b64_json:
            try:
                data = base64.b64decode(result.b64_json)
            except (binascii.Error, ValueError) as e:
                logger.warning(f"[Storage] Could not decode image from {provider.name}: {e}")
                return
            saved = await self._store_quietly(provider, self.asset_store.save_best_effort(data, base_name, "png"))
        elif result.url:
            saved = await self._store_quietly(provider, self.asset_store.download_and_save(result.url, base_name))

        if saved is not None:
            result.local_url = saved.public_url

    async def _store_quietly(
        self, provider: IllustrationProvider, save: Awaitable[Optional[SavedAsset]]
    ) -> Optional[SavedAsset]:
        # A failed local copy must never replace a usable result
        try:
            return await save
        except Exception as e:
            logger.warning(f"[Storage] Failed to persist image from {provider.name}: {e}")
            return None
