"""
Character Descriptor Cache
Derives a textual appearance descriptor from an uploaded character image,
keyed by the SHA-256 of the raw bytes so identical images are analyzed once.
"""

import asyncio
import hashlib
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Protocol

from taleframe.core.config import Settings
from taleframe.core.exceptions import PayloadTooLarge, ProviderUnavailable, with_retry
from taleframe.schemas.assets import DescriptorResult

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTOR = "Friendly child with neutral appearance."
DESCRIPTOR_CONFIDENCE = 0.9

ANALYSIS_PROMPT = (
    "You assist in building consistent children's book character illustrations.\n"
    "Return ONE compact paragraph describing ONLY visible physical attributes & style: "
    "hair (style/color), eyes (if clearly visible), approximate age impression, notable accessories, "
    "expression/mood vibe, broad skin tone wording, clothing style hints, palette hint. "
    "Do NOT guess unseen details. Avoid sensitive or private attributes."
)


class _Abandoned(Exception):
    """The caller computing a descriptor was cancelled before finishing."""


class VisionDescriber(Protocol):
    async def describe_image(self, image_bytes: bytes, prompt: str, model: str) -> str: ...


class DescriptorCache:
    """Content-addressed cache in front of a vision description model."""

    def __init__(self, settings: Settings, vision: VisionDescriber):
        self.settings = settings
        self.vision = vision
        self.model = settings.IMAGE_ANALYSIS_MODEL
        self._entries: "OrderedDict[str, DescriptorResult]" = OrderedDict()
        self._inflight: Dict[str, asyncio.Future] = {}

    def size(self) -> int:
        return len(self._entries)

    async def analyze(self, image_bytes: bytes, traits: Optional[List[str]] = None) -> DescriptorResult:
        """
        Return the descriptor for an image, computing it at most once per hash.

        Traits only shape the first computation; later hits ignore them.

        Raises:
            ProviderUnavailable: image analysis is disabled
            PayloadTooLarge: image exceeds IMAGE_ANALYSIS_MAX_BYTES
        """
        if not self.settings.ENABLE_IMAGE_ANALYSIS:
            raise ProviderUnavailable("image-analysis", "disabled by configuration")

        limit = self.settings.IMAGE_ANALYSIS_MAX_BYTES
        if len(image_bytes) > limit:
            raise PayloadTooLarge(len(image_bytes), limit)

        digest = hashlib.sha256(image_bytes).hexdigest()

        while True:
            cached = self._entries.get(digest)
            if cached is not None:
                logger.debug(f"[Descriptor] Cache hit {digest[:12]}")
                return cached.model_copy(update={"cached": True})

            pending = self._inflight.get(digest)
            if pending is None:
                break
            try:
                entry = await asyncio.shield(pending)
            except _Abandoned:
                # The computing caller went away; take over
                continue
            return entry.model_copy(update={"cached": True})

        future = asyncio.get_running_loop().create_future()
        self._inflight[digest] = future
        try:
            entry = await self._compute(digest, image_bytes, traits or [])
        except asyncio.CancelledError:
            future.set_exception(_Abandoned(digest))
            future.exception()
            raise
        except Exception as e:
            future.set_exception(e)
            future.exception()  # mark retrieved when nobody else is waiting
            raise
        else:
            self._store(digest, entry)
            future.set_result(entry)
            return entry.model_copy()
        finally:
            self._inflight.pop(digest, None)

    async def _compute(self, digest: str, image_bytes: bytes, traits: List[str]) -> DescriptorResult:
        prompt = ANALYSIS_PROMPT
        if traits:
            prompt += f"\nKnown personality traits: {', '.join(traits)}."

        logger.info(f"[Descriptor] Analyzing image {digest[:12]} ({len(image_bytes)} bytes) with {self.model}")
        text = await self._describe(image_bytes, prompt)
        return DescriptorResult(
            hash=digest,
            descriptor=text or DEFAULT_DESCRIPTOR,
            model=self.model,
            confidence=DESCRIPTOR_CONFIDENCE,
            cached=False,
        )

    @with_retry(max_retries=2, retry_delay=2.0)
    async def _describe(self, image_bytes: bytes, prompt: str) -> str:
        return await self.vision.describe_image(image_bytes, prompt, self.model)

    def _store(self, digest: str, entry: DescriptorResult):
        self._entries[digest] = entry
        max_entries = self.settings.DESCRIPTOR_CACHE_MAX_ENTRIES
        while max_entries > 0 and len(self._entries) > max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"[Descriptor] Evicted {evicted[:12]}")
