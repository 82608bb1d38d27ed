"""Tests for reference resolution and the provider fallback chain."""

import httpx
import pytest

from taleframe.core.exceptions import (
    ProviderUnavailable,
    UpstreamAPIError,
    UpstreamErrorKind,
)
from taleframe.services.orchestrator import IllustrationOrchestrator
from taleframe.services.storage import AssetStore

from conftest import FakeProvider


def _tiers(settings, tier1="b64", tier2="b64", tier3="url", **kwargs):
    return [
        FakeProvider(settings, "tier-1", tier1, requires_reference=True, asset_prefix="gemini", **kwargs),
        FakeProvider(settings, "tier-2", tier2, requires_reference=True, asset_prefix="vertex"),
        FakeProvider(settings, "tier-3", tier3, asset_prefix="consistent"),
    ]


class TestReferenceResolution:
    @pytest.fixture
    def orchestrator(self, settings):
        return IllustrationOrchestrator(settings, providers=[])

    def test_absolute_path(self, orchestrator, reference_image):
        assert orchestrator.resolve_reference_image(str(reference_image)) == reference_image

    def test_remote_url_maps_to_uploads(self, orchestrator, reference_image):
        found = orchestrator.resolve_reference_image("https://cdn.example.com/uploads/mia.png?v=2")
        assert found == reference_image

    def test_public_path_maps_to_uploads(self, orchestrator, reference_image):
        assert orchestrator.resolve_reference_image("/uploads/mia.png") == reference_image

    def test_relative_to_storage_root(self, orchestrator, settings, temp_dir):
        nested = temp_dir / "static" / "characters"
        nested.mkdir(parents=True)
        (nested / "hero.jpg").write_bytes(b"jpg")

        assert orchestrator.resolve_reference_image("/static/characters/hero.jpg") == nested / "hero.jpg"

    def test_missing_or_empty_locator(self, orchestrator, uploads_dir):
        assert orchestrator.resolve_reference_image("missing.png") is None
        assert orchestrator.resolve_reference_image("") is None
        assert orchestrator.resolve_reference_image(None) is None


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_first_tier_wins(self, settings, sample_character, reference_image):
        tiers = _tiers(settings)
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        result = await orchestrator.generate_illustration(sample_character, "Mia finds a dragon egg", "Mia's Quest", 2)

        assert result.model == "tier-1-model"
        assert result.character_referenced is True
        assert result.page_number == 2
        assert [len(t.calls) for t in tiers] == [1, 0, 0]

    @pytest.mark.asyncio
    async def test_falls_through_to_text_only(self, settings, sample_character, reference_image):
        tiers = _tiers(
            settings,
            tier1=UpstreamAPIError(UpstreamErrorKind.QUOTA_EXCEEDED, "quota"),
            tier2=RuntimeError("connection reset"),
        )
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        result = await orchestrator.generate_illustration(sample_character, "At the beach", "Mia's Quest")

        assert result.model == "tier-3-model"
        assert result.character_referenced is False
        assert result.url
        assert [len(t.calls) for t in tiers] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_unavailable_tiers_are_skipped(self, settings, sample_character, reference_image):
        tiers = _tiers(settings, available=False)
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.model == "tier-2-model"
        assert len(tiers[0].calls) == 0

    @pytest.mark.asyncio
    async def test_missing_reference_skips_reference_tiers(self, settings, sample_character):
        tiers = _tiers(settings)
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.model == "tier-3-model"
        assert [len(t.calls) for t in tiers] == [0, 0, 1]

    @pytest.mark.asyncio
    async def test_terminal_failure_propagates(self, settings, sample_character, reference_image):
        tiers = _tiers(
            settings,
            tier1=RuntimeError("boom"),
            tier2=RuntimeError("boom"),
            tier3=UpstreamAPIError(UpstreamErrorKind.RATE_LIMITED, "429 Too Many Requests"),
        )
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        with pytest.raises(UpstreamAPIError) as exc_info:
            await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert exc_info.value.user_message == "Rate limit exceeded. Please try again later."

    @pytest.mark.asyncio
    async def test_terminal_sdk_error_is_classified(self, settings, sample_character):
        tiers = _tiers(settings, tier3=RuntimeError("You exceeded your current quota"))
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        with pytest.raises(UpstreamAPIError) as exc_info:
            await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert exc_info.value.kind == UpstreamErrorKind.QUOTA_EXCEEDED

    @pytest.mark.asyncio
    async def test_terminal_unavailable_propagates(self, settings, sample_character):
        tiers = _tiers(settings)
        tiers[2].available = False
        orchestrator = IllustrationOrchestrator(settings, providers=tiers)

        with pytest.raises(ProviderUnavailable):
            await orchestrator.generate_illustration(sample_character, "Scene", "Title")

    @pytest.mark.asyncio
    async def test_no_providers(self, settings, sample_character):
        orchestrator = IllustrationOrchestrator(settings, providers=[])

        with pytest.raises(ProviderUnavailable):
            await orchestrator.generate_illustration(sample_character, "Scene", "Title")


class TestPersistence:
    @pytest.mark.asyncio
    async def test_inline_image_is_saved(self, make_settings, sample_character, reference_image):
        settings = make_settings(SAVE_GENERATED_IMAGES=True)
        orchestrator = IllustrationOrchestrator(settings, providers=_tiers(settings), asset_store=AssetStore(settings))

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title", 3)

        assert result.local_url.startswith("/generated/gemini-")
        assert result.local_url.endswith("-p3.png")
        assert (settings.generated_path / result.local_url.rsplit("/", 1)[1]).exists()

    @pytest.mark.asyncio
    async def test_remote_image_is_downloaded(self, make_settings, sample_character):
        settings = make_settings(SAVE_GENERATED_IMAGES=True)
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"remote"))
        store = AssetStore(settings, transport=transport)
        orchestrator = IllustrationOrchestrator(settings, providers=_tiers(settings), asset_store=store)

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.url
        assert result.local_url.startswith("/generated/consistent-")

    @pytest.mark.asyncio
    async def test_failed_download_keeps_result(self, make_settings, sample_character):
        settings = make_settings(SAVE_GENERATED_IMAGES=True)
        store = AssetStore(settings, transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        orchestrator = IllustrationOrchestrator(settings, providers=_tiers(settings), asset_store=store)

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.url
        assert result.local_url is None

    @pytest.mark.asyncio
    async def test_persistence_off(self, settings, sample_character, reference_image):
        orchestrator = IllustrationOrchestrator(settings, providers=_tiers(settings), asset_store=AssetStore(settings))

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.local_url is None
        assert not settings.generated_path.exists()

    @pytest.mark.asyncio
    async def test_malformed_remote_url_keeps_result(self, make_settings, sample_character):
        settings = make_settings(SAVE_GENERATED_IMAGES=True)
        tiers = _tiers(settings)
        tiers[2].remote_url = "https://img.example.com/\x00a.png"
        store = AssetStore(settings, transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        orchestrator = IllustrationOrchestrator(settings, providers=tiers, asset_store=store)

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.url == "https://img.example.com/\x00a.png"
        assert result.local_url is None

    @pytest.mark.asyncio
    async def test_unexpected_store_error_keeps_result(self, make_settings, sample_character):
        class BrokenStore:
            async def download_and_save(self, url, base_name):
                raise RuntimeError("disk on fire")

        settings = make_settings(SAVE_GENERATED_IMAGES=True)
        orchestrator = IllustrationOrchestrator(settings, providers=_tiers(settings), asset_store=BrokenStore())

        result = await orchestrator.generate_illustration(sample_character, "Scene", "Title")

        assert result.model == "tier-3-model"
        assert result.local_url is None
