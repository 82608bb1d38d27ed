"""Shared pytest fixtures for TaleFrame tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator, List, Optional

import pytest

from taleframe.core.config import Settings
from taleframe.core.exceptions import ProviderUnavailable
from taleframe.schemas.character import Character, Sibling
from taleframe.schemas.job import IllustrationResult
from taleframe.services.providers import IllustrationProvider, IllustrationRequest

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakeProvider(IllustrationProvider):
    """Scripted provider tier. ``outcome`` is a result kind or an exception to raise."""

    def __init__(
        self,
        settings: Settings,
        name: str,
        outcome="b64",
        requires_reference: bool = False,
        available: bool = True,
        asset_prefix: str = "fake",
    ):
        super().__init__(settings)
        self.name = name
        self.outcome = outcome
        self.requires_reference = requires_reference
        self.available = available
        self.asset_prefix = asset_prefix
        self.remote_url = "https://images.example.com/generated.png"
        self.calls: List[IllustrationRequest] = []

    @property
    def model(self) -> str:
        return f"{self.name}-model"

    def check_available(self) -> None:
        if not self.available:
            raise ProviderUnavailable(self.name, "disabled by configuration")

    async def attempt(self, request: IllustrationRequest, reference: Optional[Path]) -> IllustrationResult:
        self.calls.append(request)
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        result = IllustrationResult(
            page_number=request.page_number,
            description=request.scene_description,
            model=self.model,
            character_referenced=self.requires_reference,
        )
        if self.outcome == "url":
            result.url = self.remote_url
        else:
            result.b64_json = "iVBORw0KGgo="
        return result


class FakeVision:
    """Vision client returning a fixed description and recording prompts."""

    def __init__(self, answer: str = "Curly red hair, green eyes, yellow raincoat.", error: Exception = None):
        self.answer = answer
        self.error = error
        self.prompts: List[str] = []
        self.gate = None  # optional asyncio.Event to hold calls open

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def describe_image(self, image_bytes: bytes, prompt: str, model: str) -> str:
        self.prompts.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.answer


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def make_settings(temp_dir: Path) -> Callable[..., Settings]:
    """Factory for isolated settings rooted in the temporary directory."""

    def _make(**overrides) -> Settings:
        values = {
            "STORAGE_ROOT": str(temp_dir),
            "GEMINI_API_KEY": "",
            "OPENAI_API_KEY": "",
            "VERTEX_PROJECT_ID": "",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> Settings:
    return make_settings()


@pytest.fixture
def uploads_dir(settings: Settings) -> Path:
    path = settings.uploads_path
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def reference_image(uploads_dir: Path) -> Path:
    """A reference image uploaded for the sample character."""
    path = uploads_dir / "mia.png"
    path.write_bytes(PNG_BYTES)
    return path


@pytest.fixture
def sample_character() -> Character:
    return Character(
        name="Mia",
        age=6,
        personality=["brave", "curious"],
        interests=["dinosaurs", "painting"],
        siblings=[Sibling(name="Leo", traits="funny", favorite_things=["trains"])],
        image_url="/uploads/mia.png",
    )
