"""Tests for settings loading and derived paths."""

import pytest
from pydantic import ValidationError

from taleframe.core.config import Settings


def test_defaults(settings):
    assert settings.ASYNC_ILLUSTRATIONS is True
    assert settings.SAVE_GENERATED_IMAGES is False
    assert settings.GENERATED_IMAGE_FORMAT == "png"
    assert settings.ENABLE_TEXT_FALLBACK is True
    assert settings.IMAGE_ANALYSIS_MAX_BYTES == 5_000_000
    assert settings.retention_enabled is False


def test_api_keys_are_stripped(make_settings):
    settings = make_settings(GEMINI_API_KEY="  key-123\n", OPENAI_API_KEY="\tsk-test ")

    assert settings.GEMINI_API_KEY == "key-123"
    assert settings.OPENAI_API_KEY == "sk-test"


def test_image_format_is_normalized(make_settings):
    assert make_settings(GENERATED_IMAGE_FORMAT=".JPG").GENERATED_IMAGE_FORMAT == "jpg"


def test_paths_resolve_under_storage_root(settings, temp_dir):
    assert settings.generated_path == (temp_dir / "generated").resolve()
    assert settings.uploads_path == (temp_dir / "uploads").resolve()


@pytest.mark.parametrize("overrides, enabled", [
    ({"SAVE_GENERATED_IMAGES": True}, False),
    ({"SAVE_GENERATED_IMAGES": True, "GENERATED_IMAGE_MAX_FILES": 5}, True),
    ({"SAVE_GENERATED_IMAGES": True, "GENERATED_IMAGE_MAX_MB": 1.5}, True),
    ({"SAVE_GENERATED_IMAGES": False, "GENERATED_IMAGE_MAX_FILES": 5}, False),
])
def test_retention_enabled(make_settings, overrides, enabled):
    assert make_settings(**overrides).retention_enabled is enabled


def test_megabyte_ceiling_in_bytes(make_settings):
    assert make_settings(GENERATED_IMAGE_MAX_MB=1.5).retention_max_bytes == 1_572_864


def test_settings_are_frozen(settings):
    with pytest.raises(ValidationError):
        settings.SAVE_GENERATED_IMAGES = True


def test_environment_overrides(monkeypatch, temp_dir):
    monkeypatch.setenv("SAVE_GENERATED_IMAGES", "true")
    monkeypatch.setenv("GENERATED_IMAGE_MAX_FILES", "25")

    settings = Settings(_env_file=None, STORAGE_ROOT=str(temp_dir))

    assert settings.SAVE_GENERATED_IMAGES is True
    assert settings.GENERATED_IMAGE_MAX_FILES == 25
