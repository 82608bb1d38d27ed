"""
Asset Schemas
Generated image listing and character descriptor analysis.
"""

from datetime import datetime
from typing import List
from pydantic import Field

from taleframe.schemas.base import ApiModel


class GeneratedAsset(ApiModel):
    """A generated image file in the asset directory."""
    filename: str
    url: str
    size: int
    created_at: datetime


class SavedAsset(ApiModel):
    """Result of persisting bytes to the asset store."""
    local_path: str
    public_url: str


class DescriptorResult(ApiModel):
    """Textual appearance descriptor derived from a character image."""
    hash: str
    descriptor: str
    model: str
    confidence: float
    cached: bool = False


class AnalyzeImageRequest(ApiModel):
    """Schema for character image analysis."""
    image_url: str
    traits: List[str] = Field(default_factory=list)
