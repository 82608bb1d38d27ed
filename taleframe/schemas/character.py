"""
Character Schemas
The child character a story is written about. Read-only input to the pipeline.
"""

from typing import List, Optional
from pydantic import AliasChoices, Field

from taleframe.schemas.base import ApiModel


class Sibling(ApiModel):
    """Family member shown alongside the hero."""
    name: str
    traits: str = ""
    favorite_things: List[str] = Field(default_factory=list)


class Character(ApiModel):
    """Schema for a story character."""
    name: str
    age: int
    personality: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)
    siblings: List[Sibling] = Field(
        default_factory=list,
        validation_alias=AliasChoices("siblings", "sisters"),
    )
    personal_message: Optional[str] = None
    image_url: Optional[str] = None  # Uploaded reference image locator (path or URL)
