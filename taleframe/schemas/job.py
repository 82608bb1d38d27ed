"""
Job Schemas
Pydantic models for illustration job requests, records and results.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import Field

from taleframe.schemas.base import ApiModel
from taleframe.schemas.character import Character


class JobStatus(str, Enum):
    """Job status enum."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"  # Structural only; scene failures never set it


class Scene(ApiModel):
    """A single page to illustrate."""
    description: str
    page_number: int


class IllustrationJobRequest(ApiModel):
    """Schema for submitting an illustration job."""
    story_id: str
    character: Character
    story_title: str
    scenes: List[Scene] = Field(default_factory=list)


class IllustrationResult(ApiModel):
    """One generated illustration, as returned by a provider tier."""
    page_number: int
    description: str
    model: str
    character_referenced: bool = False
    url: Optional[str] = None
    b64_json: Optional[str] = None
    local_url: Optional[str] = None


class JobRecord(ApiModel):
    """Schema for an illustration job and its accumulated results."""
    id: str
    request: IllustrationJobRequest
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime
    updated_at: datetime
    error: Optional[str] = None
    results: List[IllustrationResult] = Field(default_factory=list)


class GenerateIllustrationRequest(ApiModel):
    """Schema for synchronous single-scene generation."""
    character: Character
    scene_description: str
    story_title: str = "Story"
    page_number: int = 1
