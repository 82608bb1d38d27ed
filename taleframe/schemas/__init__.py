# Pydantic schemas package
from taleframe.schemas.character import Character, Sibling
from taleframe.schemas.job import (
    JobStatus, Scene, IllustrationJobRequest, IllustrationResult, JobRecord,
    GenerateIllustrationRequest
)
from taleframe.schemas.assets import GeneratedAsset, SavedAsset, DescriptorResult, AnalyzeImageRequest

__all__ = [
    "Character", "Sibling",
    "JobStatus", "Scene", "IllustrationJobRequest", "IllustrationResult", "JobRecord",
    "GenerateIllustrationRequest",
    "GeneratedAsset", "SavedAsset", "DescriptorResult", "AnalyzeImageRequest",
]
