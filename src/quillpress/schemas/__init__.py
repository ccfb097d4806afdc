"""
Pydantic schemas for job payloads and pipeline results.
"""

from quillpress.schemas.content import GeneratedContent, JobHandle, UploadSummary
from quillpress.schemas.jobs import (
    EmailJob,
    GenerationJob,
    GenerationParams,
    ImageUploadJob,
    JobPayload,
    NarrationJob,
    VoiceConfig,
    parse_job_payload,
)

__all__ = [
    "EmailJob",
    "GeneratedContent",
    "GenerationJob",
    "GenerationParams",
    "ImageUploadJob",
    "JobHandle",
    "JobPayload",
    "NarrationJob",
    "UploadSummary",
    "VoiceConfig",
    "parse_job_payload",
]
