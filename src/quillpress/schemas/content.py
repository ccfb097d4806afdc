"""
Pydantic schemas for generated content and job handles.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from quillpress.models.enums import JobState, QueueName


class GeneratedContent(BaseModel):
    """
    Output of the content generator.

    Attributes:
        title: Article title
        slug: URL-friendly identifier
        seo_title: Search title
        seo_description: Search description
        body: Article body in markdown
        media_source_refs: Image URLs or local paths to upload
        primary_media_index: Index in media_source_refs of the primary image
    """

    title: str = Field(min_length=1)
    slug: str = Field(min_length=1, max_length=200)
    seo_title: str = ""
    seo_description: str = ""
    body: str = Field(min_length=1)
    media_source_refs: list[str] = Field(default_factory=list)
    primary_media_index: int = Field(default=0, ge=0)


class UploadSummary(BaseModel):
    """
    Result of a multi-source upload.

    ``uploaded`` maps each successful source to its public URL; ``errors``
    maps each failed source to its error message.
    """

    uploaded: dict[str, str] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)

    @property
    def uploaded_urls(self) -> list[str]:
        return list(self.uploaded.values())


class JobHandle(BaseModel):
    """
    Producer-side view of an enqueued job.

    Attributes:
        id: Broker job identifier
        queue: Queue the job was sent to
        state: Last known state
        attempts: Attempts made so far
        result: Return value once completed
        error: Error message once failed
        created_at: Enqueue time
        completed_at: Completion or failure time
    """

    id: str
    queue: QueueName
    state: JobState = JobState.QUEUED
    attempts: int = 0
    result: Any = None
    error: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None
