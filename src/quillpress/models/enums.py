"""
Enum definitions for quillpress models and job payloads.

These enums define the valid values for status fields and queue names.
They are used both in SQLAlchemy models and Pydantic schemas for
consistent validation.
"""

import enum


class GenerationStatus(str, enum.Enum):
    """
    Content generation status of a record.

    Attributes:
        PENDING: Placeholder created, generation job queued
        PROCESSING: A generation worker is running the stage machine
        COMPLETED: Generated fields persisted
        FAILED: Generation failed and the record was retained
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class NarrationStatus(str, enum.Enum):
    """
    Narration (speech synthesis) status of a record.

    Absent (NULL) until generation completes and narration is requested.

    Attributes:
        PROCESSING: Narration job queued or running
        COMPLETED: Audio uploaded and referenced
        FAILED: Narration failed; generated content is untouched
    """

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueName(str, enum.Enum):
    """
    Broker queue names. One worker per queue.

    Attributes:
        GENERATION: Long-running content generation
        NARRATION: Speech synthesis of generated content
        EMAIL: Transactional email delivery
        IMAGE_UPLOAD: Bulk image upload to object storage
    """

    GENERATION = "generation"
    NARRATION = "narration"
    EMAIL = "email"
    IMAGE_UPLOAD = "image-upload"


class JobState(str, enum.Enum):
    """
    Job lifecycle as seen by producers.

    Attributes:
        QUEUED: Persisted by the broker, not yet claimed
        ACTIVE: Leased by a worker
        COMPLETED: Processor returned normally
        FAILED: Processor raised and no attempts remain
    """

    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationStage(str, enum.Enum):
    """Stages of the generation worker's stage machine."""

    QUEUED = "queued"
    GENERATING = "generating"
    UPLOADING_ASSETS = "uploading_assets"
    COMPLETED = "completed"
    FAILED = "failed"


class FailurePolicy(str, enum.Enum):
    """
    What the generation worker does with a record after a terminal failure.

    Attributes:
        DELETE: Compensating delete of the placeholder record
        MARK_FAILED: Keep the record with generation_status=failed and the error
    """

    DELETE = "delete"
    MARK_FAILED = "mark_failed"
