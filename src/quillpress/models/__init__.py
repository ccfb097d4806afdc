"""
SQLAlchemy ORM models for quillpress.

This module exports the content record model and the enums shared with
job payload schemas.
"""

from quillpress.models.base import Base, TimestampMixin
from quillpress.models.content_record import ContentRecord
from quillpress.models.enums import (
    FailurePolicy,
    GenerationStage,
    GenerationStatus,
    JobState,
    NarrationStatus,
    QueueName,
)

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Models
    "ContentRecord",
    # Enums
    "FailurePolicy",
    "GenerationStage",
    "GenerationStatus",
    "JobState",
    "NarrationStatus",
    "QueueName",
]
