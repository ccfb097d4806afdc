"""
Core components shared by every quillpress process:
- Configuration management
- Database engine and session handling
- Custom exceptions
- Logging setup
"""

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import (
    CompensationError,
    ExternalServiceError,
    NotFoundError,
    PipelineError,
    QueueUnavailableError,
    QuillpressError,
    RateLimitError,
    ValidationError,
    is_retryable,
)

__all__ = [
    "Settings",
    "get_settings",
    "QuillpressError",
    "CompensationError",
    "ExternalServiceError",
    "NotFoundError",
    "PipelineError",
    "QueueUnavailableError",
    "RateLimitError",
    "ValidationError",
    "is_retryable",
]
