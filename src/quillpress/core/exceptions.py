"""
Custom exception classes for the quillpress pipeline.

These exceptions provide structured error handling throughout the workers.
The ``retryable`` flag tells the task layer whether the broker's retry
policy should apply.
"""

from typing import Any


class QuillpressError(Exception):
    """
    Base exception for all quillpress-specific errors.

    Provides a consistent interface for error handling with support for
    error codes, messages, and additional details.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional error details (optional)
        retryable: Whether a job failing with this error may be retried
    """

    retryable: bool = True

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a dictionary for job results and logs.

        Returns:
            Dictionary representation of the error
        """
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class NotFoundError(QuillpressError):
    """
    Raised when a requested resource is not found.

    Attributes:
        resource_type: Type of resource that was not found
        resource_id: Identifier of the resource
    """

    retryable = False

    def __init__(
        self,
        resource_type: str,
        resource_id: str | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"

        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(
            message=message,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class ValidationError(QuillpressError):
    """
    Raised when a job payload or record state is invalid.

    Never retried: running the same input again cannot succeed.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        error_details = details or {}
        if field:
            error_details["field"] = field

        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=error_details,
        )


class ExternalServiceError(QuillpressError):
    """
    Raised when an external service call fails.

    Used for errors from OpenAI, ElevenLabs, S3 and SMTP.
    """

    def __init__(
        self,
        service: str,
        message: str,
        original_error: str | None = None,
        retry_after: int | None = None,
        retryable: bool = True,
    ) -> None:
        """
        Initialize ExternalServiceError.

        Args:
            service: Name of the external service
            message: Description of the error
            original_error: Original error message from the service
            retry_after: Seconds to wait before retrying (optional)
            retryable: False for permanent provider errors (bad request, auth)
        """
        details: dict[str, Any] = {"service": service}
        if original_error:
            details["original_error"] = original_error
        if retry_after:
            details["retry_after"] = retry_after

        self.service = service
        self.retry_after = retry_after
        super().__init__(
            message=message,
            code="EXTERNAL_SERVICE_ERROR",
            details=details,
            retryable=retryable,
        )


class RateLimitError(QuillpressError):
    """Raised when a provider rate limit is exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if retry_after:
            details["retry_after"] = retry_after

        self.retry_after = retry_after
        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
        )


class QueueUnavailableError(QuillpressError):
    """
    Raised synchronously by the queue manager when no broker is usable.

    This is the only worker-side failure a producer ever sees.
    """

    retryable = False

    def __init__(self, queue_name: str | None = None, message: str | None = None) -> None:
        super().__init__(
            message=message or "Job queue is not available",
            code="QUEUE_UNAVAILABLE",
            details={"queue": queue_name} if queue_name else {},
        )


class PipelineError(QuillpressError):
    """
    Raised when a pipeline stage fails.

    Used by the generation and narration workers to tag the stage where
    processing stopped.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        record_id: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = True,
    ) -> None:
        error_details = details or {}
        error_details["stage"] = stage
        if record_id:
            error_details["record_id"] = record_id

        self.stage = stage
        self.record_id = record_id
        super().__init__(
            message=message,
            code="PIPELINE_ERROR",
            details=error_details,
            retryable=retryable,
        )


class CompensationError(QuillpressError):
    """
    Raised when a failed generation could neither delete its placeholder
    record nor mark it failed.

    The record may be left in ``processing`` state and needs manual cleanup.
    """

    retryable = False

    def __init__(self, record_id: str, message: str, original_error: str | None = None) -> None:
        details: dict[str, Any] = {"record_id": record_id}
        if original_error:
            details["original_error"] = original_error

        self.record_id = record_id
        super().__init__(
            message=message,
            code="COMPENSATION_FAILED",
            details=details,
        )


def is_retryable(exc: BaseException) -> bool:
    """Return whether a job that raised ``exc`` should be retried."""
    if isinstance(exc, QuillpressError):
        return exc.retryable
    return True
