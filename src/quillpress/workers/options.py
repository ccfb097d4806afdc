"""
Job options: attempt limit, backoff curve, delay and retention.

Options travel with each job (as the ``job_options`` task argument) so the
task that runs it knows its own retry budget.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Literal

from quillpress.core.config import Settings
from quillpress.core.exceptions import is_retryable


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Delay between attempts.

    Attributes:
        type: "exponential" doubles the delay after each attempt, "fixed" does not
        delay: Base delay in seconds
    """

    type: Literal["exponential", "fixed"] = "exponential"
    delay: float = 2.0


@dataclass(frozen=True)
class RetentionPolicy:
    """
    How long finished jobs stay queryable.

    Attributes:
        completed_age: Seconds a completed job is kept
        completed_count: Completed jobs kept per queue, newest first
        failed_age: Seconds a failed job is kept
    """

    completed_age: int = 3600
    completed_count: int = 100
    failed_age: int = 86400


@dataclass(frozen=True)
class JobOptions:
    """
    Per-job options.

    Attributes:
        attempts: Total attempts including the first
        backoff: Delay curve between attempts
        delay: Seconds to wait before the first attempt
        job_id: Caller-chosen job id (deduplicates on the broker)
        retention: Retention of the finished job
    """

    attempts: int = 3
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)
    delay: float | None = None
    job_id: str | None = None
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)

    @classmethod
    def defaults(cls, settings: Settings) -> "JobOptions":
        """Queue defaults from settings."""
        return cls(
            attempts=settings.job_max_attempts,
            backoff=BackoffPolicy("exponential", settings.job_backoff_delay_seconds),
            retention=RetentionPolicy(
                completed_age=settings.completed_job_retention_seconds,
                completed_count=settings.completed_job_retention_count,
                failed_age=settings.failed_job_retention_seconds,
            ),
        )

    def merge(self, overrides: "JobOptions | dict[str, Any] | None") -> "JobOptions":
        """Apply caller overrides on top of these defaults."""
        if overrides is None:
            return self
        if isinstance(overrides, JobOptions):
            return overrides
        values = dict(overrides)
        if isinstance(values.get("backoff"), dict):
            values["backoff"] = BackoffPolicy(**values["backoff"])
        if isinstance(values.get("retention"), dict):
            values["retention"] = RetentionPolicy(**values["retention"])
        return replace(self, **values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "JobOptions":
        return cls().merge(data or {})


@dataclass(frozen=True)
class JobAttempt:
    """
    Which attempt of a job is running.

    Attributes:
        number: 1-based attempt number
        max_attempts: Total attempts allowed
    """

    number: int = 1
    max_attempts: int = 3

    @property
    def is_final(self) -> bool:
        return self.number >= self.max_attempts


def calculate_backoff_countdown(options: JobOptions, attempt: int) -> float:
    """
    Seconds to wait after failed attempt ``attempt`` (1-based).

    Exponential backoff with a 2 s base gives 2 s, 4 s, 8 s, ...
    """
    if options.backoff.type == "fixed":
        return options.backoff.delay
    return options.backoff.delay * (2 ** max(attempt - 1, 0))


def should_retry(options: JobOptions, attempt: int, exc: BaseException) -> bool:
    """Whether a job that raised ``exc`` on ``attempt`` gets another attempt."""
    return attempt < options.attempts and is_retryable(exc)
