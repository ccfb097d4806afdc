"""
Tests for job options, backoff and the retry decision.
"""

import pytest

from quillpress.core.config import Settings
from quillpress.core.exceptions import ExternalServiceError, NotFoundError, ValidationError
from quillpress.workers.options import (
    BackoffPolicy,
    JobAttempt,
    JobOptions,
    RetentionPolicy,
    calculate_backoff_countdown,
    should_retry,
)


class TestJobOptions:
    """Tests for default and merged options."""

    def test_defaults_from_settings(self, settings: Settings) -> None:
        options = JobOptions.defaults(settings)

        assert options.attempts == 3
        assert options.backoff == BackoffPolicy("exponential", 2.0)
        assert options.retention == RetentionPolicy(completed_age=3600, completed_count=100, failed_age=86400)

    def test_merge_dict_overrides(self, settings: Settings) -> None:
        options = JobOptions.defaults(settings).merge(
            {"attempts": 5, "backoff": {"type": "fixed", "delay": 1.0}, "job_id": "abc"}
        )

        assert options.attempts == 5
        assert options.backoff == BackoffPolicy("fixed", 1.0)
        assert options.job_id == "abc"
        assert options.retention.completed_count == 100

    def test_merge_none_keeps_defaults(self, settings: Settings) -> None:
        defaults = JobOptions.defaults(settings)
        assert defaults.merge(None) is defaults

    def test_serialized_options_survive_the_broker(self) -> None:
        options = JobOptions(attempts=2, backoff=BackoffPolicy("fixed", 3.0), delay=1.5)
        assert JobOptions.from_dict(options.to_dict()) == options


class TestBackoff:
    """Tests for backoff countdowns."""

    @pytest.mark.parametrize(("attempt", "expected"), [(1, 2.0), (2, 4.0), (3, 8.0)])
    def test_exponential_from_two_seconds(self, attempt: int, expected: float) -> None:
        assert calculate_backoff_countdown(JobOptions(), attempt) == expected

    def test_fixed_backoff(self) -> None:
        options = JobOptions(backoff=BackoffPolicy("fixed", 5.0))
        assert calculate_backoff_countdown(options, 3) == 5.0


class TestShouldRetry:
    """Tests for the attempt bound."""

    def test_transient_error_retried_until_attempts_exhausted(self) -> None:
        options = JobOptions(attempts=3)
        error = ExternalServiceError("ElevenLabs", "timeout")

        assert should_retry(options, 1, error) is True
        assert should_retry(options, 2, error) is True
        assert should_retry(options, 3, error) is False

    def test_unknown_errors_are_transient(self) -> None:
        assert should_retry(JobOptions(), 1, ConnectionError("reset")) is True

    def test_validation_error_never_retried(self) -> None:
        assert should_retry(JobOptions(), 1, ValidationError("bad payload")) is False

    def test_not_found_never_retried(self) -> None:
        assert should_retry(JobOptions(), 1, NotFoundError("ContentRecord", "x")) is False

    def test_permanent_provider_error_not_retried(self) -> None:
        error = ExternalServiceError("OpenAI", "bad request", retryable=False)
        assert should_retry(JobOptions(), 1, error) is False


class TestJobAttempt:
    def test_final_attempt(self) -> None:
        assert JobAttempt(number=3, max_attempts=3).is_final
        assert not JobAttempt(number=2, max_attempts=3).is_final
