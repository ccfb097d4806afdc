"""
OpenAI API client wrapper for content generation.

This module provides a wrapper around the OpenAI Python SDK with:
- Retry logic with exponential backoff
- A hard per-call timeout
- Token usage tracking
- Structured JSON output validated against Pydantic models
- Image generation
"""

import json
import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from openai import APIConnectionError, APIStatusError, APITimeoutError, OpenAI, RateLimitError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import ExternalServiceError
from quillpress.core.exceptions import RateLimitError as QuillpressRateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")


@dataclass
class TokenUsage:
    """
    Token usage of one OpenAI call.

    Attributes:
        input_tokens: Number of tokens in the prompt/input
        output_tokens: Number of tokens in the completion/output
        total_tokens: Total tokens used (input + output)
        model: The model that was used
    """

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    model: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "model": self.model,
        }


class OpenAIClient:
    """
    OpenAI API client wrapper with retry logic.

    The SDK's own retries are disabled so this wrapper owns the retry
    budget; every call is bounded by ``generation_timeout_seconds``.

    Example:
        ```python
        client = OpenAIClient()
        draft, usage = client.complete_with_schema(
            messages=[{"role": "user", "content": "Write about tea"}],
            response_model=ArticleDraft,
        )
        urls = client.generate_images("A teapot on a table", count=1)
        ```
    """

    def __init__(
        self,
        api_key: str | None = None,
        settings: Settings | None = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        timeout: float | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """
        Initialize the OpenAI client.

        Args:
            api_key: OpenAI API key (uses settings if not provided)
            settings: Application settings instance
            max_retries: Maximum number of attempts per call
            base_delay: Initial delay in seconds for exponential backoff
            max_delay: Maximum delay in seconds between retries
            timeout: Per-call timeout (defaults to generation_timeout_seconds)
            client: Pre-built SDK client (tests)
        """
        self._settings = settings or get_settings()
        self._timeout = timeout or self._settings.generation_timeout_seconds
        self._client = client or OpenAI(
            api_key=api_key or self._settings.openai_api_key,
            timeout=self._timeout,
            max_retries=0,
        )
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay

    def _calculate_backoff(self, attempt: int) -> float:
        delay = min(self._base_delay * (2**attempt), self._max_delay)
        jitter = delay * (0.1 + 0.2 * random.random())
        return delay + jitter

    def _call_with_retry(self, operation: str, call: Callable[[], R]) -> R:
        """
        Run ``call`` with retries on rate limits, timeouts and 5xx responses.

        Raises:
            ExternalServiceError: On 4xx or once retries are exhausted
            QuillpressRateLimitError: If rate limited on the last attempt
        """
        last_error: Exception | None = None

        for attempt in range(self._max_retries):
            is_last = attempt == self._max_retries - 1
            try:
                return call()

            except RateLimitError as e:
                last_error = e
                delay = self._calculate_backoff(attempt)
                logger.warning(
                    f"OpenAI rate limit hit during {operation}",
                    extra={"attempt": attempt + 1, "delay_seconds": round(delay, 2)},
                )
                if is_last:
                    raise QuillpressRateLimitError(
                        message="OpenAI rate limit exceeded after retries",
                        retry_after=int(delay),
                    ) from e
                time.sleep(delay)

            except (APITimeoutError, APIConnectionError) as e:
                last_error = e
                logger.warning(
                    f"OpenAI connection error during {operation}",
                    extra={"attempt": attempt + 1, "error": str(e)},
                )
                if not is_last:
                    time.sleep(self._calculate_backoff(attempt))

            except APIStatusError as e:
                if 400 <= e.status_code < 500:
                    logger.error(
                        "OpenAI API client error",
                        extra={"status_code": e.status_code, "error": str(e)},
                    )
                    raise ExternalServiceError(
                        service="OpenAI",
                        message=f"OpenAI API error: {e.message}",
                        original_error=str(e),
                        retryable=False,
                    ) from e

                last_error = e
                logger.warning(
                    f"OpenAI server error during {operation}",
                    extra={"attempt": attempt + 1, "status_code": e.status_code},
                )
                if not is_last:
                    time.sleep(self._calculate_backoff(attempt))

        error_msg = str(last_error) if last_error else "Unknown error"
        logger.error(
            f"OpenAI {operation} failed after all retries",
            extra={"max_retries": self._max_retries, "error": error_msg},
        )
        raise ExternalServiceError(
            service="OpenAI",
            message="OpenAI API call failed after retries",
            original_error=error_msg,
        )

    def complete_with_schema(
        self,
        messages: list[dict[str, str]],
        response_model: type[T],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        system_message: str | None = None,
    ) -> tuple[T, TokenUsage]:
        """
        Generate a structured completion validated against a Pydantic model.

        Args:
            messages: List of message dicts with 'role' and 'content'
            response_model: Pydantic model class for response validation
            model: OpenAI model to use
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            system_message: Optional system message

        Returns:
            Tuple of (validated_response, token_usage)

        Raises:
            ExternalServiceError: If generation fails or response doesn't match schema
        """
        model = model or self._settings.openai_model_generation
        if system_message:
            messages = [{"role": "system", "content": system_message}] + messages

        response_format = {
            "type": "json_schema",
            "json_schema": {
                "name": response_model.__name__,
                "strict": False,
                "schema": response_model.model_json_schema(),
            },
        }

        logger.info(
            "OpenAI JSON completion request",
            extra={"model": model, "schema": response_model.__name__},
        )
        start_time = time.time()

        response = self._call_with_retry(
            "completion",
            lambda: self._client.chat.completions.create(
                model=model,
                messages=messages,  # type: ignore[arg-type]
                temperature=temperature,
                max_tokens=max_tokens,
                response_format=response_format,  # type: ignore[arg-type]
            ),
        )

        content = response.choices[0].message.content or "{}"
        usage = TokenUsage(model=model)
        if response.usage:
            usage.input_tokens = response.usage.prompt_tokens
            usage.output_tokens = response.usage.completion_tokens
            usage.total_tokens = response.usage.total_tokens

        try:
            validated = response_model.model_validate(json.loads(content))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.error(
                "Failed to validate OpenAI response against schema",
                extra={
                    "schema": response_model.__name__,
                    "content": content[:500],
                    "error": str(e),
                },
            )
            raise ExternalServiceError(
                service="OpenAI",
                message=f"Response validation failed for {response_model.__name__}",
                original_error=str(e),
            ) from e

        logger.info(
            "OpenAI JSON completion success",
            extra={
                "model": model,
                "elapsed_seconds": round(time.time() - start_time, 2),
                **usage.to_dict(),
            },
        )
        return validated, usage

    def generate_images(
        self,
        prompt: str,
        count: int = 1,
        size: str = "1024x1024",
        model: str | None = None,
    ) -> list[str]:
        """
        Generate images and return their temporary URLs.

        Models that produce one image per request are called ``count`` times.
        """
        model = model or self._settings.openai_model_image
        urls: list[str] = []
        for _ in range(count):
            response = self._call_with_retry(
                "image generation",
                lambda: self._client.images.generate(model=model, prompt=prompt, n=1, size=size),  # type: ignore[arg-type]
            )
            urls.extend(item.url for item in response.data or [] if item.url)

        logger.info("Generated images", extra={"model": model, "count": len(urls)})
        return urls
