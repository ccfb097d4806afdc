"""
ElevenLabs API client for speech synthesis.

Implements the speech synthesizer used by the narration worker: one call
turns one text chunk into one audio buffer.

API Reference: https://elevenlabs.io/docs/api-reference
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import ValidationError
from quillpress.integrations.base_client import SyncBaseHTTPClient
from quillpress.schemas.jobs import VoiceConfig

logger = logging.getLogger(__name__)

# Models that accept an explicit language_code
LANGUAGE_CODE_MODELS = frozenset({"eleven_turbo_v2_5", "eleven_flash_v2_5"})

# Accepted range of the speed voice setting
MIN_SPEED = 0.7
MAX_SPEED = 1.2


class VoiceSettings(BaseModel):
    """
    Voice settings for ElevenLabs speech generation.

    Attributes:
        stability: Voice stability (0.0-1.0). Higher = more consistent
        similarity_boost: Speaker similarity boost (0.0-1.0)
        style: Style exaggeration (0.0-1.0)
        use_speaker_boost: Enable speaker boost for clearer audio
        speed: Speaking speed, 1.0 is normal
    """

    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    style: float = Field(default=0.0, ge=0.0, le=1.0)
    use_speaker_boost: bool = Field(default=True)
    speed: float = Field(default=1.0, ge=MIN_SPEED, le=MAX_SPEED)

    def to_api_format(self) -> dict[str, Any]:
        """Convert to ElevenLabs API format."""
        return self.model_dump()


def content_type_for(output_format: str) -> str:
    """MIME type of an ElevenLabs ``output_format``."""
    if output_format.startswith("mp3"):
        return "audio/mpeg"
    if output_format.startswith("pcm"):
        return "audio/L16"
    if output_format.startswith("opus"):
        return "audio/ogg"
    if output_format.startswith("ulaw"):
        return "audio/basic"
    return "application/octet-stream"


def extension_for(output_format: str) -> str:
    """File extension of an ElevenLabs ``output_format``."""
    return {"mp3": "mp3", "pcm": "pcm", "opus": "ogg", "ulaw": "ulaw"}.get(
        output_format.split("_", 1)[0], "bin"
    )


class ElevenLabsClient(SyncBaseHTTPClient):
    """
    ElevenLabs API client for text-to-speech synthesis.

    Example:
        ```python
        client = ElevenLabsClient()
        audio = client.synthesize(
            "Hello, this is a test.",
            VoiceConfig(voice_id="21m00Tcm4TlvDq8ikWAM"),
        )
        ```
    """

    BASE_URL = "https://api.elevenlabs.io/v1"

    def __init__(
        self,
        api_key: str | None = None,
        settings: Settings | None = None,
        max_retries: int = 2,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> None:
        """
        Initialize the ElevenLabs client.

        Args:
            api_key: ElevenLabs API key (uses settings if not provided)
            settings: Application settings instance
            max_retries: Attempts per chunk before the job-level retry takes over
            timeout: Per-call timeout in seconds (defaults to speech_timeout_seconds)
        """
        settings = settings or get_settings()
        api_key = api_key or settings.elevenlabs_api_key

        if not api_key:
            raise ValidationError(
                message="ElevenLabs API key is required",
                field="elevenlabs_api_key",
            )

        super().__init__(
            base_url=self.BASE_URL,
            api_key=api_key,
            settings=settings,
            max_retries=max_retries,
            timeout=timeout or settings.speech_timeout_seconds,
            **kwargs,
        )
        self.model_id = settings.elevenlabs_model_id
        self.output_format = settings.narration_output_format
        self.default_voice_id = settings.elevenlabs_default_voice

    @property
    def service_name(self) -> str:
        return "ElevenLabs"

    @property
    def content_type(self) -> str:
        return content_type_for(self.output_format)

    def _get_headers(self) -> dict[str, str]:
        return {
            "xi-api-key": self._api_key or "",
            "Content-Type": "application/json",
            "Accept": self.content_type,
        }

    def _voice_settings(self, voice_config: VoiceConfig) -> VoiceSettings:
        speed = min(max(voice_config.speaking_rate, MIN_SPEED), MAX_SPEED)
        if speed != voice_config.speaking_rate:
            logger.warning(
                "Speaking rate clamped to provider range",
                extra={"requested": voice_config.speaking_rate, "applied": speed},
            )
        if voice_config.pitch:
            logger.warning(
                "ElevenLabs does not support pitch adjustment, ignoring",
                extra={"pitch": voice_config.pitch},
            )
        return VoiceSettings(speed=speed)

    def synthesize(self, text: str, voice_config: VoiceConfig) -> bytes:
        """
        Convert one chunk of text to audio.

        Args:
            text: Sanitised text within the provider byte limit
            voice_config: Voice, rate and language for this job

        Returns:
            Raw audio bytes in the configured output format

        Raises:
            ValidationError: If text is empty
            ExternalServiceError: If generation fails
        """
        if not text or not text.strip():
            raise ValidationError(message="Text cannot be empty", field="text")

        voice_id = voice_config.voice_id or self.default_voice_id
        payload: dict[str, Any] = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self._voice_settings(voice_config).to_api_format(),
        }
        if self.model_id in LANGUAGE_CODE_MODELS:
            payload["language_code"] = voice_config.language_code.split("-", 1)[0].lower()

        response = self._post(
            f"text-to-speech/{voice_id}",
            json_data=payload,
            params={"output_format": self.output_format},
        )
        audio = response.content

        logger.info(
            "Synthesized speech chunk with ElevenLabs",
            extra={
                "voice_id": voice_id,
                "model_id": self.model_id,
                "character_count": len(text),
                "audio_size_bytes": len(audio),
            },
        )
        return audio
