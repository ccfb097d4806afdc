"""
Narration service: sanitise, chunk, synthesise, concatenate, upload.

Chunks are synthesised sequentially by default. With
``narration_parallelism > 1`` they fan out over a thread pool and the
resulting buffers are put back in chunk order before concatenation.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import PipelineError, ValidationError
from quillpress.integrations.elevenlabs_client import content_type_for, extension_for
from quillpress.schemas.jobs import VoiceConfig
from quillpress.services.text_chunking import TextChunk, sanitize_for_speech, split_into_chunks

logger = logging.getLogger(__name__)

# Output formats whose buffers are a plain frame or sample stream, so a
# byte join yields a playable file
CONCATENABLE_FORMAT_PREFIXES = ("mp3", "pcm", "ulaw")


class SpeechSynthesizer(Protocol):
    """One provider call per chunk."""

    def synthesize(self, text: str, voice_config: VoiceConfig) -> bytes: ...


class AudioUploader(Protocol):
    def upload_bytes(
        self,
        data: bytes,
        destination_path: str,
        extension: str,
        content_type: str | None = None,
    ) -> str: ...


@dataclass
class NarrationResult:
    """Outcome of one narration."""

    audio_url: str
    chunk_count: int
    audio_size_bytes: int


def concatenate_audio(buffers: list[bytes]) -> bytes:
    """
    Join per-chunk audio by direct byte concatenation.

    Valid for MP3 frames and raw PCM. Container formats (Ogg, WAV with
    headers) need remuxing instead.
    """
    return b"".join(buffers)


class NarrationService:
    """
    Produce and store narration audio for a record.

    Example:
        ```python
        service = NarrationService(ElevenLabsClient(), StorageClient())
        result = service.narrate(record_id, body, VoiceConfig())
        ```
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        uploader: AudioUploader,
        settings: Settings | None = None,
        output_format: str | None = None,
        parallelism: int | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._synthesizer = synthesizer
        self._uploader = uploader
        self.output_format = output_format or self._settings.narration_output_format
        self.max_chunk_bytes = self._settings.tts_max_chunk_bytes
        self.parallelism = parallelism or self._settings.narration_parallelism

        if not self.output_format.startswith(CONCATENABLE_FORMAT_PREFIXES):
            logger.warning(
                "Output format is not safe for byte concatenation; multi-chunk audio may not play",
                extra={"output_format": self.output_format},
            )

    def prepare_chunks(self, text: str) -> list[TextChunk]:
        """
        Sanitise and chunk ``text``.

        Raises:
            ValidationError: If nothing readable is left after sanitising
        """
        clean = sanitize_for_speech(text)
        chunks = split_into_chunks(clean, self.max_chunk_bytes)
        if not chunks:
            raise ValidationError("No narratable text after sanitising", field="text")
        return chunks

    def synthesize_chunks(self, chunks: list[TextChunk], voice_config: VoiceConfig) -> list[bytes]:
        """Synthesise every chunk and return buffers in chunk order."""
        if self.parallelism <= 1 or len(chunks) == 1:
            return [self._synthesizer.synthesize(chunk.text, voice_config) for chunk in chunks]

        results: dict[int, bytes] = {}
        with ThreadPoolExecutor(
            max_workers=min(self.parallelism, len(chunks)),
            thread_name_prefix="narration",
        ) as pool:
            futures = {
                pool.submit(self._synthesizer.synthesize, chunk.text, voice_config): chunk.index
                for chunk in chunks
            }
            try:
                for future in as_completed(futures):
                    results[futures[future]] = future.result()
            except Exception:
                # Queued chunks are dropped; only calls already running finish
                pool.shutdown(wait=True, cancel_futures=True)
                raise
        return [results[chunk.index] for chunk in chunks]

    def narrate(self, record_id: UUID | str, text: str, voice_config: VoiceConfig) -> NarrationResult:
        """
        Turn ``text`` into one uploaded audio file.

        Raises:
            ValidationError: Nothing to narrate
            PipelineError: Empty audio from the provider
            ExternalServiceError: Provider or storage failure
        """
        chunks = self.prepare_chunks(text)
        logger.info(
            "Synthesising narration",
            extra={
                "record_id": str(record_id),
                "chunk_count": len(chunks),
                "parallelism": self.parallelism,
            },
        )

        audio = concatenate_audio(self.synthesize_chunks(chunks, voice_config))
        if not audio:
            raise PipelineError(
                "Speech provider returned no audio",
                stage="narration",
                record_id=str(record_id),
            )

        url = self._uploader.upload_bytes(
            audio,
            destination_path=f"records/{record_id}/audio",
            extension=extension_for(self.output_format),
            content_type=content_type_for(self.output_format),
        )
        logger.info(
            "Narration uploaded",
            extra={"record_id": str(record_id), "audio_size_bytes": len(audio), "url": url},
        )
        return NarrationResult(audio_url=url, chunk_count=len(chunks), audio_size_bytes=len(audio))
