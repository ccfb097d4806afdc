"""
Narration worker: synthesise a record's body and attach the audio.

Only the narration fields of the record are ever written here; a failed
narration leaves the generated content untouched.
"""

import logging
from typing import Any

from quillpress.cache import CacheService
from quillpress.core.exceptions import NotFoundError, ValidationError
from quillpress.models.enums import GenerationStatus, NarrationStatus
from quillpress.records import RecordStore
from quillpress.schemas.jobs import NarrationJob, VoiceConfig
from quillpress.services.narration import NarrationService
from quillpress.workers.options import JobAttempt

logger = logging.getLogger(__name__)


class NarrationWorker:
    """Processor for the narration queue."""

    def __init__(
        self,
        records: RecordStore,
        narration: NarrationService,
        cache: CacheService,
        default_voice: VoiceConfig | None = None,
    ) -> None:
        self._records = records
        self._narration = narration
        self._cache = cache
        self._default_voice = default_voice or VoiceConfig()

    def process(self, job: NarrationJob, attempt: JobAttempt | None = None) -> dict[str, Any]:
        """
        Narrate ``job.text`` for its record.

        Raises:
            NotFoundError: The record no longer exists
            ValidationError: Generation has not completed, or no readable text
            Exception: Provider or storage failure, after marking the record
        """
        attempt = attempt or JobAttempt()
        record_id = str(job.record_id)

        record = self._records.find_by_id(record_id)
        if record is None:
            raise NotFoundError("ContentRecord", record_id)
        if record.generation_status != GenerationStatus.COMPLETED:
            raise ValidationError(
                f"Record {record_id} has not finished generation",
                field="generation_status",
                details={"generation_status": str(record.generation_status)},
            )
        slug = record.slug

        logger.info(
            f"Narration started for record {record_id}",
            extra={"record_id": record_id, "attempt": attempt.number},
        )
        try:
            self._records.update(
                record_id,
                {"narration_status": NarrationStatus.PROCESSING, "narration_error": None},
            )
            result = self._narration.narrate(record_id, job.text, job.voice_config or self._default_voice)
            self._records.update(
                record_id,
                {
                    "narration_status": NarrationStatus.COMPLETED,
                    "narration_url": result.audio_url,
                    "narration_error": None,
                },
            )
        except Exception as e:
            logger.error(
                f"Narration failed for record {record_id}: {e}",
                extra={"record_id": record_id, "attempt": attempt.number},
                exc_info=True,
            )
            self._mark_failed(record_id, e)
            self._invalidate(record_id, slug)
            raise

        self._invalidate(record_id, slug)
        logger.info(
            f"Narration completed for record {record_id}",
            extra={"record_id": record_id, "chunk_count": result.chunk_count},
        )
        return {
            "record_id": record_id,
            "audio_url": result.audio_url,
            "chunk_count": result.chunk_count,
            "audio_size_bytes": result.audio_size_bytes,
        }

    def _mark_failed(self, record_id: str, error: Exception) -> None:
        try:
            self._records.update(
                record_id,
                {"narration_status": NarrationStatus.FAILED, "narration_error": str(error)[:2000]},
            )
        except Exception as e:
            logger.error(
                f"Could not mark narration failed for record {record_id}: {e}",
                extra={"record_id": record_id},
            )

    def _invalidate(self, record_id: str, slug: str | None) -> None:
        try:
            self._cache.invalidate_record(record_id, slug)
            self._cache.invalidate_record_queries()
        except Exception as e:
            logger.warning(
                f"Cache invalidation failed for record {record_id}: {e}",
                extra={"record_id": record_id},
            )
