"""
Generation worker: turn a generation job into a completed content record.

Stages: queued -> generating -> uploading_assets -> completed, or failed.

A failure at any stage runs the compensating action before the exception
is re-raised for the broker's retry policy. With the default ``delete``
policy the placeholder record is removed; if that delete fails the record
is marked ``failed`` instead. A retried attempt that finds its record
deleted recreates the placeholder and regenerates from scratch.

Once the record is completed, cache invalidation and the narration
hand-off are best effort: their failures are logged and never undo the
generated content.
"""

import logging
from typing import Any, Protocol

from quillpress.cache import CacheService
from quillpress.core.exceptions import (
    CompensationError,
    NotFoundError,
    PipelineError,
    QueueUnavailableError,
)
from quillpress.models.enums import (
    FailurePolicy,
    GenerationStage,
    GenerationStatus,
    NarrationStatus,
    QueueName,
)
from quillpress.models.content_record import ContentRecord
from quillpress.records import RecordStore
from quillpress.schemas.content import GeneratedContent, JobHandle, UploadSummary
from quillpress.schemas.jobs import GenerationJob, GenerationParams, NarrationJob, VoiceConfig
from quillpress.services.content_generation import ContentGenerator
from quillpress.workers.options import JobAttempt

logger = logging.getLogger(__name__)


class MediaUploader(Protocol):
    def upload_sources(self, sources: list[str], destination_path: str) -> UploadSummary: ...


class JobEnqueuer(Protocol):
    def add_job(self, queue_name: QueueName, payload: Any, options: Any = None) -> JobHandle: ...


def voice_config_from_params(params: GenerationParams, default_language_code: str) -> VoiceConfig:
    """
    Derive the narration voice from the generation request.

    A bare language (``"en"``) keeps the default region when it matches the
    default language code; a full code (``"pt-BR"``) is used as is.
    """
    language = params.language or default_language_code
    if "-" not in language and default_language_code.lower().startswith(language.lower()):
        language = default_language_code

    voice: dict[str, Any] = {"language_code": language, "voice_id": params.voice_id}
    if params.speaking_rate is not None:
        voice["speaking_rate"] = params.speaking_rate
    return VoiceConfig(**voice)


class GenerationWorker:
    """
    Processor for the generation queue.

    Example:
        ```python
        worker = GenerationWorker(records, generator, storage, cache, queue_manager)
        worker.process(job, JobAttempt(number=1, max_attempts=3))
        ```
    """

    def __init__(
        self,
        records: RecordStore,
        generator: ContentGenerator,
        storage: MediaUploader,
        cache: CacheService,
        queue_manager: JobEnqueuer,
        failure_policy: FailurePolicy | str = FailurePolicy.DELETE,
        default_language_code: str = "en-US",
    ) -> None:
        self._records = records
        self._generator = generator
        self._storage = storage
        self._cache = cache
        self._queue_manager = queue_manager
        self._failure_policy = FailurePolicy(failure_policy)
        self._default_language_code = default_language_code

    def process(self, job: GenerationJob, attempt: JobAttempt | None = None) -> dict[str, Any]:
        """
        Run one generation attempt.

        Returns:
            Summary dict with the record id, slug and image count

        Raises:
            NotFoundError: The placeholder record does not exist
            Exception: Whatever stage failed, after compensation
        """
        attempt = attempt or JobAttempt()
        record_id = str(job.record_id)
        finished = self._claim_record(job, attempt)
        if finished is not None:
            return {
                "record_id": record_id,
                "slug": finished.slug,
                "image_count": len(finished.images or []),
                "stage": GenerationStage.COMPLETED.value,
                "skipped": True,
            }

        stage = GenerationStage.GENERATING
        logger.info(
            f"Generation started for record {record_id}",
            extra={"record_id": record_id, "stage": stage.value, "attempt": attempt.number},
        )
        try:
            content = self._generator.generate(job.generation_params, job.is_template_based)

            stage = GenerationStage.UPLOADING_ASSETS
            images = self._upload_media(record_id, content)

            record = self._records.update(
                record_id,
                {
                    "title": content.title,
                    "slug": content.slug,
                    "seo_title": content.seo_title,
                    "seo_description": content.seo_description,
                    "body": content.body,
                    "images": images,
                    "generation_status": GenerationStatus.COMPLETED,
                    "generation_error": None,
                },
            )
            if record is None:
                raise NotFoundError("ContentRecord", record_id)
        except Exception as e:
            logger.error(
                f"Generation failed for record {record_id}: {e}",
                extra={"record_id": record_id, "stage": stage.value, "attempt": attempt.number},
                exc_info=True,
            )
            self._compensate(record_id, e)
            raise

        logger.info(
            f"Generation completed for record {record_id}",
            extra={"record_id": record_id, "stage": GenerationStage.COMPLETED.value, "slug": content.slug},
        )
        self._invalidate(record_id, content.slug)
        self._enqueue_narration(job, content)

        return {
            "record_id": record_id,
            "slug": content.slug,
            "image_count": len(images),
            "stage": GenerationStage.COMPLETED.value,
        }

    def _claim_record(self, job: GenerationJob, attempt: JobAttempt) -> ContentRecord | None:
        """
        Mark the record processing, recreating it on a retry after compensation.

        Returns the record untouched when it is already generated, so a
        redelivered job neither regenerates nor compensates it.
        """
        record_id = str(job.record_id)
        existing = self._records.find_by_id(record_id)
        if existing is not None and existing.generation_status == GenerationStatus.COMPLETED:
            logger.info(
                f"Record {record_id} already generated, skipping redelivered job",
                extra={"record_id": record_id, "attempt": attempt.number},
            )
            return existing

        fields = {"generation_status": GenerationStatus.PROCESSING, "generation_error": None}
        if self._records.update(record_id, fields) is not None:
            return None

        if attempt.number == 1:
            raise NotFoundError("ContentRecord", record_id)

        logger.info(
            f"Recreating placeholder record {record_id} for retry",
            extra={"record_id": record_id, "attempt": attempt.number},
        )
        self._records.create_placeholder(job.author_id, job.is_template_based, job.record_id)
        self._records.update(record_id, fields)
        return None

    def _upload_media(self, record_id: str, content: GeneratedContent) -> list[str]:
        """
        Upload generated media; returns public URLs with the primary first.

        Raises:
            PipelineError: The primary media item failed to upload
        """
        sources = content.media_source_refs
        if not sources:
            return []

        summary = self._storage.upload_sources(sources, f"records/{record_id}/images")
        primary = sources[content.primary_media_index] if content.primary_media_index < len(sources) else sources[0]

        if primary in summary.errors:
            raise PipelineError(
                f"Primary image upload failed: {summary.errors[primary]}",
                stage=GenerationStage.UPLOADING_ASSETS.value,
                record_id=record_id,
                details={"source": primary},
            )
        for source, error in summary.errors.items():
            logger.warning(
                "Skipping image that failed to upload",
                extra={"record_id": record_id, "source": source, "error": error},
            )

        urls = [summary.uploaded[primary]]
        urls.extend(url for source, url in summary.uploaded.items() if source != primary)
        return urls

    def _compensate(self, record_id: str, error: Exception) -> None:
        """Apply the failure policy. Never raises."""
        try:
            if self._failure_policy == FailurePolicy.DELETE:
                self._delete_or_mark_failed(record_id, error)
            else:
                self._mark_failed(record_id, error)
        except CompensationError as e:
            logger.critical(
                e.message,
                extra={"record_id": record_id, "details": e.details},
            )
        self._invalidate(record_id, None)

    def _delete_or_mark_failed(self, record_id: str, error: Exception) -> None:
        try:
            self._records.delete(record_id)
            logger.info(
                f"Deleted placeholder record {record_id} after failed generation",
                extra={"record_id": record_id},
            )
        except Exception as delete_error:
            logger.warning(
                f"Compensating delete failed for record {record_id}, marking failed",
                extra={"record_id": record_id, "error": str(delete_error)},
            )
            self._mark_failed(record_id, error)

    def _mark_failed(self, record_id: str, error: Exception) -> None:
        try:
            self._records.update(
                record_id,
                {
                    "generation_status": GenerationStatus.FAILED,
                    "generation_error": str(error)[:2000],
                },
            )
        except Exception as update_error:
            raise CompensationError(
                record_id,
                f"Could not delete or mark failed record {record_id}",
                original_error=str(update_error),
            ) from update_error

    def _invalidate(self, record_id: str, slug: str | None) -> None:
        try:
            self._cache.invalidate_record(record_id, slug)
            self._cache.invalidate_record_queries()
        except Exception as e:
            logger.warning(
                f"Cache invalidation failed for record {record_id}: {e}",
                extra={"record_id": record_id},
            )

    def _enqueue_narration(self, job: GenerationJob, content: GeneratedContent) -> None:
        """Hand the generated body to the narration queue."""
        record_id = str(job.record_id)
        narration = NarrationJob(
            record_id=job.record_id,
            text=content.body,
            voice_config=voice_config_from_params(job.generation_params, self._default_language_code),
        )
        try:
            self._records.update(
                record_id,
                {"narration_status": NarrationStatus.PROCESSING, "narration_error": None},
            )
            handle = self._queue_manager.add_job(QueueName.NARRATION, narration)
            logger.info(
                f"Narration queued for record {record_id}",
                extra={"record_id": record_id, "job_id": handle.id},
            )
        except QueueUnavailableError as e:
            logger.warning(
                f"Narration not queued for record {record_id}: {e.message}",
                extra={"record_id": record_id},
            )
            self._record_narration_failure(record_id, e.message)
        except Exception as e:
            logger.error(
                f"Narration hand-off failed for record {record_id}: {e}",
                extra={"record_id": record_id},
                exc_info=True,
            )
            self._record_narration_failure(record_id, str(e))

    def _record_narration_failure(self, record_id: str, message: str) -> None:
        try:
            self._records.update(
                record_id,
                {"narration_status": NarrationStatus.FAILED, "narration_error": message},
            )
        except Exception as e:
            logger.error(
                f"Could not record narration failure for record {record_id}: {e}",
                extra={"record_id": record_id},
            )
