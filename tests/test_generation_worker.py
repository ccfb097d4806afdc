"""
Tests for the generation worker stage machine.
"""

from typing import Any
from unittest.mock import MagicMock

import pytest

from conftest import FakeGenerator, FakeStorage
from quillpress.cache import CacheService
from quillpress.core.exceptions import (
    ExternalServiceError,
    NotFoundError,
    PipelineError,
    QueueUnavailableError,
    ValidationError,
)
from quillpress.models import ContentRecord, GenerationStatus, NarrationStatus
from quillpress.models.enums import FailurePolicy, QueueName
from quillpress.records import SqlAlchemyRecordStore
from quillpress.schemas.content import GeneratedContent
from quillpress.schemas.jobs import GenerationJob, GenerationParams, NarrationJob
from quillpress.workers.generation import GenerationWorker, voice_config_from_params
from quillpress.workers.options import JobAttempt

PRIMARY = "https://img.example.com/primary.png"
EXTRA = "https://img.example.com/extra.png"


def _worker(
    records: Any,
    cache: CacheService,
    queue_manager: MagicMock,
    generator: FakeGenerator,
    storage: FakeStorage | None = None,
    failure_policy: FailurePolicy = FailurePolicy.DELETE,
) -> GenerationWorker:
    return GenerationWorker(
        records=records,
        generator=generator,
        storage=storage or FakeStorage(),
        cache=cache,
        queue_manager=queue_manager,
        failure_policy=failure_policy,
    )


class TestGenerationSuccess:
    """Tests for the happy path."""

    def test_persists_content_and_completes(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        worker = _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content))

        result = worker.process(generation_job)

        record = store.find_by_id(generation_job.record_id)
        assert record.generation_status == GenerationStatus.COMPLETED
        assert record.title == "Green Tea Basics"
        assert record.slug == "green-tea-basics"
        assert record.body == generated_content.body
        assert len(record.images) == 2
        assert result["slug"] == "green-tea-basics"
        assert result["image_count"] == 2

    def test_uploads_images_under_record_path(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        storage = FakeStorage()
        _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content), storage).process(generation_job)

        sources, destination = storage.calls[0]
        assert sources == [PRIMARY, EXTRA]
        assert destination == f"records/{generation_job.record_id}/images"

    def test_enqueues_narration_with_voice_from_request(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content)).process(generation_job)

        queue_name, payload = fake_queue_manager.add_job.call_args.args
        assert queue_name == QueueName.NARRATION
        assert isinstance(payload, NarrationJob)
        assert payload.record_id == generation_job.record_id
        assert payload.text == generated_content.body
        assert payload.voice_config.language_code == "en-US"
        assert payload.voice_config.voice_id == "voice-1"
        assert payload.voice_config.speaking_rate == 1.1

        record = store.find_by_id(generation_job.record_id)
        assert record.narration_status == NarrationStatus.PROCESSING

    def test_invalidates_record_and_query_caches(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        record_id = generation_job.record_id
        cache.set(f"record:id:{record_id}", {"stale": True})
        cache.set("record:slug:green-tea-basics", {"stale": True})
        cache.set("record:query:recent", [1])
        cache.set("record:list:1", [1])
        cache.set("record:id:unrelated", {"fresh": True})

        _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content)).process(generation_job)

        assert cache.get(f"record:id:{record_id}") is None
        assert cache.get("record:slug:green-tea-basics") is None
        assert cache.get("record:query:recent") is None
        assert cache.get("record:list:1") is None
        assert cache.get("record:id:unrelated") == {"fresh": True}

    def test_secondary_image_failure_is_a_warning(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        storage = FakeStorage(failing={EXTRA: "HTTP 404"})

        result = _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content), storage).process(
            generation_job
        )

        record = store.find_by_id(generation_job.record_id)
        assert record.generation_status == GenerationStatus.COMPLETED
        assert len(record.images) == 1
        assert result["image_count"] == 1

    def test_primary_image_listed_first(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        content = generated_content.model_copy(update={"primary_media_index": 1})

        _worker(store, cache, fake_queue_manager, FakeGenerator(content)).process(generation_job)

        record = store.find_by_id(generation_job.record_id)
        assert record.images[0].endswith("/1.png")

    def test_narration_not_queued_marks_narration_failed(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        queue_manager = MagicMock()
        queue_manager.add_job.side_effect = QueueUnavailableError("narration")

        _worker(store, cache, queue_manager, FakeGenerator(generated_content)).process(generation_job)

        record = store.find_by_id(generation_job.record_id)
        assert record.generation_status == GenerationStatus.COMPLETED
        assert record.narration_status == NarrationStatus.FAILED
        assert record.narration_error


class TestGenerationFailure:
    """Tests for compensation on failure."""

    def test_primary_upload_failure_deletes_record_and_skips_narration(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        """A failed primary image upload removes the record and never narrates."""
        storage = FakeStorage(failing={PRIMARY: "connection reset"})
        worker = _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content), storage)

        with pytest.raises(PipelineError) as exc_info:
            worker.process(generation_job)

        assert exc_info.value.stage == "uploading_assets"
        assert store.find_by_id(generation_job.record_id) is None
        fake_queue_manager.add_job.assert_not_called()

    def test_generator_error_deletes_record_and_reraises(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
    ) -> None:
        error = ExternalServiceError("OpenAI", "timeout")
        worker = _worker(store, cache, fake_queue_manager, FakeGenerator(error=error))

        with pytest.raises(ExternalServiceError):
            worker.process(generation_job)

        assert store.find_by_id(generation_job.record_id) is None

    def test_delete_failure_falls_back_to_failed_status(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
    ) -> None:
        records = MagicMock(wraps=store)
        records.delete.side_effect = RuntimeError("database unavailable")
        worker = _worker(records, cache, fake_queue_manager, FakeGenerator(error=RuntimeError("model overloaded")))

        with pytest.raises(RuntimeError, match="model overloaded"):
            worker.process(generation_job)

        record = store.find_by_id(generation_job.record_id)
        assert record.generation_status == GenerationStatus.FAILED
        assert record.generation_error == "model overloaded"

    def test_compensation_failure_still_reraises_original(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
    ) -> None:
        records = MagicMock(wraps=store)
        records.delete.side_effect = RuntimeError("database unavailable")

        def update(record_id: Any, fields: dict[str, Any]) -> ContentRecord | None:
            if fields.get("generation_status") == GenerationStatus.FAILED:
                raise RuntimeError("database unavailable")
            return store.update(record_id, fields)

        records.update.side_effect = update
        worker = _worker(records, cache, fake_queue_manager, FakeGenerator(error=ValueError("bad output")))

        with pytest.raises(ValueError, match="bad output"):
            worker.process(generation_job)

    def test_mark_failed_policy_keeps_record(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
    ) -> None:
        worker = _worker(
            store,
            cache,
            fake_queue_manager,
            FakeGenerator(error=ExternalServiceError("OpenAI", "timeout")),
            failure_policy=FailurePolicy.MARK_FAILED,
        )

        with pytest.raises(ExternalServiceError):
            worker.process(generation_job)

        record = store.find_by_id(generation_job.record_id)
        assert record.generation_status == GenerationStatus.FAILED
        assert "timeout" in record.generation_error
        assert record.narration_status is None

    def test_slug_conflict_is_not_retryable(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        existing = store.create_placeholder("author-2")
        store.update(existing.id, {"slug": "green-tea-basics"})
        worker = _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content))

        with pytest.raises(ValidationError) as exc_info:
            worker.process(generation_job)

        assert exc_info.value.retryable is False
        assert store.find_by_id(generation_job.record_id) is None
        assert store.find_by_id(existing.id) is not None


class TestGenerationRetry:
    """Tests for attempts after a failure."""

    def test_missing_record_on_first_attempt(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        store.delete(generation_job.record_id)
        generator = FakeGenerator(generated_content)

        with pytest.raises(NotFoundError):
            _worker(store, cache, fake_queue_manager, generator).process(generation_job)

        assert generator.calls == []

    def test_retry_recreates_deleted_placeholder(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generation_job: GenerationJob,
        generated_content: GeneratedContent,
    ) -> None:
        failing = _worker(store, cache, fake_queue_manager, FakeGenerator(error=ExternalServiceError("OpenAI", "503")))
        with pytest.raises(ExternalServiceError):
            failing.process(generation_job, JobAttempt(number=1, max_attempts=3))
        assert store.find_by_id(generation_job.record_id) is None

        _worker(store, cache, fake_queue_manager, FakeGenerator(generated_content)).process(
            generation_job, JobAttempt(number=2, max_attempts=3)
        )

        record = store.find_by_id(generation_job.record_id)
        assert record.generation_status == GenerationStatus.COMPLETED
        assert record.author_id == "author-1"


class TestGenerationRedelivery:
    """Tests for a job delivered again after its record was generated."""

    def test_completed_record_is_left_untouched(
        self,
        store: SqlAlchemyRecordStore,
        cache: CacheService,
        fake_queue_manager: MagicMock,
        generated_record: ContentRecord,
        generation_params: GenerationParams,
    ) -> None:
        store.update(
            generated_record.id,
            {"narration_status": NarrationStatus.COMPLETED, "narration_url": "https://cdn.example.com/n.mp3"},
        )
        job = GenerationJob(record_id=generated_record.id, author_id="author-1", generation_params=generation_params)
        generator = FakeGenerator(error=RuntimeError("provider down"))
        worker = _worker(store, cache, fake_queue_manager, generator)

        result = worker.process(job, JobAttempt(number=1, max_attempts=3))

        record = store.find_by_id(generated_record.id)
        assert record is not None
        assert record.generation_status == GenerationStatus.COMPLETED
        assert record.narration_status == NarrationStatus.COMPLETED
        assert record.body == generated_record.body
        assert generator.calls == []
        fake_queue_manager.add_job.assert_not_called()
        assert result["skipped"] is True
        assert result["slug"] == "green-tea-basics"


class TestVoiceConfigFromParams:
    """Tests for deriving the narration voice."""

    def test_bare_language_keeps_default_region(self) -> None:
        voice = voice_config_from_params(GenerationParams(topic="Tea", language="en"), "en-US")
        assert voice.language_code == "en-US"
        assert voice.speaking_rate == 1.0

    def test_full_language_code_used_as_is(self) -> None:
        voice = voice_config_from_params(GenerationParams(topic="Chá", language="pt-BR"), "en-US")
        assert voice.language_code == "pt-BR"

    def test_other_bare_language(self) -> None:
        voice = voice_config_from_params(GenerationParams(topic="Tee", language="de"), "en-US")
        assert voice.language_code == "de"
