"""
Pytest configuration and fixtures for quillpress tests.

Provides an in-memory record store, an in-memory cache, settings without a
broker, and fake collaborators for the worker stage machines. No network,
broker or database server is needed.
"""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine
from sqlalchemy.pool import StaticPool

# Set test environment before importing the package
os.environ["ENVIRONMENT"] = "development"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ["CACHE_TYPE"] = "memory"
os.environ["OPENAI_API_KEY"] = "sk-test-key"
os.environ["ELEVENLABS_API_KEY"] = "el-test-key"
os.environ["S3_ACCESS_KEY"] = "test"
os.environ["S3_SECRET_KEY"] = "test"

from quillpress.cache import CacheService, MemoryCache
from quillpress.core.config import Settings
from quillpress.core.database import create_db_engine, create_session_factory, init_db
from quillpress.models import ContentRecord, GenerationStatus
from quillpress.models.enums import JobState, QueueName
from quillpress.records import SqlAlchemyRecordStore
from quillpress.schemas.content import GeneratedContent, JobHandle, UploadSummary
from quillpress.schemas.jobs import GenerationJob, GenerationParams, VoiceConfig


@pytest.fixture
def settings() -> Settings:
    """Settings with no broker configured."""
    return Settings(_env_file=None, database_url="sqlite://", redis_url=None)


@pytest.fixture
def broker_settings() -> Settings:
    """Settings pointing at a broker (never contacted by the tests)."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        redis_url="redis://localhost:6379/15",
    )


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """A fresh in-memory SQLite database per test."""
    engine = create_db_engine("sqlite://", poolclass=StaticPool)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine: Engine) -> SqlAlchemyRecordStore:
    return SqlAlchemyRecordStore(create_session_factory(engine))


@pytest.fixture
def cache() -> CacheService:
    return CacheService(MemoryCache(), cache_type="memory")


@pytest.fixture
def placeholder(store: SqlAlchemyRecordStore) -> ContentRecord:
    """A pending record as created by a producer."""
    return store.create_placeholder("author-1")


@pytest.fixture
def generated_record(store: SqlAlchemyRecordStore) -> ContentRecord:
    """A record whose generation has completed."""
    record = store.create_placeholder("author-1")
    return store.update(
        record.id,
        {
            "title": "Green Tea Basics",
            "slug": "green-tea-basics",
            "body": "Green tea is brewed cooler than black tea. Steep it briefly.",
            "images": ["https://cdn.example.com/a.png"],
            "generation_status": GenerationStatus.COMPLETED,
        },
    )


@pytest.fixture
def generation_params() -> GenerationParams:
    return GenerationParams(topic="Green tea", language="en", voice_id="voice-1", speaking_rate=1.1)


@pytest.fixture
def generation_job(placeholder: ContentRecord, generation_params: GenerationParams) -> GenerationJob:
    return GenerationJob(
        record_id=placeholder.id,
        author_id="author-1",
        generation_params=generation_params,
    )


@pytest.fixture
def generated_content() -> GeneratedContent:
    return GeneratedContent(
        title="Green Tea Basics",
        slug="green-tea-basics",
        seo_title="Green Tea Basics | Guide",
        seo_description="How to brew green tea.",
        body="# Green Tea\n\nGreen tea is brewed **cooler** than black tea. Steep it briefly.",
        media_source_refs=["https://img.example.com/primary.png", "https://img.example.com/extra.png"],
        primary_media_index=0,
    )


class FakeGenerator:
    """Content generator returning canned content or raising."""

    def __init__(self, content: GeneratedContent | None = None, error: Exception | None = None):
        self.content = content
        self.error = error
        self.calls: list[tuple[GenerationParams, bool]] = []

    def generate(self, params: GenerationParams, is_template_based: bool) -> GeneratedContent:
        self.calls.append((params, is_template_based))
        if self.error is not None:
            raise self.error
        assert self.content is not None
        return self.content


class FakeStorage:
    """Uploader that succeeds for every source except those in ``failing``."""

    def __init__(self, failing: dict[str, str] | None = None):
        self.failing = failing or {}
        self.calls: list[tuple[list[str], str]] = []
        self.uploads: list[tuple[bytes, str, str, str | None]] = []

    def upload_sources(self, sources: list[str], destination_path: str) -> UploadSummary:
        self.calls.append((sources, destination_path))
        summary = UploadSummary()
        for i, source in enumerate(sources):
            if source in self.failing:
                summary.errors[source] = self.failing[source]
            else:
                summary.uploaded[source] = f"https://cdn.example.com/{destination_path}/{i}.png"
        return summary

    def upload_bytes(
        self,
        data: bytes,
        destination_path: str,
        extension: str,
        content_type: str | None = None,
    ) -> str:
        self.uploads.append((data, destination_path, extension, content_type))
        return f"https://cdn.example.com/{destination_path}/narration.{extension}"


class FakeSynthesizer:
    """Speech synthesizer that encodes the chunk index into its audio."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[tuple[str, VoiceConfig]] = []

    def synthesize(self, text: str, voice_config: VoiceConfig) -> bytes:
        self.calls.append((text, voice_config))
        if self.error is not None:
            raise self.error
        return f"<audio:{len(self.calls) - 1}:{len(text)}>".encode()


@pytest.fixture
def fake_queue_manager() -> MagicMock:
    """Queue manager whose add_job returns a queued handle."""
    manager = MagicMock()

    def add_job(queue_name: QueueName, payload: Any, options: Any = None) -> JobHandle:
        return JobHandle(id="job-1", queue=QueueName(queue_name), state=JobState.QUEUED)

    manager.add_job.side_effect = add_job
    return manager
