"""
Per-process service objects for worker processes.

Each worker process builds one ``WorkerContext`` at start-up
(``worker_process_init``) and every job processor receives its
collaborators from it. Provider clients are built on first use so a
process serving only the email queue never needs speech or LLM keys.
"""

import logging
from functools import cached_property

from quillpress.cache import CacheService
from quillpress.core.config import Settings, get_settings
from quillpress.core.database import create_db_engine, create_session_factory
from quillpress.integrations.elevenlabs_client import ElevenLabsClient
from quillpress.integrations.email_client import EmailSender, get_email_sender
from quillpress.integrations.storage_client import StorageClient
from quillpress.records import SqlAlchemyRecordStore
from quillpress.services.content_generation import OpenAIContentGenerator
from quillpress.services.narration import NarrationService
from quillpress.workers.queue_manager import QueueManager

logger = logging.getLogger(__name__)


class WorkerContext:
    """Service objects shared by every job a worker process runs."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._engine = create_db_engine(settings.database_url)
        self.records = SqlAlchemyRecordStore(create_session_factory(self._engine))
        self.cache = CacheService.from_settings(settings)

    @cached_property
    def queue_manager(self) -> QueueManager:
        manager = QueueManager(self.settings)
        manager.initialize()
        return manager

    @cached_property
    def generator(self) -> OpenAIContentGenerator:
        return OpenAIContentGenerator(settings=self.settings)

    @cached_property
    def storage(self) -> StorageClient:
        return StorageClient(self.settings)

    @cached_property
    def narration(self) -> NarrationService:
        return NarrationService(ElevenLabsClient(settings=self.settings), self.storage, self.settings)

    @cached_property
    def email_sender(self) -> EmailSender:
        return get_email_sender(self.settings)

    def close(self) -> None:
        """Release connections held by the context."""
        if "queue_manager" in self.__dict__:
            self.queue_manager.shutdown()
        if "storage" in self.__dict__:
            self.storage.close()
        self.cache.disconnect()
        self._engine.dispose()


_context: WorkerContext | None = None


def init_worker_context(settings: Settings | None = None) -> WorkerContext:
    """Build this process's context, replacing any previous one."""
    global _context
    if _context is not None:
        _context.close()
    _context = WorkerContext(settings or get_settings())
    logger.info("Worker context initialized")
    return _context


def get_worker_context() -> WorkerContext:
    """The current process's context, built on first use outside a worker."""
    if _context is None:
        return init_worker_context()
    return _context


def close_worker_context() -> None:
    global _context
    if _context is not None:
        _context.close()
        _context = None
