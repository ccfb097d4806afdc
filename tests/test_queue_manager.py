"""
Tests for the queue manager (without a real broker).
"""

import logging
from typing import Any
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from celery import states
from kombu.exceptions import OperationalError

from quillpress.core.config import Settings
from quillpress.core.exceptions import QueueUnavailableError, ValidationError
from quillpress.models.enums import JobState, QueueName
from quillpress.schemas.jobs import EmailJob, NarrationJob
from quillpress.workers.queue_manager import QueueManager


class FakeBroker:
    """Records what the manager sends instead of talking to Redis."""

    def __init__(self, reachable: bool = True) -> None:
        self.reachable = reachable
        self.sent: list[dict[str, Any]] = []
        self.revoked: list[str] = []
        self.closed = False
        self.results: dict[str, MagicMock] = {}

    def ping(self) -> bool:
        return self.reachable

    def send(self, queue: str, kwargs: dict[str, Any], task_id: str, countdown: float | None = None) -> None:
        self.sent.append({"queue": queue, "kwargs": kwargs, "task_id": task_id, "countdown": countdown})

    def fetch(self, task_id: str) -> MagicMock:
        return self.results[task_id]

    def revoke(self, task_id: str) -> None:
        self.revoked.append(task_id)

    def close(self) -> None:
        self.closed = True


class FakeWorker:
    def __init__(self, queue_name: QueueName, manager: QueueManager, log: list[str]) -> None:
        self.queue_name = queue_name
        self._manager = manager
        self._log = log

    def close(self) -> None:
        # Queues must still be open while a worker drains
        assert not any(queue.closed for queue in self._manager.queues.values())
        self._log.append(f"worker:{self.queue_name.value}")


@pytest.fixture
def broker() -> FakeBroker:
    return FakeBroker()


@pytest.fixture
def manager(broker_settings: Settings, broker: FakeBroker) -> QueueManager:
    manager = QueueManager(broker_settings, broker_factory=lambda _: broker)
    manager.initialize()
    return manager


def _email() -> EmailJob:
    return EmailJob(to="reader@example.com", subject="Welcome", text="Hi")


class TestInitialize:
    """Tests for queue manager start-up."""

    def test_no_broker_configured_add_job_raises(self, settings: Settings) -> None:
        """Without a broker, add_job fails loudly instead of dropping the job."""
        factory = MagicMock()
        manager = QueueManager(settings, broker_factory=factory)

        assert manager.initialize() is False
        assert manager.is_available() is False
        factory.assert_not_called()
        with pytest.raises(QueueUnavailableError):
            manager.add_job(QueueName.EMAIL, _email())

    def test_add_job_before_initialize_raises(self, broker_settings: Settings) -> None:
        manager = QueueManager(broker_settings, broker_factory=lambda _: FakeBroker())
        with pytest.raises(QueueUnavailableError, match="not initialized"):
            manager.add_job(QueueName.EMAIL, _email())

    def test_unreachable_broker_marks_unavailable(self, broker_settings: Settings) -> None:
        broker = FakeBroker(reachable=False)
        manager = QueueManager(broker_settings, broker_factory=lambda _: broker)

        assert manager.initialize() is False
        assert broker.closed is True
        with pytest.raises(QueueUnavailableError):
            manager.add_job(QueueName.EMAIL, _email())

    def test_creates_every_queue(self, manager: QueueManager) -> None:
        assert set(manager.queues) == set(QueueName)
        assert manager.is_available() is True

    def test_second_initialize_warns_and_keeps_queues(
        self,
        broker_settings: Settings,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        factory = MagicMock(return_value=FakeBroker())
        manager = QueueManager(broker_settings, broker_factory=factory)
        manager.initialize()
        queues = manager.queues

        with caplog.at_level(logging.WARNING):
            assert manager.initialize() is True

        assert "already initialized" in caplog.text
        factory.assert_called_once()
        assert manager.queues == queues

    def test_create_queue_default_options(self, manager: QueueManager) -> None:
        options = manager.create_queue("narration").default_options

        assert options.attempts == 3
        assert options.backoff.type == "exponential"
        assert options.backoff.delay == 2.0
        assert options.retention.completed_age == 3600
        assert options.retention.completed_count == 100
        assert options.retention.failed_age == 86400


class TestAddJob:
    """Tests for enqueueing."""

    def test_sends_payload_and_options(self, manager: QueueManager, broker: FakeBroker) -> None:
        handle = manager.add_job(QueueName.EMAIL, _email())

        assert handle.state == JobState.QUEUED
        assert handle.queue == QueueName.EMAIL
        assert handle.created_at is not None

        sent = broker.sent[0]
        assert sent["queue"] == "email"
        assert sent["task_id"] == handle.id
        assert sent["kwargs"]["payload"]["queue"] == "email"
        assert sent["kwargs"]["payload"]["to"] == "reader@example.com"
        assert sent["kwargs"]["job_options"]["attempts"] == 3

    def test_option_overrides(self, manager: QueueManager, broker: FakeBroker) -> None:
        handle = manager.add_job(QueueName.EMAIL, _email(), {"job_id": "welcome-1", "delay": 30})

        assert handle.id == "welcome-1"
        assert broker.sent[0]["countdown"] == 30

    def test_payload_serialized_as_json(self, manager: QueueManager, broker: FakeBroker) -> None:
        record_id = uuid4()
        manager.add_job(QueueName.NARRATION, NarrationJob(record_id=record_id, text="Hello."))
        assert broker.sent[0]["kwargs"]["payload"]["record_id"] == str(record_id)

    def test_rejects_payload_for_another_queue(self, manager: QueueManager) -> None:
        with pytest.raises(ValidationError):
            manager.add_job(QueueName.GENERATION, _email())

    def test_broker_error_surfaces_as_unavailable(self, manager: QueueManager, broker: FakeBroker) -> None:
        broker.send = MagicMock(side_effect=OperationalError("connection refused"))
        with pytest.raises(QueueUnavailableError):
            manager.add_job(QueueName.EMAIL, _email())


class TestJobLookup:
    """Tests for get_job and remove_job."""

    def test_get_completed_job(self, manager: QueueManager, broker: FakeBroker) -> None:
        broker.results["j1"] = MagicMock(state=states.SUCCESS, result={"ok": True}, date_done=None, retries=1)

        handle = manager.get_job(QueueName.EMAIL, "j1")

        assert handle is not None
        assert handle.state == JobState.COMPLETED
        assert handle.result == {"ok": True}
        assert handle.attempts == 2

    @pytest.mark.parametrize(
        ("state", "expected"),
        [
            (states.PENDING, JobState.QUEUED),
            (states.STARTED, JobState.ACTIVE),
            (states.RETRY, JobState.ACTIVE),
            (states.FAILURE, JobState.FAILED),
            (states.REVOKED, JobState.FAILED),
        ],
    )
    def test_state_mapping(self, manager: QueueManager, broker: FakeBroker, state: str, expected: JobState) -> None:
        broker.results["j"] = MagicMock(state=state, result=None, date_done=None, retries=0)
        assert manager.get_job("email", "j").state == expected

    def test_get_job_without_broker(self, settings: Settings) -> None:
        manager = QueueManager(settings)
        manager.initialize()
        assert manager.get_job(QueueName.EMAIL, "j1") is None

    def test_remove_job_revokes(self, manager: QueueManager, broker: FakeBroker) -> None:
        assert manager.remove_job(QueueName.EMAIL, "j1") is True
        assert broker.revoked == ["j1"]


class TestShutdown:
    """Tests for ordered shutdown."""

    def test_closes_workers_before_queues(self, manager: QueueManager, broker: FakeBroker) -> None:
        log: list[str] = []
        for name in (QueueName.GENERATION, QueueName.NARRATION):
            manager.register_worker(FakeWorker(name, manager, log))

        manager.shutdown()

        assert log == ["worker:generation", "worker:narration"]
        assert all(queue.closed for queue in manager.queues.values())
        assert broker.closed is True

    def test_stops_accepting_jobs(self, manager: QueueManager) -> None:
        manager.shutdown()

        assert manager.is_available() is False
        with pytest.raises(QueueUnavailableError):
            manager.add_job(QueueName.EMAIL, _email())

    def test_worker_close_error_does_not_stop_shutdown(self, manager: QueueManager) -> None:
        failing = MagicMock(queue_name=QueueName.EMAIL)
        failing.close.side_effect = RuntimeError("stuck")
        log: list[str] = []
        manager.register_worker(failing)
        manager.register_worker(FakeWorker(QueueName.NARRATION, manager, log))

        manager.shutdown()

        assert log == ["worker:narration"]
        assert all(queue.closed for queue in manager.queues.values())
