#!/usr/bin/env python3
"""
Worker startup script.
Starts one Celery worker process per queue and shuts them down in order.

Usage:
    python scripts/run_workers.py                          # All queues
    python scripts/run_workers.py --queues generation narration
    python scripts/run_workers.py --check                  # Broker check only
"""

import argparse
import logging
import signal
import sys
import time

from quillpress.core.config import get_settings
from quillpress.core.logging_setup import configure_logging
from quillpress.models.enums import QueueName
from quillpress.workers.queue_manager import QueueManager
from quillpress.workers.registry import WorkerRegistry

logger = logging.getLogger("quillpress.run_workers")


def main() -> int:
    parser = argparse.ArgumentParser(description="Start quillpress queue workers")
    parser.add_argument(
        "--queues", "-q",
        nargs="+",
        choices=[queue.value for queue in QueueName],
        default=[queue.value for queue in QueueName],
        help="Queues to consume (default: all queues)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check the broker connection and exit",
    )
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings)

    manager = QueueManager(settings)
    if not manager.initialize():
        logger.error(f"Cannot start workers: broker unavailable (REDIS_URL={settings.redis_url})")
        return 1
    if args.check:
        logger.info("Broker reachable")
        manager.shutdown()
        return 0

    registry = WorkerRegistry(manager, settings)
    workers = registry.start([QueueName(name) for name in args.queues])

    stopping = False

    def shutdown_all(signum, frame):
        nonlocal stopping
        stopping = True

    signal.signal(signal.SIGTERM, shutdown_all)
    signal.signal(signal.SIGINT, shutdown_all)

    while not stopping:
        dead = [worker for worker in workers if not worker.is_alive()]
        if dead:
            for worker in dead:
                logger.error(f"Worker for queue {worker.queue_name.value} exited unexpectedly")
            break
        time.sleep(1)

    logger.info("Shutting down workers...")
    manager.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
