"""
Image upload worker: copy a batch of images into object storage.

Individual failures are warnings. The job fails only when nothing could be
uploaded, so a retry has a chance of doing better.
"""

import logging
from typing import Any

from quillpress.core.exceptions import ExternalServiceError
from quillpress.schemas.jobs import ImageUploadJob
from quillpress.workers.generation import MediaUploader
from quillpress.workers.options import JobAttempt

logger = logging.getLogger(__name__)


class ImageUploadWorker:
    """Processor for the image-upload queue."""

    def __init__(self, storage: MediaUploader) -> None:
        self._storage = storage

    def process(self, job: ImageUploadJob, attempt: JobAttempt | None = None) -> dict[str, Any]:
        attempt = attempt or JobAttempt()
        record_id = str(job.record_id)

        summary = self._storage.upload_sources(job.image_sources, job.upload_path)
        for source, error in summary.errors.items():
            logger.warning(
                "Image upload failed",
                extra={"record_id": record_id, "source": source, "error": error},
            )

        if not summary.uploaded:
            raise ExternalServiceError(
                service="storage",
                message=f"No images uploaded for record {record_id}",
                original_error="; ".join(summary.errors.values()),
            )

        logger.info(
            f"Uploaded {len(summary.uploaded)}/{len(job.image_sources)} images for record {record_id}",
            extra={"record_id": record_id, "attempt": attempt.number},
        )
        return {
            "record_id": record_id,
            "uploaded_urls": summary.uploaded_urls,
            "errors": summary.errors,
        }
