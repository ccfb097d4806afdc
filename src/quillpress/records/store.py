"""
Record store: find, update and delete content records.

Workers only depend on the ``RecordStore`` protocol; the SQLAlchemy
implementation opens one short transaction per call so no session or lock
is held across a provider call.
"""

import logging
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from quillpress.core.database import session_scope
from quillpress.core.exceptions import ValidationError
from quillpress.models import ContentRecord, GenerationStatus

logger = logging.getLogger(__name__)

# Columns a worker may write through ``update``
UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "slug",
        "seo_title",
        "seo_description",
        "body",
        "images",
        "generation_status",
        "generation_error",
        "narration_status",
        "narration_url",
        "narration_error",
    }
)


class RecordStore(Protocol):
    """Interface the workers use to read and mutate content records."""

    def find_by_id(self, record_id: UUID | str) -> ContentRecord | None: ...

    def create_placeholder(
        self,
        author_id: str,
        is_template_based: bool = False,
        record_id: UUID | None = None,
    ) -> ContentRecord: ...

    def update(self, record_id: UUID | str, fields: dict[str, Any]) -> ContentRecord | None: ...

    def delete(self, record_id: UUID | str) -> bool: ...


def _as_uuid(record_id: UUID | str) -> UUID:
    return record_id if isinstance(record_id, UUID) else UUID(str(record_id))


class SqlAlchemyRecordStore:
    """
    SQLAlchemy-backed record store.

    Every method is a single idempotent write or read in its own
    transaction. Returned records are detached snapshots.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def find_by_id(self, record_id: UUID | str) -> ContentRecord | None:
        with session_scope(self._session_factory) as db:
            return db.get(ContentRecord, _as_uuid(record_id))

    def find_by_slug(self, slug: str) -> ContentRecord | None:
        with session_scope(self._session_factory) as db:
            return db.scalars(select(ContentRecord).where(ContentRecord.slug == slug)).first()

    def create_placeholder(
        self,
        author_id: str,
        is_template_based: bool = False,
        record_id: UUID | None = None,
    ) -> ContentRecord:
        """Insert an empty record in ``pending`` generation state."""
        record = ContentRecord(
            author_id=author_id,
            is_template_based=is_template_based,
            generation_status=GenerationStatus.PENDING,
            images=[],
        )
        if record_id is not None:
            record.id = record_id
        with session_scope(self._session_factory) as db:
            db.add(record)
            db.flush()
            logger.info(f"Created placeholder record {record.id}", extra={"author_id": author_id})
            return record

    def update(self, record_id: UUID | str, fields: dict[str, Any]) -> ContentRecord | None:
        """
        Apply ``fields`` to a record.

        Returns:
            The updated record, or None if it does not exist

        Raises:
            ValidationError: Unknown field or unique constraint violation
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )

        try:
            with session_scope(self._session_factory) as db:
                record = db.get(ContentRecord, _as_uuid(record_id))
                if record is None:
                    logger.warning(f"Record {record_id} not found for update")
                    return None
                for name, value in fields.items():
                    setattr(record, name, value)
                db.flush()
                return record
        except IntegrityError as e:
            raise ValidationError(
                f"Record {record_id} update violates a constraint",
                details={"original_error": str(e.orig)},
            ) from e

    def delete(self, record_id: UUID | str) -> bool:
        """Delete a record. Deleting a missing record returns False."""
        with session_scope(self._session_factory) as db:
            result = db.execute(delete(ContentRecord).where(ContentRecord.id == _as_uuid(record_id)))
            deleted = result.rowcount > 0
        if deleted:
            logger.info(f"Deleted record {record_id}")
        return deleted
