"""
Content record persistence.
"""

from quillpress.records.store import RecordStore, SqlAlchemyRecordStore

__all__ = ["RecordStore", "SqlAlchemyRecordStore"]
