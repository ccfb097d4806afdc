"""
ContentRecord model: the durable entity produced by the generation pipeline.

A record carries two independent state fields. ``generation_status`` moves
pending -> processing -> completed | failed. ``narration_status`` stays NULL
until generation has completed and then moves processing -> completed | failed.
"""

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from quillpress.models.base import Base, JSONType, TimestampMixin
from quillpress.models.enums import GenerationStatus, NarrationStatus


class ContentRecord(Base, TimestampMixin):
    """
    A generated article.

    Attributes:
        id: Unique identifier (UUID)
        author_id: Owner of the record
        title: Generated title
        slug: URL-friendly identifier, unique when set
        seo_title: Search title
        seo_description: Search description
        body: Generated body (markdown/HTML)
        images: Uploaded media URLs, primary first (JSON list)
        is_template_based: Whether generation used a template
        generation_status: Generation lifecycle state
        generation_error: Last generation error message
        narration_status: Narration lifecycle state (NULL when never requested)
        narration_url: Public URL of the narration audio
        narration_error: Last narration error message
    """

    __tablename__ = "content_records"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    author_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    slug: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        unique=True,
        doc="URL-friendly identifier",
    )
    seo_title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    seo_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    images: Mapped[list[Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=list,
        doc="JSON: uploaded media URLs, primary first",
    )
    is_template_based: Mapped[bool] = mapped_column(default=False, nullable=False)

    generation_status: Mapped[GenerationStatus] = mapped_column(
        Enum(
            GenerationStatus,
            name="generation_status",
            native_enum=False,
            length=32,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=GenerationStatus.PENDING,
        index=True,
    )
    generation_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    narration_status: Mapped[NarrationStatus | None] = mapped_column(
        Enum(
            NarrationStatus,
            name="narration_status",
            native_enum=False,
            length=32,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
        default=None,
    )
    narration_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    narration_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ContentRecord(id={self.id}, slug={self.slug!r}, "
            f"generation={self.generation_status}, narration={self.narration_status})>"
        )
