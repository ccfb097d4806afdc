"""
Pydantic schemas for job payloads.

Every queue carries its own payload model. The ``queue`` field is the
discriminator, so a raw broker message parses into exactly one model and
the worker registry can dispatch on the type.
"""

from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from quillpress.models.enums import QueueName


class VoiceConfig(BaseModel):
    """
    Voice settings for speech synthesis.

    Attributes:
        language_code: BCP-47 language code of the narration
        voice_id: Provider voice identifier (None uses the default voice)
        speaking_rate: Relative speaking rate, 1.0 is normal
        pitch: Pitch adjustment in semitones (not every provider supports it)
    """

    language_code: str = Field(default="en-US", description="BCP-47 language code")
    voice_id: str | None = Field(default=None, description="Provider voice identifier")
    speaking_rate: float = Field(default=1.0, gt=0, le=4.0, description="Speaking rate")
    pitch: float = Field(default=0.0, ge=-20.0, le=20.0, description="Pitch in semitones")


class GenerationParams(BaseModel):
    """
    Prompt inputs for content generation.

    Attributes:
        topic: Subject of the article
        language: Output language
        tone: Writing tone
        audience: Target audience
        intent: Search intent the article should satisfy
        country: Target country for localisation
        keywords: Keywords to work into the article
        category: Category label, copied to the record
        template: Template body for template-based generation
        template_parameters: Values substituted into the template
        image_count: Number of images to generate (0 disables)
        voice_id: Narration voice override
        speaking_rate: Narration rate override
    """

    model_config = ConfigDict(extra="allow")

    topic: str = Field(min_length=1, max_length=500, description="Subject of the article")
    language: str = Field(default="en", description="Output language")
    tone: str = Field(default="informative", description="Writing tone")
    audience: str | None = None
    intent: str | None = None
    country: str | None = None
    keywords: list[str] = Field(default_factory=list)
    category: str | None = None
    template: str | None = Field(default=None, description="Template body")
    template_parameters: dict[str, Any] = Field(default_factory=dict)
    image_count: int = Field(default=1, ge=0, le=8)
    voice_id: str | None = None
    speaking_rate: float | None = Field(default=None, gt=0, le=4.0)


class GenerationJob(BaseModel):
    """
    Payload for the generation queue.

    Attributes:
        record_id: Placeholder record to fill
        author_id: Owner of the record
        generation_params: Prompt inputs
        is_template_based: Use the template prompt instead of free-form
    """

    queue: Literal[QueueName.GENERATION] = QueueName.GENERATION
    record_id: UUID
    author_id: str = Field(min_length=1)
    generation_params: GenerationParams
    is_template_based: bool = False

    @field_validator("is_template_based")
    @classmethod
    def _template_required(cls, value: bool, info: Any) -> bool:
        params = info.data.get("generation_params")
        if value and params is not None and not params.template:
            raise ValueError("template-based generation requires generation_params.template")
        return value


class NarrationJob(BaseModel):
    """
    Payload for the narration queue.

    Attributes:
        record_id: Record whose body is narrated
        text: Raw text, may contain markup
        voice_config: Voice settings (None uses configured defaults)
    """

    queue: Literal[QueueName.NARRATION] = QueueName.NARRATION
    record_id: UUID
    text: str = Field(min_length=1)
    voice_config: VoiceConfig | None = None


class EmailJob(BaseModel):
    """Payload for the email queue."""

    queue: Literal[QueueName.EMAIL] = QueueName.EMAIL
    to: str = Field(min_length=3)
    subject: str
    text: str = ""
    html: str = ""


class ImageUploadJob(BaseModel):
    """
    Payload for the image-upload queue.

    Attributes:
        record_id: Record the images belong to
        image_sources: URLs or local file paths
        upload_path: Destination prefix in the bucket
    """

    queue: Literal[QueueName.IMAGE_UPLOAD] = QueueName.IMAGE_UPLOAD
    record_id: UUID
    image_sources: list[str] = Field(min_length=1)
    upload_path: str = Field(min_length=1)


JobPayload = Annotated[
    GenerationJob | NarrationJob | EmailJob | ImageUploadJob,
    Field(discriminator="queue"),
]

_payload_adapter: TypeAdapter[JobPayload] = TypeAdapter(JobPayload)


def parse_job_payload(data: dict[str, Any]) -> JobPayload:
    """
    Parse a raw broker message into its typed payload.

    Raises:
        pydantic.ValidationError: If the message matches no payload model
    """
    return _payload_adapter.validate_python(data)
