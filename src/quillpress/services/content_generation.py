"""
Content generation service.

Turns generation parameters into a complete article with OpenAI structured
output, then optionally generates images for it. Free-form and
template-based prompts share the same output model.
"""

import logging
import re
import unicodedata
from string import Formatter
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from quillpress.core.config import Settings, get_settings
from quillpress.core.exceptions import ValidationError
from quillpress.integrations.openai_client import OpenAIClient
from quillpress.schemas.content import GeneratedContent
from quillpress.schemas.jobs import GenerationParams

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models for Structured Output
# =============================================================================


class ArticleDraft(BaseModel):
    """Article as returned by the language model."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(description="Article title, under 70 characters")
    seo_title: str = Field(description="Search result title, under 60 characters")
    seo_description: str = Field(description="Meta description, under 160 characters")
    body: str = Field(description="Full article in Markdown, with ## section headings")
    image_prompt: str = Field(
        description="One-sentence prompt for a header illustration, no text in the image"
    )


class ContentGenerator(Protocol):
    """Anything that can turn a generation request into content."""

    def generate(self, params: GenerationParams, is_template_based: bool) -> GeneratedContent: ...


def slugify(value: str, max_length: int = 120) -> str:
    """ASCII, lowercase, hyphen separated."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = re.sub(r"[^\w\s-]", "", value.lower())
    value = re.sub(r"[-\s_]+", "-", value).strip("-")
    return value[:max_length].rstrip("-") or "article"


def render_template(template: str, parameters: dict[str, Any]) -> str:
    """
    Substitute ``{name}`` placeholders.

    Raises:
        ValidationError: If a placeholder has no value
    """
    names = {name for _, name, _, _ in Formatter().parse(template) if name}
    missing = sorted(names - set(parameters))
    if missing:
        raise ValidationError(
            f"Template parameters missing: {', '.join(missing)}",
            field="template_parameters",
        )
    return template.format(**parameters)


class OpenAIContentGenerator:
    """
    Article generator backed by OpenAI.

    Example:
        ```python
        generator = OpenAIContentGenerator()
        content = generator.generate(GenerationParams(topic="Green tea"), False)
        ```
    """

    def __init__(
        self,
        openai_client: OpenAIClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._openai = openai_client or OpenAIClient(settings=self._settings)

    def _build_system_prompt(self, params: GenerationParams) -> str:
        audience = f"\nTarget audience: {params.audience}" if params.audience else ""
        country = f"\nTarget country: {params.country}" if params.country else ""
        return f"""You are an experienced blog writer and SEO editor.

## Writing Rules
Language: {params.language}
Tone: {params.tone}{audience}{country}

- Open with a paragraph that states what the reader will learn
- Use ## headings for sections and short paragraphs
- Prefer concrete examples over generic claims
- Do not invent statistics or quotes
- Return only the requested JSON fields"""

    def _build_prompt(self, params: GenerationParams, is_template_based: bool) -> str:
        if is_template_based:
            if not params.template:
                raise ValidationError("Template body is required", field="template")
            rendered = render_template(params.template, params.template_parameters)
            return f"""Write a blog post about "{params.topic}" that follows this template exactly.
Replace the guidance in each section with finished prose.

--- TEMPLATE ---
{rendered}
--- END TEMPLATE ---"""

        lines = [f'Write a complete blog post about "{params.topic}".']
        if params.intent:
            lines.append(f"Search intent to satisfy: {params.intent}")
        if params.keywords:
            lines.append(f"Work in these keywords naturally: {', '.join(params.keywords)}")
        return "\n".join(lines)

    def generate(self, params: GenerationParams, is_template_based: bool = False) -> GeneratedContent:
        """
        Generate an article and its images.

        Raises:
            ValidationError: Invalid template or parameters (not retryable)
            ExternalServiceError: OpenAI failure
        """
        logger.info(
            "Generating article",
            extra={"topic": params.topic[:100], "template": is_template_based},
        )

        draft, usage = self._openai.complete_with_schema(
            messages=[{"role": "user", "content": self._build_prompt(params, is_template_based)}],
            response_model=ArticleDraft,
            system_message=self._build_system_prompt(params),
            temperature=0.7,
            max_tokens=4000,
        )

        image_urls: list[str] = []
        if params.image_count:
            image_urls = self._openai.generate_images(draft.image_prompt, count=params.image_count)

        logger.info(
            "Article generated",
            extra={
                "title": draft.title,
                "total_tokens": usage.total_tokens,
                "image_count": len(image_urls),
            },
        )

        return GeneratedContent(
            title=draft.title,
            slug=slugify(draft.title),
            seo_title=draft.seo_title,
            seo_description=draft.seo_description,
            body=draft.body,
            media_source_refs=image_urls,
            primary_media_index=0,
        )
