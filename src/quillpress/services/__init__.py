"""
Business logic services used by the workers.

- Content generation: LLM article drafting and image generation
- Text chunking: speech sanitising and byte-bounded chunking
- Narration: chunked synthesis, concatenation and upload
"""

from quillpress.services.content_generation import (
    ArticleDraft,
    ContentGenerator,
    OpenAIContentGenerator,
    render_template,
    slugify,
)
from quillpress.services.narration import (
    NarrationResult,
    NarrationService,
    concatenate_audio,
)
from quillpress.services.text_chunking import (
    DEFAULT_MAX_CHUNK_BYTES,
    TextChunk,
    sanitize_for_speech,
    split_into_chunks,
)

__all__ = [
    # Content generation
    "ArticleDraft",
    "ContentGenerator",
    "OpenAIContentGenerator",
    "render_template",
    "slugify",
    # Narration
    "NarrationResult",
    "NarrationService",
    "concatenate_audio",
    # Text chunking
    "DEFAULT_MAX_CHUNK_BYTES",
    "TextChunk",
    "sanitize_for_speech",
    "split_into_chunks",
]
