"""
Text preparation for speech synthesis.

``sanitize_for_speech`` strips markup that should not be read aloud.
``split_into_chunks`` cuts the result into pieces whose UTF-8 encoding fits
the provider's per-request byte limit, preferring sentence boundaries, then
word boundaries, and truncating only a single word longer than the limit.
"""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHUNK_BYTES = 4500
ELLIPSIS = "..."

_FENCED_CODE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE = re.compile(r"`([^`]*)`")
_MD_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_MD_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_HTML_TAG = re.compile(r"<[^>]*>")
_MD_HEADER = re.compile(r"^[ \t]*#{1,6}[ \t]*", re.MULTILINE)
_MD_BOLD = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)
_MD_ITALIC = re.compile(r"\*(.*?)\*", re.DOTALL)
_BLANK_RUNS = re.compile(r"\n\s*\n\s*\n")
_SPACE_RUNS = re.compile(r"[ \t]+")

# A sentence is a run of non-terminators followed by terminators; the
# trailing alternative keeps text after the last terminator.
_SENTENCE = re.compile(r"[^.!?]*[.!?]+|[^.!?]+$")


@dataclass(frozen=True)
class TextChunk:
    """One synthesis request worth of text and its position in the output."""

    index: int
    text: str

    @property
    def byte_length(self) -> int:
        return utf8_len(self.text)


def utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


def sanitize_for_speech(text: str) -> str:
    """
    Strip HTML and Markdown so only readable prose remains.

    Link text is kept; images and fenced code blocks are dropped entirely;
    inline code keeps its content.
    """
    clean = _FENCED_CODE.sub("", text)
    clean = _INLINE_CODE.sub(r"\1", clean)
    clean = _MD_IMAGE.sub("", clean)
    clean = _MD_LINK.sub(r"\1", clean)
    clean = _HTML_TAG.sub(" ", clean)
    clean = _MD_HEADER.sub("", clean)
    clean = _MD_BOLD.sub(r"\1", clean)
    clean = _MD_ITALIC.sub(r"\1", clean)
    clean = _BLANK_RUNS.sub("\n\n", clean)
    clean = _SPACE_RUNS.sub(" ", clean)
    return clean.strip()


def truncate_to_bytes(text: str, max_bytes: int, marker: str = ELLIPSIS) -> str:
    """
    Shorten ``text`` so that ``text + marker`` fits in ``max_bytes``.

    Never splits a multi-byte character.
    """
    if utf8_len(text) <= max_bytes:
        return text
    budget = max_bytes - utf8_len(marker)
    encoded = text.encode("utf-8")[:budget]
    return encoded.decode("utf-8", errors="ignore") + marker


def split_sentences(text: str) -> list[str]:
    return [match.group(0).strip() for match in _SENTENCE.finditer(text) if match.group(0).strip()]


def _pack_words(sentence: str, max_bytes: int) -> list[str]:
    """Greedy word packing for a sentence longer than the limit."""
    pieces: list[str] = []
    current = ""
    for word in sentence.split():
        if utf8_len(word) > max_bytes:
            if current:
                pieces.append(current)
                current = ""
            logger.warning(
                "Word exceeds synthesis byte limit, truncating",
                extra={"word_bytes": utf8_len(word), "max_bytes": max_bytes},
            )
            pieces.append(truncate_to_bytes(word, max_bytes))
            continue

        candidate = f"{current} {word}" if current else word
        if utf8_len(candidate) <= max_bytes:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


def split_into_chunks(text: str, max_bytes: int = DEFAULT_MAX_CHUNK_BYTES) -> list[TextChunk]:
    """
    Split text into ordered chunks of at most ``max_bytes`` UTF-8 bytes.

    Sentences are packed greedily, joined by a single space. A sentence over
    the limit is packed word by word; a single word over the limit is
    truncated with an ellipsis. Whitespace-only input yields no chunks;
    any other input yields at least one.
    """
    if max_bytes <= utf8_len(ELLIPSIS):
        raise ValueError(f"max_bytes must exceed {utf8_len(ELLIPSIS)}")

    text = text.strip()
    if not text:
        return []
    if utf8_len(text) <= max_bytes:
        return [TextChunk(index=0, text=text)]

    pieces: list[str] = []
    current = ""
    for sentence in split_sentences(text):
        if utf8_len(sentence) > max_bytes:
            if current:
                pieces.append(current)
                current = ""
            pieces.extend(_pack_words(sentence, max_bytes))
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if utf8_len(candidate) <= max_bytes:
            current = candidate
        else:
            pieces.append(current)
            current = sentence
    if current:
        pieces.append(current)

    return [TextChunk(index=i, text=piece) for i, piece in enumerate(pieces)]
