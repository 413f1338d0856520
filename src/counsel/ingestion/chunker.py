"""Document chunking tuned for legal text.

Splits normalised document text into overlapping, bounded chunks. Break
points prefer section headers, then paragraph breaks, line breaks, sentence
ends and finally spaces, searched in the last 30% of each window. Chunking
is deterministic: the same text and options always produce the same
boundaries.
"""

from __future__ import annotations

import math
import re

from counsel.schemas import TextChunk


DEFAULT_MAX_CHARS = 1500
DEFAULT_OVERLAP_CHARS = 200
DEFAULT_MIN_CHARS = 100

BREAK_SEARCH_FRACTION = 0.7

_SECTION_BREAK = re.compile(r"\n(?=\d+\.\s|[A-Z]{2,}|#{1,3}\s|ARTICLE|SECTION|SCHEDULE|PART)")
_SENTENCE_END = re.compile(r"[.!?]\s+")
_LEGAL_SECTION_SPLIT = re.compile(
    r"\n(?=(?:ARTICLE|SECTION|SCHEDULE|PART|EXHIBIT)\s+[A-Z0-9]+|\d+\.\s+[A-Z])",
    re.IGNORECASE,
)

_NUMBERED_HEADER = re.compile(r"^(\d+\.?\d*\.?\s*.{0,50})")
_MARKDOWN_HEADER = re.compile(r"^#{1,3}\s+(.+)")
_LEGAL_HEADER = re.compile(r"^(ARTICLE|SECTION|SCHEDULE|PART|EXHIBIT)\s+[A-Z0-9]+", re.IGNORECASE)


def clean_text(text: str) -> str:
    """Normalise line endings and whitespace, keeping paragraph structure."""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def estimate_tokens(text: str) -> int:
    """Rough token estimate (~4 characters per token for English)."""

    return math.ceil(len(text) / 4)


def detect_section_header(content: str) -> str | None:
    """Detect a section header within the first three lines of a chunk."""

    for line in content.split("\n")[:3]:
        trimmed = line.strip()

        numbered = _NUMBERED_HEADER.match(trimmed)
        if numbered and len(trimmed) < 100:
            return numbered.group(1).strip()

        if trimmed == trimmed.upper() and 3 < len(trimmed) < 60:
            return trimmed

        markdown = _MARKDOWN_HEADER.match(trimmed)
        if markdown:
            return markdown.group(1).strip()

        if _LEGAL_HEADER.match(trimmed):
            return trimmed[:60]

    return None


def find_break_point(text: str, start: int, end: int) -> int:
    """Find the preferred split position in text[start:end]."""

    window = text[start:end]
    search_start = math.floor(len(window) * BREAK_SEARCH_FRACTION)
    search_text = window[search_start:]
    offset = start + search_start

    section_matches = list(_SECTION_BREAK.finditer(search_text))
    if section_matches:
        return offset + section_matches[-1].start() + 1

    paragraph = search_text.rfind("\n\n")
    if paragraph != -1:
        return offset + paragraph + 2

    line = search_text.rfind("\n")
    if line != -1:
        return offset + line + 1

    sentences = list(_SENTENCE_END.finditer(search_text))
    if sentences:
        return offset + sentences[-1].end()

    space = search_text.rfind(" ")
    if space != -1:
        return offset + space + 1

    return end


def _validate_options(max_chars: int, overlap_chars: int, min_chars: int) -> None:
    if max_chars < 1:
        raise ValueError("max_chars must be at least 1")
    if overlap_chars < 0 or min_chars < 0:
        raise ValueError("overlap_chars and min_chars must be non-negative")
    if overlap_chars >= max_chars:
        raise ValueError(
            f"overlap_chars ({overlap_chars}) must be strictly less than max_chars ({max_chars})"
        )


def chunk_document(
    text: str,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
    min_chars: int = DEFAULT_MIN_CHARS,
) -> list[TextChunk]:
    """Split text into overlapping chunks.

    Args:
        text: Raw document text.
        max_chars: Upper bound on a chunk's length.
        overlap_chars: Characters shared between consecutive windows.
        min_chars: A break point must leave at least this many characters
            in the chunk to be used; otherwise the window is cut at max_chars.

    Returns:
        Chunks with a gapless chunk_index sequence. Offsets index into the
        normalised text (see clean_text). Empty input yields no chunks.

    Raises:
        ValueError: If overlap_chars is not strictly less than max_chars.
    """

    _validate_options(max_chars, overlap_chars, min_chars)
    cleaned = clean_text(text)
    if not cleaned:
        return []

    chunks: list[TextChunk] = []
    length = len(cleaned)
    position = 0

    while position < length:
        end = min(position + max_chars, length)
        if end < length:
            breakpoint_ = find_break_point(cleaned, position, end)
            if breakpoint_ > position + min_chars:
                end = breakpoint_

        raw = cleaned[position:end]
        content = raw.strip()
        if content:
            start_char = position + (len(raw) - len(raw.lstrip()))
            chunks.append(
                TextChunk(
                    chunk_index=len(chunks),
                    content=content,
                    start_char=start_char,
                    end_char=start_char + len(content),
                    section_header=detect_section_header(content),
                    is_first=not chunks,
                )
            )

        if end >= length:
            break

        next_position = end - overlap_chars
        # Always advance, even when a break point landed inside the overlap
        position = next_position if next_position > position else end

    if chunks:
        chunks[-1].is_last = True
    return chunks


def _split_legal_sections(text: str) -> list[tuple[int, str]]:
    """Split normalised text on major headings, returning (offset, content) pairs."""

    boundaries = [0] + [match.start() + 1 for match in _LEGAL_SECTION_SPLIT.finditer(text)]
    boundaries.append(len(text))

    sections: list[tuple[int, str]] = []
    for start, stop in zip(boundaries, boundaries[1:]):
        raw = text[start:stop]
        content = raw.strip()
        if content:
            sections.append((start + len(raw) - len(raw.lstrip()), content))
    return sections


def chunk_legal_document(
    text: str,
    *,
    max_chars: int = DEFAULT_MAX_CHARS,
    overlap_chars: int = DEFAULT_OVERLAP_CHARS,
    min_chars: int = DEFAULT_MIN_CHARS,
) -> list[TextChunk]:
    """Split on ARTICLE/SECTION/SCHEDULE/PART/EXHIBIT and numbered headings first.

    Each section is chunked independently; the result carries one global
    chunk_index sequence and offsets into the whole normalised text. Falls
    back to chunk_document when no headings are found.
    """

    _validate_options(max_chars, overlap_chars, min_chars)
    cleaned = clean_text(text)
    sections = _split_legal_sections(cleaned)
    if len(sections) <= 1:
        return chunk_document(
            cleaned, max_chars=max_chars, overlap_chars=overlap_chars, min_chars=min_chars
        )

    chunks: list[TextChunk] = []
    for offset, content in sections:
        header = detect_section_header(content)
        for chunk in chunk_document(
            content, max_chars=max_chars, overlap_chars=overlap_chars, min_chars=min_chars
        ):
            chunks.append(
                chunk.model_copy(
                    update={
                        "chunk_index": len(chunks),
                        "start_char": offset + chunk.start_char,
                        "end_char": offset + chunk.end_char,
                        "section_header": header or chunk.section_header,
                    }
                )
            )

    for position, chunk in enumerate(chunks):
        chunk.is_first = position == 0
        chunk.is_last = position == len(chunks) - 1
    return chunks
