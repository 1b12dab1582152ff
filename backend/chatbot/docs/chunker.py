"""Document chunker - deterministic overlapping text splitting."""

import math
import re
from dataclasses import dataclass, field
from enum import Enum

_SENTENCE_END = re.compile(r"[.!?]+\s+")
_BLANK_LINE = re.compile(r"\n[ \t]*\n\s*")
_WHITESPACE_BACKOFF = 50


class ChunkMethod(str, Enum):
    """Chunking strategy."""

    FIXED = "fixed"
    SENTENCE = "sentence"
    PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class ChunkConfig:
    """Configuration for chunking."""

    max_size: int = 800
    overlap: int = 100
    method: ChunkMethod = ChunkMethod.SENTENCE
    min_size: int = 50
    separators: tuple[str, ...] = field(default=("\n\n", "\n", ". ", "! ", "? "))


@dataclass(frozen=True)
class TextChunk:
    """One chunk of a document with its character range in the source text."""

    content: str
    start_pos: int
    end_pos: int
    token_count: int


@dataclass(frozen=True)
class _Unit:
    """A sentence or paragraph with its source offsets."""

    text: str
    start: int
    end: int


def estimate_token_count(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def default_chunk_config() -> ChunkConfig:
    """Configuration used for document ingestion."""
    return ChunkConfig()


def split_into_chunks(text: str, config: ChunkConfig | None = None) -> list[TextChunk]:
    """Split text into ordered, possibly overlapping chunks.

    Pure function: same input and config always give the same chunks.

    Args:
        text: Raw document text
        config: Chunking configuration (defaults to ingestion settings)

    Returns:
        Chunks in source order. Empty input gives an empty list. A sentence or
        paragraph longer than max_size is emitted whole rather than split.
    """
    config = config or default_chunk_config()

    if not text or not text.strip():
        return []

    # Normalize line endings; offsets refer to the normalized text
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    method = ChunkMethod(config.method)
    if method == ChunkMethod.FIXED:
        chunks = _chunk_by_fixed_size(text, config)
    elif method == ChunkMethod.PARAGRAPH:
        chunks = _accumulate(_split_units(text, _BLANK_LINE), config, joiner="\n\n")
    else:
        chunks = _accumulate(_split_units(text, _SENTENCE_END), config, joiner=" ")

    # Content shorter than min_size is still kept when it is all there is
    if not chunks:
        stripped = text.strip()
        start = text.index(stripped)
        chunks = [_make_chunk(stripped, start, start + len(stripped))]

    return chunks


def _make_chunk(content: str, start: int, end: int) -> TextChunk:
    return TextChunk(
        content=content,
        start_pos=start,
        end_pos=end,
        token_count=estimate_token_count(content),
    )


def _split_units(text: str, boundary: re.Pattern[str]) -> list[_Unit]:
    """Split text at boundary matches, keeping punctuation and source offsets."""
    units: list[_Unit] = []
    cursor = 0

    def add(segment_end: int) -> None:
        raw = text[cursor:segment_end]
        stripped = raw.strip()
        if stripped:
            start = cursor + raw.index(stripped)
            units.append(_Unit(text=stripped, start=start, end=start + len(stripped)))

    for match in boundary.finditer(text):
        add(match.end())
        cursor = match.end()

    add(len(text))
    return units


def _chunk_by_fixed_size(text: str, config: ChunkConfig) -> list[TextChunk]:
    """Slide a max_size window, backing off to a separator or whitespace."""
    chunks: list[TextChunk] = []
    text_len = len(text)
    start = 0

    while start < text_len:
        end = min(start + config.max_size, text_len)

        if end < text_len:
            end = _find_break(text, start, end, config.separators)

        raw = text[start:end]
        content = raw.strip()
        if content and len(content) >= config.min_size:
            chunk_start = start + raw.index(content)
            chunks.append(_make_chunk(content, chunk_start, chunk_start + len(content)))

        if end >= text_len:
            break

        # Always make progress even when overlap >= the window actually taken
        start = max(end - config.overlap, start + 1)

    return chunks


def _find_break(text: str, start: int, end: int, separators: tuple[str, ...]) -> int:
    """Pick a break point at most 50 characters before end."""
    low = max(start + 1, end - _WHITESPACE_BACKOFF)

    for separator in separators:
        idx = text.rfind(separator, low, end)
        if idx > start:
            # Keep trailing punctuation ("." of ". ") inside the chunk
            return idx + len(separator.rstrip())

    for i in range(end - 1, low - 1, -1):
        if text[i].isspace():
            return i

    return end


def _joined_length(parts: list[_Unit], joiner_len: int) -> int:
    if not parts:
        return 0
    return sum(len(p.text) for p in parts) + joiner_len * (len(parts) - 1)


def _accumulate(units: list[_Unit], config: ChunkConfig, *, joiner: str) -> list[TextChunk]:
    """Pack units into chunks up to max_size, seeding each chunk with overlap."""
    groups: list[list[_Unit]] = []
    buffer: list[_Unit] = []
    # Index into buffer where units not yet emitted begin
    fresh_from = 0
    joiner_len = len(joiner)

    for unit in units:
        pending = _joined_length(buffer, joiner_len)
        has_fresh = fresh_from < len(buffer)
        would_exceed = pending > 0 and pending + joiner_len + len(unit.text) > config.max_size

        if would_exceed and has_fresh:
            if pending >= config.min_size:
                groups.append(buffer)
            else:
                _place_short(groups, buffer, fresh_from, config, joiner_len)
            buffer = _overlap_seed(groups[-1], unit, config, joiner_len)
            fresh_from = len(buffer)

        buffer.append(unit)

    if fresh_from < len(buffer):
        if _joined_length(buffer, joiner_len) >= config.min_size or not groups:
            groups.append(buffer)
        else:
            _place_short(groups, buffer, fresh_from, config, joiner_len)

    return [_make_chunk(joiner.join(u.text for u in group), group[0].start, group[-1].end) for group in groups]


def _overlap_seed(previous: list[_Unit], incoming: _Unit, config: ChunkConfig, joiner_len: int) -> list[_Unit]:
    """Trailing units of the previous chunk, walking backward until the overlap is filled."""
    if config.overlap <= 0:
        return []

    seed: list[_Unit] = []
    chars = 0

    for unit in reversed(previous):
        if chars + len(unit.text) > config.overlap:
            break
        seed.insert(0, unit)
        chars += len(unit.text) + joiner_len

    # Seed plus the incoming unit must still fit
    while seed and chars + len(incoming.text) > config.max_size:
        dropped = seed.pop(0)
        chars -= len(dropped.text) + joiner_len

    return seed


def _place_short(
    groups: list[list[_Unit]], buffer: list[_Unit], fresh_from: int, config: ChunkConfig, joiner_len: int
) -> None:
    """Place a buffer shorter than min_size without breaking max_size.

    Tries, in order: appending its new units to the previous chunk, moving
    trailing units of the previous chunk over so both reach min_size, and
    finally emitting it as a short chunk of its own.
    """
    fresh = buffer[fresh_from:]

    if groups:
        last = groups[-1]
        if _joined_length(last + fresh, joiner_len) <= config.max_size:
            groups[-1] = last + fresh
            return

        for moved in range(1, len(last)):
            candidate = last[-moved:] + fresh
            candidate_len = _joined_length(candidate, joiner_len)
            if candidate_len > config.max_size:
                break
            rest = last[:-moved]
            if candidate_len >= config.min_size and _joined_length(rest, joiner_len) >= config.min_size:
                groups[-1] = rest
                groups.append(candidate)
                return

    groups.append(buffer)
