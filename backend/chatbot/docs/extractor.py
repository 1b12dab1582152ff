"""Text extraction for uploaded documents (.txt, .md, .pdf)."""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import fitz  # PyMuPDF

from backend.chatbot.errors import (
    ExtractionError,
    FileTooLargeError,
    MissingFileError,
    UnsupportedFileTypeError,
)

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = (".txt", ".md", ".pdf")

_HEADER = re.compile(r"^#+\s*")
_LINK = re.compile(r"!?\[([^\]]*)\]\([^)]*\)")
_EMPHASIS = re.compile(r"\*\*|__|\*|(?<!\w)_|_(?!\w)")


@dataclass(frozen=True)
class FileInfo:
    """Basic metadata about a stored file."""

    name: str
    size: int
    modified: datetime
    extension: str
    line_count: int


def clean_markdown(text: str) -> str:
    """Strip Markdown syntax, keeping the content line by line.

    Removes header markers, link targets (keeping link text), emphasis
    markers, inline code backticks and code-fence lines.
    """
    cleaned: list[str] = []

    for line in text.split("\n"):
        line = line.strip()

        if not line:
            cleaned.append("")
            continue

        if line.startswith("```"):
            continue

        line = _HEADER.sub("", line)
        line = _LINK.sub(r"\1", line)
        line = _EMPHASIS.sub("", line)
        line = line.replace("`", "")

        cleaned.append(line.strip())

    return "\n".join(cleaned)


class TextExtractor:
    """Converts stored files into plain text, dispatching on extension."""

    def __init__(
        self,
        *,
        max_file_size: int = MAX_FILE_SIZE,
        allowed_extensions: tuple[str, ...] = ALLOWED_EXTENSIONS,
    ) -> None:
        self._max_file_size = max_file_size
        self._allowed_extensions = tuple(ext.lower() for ext in allowed_extensions)

    async def validate_file(self, path: Path) -> None:
        """Fail fast on missing, oversized, or disallowed files.

        Raises:
            MissingFileError: File does not exist
            FileTooLargeError: File is larger than the size ceiling
            UnsupportedFileTypeError: Extension is not allowed
        """
        try:
            size = (await asyncio.to_thread(path.stat)).st_size
        except FileNotFoundError as e:
            raise MissingFileError(f"File does not exist: {path.name}") from e

        if size > self._max_file_size:
            raise FileTooLargeError(f"File too large: {size} bytes (max: {self._max_file_size} bytes)")

        ext = path.suffix.lower()
        if ext not in self._allowed_extensions:
            raise UnsupportedFileTypeError(
                f"Unsupported file extension: {ext} (allowed: {', '.join(self._allowed_extensions)})"
            )

    async def extract_text(self, path: Path) -> str:
        """Extract plain text from a file.

        Raises:
            UnsupportedFileTypeError: Extension has no extractor
            ExtractionError: The parser failed
        """
        ext = path.suffix.lower()

        if ext == ".txt":
            return await asyncio.to_thread(self._read_text, path)
        if ext == ".md":
            return clean_markdown(await asyncio.to_thread(self._read_text, path))
        if ext == ".pdf":
            return await asyncio.to_thread(self._extract_pdf, path)

        raise UnsupportedFileTypeError(f"Unsupported file type: {ext}")

    async def get_file_info(self, path: Path) -> FileInfo:
        """Return size, mtime and (for .txt) line count."""
        stat = await asyncio.to_thread(path.stat)
        ext = path.suffix.lower()

        line_count = 0
        if ext == ".txt":
            line_count = len((await asyncio.to_thread(self._read_text, path)).split("\n"))

        return FileInfo(
            name=path.name,
            size=stat.st_size,
            modified=datetime.fromtimestamp(stat.st_mtime),
            extension=ext,
            line_count=line_count,
        )

    @staticmethod
    def _read_text(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ExtractionError(f"Text extraction failed: {e}") from e

    @staticmethod
    def _extract_pdf(path: Path) -> str:
        try:
            with fitz.open(path) as doc:
                return "\n".join(page.get_text() for page in doc)
        except (fitz.FileDataError, RuntimeError) as e:
            logger.warning(f"PDF extraction failed for {path.name}: {e}")
            raise ExtractionError(f"PDF extraction failed: {e}") from e
