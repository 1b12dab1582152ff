"""Input validation and output screening.

Every user question passes through `validate_question` before anything else
sees it. Matching any injection pattern rejects the whole input; matched
content is never partially sanitized.
"""

import html
import logging
import re
from pathlib import PurePath

from backend.chatbot.errors import ValidationError

logger = logging.getLogger(__name__)

MIN_QUESTION_LENGTH = 3
MAX_QUESTION_LENGTH = 1000
MAX_TITLE_LENGTH = 200
MAX_CONTEXT_LENGTH = 10000
MAX_FILENAME_LENGTH = 255

SUSPICIOUS_CONTENT_MESSAGE = "Input contains suspicious content"

_FLAGS = re.IGNORECASE | re.DOTALL

# Markup / script injection
MARKUP_PATTERNS = [
    re.compile(r"<script[^>]*>.*?</script>", _FLAGS),
    re.compile(r"javascript:", _FLAGS),
    re.compile(r"data:text/html", _FLAGS),
    re.compile(r"vbscript:", _FLAGS),
    re.compile(r"onload\s*=", _FLAGS),
    re.compile(r"onerror\s*=", _FLAGS),
    re.compile(r"onclick\s*=", _FLAGS),
    re.compile(r"<iframe[^>]*>", _FLAGS),
    re.compile(r"<object[^>]*>", _FLAGS),
    re.compile(r"<embed[^>]*>", _FLAGS),
    re.compile(r"<link[^>]*>", _FLAGS),
    re.compile(r"<meta[^>]*>", _FLAGS),
    re.compile(r"eval\s*\(", _FLAGS),
    re.compile(r"document\.", _FLAGS),
    re.compile(r"window\.", _FLAGS),
]

# Titles only get the most dangerous markup checks
TITLE_PATTERNS = [
    re.compile(r"<script[^>]*>.*?</script>", _FLAGS),
    re.compile(r"javascript:", _FLAGS),
    re.compile(r"onload\s*=", _FLAGS),
    re.compile(r"onerror\s*=", _FLAGS),
]

SQL_INJECTION_PATTERNS = [
    re.compile(r"union\s+select|select\s+.*\s+from|insert\s+into|delete\s+from|update\s+.*\s+set", _FLAGS),
    re.compile(r"drop\s+table|drop\s+database|truncate\s+table", _FLAGS),
    re.compile(r"exec\s*\(|execute\s*\(|sp_executesql", _FLAGS),
    re.compile(r";|\s+or\s+1\s*=\s*1|'\s*or\s*'1'\s*=\s*'1", _FLAGS),
]

COMMAND_INJECTION_PATTERNS = [
    re.compile(r"&&|\|\||;|\||`", _FLAGS),
    re.compile(r"rm\s+-rf|del\s+/|format\s+c:", _FLAGS),
    re.compile(r"wget\s+|curl\s+|\bnc\s+|netcat\s+", _FLAGS),
    re.compile(r"\$\(|\$\{", _FLAGS),
]

# English and Vietnamese phrasings
PROMPT_INJECTION_PATTERNS = [
    re.compile(r"(bỏ\s+qua|ignore).*?(hướng\s+dẫn|instructions?|previous|above)", _FLAGS),
    re.compile(r"(disregard|forget|quên).*?(instructions?|above|previous|system|hướng\s+dẫn|prompt)", _FLAGS),
    re.compile(r"(trả\s+về|return).*?(toàn\s+bộ|all).*?(hướng\s+dẫn|prompt|instructions?)", _FLAGS),
    re.compile(r"(đặc\s+biệt|special|important).*?(bỏ\s+qua|ignore|skip)", _FLAGS),
    re.compile(r"system\s+(prompt|instructions?|role)", _FLAGS),
    re.compile(r"reveal.*?(prompt|instructions?|system)", _FLAGS),
    re.compile(r"show.*?(prompt|instructions?|system)", _FLAGS),
    re.compile(r"tell\s+me.*?(prompt|instructions?|system)", _FLAGS),
    re.compile(r"(override|bypass|circumvent).*?(security|safety|instructions?)", _FLAGS),
    re.compile(r"act\s+as.*?(different|another|new)\s+(role|character|assistant)", _FLAGS),
    re.compile(r"pretend.*?(you\s+are|to\s+be).*?(different|another|new)", _FLAGS),
    re.compile(r"you\s+are\s+now.*?(jailbreak|unrestricted|without\s+limits)", _FLAGS),
    re.compile(r"(simulation|roleplay|game)\s+mode", _FLAGS),
    re.compile(r"developer\s+(mode|override|access)", _FLAGS),
    re.compile(r"---+\s*(end|stop|break|terminate)", _FLAGS),
    re.compile(r"end\s+of\s+prompt|prompt\s+ends?\s+here", _FLAGS),
    re.compile(r"đặc\s+biệt.*?skip.*?hướng\s+dẫn", _FLAGS),
    re.compile(r"(làm\s+theo|follow).*?(yêu\s+cầu|request).*?(tối\s+cao|supreme|highest)", _FLAGS),
    re.compile(r"(bạn\s+phải|you\s+must).*?(nói\s+là|say).*?tôi\s+là\s+ai", _FLAGS),
    re.compile(r"skip.*?(hướng\s+dẫn|instructions?|above|previous)", _FLAGS),
    re.compile(r"(tối\s+cao|supreme|highest).*?(yêu\s+cầu|request|command)", _FLAGS),
    re.compile(r"không\s+nói.*?bất\s+kỳ.*?câu.*?khác", _FLAGS),
]

QUESTION_PATTERNS = (
    MARKUP_PATTERNS + SQL_INJECTION_PATTERNS + COMMAND_INJECTION_PATTERNS + PROMPT_INJECTION_PATTERNS
)

# Phrases that must never appear in a generated answer
SUSPICIOUS_RESPONSE_PHRASES = (
    "TÔI LÀ AI",
    "I AM AI",
    "I AM AN AI",
    "AS AN AI",
    "AS A LANGUAGE MODEL",
    "SYSTEM PROMPT",
    "HƯỚNG DẪN HỆ THỐNG",
    "IGNORE INSTRUCTIONS",
    "BỎ QUA HƯỚNG DẪN",
)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_WHITESPACE_RUN = re.compile(r"\s+")
_FILENAME_DANGEROUS = ("/", "\\", "..", ":", "*", "?", '"', "<", ">", "|", "\x00")


def _check_patterns(text: str, patterns: list[re.Pattern[str]]) -> None:
    for pattern in patterns:
        if pattern.search(text):
            logger.warning(
                "Rejected suspicious input",
                extra={"structured": {"pattern": pattern.pattern[:60], "length": len(text)}},
            )
            raise ValidationError(SUSPICIOUS_CONTENT_MESSAGE)


def remove_control_characters(text: str) -> str:
    """Strip non-printable control characters, keeping tab/newline/CR."""
    return _CONTROL_CHARS.sub("", text)


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs into single spaces and trim."""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def sanitize_input(text: str) -> str:
    """HTML-escape, drop control characters, collapse whitespace."""
    sanitized = html.escape(text, quote=False)
    sanitized = remove_control_characters(sanitized)
    return normalize_whitespace(sanitized)


def _require_text(text: str | None) -> str:
    if not text or not text.strip():
        raise ValidationError("Input is empty")
    return text.strip()


def validate_question(question: str | None) -> str:
    """Validate a user question and return its sanitized form.

    Raises:
        ValidationError: If the question is empty, shorter than 3 or longer
            than 1000 characters, or matches any injection pattern
    """
    question = _require_text(question)

    if len(question) < MIN_QUESTION_LENGTH:
        raise ValidationError("Input is too short")
    if len(question) > MAX_QUESTION_LENGTH:
        raise ValidationError("Input exceeds maximum length")

    _check_patterns(question, QUESTION_PATTERNS)

    return sanitize_input(question)


def validate_title(title: str | None) -> str:
    """Validate a document title with the reduced markup pattern set."""
    title = _require_text(title)

    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError("Input exceeds maximum length")

    _check_patterns(title, TITLE_PATTERNS)

    return sanitize_input(title)


def validate_and_sanitize_context(context: str) -> str:
    """Lightly sanitize retrieved context before it is handed to generation.

    Whitespace is preserved so the numbered context block keeps its layout.
    """
    if len(context) > MAX_CONTEXT_LENGTH:
        raise ValidationError("Input exceeds maximum length")

    return remove_control_characters(html.escape(context, quote=False))


def is_suspicious_response(response: str) -> bool:
    """True if a generated answer leaks identity, instructions or bypass phrasing."""
    upper = response.upper()
    return any(phrase in upper for phrase in SUSPICIOUS_RESPONSE_PHRASES)


def is_valid_file_extension(filename: str, allowed_extensions: tuple[str, ...] | list[str]) -> bool:
    """Check the filename's final extension against an allow-list (case-insensitive)."""
    if not filename:
        return False

    suffix = PurePath(filename).suffix.lower()
    if not suffix or suffix == ".":
        return False

    return suffix in {ext.lower() for ext in allowed_extensions}


def sanitize_filename(filename: str) -> str:
    """Make an uploaded filename safe to join onto the upload directory."""
    sanitized = filename
    for dangerous in _FILENAME_DANGEROUS:
        sanitized = sanitized.replace(dangerous, "_")

    sanitized = sanitized[:MAX_FILENAME_LENGTH]
    sanitized = sanitized.removeprefix(".").removeprefix("-")

    return sanitized or "unnamed_file"
