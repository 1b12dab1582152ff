"""Exception taxonomy for the ingestion and answering pipeline."""


class ChatbotError(Exception):
    """Base class for all chatbot errors."""


class ValidationError(ChatbotError):
    """User input is empty, out of bounds, or matched an injection pattern."""


class UploadRejectedError(ChatbotError):
    """Uploaded file was rejected before extraction."""


class UnsupportedFileTypeError(UploadRejectedError):
    """File extension is not one of the supported formats."""


class FileTooLargeError(UploadRejectedError):
    """File exceeds the upload size ceiling."""


class MissingFileError(UploadRejectedError):
    """File does not exist on disk."""


class ExtractionError(ChatbotError):
    """Parser failed on a supported file."""


class DocumentNotFoundError(ChatbotError):
    """Document ID does not exist."""


class UpstreamError(ChatbotError):
    """Embedding or generation provider failure."""


class NoApiKeyError(UpstreamError):
    """Key rotator has no keys configured."""


class AllKeysExhaustedError(UpstreamError):
    """Every key in the rotation failed."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempt(s): {last_error}")


class EmbeddingError(UpstreamError):
    """Embedding call failed with a non-retryable error."""


class GenerationError(UpstreamError):
    """Answer generation failed with a non-retryable error."""


class PersistenceError(ChatbotError):
    """Store operation failed."""


class CacheError(ChatbotError):
    """Cache store operation failed. Never propagated past the cache manager."""


def wrap_persistence_error(action: str, error: BaseException) -> PersistenceError:
    """Wrap a storage exception with the action that was being performed."""
    return PersistenceError(f"{action}: {error}")
