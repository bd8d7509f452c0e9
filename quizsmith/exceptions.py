"""
Error taxonomy for the generation pipeline.

Every failure the pipeline can surface derives from QuizsmithError and carries
the HTTP status it maps to. `message` is safe to show to clients; `detail` is
internal context that is only exposed outside production.
"""

from typing import Any, Dict, Optional


class QuizsmithError(Exception):
    """Base exception for pipeline errors."""

    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_response(self, include_detail: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if include_detail and self.detail:
            body["details"] = self.detail
        return body


class ValidationError(QuizsmithError):
    """Missing or invalid request fields."""
    status_code = 400


class NotFound(QuizsmithError):
    """Quiz, document or job does not exist for the requesting user."""
    status_code = 404


class QuotaExceeded(QuizsmithError):
    """Monthly plan limit reached for one resource type."""

    status_code = 403

    def __init__(self, plan: str, resource_type: str, limit: int, used: int, message: str):
        super().__init__(message)
        self.plan = plan
        self.resource_type = resource_type
        self.limit = limit
        self.used = used

    def to_response(self, include_detail: bool = False) -> Dict[str, Any]:
        return {
            "upgrade": True,
            "plan": self.plan,
            "message": self.message,
            "resource_type": self.resource_type,
            "limit": self.limit,
            "used": self.used,
        }


class StorageError(QuizsmithError):
    """Source document could not be fetched from the blob store."""
    status_code = 500


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class ExtractionError(QuizsmithError):
    status_code = 500


class UnsupportedFormat(ExtractionError):
    """No registered extractor handles the document's MIME type or extension."""
    status_code = 400


class EmptyExtraction(ExtractionError):
    """Extracted text is empty or below the minimum usable length."""


class DocumentDecodeError(ExtractionError):
    """A supported format whose bytes could not be decoded (corrupt file)."""


# ---------------------------------------------------------------------------
# Completion service / model output
# ---------------------------------------------------------------------------

class CompletionError(QuizsmithError):
    """Completion service call failed."""
    status_code = 502


class CompletionTimeout(CompletionError):
    """Completion service did not answer within the configured timeout."""


class MalformedOutput(QuizsmithError):
    """Model output could not be recovered into valid question drafts."""
    status_code = 500


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class PersistenceError(QuizsmithError):
    """Database failure while writing questions; no partial rows remain."""
    status_code = 500
