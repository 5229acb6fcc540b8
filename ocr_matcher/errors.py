"""Exception hierarchy for the OCR matcher.

    OcrMatcherError
    ├── ConflictError          a batch is already running
    ├── NoActiveBatchError     cancel requested with nothing running
    ├── NoDocumentsError       a submission is missing one of the roles
    ├── ExtractionError        OCR failed for one file
    ├── ComparisonError        AI comparison failed after fallback
    ├── PersistenceError       result store read/write failed
    └── FatalBatchError        failure outside the per-pair boundary
"""


class OcrMatcherError(Exception):
    """Base exception carrying a message and optional context details."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConflictError(OcrMatcherError):
    """Raised when a batch is submitted while another one is in progress."""


class NoActiveBatchError(OcrMatcherError):
    """Raised when cancellation is requested but no batch is running."""


class NoDocumentsError(OcrMatcherError):
    """Raised when a submission lacks invoices or delivery orders."""


class ExtractionError(OcrMatcherError):
    """Raised when text extraction fails for a single file."""

    def __init__(self, filename: str, message: str) -> None:
        self.filename = filename
        super().__init__(message, {"file": filename})

    def __str__(self) -> str:
        return self.message


class ComparisonError(OcrMatcherError):
    """Raised when the AI comparison fails on every configured backend."""


class PersistenceError(OcrMatcherError):
    """Raised when the result store cannot complete an operation."""


class FatalBatchError(OcrMatcherError):
    """Raised for failures that abort the whole batch."""
