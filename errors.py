"""Request-level failures and the JSON envelope they render to."""

from typing import Optional


class ExamServiceError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error

    def to_dict(self) -> dict:
        body = {"message": self.message}
        if self.error:
            body["error"] = self.error
        return body


class InvalidRequest(ExamServiceError):
    """Raised when input is missing, empty or fails schema validation."""

    status_code = 400


class ExamNotFound(ExamServiceError):
    """Raised when no exam matches the identifier or metadata filter."""

    status_code = 404

    def __init__(self, message: str = "Exam not found"):
        super().__init__(message)


class StoreFailure(ExamServiceError):
    """Raised when the document store cannot complete an operation."""

    status_code = 500
