from __future__ import annotations

from typing import List, Optional


class ResumeError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ResumeError):
    status_code = 400

    def __init__(self, errors: List[str], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = list(errors)

    def __str__(self) -> str:
        return f"{self.message}: {', '.join(self.errors)}"


class ConflictError(ResumeError):
    status_code = 409


class NotFoundError(ResumeError):
    status_code = 404


class UnsupportedFieldError(ResumeError):
    status_code = 400

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"Field not supported for enhancement: {field}")
        self.field = field


class IndexOutOfRangeError(ResumeError):
    status_code = 400

    def __init__(self, field: str, index: int, length: int):
        super().__init__(
            f"Invalid index {index} for field '{field}' (has {length} entries)"
        )
        self.field = field
        self.index = index
        self.length = length


class ExternalServiceError(ResumeError):
    """The generation model or the PDF renderer failed."""

    status_code = 500
