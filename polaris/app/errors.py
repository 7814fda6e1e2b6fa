from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    # Base class for domain errors (intended, meaningful failures).
    pass


class QuestionDefinitionError(AppError):
    # Raised when a generated question record is malformed (missing id, unknown input kind, ...).
    pass


class BlueprintValidationError(AppError):
    """
    Raised when an AI-authored blueprint document is unsuitable for further processing.

    `code` is machine-readable so the caller can decide between retrying the
    generation and surfacing the problem to the user.
    """

    def __init__(self, message: str, code: str, details: Optional[Any] = None):
        super().__init__(message)
        self.code = code
        self.details = details

    def __str__(self) -> str:
        return f"[{self.code}] {self.args[0]}"


class AnswerValidationError(AppError):
    # Raised by the submission service when answers fail complete validation.
    def __init__(self, message: str, result: Any):
        super().__init__(message)
        self.result = result


class InsufficientAnswersError(AppError):
    # Raised when answers are too incomplete to request a blueprint.
    pass


class RecordNotFound(AppError):
    # Raised when a blueprint record does not exist.
    pass
