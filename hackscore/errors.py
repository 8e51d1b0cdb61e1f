"""
Error types for the hackathon scoreboard.

Every error carries an HTTP status and a machine-readable code so the web
layer can turn it into a consistent JSON body.
"""

from typing import Any, Dict, Optional


class ScoreboardError(Exception):
    """Base class for recoverable scoreboard errors."""

    status = 500
    code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """
        Build the JSON error body.

        @return: Dictionary with success flag, message, code and optional details
        """
        body: Dict[str, Any] = {
            "success": False,
            "message": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ScoreboardError):
    status = 400
    code = "VALIDATION_ERROR"


class DuplicateEvaluationError(ValidationError):
    """Raised when an evaluator scores the same round twice."""

    code = "DUPLICATE_EVALUATION"


class StudentEvaluatorExistsError(ValidationError):
    """Raised when a second student evaluator scores a round."""

    code = "STUDENT_EVALUATOR_EXISTS"


class FlashRoundNotSelectedError(ValidationError):
    code = "FLASH_ROUND_NOT_SELECTED"


class AuthenticationError(ScoreboardError):
    status = 401
    code = "AUTH_REQUIRED"


class PermissionDeniedError(ScoreboardError):
    status = 403
    code = "FORBIDDEN"


class NotFoundError(ScoreboardError):
    status = 404
    code = "NOT_FOUND"


class ConflictError(ScoreboardError):
    status = 409
    code = "CONFLICT"
