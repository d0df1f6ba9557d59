"""
jrscore/utils/exceptions.py

Errors that are allowed to leave the scoring core.

Scorer transport failures and contract violations are NOT represented
here: they are absorbed inside JRScoreService and turned into a fallback
score. Only storage-side problems reach the caller.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class JRScoreServiceError(Exception):
    """Base error carrying a stable code for the API error envelope."""

    error_code = "JR_SCORE_SERVICE_ERROR"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result


class PersistenceError(JRScoreServiceError):
    """The durable store could not be read or written."""

    error_code = "PERSISTENCE_FAILED"
    http_status = 503

    def __init__(self, message: str, *, operation: Optional[str] = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", None) or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details, **kwargs)


class ProfileNotFoundError(JRScoreServiceError):
    """No onboarding profile exists for the user being scored."""

    error_code = "PROFILE_NOT_FOUND"
    http_status = 404

    def __init__(self, user_id: str) -> None:
        super().__init__(
            f"Onboarding profile not found for user {user_id}",
            details={"user_id": user_id},
        )
