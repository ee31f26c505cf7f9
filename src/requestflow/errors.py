from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    CANDIDATE_NOT_FOUND = "CANDIDATE_NOT_FOUND"
    PROVIDER_NOT_FOUND = "PROVIDER_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    NO_PENDING_CONFIRMATION = "NO_PENDING_CONFIRMATION"
    CONFIRMATION_EXPIRED = "CONFIRMATION_EXPIRED"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    ASSET_NOT_FOUND = "ASSET_NOT_FOUND"
    ASSET_TOO_LARGE = "ASSET_TOO_LARGE"
    TRANSPORT_FAILED = "TRANSPORT_FAILED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


class RequestFlowError(Exception):
    """Raised by the engine and command handlers for every expected failure.

    The router catches it at the command boundary and turns it into exactly
    one reply. Business logic lets it propagate.
    """

    default_code: ErrorCode = ErrorCode.INVALID_INPUT

    def __init__(
        self,
        message: str,
        suggestion: str = "",
        *,
        code: ErrorCode | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }

    def user_text(self) -> str:
        if self.suggestion:
            return f"{self.message}\n{self.suggestion}"
        return self.message


class ValidationError(RequestFlowError):
    default_code = ErrorCode.INVALID_INPUT


class NotFoundError(RequestFlowError):
    default_code = ErrorCode.REQUEST_NOT_FOUND


class PermissionDeniedError(RequestFlowError):
    default_code = ErrorCode.PERMISSION_DENIED


class AlreadyCompletedError(RequestFlowError):
    default_code = ErrorCode.ALREADY_COMPLETED


class AlreadyCancelledError(RequestFlowError):
    default_code = ErrorCode.ALREADY_CANCELLED


class ConfirmationExpiredError(RequestFlowError):
    default_code = ErrorCode.CONFIRMATION_EXPIRED


class DeliveryError(RequestFlowError):
    """Asset could not be delivered. Request state is left untouched."""

    default_code = ErrorCode.TRANSPORT_FAILED

    def __init__(
        self,
        message: str,
        suggestion: str = "",
        *,
        code: ErrorCode | None = None,
        link: str | None = None,
    ) -> None:
        super().__init__(message, suggestion, code=code, recoverable=True)
        self.link = link

    def user_text(self) -> str:
        text = super().user_text()
        if self.link:
            text = f"{text}\nLink: {self.link}"
        return text


class ClassificationConfirmationRequired(RequestFlowError):
    """Selected candidate is not main content and needs an explicit confirmation.

    Raised by the selection path and caught by the resolution machine, which
    records the pending confirmation. Never shown to the user as an error.
    """

    default_code = ErrorCode.CONFIRMATION_REQUIRED

    def __init__(self, source: str, candidate_id: str, content_type: str) -> None:
        super().__init__(
            f"Candidate {source}:{candidate_id} is classified as {content_type}.",
            recoverable=True,
        )
        self.source = source
        self.candidate_id = candidate_id
        self.content_type = content_type
