"""Error kinds surfaced to callers of the pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional


class PipelineError(Exception):
    """Base class for every error the coordinator lets escape.

    ``error_kind`` is the stable, caller-facing name; ``status_code`` is the
    HTTP status the API layer renders it with.
    """

    error_kind = "Internal"
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error_kind": self.error_kind,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationFailed(PipelineError):
    error_kind = "Validation"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message, details)
        self.field = field


class PayloadTooLarge(ValidationFailed):
    status_code = 413

    def __init__(self, limit_bytes: int):
        super().__init__(
            f"Request body exceeds {limit_bytes} bytes", limit_bytes=limit_bytes
        )


class InsufficientCredits(PipelineError):
    error_kind = "InsufficientCredits"
    status_code = 402

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Insufficient credits. Required: {required}, Available: {available}",
            {"required": required, "available": available},
        )
        self.required = required
        self.available = available


class NotFound(PipelineError):
    error_kind = "NotFound"
    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found", {"id": identifier})


class Overloaded(PipelineError):
    error_kind = "Overloaded"
    status_code = 503
    retryable = True


class ProviderError(PipelineError):
    error_kind = "ProviderError"
    status_code = 502

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        retryable: bool = False,
        kind: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"retryable": retryable}
        if provider:
            details["provider"] = provider
        if kind:
            details["kind"] = kind
        super().__init__(message, details)
        self.provider = provider
        self.retryable = retryable
        self.kind = kind


class CircuitOpen(PipelineError):
    error_kind = "CircuitOpen"
    status_code = 503
    retryable = True

    def __init__(self, provider: str, retry_after: float = 0.0):
        super().__init__(
            f"Provider '{provider}' is unavailable (circuit open)",
            {"provider": provider, "retry_after_seconds": round(retry_after, 3)},
        )
        self.provider = provider
        self.retry_after = retry_after


class Cancelled(PipelineError):
    error_kind = "Cancelled"
    status_code = 409


class Conflict(PipelineError):
    """The request id was already charged and its result is no longer available."""

    error_kind = "Conflict"
    status_code = 409

    def __init__(self, request_id: str, reservation_id: str):
        super().__init__(
            f"Request {request_id} was already processed and charged",
            {"request_id": request_id, "reservation_id": reservation_id},
        )


class Timeout(PipelineError):
    error_kind = "Timeout"
    status_code = 504
    retryable = True


class ReservationResolved(PipelineError):
    """A reservation was resolved twice in incompatible ways (commit after refund)."""

    def __init__(self, reservation_id: str, state: str):
        super().__init__(
            f"Reservation {reservation_id} already {state}",
            {"reservation_id": reservation_id, "state": state},
        )


def as_pipeline_error(exc: BaseException) -> PipelineError:
    """Map an arbitrary exception onto a caller-facing error kind."""
    if isinstance(exc, PipelineError):
        return exc
    return PipelineError(f"Internal error: {exc.__class__.__name__}")
