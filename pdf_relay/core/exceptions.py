"""Custom exceptions for document relay operations.

Every message is written so the caller can tell what went wrong without
reading server logs.
"""

from typing import Optional


class RelayError(Exception):
    """Base exception for all relay errors."""

    error_type: str = "RelayError"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(RelayError):
    """Request is missing fields or carries malformed values.

    Raised before any store is contacted, so no job exists for the request.
    """

    error_type: str = "ValidationError"

    @staticmethod
    def missing_field(name: str) -> "ValidationError":
        return ValidationError(f"Missing required field: {name}")

    @staticmethod
    def invalid_field(name: str, detail: str) -> "ValidationError":
        return ValidationError(f"Invalid {name}: {detail}")


class UpstreamError(RelayError):
    """A Source or Destination Store call failed."""

    error_type: str = "UpstreamError"
    status_code: int = 502

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.upstream_status = upstream_status

    @staticmethod
    def not_configured(store: str, missing: str) -> "UpstreamError":
        return UpstreamError(f"{store} is not configured: {missing} is not set")

    @staticmethod
    def http_failure(store: str, action: str, status: int, body: str = "") -> "UpstreamError":
        detail = f": {body[:300]}" if body else ""
        return UpstreamError(
            f"{store} {action} failed (HTTP {status}){detail}",
            upstream_status=status,
        )

    @staticmethod
    def timeout(store: str, action: str, seconds: float) -> "UpstreamError":
        return UpstreamError(f"{store} {action} timed out after {seconds:.0f}s")

    @staticmethod
    def too_large(store: str, limit_mb: float) -> "UpstreamError":
        return UpstreamError(f"{store} document exceeds the {limit_mb:.0f}MB transfer limit")


class EngineError(RelayError):
    """The transform tool or library could not process the document."""

    error_type: str = "EngineError"
    status_code: int = 422

    @staticmethod
    def not_a_pdf() -> "EngineError":
        return EngineError("Input is not a PDF document (missing %PDF- header)")

    @staticmethod
    def encrypted() -> "EngineError":
        return EngineError("PDF is password-protected or locked. Please remove the password and try again.")

    @staticmethod
    def tool_missing(tool: str) -> "EngineError":
        return EngineError(f"{tool} not installed")


class JobNotFoundError(RelayError):
    """Unknown job ID, or the job was already swept."""

    error_type: str = "NotFound"
    status_code: int = 404

    @staticmethod
    def for_job(job_id: str) -> "JobNotFoundError":
        return JobNotFoundError(f"Job not found: {job_id}")


class PayloadTooLargeError(RelayError):
    """Document turned out too large for the synchronous path after download."""

    error_type: str = "PayloadTooLarge"
    status_code: int = 413

    @staticmethod
    def for_sync(actual_bytes: int, limit_bytes: int) -> "PayloadTooLargeError":
        return PayloadTooLargeError(
            f"Document is {actual_bytes / (1024 * 1024):.1f}MB, above the "
            f"{limit_bytes / (1024 * 1024):.1f}MB synchronous limit. "
            f"Resubmit with \"async\": true."
        )


class ServiceBusyError(RelayError):
    """Background job could not be queued."""

    error_type: str = "ServiceBusy"
    status_code: int = 503
