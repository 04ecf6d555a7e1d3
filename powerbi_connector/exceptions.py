"""
Power BI Connector Exceptions - Error kinds for platform operations.

NotFound, InvalidArgument and Authentication errors surface immediately.
Transient errors are never retried by the connector itself. Timeout,
cancellation and platform failure of an export are reported as export
outcomes and only become exceptions on request.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class PowerBIError(Exception):
    """Base exception for all connector errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "operation": self.operation,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.operation:
            parts.append(f"[operation={self.operation}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class NotFoundError(PowerBIError):
    """Workspace, report or export does not exist."""


class InvalidArgumentError(PowerBIError):
    """Caller supplied an invalid argument."""


class UnsupportedReportTypeError(InvalidArgumentError):
    """Operation is not available for this report type."""

    def __init__(
        self,
        message: str,
        report_type: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, operation, None, context)
        self.report_type = report_type

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["report_type"] = self.report_type
        return data


class AuthenticationError(PowerBIError):
    """
    Identity provider rejected the credentials or requires consent.

    Not recoverable automatically.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        requires_consent: bool = False,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, operation, original_error, context)
        self.error_code = error_code
        self.requires_consent = requires_consent

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "error_code": self.error_code,
            "requires_consent": self.requires_consent,
        })
        return data


class TransientNetworkError(PowerBIError):
    """Transport-level failure talking to the platform."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, operation, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return self.status_code is not None and 500 <= self.status_code < 600

    def is_client_error(self) -> bool:
        """Check if error is client-side."""
        return self.status_code is not None and 400 <= self.status_code < 500


class RateLimitError(TransientNetworkError):
    """Platform throttled the request (HTTP 429)."""

    def __init__(
        self,
        message: str,
        retry_after_seconds: Optional[int] = None,
        request_url: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            status_code=429,
            request_url=request_url,
            operation=operation,
            context=context,
        )
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class ExportFailedError(PowerBIError):
    """Platform reported the export job as Failed."""

    def __init__(
        self,
        message: str,
        export_id: Optional[str] = None,
        status: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "export", None, context)
        self.export_id = export_id
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"export_id": self.export_id, "status": self.status})
        return data


class ExportTimeoutError(PowerBIError):
    """Export did not reach a terminal state within the caller's budget."""

    def __init__(
        self,
        message: str,
        export_id: Optional[str] = None,
        elapsed_seconds: Optional[float] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "export", None, context)
        self.export_id = export_id
        self.elapsed_seconds = elapsed_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"export_id": self.export_id, "elapsed_seconds": self.elapsed_seconds})
        return data


class ExportCancelledError(PowerBIError):
    """Export workflow was cancelled by the caller."""

    def __init__(
        self,
        message: str,
        export_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "export", None, context)
        self.export_id = export_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["export_id"] = self.export_id
        return data


class ConfigurationError(PowerBIError):
    """Connector configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "configure", original_error, context)
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["config_key"] = self.config_key
        return data
