"""
Power BI Connector Models - Report, embed and export data structures.

Provides strict typing for everything exchanged with the reporting platform.
Export job snapshots are immutable: a new snapshot is produced on every
status poll, never mutated in place.
"""

import io
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, BinaryIO, Iterable, Mapping, Optional, Union

from powerbi_connector.exceptions import (
    ExportCancelledError,
    ExportFailedError,
    ExportTimeoutError,
    InvalidArgumentError,
    TransientNetworkError,
)


_UUID_PATTERN = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp as returned by the REST API."""
    if not value:
        return None
    # Python < 3.11 does not accept the trailing Z
    value = value.replace("Z", "+00:00")
    # The service returns up to 7 fractional digits
    value = re.sub(r"\.(\d{6})\d+", r".\1", value)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def is_uuid(value: str) -> bool:
    """Check if value is a UUID-shaped identifier."""
    return bool(value) and bool(_UUID_PATTERN.match(value))


# ============================================================
# ENUMS
# ============================================================

class FileFormat(Enum):
    """Export file formats supported by the export API."""
    ACCESSIBLEPDF = "ACCESSIBLEPDF"
    CSV = "CSV"
    DOCX = "DOCX"
    IMAGE = "IMAGE"
    MHTML = "MHTML"
    PDF = "PDF"
    PNG = "PNG"
    PPTX = "PPTX"
    XLSX = "XLSX"
    XML = "XML"

    @classmethod
    def parse(cls, value: Union[str, "FileFormat"]) -> "FileFormat":
        """Parse a format name, case-insensitive."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidArgumentError(
                message=f"Unsupported file format: {value}",
                context={"supported": [f.value for f in cls]},
            )


class ExportState(Enum):
    """Status of an export job on the platform."""
    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNDEFINED = "Undefined"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.SUCCEEDED, ExportState.FAILED)

    @classmethod
    def parse(cls, value: Optional[str]) -> "ExportState":
        """Parse a status; a missing status is NotStarted, an unknown one Undefined."""
        if not value:
            return cls.NOT_STARTED
        for state in cls:
            if state.value == value:
                return state
        return cls.UNDEFINED


class ReportType(Enum):
    """Report kinds returned by the reports API."""
    POWER_BI_REPORT = "PowerBIReport"
    PAGINATED_REPORT = "PaginatedReport"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "ReportType":
        for report_type in cls:
            if report_type.value == value:
                return report_type
        return cls.UNKNOWN


class AccessLevel(Enum):
    """Access level for report-scoped embed tokens."""
    VIEW = "View"


class XmlaPermissions(Enum):
    """Dataset permissions for multi-target embed tokens."""
    READ_ONLY = "ReadOnly"


class ExportOutcome(Enum):
    """Terminal outcome of one export workflow."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


# ============================================================
# COORDINATES & REQUESTS
# ============================================================

@dataclass(frozen=True)
class ReportCoordinate:
    """Workspace/report identifier pair. Always caller supplied."""
    workspace_id: str
    report_id: str

    def validate(self) -> None:
        """Validate both identifiers are UUID-shaped."""
        if not is_uuid(self.workspace_id):
            raise InvalidArgumentError(
                message=f"Invalid workspace id: {self.workspace_id!r}",
                context={"field": "workspace_id"},
            )
        if not is_uuid(self.report_id):
            raise InvalidArgumentError(
                message=f"Invalid report id: {self.report_id!r}",
                context={"field": "report_id"},
            )

    def __str__(self) -> str:
        return f"{self.workspace_id}/{self.report_id}"


@dataclass(frozen=True)
class ParameterValue:
    """A single report parameter (name must match the report definition)."""
    name: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "value": self.value}


ParameterInput = Union[ParameterValue, tuple[str, Any], Mapping[str, Any]]


def _coerce_parameter(item: ParameterInput) -> ParameterValue:
    if isinstance(item, ParameterValue):
        return item
    if isinstance(item, Mapping):
        if "name" in item:
            return ParameterValue(name=str(item["name"]), value=str(item.get("value", "")))
        if len(item) == 1:
            (name, value), = item.items()
            return ParameterValue(name=str(name), value=str(value))
        raise InvalidArgumentError(message=f"Ambiguous parameter mapping: {dict(item)}")
    name, value = item
    return ParameterValue(name=str(name), value=str(value))


@dataclass(frozen=True)
class ExportRequest:
    """
    One paginated export attempt.

    Parameters keep their given order; repeated names are allowed
    (multi-value report parameters).
    """
    coordinate: ReportCoordinate
    file_format: FileFormat
    parameters: tuple[ParameterValue, ...] = ()
    format_settings: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        coordinate: ReportCoordinate,
        file_format: Union[str, FileFormat],
        parameters: Optional[Iterable[ParameterInput]] = None,
        format_settings: Optional[Mapping[str, Any]] = None,
    ) -> "ExportRequest":
        """Build a request from loosely typed caller input."""
        settings = {str(k): str(v) for k, v in (format_settings or {}).items()}
        return cls(
            coordinate=coordinate,
            file_format=FileFormat.parse(file_format),
            parameters=tuple(_coerce_parameter(p) for p in (parameters or ())),
            format_settings=MappingProxyType(settings),
        )

    def to_payload(self) -> dict[str, Any]:
        """Body of the ExportTo call."""
        return {
            "format": self.file_format.value,
            "paginatedReportConfiguration": {
                "formatSettings": dict(self.format_settings),
                "parameterValues": [p.to_dict() for p in self.parameters],
            },
        }


# ============================================================
# PLATFORM OBJECTS
# ============================================================

@dataclass(frozen=True)
class ReportMetadata:
    """Report as returned by the reports API."""
    id: str
    name: str
    embed_url: str
    report_type: ReportType = ReportType.POWER_BI_REPORT
    web_url: Optional[str] = None
    dataset_id: Optional[str] = None
    workspace_id: Optional[str] = None

    @property
    def is_paginated(self) -> bool:
        return self.report_type == ReportType.PAGINATED_REPORT

    @classmethod
    def from_api(cls, data: Mapping[str, Any], workspace_id: Optional[str] = None) -> "ReportMetadata":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            embed_url=data.get("embedUrl", ""),
            report_type=ReportType.parse(data.get("reportType")),
            web_url=data.get("webUrl"),
            dataset_id=data.get("datasetId") or None,
            workspace_id=workspace_id,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "embed_url": self.embed_url,
            "report_type": self.report_type.value,
            "web_url": self.web_url,
            "dataset_id": self.dataset_id,
            "workspace_id": self.workspace_id,
        }


@dataclass(frozen=True)
class WorkspaceMetadata:
    """Workspace (group) as returned by the groups API."""
    id: str
    name: str
    type: Optional[str] = None
    state: Optional[str] = None
    is_on_dedicated_capacity: bool = False

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "WorkspaceMetadata":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            type=data.get("type"),
            state=data.get("state"),
            is_on_dedicated_capacity=bool(data.get("isOnDedicatedCapacity", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "state": self.state,
            "is_on_dedicated_capacity": self.is_on_dedicated_capacity,
        }


@dataclass(frozen=True)
class EmbedToken:
    """Embed token returned by a GenerateToken call."""
    token: str
    token_id: Optional[str] = None
    expiration: Optional[datetime] = None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "EmbedToken":
        return cls(
            token=data["token"],
            token_id=data.get("tokenId"),
            expiration=_parse_datetime(data.get("expiration")),
        )

    def __repr__(self) -> str:
        return f"EmbedToken(token_id={self.token_id!r}, expiration={self.expiration!r})"


@dataclass(frozen=True)
class EmbedCredential:
    """
    Everything a presentation layer needs to embed one report.

    Ephemeral: a fresh credential is fetched for every embedding request.
    """
    report_id: str
    embed_url: str
    report_name: str
    token: str = field(repr=False)
    token_expiration: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Embed model handed to the page (token included)."""
        return {
            "id": self.report_id,
            "embedUrl": self.embed_url,
            "name": self.report_name,
            "token": self.token,
            "tokenExpiration": self.token_expiration.isoformat() if self.token_expiration else None,
        }


@dataclass(frozen=True)
class ExportJob:
    """Snapshot of an export job as last reported by the platform."""
    export_id: str
    status: ExportState
    percent_complete: int = 0
    retry_after_seconds: Optional[int] = None
    report_name: Optional[str] = None
    resource_file_extension: Optional[str] = None
    created_at: Optional[datetime] = None
    last_action_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_api(
        cls,
        data: Mapping[str, Any],
        retry_after_seconds: Optional[int] = None,
    ) -> "ExportJob":
        export_id = data.get("id")
        if not export_id:
            raise TransientNetworkError(
                message="Export status response did not contain an export id",
                operation="poll_export_status",
                response_body=str(dict(data))[:1000],
            )
        status = ExportState.parse(data.get("status"))
        try:
            percent_complete = int(data.get("percentComplete") or 0)
        except (TypeError, ValueError):
            percent_complete = 0
        return cls(
            export_id=export_id,
            status=status,
            percent_complete=percent_complete,
            # Only meaningful while the job is still in progress
            retry_after_seconds=None if status.is_terminal else retry_after_seconds,
            report_name=data.get("reportName"),
            resource_file_extension=data.get("resourceFileExtension"),
            created_at=_parse_datetime(data.get("createdDateTime")),
            last_action_at=_parse_datetime(data.get("lastActionDateTime")),
            expires_at=_parse_datetime(data.get("expirationTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "export_id": self.export_id,
            "status": self.status.value,
            "percent_complete": self.percent_complete,
            "retry_after_seconds": self.retry_after_seconds,
            "report_name": self.report_name,
            "resource_file_extension": self.resource_file_extension,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "last_action_at": self.last_action_at.isoformat() if self.last_action_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }


class ExportedFile:
    """
    Exported report file.

    The caller owns the stream and is responsible for closing it,
    either explicitly or by using the file as a context manager.
    """

    def __init__(
        self,
        file_stream: BinaryIO,
        report_name: str,
        file_extension: str,
    ) -> None:
        self.file_stream = file_stream
        self.report_name = report_name
        self.file_extension = file_extension

    @classmethod
    def from_bytes(cls, content: bytes, report_name: str, file_extension: str) -> "ExportedFile":
        return cls(io.BytesIO(content), report_name, file_extension)

    @property
    def filename(self) -> str:
        """Report name with extension, safe for use on disk."""
        stem = re.sub(r'[\\/:*?"<>|]+', "_", self.report_name or "Export").strip() or "Export"
        extension = self.file_extension or ""
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        return f"{stem}{extension}"

    @property
    def closed(self) -> bool:
        return self.file_stream.closed

    def read(self, size: int = -1) -> bytes:
        return self.file_stream.read(size)

    def save(self, directory: Union[str, Path], filename: Optional[str] = None) -> Path:
        """Write the stream to directory and close it."""
        path = Path(directory) / (filename or self.filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        with self, open(path, "wb") as target:
            while True:
                chunk = self.file_stream.read(64 * 1024)
                if not chunk:
                    break
                target.write(chunk)
        return path

    def close(self) -> None:
        self.file_stream.close()

    def __enter__(self) -> "ExportedFile":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<ExportedFile(name={self.filename}, closed={self.closed})>"


# ============================================================
# EXPORT RESULT
# ============================================================

@dataclass
class ExportResult:
    """
    Result of one export workflow.

    TIMED_OUT and CANCELLED are "no result" outcomes and are kept
    distinct from FAILED, which means the platform failed the job.
    """
    outcome: ExportOutcome
    export_id: Optional[str] = None
    job: Optional[ExportJob] = None
    file: Optional[ExportedFile] = None
    elapsed_seconds: float = 0.0
    poll_count: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome == ExportOutcome.SUCCEEDED

    @property
    def is_no_result(self) -> bool:
        return self.outcome in (ExportOutcome.TIMED_OUT, ExportOutcome.CANCELLED)

    def raise_for_outcome(self) -> ExportedFile:
        """Return the file, or raise the exception matching the outcome."""
        if self.outcome == ExportOutcome.SUCCEEDED and self.file is not None:
            return self.file
        if self.outcome == ExportOutcome.TIMED_OUT:
            raise ExportTimeoutError(
                message=f"Export {self.export_id} did not finish within budget",
                export_id=self.export_id,
                elapsed_seconds=self.elapsed_seconds,
            )
        if self.outcome == ExportOutcome.CANCELLED:
            raise ExportCancelledError(
                message=f"Export {self.export_id} was cancelled",
                export_id=self.export_id,
            )
        raise ExportFailedError(
            message=f"Export {self.export_id} failed on the platform",
            export_id=self.export_id,
            status=self.job.status.value if self.job else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "export_id": self.export_id,
            "job": self.job.to_dict() if self.job else None,
            "file": self.file.filename if self.file else None,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "poll_count": self.poll_count,
        }
