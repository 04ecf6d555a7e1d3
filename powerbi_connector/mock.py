"""
Mock Reporting Client.

============================================================
PURPOSE
============================================================
In-memory reporting client for tests and dry runs.

FEATURES:
- Scripted export status sequences (status + Retry-After)
- Error injection per operation
- Full call recording

============================================================
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from powerbi_connector.base import ReportingClient
from powerbi_connector.exceptions import InvalidArgumentError, NotFoundError
from powerbi_connector.models import (
    EmbedToken,
    ExportedFile,
    ExportJob,
    ExportRequest,
    ExportState,
    ReportCoordinate,
    ReportMetadata,
    ReportType,
    WorkspaceMetadata,
)
from powerbi_connector.tokens import build_paginated_token_request


logger = logging.getLogger(__name__)


# (status, retry_after_seconds, percent_complete)
StatusStep = Tuple[ExportState, Optional[int], int]


# ============================================================
# MOCK CONFIGURATION
# ============================================================

@dataclass
class MockConfig:
    """Configuration for the mock client."""

    reports: Dict[ReportCoordinate, ReportMetadata] = field(default_factory=dict)
    """Known reports by coordinate."""

    workspaces: List[WorkspaceMetadata] = field(default_factory=list)
    """Workspaces returned by list_workspaces."""

    status_script: List[StatusStep] = field(
        default_factory=lambda: [(ExportState.SUCCEEDED, None, 100)]
    )
    """Statuses returned by successive polls; the last one repeats."""

    file_content: bytes = b"mock-export"
    """Bytes returned by fetch_exported_file."""

    file_extension: str = ".xlsx"
    """Extension reported on the export job."""

    errors: Dict[str, Exception] = field(default_factory=dict)
    """Operation name -> exception raised on every call."""


class MockReportingClient(ReportingClient):
    """
    Reporting client that never touches the network.

    Records every call as (operation, args) in `calls`.
    """

    def __init__(self, config: Optional[MockConfig] = None) -> None:
        self.config = config or MockConfig()
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.last_token_request: Optional[Dict[str, Any]] = None
        self._exports: Dict[str, int] = {}
        self.closed = False

    @property
    def name(self) -> str:
        return "mock"

    def add_report(
        self,
        coordinate: ReportCoordinate,
        name: str = "Mock Report",
        report_type: ReportType = ReportType.PAGINATED_REPORT,
    ) -> ReportMetadata:
        report = ReportMetadata(
            id=coordinate.report_id,
            name=name,
            embed_url=f"https://app.powerbi.com/reportEmbed?reportId={coordinate.report_id}",
            report_type=report_type,
            workspace_id=coordinate.workspace_id,
        )
        self.config.reports[coordinate] = report
        return report

    def operations(self) -> List[str]:
        """Names of recorded operations in call order."""
        return [op for op, _ in self.calls]

    def _record(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        error = self.config.errors.get(operation)
        if error is not None:
            raise error

    async def resolve_report(self, coordinate: ReportCoordinate) -> ReportMetadata:
        self._record("resolve_report", coordinate)
        report = self.config.reports.get(coordinate)
        if report is None:
            raise NotFoundError(
                message=f"Report '{coordinate.report_id}' in workspace '{coordinate.workspace_id}' not found",
                operation="resolve_report",
            )
        return report

    async def list_reports(self, workspace_id: str) -> List[ReportMetadata]:
        self._record("list_reports", workspace_id)
        return [r for c, r in self.config.reports.items() if c.workspace_id == workspace_id]

    async def list_workspaces(self) -> List[WorkspaceMetadata]:
        self._record("list_workspaces")
        return list(self.config.workspaces)

    async def generate_interactive_token(self, coordinate: ReportCoordinate) -> EmbedToken:
        self._record("generate_interactive_token", coordinate)
        return EmbedToken(token=f"view-{coordinate.report_id}", token_id=str(uuid.uuid4()))

    async def generate_embed_token_v2(
        self,
        coordinate: ReportCoordinate,
        dataset_ids: Iterable[str],
    ) -> EmbedToken:
        dataset_ids = list(dataset_ids)
        self._record("generate_embed_token_v2", coordinate, tuple(dataset_ids))
        self.last_token_request = build_paginated_token_request(coordinate, dataset_ids).to_payload()
        return EmbedToken(token=f"v2-{coordinate.report_id}", token_id=str(uuid.uuid4()))

    async def submit_export(self, request: ExportRequest) -> str:
        self._record("submit_export", request)
        export_id = str(uuid.uuid4())
        self._exports[export_id] = 0
        return export_id

    async def poll_export_status(self, coordinate: ReportCoordinate, export_id: str) -> ExportJob:
        self._record("poll_export_status", coordinate, export_id)
        if export_id not in self._exports:
            raise NotFoundError(message=f"Export {export_id} not found", operation="poll_export_status")

        script = self.config.status_script
        index = min(self._exports[export_id], len(script) - 1)
        self._exports[export_id] += 1
        status, retry_after, percent = script[index]

        report = self.config.reports.get(coordinate)
        return ExportJob(
            export_id=export_id,
            status=status,
            percent_complete=percent,
            retry_after_seconds=None if status.is_terminal else retry_after,
            report_name=report.name if report else "Mock Report",
            resource_file_extension=self.config.file_extension,
        )

    async def fetch_exported_file(self, coordinate: ReportCoordinate, job: ExportJob) -> ExportedFile:
        self._record("fetch_exported_file", coordinate, job.export_id)
        if job.status != ExportState.SUCCEEDED:
            raise InvalidArgumentError(
                message=f"Export {job.export_id} is {job.status.value}, not Succeeded",
                operation="fetch_exported_file",
            )
        return ExportedFile.from_bytes(
            self.config.file_content,
            report_name=job.report_name or "Export",
            file_extension=job.resource_file_extension or "",
        )

    async def close(self) -> None:
        self.closed = True
