"""
Base Reporting Client - Capability interface to the reporting platform.

The export orchestrator and the service depend only on this interface,
so the REST adapter can be swapped for a mock or another transport.

Every operation is a network call that may fail with:
- NotFoundError / InvalidArgumentError / AuthenticationError (permanent)
- TransientNetworkError (transport level, never retried here)
"""

from abc import ABC, abstractmethod
from typing import Iterable

from powerbi_connector.models import (
    EmbedToken,
    ExportedFile,
    ExportJob,
    ExportRequest,
    ReportCoordinate,
    ReportMetadata,
    WorkspaceMetadata,
)


class ReportingClient(ABC):
    """
    Abstract reporting platform client.

    Implementations must:
    1. Map platform errors onto the connector exception kinds
    2. Enforce a per-call timeout on every network call
    3. Never retry calls silently
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in log output."""
        pass

    @abstractmethod
    async def resolve_report(self, coordinate: ReportCoordinate) -> ReportMetadata:
        """
        Look up a report in a workspace.

        Raises:
            NotFoundError: If the workspace/report pair does not exist
        """
        pass

    @abstractmethod
    async def list_reports(self, workspace_id: str) -> list[ReportMetadata]:
        """List reports in a workspace."""
        pass

    @abstractmethod
    async def list_workspaces(self) -> list[WorkspaceMetadata]:
        """List workspaces visible to the caller."""
        pass

    @abstractmethod
    async def generate_interactive_token(self, coordinate: ReportCoordinate) -> EmbedToken:
        """Generate a view-level token for one report."""
        pass

    @abstractmethod
    async def generate_embed_token_v2(
        self,
        coordinate: ReportCoordinate,
        dataset_ids: Iterable[str],
    ) -> EmbedToken:
        """
        Generate a multi-target (workspace, report, datasets) token.

        Raises:
            InvalidArgumentError: If dataset_ids is empty
        """
        pass

    @abstractmethod
    async def submit_export(self, request: ExportRequest) -> str:
        """Start an export job and return its export id."""
        pass

    @abstractmethod
    async def poll_export_status(self, coordinate: ReportCoordinate, export_id: str) -> ExportJob:
        """
        Check export status once.

        The returned job carries retry_after_seconds only while the
        job is NotStarted or Running.
        """
        pass

    @abstractmethod
    async def fetch_exported_file(self, coordinate: ReportCoordinate, job: ExportJob) -> ExportedFile:
        """
        Download the exported file.

        Raises:
            InvalidArgumentError: If the job has not Succeeded
        """
        pass

    async def close(self) -> None:
        """Close resources."""

    async def __aenter__(self) -> "ReportingClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name})>"
