"""
Power BI Service - Public operation surface.

Combines the reporting client, the embed token builder and the export
orchestrator into the operations a presentation layer calls:
- get_embed_info / get_embed_info_paginated
- list_reports / list_workspaces
- export_paginated / export_report
"""

import asyncio
import logging
from typing import Any, Iterable, Mapping, Optional, Union

import aiohttp

from powerbi_connector.auth import ClientCredentialProvider
from powerbi_connector.base import ReportingClient
from powerbi_connector.client import PowerBIRestClient
from powerbi_connector.config import PowerBIConfig
from powerbi_connector.exceptions import UnsupportedReportTypeError
from powerbi_connector.export import ExportOrchestrator
from powerbi_connector.models import (
    EmbedCredential,
    ExportRequest,
    ExportResult,
    FileFormat,
    ParameterInput,
    ReportCoordinate,
    ReportMetadata,
    WorkspaceMetadata,
)
from powerbi_connector.tokens import normalize_dataset_ids


logger = logging.getLogger(__name__)


class PowerBIService:
    """
    Entry point for embedding and exporting reports.

    Stateless apart from its collaborators; safe to share across
    concurrent requests.
    """

    DEFAULT_TIMEOUT_MINUTES = 5

    def __init__(
        self,
        client: ReportingClient,
        orchestrator: Optional[ExportOrchestrator] = None,
        default_timeout_minutes: Union[int, float] = DEFAULT_TIMEOUT_MINUTES,
        owns_client: bool = False,
    ) -> None:
        self._client = client
        self._orchestrator = orchestrator or ExportOrchestrator(client)
        self._default_timeout_minutes = default_timeout_minutes
        self._owns_client = owns_client

    @classmethod
    def from_config(
        cls,
        config: PowerBIConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> "PowerBIService":
        """Wire credential provider, REST client and orchestrator."""
        config.validate()
        provider = ClientCredentialProvider(config, session=session)
        client = PowerBIRestClient(config, token_provider=provider, session=session)
        orchestrator = ExportOrchestrator(
            client,
            default_poll_interval_seconds=config.default_poll_interval_seconds,
            min_poll_interval_seconds=config.min_poll_interval_seconds,
        )
        return cls(
            client,
            orchestrator=orchestrator,
            default_timeout_minutes=config.default_export_timeout_minutes,
            owns_client=True,
        )

    @property
    def client(self) -> ReportingClient:
        return self._client

    # --------------------------------------------------------
    # Embedding
    # --------------------------------------------------------

    async def get_embed_info(self, coordinate: ReportCoordinate) -> EmbedCredential:
        """Embed data for an interactive report (view-only token)."""
        report = await self._client.resolve_report(coordinate)
        token = await self._client.generate_interactive_token(coordinate)
        return EmbedCredential(
            report_id=report.id,
            embed_url=report.embed_url,
            report_name=report.name,
            token=token.token,
            token_expiration=token.expiration,
        )

    async def get_embed_info_paginated(
        self,
        coordinate: ReportCoordinate,
        dataset_ids: Iterable[str],
    ) -> EmbedCredential:
        """
        Embed data for a paginated report.

        Dataset ids are validated before any network call is made.
        """
        datasets = normalize_dataset_ids(dataset_ids)
        report = await self._client.resolve_report(coordinate)
        token = await self._client.generate_embed_token_v2(coordinate, datasets)
        return EmbedCredential(
            report_id=report.id,
            embed_url=report.embed_url,
            report_name=report.name,
            token=token.token,
            token_expiration=token.expiration,
        )

    # --------------------------------------------------------
    # Listing
    # --------------------------------------------------------

    async def list_reports(self, workspace_id: str) -> list[ReportMetadata]:
        return await self._client.list_reports(workspace_id)

    async def list_workspaces(self) -> list[WorkspaceMetadata]:
        return await self._client.list_workspaces()

    # --------------------------------------------------------
    # Export
    # --------------------------------------------------------

    async def export_paginated(
        self,
        coordinate: ReportCoordinate,
        file_format: Union[str, FileFormat],
        parameters: Optional[Iterable[ParameterInput]] = None,
        format_settings: Optional[Mapping[str, Any]] = None,
        timeout_minutes: Optional[Union[int, float]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """
        Export a paginated report to a file.

        Returns an ExportResult whose outcome tells apart success,
        platform failure, timeout and cancellation.
        """
        coordinate.validate()
        request = ExportRequest.build(
            coordinate=coordinate,
            file_format=file_format,
            parameters=parameters,
            format_settings=format_settings,
        )
        if timeout_minutes is None:
            timeout_minutes = self._default_timeout_minutes
        return await self._orchestrator.run(request, timeout_minutes, cancel_event)

    async def export_report(
        self,
        coordinate: ReportCoordinate,
        file_format: Union[str, FileFormat],
        parameters: Optional[Iterable[ParameterInput]] = None,
        format_settings: Optional[Mapping[str, Any]] = None,
        timeout_minutes: Optional[Union[int, float]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """
        Export any report, dispatching on its type.

        Only paginated reports can be exported.

        Raises:
            NotFoundError: Report does not exist
            UnsupportedReportTypeError: Report is not paginated
        """
        report = await self._client.resolve_report(coordinate)
        if not report.is_paginated:
            logger.warning(
                f"[service] Export of {coordinate} rejected: "
                f"report type {report.report_type.value} is not paginated"
            )
            raise UnsupportedReportTypeError(
                message=f"Unsupported report type '{report.report_type.value}' for export",
                report_type=report.report_type.value,
                operation="export_report",
            )
        return await self.export_paginated(
            coordinate,
            file_format,
            parameters=parameters,
            format_settings=format_settings,
            timeout_minutes=timeout_minutes,
            cancel_event=cancel_event,
        )

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()

    async def __aenter__(self) -> "PowerBIService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
