"""
Power BI Connector - Embed and export reports from the Power BI service.

Features:
- Client-credential authentication against the identity provider
- Embed tokens for interactive and paginated reports
- Workspace and report listing
- Paginated report export with submit/poll/fetch, timeout and cancellation

Quick Start:
    import asyncio
    from powerbi_connector import (
        PowerBIConfig,
        PowerBIService,
        ReportCoordinate,
        FileFormat,
    )

    async def export():
        config = PowerBIConfig.from_env()
        async with PowerBIService.from_config(config) as service:
            result = await service.export_paginated(
                ReportCoordinate(workspace_id="...", report_id="..."),
                FileFormat.XLSX,
                parameters=[("FromDate", "2/1/2025"), ("ToDate", "2/10/2025")],
                timeout_minutes=5,
                cancel_event=asyncio.Event(),
            )
            if result.ok:
                result.file.save("exports")

Adding New Transports:
    1. Create class extending ReportingClient
    2. Implement the report, token and export operations
    3. Pass it to PowerBIService / ExportOrchestrator
"""

from powerbi_connector.auth import AccessToken, ClientCredentialProvider
from powerbi_connector.base import ReportingClient
from powerbi_connector.client import PowerBIRestClient, parse_retry_after
from powerbi_connector.config import PowerBIConfig
from powerbi_connector.delivery import build_download_headers, content_type_for
from powerbi_connector.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ExportCancelledError,
    ExportFailedError,
    ExportTimeoutError,
    InvalidArgumentError,
    NotFoundError,
    PowerBIError,
    RateLimitError,
    TransientNetworkError,
    UnsupportedReportTypeError,
)
from powerbi_connector.export import ExportOrchestrator, ExportPhase, interruptible_sleep
from powerbi_connector.models import (
    EmbedCredential,
    EmbedToken,
    ExportedFile,
    ExportJob,
    ExportOutcome,
    ExportRequest,
    ExportResult,
    ExportState,
    FileFormat,
    ParameterValue,
    ReportCoordinate,
    ReportMetadata,
    ReportType,
    WorkspaceMetadata,
)
from powerbi_connector.service import PowerBIService
from powerbi_connector.tokens import (
    TokenRequestV2,
    build_interactive_token_request,
    build_paginated_token_request,
)


__version__ = "1.0.0"

__all__ = [
    # Service
    "PowerBIService",
    "PowerBIConfig",

    # Clients
    "ReportingClient",
    "PowerBIRestClient",
    "ClientCredentialProvider",
    "AccessToken",
    "parse_retry_after",

    # Export
    "ExportOrchestrator",
    "ExportPhase",
    "interruptible_sleep",

    # Tokens
    "TokenRequestV2",
    "build_interactive_token_request",
    "build_paginated_token_request",

    # Delivery
    "build_download_headers",
    "content_type_for",

    # Models
    "ReportCoordinate",
    "ParameterValue",
    "ExportRequest",
    "ExportJob",
    "ExportState",
    "ExportedFile",
    "ExportOutcome",
    "ExportResult",
    "EmbedCredential",
    "EmbedToken",
    "FileFormat",
    "ReportMetadata",
    "ReportType",
    "WorkspaceMetadata",

    # Exceptions
    "PowerBIError",
    "NotFoundError",
    "InvalidArgumentError",
    "UnsupportedReportTypeError",
    "AuthenticationError",
    "TransientNetworkError",
    "RateLimitError",
    "ExportFailedError",
    "ExportTimeoutError",
    "ExportCancelledError",
    "ConfigurationError",
]
