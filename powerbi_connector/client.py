"""
Power BI REST Client - Reporting platform adapter over aiohttp.

Endpoints used (relative to {api_url}/v1.0/myorg):
- GET  /groups/{group}/reports/{report}               - Report lookup
- GET  /groups/{group}/reports                        - Report listing
- GET  /admin/groups                                  - Workspace listing
- POST /groups/{group}/reports/{report}/GenerateToken - View token
- POST /GenerateToken                                 - Multi-target token
- POST /groups/{group}/reports/{report}/ExportTo      - Start export
- GET  /groups/{group}/reports/{report}/exports/{id}  - Export status
- GET  /groups/{group}/reports/{report}/exports/{id}/file - Export file

A bearer token is acquired for every operation; nothing is cached.
"""

import asyncio
import io
import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterable, Optional, Protocol

import aiohttp

from powerbi_connector.auth import AccessToken, ClientCredentialProvider
from powerbi_connector.base import ReportingClient
from powerbi_connector.config import PowerBIConfig
from powerbi_connector.exceptions import (
    AuthenticationError,
    InvalidArgumentError,
    NotFoundError,
    RateLimitError,
    TransientNetworkError,
)
from powerbi_connector.logging_utils import mask_headers, mask_text
from powerbi_connector.models import (
    EmbedToken,
    ExportedFile,
    ExportJob,
    ExportRequest,
    ExportState,
    ReportCoordinate,
    ReportMetadata,
    WorkspaceMetadata,
)
from powerbi_connector.tokens import (
    build_interactive_token_request,
    build_paginated_token_request,
)


logger = logging.getLogger(__name__)


class TokenProvider(Protocol):
    async def acquire_token(self) -> AccessToken:
        ...


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    """
    Parse a Retry-After header into whole seconds.

    Accepts delta-seconds ("30") and HTTP-date forms. Returns None when
    the header is absent or unparseable.
    """
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((when - now).total_seconds()))


class PowerBIRestClient(ReportingClient):
    """
    Reporting client for the Power BI REST API.

    Uses an injected aiohttp session when given (shared, never closed
    here); otherwise lazily opens its own session and closes it on close().
    """

    API_VERSION_PATH = "/v1.0/myorg"

    def __init__(
        self,
        config: PowerBIConfig,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._base_url = f"{config.api_url.rstrip('/')}{self.API_VERSION_PATH}"
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._token_provider = token_provider or ClientCredentialProvider(config, session=session)

    @property
    def name(self) -> str:
        return "powerbi_rest"

    @property
    def base_url(self) -> str:
        return self._base_url

    # --------------------------------------------------------
    # Reports & workspaces
    # --------------------------------------------------------

    async def resolve_report(self, coordinate: ReportCoordinate) -> ReportMetadata:
        coordinate.validate()
        data, _ = await self._request(
            "GET",
            self._report_path(coordinate),
            operation="resolve_report",
        )
        return ReportMetadata.from_api(data, workspace_id=coordinate.workspace_id)

    async def list_reports(self, workspace_id: str) -> list[ReportMetadata]:
        data, _ = await self._request(
            "GET",
            f"/groups/{workspace_id}/reports",
            operation="list_reports",
        )
        return [ReportMetadata.from_api(r, workspace_id=workspace_id) for r in data.get("value", [])]

    async def list_workspaces(self) -> list[WorkspaceMetadata]:
        data, _ = await self._request(
            "GET",
            "/admin/groups",
            operation="list_workspaces",
            params={
                "$top": str(self._config.workspace_page_size),
                "$filter": "type eq 'Workspace'",
            },
        )
        return [WorkspaceMetadata.from_api(g) for g in data.get("value", [])]

    # --------------------------------------------------------
    # Embed tokens
    # --------------------------------------------------------

    async def generate_interactive_token(self, coordinate: ReportCoordinate) -> EmbedToken:
        coordinate.validate()
        data, _ = await self._request(
            "POST",
            f"{self._report_path(coordinate)}/GenerateToken",
            operation="generate_interactive_token",
            json=build_interactive_token_request(),
        )
        return EmbedToken.from_api(data)

    async def generate_embed_token_v2(
        self,
        coordinate: ReportCoordinate,
        dataset_ids: Iterable[str],
    ) -> EmbedToken:
        coordinate.validate()
        token_request = build_paginated_token_request(coordinate, dataset_ids)
        data, _ = await self._request(
            "POST",
            "/GenerateToken",
            operation="generate_embed_token_v2",
            json=token_request.to_payload(),
        )
        return EmbedToken.from_api(data)

    # --------------------------------------------------------
    # Export
    # --------------------------------------------------------

    async def submit_export(self, request: ExportRequest) -> str:
        request.coordinate.validate()
        data, _ = await self._request(
            "POST",
            f"{self._report_path(request.coordinate)}/ExportTo",
            operation="submit_export",
            json=request.to_payload(),
        )
        export_id = data.get("id")
        if not export_id:
            raise TransientNetworkError(
                message="Export response did not contain an export id",
                operation="submit_export",
                response_body=str(data)[:1000],
            )
        return export_id

    async def poll_export_status(self, coordinate: ReportCoordinate, export_id: str) -> ExportJob:
        data, headers = await self._request(
            "GET",
            f"{self._report_path(coordinate)}/exports/{export_id}",
            operation="poll_export_status",
        )
        retry_after = parse_retry_after(headers.get("Retry-After"))
        return ExportJob.from_api(data, retry_after_seconds=retry_after)

    async def fetch_exported_file(self, coordinate: ReportCoordinate, job: ExportJob) -> ExportedFile:
        if job.status != ExportState.SUCCEEDED:
            raise InvalidArgumentError(
                message=f"Export {job.export_id} is {job.status.value}, not Succeeded",
                operation="fetch_exported_file",
            )
        content, _ = await self._request(
            "GET",
            f"{self._report_path(coordinate)}/exports/{job.export_id}/file",
            operation="fetch_exported_file",
            expect="bytes",
        )
        return ExportedFile(
            file_stream=io.BytesIO(content),
            report_name=job.report_name or "Export",
            file_extension=job.resource_file_extension or "",
        )

    # --------------------------------------------------------
    # Transport
    # --------------------------------------------------------

    def _report_path(self, coordinate: ReportCoordinate) -> str:
        return f"/groups/{coordinate.workspace_id}/reports/{coordinate.report_id}"

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._get_default_headers())
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": "powerbi-connector/1.0",
        }

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        expect: str = "json",
    ) -> tuple[Any, Any]:
        """Make one HTTP call with a fresh bearer token and map errors."""
        token = await self._token_provider.acquire_token()
        session = await self._get_session()
        url = f"{self._base_url}{path}"
        headers = {"Authorization": token.authorization_header}
        logger.debug(f"[{self.name}] {operation} {method} {path} headers={mask_headers(headers)}")

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=self._timeout,
            ) as response:
                latency_ms = (time.time() - start_time) * 1000

                if response.status >= 400:
                    body = await response.text()
                    raise self._map_status(response.status, body, url, operation, response.headers)

                if expect == "bytes":
                    payload: Any = await response.read()
                elif response.status == 204:
                    payload = {}
                else:
                    try:
                        payload = await response.json(content_type=None)
                    except ValueError as e:
                        body = await response.text()
                        raise TransientNetworkError(
                            message=f"Unparseable response body ({operation})",
                            status_code=response.status,
                            response_body=mask_text(body)[:1000],
                            request_url=url,
                            operation=operation,
                            original_error=e,
                        )
                    if payload is None:
                        payload = {}

                logger.debug(
                    f"[{self.name}] {operation} {method} {path} -> {response.status} "
                    f"in {latency_ms:.1f}ms"
                )
                return payload, response.headers

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientNetworkError(
                message=f"Connection error: {e.__class__.__name__}: {e}",
                request_url=url,
                operation=operation,
                original_error=e,
            )

    def _map_status(
        self,
        status: int,
        body: str,
        url: str,
        operation: str,
        headers: Any,
    ) -> Exception:
        body = mask_text(body or "")[:1000]
        context = {"status_code": status, "request_url": url}

        if status == 404:
            return NotFoundError(
                message=f"Resource not found ({operation})",
                operation=operation,
                context=context,
            )
        if status in (401, 403):
            return AuthenticationError(
                message=f"Platform rejected the bearer token (HTTP {status})",
                operation=operation,
                context=context,
            )
        if status == 400:
            return InvalidArgumentError(
                message=f"Platform rejected the request: {body[:200]}",
                operation=operation,
                context=context,
            )
        if status == 429:
            return RateLimitError(
                message="Rate limit exceeded",
                retry_after_seconds=parse_retry_after(headers.get("Retry-After")),
                request_url=url,
                operation=operation,
            )
        return TransientNetworkError(
            message=f"HTTP {status}",
            status_code=status,
            response_body=body,
            request_url=url,
            operation=operation,
        )

    async def close(self) -> None:
        """Close the session if this client opened it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
