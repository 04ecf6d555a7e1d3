"""
Power BI REST Client Tests.

============================================================
PURPOSE
============================================================
HTTP-level tests for the REST adapter using aioresponses.

TEST CATEGORIES:
- Request shape: paths, bodies, bearer header
- Response parsing: reports, jobs, Retry-After, files
- Error mapping: 400/401/404/429/5xx and connection errors

============================================================
"""

import re
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import aiohttp
import pytest
import pytest_asyncio
from aioresponses import aioresponses

from powerbi_connector import (
    AccessToken,
    AuthenticationError,
    ExportRequest,
    ExportState,
    FileFormat,
    InvalidArgumentError,
    NotFoundError,
    PowerBIConfig,
    PowerBIRestClient,
    RateLimitError,
    ReportCoordinate,
    ReportType,
    TransientNetworkError,
    parse_retry_after,
)
from powerbi_connector.models import ExportJob


WORKSPACE_ID = "f089354e-8366-4e18-aea3-4cb4a3a50b48"
REPORT_ID = "cd1e6c29-1f4d-4c3b-a1e5-6c9e1d2b3a4f"
EXPORT_ID = "Mi9C5419iZ2RmYjUtODk3MS00ZjQ5"
COORDINATE = ReportCoordinate(workspace_id=WORKSPACE_ID, report_id=REPORT_ID)

BASE = "https://api.powerbi.com/v1.0/myorg"
REPORT_URL = f"{BASE}/groups/{WORKSPACE_ID}/reports/{REPORT_ID}"


@pytest.fixture
def token_provider():
    provider = AsyncMock()
    provider.acquire_token = AsyncMock(return_value=AccessToken(value="bearer-abc"))
    return provider


@pytest.fixture
def config():
    return PowerBIConfig(client_id="app", client_secret="s3cret", tenant_id="tenant")


@pytest_asyncio.fixture
async def client(config, token_provider):
    rest = PowerBIRestClient(config, token_provider=token_provider)
    yield rest
    await rest.close()


@pytest.fixture
def mocked():
    with aioresponses() as m:
        yield m


def sent(mocked, method):
    """All recorded calls for an HTTP method."""
    return [
        call
        for (call_method, _), calls in mocked.requests.items()
        if call_method == method
        for call in calls
    ]


# ============================================================
# REPORTS & WORKSPACES
# ============================================================

class TestReports:

    @pytest.mark.asyncio
    async def test_resolve_report(self, client, mocked, token_provider):
        mocked.get(REPORT_URL, payload={
            "id": REPORT_ID,
            "name": "Invoices",
            "embedUrl": "https://app.powerbi.com/rdlEmbed?reportId=x",
            "reportType": "PaginatedReport",
            "datasetId": "",
        })

        report = await client.resolve_report(COORDINATE)

        assert report.name == "Invoices"
        assert report.report_type == ReportType.PAGINATED_REPORT
        assert report.is_paginated
        assert report.dataset_id is None
        assert report.workspace_id == WORKSPACE_ID
        call = sent(mocked, "GET")[0]
        assert call.kwargs["headers"]["Authorization"] == "Bearer bearer-abc"
        token_provider.acquire_token.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resolve_report_not_found(self, client, mocked):
        mocked.get(REPORT_URL, status=404, body="{}")

        with pytest.raises(NotFoundError):
            await client.resolve_report(COORDINATE)

    @pytest.mark.asyncio
    async def test_invalid_coordinate_makes_no_call(self, client, mocked, token_provider):
        with pytest.raises(InvalidArgumentError):
            await client.resolve_report(ReportCoordinate("workspace", REPORT_ID))
        token_provider.acquire_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_reports(self, client, mocked):
        mocked.get(f"{BASE}/groups/{WORKSPACE_ID}/reports", payload={"value": [
            {"id": "r1", "name": "One", "embedUrl": "u1", "reportType": "PowerBIReport"},
            {"id": "r2", "name": "Two", "embedUrl": "u2", "reportType": "PaginatedReport"},
        ]})

        reports = await client.list_reports(WORKSPACE_ID)

        assert [r.id for r in reports] == ["r1", "r2"]
        assert [r.is_paginated for r in reports] == [False, True]

    @pytest.mark.asyncio
    async def test_list_workspaces_filters_workspaces(self, client, mocked):
        mocked.get(re.compile(rf"^{re.escape(BASE)}/admin/groups.*"), payload={"value": [
            {"id": WORKSPACE_ID, "name": "Finance", "type": "Workspace", "isOnDedicatedCapacity": True},
        ]})

        workspaces = await client.list_workspaces()

        assert workspaces[0].name == "Finance"
        assert workspaces[0].is_on_dedicated_capacity is True
        call = sent(mocked, "GET")[0]
        assert call.kwargs["params"] == {"$top": "100", "$filter": "type eq 'Workspace'"}


# ============================================================
# EMBED TOKENS
# ============================================================

class TestEmbedTokens:

    @pytest.mark.asyncio
    async def test_interactive_token(self, client, mocked):
        mocked.post(f"{REPORT_URL}/GenerateToken", payload={
            "token": "embed-token",
            "tokenId": "tid",
            "expiration": "2025-02-01T10:00:00Z",
        })

        token = await client.generate_interactive_token(COORDINATE)

        assert token.token == "embed-token"
        assert token.expiration == datetime(2025, 2, 1, 10, 0, tzinfo=timezone.utc)
        assert sent(mocked, "POST")[0].kwargs["json"] == {"accessLevel": "View"}

    @pytest.mark.asyncio
    async def test_multi_target_token(self, client, mocked):
        mocked.post(f"{BASE}/GenerateToken", payload={"token": "v2-token"})

        token = await client.generate_embed_token_v2(COORDINATE, ["d1", "d2"])

        assert token.token == "v2-token"
        body = sent(mocked, "POST")[0].kwargs["json"]
        assert body["targetWorkspaces"] == [{"id": WORKSPACE_ID}]
        assert body["reports"] == [{"id": REPORT_ID, "allowEdit": False}]
        assert [d["xmlaPermissions"] for d in body["datasets"]] == ["ReadOnly", "ReadOnly"]

    @pytest.mark.asyncio
    async def test_multi_target_token_requires_datasets(self, client, mocked, token_provider):
        with pytest.raises(InvalidArgumentError):
            await client.generate_embed_token_v2(COORDINATE, [])
        token_provider.acquire_token.assert_not_awaited()


# ============================================================
# EXPORT
# ============================================================

class TestExport:

    @pytest.mark.asyncio
    async def test_submit_export(self, client, mocked):
        mocked.post(f"{REPORT_URL}/ExportTo", status=202, payload={"id": EXPORT_ID, "status": "NotStarted"})

        request = ExportRequest.build(
            COORDINATE,
            FileFormat.XLSX,
            parameters=[("FromDate", "2/1/2025"), ("Country", "USA")],
            format_settings={"PageHeight": "14in"},
        )
        export_id = await client.submit_export(request)

        assert export_id == EXPORT_ID
        assert sent(mocked, "POST")[0].kwargs["json"] == {
            "format": "XLSX",
            "paginatedReportConfiguration": {
                "formatSettings": {"PageHeight": "14in"},
                "parameterValues": [
                    {"name": "FromDate", "value": "2/1/2025"},
                    {"name": "Country", "value": "USA"},
                ],
            },
        }

    @pytest.mark.asyncio
    async def test_submit_export_without_id(self, client, mocked):
        mocked.post(f"{REPORT_URL}/ExportTo", status=202, payload={})

        with pytest.raises(TransientNetworkError):
            await client.submit_export(ExportRequest.build(COORDINATE, FileFormat.PDF))

    @pytest.mark.asyncio
    async def test_poll_running_reads_retry_after(self, client, mocked):
        mocked.get(
            f"{REPORT_URL}/exports/{EXPORT_ID}",
            payload={"id": EXPORT_ID, "status": "Running", "percentComplete": 40},
            headers={"Retry-After": "3"},
        )

        job = await client.poll_export_status(COORDINATE, EXPORT_ID)

        assert job.status == ExportState.RUNNING
        assert job.percent_complete == 40
        assert job.retry_after_seconds == 3

    @pytest.mark.asyncio
    async def test_poll_succeeded_ignores_retry_after(self, client, mocked):
        mocked.get(
            f"{REPORT_URL}/exports/{EXPORT_ID}",
            payload={
                "id": EXPORT_ID,
                "status": "Succeeded",
                "percentComplete": 100,
                "reportName": "Invoices",
                "resourceFileExtension": ".xlsx",
            },
            headers={"Retry-After": "3"},
        )

        job = await client.poll_export_status(COORDINATE, EXPORT_ID)

        assert job.is_terminal
        assert job.retry_after_seconds is None
        assert job.report_name == "Invoices"

    @pytest.mark.asyncio
    async def test_poll_undefined_status(self, client, mocked):
        """Statuses outside the known set map to Undefined, which is non-terminal."""
        mocked.get(
            f"{REPORT_URL}/exports/{EXPORT_ID}",
            payload={"id": EXPORT_ID, "status": "Undefined"},
            headers={"Retry-After": "5"},
        )

        job = await client.poll_export_status(COORDINATE, EXPORT_ID)

        assert job.status == ExportState.UNDEFINED
        assert not job.is_terminal
        assert job.retry_after_seconds == 5

    @pytest.mark.asyncio
    async def test_poll_response_without_id(self, client, mocked):
        mocked.get(f"{REPORT_URL}/exports/{EXPORT_ID}", payload={"status": "Running"})

        with pytest.raises(TransientNetworkError) as exc_info:
            await client.poll_export_status(COORDINATE, EXPORT_ID)

        assert "Running" in exc_info.value.response_body

    @pytest.mark.asyncio
    async def test_fetch_exported_file(self, client, mocked):
        mocked.get(f"{REPORT_URL}/exports/{EXPORT_ID}/file", body=b"PK\x03\x04data")
        job = ExportJob(
            export_id=EXPORT_ID,
            status=ExportState.SUCCEEDED,
            report_name="Invoices",
            resource_file_extension=".xlsx",
        )

        exported = await client.fetch_exported_file(COORDINATE, job)

        with exported:
            assert exported.read() == b"PK\x03\x04data"
        assert exported.filename == "Invoices.xlsx"

    @pytest.mark.asyncio
    async def test_fetch_requires_succeeded(self, client, mocked, token_provider):
        job = ExportJob(export_id=EXPORT_ID, status=ExportState.RUNNING)

        with pytest.raises(InvalidArgumentError):
            await client.fetch_exported_file(COORDINATE, job)
        token_provider.acquire_token.assert_not_awaited()


# ============================================================
# ERROR MAPPING
# ============================================================

class TestErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors(self, client, mocked, status):
        mocked.get(REPORT_URL, status=status, body="")
        with pytest.raises(AuthenticationError):
            await client.resolve_report(COORDINATE)

    @pytest.mark.asyncio
    async def test_bad_request(self, client, mocked):
        mocked.post(f"{REPORT_URL}/ExportTo", status=400, body='{"error": {"code": "InvalidRequest"}}')
        with pytest.raises(InvalidArgumentError):
            await client.submit_export(ExportRequest.build(COORDINATE, FileFormat.PDF))

    @pytest.mark.asyncio
    async def test_rate_limited(self, client, mocked):
        mocked.get(REPORT_URL, status=429, body="", headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            await client.resolve_report(COORDINATE)

        assert exc_info.value.retry_after_seconds == 7
        assert isinstance(exc_info.value, TransientNetworkError)

    @pytest.mark.asyncio
    async def test_server_error(self, client, mocked):
        mocked.get(REPORT_URL, status=503, body="Service Unavailable")

        with pytest.raises(TransientNetworkError) as exc_info:
            await client.resolve_report(COORDINATE)

        assert exc_info.value.status_code == 503
        assert exc_info.value.is_server_error()

    @pytest.mark.asyncio
    async def test_non_json_success_body(self, client, mocked):
        """An HTML gateway page on a 200 is a transport failure, not a crash."""
        mocked.get(REPORT_URL, status=200, body="<html>gateway</html>")

        with pytest.raises(TransientNetworkError) as exc_info:
            await client.resolve_report(COORDINATE)

        assert exc_info.value.status_code == 200
        assert "gateway" in exc_info.value.response_body
        assert exc_info.value.operation == "resolve_report"

    @pytest.mark.asyncio
    async def test_connection_error(self, client, mocked):
        mocked.get(REPORT_URL, exception=aiohttp.ClientConnectionError("reset"))

        with pytest.raises(TransientNetworkError) as exc_info:
            await client.resolve_report(COORDINATE)

        assert exc_info.value.operation == "resolve_report"
        assert exc_info.value.status_code is None


class TestParseRetryAfter:

    def test_delta_seconds(self):
        assert parse_retry_after("30") == 30

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_unusable(self, value):
        assert parse_retry_after(value) is None

    def test_http_date(self):
        now = datetime(2025, 2, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Sat, 01 Feb 2025 10:00:12 GMT", now=now) == 12

    def test_http_date_in_past(self):
        now = datetime(2025, 2, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert parse_retry_after("Sat, 01 Feb 2025 09:59:00 GMT", now=now) == 0
