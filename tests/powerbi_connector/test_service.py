"""
Power BI Service Tests.

============================================================
PURPOSE
============================================================
Tests for the public operation surface against the mock client.

TEST CATEGORIES:
- Embedding: interactive and paginated credentials
- Listing: workspaces and reports
- Export: dispatch by report type, argument validation
- Wiring: construction from config, lifecycle

============================================================
"""

import pytest

from powerbi_connector import (
    ConfigurationError,
    ExportOutcome,
    FileFormat,
    InvalidArgumentError,
    NotFoundError,
    PowerBIConfig,
    PowerBIRestClient,
    PowerBIService,
    ReportCoordinate,
    ReportType,
    UnsupportedReportTypeError,
    WorkspaceMetadata,
)
from powerbi_connector.mock import MockConfig, MockReportingClient


WORKSPACE_ID = "f089354e-8366-4e18-aea3-4cb4a3a50b48"
REPORT_ID = "cd1e6c29-1f4d-4c3b-a1e5-6c9e1d2b3a4f"
OTHER_REPORT_ID = "0b6f5a1e-2c3d-4e5f-8a9b-0c1d2e3f4a5b"
COORDINATE = ReportCoordinate(workspace_id=WORKSPACE_ID, report_id=REPORT_ID)


@pytest.fixture
def client():
    mock = MockReportingClient(MockConfig(
        workspaces=[WorkspaceMetadata(id=WORKSPACE_ID, name="Finance", type="Workspace")],
    ))
    mock.add_report(COORDINATE, name="Invoices", report_type=ReportType.PAGINATED_REPORT)
    mock.add_report(
        ReportCoordinate(WORKSPACE_ID, OTHER_REPORT_ID),
        name="Dashboard",
        report_type=ReportType.POWER_BI_REPORT,
    )
    return mock


@pytest.fixture
def service(client):
    return PowerBIService(client)


# ============================================================
# EMBEDDING
# ============================================================

class TestEmbedding:

    @pytest.mark.asyncio
    async def test_interactive_embed_info(self, service, client):
        credential = await service.get_embed_info(COORDINATE)

        assert credential.report_id == REPORT_ID
        assert credential.report_name == "Invoices"
        assert REPORT_ID in credential.embed_url
        assert credential.token == f"view-{REPORT_ID}"
        assert client.operations() == ["resolve_report", "generate_interactive_token"]

    @pytest.mark.asyncio
    async def test_paginated_embed_info(self, service, client):
        credential = await service.get_embed_info_paginated(COORDINATE, ["d1", "d2"])

        assert credential.token == f"v2-{REPORT_ID}"
        assert [d["id"] for d in client.last_token_request["datasets"]] == ["d1", "d2"]
        assert client.last_token_request["targetWorkspaces"] == [{"id": WORKSPACE_ID}]

    @pytest.mark.asyncio
    async def test_paginated_embed_requires_datasets(self, service, client):
        """Empty dataset list fails before any network call."""
        with pytest.raises(InvalidArgumentError):
            await service.get_embed_info_paginated(COORDINATE, [])

        assert client.calls == []

    @pytest.mark.asyncio
    async def test_unknown_report(self, service):
        missing = ReportCoordinate(WORKSPACE_ID, "11111111-2222-3333-4444-555555555555")
        with pytest.raises(NotFoundError):
            await service.get_embed_info(missing)

    @pytest.mark.asyncio
    async def test_credential_repr_hides_token(self, service):
        credential = await service.get_embed_info(COORDINATE)
        assert credential.token not in repr(credential)
        assert credential.to_dict()["token"] == credential.token


# ============================================================
# LISTING
# ============================================================

class TestListing:

    @pytest.mark.asyncio
    async def test_list_workspaces(self, service):
        workspaces = await service.list_workspaces()
        assert [w.name for w in workspaces] == ["Finance"]

    @pytest.mark.asyncio
    async def test_list_reports(self, service):
        reports = await service.list_reports(WORKSPACE_ID)
        assert sorted(r.name for r in reports) == ["Dashboard", "Invoices"]


# ============================================================
# EXPORT
# ============================================================

class TestExport:

    @pytest.mark.asyncio
    async def test_export_paginated(self, service, client):
        result = await service.export_paginated(
            COORDINATE,
            "xlsx",
            parameters=[{"FromDate": "2/1/2025"}, ("Country", "USA")],
            format_settings={"StartPage": 1},
            timeout_minutes=1,
        )

        assert result.outcome == ExportOutcome.SUCCEEDED
        submitted = client.calls[0][1][0]
        assert submitted.file_format == FileFormat.XLSX
        assert [(p.name, p.value) for p in submitted.parameters] == [
            ("FromDate", "2/1/2025"),
            ("Country", "USA"),
        ]
        assert dict(submitted.format_settings) == {"StartPage": "1"}

    @pytest.mark.asyncio
    async def test_export_invalid_coordinate(self, service, client):
        with pytest.raises(InvalidArgumentError):
            await service.export_paginated(ReportCoordinate("not-a-guid", REPORT_ID), FileFormat.PDF)
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_export_unknown_format(self, service, client):
        with pytest.raises(InvalidArgumentError):
            await service.export_paginated(COORDINATE, "exe")
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_export_report_dispatches_paginated(self, service, client):
        result = await service.export_report(COORDINATE, FileFormat.PDF, timeout_minutes=1)

        assert result.ok
        assert client.operations()[:2] == ["resolve_report", "submit_export"]

    @pytest.mark.asyncio
    async def test_export_report_rejects_interactive(self, service, client):
        with pytest.raises(UnsupportedReportTypeError) as exc_info:
            await service.export_report(ReportCoordinate(WORKSPACE_ID, OTHER_REPORT_ID), FileFormat.PDF)

        assert exc_info.value.report_type == "PowerBIReport"
        assert "submit_export" not in client.operations()


# ============================================================
# WIRING
# ============================================================

class TestWiring:

    def test_from_config_requires_credentials(self):
        with pytest.raises(ConfigurationError) as exc_info:
            PowerBIService.from_config(PowerBIConfig(client_id="app", tenant_id="tenant"))
        assert exc_info.value.config_key == "client_secret"

    @pytest.mark.asyncio
    async def test_from_config_builds_rest_client(self):
        config = PowerBIConfig(client_id="app", client_secret="s3cret", tenant_id="tenant")
        async with PowerBIService.from_config(config) as service:
            assert isinstance(service.client, PowerBIRestClient)

    @pytest.mark.asyncio
    async def test_close_only_owned_client(self, client):
        async with PowerBIService(client):
            pass
        assert client.closed is False

        async with PowerBIService(client, owns_client=True):
            pass
        assert client.closed is True
