"""
Embed Token Builder - Token request assembly.

Pure assembly, no I/O. Interactive reports get a view-only report token;
paginated reports need a multi-target token covering the workspace, the
report and every dataset the report reads from.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from powerbi_connector.exceptions import InvalidArgumentError
from powerbi_connector.models import AccessLevel, ReportCoordinate, XmlaPermissions


@dataclass(frozen=True)
class WorkspaceTarget:
    id: str

    @property
    def read_only(self) -> bool:
        # Workspace targets only scope the token
        return True

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id}


@dataclass(frozen=True)
class ReportTarget:
    id: str
    allow_edit: bool = False

    @property
    def read_only(self) -> bool:
        return not self.allow_edit

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "allowEdit": self.allow_edit}


@dataclass(frozen=True)
class DatasetTarget:
    id: str
    xmla_permissions: XmlaPermissions = XmlaPermissions.READ_ONLY

    @property
    def read_only(self) -> bool:
        return self.xmla_permissions == XmlaPermissions.READ_ONLY

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "xmlaPermissions": self.xmla_permissions.value}


@dataclass(frozen=True)
class TokenRequestV2:
    """Multi-target GenerateToken request."""
    workspaces: tuple[WorkspaceTarget, ...]
    reports: tuple[ReportTarget, ...]
    datasets: tuple[DatasetTarget, ...]

    @property
    def targets(self) -> tuple[Any, ...]:
        return self.workspaces + self.reports + self.datasets

    def to_payload(self) -> dict[str, Any]:
        return {
            "datasets": [d.to_payload() for d in self.datasets],
            "reports": [r.to_payload() for r in self.reports],
            "targetWorkspaces": [w.to_payload() for w in self.workspaces],
        }


def build_interactive_token_request() -> dict[str, Any]:
    """Report-scoped token request; access is always view-only."""
    return {"accessLevel": AccessLevel.VIEW.value}


def normalize_dataset_ids(dataset_ids: Iterable[str]) -> list[str]:
    """
    Validate dataset ids, keeping order. Duplicates are rejected.

    Paginated reports always need at least one dataset; the ids cannot be
    derived from the report, so callers must pass them explicitly.
    """
    if dataset_ids is None or isinstance(dataset_ids, str):
        raise InvalidArgumentError(
            message="dataset_ids must be a list of dataset identifiers",
            operation="generate_embed_token_v2",
        )

    seen: list[str] = []
    for dataset_id in dataset_ids:
        if not dataset_id or not str(dataset_id).strip():
            raise InvalidArgumentError(
                message="Dataset identifiers must not be blank",
                operation="generate_embed_token_v2",
            )
        dataset_id = str(dataset_id).strip()
        if dataset_id in seen:
            raise InvalidArgumentError(
                message=f"Duplicate dataset id: {dataset_id}",
                operation="generate_embed_token_v2",
                context={"dataset_id": dataset_id},
            )
        seen.append(dataset_id)

    if not seen:
        raise InvalidArgumentError(
            message="Paginated reports require at least one dataset id",
            operation="generate_embed_token_v2",
        )
    return seen


def build_paginated_token_request(
    coordinate: ReportCoordinate,
    dataset_ids: Iterable[str],
) -> TokenRequestV2:
    """Build the workspace + report + per-dataset token request."""
    datasets = normalize_dataset_ids(dataset_ids)
    return TokenRequestV2(
        workspaces=(WorkspaceTarget(coordinate.workspace_id),),
        reports=(ReportTarget(coordinate.report_id),),
        datasets=tuple(DatasetTarget(d) for d in datasets),
    )
