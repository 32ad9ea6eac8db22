"""Async client for the Rally Web Services API (WSAPI v2.0).

The client wraps an httpx.AsyncClient whose base URL is the WSAPI root and
whose default headers already carry credentials (see security.get_auth_headers).
HTTP failures propagate as httpx exceptions; errors reported inside a Rally
payload raise RallyApiError. Classification happens in the caller.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

from .exceptions import RallyApiError, RallyResponseError, UnknownArtifactTypeError
from .models import ArtifactType

logger = logging.getLogger("rally-core.rally_client")

DEFAULT_FETCH = "FormattedID,Name,Description,Owner,Project,CreationDate,LastUpdateDate"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200  # Rally maximum

ARTIFACT_ENDPOINTS: dict[ArtifactType, str] = {
    ArtifactType.USER_STORY: "/hierarchicalrequirement",
    ArtifactType.HIERARCHICAL_REQUIREMENT: "/hierarchicalrequirement",
    ArtifactType.DEFECT: "/defect",
    ArtifactType.TASK: "/task",
    ArtifactType.PROJECT: "/project",
    ArtifactType.USER: "/user",
    ArtifactType.WORKSPACE: "/workspace",
    ArtifactType.ITERATION: "/iteration",
}

# Type name Rally expects as the payload wrapper key
WSAPI_TYPE_NAMES: dict[ArtifactType, str] = {
    ArtifactType.USER_STORY: "HierarchicalRequirement",
    ArtifactType.HIERARCHICAL_REQUIREMENT: "HierarchicalRequirement",
    ArtifactType.DEFECT: "Defect",
    ArtifactType.TASK: "Task",
    ArtifactType.PROJECT: "Project",
    ArtifactType.USER: "User",
    ArtifactType.WORKSPACE: "Workspace",
    ArtifactType.ITERATION: "Iteration",
}


@dataclass
class RallyQuery:
    """Query parameters for a WSAPI collection request."""

    query: Optional[str] = None
    fetch: Optional[str] = None
    order: Optional[str] = None
    start: Optional[int] = None
    pagesize: Optional[int] = None
    workspace: Optional[str] = None
    project: Optional[str] = None

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {"fetch": self.fetch or DEFAULT_FETCH}

        if self.query:
            params["query"] = self.query
        if self.order:
            params["order"] = self.order
        if self.start is not None:
            params["start"] = str(self.start)

        pagesize = DEFAULT_PAGE_SIZE if self.pagesize is None else min(self.pagesize, MAX_PAGE_SIZE)
        params["pagesize"] = str(pagesize)

        if self.workspace:
            params["workspace"] = self.workspace
        if self.project:
            params["project"] = self.project

        return params


@dataclass
class RallyResponse:
    """Normalized Rally response: every shape collapses to a result list."""

    results: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    total_result_count: Optional[int] = None
    start_index: Optional[int] = None
    page_size: Optional[int] = None

    @property
    def first(self) -> Optional[dict]:
        return self.results[0] if self.results else None


def resolve_artifact_type(artifact_type: Union[str, ArtifactType]) -> ArtifactType:
    """Coerce a string to ArtifactType.

    Raises:
        UnknownArtifactTypeError: If the type has no endpoint
    """
    try:
        return ArtifactType(artifact_type)
    except ValueError:
        raise UnknownArtifactTypeError(str(artifact_type), [t.value for t in ArtifactType]) from None


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _raise_for_errors(errors: list) -> None:
    if errors:
        raise RallyApiError(f"Rally API error: {', '.join(str(e) for e in errors)}", errors=errors)


def parse_rally_response(data: Any) -> RallyResponse:
    """Normalize the WSAPI response shapes.

    Handles:
    1. QueryResult (query operations)
    2. CreateResult / OperationResult (create and update)
    3. Direct object, e.g. {"Defect": {...}} (single-object reads)

    Raises:
        RallyApiError: If Rally reported errors
        RallyResponseError: If the payload has none of the known shapes
    """
    if not data or not isinstance(data, dict):
        raise RallyResponseError("Invalid Rally API response: missing data", payload=data)

    for key in ("CreateResult", "OperationResult"):
        result = data.get(key)
        if isinstance(result, dict):
            _raise_for_errors(_as_list(result.get("Errors")))
            obj = result.get("Object")
            return RallyResponse(
                results=[obj] if obj else [],
                warnings=_as_list(result.get("Warnings")),
            )

    query_result = data.get("QueryResult")
    if isinstance(query_result, dict):
        _raise_for_errors(_as_list(query_result.get("Errors")))
        return RallyResponse(
            results=_as_list(query_result.get("Results")),
            warnings=_as_list(query_result.get("Warnings")),
            total_result_count=query_result.get("TotalResultCount"),
            start_index=query_result.get("StartIndex"),
            page_size=query_result.get("PageSize"),
        )

    for type_name in dict.fromkeys(WSAPI_TYPE_NAMES.values()):
        obj = data.get(type_name)
        if isinstance(obj, dict):
            _raise_for_errors(_as_list(obj.get("Errors")))
            return RallyResponse(results=[obj], warnings=_as_list(obj.get("Warnings")))

    raise RallyResponseError(
        "Invalid Rally API response: missing QueryResult, CreateResult, OperationResult, or direct object format",
        payload=data,
    )


class RallyClient:
    """CRUD and query operations against Rally WSAPI."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def authenticate(self) -> RallyResponse:
        """Verify credentials with a minimal workspace read."""
        response = await self.http.get(
            ARTIFACT_ENDPOINTS[ArtifactType.WORKSPACE],
            params={"fetch": "Name", "pagesize": "1"},
            timeout=10.0,
        )
        response.raise_for_status()
        result = parse_rally_response(response.json())
        logger.info(f"Rally API authentication successful ({self.http.base_url})")
        return result

    async def create(self, artifact_type: Union[str, ArtifactType], data: dict) -> RallyResponse:
        kind = resolve_artifact_type(artifact_type)
        payload = {WSAPI_TYPE_NAMES[kind]: data}
        response = await self.http.post(f"{ARTIFACT_ENDPOINTS[kind]}/create", json=payload)
        response.raise_for_status()
        result = parse_rally_response(response.json())
        logger.info(f"Created {kind.value}")
        return result

    async def get(self, artifact_type: Union[str, ArtifactType], object_id: str) -> RallyResponse:
        kind = resolve_artifact_type(artifact_type)
        response = await self.http.get(f"{ARTIFACT_ENDPOINTS[kind]}/{object_id}")
        response.raise_for_status()
        return parse_rally_response(response.json())

    async def update(self, artifact_type: Union[str, ArtifactType], object_id: str, data: dict) -> RallyResponse:
        kind = resolve_artifact_type(artifact_type)
        payload = {WSAPI_TYPE_NAMES[kind]: data}
        response = await self.http.post(f"{ARTIFACT_ENDPOINTS[kind]}/{object_id}", json=payload)
        response.raise_for_status()
        result = parse_rally_response(response.json())
        logger.info(f"Updated {kind.value} {object_id}")
        return result

    async def query(self, artifact_type: Union[str, ArtifactType], query: RallyQuery) -> RallyResponse:
        kind = resolve_artifact_type(artifact_type)
        response = await self.http.get(ARTIFACT_ENDPOINTS[kind], params=query.to_params())
        response.raise_for_status()
        result = parse_rally_response(response.json())
        logger.info(f"Queried {kind.value}: {len(result.results)} results")
        return result
