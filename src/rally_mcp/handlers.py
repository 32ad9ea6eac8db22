"""MCP tool handlers for Rally artifacts.

All handlers follow a consistent pattern:
- Accept: arguments dict (kebab-case) and a RallyClient
- Validate arguments with the matching schema from rally_core.schemas
- Convert outgoing data with transformer.to_external and Rally results with
  transformer.to_internal, so the agent only ever sees kebab-case names
- Return list[TextContent] built with the formatters module
- Let failures propagate; execute_tool classifies and reports them
"""
import logging
from typing import Awaitable, Callable

from mcp.types import TextContent

from rally_core import transformer
from rally_core.diagnostics import DiagnosticRecord, OperationContext
from rally_core.error_classifier import ErrorClassifier
from rally_core.exceptions import UnknownToolError
from rally_core.models import ArtifactType, ErrorSeverity
from rally_core.queries import build_defect_query, build_query_for, build_story_query, build_task_query
from rally_core.rally_client import RallyClient, RallyResponse
from rally_core.schemas import (
    DefectCreate,
    DefectQuery,
    DefectStateUpdate,
    DefectUpdate,
    ObjectIdArgs,
    QueryAllArtifacts,
    TaskCreate,
    TaskQuery,
    TaskUpdate,
    UserStoryCreate,
    UserStoryQuery,
    UserStoryUpdate,
)
from rally_core.security import sanitize_log_data

from . import formatters

logger = logging.getLogger("rally-mcp.handlers")

Handler = Callable[[dict, RallyClient], Awaitable[list[TextContent]]]


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _payload(model) -> dict:
    """Dump validated arguments in kebab-case and convert them to Rally names."""
    data = model.model_dump(by_alias=True, exclude_none=True, exclude={"object_id"})
    return transformer.to_external(data)


def _single(label: str, action: str, response: RallyResponse) -> list[TextContent]:
    artifact = transformer.to_internal(response.first or {})
    return _text(formatters.format_artifact(label, action, artifact) + formatters.format_warnings(response.warnings))


def _listing(label: str, response: RallyResponse) -> list[TextContent]:
    artifacts = transformer.to_internal(response.results)
    text = formatters.format_artifact_list(label, artifacts, response.total_result_count)
    return _text(text + formatters.format_warnings(response.warnings))


def _query_args(model, *exclude: str) -> dict:
    return model.model_dump(by_alias=True, exclude_none=True, exclude=set(exclude))


# ============================================================================
# User Story Handlers
# ============================================================================

async def handle_get_user_story(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Get a user story by ObjectID.

    Errors: not-found (unknown ObjectID), permission (project not visible)
    """
    args = ObjectIdArgs(**arguments)
    response = await client.get(ArtifactType.USER_STORY, args.object_id)
    logger.info(f"Successfully retrieved user story {args.object_id}")
    return _single("User Story", "Retrieved", response)


async def handle_create_user_story(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Create a user story. Custom fields pass through as custom-*."""
    args = UserStoryCreate(**arguments)
    response = await client.create(ArtifactType.USER_STORY, _payload(args))
    logger.info(f"Successfully created user story: {args.name}")
    return _single("User Story", "Created Successfully", response)


async def handle_update_user_story(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = UserStoryUpdate(**arguments)
    response = await client.update(ArtifactType.USER_STORY, args.object_id, _payload(args))
    logger.info(f"Successfully updated user story {args.object_id}")
    return _single("User Story", "Updated Successfully", response)


async def handle_query_user_stories(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Query user stories.

    COMMON PATTERNS:
    • Browse → Details → Update: query_user_stories() → get_user_story() → update_user_story()
    • Sprint board: query_user_stories(iteration="Sprint 12", schedule-state="In-Progress")
    """
    args = UserStoryQuery(**arguments)
    response = await client.query(ArtifactType.USER_STORY, build_story_query(_query_args(args)))
    return _listing("user stories", response)


# ============================================================================
# Defect Handlers
# ============================================================================

async def handle_get_defect(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = ObjectIdArgs(**arguments)
    response = await client.get(ArtifactType.DEFECT, args.object_id)
    logger.info(f"Successfully retrieved defect {args.object_id}")
    return _single("Defect", "Retrieved", response)


async def handle_create_defect(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Create a defect. Severity and state are validated against Rally's allowed values."""
    args = DefectCreate(**arguments)
    response = await client.create(ArtifactType.DEFECT, _payload(args))
    logger.info(f"Successfully created defect: {args.name} ({args.severity})")
    return _single("Defect", "Created Successfully", response)


async def handle_update_defect(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = DefectUpdate(**arguments)
    response = await client.update(ArtifactType.DEFECT, args.object_id, _payload(args))
    logger.info(f"Successfully updated defect {args.object_id}")
    return _single("Defect", "Updated Successfully", response)


async def handle_update_defect_state(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Move a defect to a new state.

    Rally enforces its own workflow; a rejected transition comes back in the
    OperationResult errors and is classified by the caller.
    """
    args = DefectStateUpdate(**arguments)
    response = await client.update(ArtifactType.DEFECT, args.object_id, _payload(args))
    logger.info(f"Successfully moved defect {args.object_id} to {args.state}")
    return _single("Defect", f"State Updated to {args.state}", response)


async def handle_query_defects(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = DefectQuery(**arguments)
    response = await client.query(ArtifactType.DEFECT, build_defect_query(_query_args(args)))
    return _listing("defects", response)


# ============================================================================
# Task Handlers
# ============================================================================

async def handle_get_task(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = ObjectIdArgs(**arguments)
    response = await client.get(ArtifactType.TASK, args.object_id)
    logger.info(f"Successfully retrieved task {args.object_id}")
    return _single("Task", "Retrieved", response)


async def handle_create_task(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Create a task linked to its parent work product.

    The parent may be given as work-product, parent-user-story or
    parent-defect; Rally only knows WorkProduct.
    """
    args = TaskCreate(**arguments)
    data = args.model_dump(by_alias=True, exclude_none=True, exclude={"parent_user_story", "parent_defect"})
    if args.parent_ref:
        data["work-product"] = args.parent_ref

    response = await client.create(ArtifactType.TASK, transformer.to_external(data))
    logger.info(f"Successfully created task: {args.name}")
    return _single("Task", "Created Successfully", response)


async def handle_update_task(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = TaskUpdate(**arguments)
    response = await client.update(ArtifactType.TASK, args.object_id, _payload(args))
    logger.info(f"Successfully updated task {args.object_id}")
    return _single("Task", "Updated Successfully", response)


async def handle_query_tasks(arguments: dict, client: RallyClient) -> list[TextContent]:
    args = TaskQuery(**arguments)
    response = await client.query(ArtifactType.TASK, build_task_query(_query_args(args)))
    return _listing("tasks", response)


# ============================================================================
# Cross-artifact Handlers
# ============================================================================

async def handle_query_all_artifacts(arguments: dict, client: RallyClient) -> list[TextContent]:
    """Query any queryable artifact type using that type's filters."""
    args = QueryAllArtifacts(**arguments)
    query = build_query_for(args.artifact_type, _query_args(args, "artifact_type"))
    response = await client.query(args.artifact_type, query)
    return _listing(f"{args.artifact_type} artifacts", response)


HANDLERS: dict[str, Handler] = {
    # User story handlers
    "get_user_story": handle_get_user_story,
    "create_user_story": handle_create_user_story,
    "update_user_story": handle_update_user_story,
    "query_user_stories": handle_query_user_stories,
    # Defect handlers
    "get_defect": handle_get_defect,
    "create_defect": handle_create_defect,
    "update_defect": handle_update_defect,
    "update_defect_state": handle_update_defect_state,
    "query_defects": handle_query_defects,
    # Task handlers
    "get_task": handle_get_task,
    "create_task": handle_create_task,
    "update_task": handle_update_task,
    "query_tasks": handle_query_tasks,
    # Cross-artifact handlers
    "query_all_artifacts": handle_query_all_artifacts,
}


def log_diagnostic(record: DiagnosticRecord) -> None:
    """Log a classified failure at a level matching its severity."""
    if record.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
        level = logging.ERROR
    elif record.severity == ErrorSeverity.MEDIUM:
        level = logging.WARNING
    else:
        level = logging.INFO

    logger.log(
        level,
        f"{record.context.operation} failed [{record.category.value}/{record.severity.value}] "
        f"correlation_id={record.correlation_id} recovery={record.recovery.strategy.value}",
    )
    if record.details:
        logger.log(level, f"  Details: {sanitize_log_data(record.details)}")


async def execute_tool(
    name: str,
    arguments: dict,
    client: RallyClient,
    classifier: ErrorClassifier,
) -> list[TextContent]:
    """Run a tool handler, converting any failure into a classified error reply."""
    logger.info(f"Tool call: {name} with arguments: {sanitize_log_data(arguments)}")
    try:
        handler = HANDLERS.get(name)
        if handler is None:
            raise UnknownToolError(name)
        return await handler(arguments or {}, client)
    except Exception as e:
        record = classifier.classify(e, OperationContext(operation=name))
        log_diagnostic(record)
        return _text(formatters.format_tool_error(name, record))
