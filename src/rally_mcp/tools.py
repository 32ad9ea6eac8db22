"""Shared MCP tool definitions for the Rally bridge.

Argument names use the internal kebab-case convention; handlers convert
them to Rally field names before calling the API.
"""

from mcp.types import Tool

from rally_core.models import DefectSeverity, DefectState, TaskState
from rally_core.schemas import QueryableArtifact

DEFECT_SEVERITIES = [s.value for s in DefectSeverity]
DEFECT_STATES = [s.value for s in DefectState]
TASK_STATES = [s.value for s in TaskState]
QUERYABLE_ARTIFACTS = [a.value for a in QueryableArtifact]

OBJECT_ID_PROPERTY = {
    "object-id": {
        "type": "string",
        "description": "Rally ObjectID of the artifact"
    }
}

# Pagination and raw query options accepted by every query tool
QUERY_OPTION_PROPERTIES = {
    "query": {
        "type": "string",
        "description": "Raw Rally query clause, e.g. (Name contains \"login\")"
    },
    "fetch": {
        "type": "string",
        "description": "Comma-separated Rally fields to return"
    },
    "order": {
        "type": "string",
        "description": "Sort order, e.g. 'CreationDate desc'"
    },
    "start": {
        "type": "integer",
        "description": "1-based start index (default: 1)"
    },
    "pagesize": {
        "type": "integer",
        "description": "Results per page (default: 20, max: 200)"
    },
    "workspace": {
        "type": "string",
        "description": "Workspace reference"
    }
}

CUSTOM_FIELDS_NOTE = "Custom fields may be passed as custom-<field-name> (e.g. custom-business-value)."


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools for Rally artifact management."""
    return [
        # ============================================================================
        # User Story Tools
        # ============================================================================
        Tool(
            name="get_user_story",
            description="Get a user story by ObjectID. "
                       "Errors: not-found (no such story), permission (no access to its project).",
            inputSchema={
                "type": "object",
                "properties": dict(OBJECT_ID_PROPERTY),
                "required": ["object-id"]
            }
        ),
        Tool(
            name="create_user_story",
            description="Create a new user story in a project. " + CUSTOM_FIELDS_NOTE,
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {
                        "type": "string",
                        "description": "Story title"
                    },
                    "project": {
                        "type": "string",
                        "description": "Project reference"
                    },
                    "description": {
                        "type": "string",
                        "description": "Story description (HTML allowed)"
                    },
                    "owner": {
                        "type": "string",
                        "description": "Owner user reference"
                    },
                    "iteration": {
                        "type": "string",
                        "description": "Iteration reference"
                    },
                    "plan-estimate": {
                        "type": "number",
                        "description": "Story points"
                    },
                    "schedule-state": {
                        "type": "string",
                        "description": "Schedule state, e.g. Defined, In-Progress, Completed, Accepted"
                    }
                },
                "required": ["name", "project"]
            }
        ),
        Tool(
            name="update_user_story",
            description="Update fields of an existing user story. Only provided fields change. " + CUSTOM_FIELDS_NOTE,
            inputSchema={
                "type": "object",
                "properties": {
                    **OBJECT_ID_PROPERTY,
                    "name": {"type": "string", "description": "New title"},
                    "description": {"type": "string", "description": "New description"},
                    "owner": {"type": "string", "description": "Owner user reference"},
                    "iteration": {"type": "string", "description": "Iteration reference"},
                    "plan-estimate": {"type": "number", "description": "Story points"},
                    "schedule-state": {"type": "string", "description": "Schedule state"}
                },
                "required": ["object-id"]
            }
        ),
        Tool(
            name="query_user_stories",
            description="Query user stories by project, owner, schedule state or iteration. "
                       "Filters are combined with AND. Common pattern: query_user_stories() → get_user_story() → update_user_story().",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": {"type": "string", "description": "Project name, or a project reference to scope the query"},
                    "owner": {"type": "string", "description": "Owner name"},
                    "schedule-state": {"type": "string", "description": "Schedule state"},
                    "iteration": {"type": "string", "description": "Iteration name"},
                    **QUERY_OPTION_PROPERTIES
                }
            }
        ),
        # ============================================================================
        # Defect Tools
        # ============================================================================
        Tool(
            name="get_defect",
            description="Get a defect by ObjectID.",
            inputSchema={
                "type": "object",
                "properties": dict(OBJECT_ID_PROPERTY),
                "required": ["object-id"]
            }
        ),
        Tool(
            name="create_defect",
            description="Create a new defect. " + CUSTOM_FIELDS_NOTE,
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Defect title"},
                    "project": {"type": "string", "description": "Project reference"},
                    "severity": {"type": "string", "enum": DEFECT_SEVERITIES},
                    "state": {"type": "string", "enum": DEFECT_STATES},
                    "description": {"type": "string", "description": "Steps to reproduce, expected and actual behaviour"},
                    "owner": {"type": "string", "description": "Owner user reference"},
                    "found-in-build": {"type": "string", "description": "Build the defect was found in"}
                },
                "required": ["name", "project", "severity", "state"]
            }
        ),
        Tool(
            name="update_defect",
            description="Update fields of an existing defect. " + CUSTOM_FIELDS_NOTE,
            inputSchema={
                "type": "object",
                "properties": {
                    **OBJECT_ID_PROPERTY,
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "severity": {"type": "string", "enum": DEFECT_SEVERITIES},
                    "state": {"type": "string", "enum": DEFECT_STATES},
                    "owner": {"type": "string"},
                    "found-in-build": {"type": "string"},
                    "fixed-in-build": {"type": "string"},
                    "resolution": {"type": "string"}
                },
                "required": ["object-id"]
            }
        ),
        Tool(
            name="update_defect_state",
            description="Move a defect to a new state, optionally recording resolution and fixed-in build. "
                       "Workflow rules are enforced by Rally; invalid transitions come back as validation errors.",
            inputSchema={
                "type": "object",
                "properties": {
                    **OBJECT_ID_PROPERTY,
                    "state": {"type": "string", "enum": DEFECT_STATES},
                    "resolution": {"type": "string", "description": "Resolution, e.g. Code Change, Duplicate"},
                    "fixed-in-build": {"type": "string", "description": "Build containing the fix"}
                },
                "required": ["object-id", "state"]
            }
        ),
        Tool(
            name="query_defects",
            description="Query defects by project, owner, state, severity, priority, resolution, builds or iteration.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": {"type": "string"},
                    "owner": {"type": "string"},
                    "state": {"type": "string"},
                    "severity": {"type": "string"},
                    "priority": {"type": "string"},
                    "resolution": {"type": "string"},
                    "found-in-build": {"type": "string"},
                    "fixed-in-build": {"type": "string"},
                    "iteration": {"type": "string"},
                    **QUERY_OPTION_PROPERTIES
                }
            }
        ),
        # ============================================================================
        # Task Tools
        # ============================================================================
        Tool(
            name="get_task",
            description="Get a task by ObjectID.",
            inputSchema={
                "type": "object",
                "properties": dict(OBJECT_ID_PROPERTY),
                "required": ["object-id"]
            }
        ),
        Tool(
            name="create_task",
            description="Create a task under a user story or defect. "
                       "Link the parent with work-product, parent-user-story or parent-defect (a reference).",
            inputSchema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Task title"},
                    "description": {"type": "string"},
                    "owner": {"type": "string"},
                    "work-product": {"type": "string", "description": "Parent user story or defect reference"},
                    "parent-user-story": {"type": "string", "description": "Parent user story reference"},
                    "parent-defect": {"type": "string", "description": "Parent defect reference"},
                    "estimate": {"type": "number", "description": "Estimated hours"},
                    "todo": {"type": "number", "description": "Remaining hours"},
                    "state": {"type": "string", "enum": TASK_STATES}
                },
                "required": ["name"]
            }
        ),
        Tool(
            name="update_task",
            description="Update fields of an existing task, including progress (todo, actuals).",
            inputSchema={
                "type": "object",
                "properties": {
                    **OBJECT_ID_PROPERTY,
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "owner": {"type": "string"},
                    "estimate": {"type": "number"},
                    "todo": {"type": "number"},
                    "actuals": {"type": "number"},
                    "state": {"type": "string", "enum": TASK_STATES}
                },
                "required": ["object-id"]
            }
        ),
        Tool(
            name="query_tasks",
            description="Query tasks by project, owner, state, parent work product or progress thresholds.",
            inputSchema={
                "type": "object",
                "properties": {
                    "project": {"type": "string"},
                    "owner": {"type": "string"},
                    "state": {"type": "string"},
                    "work-product": {"type": "string", "description": "Parent reference"},
                    "parent-user-story": {"type": "string", "description": "Parent story FormattedID, e.g. US123"},
                    "parent-defect": {"type": "string", "description": "Parent defect FormattedID, e.g. DE45"},
                    "iteration": {"type": "string"},
                    "todo-hours": {"type": "number", "description": "Minimum remaining hours"},
                    "actual-hours": {"type": "number", "description": "Minimum actual hours"},
                    "estimate-hours": {"type": "number", "description": "Minimum estimated hours"},
                    **QUERY_OPTION_PROPERTIES
                }
            }
        ),
        # ============================================================================
        # Cross-artifact Tools
        # ============================================================================
        Tool(
            name="query_all_artifacts",
            description="Query any supported artifact type with the filters of that type.",
            inputSchema={
                "type": "object",
                "properties": {
                    "artifact-type": {"type": "string", "enum": QUERYABLE_ARTIFACTS},
                    "project": {"type": "string"},
                    "owner": {"type": "string"},
                    "state": {"type": "string"},
                    "iteration": {"type": "string"},
                    **QUERY_OPTION_PROPERTIES
                },
                "required": ["artifact-type"]
            }
        ),
    ]
