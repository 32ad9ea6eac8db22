"""Bidirectional field name transformation between Rally and MCP formats.

Rally (external) records use PascalCase fields, `_`-prefixed metadata and
`c_`-prefixed custom fields. MCP tool arguments and results (internal) use
kebab-case with `metadata-` and `custom-` prefixes:

- CurrentProjectName <-> current-project-name
- c_MyCustomField    <-> custom-my-custom-field
- _refObjectUUID     <-> metadata-ref-object-uuid

Rally -> MCP is rule based and total. MCP -> Rally consults
IRREGULAR_FIELD_NAMES first, because kebab-case loses Rally's irregular
capitalisation (FormattedID, ObjectID, ToDo). Metadata names with a lowercase initial (`_ref`,
`_refObjectName`) live in METADATA_FIELD_NAMES, which is only consulted
under the metadata- prefix, so a plain `Type` field still reads back as
`Type`. Names missing from both tables fall back to plain PascalCase, so
`my-html-field` becomes `MyHtmlField`. Extend the tables to support new
irregular fields.
"""
import re
from typing import Any, Callable

METADATA_PREFIX = "metadata-"
CUSTOM_PREFIX = "custom-"
RALLY_METADATA_MARKER = "_"
RALLY_CUSTOM_MARKER = "c_"

# Order matters: acronym runs must be split before ordinary case boundaries
_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CASE_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_KEBAB_SEGMENT = re.compile(r"-([a-z])")

# Metadata names (after `_`) keep a lowercase initial; only consulted under metadata-
METADATA_FIELD_NAMES: dict[str, str] = {
    "ref": "ref",
    "type": "type",
    "ref-object-uuid": "refObjectUUID",
    "ref-object-name": "refObjectName",
    "object-version": "objectVersion",
    "rally-api-major": "rallyAPIMajor",
    "rally-api-minor": "rallyAPIMinor",
}

# Kebab form (prefix stripped) -> exact Rally form
IRREGULAR_FIELD_NAMES: dict[str, str] = {
    # Identifiers
    "formatted-id": "FormattedID",
    "object-id": "ObjectID",
    "object-uuid": "ObjectUUID",
    # Dates
    "creation-date": "CreationDate",
    "last-update-date": "LastUpdateDate",
    "accepted-date": "AcceptedDate",
    "in-progress-date": "InProgressDate",
    "opened-date": "OpenedDate",
    "closed-date": "ClosedDate",
    # Build / version
    "found-in-build": "FoundInBuild",
    "fixed-in-build": "FixedInBuild",
    "verified-in-build": "VerifiedInBuild",
    "target-build": "TargetBuild",
    # Estimates and progress
    "plan-estimate": "PlanEstimate",
    "schedule-state": "ScheduleState",
    "task-estimate-total": "TaskEstimateTotal",
    "task-remaining-total": "TaskRemainingTotal",
    "task-actual-total": "TaskActualTotal",
    "to-do": "ToDo",
    "todo": "ToDo",
    # Parent links
    "work-product": "WorkProduct",
    "portfolio-item": "PortfolioItem",
    "direct-children-count": "DirectChildrenCount",
    # Acronyms and known custom fields
    "api-integration": "APIIntegration",
    "apiintegration": "APIIntegration",
    "custom-priority": "CustomPriority",
    "business-value": "BusinessValue",
    "my-custom-field": "MyCustomField",
}

# Known Rally artifact fields, keyed by Rally name
FIELD_MAPPINGS: dict[str, dict[str, str]] = {
    # User Story fields
    "FormattedID": {"rally_field": "FormattedID", "mcp_field": "formatted-id", "kind": "standard"},
    "Name": {"rally_field": "Name", "mcp_field": "name", "kind": "standard"},
    "Description": {"rally_field": "Description", "mcp_field": "description", "kind": "standard"},
    "PlanEstimate": {"rally_field": "PlanEstimate", "mcp_field": "plan-estimate", "kind": "standard"},
    "ScheduleState": {"rally_field": "ScheduleState", "mcp_field": "schedule-state", "kind": "standard"},
    "Owner": {"rally_field": "Owner", "mcp_field": "owner", "kind": "standard"},
    "Project": {"rally_field": "Project", "mcp_field": "project", "kind": "standard"},
    "Iteration": {"rally_field": "Iteration", "mcp_field": "iteration", "kind": "standard"},
    # Defect fields
    "Severity": {"rally_field": "Severity", "mcp_field": "severity", "kind": "standard"},
    "State": {"rally_field": "State", "mcp_field": "state", "kind": "standard"},
    "FoundInBuild": {"rally_field": "FoundInBuild", "mcp_field": "found-in-build", "kind": "standard"},
    "FixedInBuild": {"rally_field": "FixedInBuild", "mcp_field": "fixed-in-build", "kind": "standard"},
    "Resolution": {"rally_field": "Resolution", "mcp_field": "resolution", "kind": "standard"},
    # Task fields
    "WorkProduct": {"rally_field": "WorkProduct", "mcp_field": "work-product", "kind": "standard"},
    "Estimate": {"rally_field": "Estimate", "mcp_field": "estimate", "kind": "standard"},
    "ToDo": {"rally_field": "ToDo", "mcp_field": "to-do", "kind": "standard"},
    "Actuals": {"rally_field": "Actuals", "mcp_field": "actuals", "kind": "standard"},
    # Metadata fields
    "_ref": {"rally_field": "_ref", "mcp_field": "metadata-ref", "kind": "metadata"},
    "_refObjectName": {"rally_field": "_refObjectName", "mcp_field": "metadata-ref-object-name", "kind": "metadata"},
    "_type": {"rally_field": "_type", "mcp_field": "metadata-type", "kind": "metadata"},
    "_refObjectUUID": {"rally_field": "_refObjectUUID", "mcp_field": "metadata-ref-object-uuid", "kind": "metadata"},
    # Common fields
    "ObjectID": {"rally_field": "ObjectID", "mcp_field": "object-id", "kind": "standard"},
    "CreationDate": {"rally_field": "CreationDate", "mcp_field": "creation-date", "kind": "standard"},
    "LastUpdateDate": {"rally_field": "LastUpdateDate", "mcp_field": "last-update-date", "kind": "standard"},
}


def camel_to_kebab(name: str) -> str:
    """Convert CamelCase to kebab-case, keeping acronym runs together (APIIntegration -> api-integration)."""
    name = _ACRONYM_BOUNDARY.sub(r"\1-\2", name)
    name = _CASE_BOUNDARY.sub(r"\1-\2", name)
    return name.lower()


def kebab_to_pascal(name: str) -> str:
    """Convert kebab-case to PascalCase without any knowledge of acronyms."""
    camel = _KEBAB_SEGMENT.sub(lambda match: match.group(1).upper(), name.lower())
    return camel[:1].upper() + camel[1:]


def _kebab_to_rally(name: str) -> str:
    return IRREGULAR_FIELD_NAMES.get(name) or kebab_to_pascal(name)


def _kebab_to_rally_metadata(name: str) -> str:
    return METADATA_FIELD_NAMES.get(name) or _kebab_to_rally(name)


def field_name_to_internal(name: str) -> str:
    """Convert a single Rally field name to its MCP (kebab-case) form."""
    if name.startswith(RALLY_METADATA_MARKER):
        return METADATA_PREFIX + camel_to_kebab(name[len(RALLY_METADATA_MARKER):])

    if name.startswith(RALLY_CUSTOM_MARKER):
        return CUSTOM_PREFIX + camel_to_kebab(name[len(RALLY_CUSTOM_MARKER):])

    return camel_to_kebab(name)


def field_name_to_external(name: str) -> str:
    """Convert a single MCP field name back to its Rally form."""
    if name.startswith(METADATA_PREFIX):
        return RALLY_METADATA_MARKER + _kebab_to_rally_metadata(name[len(METADATA_PREFIX):])

    if name.startswith(CUSTOM_PREFIX):
        return RALLY_CUSTOM_MARKER + _kebab_to_rally(name[len(CUSTOM_PREFIX):])

    return _kebab_to_rally(name)


def _transform(record: Any, rename: Callable[[str], str]) -> Any:
    """Copy `record` renaming every mapping key.

    Walks with an explicit stack so nesting depth is not limited by the
    interpreter recursion limit. Tuples are emitted as lists.
    """
    if not isinstance(record, (dict, list, tuple)):
        return record

    root: Any = {} if isinstance(record, dict) else []
    pending = [(record, root)]

    while pending:
        source, target = pending.pop()

        if isinstance(source, dict):
            for key, value in source.items():
                new_key = rename(key) if isinstance(key, str) else key
                if isinstance(value, (dict, list, tuple)):
                    child: Any = {} if isinstance(value, dict) else []
                    pending.append((value, child))
                    target[new_key] = child
                else:
                    target[new_key] = value
        else:
            for value in source:
                if isinstance(value, (dict, list, tuple)):
                    child = {} if isinstance(value, dict) else []
                    pending.append((value, child))
                    target.append(child)
                else:
                    target.append(value)

    return root


def to_internal(record: Any) -> Any:
    """Transform Rally API data (any JSON-like value) to MCP format."""
    return _transform(record, field_name_to_internal)


def to_external(record: Any) -> Any:
    """Transform MCP data (any JSON-like value) to Rally API format."""
    return _transform(record, field_name_to_external)


def validate_round_trip(field: str, direction: str = "to_internal") -> bool:
    """Check that a field name survives a conversion and its inverse.

    Args:
        field: Field name in the source convention of `direction`
        direction: "to_internal" (Rally name given) or "to_external" (MCP name given)

    Returns:
        True if converting and converting back yields `field`
    """
    if direction == "to_internal":
        return field_name_to_external(field_name_to_internal(field)) == field
    if direction == "to_external":
        return field_name_to_internal(field_name_to_external(field)) == field
    raise ValueError(f"Unknown direction: {direction}")
