"""Rally query construction from kebab-case tool arguments.

Each filter becomes a parenthesised clause; clauses are folded into nested
AND pairs as WSAPI requires: ((A) AND (B)) AND (C).
"""
from typing import Callable, Optional, Union

from .models import ArtifactType
from .rally_client import MAX_PAGE_SIZE, RallyQuery, resolve_artifact_type

# (argument name, clause template) per artifact family
STORY_FILTERS: list[tuple[str, str]] = [
    ("project", '(Project.Name = "{}")'),
    ("owner", '(Owner.Name = "{}")'),
    ("schedule-state", '(ScheduleState = "{}")'),
    ("iteration", '(Iteration.Name = "{}")'),
]

DEFECT_FILTERS: list[tuple[str, str]] = [
    ("project", '(Project.Name = "{}")'),
    ("owner", '(Owner.Name = "{}")'),
    ("state", '(State = "{}")'),
    ("severity", '(Severity = "{}")'),
    ("priority", '(Priority = "{}")'),
    ("resolution", '(Resolution = "{}")'),
    ("found-in-build", '(FoundInBuild = "{}")'),
    ("fixed-in-build", '(FixedInBuild = "{}")'),
    ("iteration", '(Iteration.Name = "{}")'),
]

TASK_FILTERS: list[tuple[str, str]] = [
    ("project", '(Project.Name = "{}")'),
    ("owner", '(Owner.Name = "{}")'),
    ("state", '(State = "{}")'),
    ("work-product", '(WorkProduct = "{}")'),
    ("parent-user-story", '(WorkProduct.FormattedID = "{}")'),
    ("parent-defect", '(WorkProduct.FormattedID = "{}")'),
    ("iteration", '(Iteration.Name = "{}")'),
    # Progress thresholds
    ("todo-hours", "(ToDo >= {})"),
    ("actual-hours", "(Actuals >= {})"),
    ("estimate-hours", "(Estimate >= {})"),
]


def combine_clauses(clauses: list[str]) -> Optional[str]:
    """Fold clauses into Rally's binary AND nesting."""
    if not clauses:
        return None
    combined = clauses[0]
    for clause in clauses[1:]:
        combined = f"({combined} AND {clause})"
    return combined


def _is_reference(value: str) -> bool:
    return value.startswith("/project/") or value.startswith("https://")


def _build(args: dict, filters: list[tuple[str, str]]) -> RallyQuery:
    clauses = []
    for name, template in filters:
        value = args.get(name)
        if value is None or value == "":
            continue
        # A project reference scopes the request instead of filtering by name
        if name == "project" and isinstance(value, str) and _is_reference(value):
            continue
        clauses.append(template.format(value))

    if args.get("query"):
        raw = args["query"].strip()
        clauses.append(raw if raw.startswith("(") else f"({raw})")

    pagesize = args.get("pagesize")
    project = args.get("project")

    return RallyQuery(
        query=combine_clauses(clauses),
        fetch=args.get("fetch"),
        order=args.get("order"),
        start=args.get("start"),
        pagesize=min(pagesize, MAX_PAGE_SIZE) if pagesize is not None else None,
        workspace=args.get("workspace"),
        project=project if isinstance(project, str) and _is_reference(project) else None,
    )


def build_story_query(args: dict) -> RallyQuery:
    return _build(args, STORY_FILTERS)


def build_defect_query(args: dict) -> RallyQuery:
    return _build(args, DEFECT_FILTERS)


def build_task_query(args: dict) -> RallyQuery:
    return _build(args, TASK_FILTERS)


QUERY_BUILDERS: dict[ArtifactType, Callable[[dict], RallyQuery]] = {
    ArtifactType.USER_STORY: build_story_query,
    ArtifactType.HIERARCHICAL_REQUIREMENT: build_story_query,
    ArtifactType.DEFECT: build_defect_query,
    ArtifactType.TASK: build_task_query,
}


def build_query_for(artifact_type: Union[str, ArtifactType], args: dict) -> RallyQuery:
    """Pick the query builder for an artifact type (stories are the default)."""
    kind = resolve_artifact_type(artifact_type)
    return QUERY_BUILDERS.get(kind, build_story_query)(args)
