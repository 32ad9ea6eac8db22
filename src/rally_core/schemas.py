"""Pydantic schemas for MCP tool argument validation.

Tool arguments arrive in kebab-case (the internal convention), so every
multi-word field carries a kebab-case alias. Create and update schemas allow
extra fields so `custom-*` and other Rally fields pass through untouched.
Dump with `model_dump(by_alias=True, exclude_none=True)` before handing the
arguments to transformer.to_external().
"""
import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import DefectSeverity, DefectState, TaskState


class ObjectIdArgs(BaseModel):
    """Arguments addressing a single artifact."""

    object_id: str = Field(..., min_length=1, alias="object-id", description="Rally ObjectID of the artifact")

    model_config = ConfigDict(populate_by_name=True)


class QueryOptions(BaseModel):
    """Pagination and raw query options shared by every query tool."""

    query: Optional[str] = Field(None, description="Raw Rally query clause, e.g. (Name contains \"login\")")
    fetch: Optional[str] = Field(None, description="Comma-separated fields to return")
    order: Optional[str] = None
    start: Optional[int] = Field(None, ge=1)
    pagesize: Optional[int] = Field(None, ge=1)
    workspace: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


# User Story Schemas

class UserStoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    project: str = Field(..., min_length=1)
    description: Optional[str] = None
    owner: Optional[str] = None
    iteration: Optional[str] = None
    plan_estimate: Optional[float] = Field(None, alias="plan-estimate")
    schedule_state: Optional[str] = Field(None, alias="schedule-state")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class UserStoryUpdate(ObjectIdArgs):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    owner: Optional[str] = None
    iteration: Optional[str] = None
    plan_estimate: Optional[float] = Field(None, alias="plan-estimate")
    schedule_state: Optional[str] = Field(None, alias="schedule-state")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class UserStoryQuery(QueryOptions):
    project: Optional[str] = None
    owner: Optional[str] = None
    schedule_state: Optional[str] = Field(None, alias="schedule-state")
    iteration: Optional[str] = None


# Defect Schemas

class DefectCreate(BaseModel):
    name: str = Field(..., min_length=1)
    project: str = Field(..., min_length=1)
    severity: DefectSeverity
    state: DefectState
    description: Optional[str] = None
    owner: Optional[str] = None
    found_in_build: Optional[str] = Field(None, alias="found-in-build")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")


class DefectUpdate(ObjectIdArgs):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    severity: Optional[DefectSeverity] = None
    state: Optional[DefectState] = None
    owner: Optional[str] = None
    found_in_build: Optional[str] = Field(None, alias="found-in-build")
    fixed_in_build: Optional[str] = Field(None, alias="fixed-in-build")
    resolution: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")


class DefectStateUpdate(ObjectIdArgs):
    state: DefectState
    resolution: Optional[str] = None
    fixed_in_build: Optional[str] = Field(None, alias="fixed-in-build")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")


class DefectQuery(QueryOptions):
    project: Optional[str] = None
    owner: Optional[str] = None
    state: Optional[str] = None
    severity: Optional[str] = None
    priority: Optional[str] = None
    resolution: Optional[str] = None
    found_in_build: Optional[str] = Field(None, alias="found-in-build")
    fixed_in_build: Optional[str] = Field(None, alias="fixed-in-build")
    iteration: Optional[str] = None


# Task Schemas

class TaskCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    owner: Optional[str] = None
    work_product: Optional[str] = Field(None, alias="work-product", description="Parent user story or defect reference")
    parent_user_story: Optional[str] = Field(None, alias="parent-user-story")
    parent_defect: Optional[str] = Field(None, alias="parent-defect")
    estimate: Optional[float] = None
    todo: Optional[float] = None
    state: Optional[TaskState] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")

    @property
    def parent_ref(self) -> Optional[str]:
        return self.work_product or self.parent_user_story or self.parent_defect


class TaskUpdate(ObjectIdArgs):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    owner: Optional[str] = None
    estimate: Optional[float] = None
    todo: Optional[float] = None
    actuals: Optional[float] = None
    state: Optional[TaskState] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")


class TaskQuery(QueryOptions):
    project: Optional[str] = None
    owner: Optional[str] = None
    state: Optional[str] = None
    work_product: Optional[str] = Field(None, alias="work-product")
    parent_user_story: Optional[str] = Field(None, alias="parent-user-story")
    parent_defect: Optional[str] = Field(None, alias="parent-defect")
    iteration: Optional[str] = None
    todo_hours: Optional[float] = Field(None, alias="todo-hours")
    actual_hours: Optional[float] = Field(None, alias="actual-hours")
    estimate_hours: Optional[float] = Field(None, alias="estimate-hours")


# Unified query

class QueryableArtifact(str, enum.Enum):
    USER_STORY = "UserStory"
    HIERARCHICAL_REQUIREMENT = "HierarchicalRequirement"
    DEFECT = "Defect"
    TASK = "Task"


class QueryAllArtifacts(QueryOptions):
    artifact_type: QueryableArtifact = Field(..., alias="artifact-type")
    project: Optional[str] = None
    owner: Optional[str] = None
    state: Optional[str] = None
    iteration: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="allow")
