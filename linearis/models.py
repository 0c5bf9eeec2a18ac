"""Shared pydantic models: the contract between providers, the service layer and main.py."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _Model(BaseModel):
    # camelCase on the wire and in JSON output, snake_case in Python
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class TeamRef(_Model):
    id: str
    key: str | None = None
    name: str | None = None


class ProjectRef(_Model):
    id: str
    name: str | None = None


class UserRef(_Model):
    id: str
    name: str | None = None


class StateRef(_Model):
    id: str
    name: str
    type: str | None = None


class LabelRef(_Model):
    id: str
    name: str


class CycleRef(_Model):
    id: str
    name: str | None = None
    number: int | None = None


class MilestoneRef(_Model):
    id: str
    name: str
    target_date: str | None = None


class IssueRef(_Model):
    id: str
    identifier: str | None = None


class Comment(_Model):
    id: str
    body: str
    user: UserRef | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Issue(_Model):
    id: str
    identifier: str  # TEAM-123, never parsed back into stored state
    title: str
    description: str | None = None
    url: str | None = None
    priority: int | None = None
    estimate: float | None = None
    state: StateRef
    team: TeamRef
    assignee: UserRef | None = None
    project: ProjectRef | None = None
    cycle: CycleRef | None = None
    project_milestone: MilestoneRef | None = None
    parent: IssueRef | None = None
    labels: list[LabelRef] = []
    comments: list[Comment] | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Team(_Model):
    id: str
    key: str
    name: str
    description: str | None = None


class User(_Model):
    id: str
    name: str
    display_name: str | None = None
    email: str | None = None
    active: bool | None = None


class Project(_Model):
    id: str
    name: str
    description: str | None = None
    state: str | None = None
    progress: float | None = None
    target_date: str | None = None
    teams: list[TeamRef] = []
    lead: UserRef | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Label(_Model):
    id: str
    name: str
    color: str | None = None
    scope: str  # "workspace" | "team"
    team: TeamRef | None = None
    group: LabelRef | None = None


class Cycle(_Model):
    id: str
    name: str | None = None
    number: int
    starts_at: str | None = None
    ends_at: str | None = None
    is_active: bool | None = None
    progress: float | None = None
    team: TeamRef | None = None
    issues: list[Issue] | None = None


class Milestone(_Model):
    id: str
    name: str
    description: str | None = None
    target_date: str | None = None
    sort_order: float | None = None
    project: ProjectRef | None = None
    issues: list[Issue] | None = None
    created_at: str | None = None
    updated_at: str | None = None
