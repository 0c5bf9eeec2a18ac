"""Command-level operations: one batched resolve, then one query or mutation."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from linearis import queries
from linearis.client import GraphQLClient
from linearis.concurrency import join_all
from linearis.errors import ApiError, NotFoundError, UsageConflictError
from linearis.models import Comment, Cycle, Issue, Label, Milestone, Project, Team, User
from linearis.providers.base import LookupProvider
from linearis.providers.linear import (
    LinearProvider,
    comment_from_node,
    cycle_from_node,
    issue_from_node,
    label_from_node,
    milestone_from_node,
    project_from_node,
)
from linearis.resolve.batch import BatchResolver, Slot
from linearis.resolve.classifier import EntityType
from linearis.resolve.hydrate import ISSUE_DETAIL_RELATIONS, ISSUE_LIST_RELATIONS, Hydrator
from linearis.resolve.labels import LabelChange, LabelMode, merge_label_ids
from linearis.settings import LinearisSettings

logger = logging.getLogger(__name__)


class LinearService:
    def __init__(self, client: GraphQLClient, settings: LinearisSettings, provider: LookupProvider | None = None) -> None:
        self._client = client
        self._settings = settings
        self.provider = provider or LinearProvider(client)
        self.resolver = BatchResolver(self.provider, page_size=settings.page_size)
        self.hydrator = Hydrator(self.provider)

    async def _mutate(self, document: str, variables: dict, payload_key: str, entity_key: str) -> dict:
        data = await self._client.execute(document, variables)
        payload = data.get(payload_key) or {}
        if not payload.get("success"):
            raise ApiError(f"Linear {payload_key} returned success=false")
        if not payload.get(entity_key):
            raise ApiError(f"Linear {payload_key} did not return the {entity_key}")
        return payload[entity_key]

    # -- Issues --------------------------------------------------------------

    async def list_issues(self, limit: int = 25) -> list[Issue]:
        data = await self._client.execute(queries.LIST_ISSUES, {"first": limit})
        nodes = (data.get("issues") or {}).get("nodes") or []
        hydrated = await self.hydrator.hydrate("issue", nodes, ISSUE_LIST_RELATIONS)
        return [issue_from_node(n) for n in hydrated]

    async def search_issues(
        self,
        query: str | None = None,
        team: str | None = None,
        assignee: str | None = None,
        project: str | None = None,
        states: list[str] | None = None,
        limit: int = 10,
    ) -> list[Issue]:
        slots: dict[str, Slot] = {}
        if team:
            slots["team"] = Slot(entity=EntityType.TEAM, token=team)
        if assignee:
            slots["assignee"] = Slot(entity=EntityType.USER, token=assignee)
        if project:
            slots["project"] = Slot(entity=EntityType.PROJECT, token=project)
        ids = await self.resolver.resolve_batch(slots)

        if query:
            data = await self._client.execute(queries.SEARCH_ISSUES, {"term": query, "first": limit})
            nodes = (data.get("searchIssues") or {}).get("nodes") or []
            issues = [issue_from_node(n) for n in await self.hydrator.hydrate("issue", nodes, ISSUE_LIST_RELATIONS)]
            # searchIssues takes no filter, so narrow the hydrated results locally
            if "team" in ids:
                issues = [i for i in issues if i.team.id == ids["team"]]
            if "assignee" in ids:
                issues = [i for i in issues if i.assignee and i.assignee.id == ids["assignee"]]
            if "project" in ids:
                issues = [i for i in issues if i.project and i.project.id == ids["project"]]
            if states:
                issues = [i for i in issues if i.state.name in states]
            return issues

        issue_filter: dict[str, Any] = {}
        for field in ("team", "assignee", "project"):
            if field in ids:
                issue_filter[field] = {"id": {"eq": ids[field]}}
        if states:
            issue_filter["state"] = {"name": {"in": states}}
        data = await self._client.execute(
            queries.FILTERED_ISSUES,
            {"first": limit, "filter": issue_filter or None},
        )
        nodes = (data.get("issues") or {}).get("nodes") or []
        hydrated = await self.hydrator.hydrate("issue", nodes, ISSUE_LIST_RELATIONS)
        return [issue_from_node(n) for n in hydrated]

    async def read_issue(self, issue: str) -> Issue:
        issue_id = await self.resolver.resolve(EntityType.ISSUE, issue)
        try:
            core, hydrated = await join_all(
                [
                    self.provider.fetch_node("issue", issue_id, queries.ISSUE_CORE_FIELDS),
                    self.hydrator.hydrate_one("issue", {"id": issue_id}, ISSUE_DETAIL_RELATIONS),
                ]
            )
        except NotFoundError as exc:
            raise NotFoundError("Issue", issue) from exc
        if not core:
            raise NotFoundError("Issue", issue)
        return issue_from_node({**core, **hydrated})

    async def create_issue(
        self,
        title: str,
        team: str | None = None,
        description: str | None = None,
        assignee: str | None = None,
        priority: int | None = None,
        project: str | None = None,
        labels: list[str] | None = None,
        milestone: str | None = None,
        cycle: str | None = None,
        status: str | None = None,
        parent: str | None = None,
        estimate: float | None = None,
    ) -> Issue:
        team = team or self._settings.default_team
        if not team:
            raise UsageConflictError("No team specified. Use --team or set default_team in your config profile")

        slots: dict[str, Slot] = {"team": Slot(entity=EntityType.TEAM, token=team)}
        if project:
            slots["project"] = Slot(entity=EntityType.PROJECT, token=project)
        if labels:
            slots["labels"] = Slot(entity=EntityType.LABEL, token=labels, scope="team")
        if parent:
            slots["parent"] = Slot(entity=EntityType.ISSUE, token=parent)
        if milestone:
            slots["milestone"] = Slot(
                entity=EntityType.MILESTONE, token=milestone, scope="project" if project else None
            )
        if cycle:
            slots["cycle"] = Slot(entity=EntityType.CYCLE, token=cycle, scope="team")
        if status:
            slots["state"] = Slot(entity=EntityType.STATE, token=status, scope="team")
        if assignee:
            slots["assignee"] = Slot(entity=EntityType.USER, token=assignee)
        ids = await self.resolver.resolve_batch(slots)

        create_input: dict[str, Any] = {"title": title, "teamId": ids["team"]}
        if description:
            create_input["description"] = description
        if priority is not None:
            create_input["priority"] = priority
        if estimate is not None:
            create_input["estimate"] = estimate
        for slot, key in (
            ("project", "projectId"),
            ("parent", "parentId"),
            ("milestone", "projectMilestoneId"),
            ("cycle", "cycleId"),
            ("state", "stateId"),
            ("assignee", "assigneeId"),
        ):
            if slot in ids:
                create_input[key] = ids[slot]
        if ids.get("labels"):
            create_input["labelIds"] = ids["labels"]

        node = await self._mutate(queries.CREATE_ISSUE, {"input": create_input}, "issueCreate", "issue")
        return issue_from_node(node)

    async def update_issue(
        self,
        issue: str,
        title: str | None = None,
        description: str | None = None,
        state: str | None = None,
        priority: int | None = None,
        assignee: str | None = None,
        project: str | None = None,
        milestone: str | None = None,
        cycle: str | None = None,
        parent: str | None = None,
        clear_parent: bool = False,
        clear_milestone: bool = False,
        clear_cycle: bool = False,
        estimate: float | None = None,
        label_change: LabelChange | None = None,
    ) -> Issue:
        if parent and clear_parent:
            raise UsageConflictError("Cannot use --parent-ticket and --clear-parent-ticket together")
        if milestone and clear_milestone:
            raise UsageConflictError("Cannot use --milestone and --clear-milestone together")
        if cycle and clear_cycle:
            raise UsageConflictError("Cannot use --cycle and --clear-cycle together")

        merging = label_change is not None and label_change.mode == LabelMode.ADDING
        slots: dict[str, Slot] = {"issue": Slot(entity=EntityType.ISSUE, token=issue, context=merging)}
        if label_change is not None and label_change.refs:
            slots["labels"] = Slot(entity=EntityType.LABEL, token=label_change.refs, scope="issue")
        if project:
            slots["project"] = Slot(entity=EntityType.PROJECT, token=project)
        if milestone:
            slots["milestone"] = Slot(
                entity=EntityType.MILESTONE, token=milestone, scope="project" if project else None
            )
        if cycle:
            slots["cycle"] = Slot(entity=EntityType.CYCLE, token=cycle, scope="issue")
        if state:
            slots["state"] = Slot(entity=EntityType.STATE, token=state, scope="issue")
        if parent:
            slots["parent"] = Slot(entity=EntityType.ISSUE, token=parent)
        if assignee:
            slots["assignee"] = Slot(entity=EntityType.USER, token=assignee)
        ids = await self.resolver.resolve_batch(slots)

        update_input: dict[str, Any] = {}
        if title is not None:
            update_input["title"] = title
        if description is not None:
            update_input["description"] = description
        if priority is not None:
            update_input["priority"] = priority
        if estimate is not None:
            update_input["estimate"] = estimate
        for slot, key in (
            ("project", "projectId"),
            ("milestone", "projectMilestoneId"),
            ("cycle", "cycleId"),
            ("state", "stateId"),
            ("parent", "parentId"),
            ("assignee", "assigneeId"),
        ):
            if slot in ids:
                update_input[key] = ids[slot]
        if clear_parent:
            update_input["parentId"] = None
        if clear_milestone:
            update_input["projectMilestoneId"] = None
        if clear_cycle:
            update_input["cycleId"] = None
        if label_change is not None:
            resolved = ids.get("labels") or []
            merged = merge_label_ids(ids.current_labels("issue"), resolved, label_change.mode)
            update_input["labelIds"] = sorted(merged)
        if not update_input:
            raise UsageConflictError("Nothing to update. Pass at least one field option")

        node = await self._mutate(
            queries.UPDATE_ISSUE,
            {"id": ids["issue"], "input": update_input},
            "issueUpdate",
            "issue",
        )
        return issue_from_node(node)

    # -- Comments ------------------------------------------------------------

    async def create_comment(self, issue: str, body: str) -> Comment:
        if not body:
            raise UsageConflictError("--body is required")
        issue_id = await self.resolver.resolve(EntityType.ISSUE, issue)
        node = await self._mutate(
            queries.CREATE_COMMENT,
            {"input": {"issueId": issue_id, "body": body}},
            "commentCreate",
            "comment",
        )
        return comment_from_node(node)

    # -- Workspace catalog ---------------------------------------------------

    async def list_teams(self, limit: int = 100) -> list[Team]:
        data = await self._client.execute(queries.LIST_TEAMS, {"first": limit})
        return [Team.model_validate(n) for n in (data.get("teams") or {}).get("nodes") or []]

    async def list_users(self, active_only: bool = False, limit: int = 100) -> list[User]:
        user_filter = {"active": {"eq": True}} if active_only else None
        data = await self._client.execute(queries.LIST_USERS, {"first": limit, "filter": user_filter})
        return [User.model_validate(n) for n in (data.get("users") or {}).get("nodes") or []]

    async def list_projects(self, limit: int = 100) -> list[Project]:
        data = await self._client.execute(queries.LIST_PROJECTS, {"first": limit})
        nodes = (data.get("projects") or {}).get("nodes") or []
        hydrated = await self.hydrator.hydrate("project", nodes, ("teams", "lead"))
        return [project_from_node(n) for n in hydrated]

    async def list_labels(self, team: str | None = None, limit: int = 100) -> list[Label]:
        label_filter: dict[str, Any] = {"isGroup": {"eq": False}}
        if team:
            team_id = await self.resolver.resolve(EntityType.TEAM, team)
            label_filter["team"] = {"id": {"eq": team_id}}
        data = await self._client.execute(queries.LIST_LABELS, {"first": limit, "filter": label_filter})
        nodes = (data.get("issueLabels") or {}).get("nodes") or []
        hydrated = await self.hydrator.hydrate("issueLabel", nodes, ("team", "parent"))
        return [label_from_node(n) for n in hydrated]

    # -- Cycles --------------------------------------------------------------

    async def list_cycles(
        self,
        team: str | None = None,
        active: bool = False,
        around_active: int | None = None,
        limit: int = 25,
    ) -> list[Cycle]:
        if around_active is not None:
            if not team:
                raise UsageConflictError("--around-active requires --team to be specified")
            if around_active < 0:
                raise UsageConflictError("--around-active requires a non-negative integer")

        cycle_filter: dict[str, Any] = {}
        if team:
            team_id = await self.resolver.resolve(EntityType.TEAM, team)
            cycle_filter["team"] = {"id": {"eq": team_id}}
        if active and around_active is None:
            cycle_filter["isActive"] = {"eq": True}
        first = max(limit, 100) if around_active is not None else limit
        data = await self._client.execute(queries.LIST_CYCLES, {"first": first, "filter": cycle_filter or None})
        nodes = (data.get("cycles") or {}).get("nodes") or []

        if around_active is None:
            return [cycle_from_node(n) for n in nodes]

        current = next((n for n in nodes if n.get("isActive")), None)
        if current is None:
            raise NotFoundError("Active cycle", team or "")
        low, high = current["number"] - around_active, current["number"] + around_active
        window = [n for n in nodes if isinstance(n.get("number"), (int, float)) and low <= n["number"] <= high]
        return [cycle_from_node(n) for n in sorted(window, key=lambda n: n["number"])]

    async def read_cycle(self, cycle: str, team: str | None = None, issues_first: int = 50) -> Cycle:
        cycle_id = await self.resolver.resolve(EntityType.CYCLE, cycle, scope=team)
        data = await self._client.execute(queries.GET_CYCLE, {"id": cycle_id, "issuesFirst": issues_first})
        if not data.get("cycle"):
            raise NotFoundError("Cycle", cycle)
        return cycle_from_node(data["cycle"])

    # -- Project milestones --------------------------------------------------

    async def list_milestones(self, project: str, limit: int = 50) -> list[Milestone]:
        project_id = await self.resolver.resolve(EntityType.PROJECT, project)
        data = await self._client.execute(queries.LIST_MILESTONES, {"projectId": project_id, "first": limit})
        nodes = ((data.get("project") or {}).get("projectMilestones") or {}).get("nodes") or []
        return [milestone_from_node(n) for n in nodes]

    async def read_milestone(self, milestone: str, project: str | None = None, issues_first: int = 50) -> Milestone:
        milestone_id = await self.resolver.resolve(EntityType.MILESTONE, milestone, scope=project)
        data = await self._client.execute(queries.GET_MILESTONE, {"id": milestone_id, "issuesFirst": issues_first})
        if not data.get("projectMilestone"):
            raise NotFoundError("Milestone", milestone)
        return milestone_from_node(data["projectMilestone"])

    async def create_milestone(
        self,
        project: str,
        name: str,
        description: str | None = None,
        target_date: str | None = None,
    ) -> Milestone:
        project_id = await self.resolver.resolve(EntityType.PROJECT, project)
        milestone_input: dict[str, Any] = {"projectId": project_id, "name": name}
        if description is not None:
            milestone_input["description"] = description
        if target_date is not None:
            milestone_input["targetDate"] = target_date
        node = await self._mutate(
            queries.CREATE_MILESTONE,
            {"input": milestone_input},
            "projectMilestoneCreate",
            "projectMilestone",
        )
        return milestone_from_node(node)

    async def update_milestone(
        self,
        milestone: str,
        project: str | None = None,
        name: str | None = None,
        description: str | None = None,
        target_date: str | None = None,
        sort_order: float | None = None,
    ) -> Milestone:
        milestone_input: dict[str, Any] = {}
        if name is not None:
            milestone_input["name"] = name
        if description is not None:
            milestone_input["description"] = description
        if target_date is not None:
            milestone_input["targetDate"] = target_date
        if sort_order is not None:
            milestone_input["sortOrder"] = sort_order
        if not milestone_input:
            raise UsageConflictError("Nothing to update. Pass at least one field option")

        milestone_id = await self.resolver.resolve(EntityType.MILESTONE, milestone, scope=project)
        node = await self._mutate(
            queries.UPDATE_MILESTONE,
            {"id": milestone_id, "input": milestone_input},
            "projectMilestoneUpdate",
            "projectMilestone",
        )
        return milestone_from_node(node)


@asynccontextmanager
async def open_service(settings: LinearisSettings) -> AsyncIterator[LinearService]:
    async with GraphQLClient(settings) as client:
        yield LinearService(client, settings)
