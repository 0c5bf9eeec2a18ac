"""Per-entity lookup table: which remote connection, exact-match field and scope to use."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from linearis.resolve.classifier import EntityType, NeedsLookup, Strategy


class LookupSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: EntityType
    strategy: Strategy
    label: str  # entity name used in error messages
    connection: str  # GraphQL root connection field
    filter_type: str  # GraphQL filter input type
    exact_field: str
    fallback_field: str | None = None  # consulted only when nothing matched exact_field
    fold_case: bool = False  # compare exact_field case-insensitively (team keys)
    extra_filter: dict[str, Any] = {}
    scope_entity: EntityType | None = None
    scope_field: str | None = None
    unscoped_ok: bool = False  # a node with no scope value matches any scope (workspace labels)
    global_fallback: bool = False  # nothing in scope: accept an unscoped match instead
    selection: str


_TEAM_FIELDS = "id key name"

LOOKUP_SPECS: dict[tuple[EntityType, Strategy], LookupSpec] = {
    (EntityType.TEAM, Strategy.KEY_OR_NAME): LookupSpec(
        entity=EntityType.TEAM,
        strategy=Strategy.KEY_OR_NAME,
        label="Team",
        connection="teams",
        filter_type="TeamFilter",
        exact_field="key",
        fallback_field="name",
        fold_case=True,
        selection=_TEAM_FIELDS,
    ),
    (EntityType.PROJECT, Strategy.NAME): LookupSpec(
        entity=EntityType.PROJECT,
        strategy=Strategy.NAME,
        label="Project",
        connection="projects",
        filter_type="ProjectFilter",
        exact_field="name",
        selection="id name",
    ),
    (EntityType.LABEL, Strategy.NAME): LookupSpec(
        entity=EntityType.LABEL,
        strategy=Strategy.NAME,
        label="Label",
        connection="issueLabels",
        filter_type="IssueLabelFilter",
        exact_field="name",
        # group labels are containers and never directly assignable
        extra_filter={"isGroup": {"eq": False}},
        scope_entity=EntityType.TEAM,
        scope_field="team",
        unscoped_ok=True,
        selection=f"id name isGroup team {{ {_TEAM_FIELDS} }} parent {{ id name }}",
    ),
    (EntityType.LABEL, Strategy.GROUP_PATH): LookupSpec(
        entity=EntityType.LABEL,
        strategy=Strategy.GROUP_PATH,
        label="Label group",
        connection="issueLabels",
        filter_type="IssueLabelFilter",
        exact_field="name",
        extra_filter={"isGroup": {"eq": True}},
        scope_entity=EntityType.TEAM,
        scope_field="team",
        unscoped_ok=True,
        selection=f"id name isGroup team {{ {_TEAM_FIELDS} }} children {{ nodes {{ id name }} }}",
    ),
    (EntityType.CYCLE, Strategy.NAME): LookupSpec(
        entity=EntityType.CYCLE,
        strategy=Strategy.NAME,
        label="Cycle",
        connection="cycles",
        filter_type="CycleFilter",
        exact_field="name",
        scope_entity=EntityType.TEAM,
        scope_field="team",
        selection=f"id name number startsAt isActive isNext isPrevious team {{ {_TEAM_FIELDS} }}",
    ),
    (EntityType.MILESTONE, Strategy.NAME): LookupSpec(
        entity=EntityType.MILESTONE,
        strategy=Strategy.NAME,
        label="Milestone",
        connection="projectMilestones",
        filter_type="ProjectMilestoneFilter",
        exact_field="name",
        scope_entity=EntityType.PROJECT,
        scope_field="project",
        global_fallback=True,
        selection="id name targetDate project { id name }",
    ),
    (EntityType.ISSUE, Strategy.IDENTIFIER): LookupSpec(
        entity=EntityType.ISSUE,
        strategy=Strategy.IDENTIFIER,
        label="Issue",
        connection="issues",
        filter_type="IssueFilter",
        exact_field="number",
        selection=f"id identifier number team {{ {_TEAM_FIELDS} }} labels {{ nodes {{ id name }} }}",
    ),
    (EntityType.USER, Strategy.NAME): LookupSpec(
        entity=EntityType.USER,
        strategy=Strategy.NAME,
        label="User",
        connection="users",
        filter_type="UserFilter",
        exact_field="name",
        fallback_field="displayName",
        selection="id name displayName email",
    ),
    (EntityType.USER, Strategy.EMAIL): LookupSpec(
        entity=EntityType.USER,
        strategy=Strategy.EMAIL,
        label="User",
        connection="users",
        filter_type="UserFilter",
        exact_field="email",
        fold_case=True,
        selection="id name displayName email",
    ),
    (EntityType.STATE, Strategy.NAME): LookupSpec(
        entity=EntityType.STATE,
        strategy=Strategy.NAME,
        label="State",
        connection="workflowStates",
        filter_type="WorkflowStateFilter",
        exact_field="name",
        scope_entity=EntityType.TEAM,
        scope_field="team",
        selection=f"id name type team {{ {_TEAM_FIELDS} }}",
    ),
}

# Canonical issue IDs still need their labels and team when an update merges labels
ISSUE_CONTEXT_SELECTION = LOOKUP_SPECS[(EntityType.ISSUE, Strategy.IDENTIFIER)].selection


def spec_for(ref: NeedsLookup) -> LookupSpec:
    return LOOKUP_SPECS[(ref.entity, ref.strategy)]


def _lookup_value(ref: NeedsLookup) -> str:
    return ref.group if ref.strategy == Strategy.GROUP_PATH and ref.group is not None else ref.value


class RemoteScope(BaseModel):
    """A scope that can be written into the lookup filter before anything is resolved."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["id", "team_key", "ref"]
    value: str


def _scope_target(spec: LookupSpec, scope: RemoteScope) -> dict[str, Any]:
    if scope.kind == "id":
        return {"id": {"eq": scope.value}}
    if scope.kind == "team_key":
        return {"key": {"eq": scope.value}}
    if spec.scope_entity == EntityType.TEAM:
        keys = sorted({scope.value, scope.value.upper()})
        return {"or": [{"key": {"in": keys}}, {"name": {"eq": scope.value}}]}
    return {"name": {"eq": scope.value}}


def build_filter(spec: LookupSpec, refs: list[NeedsLookup], scope: RemoteScope | None = None) -> dict[str, Any]:
    """One remote filter covering every reference of the same spec and scope."""
    if spec.strategy == Strategy.IDENTIFIER:
        base: dict[str, Any] = {
            "or": [{"team": {"key": {"eq": r.team_key}}, "number": {"eq": r.number}} for r in refs],
        }
    else:
        values = sorted({_lookup_value(r) for r in refs})
        exact_values = sorted({*values, *(v.upper() for v in values)}) if spec.fold_case else values
        if spec.strategy == Strategy.EMAIL:
            exact_values = sorted({*values, *(v.lower() for v in values)})
        if spec.fallback_field:
            base = {
                "or": [
                    {spec.exact_field: {"in": exact_values}},
                    {spec.fallback_field: {"in": values}},
                ]
            }
        else:
            base = {spec.exact_field: {"in": exact_values}}
        base.update(spec.extra_filter)

    if scope is None or not spec.scope_field:
        return base
    scoped: dict[str, Any] = {spec.scope_field: _scope_target(spec, scope)}
    if spec.unscoped_ok:
        scoped = {"or": [{spec.scope_field: {"null": True}}, scoped]}
    return {"and": [base, scoped]}


def _same(spec: LookupSpec, a: Any, b: str) -> bool:
    if not isinstance(a, str):
        return False
    return a.casefold() == b.casefold() if spec.fold_case else a == b


def select_candidates(spec: LookupSpec, ref: NeedsLookup, nodes: list[dict]) -> list[dict]:
    """Pick the nodes that exactly match this reference out of a shared group result."""
    if spec.strategy == Strategy.IDENTIFIER:
        return [
            n
            for n in nodes
            if n.get("number") == ref.number and (n.get("team") or {}).get("key", "").upper() == ref.team_key
        ]
    value = _lookup_value(ref)
    primary = [n for n in nodes if _same(spec, n.get(spec.exact_field), value)]
    if primary or not spec.fallback_field:
        return primary
    return [n for n in nodes if n.get(spec.fallback_field) == value]


def scope_id_of(spec: LookupSpec, node: dict) -> str | None:
    if not spec.scope_field:
        return None
    return (node.get(spec.scope_field) or {}).get("id")


def in_scope(spec: LookupSpec, node: dict, scope_id: str) -> bool:
    node_scope = scope_id_of(spec, node)
    if node_scope is None:
        return spec.unscoped_ok
    return node_scope == scope_id
