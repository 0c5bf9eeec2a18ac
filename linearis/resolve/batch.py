"""Resolve every reference one operation needs with a single remote request."""

import logging
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict

from linearis.errors import InvalidReferenceError, NotFoundError
from linearis.providers.base import LookupProvider, LookupQuery
from linearis.resolve.classifier import Canonical, EntityType, NeedsLookup, Strategy, classify, is_uuid
from linearis.resolve.disambiguate import disambiguate
from linearis.resolve.specs import (
    ISSUE_CONTEXT_SELECTION,
    LOOKUP_SPECS,
    LookupSpec,
    RemoteScope,
    build_filter,
    in_scope,
    select_candidates,
    spec_for,
)

logger = logging.getLogger(__name__)


class Slot(BaseModel):
    """One named reference (or list of references) needed by an operation.

    ``scope`` is either the name of another slot in the same batch or a canonical ID.
    An issue slot used as a scope contributes its team.
    """

    model_config = ConfigDict(frozen=True)

    entity: EntityType
    token: str | list[str]
    scope: str | None = None
    context: bool = False  # issue slots: also fetch current labels and team

    @property
    def many(self) -> bool:
        return isinstance(self.token, list)

    def tokens(self) -> list[str]:
        return list(self.token) if isinstance(self.token, list) else [self.token]


class BatchResult(BaseModel):
    ids: dict[str, str | list[str]] = {}
    nodes: dict[str, dict] = {}  # the matched node of single-token slots, when one was fetched

    def __getitem__(self, slot: str) -> str | list[str]:
        return self.ids[slot]

    def __contains__(self, slot: str) -> bool:
        return slot in self.ids

    def get(self, slot: str) -> str | list[str] | None:
        return self.ids.get(slot)

    def current_labels(self, slot: str) -> set[str]:
        node = self.nodes.get(slot) or {}
        return {label["id"] for label in (node.get("labels") or {}).get("nodes", [])}

    def team_of(self, slot: str) -> str | None:
        node = self.nodes.get(slot) or {}
        return (node.get("team") or {}).get("id")


def scope_entity_for(entity: EntityType) -> EntityType | None:
    for spec in LOOKUP_SPECS.values():
        if spec.entity == entity and spec.scope_entity is not None:
            return spec.scope_entity
    return None


class BatchResolver:
    def __init__(self, provider: LookupProvider, page_size: int = 50) -> None:
        self._provider = provider
        self._page_size = page_size

    async def resolve(self, entity: EntityType, token: str, scope: str | None = None) -> str:
        """Resolve a single reference; a human-readable scope rides in the same request."""
        result = await self.resolve_batch(self._single(entity, token, scope))
        return result.ids["target"]  # type: ignore[return-value]

    async def resolve_many(self, entity: EntityType, tokens: list[str], scope: str | None = None) -> list[str]:
        if not tokens:
            return []
        result = await self.resolve_batch(self._single(entity, tokens, scope))
        return result.ids["target"]  # type: ignore[return-value]

    def _single(self, entity: EntityType, token: str | list[str], scope: str | None) -> dict[str, Slot]:
        scope_entity = scope_entity_for(entity)
        if not scope or scope_entity is None:
            return {"target": Slot(entity=entity, token=token)}
        if is_uuid(scope):
            return {"target": Slot(entity=entity, token=token, scope=scope)}
        return {
            "scope": Slot(entity=scope_entity, token=scope),
            "target": Slot(entity=entity, token=token, scope="scope"),
        }

    async def resolve_batch(self, slots: Mapping[str, Slot]) -> BatchResult:
        """Resolve all slots or raise; nothing partial is ever returned."""
        plans: dict[str, list[Canonical | NeedsLookup]] = {}
        for name, slot in slots.items():
            refs = [classify(t, slot.entity) for t in slot.tokens()]
            for ref in refs:
                if isinstance(ref, NeedsLookup):
                    ref.check()
            plans[name] = refs

        order = self._resolution_order(slots)
        scope_providers = {s.scope for s in slots.values() if s.scope in slots}
        remote_scopes = {name: self._remote_scope(slots[name], slots, plans) for name in order}

        # Group lookups by (spec, remote scope) so each group is one filter
        groups: dict[tuple[EntityType, Strategy, RemoteScope | None], list[NeedsLookup]] = {}
        context_fetches: dict[str, str] = {}
        for name in order:
            slot = slots[name]
            remote_scope = remote_scopes[name]
            for ref in plans[name]:
                if isinstance(ref, NeedsLookup):
                    groups.setdefault((ref.entity, ref.strategy, remote_scope), []).append(ref)
                    if remote_scope is not None and spec_for(ref).global_fallback:
                        groups.setdefault((ref.entity, ref.strategy, None), []).append(ref)
                elif slot.entity == EntityType.ISSUE and (slot.context or name in scope_providers):
                    context_fetches[name] = ref.id

        group_keys = list(groups)
        queries = [
            LookupQuery(
                connection=LOOKUP_SPECS[(entity, strategy)].connection,
                filter_type=LOOKUP_SPECS[(entity, strategy)].filter_type,
                filter=build_filter(LOOKUP_SPECS[(entity, strategy)], groups[(entity, strategy, scope)], scope),
                selection=LOOKUP_SPECS[(entity, strategy)].selection,
                first=self._page_size,
            )
            for entity, strategy, scope in group_keys
        ]
        context_slots = list(context_fetches)
        queries += [
            LookupQuery(connection="issue", selection=ISSUE_CONTEXT_SELECTION, by_id=context_fetches[name])
            for name in context_slots
        ]

        results = await self._provider.lookup_batch(queries) if queries else []
        group_nodes = dict(zip(group_keys, results[: len(group_keys)]))
        context_nodes = dict(zip(context_slots, results[len(group_keys) :]))

        resolved = BatchResult()
        for name in order:
            slot = slots[name]
            scope_id, scope_label = self._scope_for(slot, slots, resolved)
            remote_scope = remote_scopes[name]
            ids: list[str] = []
            for ref in plans[name]:
                if isinstance(ref, Canonical):
                    ids.append(ref.id)
                    if name in context_nodes:
                        if not context_nodes[name]:
                            raise NotFoundError("Issue", ref.id)
                        resolved.nodes[name] = context_nodes[name][0]
                    continue
                nodes = group_nodes[(ref.entity, ref.strategy, remote_scope)]
                unscoped = group_nodes.get((ref.entity, ref.strategy, None), nodes)
                node = self._pick(spec_for(ref), ref, nodes, unscoped, scope_id, scope_label)
                ids.append(node["id"])
                if not slot.many:
                    resolved.nodes[name] = node
            resolved.ids[name] = list(dict.fromkeys(ids)) if slot.many else ids[0]
        logger.debug("resolved %d slot(s) with %d lookup group(s)", len(slots), len(queries))
        return resolved

    @staticmethod
    def _resolution_order(slots: Mapping[str, Slot]) -> list[str]:
        order: list[str] = []
        visiting: set[str] = set()

        def visit(name: str) -> None:
            if name in order:
                return
            if name in visiting:
                raise InvalidReferenceError(f"Circular scope involving '{name}'")
            visiting.add(name)
            scope = slots[name].scope
            if scope is not None:
                if scope in slots:
                    visit(scope)
                elif not is_uuid(scope):
                    raise InvalidReferenceError(f"Scope '{scope}' of '{name}' is neither a slot nor a canonical ID")
            visiting.discard(name)
            order.append(name)

        for name in slots:
            visit(name)
        return order

    @staticmethod
    def _remote_scope(
        slot: Slot, slots: Mapping[str, Slot], plans: Mapping[str, list[Canonical | NeedsLookup]]
    ) -> RemoteScope | None:
        """The scope as it can be written into the filter before the request is sent.

        A canonical ID goes in as is. An unresolved team or project goes in by its
        human reference, and an issue identifier by its team key. Only a canonical
        issue leaves the scope to be applied after the request.
        """
        if slot.scope is None:
            return None
        if slot.scope not in slots:
            return RemoteScope(kind="id", value=slot.scope)
        scope_slot = slots[slot.scope]
        scope_plan = plans[slot.scope]
        if len(scope_plan) != 1:
            return None
        ref = scope_plan[0]
        if scope_slot.entity == EntityType.ISSUE:
            if isinstance(ref, NeedsLookup) and ref.team_key:
                return RemoteScope(kind="team_key", value=ref.team_key)
            return None
        if isinstance(ref, Canonical):
            return RemoteScope(kind="id", value=ref.id)
        return RemoteScope(kind="ref", value=ref.value)

    @staticmethod
    def _scope_for(slot: Slot, slots: Mapping[str, Slot], resolved: BatchResult) -> tuple[str | None, str | None]:
        if slot.scope is None:
            return None, None
        if slot.scope not in slots:
            return slot.scope, slot.scope
        scope_slot = slots[slot.scope]
        if scope_slot.entity == EntityType.ISSUE:
            return resolved.team_of(slot.scope), f'team of issue "{scope_slot.token}"'
        scope_id = resolved.ids[slot.scope]
        return scope_id if isinstance(scope_id, str) else None, f'{scope_slot.entity.value} "{scope_slot.token}"'

    @staticmethod
    def _pick(
        spec: LookupSpec,
        ref: NeedsLookup,
        nodes: list[dict],
        unscoped: list[dict],
        scope_id: str | None,
        scope_label: str | None,
    ) -> dict:
        candidates = select_candidates(spec, ref, nodes)
        if scope_id and spec.scope_field:
            candidates = [c for c in candidates if in_scope(spec, c, scope_id)]
            if not candidates and spec.global_fallback:
                candidates = select_candidates(spec, ref, unscoped)
                if candidates:
                    logger.debug("%s %r not in %s; using the workspace-wide match", spec.label, ref.token, scope_label)

        if ref.strategy == Strategy.GROUP_PATH:
            if not candidates:
                raise NotFoundError("Label group", ref.token, scope_label, detail=f'no group named "{ref.group}"')
            group_id = disambiguate(ref.entity, ref.group or "", candidates, "label group")
            group = next(c for c in candidates if c["id"] == group_id)
            children = [c for c in (group.get("children") or {}).get("nodes", []) if c.get("name") == ref.value]
            if not children:
                raise NotFoundError(
                    "Label", ref.token, detail=f'group "{ref.group}" has no label named "{ref.value}"'
                )
            child_id = disambiguate(ref.entity, ref.token, children)
            return next(c for c in children if c["id"] == child_id)

        if not candidates:
            raise NotFoundError(spec.label, ref.token, scope_label if spec.scope_field else None)
        chosen = disambiguate(ref.entity, ref.token, candidates, spec.label)
        return next(c for c in candidates if c["id"] == chosen)
