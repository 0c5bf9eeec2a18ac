"""Attach an entity's related objects by fetching each relation concurrently."""

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

from linearis.concurrency import join_all
from linearis.errors import IncompleteEntityError, NotFoundError
from linearis.providers.base import LookupProvider

logger = logging.getLogger(__name__)


class Relation(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str  # GraphQL field on the root entity, also the attached key
    selection: str
    many: bool = False  # connection with nodes; absent value becomes []
    required: bool = False  # a well-formed entity always has it


RELATIONS: dict[str, dict[str, Relation]] = {
    "issue": {
        "state": Relation(field="state", selection="id name type", required=True),
        "team": Relation(field="team", selection="id key name", required=True),
        "assignee": Relation(field="assignee", selection="id name"),
        "project": Relation(field="project", selection="id name"),
        "cycle": Relation(field="cycle", selection="id name number"),
        "projectMilestone": Relation(field="projectMilestone", selection="id name targetDate"),
        "parent": Relation(field="parent", selection="id identifier"),
        "labels": Relation(field="labels", selection="id name", many=True),
        "comments": Relation(
            field="comments",
            selection="id body createdAt updatedAt user { id name }",
            many=True,
        ),
    },
    "project": {
        "teams": Relation(field="teams", selection="id key name", many=True),
        "lead": Relation(field="lead", selection="id name"),
    },
    "issueLabel": {
        "team": Relation(field="team", selection="id key name"),
        "parent": Relation(field="parent", selection="id name"),
    },
}

ISSUE_LIST_RELATIONS = ("state", "assignee", "team", "project", "labels")
ISSUE_DETAIL_RELATIONS = (*ISSUE_LIST_RELATIONS, "cycle", "projectMilestone", "parent", "comments")

_ENTITY_LABELS = {"issue": "Issue", "project": "Project", "issueLabel": "Label"}


class Hydrator:
    def __init__(self, provider: LookupProvider) -> None:
        self._provider = provider

    async def _fetch(self, kind: str, entity_id: str, relation: Relation) -> Any:
        if relation.many:
            selection = f"{relation.field} {{ nodes {{ {relation.selection} }} }}"
        else:
            selection = f"{relation.field} {{ {relation.selection} }}"
        node = await self._provider.fetch_node(kind, entity_id, selection)
        if node is None:
            raise NotFoundError(_ENTITY_LABELS[kind], entity_id)
        value = node.get(relation.field)
        if relation.many:
            return (value or {}).get("nodes") or []
        return value

    async def _hydrate_entity(self, kind: str, entity: dict, relations: Sequence[str]) -> dict:
        table = RELATIONS[kind]
        specs = [table[name] for name in relations]
        values = await join_all(self._fetch(kind, entity["id"], spec) for spec in specs)

        hydrated = dict(entity)
        for spec, value in zip(specs, values):
            if spec.required and value is None:
                raise IncompleteEntityError(f"{kind} {entity['id']} is missing its {spec.field}")
            hydrated[spec.field] = value
        return hydrated

    async def _hydrate_or_drop(self, kind: str, entity: dict, relations: Sequence[str]) -> dict | None:
        try:
            return await self._hydrate_entity(kind, entity, relations)
        except (NotFoundError, IncompleteEntityError) as exc:
            logger.warning("dropping %s %s: %s", kind, entity["id"], exc)
            return None

    @staticmethod
    def _check_relations(kind: str, relations: Sequence[str]) -> None:
        unknown = [r for r in relations if r not in RELATIONS[kind]]
        if unknown:
            raise ValueError(f"Unknown {kind} relation(s): {', '.join(unknown)}")

    async def hydrate(self, kind: str, entities: Sequence[dict], relations: Sequence[str]) -> list[dict]:
        """Hydrate every entity concurrently; output keeps the input order.

        Entities that vanished or miss a required relation are dropped rather than returned partial.
        """
        self._check_relations(kind, relations)
        results = await join_all(self._hydrate_or_drop(kind, e, relations) for e in entities)
        return [r for r in results if r is not None]

    async def hydrate_one(self, kind: str, entity: dict, relations: Sequence[str]) -> dict:
        """Like ``hydrate`` for a single entity, but raise instead of dropping it."""
        self._check_relations(kind, relations)
        return await self._hydrate_entity(kind, entity, relations)
