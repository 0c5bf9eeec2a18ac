"""Linear GraphQL lookup provider."""

import logging

from linearis.client import GraphQLClient
from linearis.errors import ApiError
from linearis.models import Comment, Cycle, Issue, Label, LabelRef, Milestone, Project, TeamRef
from linearis.providers.base import LookupProvider, LookupQuery

logger = logging.getLogger(__name__)


class LinearProvider(LookupProvider):
    def __init__(self, client: GraphQLClient) -> None:
        self._client = client

    @staticmethod
    def build_document(queries: list[LookupQuery]) -> tuple[str, dict]:
        """Assemble one aliased query document; values travel as typed variables."""
        params: list[str] = []
        fields: list[str] = []
        variables: dict = {}
        for i, q in enumerate(queries):
            alias = f"q{i}"
            if q.by_id is not None:
                params.append(f"${alias}: String!")
                fields.append(f"{alias}: {q.connection}(id: ${alias}) {{ {q.selection} }}")
                variables[alias] = q.by_id
            else:
                params.append(f"${alias}: {q.filter_type}")
                fields.append(f"{alias}: {q.connection}(filter: ${alias}, first: {q.first}) {{ nodes {{ {q.selection} }} }}")
                variables[alias] = q.filter
        document = "query ResolveReferences(" + ", ".join(params) + ") {\n  " + "\n  ".join(fields) + "\n}"
        return document, variables

    async def lookup_batch(self, queries: list[LookupQuery]) -> list[list[dict]]:
        if not queries:
            return []
        document, variables = self.build_document(queries)
        logger.debug("resolving %d lookup group(s) in one request", len(queries))
        data = await self._client.execute(document, variables)

        results: list[list[dict]] = []
        for i, q in enumerate(queries):
            raw = data.get(f"q{i}")
            if q.by_id is not None:
                results.append([raw] if raw else [])
            else:
                results.append((raw or {}).get("nodes") or [])
        return results

    async def fetch_node(self, root: str, entity_id: str, selection: str) -> dict | None:
        operation = f"Fetch{root[0].upper()}{root[1:]}"
        query = f"query {operation}($id: String!) {{ {root}(id: $id) {{ {selection} }} }}"
        data = await self._client.execute(query, {"id": entity_id})
        if root not in data:
            raise ApiError(f"Linear API response is missing '{root}'")
        return data[root]


def _nodes(value: dict | list | None) -> list[dict]:
    """Connections arrive as {nodes: [...]} inline, or as plain lists once hydrated."""
    if value is None:
        return []
    if isinstance(value, dict):
        return value.get("nodes") or []
    return value


def comment_from_node(node: dict) -> Comment:
    return Comment.model_validate(node)


def issue_from_node(node: dict) -> Issue:
    data = dict(node)
    data["labels"] = _nodes(node.get("labels"))
    if "comments" in node:
        data["comments"] = [comment_from_node(c) for c in _nodes(node["comments"]) if c]
    return Issue.model_validate(data)


def project_from_node(node: dict) -> Project:
    data = dict(node)
    data["teams"] = _nodes(node.get("teams"))
    return Project.model_validate(data)


def label_from_node(node: dict) -> Label:
    team = node.get("team")
    parent = node.get("parent")
    return Label(
        id=node["id"],
        name=node["name"],
        color=node.get("color"),
        scope="team" if team else "workspace",
        team=TeamRef.model_validate(team) if team else None,
        group=LabelRef.model_validate(parent) if parent else None,
    )


def cycle_from_node(node: dict) -> Cycle:
    data = dict(node)
    if "issues" in node:
        data["issues"] = [issue_from_node(i) for i in _nodes(node["issues"])]
    return Cycle.model_validate(data)


def milestone_from_node(node: dict) -> Milestone:
    data = dict(node)
    if "issues" in node:
        data["issues"] = [issue_from_node(i) for i in _nodes(node["issues"])]
    return Milestone.model_validate(data)
