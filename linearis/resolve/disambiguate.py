"""Reduce several matches to one ID using per-entity tie-break tables, or fail loudly."""

from collections.abc import Callable
from typing import Any

from linearis.errors import AmbiguousError
from linearis.resolve.classifier import EntityType

Predicate = Callable[[dict], bool]
Describer = Callable[[dict], dict[str, Any]]


def is_active(node: dict) -> bool:
    return bool(node.get("isActive"))


def is_next(node: dict) -> bool:
    return bool(node.get("isNext"))


def is_previous(node: dict) -> bool:
    return bool(node.get("isPrevious"))


# Ordered tie-break predicates. Entities without an entry have no "current" concept,
# so any multiple match is an error.
TIE_BREAKS: dict[EntityType, tuple[Predicate, ...]] = {
    EntityType.CYCLE: (is_active, is_next, is_previous),
}

HINTS: dict[EntityType, str] = {
    EntityType.TEAM: "use the team key or ID",
    EntityType.PROJECT: "use the project ID",
    EntityType.LABEL: "use the Group/Label form, scope with --team, or use the label ID",
    EntityType.CYCLE: "scope with --team or use the cycle ID",
    EntityType.MILESTONE: "scope with --project or use the milestone ID",
    EntityType.ISSUE: "use the issue ID",
    EntityType.USER: "use the user's email or ID",
    EntityType.STATE: "scope with --team or use the state ID",
}


def _describe_cycle(node: dict) -> dict[str, Any]:
    return {
        "id": node["id"],
        "team": (node.get("team") or {}).get("key"),
        "number": node.get("number"),
        "startsAt": node.get("startsAt"),
    }


def _describe_milestone(node: dict) -> dict[str, Any]:
    return {
        "id": node["id"],
        "project": (node.get("project") or {}).get("name"),
        "targetDate": node.get("targetDate"),
    }


def _describe_scoped(node: dict) -> dict[str, Any]:
    return {"id": node["id"], "name": node.get("name"), "team": (node.get("team") or {}).get("key")}


def _describe_default(node: dict) -> dict[str, Any]:
    described = {"id": node["id"]}
    for field in ("key", "name", "email", "identifier"):
        if node.get(field) is not None:
            described[field] = node[field]
    return described


DESCRIBERS: dict[EntityType, Describer] = {
    EntityType.CYCLE: _describe_cycle,
    EntityType.MILESTONE: _describe_milestone,
    EntityType.LABEL: _describe_scoped,
    EntityType.STATE: _describe_scoped,
}


def ambiguity(entity: EntityType, reference: str, candidates: list[dict], label: str | None = None) -> AmbiguousError:
    describe = DESCRIBERS.get(entity, _describe_default)
    # sorted so the same remote state always yields the same message
    listed = [describe(c) for c in sorted(candidates, key=lambda c: c["id"])]
    return AmbiguousError((label or entity.value).lower(), reference, listed, HINTS[entity])


def disambiguate(entity: EntityType, reference: str, candidates: list[dict], label: str | None = None) -> str:
    """Return the single winning candidate ID.

    A tie-break predicate that matches exactly one candidate wins; one that matches
    several narrows the ambiguity report to those.
    """
    if len(candidates) == 1:
        return candidates[0]["id"]
    if not candidates:
        raise ValueError("disambiguate() needs at least one candidate")

    for predicate in TIE_BREAKS.get(entity, ()):
        preferred = [c for c in candidates if predicate(c)]
        if len(preferred) == 1:
            return preferred[0]["id"]
        if preferred:
            raise ambiguity(entity, reference, preferred, label)
    raise ambiguity(entity, reference, candidates, label)
