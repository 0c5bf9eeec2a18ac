"""Error taxonomy raised by resolution and transport; the CLI formats these verbatim."""

from typing import Any


class LinearisError(RuntimeError):
    """Base for every error surfaced to the user."""

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self)}


class NotFoundError(LinearisError):
    def __init__(self, entity: str, reference: str, scope: str | None = None, detail: str | None = None) -> None:
        self.entity = entity
        self.reference = reference
        self.scope = scope
        self.detail = detail
        scope_str = f" in {scope}" if scope else ""
        detail_str = f": {detail}" if detail else ""
        super().__init__(f'{entity} "{reference}"{scope_str} not found{detail_str}')

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["entity"] = self.entity
        data["reference"] = self.reference
        if self.scope:
            data["scope"] = self.scope
        if self.detail:
            data["detail"] = self.detail
        return data


class AmbiguousError(LinearisError):
    def __init__(self, entity: str, reference: str, candidates: list[dict[str, Any]], hint: str) -> None:
        self.entity = entity
        self.reference = reference
        self.candidates = candidates
        self.hint = hint
        listing = "; ".join(_describe(c) for c in candidates)
        super().__init__(f'Multiple {entity}s found matching "{reference}". Candidates: {listing}. Please {hint}.')

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["entity"] = self.entity
        data["reference"] = self.reference
        data["candidates"] = self.candidates
        data["hint"] = self.hint
        return data


def _describe(candidate: dict[str, Any]) -> str:
    extras = " / ".join(str(v) for k, v in candidate.items() if k != "id" and v is not None)
    return f"{candidate['id']} ({extras})" if extras else candidate["id"]


class InvalidReferenceError(LinearisError):
    """A reference whose shape cannot be looked up, e.g. 'Group/' or 'ENG-abc'."""


class UsageConflictError(LinearisError):
    """Mutually exclusive options were supplied together."""


class ApiError(LinearisError):
    """Transport, HTTP or GraphQL-level failure from the remote API."""


class IncompleteEntityError(LinearisError):
    """A hydrated entity is missing a relation it must always have."""
