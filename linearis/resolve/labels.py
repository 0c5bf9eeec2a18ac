"""Label set computation for issue updates."""

from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, ConfigDict

from linearis.errors import UsageConflictError
from linearis.resolve.batch import BatchResolver
from linearis.resolve.classifier import EntityType


class LabelMode(str, Enum):
    ADDING = "adding"
    OVERWRITING = "overwriting"


class LabelChange(BaseModel):
    """A validated label request: which references, and how to apply them."""

    model_config = ConfigDict(frozen=True)

    refs: list[str]
    mode: LabelMode

    @classmethod
    def from_options(
        cls,
        labels: list[str] | None,
        mode: LabelMode | None = None,
        clear: bool = False,
    ) -> "LabelChange | None":
        """Validate option combinations before any resolution work starts.

        Returns None when the command does not touch labels at all.
        """
        if clear and labels:
            raise UsageConflictError("--clear-labels cannot be used with --labels")
        if clear and mode is not None:
            raise UsageConflictError("--clear-labels cannot be used with --label-by")
        if mode is not None and not labels:
            raise UsageConflictError("--label-by requires --labels to be specified")
        if clear:
            return cls(refs=[], mode=LabelMode.OVERWRITING)
        if not labels:
            return None
        return cls(refs=labels, mode=mode or LabelMode.ADDING)


def merge_label_ids(current: Iterable[str], resolved: Iterable[str], mode: LabelMode) -> set[str]:
    if mode == LabelMode.ADDING:
        return set(current) | set(resolved)
    return set(resolved)


async def merge_labels(
    resolver: BatchResolver,
    current: Iterable[str],
    refs: list[str],
    mode: LabelMode,
    scope: str | None = None,
) -> set[str]:
    """Resolve label references (names, Group/Label paths or IDs) and merge them."""
    resolved = await resolver.resolve_many(EntityType.LABEL, refs, scope=scope)
    return merge_label_ids(current, resolved, mode)
