"""Abstract base class for the remote catalog the resolver and hydrator read from."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict


class LookupQuery(BaseModel):
    """One filtered search (or one by-ID fetch) inside a batched lookup request."""

    model_config = ConfigDict(frozen=True)

    connection: str
    selection: str
    filter_type: str | None = None
    filter: dict[str, Any] | None = None
    by_id: str | None = None  # fetch a single node, e.g. issue(id: ...)
    first: int = 50


class LookupProvider(ABC):
    @abstractmethod
    async def lookup_batch(self, queries: list[LookupQuery]) -> list[list[dict]]:
        """Run every query in one remote request; results are returned in query order."""

    async def lookup(self, query: LookupQuery) -> list[dict]:
        (nodes,) = await self.lookup_batch([query])
        return nodes

    @abstractmethod
    async def fetch_node(self, root: str, entity_id: str, selection: str) -> dict | None: ...
