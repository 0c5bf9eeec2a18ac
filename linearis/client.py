"""Async GraphQL transport over httpx."""

import logging
import re
import time
from types import TracebackType

import httpx

from linearis.errors import ApiError
from linearis.settings import LinearisSettings

logger = logging.getLogger(__name__)

_OPERATION_NAME = re.compile(r"^\s*(?:query|mutation)\s+(\w+)")


class GraphQLClient:
    """One authenticated connection pool per CLI invocation; no retries at this layer."""

    def __init__(self, settings: LinearisSettings) -> None:
        if not settings.api_token:
            raise ApiError("api_token is required")
        self._endpoint = settings.endpoint
        self._http = httpx.AsyncClient(
            headers={
                "Authorization": settings.api_token.get_secret_value(),
                "Content-Type": "application/json",
            },
            timeout=settings.timeout,
        )

    async def __aenter__(self) -> "GraphQLClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def execute(self, query: str, variables: dict | None = None) -> dict:
        match = _OPERATION_NAME.match(query)
        operation = match.group(1) if match else "anonymous"
        started = time.perf_counter()
        try:
            response = await self._http.post(
                self._endpoint,
                json={"query": query, "variables": variables or {}},
            )
        except httpx.HTTPError as exc:
            raise ApiError(f"GraphQL request failed: {exc}") from exc
        logger.debug("%s -> %s in %.0fms", operation, response.status_code, (time.perf_counter() - started) * 1000)

        if response.status_code == 401:
            raise ApiError("Linear API returned 401. Check your API token.")
        try:
            data = response.json()
        except ValueError:
            raise ApiError(f"GraphQL request failed: HTTP {response.status_code}") from None
        if data.get("errors"):
            first = data["errors"][0]
            raise ApiError(first.get("message") or "GraphQL query failed")
        if response.is_error:
            raise ApiError(f"GraphQL request failed: HTTP {response.status_code}")
        return data.get("data") or {}
