"""Shared test fixtures."""

import json
from collections.abc import AsyncIterator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

import linearis.settings as settings_module
from linearis.client import GraphQLClient
from linearis.providers.linear import LinearProvider
from linearis.resolve.batch import BatchResolver
from linearis.settings import DEFAULT_ENDPOINT, LinearisSettings

ENDPOINT = DEFAULT_ENDPOINT

TEAM_ENG = {"id": "team-eng", "key": "ENG", "name": "Engineering"}
TEAM_OPS = {"id": "team-ops", "key": "OPS", "name": "Operations"}


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Never read the developer's real config, token file or environment."""
    monkeypatch.setattr(settings_module, "CONFIG_PATH", tmp_path / "config.toml")
    monkeypatch.setattr(settings_module, "TOKEN_FILE", tmp_path / ".linear_api_token")
    for var in ("LINEAR_API_TOKEN", "LINEARIS_WORKSPACE", "LINEARIS_API_TOKEN", "LINEARIS_DEFAULT_TEAM"):
        monkeypatch.delenv(var, raising=False)
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()


@pytest.fixture
def settings() -> LinearisSettings:
    return LinearisSettings(api_token="lin_api_test", default_team=None)  # type: ignore[arg-type]


@pytest_asyncio.fixture
async def client(settings: LinearisSettings) -> AsyncIterator[GraphQLClient]:
    async with GraphQLClient(settings) as c:
        yield c


@pytest.fixture
def provider(client: GraphQLClient) -> LinearProvider:
    return LinearProvider(client)


@pytest.fixture
def resolver(provider: LinearProvider) -> BatchResolver:
    return BatchResolver(provider)


def graphql_body(request: httpx.Request) -> dict:
    return json.loads(request.content)


def issue_node(**overrides) -> dict:
    node = {
        "id": "issue-1",
        "identifier": "ENG-1",
        "number": 1,
        "title": "App crashes on launch",
        "description": None,
        "url": "https://linear.app/acme/issue/ENG-1",
        "priority": 2,
        "estimate": None,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-02T00:00:00Z",
        "state": {"id": "state-todo", "name": "Todo", "type": "unstarted"},
        "team": TEAM_ENG,
        "assignee": None,
        "project": None,
        "cycle": None,
        "projectMilestone": None,
        "parent": None,
        "labels": {"nodes": []},
    }
    node.update(overrides)
    return node
