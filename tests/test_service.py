"""End-to-end LinearService tests: one batch resolve, then one mutation or query."""

import re

import httpx
import pytest
from pytest_httpx import HTTPXMock

from conftest import ENDPOINT, TEAM_ENG, TEAM_OPS, graphql_body, issue_node
from linearis.client import GraphQLClient
from linearis.errors import ApiError, NotFoundError, UsageConflictError
from linearis.models import Issue
from linearis.resolve.labels import LabelChange, LabelMode
from linearis.service import LinearService
from linearis.settings import LinearisSettings

ISSUE_UUID = "7d4c2b1a-9e8f-4a6b-8c5d-1e2f3a4b5c6d"
TEAM_UUID = "0b8e5a52-3c1f-4c55-9d1e-3a0f5b6c7d8e"
MILESTONE_UUID = "5e6f7a8b-1c2d-4e3f-8a9b-0c1d2e3f4a5b"


@pytest.fixture
def service(client: GraphQLClient, settings: LinearisSettings) -> LinearService:
    return LinearService(client, settings)


def _mutation_response(key: str, node: dict) -> dict:
    return {"data": {key: {"success": True, "issue": node}}}


class TestCreateIssue:
    @pytest.mark.asyncio
    async def test_resolves_everything_in_one_request(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json={
                "data": {
                    "q0": {"nodes": [TEAM_ENG]},
                    "q1": {"nodes": [{"id": "proj-mobile", "name": "Mobile App"}]},
                    "q2": {
                        "nodes": [
                            {"id": "bug-ops", "name": "Bug", "isGroup": False, "team": TEAM_OPS},
                            {"id": "bug-eng", "name": "Bug", "isGroup": False, "team": TEAM_ENG},
                        ]
                    },
                    "q3": {
                        "nodes": [
                            {
                                "id": "group-pri",
                                "name": "Priority",
                                "isGroup": True,
                                "team": None,
                                "children": {"nodes": [{"id": "pri-high", "name": "High"}]},
                            }
                        ]
                    },
                }
            },
        )
        created = issue_node(
            title="Crash",
            project={"id": "proj-mobile", "name": "Mobile App"},
            labels={"nodes": [{"id": "bug-eng", "name": "Bug"}, {"id": "pri-high", "name": "High"}]},
        )
        httpx_mock.add_response(url=ENDPOINT, json=_mutation_response("issueCreate", created))

        issue = await service.create_issue(
            title="Crash",
            team="ENG",
            project="Mobile App",
            labels=["Bug", "Priority/High"],
        )

        assert isinstance(issue, Issue)
        assert issue.project is not None
        assert issue.project.name == "Mobile App"
        assert [label.name for label in issue.labels] == ["Bug", "High"]

        lookup, mutation = httpx_mock.get_requests()
        assert graphql_body(lookup)["query"].startswith("query ResolveReferences(")
        assert graphql_body(mutation)["variables"]["input"] == {
            "title": "Crash",
            "teamId": "team-eng",
            "projectId": "proj-mobile",
            "labelIds": ["bug-eng", "pri-high"],
        }

    @pytest.mark.asyncio
    async def test_failed_resolution_sends_no_mutation(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"q0": {"nodes": [TEAM_ENG]}, "q1": {"nodes": []}}},
        )

        with pytest.raises(NotFoundError, match='Label "Nope" in team "ENG" not found'):
            await service.create_issue(title="Crash", team="ENG", labels=["Nope"])

        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_uses_default_team(self, client: GraphQLClient, httpx_mock: HTTPXMock) -> None:
        settings = LinearisSettings(api_token="lin_api_test", default_team=TEAM_UUID)  # type: ignore[arg-type]
        httpx_mock.add_response(url=ENDPOINT, json=_mutation_response("issueCreate", issue_node()))

        await LinearService(client, settings).create_issue(title="Crash")

        (mutation,) = httpx_mock.get_requests()
        assert graphql_body(mutation)["variables"]["input"]["teamId"] == TEAM_UUID

    @pytest.mark.asyncio
    async def test_no_team_at_all(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        with pytest.raises(UsageConflictError, match="No team specified"):
            await service.create_issue(title="Crash")
        assert httpx_mock.get_requests() == []


class TestUpdateIssue:
    @staticmethod
    def _lookup(labels: list[dict]) -> dict:
        return {
            "data": {
                "q0": {
                    "nodes": [
                        {
                            "id": "issue-1",
                            "identifier": "ENG-1",
                            "number": 1,
                            "team": TEAM_ENG,
                            "labels": {"nodes": [{"id": "label-a", "name": "A"}, {"id": "label-b", "name": "B"}]},
                        }
                    ]
                },
                "q1": {"nodes": labels},
            }
        }

    @pytest.mark.asyncio
    async def test_adding_keeps_current_labels(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json=self._lookup([{"id": "label-c", "name": "C", "team": TEAM_ENG}]),
        )
        httpx_mock.add_response(url=ENDPOINT, json=_mutation_response("issueUpdate", issue_node()))

        await service.update_issue("ENG-1", label_change=LabelChange(refs=["C"], mode=LabelMode.ADDING))

        _, mutation = httpx_mock.get_requests()
        variables = graphql_body(mutation)["variables"]
        assert variables["id"] == "issue-1"
        assert variables["input"] == {"labelIds": ["label-a", "label-b", "label-c"]}

    @pytest.mark.asyncio
    async def test_overwriting_replaces_labels(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json=self._lookup([{"id": "label-c", "name": "C", "team": TEAM_ENG}]),
        )
        httpx_mock.add_response(url=ENDPOINT, json=_mutation_response("issueUpdate", issue_node()))

        await service.update_issue("ENG-1", label_change=LabelChange(refs=["C"], mode=LabelMode.OVERWRITING))

        _, mutation = httpx_mock.get_requests()
        assert graphql_body(mutation)["variables"]["input"] == {"labelIds": ["label-c"]}

    @pytest.mark.asyncio
    async def test_canonical_issue_fetches_context_in_the_batch(
        self, service: LinearService, httpx_mock: HTTPXMock
    ) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json={
                "data": {
                    "q0": {"nodes": [{"id": "label-c", "name": "C", "team": TEAM_ENG}]},
                    "q1": {"id": ISSUE_UUID, "team": TEAM_ENG, "labels": {"nodes": [{"id": "label-a"}]}},
                }
            },
        )
        httpx_mock.add_response(url=ENDPOINT, json=_mutation_response("issueUpdate", issue_node()))

        await service.update_issue(ISSUE_UUID, label_change=LabelChange(refs=["C"], mode=LabelMode.ADDING))

        _, mutation = httpx_mock.get_requests()
        variables = graphql_body(mutation)["variables"]
        assert variables["id"] == ISSUE_UUID
        assert variables["input"] == {"labelIds": ["label-a", "label-c"]}

    @pytest.mark.asyncio
    async def test_clear_parent(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=ENDPOINT, json=_mutation_response("issueUpdate", issue_node()))

        await service.update_issue(ISSUE_UUID, title="Renamed", clear_parent=True)

        (mutation,) = httpx_mock.get_requests()
        assert graphql_body(mutation)["variables"]["input"] == {"title": "Renamed", "parentId": None}

    @pytest.mark.asyncio
    async def test_parent_and_clear_parent_conflict(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        with pytest.raises(UsageConflictError):
            await service.update_issue("ENG-1", parent="ENG-2", clear_parent=True)
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_nothing_to_update(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        with pytest.raises(UsageConflictError, match="Nothing to update"):
            await service.update_issue(ISSUE_UUID)


class TestSearchIssues:
    @pytest.mark.asyncio
    async def test_filters_use_resolved_ids(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=ENDPOINT, json={"data": {"q0": {"nodes": [TEAM_ENG]}}})
        httpx_mock.add_response(url=ENDPOINT, json={"data": {"issues": {"nodes": []}}})

        assert await service.search_issues(team="ENG", states=["Todo", "In Progress"]) == []

        _, search = httpx_mock.get_requests()
        assert graphql_body(search)["variables"]["filter"] == {
            "team": {"id": {"eq": "team-eng"}},
            "state": {"name": {"in": ["Todo", "In Progress"]}},
        }


class TestListCycles:
    @pytest.mark.asyncio
    async def test_around_active_window(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        cycles = [{"id": f"c{n}", "name": f"Sprint {n}", "number": n, "isActive": n == 5} for n in range(1, 9)]
        httpx_mock.add_response(url=ENDPOINT, json={"data": {"cycles": {"nodes": list(reversed(cycles))}}})

        result = await service.list_cycles(team=TEAM_UUID, around_active=1)

        assert [c.number for c in result] == [4, 5, 6]
        assert graphql_body(httpx_mock.get_request())["variables"]["first"] == 100

    @pytest.mark.asyncio
    async def test_around_active_needs_team(self, service: LinearService) -> None:
        with pytest.raises(UsageConflictError, match="requires --team"):
            await service.list_cycles(around_active=1)


_RELATION_FIELD = re.compile(r"issue\(id: \$id\) \{ (\w+)")


class TestReadIssue:
    @pytest.mark.asyncio
    async def test_core_and_relations_fetched_concurrently(
        self, service: LinearService, httpx_mock: HTTPXMock
    ) -> None:
        full = issue_node(
            id=ISSUE_UUID,
            labels={"nodes": [{"id": "label-a", "name": "Bug"}]},
            comments={"nodes": [{"id": "cm1", "body": "Seen on iOS", "user": {"id": "u1", "name": "Jane"}}]},
        )

        def respond(request: httpx.Request) -> httpx.Response:
            match = _RELATION_FIELD.search(graphql_body(request)["query"])
            if match is None:
                core = {k: v for k, v in full.items() if not isinstance(v, dict) or k == "id"}
                return httpx.Response(status_code=200, json={"data": {"issue": core}})
            field = match.group(1)
            return httpx.Response(status_code=200, json={"data": {"issue": {field: full[field]}}})

        httpx_mock.add_callback(respond, url=ENDPOINT, is_reusable=True)

        issue = await service.read_issue(ISSUE_UUID)

        assert issue.identifier == "ENG-1"
        assert issue.team.key == "ENG"
        assert [label.name for label in issue.labels] == ["Bug"]
        assert issue.comments is not None
        assert issue.comments[0].body == "Seen on iOS"
        # one core fetch plus one per relation; the canonical ID needs no lookup
        assert len(httpx_mock.get_requests()) == 10

    @pytest.mark.asyncio
    async def test_unknown_uuid_is_not_found(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(url=ENDPOINT, json={"data": {"issue": None}}, is_reusable=True)

        with pytest.raises(NotFoundError) as exc_info:
            await service.read_issue(ISSUE_UUID)

        assert exc_info.value.entity == "Issue"
        assert exc_info.value.reference == ISSUE_UUID


class TestCreateComment:
    @pytest.mark.asyncio
    async def test_resolves_identifier_then_comments(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"q0": {"nodes": [{"id": "issue-1", "identifier": "ENG-1", "number": 1, "team": TEAM_ENG}]}}},
        )
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"commentCreate": {"success": True, "comment": {"id": "cm1", "body": "LGTM"}}}},
        )

        comment = await service.create_comment("ENG-1", "LGTM")

        assert comment.id == "cm1"
        _, mutation = httpx_mock.get_requests()
        assert graphql_body(mutation)["variables"]["input"] == {"issueId": "issue-1", "body": "LGTM"}


class TestMilestones:
    MILESTONE = {
        "id": "ms-beta",
        "name": "Beta",
        "targetDate": "2024-06-01",
        "project": {"id": "proj-mobile", "name": "Mobile App"},
    }

    @pytest.mark.asyncio
    async def test_read_scoped_by_project_name(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        other = {**self.MILESTONE, "id": "ms-web", "project": {"id": "proj-web", "name": "Web"}}
        httpx_mock.add_response(
            url=ENDPOINT,
            json={
                "data": {
                    "q0": {"nodes": [{"id": "proj-mobile", "name": "Mobile App"}]},
                    "q1": {"nodes": [other, self.MILESTONE]},
                }
            },
        )
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"projectMilestone": {**self.MILESTONE, "issues": {"nodes": [issue_node()]}}}},
        )

        milestone = await service.read_milestone("Beta", project="Mobile App", issues_first=5)

        assert milestone.id == "ms-beta"
        assert milestone.issues is not None
        assert len(milestone.issues) == 1
        _, read = httpx_mock.get_requests()
        assert graphql_body(read)["variables"] == {"id": "ms-beta", "issuesFirst": 5}

    @pytest.mark.asyncio
    async def test_create(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"q0": {"nodes": [{"id": "proj-mobile", "name": "Mobile App"}]}}},
        )
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"projectMilestoneCreate": {"success": True, "projectMilestone": self.MILESTONE}}},
        )

        milestone = await service.create_milestone("Mobile App", "Beta", target_date="2024-06-01")

        assert milestone.target_date == "2024-06-01"
        _, mutation = httpx_mock.get_requests()
        assert graphql_body(mutation)["variables"]["input"] == {
            "projectId": "proj-mobile",
            "name": "Beta",
            "targetDate": "2024-06-01",
        }

    @pytest.mark.asyncio
    async def test_update_without_fields(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        with pytest.raises(UsageConflictError, match="Nothing to update"):
            await service.update_milestone("Beta")
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_failed_mutation_is_an_api_error(self, service: LinearService, httpx_mock: HTTPXMock) -> None:
        httpx_mock.add_response(
            url=ENDPOINT,
            json={"data": {"projectMilestoneUpdate": {"success": False, "projectMilestone": None}}},
        )
        with pytest.raises(ApiError, match="success=false"):
            await service.update_milestone(MILESTONE_UUID, name="Beta 2")
