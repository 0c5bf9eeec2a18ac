"""Tests for linearis.resolve.disambiguate."""

import pytest

from linearis.errors import AmbiguousError
from linearis.resolve.classifier import EntityType
from linearis.resolve.disambiguate import disambiguate


def _cycle(cycle_id: str, active: bool = False, nxt: bool = False, prev: bool = False) -> dict:
    return {
        "id": cycle_id,
        "name": "Sprint 5",
        "number": 5,
        "startsAt": "2024-03-01",
        "isActive": active,
        "isNext": nxt,
        "isPrevious": prev,
        "team": {"id": f"team-{cycle_id}", "key": cycle_id.upper()},
    }


class TestSingleCandidate:
    def test_returns_it(self) -> None:
        assert disambiguate(EntityType.PROJECT, "Mobile App", [{"id": "p1", "name": "Mobile App"}]) == "p1"

    def test_no_candidates_is_a_caller_bug(self) -> None:
        with pytest.raises(ValueError):
            disambiguate(EntityType.PROJECT, "Mobile App", [])


class TestCycleTieBreaks:
    def test_active_wins(self) -> None:
        candidates = [_cycle("c1"), _cycle("c2", active=True), _cycle("c3", nxt=True)]
        assert disambiguate(EntityType.CYCLE, "Sprint 5", candidates) == "c2"

    def test_next_wins_without_active(self) -> None:
        candidates = [_cycle("c1", prev=True), _cycle("c2", nxt=True), _cycle("c3")]
        assert disambiguate(EntityType.CYCLE, "Sprint 5", candidates) == "c2"

    def test_previous_wins_last(self) -> None:
        candidates = [_cycle("c1"), _cycle("c2", prev=True)]
        assert disambiguate(EntityType.CYCLE, "Sprint 5", candidates) == "c2"

    def test_two_active_is_ambiguous_over_those_two(self) -> None:
        candidates = [_cycle("c3", active=True), _cycle("c1"), _cycle("c2", active=True)]
        with pytest.raises(AmbiguousError) as exc_info:
            disambiguate(EntityType.CYCLE, "Sprint 5", candidates)
        assert [c["id"] for c in exc_info.value.candidates] == ["c2", "c3"]

    def test_no_predicate_matches_lists_everything(self) -> None:
        candidates = [_cycle("c2"), _cycle("c1")]
        with pytest.raises(AmbiguousError) as exc_info:
            disambiguate(EntityType.CYCLE, "Sprint 5", candidates)
        err = exc_info.value
        assert [c["id"] for c in err.candidates] == ["c1", "c2"]
        assert err.candidates[0]["team"] == "C1"
        assert err.candidates[0]["number"] == 5
        assert "c1" in str(err)
        assert "c2" in str(err)
        assert "--team" in err.hint


class TestNoTieBreak:
    def test_projects_never_guess(self) -> None:
        candidates = [{"id": "p2", "name": "Mobile App"}, {"id": "p1", "name": "Mobile App"}]
        with pytest.raises(AmbiguousError, match='Multiple projects found matching "Mobile App"'):
            disambiguate(EntityType.PROJECT, "Mobile App", candidates)

    def test_milestone_candidates_carry_project(self) -> None:
        candidates = [
            {"id": "m1", "name": "Beta", "project": {"name": "Mobile"}, "targetDate": "2024-06-01"},
            {"id": "m2", "name": "Beta", "project": {"name": "Web"}, "targetDate": None},
        ]
        with pytest.raises(AmbiguousError) as exc_info:
            disambiguate(EntityType.MILESTONE, "Beta", candidates)
        assert exc_info.value.candidates[0] == {"id": "m1", "project": "Mobile", "targetDate": "2024-06-01"}
        assert "--project" in exc_info.value.hint

    def test_label_uses_given_entity_label(self) -> None:
        candidates = [{"id": "g1", "name": "Priority"}, {"id": "g2", "name": "Priority"}]
        with pytest.raises(AmbiguousError, match="Multiple label groups found"):
            disambiguate(EntityType.LABEL, "Priority", candidates, "label group")

    def test_to_dict_payload(self) -> None:
        candidates = [{"id": "u1", "name": "Sam"}, {"id": "u2", "name": "Sam"}]
        with pytest.raises(AmbiguousError) as exc_info:
            disambiguate(EntityType.USER, "Sam", candidates)
        payload = exc_info.value.to_dict()
        assert payload["entity"] == "user"
        assert payload["reference"] == "Sam"
        assert [c["id"] for c in payload["candidates"]] == ["u1", "u2"]
        assert payload["hint"]
