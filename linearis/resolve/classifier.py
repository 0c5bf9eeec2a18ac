"""Decide whether a user token is already a canonical ID or needs a remote lookup."""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

from linearis.errors import InvalidReferenceError

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


class EntityType(str, Enum):
    TEAM = "team"
    PROJECT = "project"
    LABEL = "label"
    CYCLE = "cycle"
    MILESTONE = "milestone"
    ISSUE = "issue"
    USER = "user"
    STATE = "state"


class Strategy(str, Enum):
    NAME = "name"
    KEY_OR_NAME = "key_or_name"  # teams: key first, then name
    GROUP_PATH = "group_path"  # labels: "Group/Label"
    IDENTIFIER = "identifier"  # issues: "TEAM-123"
    EMAIL = "email"  # users


class Canonical(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str


class NeedsLookup(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity: EntityType
    strategy: Strategy
    token: str  # the original, unresolved reference
    value: str  # name / key / email / child label name
    group: str | None = None  # GROUP_PATH only
    team_key: str | None = None  # IDENTIFIER only
    number: int | None = None  # IDENTIFIER only
    problem: str | None = None  # set when the token cannot be looked up as typed

    def check(self) -> None:
        """Raise InvalidReferenceError for malformed references."""
        if self.problem:
            raise InvalidReferenceError(self.problem)


class ParsedIssueIdentifier(BaseModel):
    model_config = ConfigDict(frozen=True)

    team_key: str
    number: int


def is_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value))


def parse_issue_identifier(identifier: str) -> ParsedIssueIdentifier:
    """Parse ABC-123 into ("ABC", 123).

    Team keys are case-insensitive remotely and always stored upper-case.
    """
    parts = identifier.split("-")
    if len(parts) != 2 or not parts[0]:
        raise InvalidReferenceError(f'Invalid issue identifier format: "{identifier}". Expected format: TEAM-123')
    team_key, num_str = parts
    if not num_str.isdigit():
        raise InvalidReferenceError(f'Invalid issue number in identifier: "{identifier}"')
    return ParsedIssueIdentifier(team_key=team_key.upper(), number=int(num_str))


def try_parse_issue_identifier(identifier: str) -> ParsedIssueIdentifier | None:
    try:
        return parse_issue_identifier(identifier)
    except InvalidReferenceError:
        return None


def classify(token: str, entity: EntityType) -> Canonical | NeedsLookup:
    """Classify a token for the given entity type. Never raises."""
    token = token.strip()
    if is_uuid(token):
        return Canonical(id=token)
    if not token:
        return NeedsLookup(
            entity=entity,
            strategy=Strategy.NAME,
            token=token,
            value=token,
            problem=f"Empty {entity.value} reference",
        )

    match entity:
        case EntityType.TEAM:
            return NeedsLookup(entity=entity, strategy=Strategy.KEY_OR_NAME, token=token, value=token)
        case EntityType.LABEL if "/" in token:
            group, _, child = token.partition("/")
            group, child = group.strip(), child.strip()
            problem = None
            if not group or not child:
                problem = f'Invalid group/label syntax: "{token}". Expected format: "GroupName/LabelName"'
            return NeedsLookup(
                entity=entity,
                strategy=Strategy.GROUP_PATH,
                token=token,
                value=child,
                group=group,
                problem=problem,
            )
        case EntityType.ISSUE:
            parsed = try_parse_issue_identifier(token)
            if parsed is None:
                return NeedsLookup(
                    entity=entity,
                    strategy=Strategy.IDENTIFIER,
                    token=token,
                    value=token,
                    problem=f'Invalid issue identifier format: "{token}". Expected format: TEAM-123',
                )
            return NeedsLookup(
                entity=entity,
                strategy=Strategy.IDENTIFIER,
                token=token,
                value=token,
                team_key=parsed.team_key,
                number=parsed.number,
            )
        case EntityType.USER if "@" in token:
            return NeedsLookup(entity=entity, strategy=Strategy.EMAIL, token=token, value=token)
        case _:
            return NeedsLookup(entity=entity, strategy=Strategy.NAME, token=token, value=token)
