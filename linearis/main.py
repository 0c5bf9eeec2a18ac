"""linearis CLI: JSON in, JSON out, for scripts and agents driving Linear."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from typing import Annotated, Any

import tomlkit
import typer
from pydantic import BaseModel
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from linearis.errors import LinearisError
from linearis.resolve.labels import LabelChange, LabelMode
from linearis.service import LinearService, open_service
from linearis.settings import CONFIG_PATH, _list_profiles, get_settings

app = typer.Typer(help="linearis: Linear from the command line, with JSON output", no_args_is_help=True)
issues_app = typer.Typer(help="List, search, read, create and update issues.", no_args_is_help=True)
comments_app = typer.Typer(help="Comment on issues.", no_args_is_help=True)
labels_app = typer.Typer(help="Issue labels.", no_args_is_help=True)
projects_app = typer.Typer(help="Projects.", no_args_is_help=True)
teams_app = typer.Typer(help="Teams.", no_args_is_help=True)
users_app = typer.Typer(help="Workspace members.", no_args_is_help=True)
cycles_app = typer.Typer(help="Team cycles.", no_args_is_help=True)
milestones_app = typer.Typer(help="Project milestones.", no_args_is_help=True)

app.add_typer(issues_app, name="issues")
app.add_typer(comments_app, name="comments")
app.add_typer(labels_app, name="labels")
app.add_typer(projects_app, name="projects")
app.add_typer(teams_app, name="teams")
app.add_typer(users_app, name="users")
app.add_typer(cycles_app, name="cycles")
app.add_typer(milestones_app, name="milestones")

stdout = Console()
stderr = Console(stderr=True)

LimitOpt = Annotated[int, typer.Option("--limit", "-l", min=1, help="Maximum number of results")]
TeamOpt = Annotated[str | None, typer.Option("--team", help="Team key, name or ID")]
ProjectOpt = Annotated[str | None, typer.Option("--project", help="Project name or ID")]
IssuesFirstOpt = Annotated[int, typer.Option("--issues-first", min=0, help="How many issues to fetch")]


class GlobalOptions(BaseModel):
    api_token: str | None = None
    workspace: str | None = None


# ---------------------------------------------------------------------------
# Service factory and command runner
# ---------------------------------------------------------------------------


def get_service(api_token: str | None = None, workspace: str | None = None) -> AbstractAsyncContextManager[LinearService]:
    settings = get_settings(api_token=api_token, workspace=workspace)
    return open_service(settings)


def _to_json(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_to_json(v) for v in value]
    return value


def _run(ctx: typer.Context, operation: Callable[[LinearService], Awaitable[Any]]) -> None:
    """Open a service, run one operation, print its JSON; errors go to stderr with exit 1."""
    opts: GlobalOptions = ctx.obj or GlobalOptions()
    service_cm = get_service(api_token=opts.api_token, workspace=opts.workspace)

    async def runner() -> Any:
        async with service_cm as service:
            return await operation(service)

    try:
        result = asyncio.run(runner())
    except LinearisError as exc:
        stderr.print_json(data=exc.to_dict())
        raise typer.Exit(1) from None
    stdout.print_json(data=_to_json(result))


def _split(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=stderr, show_path=False)],
        force=True,
    )
    # httpx logs every request at INFO; keep it to our own debug lines
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.callback()
def main(
    ctx: typer.Context,
    api_token: Annotated[str | None, typer.Option("--api-token", help="Linear API token")] = None,
    workspace: Annotated[
        str | None,
        typer.Option("--workspace", "-w", help="Profile name from ~/.config/linearis/config.toml"),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log requests and timings to stderr")] = False,
) -> None:
    _configure_logging(verbose)
    ctx.obj = GlobalOptions(api_token=api_token, workspace=workspace)


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


@issues_app.command("list")
def issues_list(ctx: typer.Context, limit: LimitOpt = 25) -> None:
    """List recently updated issues that are not completed."""
    _run(ctx, lambda service: service.list_issues(limit=limit))


@issues_app.command("search")
def issues_search(
    ctx: typer.Context,
    query: Annotated[str | None, typer.Argument(help="Full-text search term")] = None,
    team: TeamOpt = None,
    assignee: Annotated[str | None, typer.Option("--assignee", help="Assignee name, email or ID")] = None,
    project: ProjectOpt = None,
    states: Annotated[str | None, typer.Option("--states", help="Comma-separated state names")] = None,
    limit: LimitOpt = 10,
) -> None:
    """Search issues by text and/or team, assignee, project and state."""
    _run(
        ctx,
        lambda service: service.search_issues(
            query=query,
            team=team,
            assignee=assignee,
            project=project,
            states=_split(states),
            limit=limit,
        ),
    )


@issues_app.command("read")
def issues_read(
    ctx: typer.Context,
    issue: Annotated[str, typer.Argument(help="Issue ID or identifier (e.g. ENG-123)")],
) -> None:
    """Show an issue with its relations and comments."""
    _run(ctx, lambda service: service.read_issue(issue))


@issues_app.command("create")
def issues_create(
    ctx: typer.Context,
    title: Annotated[str, typer.Argument(help="Issue title")],
    team: Annotated[str | None, typer.Option("--team", help="Team key, name or ID (defaults to default_team)")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d", help="Issue description")] = None,
    assignee: Annotated[str | None, typer.Option("--assignee", "-a", help="Assignee name, email or ID")] = None,
    priority: Annotated[int | None, typer.Option("--priority", "-p", min=0, max=4, help="Priority 0-4")] = None,
    project: ProjectOpt = None,
    labels: Annotated[str | None, typer.Option("--labels", help="Comma-separated label names, Group/Label paths or IDs")] = None,
    milestone: Annotated[str | None, typer.Option("--milestone", help="Milestone name or ID (scoped by --project)")] = None,
    cycle: Annotated[str | None, typer.Option("--cycle", help="Cycle name or ID (scoped by team)")] = None,
    status: Annotated[str | None, typer.Option("--status", help="Workflow state name or ID")] = None,
    parent: Annotated[str | None, typer.Option("--parent-ticket", help="Parent issue ID or identifier")] = None,
    estimate: Annotated[float | None, typer.Option("--estimate", help="Estimate points")] = None,
) -> None:
    """Create an issue; every reference is resolved in one request."""
    _run(
        ctx,
        lambda service: service.create_issue(
            title=title,
            team=team,
            description=description,
            assignee=assignee,
            priority=priority,
            project=project,
            labels=_split(labels),
            milestone=milestone,
            cycle=cycle,
            status=status,
            parent=parent,
            estimate=estimate,
        ),
    )


@issues_app.command("update")
def issues_update(
    ctx: typer.Context,
    issue: Annotated[str, typer.Argument(help="Issue ID or identifier (e.g. ENG-123)")],
    title: Annotated[str | None, typer.Option("--title", "-t", help="New title")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d", help="New description")] = None,
    state: Annotated[str | None, typer.Option("--state", "-s", help="New workflow state name or ID")] = None,
    priority: Annotated[int | None, typer.Option("--priority", "-p", min=0, max=4, help="New priority 0-4")] = None,
    assignee: Annotated[str | None, typer.Option("--assignee", help="New assignee name, email or ID")] = None,
    project: ProjectOpt = None,
    labels: Annotated[str | None, typer.Option("--labels", help="Comma-separated label names, Group/Label paths or IDs")] = None,
    label_by: Annotated[LabelMode | None, typer.Option("--label-by", help="adding (default) or overwriting")] = None,
    clear_labels: Annotated[bool, typer.Option("--clear-labels", help="Remove all labels")] = False,
    parent: Annotated[str | None, typer.Option("--parent-ticket", help="New parent issue ID or identifier")] = None,
    clear_parent: Annotated[bool, typer.Option("--clear-parent-ticket", help="Remove the parent")] = False,
    milestone: Annotated[str | None, typer.Option("--milestone", help="Milestone name or ID")] = None,
    clear_milestone: Annotated[bool, typer.Option("--clear-milestone", help="Remove the milestone")] = False,
    cycle: Annotated[str | None, typer.Option("--cycle", help="Cycle name or ID")] = None,
    clear_cycle: Annotated[bool, typer.Option("--clear-cycle", help="Remove the cycle")] = False,
    estimate: Annotated[float | None, typer.Option("--estimate", help="New estimate points")] = None,
) -> None:
    """Update an issue; labels are added to the current set unless --label-by overwriting."""

    async def update(service: LinearService) -> Any:
        label_change = LabelChange.from_options(_split(labels), mode=label_by, clear=clear_labels)
        return await service.update_issue(
            issue,
            title=title,
            description=description,
            state=state,
            priority=priority,
            assignee=assignee,
            project=project,
            milestone=milestone,
            cycle=cycle,
            parent=parent,
            clear_parent=clear_parent,
            clear_milestone=clear_milestone,
            clear_cycle=clear_cycle,
            estimate=estimate,
            label_change=label_change,
        )

    _run(ctx, update)


# ---------------------------------------------------------------------------
# Comments, labels, projects, teams, users
# ---------------------------------------------------------------------------


@comments_app.command("create")
def comments_create(
    ctx: typer.Context,
    issue: Annotated[str, typer.Argument(help="Issue ID or identifier (e.g. ENG-123)")],
    body: Annotated[str, typer.Option("--body", help="Comment body (markdown)")],
) -> None:
    """Add a comment to an issue."""
    _run(ctx, lambda service: service.create_comment(issue, body))


@labels_app.command("list")
def labels_list(ctx: typer.Context, team: TeamOpt = None) -> None:
    """List workspace and team labels, optionally only one team's."""
    _run(ctx, lambda service: service.list_labels(team=team))


@projects_app.command("list")
def projects_list(ctx: typer.Context, limit: LimitOpt = 100) -> None:
    """List projects that are not completed."""
    _run(ctx, lambda service: service.list_projects(limit=limit))


@teams_app.command("list")
def teams_list(ctx: typer.Context) -> None:
    """List teams."""
    _run(ctx, lambda service: service.list_teams())


@users_app.command("list")
def users_list(
    ctx: typer.Context,
    active: Annotated[bool, typer.Option("--active", help="Only active users")] = False,
) -> None:
    """List workspace members."""
    _run(ctx, lambda service: service.list_users(active_only=active))


# ---------------------------------------------------------------------------
# Cycles and milestones
# ---------------------------------------------------------------------------


@cycles_app.command("list")
def cycles_list(
    ctx: typer.Context,
    team: TeamOpt = None,
    active: Annotated[bool, typer.Option("--active", help="Only the active cycle")] = False,
    around_active: Annotated[
        int | None,
        typer.Option("--around-active", help="Active cycle +/- n cycles (requires --team)"),
    ] = None,
    limit: LimitOpt = 25,
) -> None:
    """List cycles."""
    _run(
        ctx,
        lambda service: service.list_cycles(team=team, active=active, around_active=around_active, limit=limit),
    )


@cycles_app.command("read")
def cycles_read(
    ctx: typer.Context,
    cycle: Annotated[str, typer.Argument(help="Cycle ID or name")],
    team: TeamOpt = None,
    issues_first: IssuesFirstOpt = 50,
) -> None:
    """Show a cycle and its issues; --team scopes name lookup."""
    _run(ctx, lambda service: service.read_cycle(cycle, team=team, issues_first=issues_first))


@milestones_app.command("list")
def milestones_list(
    ctx: typer.Context,
    project: Annotated[str, typer.Option("--project", help="Project name or ID")],
    limit: LimitOpt = 50,
) -> None:
    """List a project's milestones."""
    _run(ctx, lambda service: service.list_milestones(project, limit=limit))


@milestones_app.command("read")
def milestones_read(
    ctx: typer.Context,
    milestone: Annotated[str, typer.Argument(help="Milestone ID or name")],
    project: ProjectOpt = None,
    issues_first: IssuesFirstOpt = 50,
) -> None:
    """Show a milestone and its issues; --project scopes name lookup."""
    _run(ctx, lambda service: service.read_milestone(milestone, project=project, issues_first=issues_first))


@milestones_app.command("create")
def milestones_create(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Milestone name")],
    project: Annotated[str, typer.Option("--project", help="Project name or ID")],
    description: Annotated[str | None, typer.Option("--description", "-d", help="Milestone description")] = None,
    target_date: Annotated[str | None, typer.Option("--target-date", help="Target date (YYYY-MM-DD)")] = None,
) -> None:
    """Create a project milestone."""
    _run(
        ctx,
        lambda service: service.create_milestone(project, name, description=description, target_date=target_date),
    )


@milestones_app.command("update")
def milestones_update(
    ctx: typer.Context,
    milestone: Annotated[str, typer.Argument(help="Milestone ID or name")],
    project: ProjectOpt = None,
    name: Annotated[str | None, typer.Option("--name", "-n", help="New name")] = None,
    description: Annotated[str | None, typer.Option("--description", "-d", help="New description")] = None,
    target_date: Annotated[str | None, typer.Option("--target-date", help="New target date (YYYY-MM-DD)")] = None,
    sort_order: Annotated[float | None, typer.Option("--sort-order", help="New sort order")] = None,
) -> None:
    """Update a project milestone; --project scopes name lookup."""
    _run(
        ctx,
        lambda service: service.update_milestone(
            milestone,
            project=project,
            name=name,
            description=description,
            target_date=target_date,
            sort_order=sort_order,
        ),
    )


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@app.command("set-default")
def set_default(
    workspace: Annotated[str, typer.Argument(help="Profile name to use when --workspace is omitted")],
) -> None:
    """Set default_workspace in ~/.config/linearis/config.toml."""
    if not CONFIG_PATH.exists():
        rprint(f"[red]{CONFIG_PATH} does not exist. Add a [{workspace}] profile first.[/red]")
        raise typer.Exit(1)

    doc = tomlkit.load(CONFIG_PATH.open())
    profiles = _list_profiles(doc)
    if workspace not in profiles:
        rprint(f"[red]Profile '{workspace}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}[/red]")
        raise typer.Exit(1)

    doc["default_workspace"] = workspace
    CONFIG_PATH.write_text(tomlkit.dumps(doc))
    rprint(f'[green]✓[/green] Default workspace set to "{workspace}" in {CONFIG_PATH}')


@app.command("config-show")
def config_show(ctx: typer.Context) -> None:
    """Show resolved configuration (masks the token)."""
    opts: GlobalOptions = ctx.obj or GlobalOptions()
    settings = get_settings(api_token=opts.api_token, workspace=opts.workspace)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"lin_api_...{val[-5:]}"

    table = Table(title="linearis configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("workspace", opts.workspace or settings.default_workspace or "[dim](not set)[/dim]")
    table.add_row("api_token", mask(settings.api_token.get_secret_value() if settings.api_token else None))
    table.add_row("default_team", settings.default_team or "[dim](not set)[/dim]")
    table.add_row("endpoint", settings.endpoint)
    table.add_row("timeout", f"{settings.timeout:g}s")
    table.add_row("page_size", str(settings.page_size))

    rprint(table)
