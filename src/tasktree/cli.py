"""tasktree CLI — inspect project snapshots from the terminal.

Installed as the ``tasktree`` console_script.
"""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from tasktree import __version__
from tasktree.config import Config
from tasktree.filtering import TaskFilter, matching_ids
from tasktree.sorting import SortKey
from tasktree.tasks.model import Project, Task, TaskStatus
from tasktree.tasks.normalize import normalize_snapshot, parse_instant, parse_status
from tasktree.tasks.traverse import fold

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])

_STATUS_STYLE = {
    TaskStatus.TODO: "white",
    TaskStatus.IN_PROGRESS: "blue",
    TaskStatus.DONE: "green",
    TaskStatus.BLOCKED: "red",
}


# ── option parsing ───────────────────────────────────────────────────


def _parse_now(raw: str, cfg: Config) -> datetime:
    if not raw:
        return cfg.now()
    parsed = parse_instant(raw)
    if parsed is None:
        raise click.BadParameter(f"Cannot parse {raw!r} as an ISO-8601 date.", param_hint="--now")
    return parsed.astimezone(cfg.tzinfo())


def _parse_statuses(values: tuple[str, ...]) -> list[TaskStatus]:
    statuses: list[TaskStatus] = []
    for value in values:
        status = parse_status(value)
        if status is None:
            allowed = ", ".join(s.value for s in TaskStatus)
            raise click.BadParameter(
                f"Unknown status {value!r}. Valid statuses: {allowed}.",
                param_hint="--status",
            )
        statuses.append(status)
    return statuses


def _parse_sort_keys(values: tuple[str, ...]) -> list[SortKey]:
    try:
        return [SortKey.parse(v) for v in values]
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--sort") from None


def _parse_collection_args(values: tuple[str, ...]) -> dict[str, Path]:
    collections: dict[str, Path] = {}
    for value in values:
        name, sep, path = value.partition("=")
        if not sep or not name.strip() or not path.strip():
            raise click.BadParameter(
                f"Expected NAME=SNAPSHOT, got {value!r}.", param_hint="COLLECTIONS"
            )
        if name.strip() in collections:
            raise click.BadParameter(f"Duplicate collection name {name.strip()!r}.", param_hint="COLLECTIONS")
        collections[name.strip()] = Path(path.strip())
    return collections


def _load_projects(path: Path, cfg: Config) -> list[Project]:
    from tasktree import log as tlog
    from tasktree.io_utils import load_snapshot

    try:
        docs, project_type = load_snapshot(path)
    except (OSError, ValueError) as exc:
        tlog.error(f"Cannot read snapshot {path}: {exc}")
        sys.exit(1)
    normalized = normalize_snapshot(docs, project_type, cfg.max_depth)
    tlog.record_issues(str(path), normalized.issues)
    return normalized.projects


# ── main group ───────────────────────────────────────────────────────


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option("--timezone", "tz_name", default="", help="Calendar timezone for due-today checks (default: UTC)")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="tasktree")
@click.pass_context
def main(ctx: click.Context, tz_name: str, verbose: bool) -> None:
    """tasktree — hierarchical task trees for project dashboards.

    Reads project snapshot files (JSON exports of a project collection)
    and prints filtered trees, rollups, personal task lists and
    navigation badge counts.

    \b
    EXAMPLES:
      tasktree tree projects.json --project p1 --status Done
      tasktree tree projects.json --project p1 --sort due_date:desc
      tasktree summary projects.json
      tasktree my-tasks projects.json --user u1
      tasktree badges timKerja=tk.json rulemaking=rm.json --user u1
    """
    from tasktree import log as tlog

    tlog.set_verbose(verbose)
    ctx.obj = Config(timezone=tz_name, verbose=verbose)


# ── Subcommand: tree ─────────────────────────────────────────────────


def _node_label(task: Task, total: int, completed: int, direct: bool) -> str:
    style = _STATUS_STYLE[task.status]
    title = escape(task.title)
    label = f"[{style}]\\[{task.status.value}][/{style}] "
    label += title if direct else f"[dim]{title}[/dim]"
    if total > 1:
        label += f" [dim]({completed}/{total} done)[/dim]"
    if task.critical_issue:
        label += f" [bold red]! {escape(task.critical_issue)}[/bold red]"
    return label


@main.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--project", "project_id", required=True, help="Project id to show")
@click.option("--search", default="", help="Case-insensitive title search")
@click.option("--status", "statuses", multiple=True, help="Keep tasks with this status (repeatable)")
@click.option("--assignee", default="", help="Keep tasks assigned to this user id")
@click.option("--sort", "sort_keys", multiple=True, help="Sort key, e.g. due_date or title:desc (repeatable)")
@click.pass_obj
def tree(
    cfg: Config,
    snapshot: Path,
    project_id: str,
    search: str,
    statuses: tuple[str, ...],
    assignee: str,
    sort_keys: tuple[str, ...],
) -> None:
    """Print one project's task tree, filtered and sorted per level."""
    from tasktree import log as tlog
    from tasktree.aggregate import rollup
    from tasktree.views import get_filtered_sorted_tree

    predicate = TaskFilter(
        text=search,
        status=_parse_statuses(statuses) or None,
        assignee_id=assignee or None,
    )
    keys = _parse_sort_keys(sort_keys)

    projects = _load_projects(snapshot, cfg)
    project = next((p for p in projects if p.id == project_id), None)
    if project is None:
        tlog.error(f"No project with id {project_id!r} in {snapshot}")
        sys.exit(1)

    shown = get_filtered_sorted_tree(project, None if predicate.is_empty else predicate, keys)
    totals = rollup(project.tasks)
    direct = matching_ids(project.tasks, predicate)

    root = Tree(
        f"[bold]{escape(project.name or project.id)}[/bold] "
        f"[dim]({totals.completed}/{totals.total} done, {totals.completion_percentage:.0f}%)[/dim]"
    )

    def _attach(task: Task, children: list[Tree]) -> Tree:
        node_rollup = totals.nodes[task.id]
        branch = Tree(_node_label(task, node_rollup.total, node_rollup.completed, task.id in direct))
        branch.children.extend(children)
        return branch

    root.children.extend(fold(shown, _attach))
    if not shown:
        tlog.info("No tasks match.")
    tlog.console.print(root)


# ── Subcommand: summary ──────────────────────────────────────────────


@main.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--now", "now_raw", default="", help="Evaluate as of this ISO-8601 instant")
@click.pass_obj
def summary(cfg: Config, snapshot: Path, now_raw: str) -> None:
    """Show per-project rollups and the effective project status."""
    from tasktree import log as tlog
    from tasktree.aggregate import project_aggregate

    now = _parse_now(now_raw, cfg)
    projects = _load_projects(snapshot, cfg)
    if not projects:
        tlog.warn(f"No projects in {snapshot}")
        return

    table = Table(title=f"Projects in {snapshot.name}")
    table.add_column("Id")
    table.add_column("Project")
    table.add_column("Tasks", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Overdue", justify="right")
    table.add_column("Critical")
    table.add_column("Status")
    for project in projects:
        agg = project_aggregate(project, now, cfg.at_risk_margin)
        table.add_row(
            escape(project.id),
            escape(project.name),
            str(agg.total),
            str(agg.completed),
            f"{agg.completion_percentage:.0f}",
            str(agg.overdue),
            "[bold red]yes[/bold red]" if agg.has_critical else "no",
            agg.effective_status.value,
        )
    tlog.console.print(table)


# ── Subcommand: my-tasks ─────────────────────────────────────────────


@main.command(name="my-tasks")
@click.argument("snapshots", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--user", "user_id", required=True, help="User id")
@click.option("--now", "now_raw", default="", help="Evaluate as of this ISO-8601 instant")
@click.pass_obj
def my_tasks(cfg: Config, snapshots: tuple[Path, ...], user_id: str, now_raw: str) -> None:
    """List a user's tasks across projects with overdue and due-today buckets."""
    from tasktree import log as tlog
    from tasktree.aggregate import user_task_view, workload

    now = _parse_now(now_raw, cfg)
    projects = [p for path in snapshots for p in _load_projects(path, cfg)]
    view = user_task_view(user_id, projects, now)

    tlog.info(
        f"{view.total} task(s) for {user_id}: {view.open_count} open, "
        f"{view.completed_count} done ({view.completion_percentage:.0f}%)"
    )
    load = workload(view, now)
    tlog.info(f"Workload: {load.label} ({load.score}), pace this week: {load.pace}")

    def _print_bucket(title: str, items: tuple) -> None:
        tlog.console.print(f"[bold]{title}[/bold] ({len(items)})")
        for item in items:
            due = item.task.due_date.astimezone(now.tzinfo).date().isoformat() if item.task.due_date else "-"
            tlog.console.print(
                f"  - {escape(f'[{item.task.id}]')} {escape(item.task.title)} "
                f"[dim]{escape(item.project_name or item.project_id)}, due {due}[/dim]"
            )

    _print_bucket("Overdue", view.overdue)
    _print_bucket("Due today", view.due_today)
    _print_bucket("Open", view.open_tasks)

    if view.critical_projects:
        tlog.warn(f"Projects with critical issues: {', '.join(view.critical_projects)}")


# ── Subcommand: badges ───────────────────────────────────────────────


@main.command()
@click.argument("collections", nargs=-1, required=True)
@click.option("--user", "user_id", required=True, help="User id")
@click.option("--now", "now_raw", default="", help="Evaluate as of this ISO-8601 instant")
@click.pass_obj
def badges(cfg: Config, collections: tuple[str, ...], user_id: str, now_raw: str) -> None:
    """Compute navigation badge counters from NAME=SNAPSHOT collections."""
    from tasktree import log as tlog
    from tasktree.io_utils import load_snapshot
    from tasktree.store import AggregationStore, InMemoryDocumentStore

    now = _parse_now(now_raw, cfg)
    paths = _parse_collection_args(collections)

    store = InMemoryDocumentStore()
    for name, path in paths.items():
        try:
            docs, project_type = load_snapshot(path)
        except (OSError, ValueError) as exc:
            tlog.error(f"Cannot read snapshot {path}: {exc}")
            sys.exit(1)
        for doc in docs:
            if project_type and not doc.get("projectType"):
                doc["projectType"] = project_type
        store.set_collection(name, docs)

    agg = AggregationStore(store, user_id, cfg, clock=lambda: now)
    agg.init({name: name for name in paths})
    try:
        snap = agg.snapshot
    finally:
        agg.teardown()

    visible = snap.badges.visible()
    if not visible:
        tlog.success("No badges to show.")
        return
    style = {"critical": "bold red", "warning": "yellow", "info": "cyan"}
    for badge in visible:
        tlog.console.print(f"[{style[badge.severity]}]{badge.name}[/{style[badge.severity]}]: {badge.count}")
