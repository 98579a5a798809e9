"""Console logging for tasktree, colored via Rich.

Record issues and store events are reported here rather than raised, so a
single malformed document never blanks a whole dashboard.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from rich.console import Console

if TYPE_CHECKING:
    from tasktree.tasks.normalize import RecordIssue

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def info(msg: str) -> None:
    console.print(f"[blue]\\[INFO][/blue] {msg}")


def success(msg: str) -> None:
    console.print(f"[green]\\[OK][/green] {msg}")


def warn(msg: str) -> None:
    console.print(f"[yellow]\\[WARN][/yellow] {msg}")


def error(msg: str) -> None:
    _err_console.print(f"[red]\\[ERROR][/red] {msg}")


def debug(msg: str) -> None:
    if _verbose:
        console.print(f"[dim]\\[DEBUG] {msg}[/dim]")


def record_issues(source: str, issues: Iterable[RecordIssue]) -> int:
    """Warn once per dropped or repaired record. Returns how many were logged."""
    count = 0
    for issue in issues:
        warn(f"{source}: {issue.path}: {issue.message}")
        count += 1
    return count
