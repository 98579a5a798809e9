"""Turn raw store documents into canonical task trees, and back.

Raw documents use the store's camelCase field names (``assigneeIds``,
``dueDate``, ``subTasks`` ...). Dates may arrive as ISO-8601 strings or as
store timestamp objects; every one of them leaves this module as an aware
UTC ``datetime`` (or ``None``), so nothing downstream has to care where a
date came from.

Normalization is pure: raw input is never mutated and nothing is logged.
Dropped or repaired records are returned as :class:`RecordIssue` values for
the caller to report.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any

from tasktree.config import DEFAULT_MAX_DEPTH
from tasktree.errors import InvalidRecord, StructuralError
from tasktree.tasks.model import (
    Attachment,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
    User,
)
from tasktree.tasks.traverse import fold

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_STATUS_ALIASES: dict[str, TaskStatus] = {
    "todo": TaskStatus.TODO,
    "inprogress": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
    "blocked": TaskStatus.BLOCKED,
}

_PROJECT_STATUS_ALIASES: dict[str, ProjectStatus] = {
    "ontrack": ProjectStatus.ON_TRACK,
    "atrisk": ProjectStatus.AT_RISK,
    "offtrack": ProjectStatus.OFF_TRACK,
    "completed": ProjectStatus.COMPLETED,
}


@dataclass(frozen=True)
class RecordIssue:
    path: str
    message: str


@dataclass
class NormalizedTasks:
    tasks: list[Task] = field(default_factory=list)
    issues: list[RecordIssue] = field(default_factory=list)


@dataclass
class NormalizedProject:
    project: Project
    issues: list[RecordIssue] = field(default_factory=list)


@dataclass
class NormalizedSnapshot:
    projects: list[Project] = field(default_factory=list)
    issues: list[RecordIssue] = field(default_factory=list)


# ── dates ────────────────────────────────────────────────────────────


def _from_epoch(seconds: Any, nanos: Any = 0) -> datetime | None:
    try:
        return _EPOCH + timedelta(seconds=int(seconds), microseconds=int(nanos or 0) // 1000)
    except (TypeError, ValueError, OverflowError):
        return None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_iso(text: str) -> datetime | None:
    text = text.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    if len(text) != 10:
        return None
    try:
        return _as_utc(datetime.combine(date.fromisoformat(text), datetime.min.time()))
    except ValueError:
        return None


def parse_instant(value: Any) -> datetime | None:
    """Parse any supported date representation into an aware UTC datetime.

    Returns ``None`` for missing or unparseable values.
    """
    if value is None:
        return None
    # datetime before date: datetime is a date subclass
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        return _parse_iso(value)
    if isinstance(value, Mapping):
        if "seconds" in value:
            return _from_epoch(value["seconds"], value.get("nanoseconds", 0))
        if "_seconds" in value:
            return _from_epoch(value["_seconds"], value.get("_nanoseconds", 0))
        return None
    to_datetime = getattr(value, "to_datetime", None)
    if callable(to_datetime):
        converted = to_datetime()
        return _as_utc(converted) if isinstance(converted, datetime) else None
    if hasattr(value, "seconds"):
        return _from_epoch(getattr(value, "seconds"), getattr(value, "nanoseconds", 0))
    return None


def format_instant(value: datetime | None) -> str | None:
    if value is None:
        return None
    return _as_utc(value).isoformat().replace("+00:00", "Z")


# ── field helpers ────────────────────────────────────────────────────


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _status_key(value: str) -> str:
    return "".join(ch for ch in value.lower() if ch.isalnum())


def parse_status(value: Any) -> TaskStatus | None:
    """Map a raw status string to :class:`TaskStatus`, or ``None`` if unknown."""
    if isinstance(value, TaskStatus):
        return value
    return _STATUS_ALIASES.get(_status_key(_text(value)))


def parse_project_status(value: Any) -> ProjectStatus | None:
    if isinstance(value, ProjectStatus):
        return value
    return _PROJECT_STATUS_ALIASES.get(_status_key(_text(value)))


def _assignees(raw: Mapping[str, Any]) -> frozenset[str]:
    ids = raw.get("assigneeIds")
    if ids is None:
        ids = raw.get("assignee_ids")
    if isinstance(ids, str):
        ids = [ids]
    if not isinstance(ids, Iterable):
        return frozenset()
    return frozenset(_text(i) for i in ids if _text(i))


def _attachments(raw: Any) -> list[Attachment]:
    if not isinstance(raw, list):
        return []
    result: list[Attachment] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        url = _text(item.get("url"))
        name = _text(item.get("name")) or url
        if not url and not name:
            continue
        result.append(Attachment(name=name, url=url, id=_text(item.get("id"))))
    return result


def _raw_children(raw: Mapping[str, Any]) -> list[Any]:
    children = raw.get("subTasks")
    if children is None:
        children = raw.get("children")
    return children if isinstance(children, list) else []


def _critical(value: Any) -> str | None:
    text = _text(value)
    return text or None


def _build_node(raw: Mapping[str, Any], path: str, issues: list[RecordIssue]) -> Task:
    task_id = _text(raw.get("id"))
    if not task_id:
        raise InvalidRecord(path, "task is missing 'id'")
    title = _text(raw.get("title"))
    if not title:
        raise InvalidRecord(path, f"task {task_id!r} is missing 'title'")

    raw_status = raw.get("status")
    status = parse_status(raw_status)
    if status is None:
        if raw_status not in (None, ""):
            issues.append(RecordIssue(path, f"unknown status {raw_status!r}, using {TaskStatus.TODO.value!r}"))
        status = TaskStatus.TODO

    return Task(
        id=task_id,
        title=title,
        assignee_ids=_assignees(raw),
        start_date=parse_instant(raw.get("startDate", raw.get("start_date"))),
        due_date=parse_instant(raw.get("dueDate", raw.get("due_date"))),
        status=status,
        done_date=parse_instant(raw.get("doneDate", raw.get("done_date"))),
        critical_issue=_critical(raw.get("criticalIssue", raw.get("critical_issue"))),
        attachments=_attachments(raw.get("attachments")),
    )


# ── tasks ────────────────────────────────────────────────────────────


def _normalize_forest(
    raws: list[Any],
    base_path: str,
    issues: list[RecordIssue],
    seen_ids: set[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[Task]:
    roots: list[Task] = []
    seen_raw: set[int] = set()
    # (raw record, path, sibling list to append to, depth)
    stack: list[tuple[Any, str, list[Task], int]] = [
        (raw, f"{base_path}[{i}]", roots, 0) for i, raw in reversed(list(enumerate(raws)))
    ]
    while stack:
        raw, path, siblings, depth = stack.pop()
        if not isinstance(raw, Mapping):
            issues.append(RecordIssue(path, "task record is not an object, dropped"))
            continue
        if id(raw) in seen_raw:
            raise StructuralError(f"{path}: raw task record appears twice (cycle or shared record)")
        if depth > max_depth:
            raise StructuralError(f"{path}: exceeds the maximum tree depth of {max_depth}")
        seen_raw.add(id(raw))
        try:
            node = _build_node(raw, path, issues)
        except InvalidRecord as exc:
            issues.append(RecordIssue(exc.path, f"{exc.message}, dropped with its subtasks"))
            continue
        if node.id in seen_ids:
            issues.append(RecordIssue(path, f"duplicate task id {node.id!r}, dropped with its subtasks"))
            continue
        seen_ids.add(node.id)
        siblings.append(node)
        children = _raw_children(raw)
        for i in range(len(children) - 1, -1, -1):
            stack.append((children[i], f"{path}.subTasks[{i}]", node.children, depth + 1))
    return roots


def normalize_tasks(
    raws: Iterable[Any], path: str = "tasks", max_depth: int = DEFAULT_MAX_DEPTH
) -> NormalizedTasks:
    """Normalize a list of root task records. Invalid records are dropped and reported."""
    issues: list[RecordIssue] = []
    tasks = _normalize_forest(list(raws or []), path, issues, set(), max_depth)
    return NormalizedTasks(tasks=tasks, issues=issues)


def normalize_task(
    raw: Mapping[str, Any], path: str = "task", max_depth: int = DEFAULT_MAX_DEPTH
) -> Task:
    """Normalize one task subtree.

    Raises ``InvalidRecord`` when *raw* itself lacks ``id`` or ``title``;
    invalid descendants are silently dropped (use :func:`normalize_tasks`
    to collect the issues).
    """
    if not isinstance(raw, Mapping):
        raise InvalidRecord(path, "task record is not an object")
    _build_node(raw, path, [])
    result = _normalize_forest([raw], path, [], set(), max_depth)
    return result[0]


# ── projects ─────────────────────────────────────────────────────────


def _team(raw: Any) -> list[User]:
    if not isinstance(raw, list):
        return []
    team: list[User] = []
    for member in raw:
        if isinstance(member, str) and member.strip():
            team.append(User(id=member.strip()))
        elif isinstance(member, Mapping) and _text(member.get("id")):
            email = member.get("email")
            team.append(User(
                id=_text(member.get("id")),
                name=_text(member.get("name")),
                email=_text(email) or None,
                role=_text(member.get("role")),
            ))
    return team


def _tags(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [_text(tag) for tag in raw if _text(tag)]


def normalize_project(
    raw: Mapping[str, Any],
    project_type: str = "",
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> NormalizedProject:
    """Normalize one project document, including its whole task tree.

    Raises ``InvalidRecord`` when the document has no ``id``.
    """
    if not isinstance(raw, Mapping):
        raise InvalidRecord("project", "project document is not an object")
    project_id = _text(raw.get("id"))
    if not project_id:
        raise InvalidRecord("project", "project is missing 'id'")

    issues: list[RecordIssue] = []
    raw_status = raw.get("status")
    status = parse_project_status(raw_status)
    if status is None:
        if raw_status not in (None, ""):
            issues.append(RecordIssue(
                f"project[{project_id}]",
                f"unknown project status {raw_status!r}, using {ProjectStatus.ON_TRACK.value!r}",
            ))
        status = ProjectStatus.ON_TRACK

    tasks = _normalize_forest(
        list(raw.get("tasks") or []), f"project[{project_id}].tasks", issues, set(), max_depth
    )
    project = Project(
        id=project_id,
        name=_text(raw.get("name")),
        owner_id=_text(raw.get("ownerId", raw.get("owner_id"))),
        team=_team(raw.get("team")),
        start_date=parse_instant(raw.get("startDate", raw.get("start_date"))),
        end_date=parse_instant(raw.get("endDate", raw.get("end_date"))),
        status=status,
        tags=_tags(raw.get("tags")),
        project_type=project_type or _text(raw.get("projectType", raw.get("project_type"))),
        tasks=tasks,
    )
    return NormalizedProject(project=project, issues=issues)


def normalize_snapshot(
    docs: Iterable[Any],
    project_type: str = "",
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> NormalizedSnapshot:
    """Normalize every project document of one collection snapshot."""
    result = NormalizedSnapshot()
    for index, raw in enumerate(docs or []):
        try:
            normalized = normalize_project(raw, project_type, max_depth)
        except InvalidRecord as exc:
            result.issues.append(RecordIssue(f"documents[{index}]", f"{exc.message}, dropped"))
            continue
        except StructuralError as exc:
            result.issues.append(RecordIssue(f"documents[{index}]", f"{exc}, dropped"))
            continue
        result.projects.append(normalized.project)
        result.issues.extend(normalized.issues)
    return result


# ── serialization ────────────────────────────────────────────────────


def _serialize_node(task: Task) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "assigneeIds": sorted(task.assignee_ids),
        "startDate": format_instant(task.start_date),
        "dueDate": format_instant(task.due_date),
        "status": task.status.value,
        "subTasks": [],
        "attachments": [
            {"id": a.id, "name": a.name, "url": a.url} for a in task.attachments
        ],
    }
    if task.done_date is not None:
        raw["doneDate"] = format_instant(task.done_date)
    if task.critical_issue:
        raw["criticalIssue"] = task.critical_issue
    return raw


def serialize_tasks(tasks: list[Task]) -> list[dict[str, Any]]:
    """Convert task trees back into raw store records."""
    return fold(tasks, lambda task, children: {**_serialize_node(task), "subTasks": children})


def serialize_task(task: Task) -> dict[str, Any]:
    return serialize_tasks([task])[0]


def serialize_project(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "ownerId": project.owner_id,
        "team": [
            {"id": u.id, "name": u.name, "email": u.email, "role": u.role}
            for u in project.team
        ],
        "startDate": format_instant(project.start_date),
        "endDate": format_instant(project.end_date),
        "status": project.status.value,
        "tags": list(project.tags),
        "projectType": project.project_type,
        "tasks": serialize_tasks(project.tasks),
    }
