"""Task and Project data models shared by normalization, views and aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TaskStatus(str, Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    DONE = "Done"
    BLOCKED = "Blocked"

    @property
    def rank(self) -> int:
        """Workflow position used when sorting by status."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    TaskStatus.TODO: 0,
    TaskStatus.IN_PROGRESS: 1,
    TaskStatus.BLOCKED: 2,
    TaskStatus.DONE: 3,
}


class ProjectStatus(str, Enum):
    ON_TRACK = "On Track"
    AT_RISK = "At Risk"
    OFF_TRACK = "Off Track"
    COMPLETED = "Completed"


@dataclass(frozen=True)
class Attachment:
    name: str
    url: str
    id: str = ""


@dataclass
class Task:
    id: str
    title: str
    assignee_ids: frozenset[str] = field(default_factory=frozenset)
    start_date: datetime | None = None
    due_date: datetime | None = None
    status: TaskStatus = TaskStatus.TODO
    done_date: datetime | None = None
    critical_issue: str | None = None
    attachments: list[Attachment] = field(default_factory=list)
    children: list[Task] = field(default_factory=list)

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE

    @property
    def has_critical_issue(self) -> bool:
        return bool(self.critical_issue)

    def is_assigned_to(self, user_id: str) -> bool:
        return user_id in self.assignee_ids

    def is_overdue(self, now: datetime) -> bool:
        """Open and past due at *now*. Tasks without a due date are never overdue."""
        return not self.is_done and self.due_date is not None and self.due_date < now


@dataclass(frozen=True)
class User:
    id: str
    name: str = ""
    email: str | None = None
    role: str = ""


@dataclass
class Project:
    id: str
    name: str = ""
    owner_id: str = ""
    team: list[User] = field(default_factory=list)
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: ProjectStatus = ProjectStatus.ON_TRACK
    tags: list[str] = field(default_factory=list)
    project_type: str = ""
    tasks: list[Task] = field(default_factory=list)

    def has_member(self, user_id: str) -> bool:
        """Owners and team members both count as belonging to the project."""
        if not user_id:
            return False
        if self.owner_id == user_id:
            return True
        return any(member.id == user_id for member in self.team)
