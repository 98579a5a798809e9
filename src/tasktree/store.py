"""Document-store collaborators and the subscription-driven aggregation store.

The remote store pushes whole-collection snapshots; there is no diff
protocol. :class:`AggregationStore` re-runs normalize -> aggregate -> badge
projection synchronously inside each snapshot callback and publishes an
immutable :class:`DashboardSnapshot` to its listeners.

Mutations are fire-and-forget: :class:`TaskMutations` implementations
report success or failure but never hand back a tree. The new state only
becomes visible with the next snapshot.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Protocol

from tasktree import log
from tasktree.aggregate import UserTaskView, user_task_view
from tasktree.config import Config
from tasktree.dashboard import (
    BadgeCounts,
    CollectionAggregate,
    DashboardProjector,
    collection_aggregate,
)
from tasktree.errors import InvalidRecord, StoreError, StructuralError
from tasktree.tasks.edit import TaskNotFound, add_task, delete_task, replace_task
from tasktree.tasks.model import Project, Task
from tasktree.tasks.normalize import (
    normalize_snapshot,
    normalize_tasks,
    serialize_tasks,
)

RawRecord = dict[str, Any]
Unsubscribe = Callable[[], None]
SnapshotCallback = Callable[..., None]
ErrorCallback = Callable[[StoreError], None]


class DocumentStore(Protocol):
    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        """Call ``on_snapshot(docs, read_time=...)`` on every change."""
        ...


@dataclass(frozen=True)
class MutationResult:
    success: bool
    error: str | None = None


class TaskMutations(Protocol):
    def create_task(self, project_id: str, task: Task, parent_id: str | None = None) -> MutationResult: ...

    def update_task(self, project_id: str, task: Task) -> MutationResult: ...

    def delete_task(self, project_id: str, task_id: str) -> MutationResult: ...


# ── in-memory store ──────────────────────────────────────────────────


@dataclass
class _Subscriber:
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback | None


class InMemoryDocumentStore:
    """A local document store with snapshot listeners and task mutations.

    Every change to a collection emits a full snapshot, stamped with an
    increasing ``read_time``, to that collection's subscribers. A new
    subscriber receives the current snapshot immediately.
    """

    def __init__(self, collections: Mapping[str, Sequence[RawRecord]] | None = None) -> None:
        self._docs: dict[str, list[RawRecord]] = {}
        self._subscribers: dict[str, dict[int, _Subscriber]] = {}
        self._next_sub = 0
        self._read_time = 0
        for path, docs in (collections or {}).items():
            self._docs[path] = copy.deepcopy(list(docs))

    # ── reads ──────────────────────────────────────────────────────

    def documents(self, collection_path: str) -> list[RawRecord]:
        return copy.deepcopy(self._docs.get(collection_path, []))

    def subscriber_count(self, collection_path: str | None = None) -> int:
        if collection_path is not None:
            return len(self._subscribers.get(collection_path, {}))
        return sum(len(subs) for subs in self._subscribers.values())

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Unsubscribe:
        sub_id = self._next_sub
        self._next_sub += 1
        self._subscribers.setdefault(collection_path, {})[sub_id] = _Subscriber(on_snapshot, on_error)

        def _unsubscribe() -> None:
            self._subscribers.get(collection_path, {}).pop(sub_id, None)

        on_snapshot(self.documents(collection_path), read_time=self._read_time)
        return _unsubscribe

    # ── writes ─────────────────────────────────────────────────────

    def _emit(self, collection_path: str) -> None:
        self._read_time += 1
        read_time = self._read_time
        for subscriber in list(self._subscribers.get(collection_path, {}).values()):
            subscriber.on_snapshot(self.documents(collection_path), read_time=read_time)

    def set_collection(self, collection_path: str, docs: Sequence[RawRecord]) -> None:
        self._docs[collection_path] = copy.deepcopy(list(docs))
        self._emit(collection_path)

    def put_document(self, collection_path: str, doc: RawRecord) -> None:
        """Insert or replace the document with ``doc['id']``."""
        docs = self._docs.setdefault(collection_path, [])
        for i, existing in enumerate(docs):
            if existing.get("id") == doc.get("id"):
                docs[i] = copy.deepcopy(doc)
                break
        else:
            docs.append(copy.deepcopy(doc))
        self._emit(collection_path)

    def remove_document(self, collection_path: str, doc_id: str) -> bool:
        docs = self._docs.get(collection_path, [])
        kept = [d for d in docs if d.get("id") != doc_id]
        if len(kept) == len(docs):
            return False
        self._docs[collection_path] = kept
        self._emit(collection_path)
        return True

    def fail(self, collection_path: str, message: str) -> None:
        """Terminate every subscription on *collection_path* with a ``StoreError``."""
        subscribers = self._subscribers.pop(collection_path, {})
        for subscriber in subscribers.values():
            if subscriber.on_error is not None:
                subscriber.on_error(StoreError(collection_path, message))

    # ── TaskMutations ──────────────────────────────────────────────

    def _locate(self, project_id: str) -> tuple[str, RawRecord] | None:
        for path, docs in self._docs.items():
            for doc in docs:
                if doc.get("id") == project_id:
                    return path, doc
        return None

    def _mutate(self, project_id: str, edit: Callable[[list[Task]], list[Task]]) -> MutationResult:
        located = self._locate(project_id)
        if located is None:
            return MutationResult(False, "Project not found")
        path, doc = located
        current = normalize_tasks(doc.get("tasks") or [], f"project[{project_id}].tasks").tasks
        try:
            updated = edit(current)
        except (TaskNotFound, ValueError, StructuralError, InvalidRecord) as exc:
            return MutationResult(False, str(exc))
        doc["tasks"] = serialize_tasks(updated)
        self._emit(path)
        return MutationResult(True)

    def create_task(self, project_id: str, task: Task, parent_id: str | None = None) -> MutationResult:
        return self._mutate(project_id, lambda tasks: add_task(tasks, task, parent_id))

    def update_task(self, project_id: str, task: Task) -> MutationResult:
        return self._mutate(project_id, lambda tasks: replace_task(tasks, task))

    def delete_task(self, project_id: str, task_id: str) -> MutationResult:
        return self._mutate(project_id, lambda tasks: delete_task(tasks, task_id))


# ── subscription lifecycle ───────────────────────────────────────────


class SubscriptionGroup:
    """Unsubscribe callables opened together and torn down together."""

    def __init__(self) -> None:
        self._unsubs: dict[str, Unsubscribe] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def add(self, name: str, unsubscribe: Unsubscribe) -> None:
        """Track *unsubscribe* under *name*, closing any previous one first."""
        if self._closed:
            unsubscribe()
            raise RuntimeError("Subscription group is already closed")
        previous = self._unsubs.pop(name, None)
        if previous is not None:
            previous()
        self._unsubs[name] = unsubscribe

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        unsubs, self._unsubs = self._unsubs, {}
        for unsubscribe in unsubs.values():
            unsubscribe()


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything consumers read, frozen at one point of the snapshot stream."""

    badges: BadgeCounts = field(default_factory=BadgeCounts)
    collections: Mapping[str, CollectionAggregate] = field(
        default_factory=lambda: MappingProxyType({})
    )
    projects: Mapping[str, tuple[Project, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    user_view: UserTaskView | None = None
    stale: frozenset[str] = frozenset()
    reported: frozenset[str] = frozenset()


Listener = Callable[[DashboardSnapshot], None]


class AggregationStore:
    """Owns the per-collection subscriptions and the aggregates derived from them.

    Usage::

        agg = AggregationStore(store, user_id="u1")
        remove = agg.add_listener(render)
        agg.init({"timKerja": "timKerjaProjects", "rulemaking": "rulemakingProjects"})
        ...
        agg.teardown()                  # every subscription closed together
    """

    def __init__(
        self,
        store: DocumentStore,
        user_id: str,
        config: Config | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._config = config or Config()
        self._clock = clock or self._config.now
        self._group: SubscriptionGroup | None = None
        self._generation = 0
        self._paths: dict[str, str] = {}
        self._projects: dict[str, tuple[Project, ...]] = {}
        self._read_times: dict[str, Any] = {}
        self._retries: dict[str, int] = {}
        self._attempts: dict[str, int] = {}
        self._stale: set[str] = set()
        self._projector = DashboardProjector()
        self._listeners: list[Listener] = []
        self._snapshot = DashboardSnapshot()

    # ── lifecycle ──────────────────────────────────────────────────

    @property
    def active(self) -> bool:
        return self._group is not None and not self._group.closed

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    def init(self, subscriptions: Mapping[str, str]) -> None:
        """Subscribe to every ``name -> collection path`` pair."""
        if self.active:
            raise RuntimeError("AggregationStore is already initialised; call teardown() first")
        self._generation += 1
        self._group = SubscriptionGroup()
        self._paths = dict(subscriptions)
        self._projects = {}
        self._read_times = {}
        self._retries = {}
        self._attempts = {}
        self._stale = set()
        self._projector = DashboardProjector(self._paths)
        self._snapshot = self._build_snapshot()
        for name in self._paths:
            self._subscribe(name)
        log.debug(f"Subscribed to {len(self._paths)} collection(s) for user {self._user_id}")

    def teardown(self) -> None:
        """Close every subscription; late callbacks are ignored afterwards."""
        if self._group is None:
            return
        self._generation += 1
        self._group.close()
        log.debug("Aggregation store torn down")

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ── subscription callbacks ─────────────────────────────────────

    def _subscribe(self, name: str) -> None:
        group = self._group
        if group is None:
            raise RuntimeError("AggregationStore is not initialised; call init() first")
        generation = self._generation
        attempt = self._attempts.get(name, 0) + 1
        self._attempts[name] = attempt

        def _current() -> bool:
            return generation == self._generation and self._attempts.get(name) == attempt

        def _on_snapshot(docs: Sequence[RawRecord], read_time: Any = None) -> None:
            if _current():
                self._apply(name, docs, read_time)

        def _on_error(exc: StoreError) -> None:
            if _current():
                self._fail(name, exc)

        # The store may deliver the first snapshot, or fail, before subscribe() returns
        unsubscribe = self._store.subscribe(self._paths[name], _on_snapshot, _on_error)
        if not _current() or group.closed:
            # superseded by teardown or by a resubscribe from inside subscribe()
            unsubscribe()
            return
        group.add(name, unsubscribe)

    def _apply(self, name: str, docs: Sequence[RawRecord], read_time: Any) -> None:
        last = self._read_times.get(name)
        if read_time is not None and last is not None and read_time < last:
            log.debug(f"{name}: ignoring out-of-order snapshot ({read_time} < {last})")
            return
        normalized = normalize_snapshot(docs, max_depth=self._config.max_depth)
        log.record_issues(name, normalized.issues)
        projects = tuple(normalized.projects)
        for project in projects:
            if not project.project_type:
                project.project_type = name

        self._projects[name] = projects
        if read_time is not None:
            self._read_times[name] = read_time
        self._retries[name] = 0
        self._stale.discard(name)
        self._projector.update(collection_aggregate(
            name, projects, self._user_id, self._clock(), self._config.at_risk_margin
        ))
        self._publish()

    def _fail(self, name: str, exc: StoreError) -> None:
        self._stale.add(name)
        log.warn(f"{name}: subscription failed ({exc.message}); keeping last known data")
        attempts = self._retries.get(name, 0)
        if exc.transient and attempts < self._config.max_resubscribe:
            self._retries[name] = attempts + 1
            log.info(f"{name}: resubscribing (attempt {attempts + 1}/{self._config.max_resubscribe})")
            self._publish()
            self._subscribe(name)
            return
        log.error(f"{name}: giving up on subscription; data is stale until re-initialised")
        self._publish()

    # ── publishing ─────────────────────────────────────────────────

    def _build_snapshot(self) -> DashboardSnapshot:
        all_projects = [p for name in self._paths for p in self._projects.get(name, ())]
        view = user_task_view(self._user_id, all_projects, self._clock()) if self._user_id else None
        return DashboardSnapshot(
            badges=self._projector.project(),
            collections=MappingProxyType({
                name: self._projector.aggregate_for(name) for name in self._paths
            }),
            projects=MappingProxyType(dict(self._projects)),
            user_view=view,
            stale=frozenset(self._stale),
            reported=frozenset(self._projector.reported()),
        )

    def _publish(self) -> None:
        self._snapshot = self._build_snapshot()
        for listener in list(self._listeners):
            listener(self._snapshot)
