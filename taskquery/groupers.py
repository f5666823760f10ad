"""Group already-filtered tasks under ordered keys.

Membership is recorded per key, so a task may sit in several groups (tags).
Within a group tasks keep the order they were given in.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .dates import day_of
from .models import PRIORITY_WEIGHTS, StatusType, Task, normalize_priority
from .providers import EvaluationContext

DATE_BUCKETS = ("Overdue", "Past", "Today", "Tomorrow", "This Week", "Later")
STATUS_TYPE_ORDER = tuple(StatusType)


@dataclass(frozen=True)
class TaskGroup:
    key: str
    tasks: tuple[Task, ...]

    @property
    def task_ids(self) -> frozenset[str]:
        return frozenset(t.id for t in self.tasks)


@dataclass(frozen=True)
class Grouping:
    field: str
    groups: tuple[TaskGroup, ...]

    @property
    def keys(self) -> list[str]:
        return [g.key for g in self.groups]

    def membership(self) -> dict[str, frozenset[str]]:
        return {g.key: g.task_ids for g in self.groups}

    def get(self, key: str) -> TaskGroup | None:
        for group in self.groups:
            if group.key == key:
                return group
        return None


class Grouper:
    """Maps each task to one or more keys and orders the keys."""

    field = ""

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context

    @property
    def missing_key(self) -> str:
        return f"No {self.field}"

    def keys_for(self, task: Task) -> list[str]:
        return [self.key_for(task)]

    def key_for(self, task: Task) -> str:
        raise NotImplementedError

    def order(self, key: str) -> tuple:
        # Alphabetical, with the "No ..." bucket last
        return (key == self.missing_key, key.lower(), key)

    def group(self, tasks: Iterable[Task]) -> Grouping:
        buckets: dict[str, list[Task]] = {}
        for task in tasks:
            for key in dict.fromkeys(self.keys_for(task)):
                buckets.setdefault(key, []).append(task)
        ordered = sorted(buckets, key=self.order)
        return Grouping(
            field=self.field,
            groups=tuple(TaskGroup(key, tuple(buckets[key])) for key in ordered),
        )


class DateGrouper(Grouper):
    past_label = "Past"

    def key_for(self, task: Task) -> str:
        value = task.date_for(self.field)
        if value is None:
            return f"No {self.field} date"
        diff = (day_of(value) - day_of(self.context.reference_date)).days
        if diff < 0:
            return self.past_label
        if diff == 0:
            return "Today"
        if diff == 1:
            return "Tomorrow"
        if diff <= 7:
            return "This Week"
        return "Later"

    def order(self, key: str) -> tuple:
        if key in DATE_BUCKETS:
            return (DATE_BUCKETS.index(key),)
        return (len(DATE_BUCKETS),)


class DueGrouper(DateGrouper):
    field = "due"
    past_label = "Overdue"


class ScheduledGrouper(DateGrouper):
    field = "scheduled"


class StartGrouper(DateGrouper):
    field = "start"


class StatusTypeGrouper(Grouper):
    field = "status"

    def key_for(self, task: Task) -> str:
        return str(self.context.statuses.status_of(task).type)

    def order(self, key: str) -> tuple:
        try:
            return (STATUS_TYPE_ORDER.index(StatusType(key)), key)
        except ValueError:
            return (len(STATUS_TYPE_ORDER), key)


class StatusNameGrouper(Grouper):
    field = "status.name"

    def key_for(self, task: Task) -> str:
        return self.context.statuses.status_of(task).name


class PriorityGrouper(Grouper):
    field = "priority"

    def key_for(self, task: Task) -> str:
        return normalize_priority(task.priority) or "normal"

    def order(self, key: str) -> tuple:
        return (-PRIORITY_WEIGHTS.get(key, -1), key)


class PathGrouper(Grouper):
    field = "path"

    def key_for(self, task: Task) -> str:
        return task.path or self.missing_key


class FolderGrouper(Grouper):
    field = "folder"

    def key_for(self, task: Task) -> str:
        if not task.path:
            return self.missing_key
        folder, sep, _ = task.path.rpartition("/")
        return folder if sep and folder else "Root"


class HeadingGrouper(Grouper):
    field = "heading"

    def key_for(self, task: Task) -> str:
        return task.heading or self.missing_key


class TagGrouper(Grouper):
    """One group per tag; a task with several tags appears in each of them."""

    field = "tags"
    missing_key = "No tags"

    def keys_for(self, task: Task) -> list[str]:
        return list(task.tags) or [self.missing_key]


GROUP_FIELDS: dict[str, type[Grouper]] = {
    "due": DueGrouper,
    "scheduled": ScheduledGrouper,
    "start": StartGrouper,
    "status": StatusTypeGrouper,
    "status.type": StatusTypeGrouper,
    "status.name": StatusNameGrouper,
    "priority": PriorityGrouper,
    "path": PathGrouper,
    "folder": FolderGrouper,
    "heading": HeadingGrouper,
    "tags": TagGrouper,
    "tag": TagGrouper,
}


def group_tasks(tasks: Iterable[Task], field_name: str, context: EvaluationContext) -> Grouping:
    try:
        grouper_cls = GROUP_FIELDS[field_name]
    except KeyError:
        raise ValueError(f"Unknown group field: {field_name}") from None
    return grouper_cls(context).group(tasks)
