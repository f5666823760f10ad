"""Multi-key task sorting.

Missing values sort last whichever the direction, and ties always fall back
to the task id so repeated runs give the same order.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from functools import cmp_to_key
from typing import Any

from .errors import QueryExecutionError
from .models import DATE_FIELDS, StatusType, Task, priority_weight
from .nodes import Sort, SortDirection
from .providers import EvaluationContext

SORT_FIELDS = (
    *DATE_FIELDS,
    "priority",
    "urgency",
    "attention",
    "escalation",
    "status",
    "status.name",
    "name",
    "path",
    "heading",
    "id",
)

# Fields whose natural reading is "most important first"
DEFAULT_DIRECTIONS = {
    "priority": SortDirection.DESC,
    "urgency": SortDirection.DESC,
    "attention": SortDirection.DESC,
    "escalation": SortDirection.DESC,
}

STATUS_ORDER = {status_type: i for i, status_type in enumerate(StatusType)}

RE_DIGITS = re.compile(r"(\d+)")


def natural_key(value: str) -> list:
    """Split digits out so "task-2" sorts before "task-10"."""
    return [int(part) if part.isdigit() else part.lower() for part in RE_DIGITS.split(value)]


def _value_getter(field_name: str, ctx: EvaluationContext) -> Callable[[Task], Any]:
    if field_name in DATE_FIELDS:
        return lambda task: task.date_for(field_name)
    if field_name == "priority":
        return lambda task: priority_weight(task.priority)
    if field_name == "urgency":
        scorer = ctx.urgency_scorer
        if scorer is None:
            raise QueryExecutionError("Sorting by urgency needs an urgency scorer")
        cache: dict[str, float] = {}

        def urgency(task: Task) -> float:
            if task.id not in cache:
                cache[task.id] = scorer(task, ctx.reference_date, ctx.urgency_settings)
            return cache[task.id]

        return urgency
    if field_name == "attention":
        return lambda task: ctx.score_provider.attention_score(task.id)
    if field_name == "escalation":
        return lambda task: ctx.score_provider.escalation_level(task.id)
    if field_name == "status":
        return lambda task: STATUS_ORDER[ctx.statuses.status_of(task).type]
    if field_name == "status.name":
        return lambda task: ctx.statuses.status_of(task).name.lower()
    if field_name == "id":
        return lambda task: natural_key(task.id)
    if field_name in ("name", "path", "heading"):
        return lambda task: (getattr(task, field_name) or "").lower() or None
    raise QueryExecutionError(f"Unknown sort field: {field_name}")


def sort_tasks(tasks: list[Task], sort: Sort, ctx: EvaluationContext) -> list[Task]:
    keys = [
        (_value_getter(key.field, ctx), key.direction is SortDirection.DESC)
        for key in sort.keys
    ]

    def compare(a: Task, b: Task) -> int:
        for getter, descending in keys:
            va, vb = getter(a), getter(b)
            if va is None and vb is None:
                continue
            if va is None:
                return 1
            if vb is None:
                return -1
            if va != vb:
                result = -1 if va < vb else 1
                return -result if descending else result
        ka, kb = natural_key(a.id), natural_key(b.id)
        if ka != kb:
            return -1 if ka < kb else 1
        return 0

    return sorted(tasks, key=cmp_to_key(compare))
