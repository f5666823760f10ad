"""Tests for grouping and sorting helpers."""

from datetime import UTC, datetime

import pytest

from taskquery.errors import QueryExecutionError
from taskquery.groupers import GROUP_FIELDS, group_tasks
from taskquery.models import Status, StatusRegistry, StatusType, Task
from taskquery.nodes import Sort, SortDirection, SortKey
from taskquery.providers import EvaluationContext, MappingScoreProvider
from taskquery.sorting import natural_key, sort_tasks

REFERENCE = datetime(2026, 1, 10, 15, 0, tzinfo=UTC)


def _make_task(task_id="1", **kwargs):
    return Task(id=task_id, **kwargs)


def _ctx(**kwargs):
    return EvaluationContext(reference_date=REFERENCE, **kwargs)


def _membership(tasks, field_name, **ctx_kwargs):
    return group_tasks(tasks, field_name, _ctx(**ctx_kwargs)).membership()


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def test_due_buckets():
    tasks = [
        _make_task("overdue", due_at="2026-01-09"),
        _make_task("today", due_at="2026-01-10T23:00:00Z"),
        _make_task("tomorrow", due_at="2026-01-11"),
        _make_task("week", due_at="2026-01-17"),
        _make_task("later", due_at="2026-01-18"),
        _make_task("none"),
    ]
    grouping = group_tasks(tasks, "due", _ctx())
    assert grouping.keys == ["Overdue", "Today", "Tomorrow", "This Week", "Later", "No due date"]
    assert grouping.get("This Week").task_ids == {"week"}
    assert grouping.get("Later").task_ids == {"later"}


def test_scheduled_uses_past_bucket():
    tasks = [_make_task("1", scheduled_at="2025-12-01"), _make_task("2")]
    assert _membership(tasks, "scheduled") == {
        "Past": frozenset({"1"}),
        "No scheduled date": frozenset({"2"}),
    }


def test_tag_groups_union_covers_all_tasks():
    tasks = [
        _make_task("1", tags=["work", "urgent"]),
        _make_task("2", tags=["work"]),
        _make_task("3"),
    ]
    membership = _membership(tasks, "tags")
    assert membership == {
        "urgent": frozenset({"1"}),
        "work": frozenset({"1", "2"}),
        "No tags": frozenset({"3"}),
    }
    assert frozenset().union(*membership.values()) == {"1", "2", "3"}


def test_tag_alias():
    assert GROUP_FIELDS["tag"] is GROUP_FIELDS["tags"]


def test_group_keeps_input_order():
    tasks = [_make_task("3", tags=["a"]), _make_task("1", tags=["a"])]
    grouping = group_tasks(tasks, "tags", _ctx())
    assert [t.id for t in grouping.get("a").tasks] == ["3", "1"]


def test_priority_groups_highest_first():
    tasks = [
        _make_task("1", priority="low"),
        _make_task("2"),
        _make_task("3", priority="urgent"),
    ]
    grouping = group_tasks(tasks, "priority", _ctx())
    assert grouping.keys == ["highest", "normal", "low"]


def test_status_groups_follow_type_order():
    registry = StatusRegistry()
    registry.register(Status("!", "Blocked", StatusType.IN_PROGRESS))
    tasks = [
        _make_task("1", status_symbol="x"),
        _make_task("2", status_symbol="!"),
        _make_task("3", status_symbol=" "),
    ]
    grouping = group_tasks(tasks, "status", _ctx(statuses=registry))
    assert grouping.keys == ["TODO", "IN_PROGRESS", "DONE"]
    by_name = group_tasks(tasks, "status.name", _ctx(statuses=registry))
    assert by_name.keys == ["Blocked", "Done", "Todo"]


def test_folder_groups():
    tasks = [
        _make_task("1", path="projects/web/todo.md"),
        _make_task("2", path="inbox.md"),
        _make_task("3"),
        _make_task("4", path="projects/web/done.md"),
    ]
    assert _membership(tasks, "folder") == {
        "projects/web": frozenset({"1", "4"}),
        "Root": frozenset({"2"}),
        "No folder": frozenset({"3"}),
    }


def test_path_and_heading_missing_last():
    tasks = [_make_task("1", heading="Zeta"), _make_task("2"), _make_task("3", heading="alpha")]
    grouping = group_tasks(tasks, "heading", _ctx())
    assert grouping.keys == ["alpha", "Zeta", "No heading"]
    assert group_tasks(tasks, "path", _ctx()).keys == ["No path"]


def test_unknown_group_field():
    with pytest.raises(ValueError):
        group_tasks([], "color", _ctx())


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def _sort(tasks, *keys, **ctx_kwargs):
    sort_keys = [SortKey(f, d) for f, d in keys]
    sort = Sort(sort_keys[0].field, sort_keys[0].direction, tuple(sort_keys[1:]))
    return [t.id for t in sort_tasks(tasks, sort, _ctx(**ctx_kwargs))]


def test_natural_key():
    ids = ["task-10", "task-2", "Task-1"]
    assert sorted(ids, key=natural_key) == ["Task-1", "task-2", "task-10"]


def test_sort_by_name_case_insensitive():
    tasks = [
        _make_task("1", name="banana"),
        _make_task("2", name="Apple"),
        _make_task("3"),
    ]
    assert _sort(tasks, ("name", SortDirection.ASC)) == ["2", "1", "3"]
    assert _sort(tasks, ("name", SortDirection.DESC)) == ["1", "2", "3"]


def test_sort_by_status_type():
    tasks = [
        _make_task("1", status_symbol="x"),
        _make_task("2", status_symbol="/"),
        _make_task("3", status_symbol=" "),
    ]
    assert _sort(tasks, ("status", SortDirection.ASC)) == ["3", "2", "1"]


def test_sort_by_attention_missing_last():
    scores = MappingScoreProvider.from_dict({"1": {"attention": 10}, "3": {"attention": 70}})
    tasks = [_make_task("1"), _make_task("2"), _make_task("3")]
    assert _sort(tasks, ("attention", SortDirection.DESC), score_provider=scores) == [
        "3", "1", "2",
    ]


def test_urgency_scored_once_per_task():
    calls = []

    def scorer(task, reference, settings):
        calls.append(task.id)
        return {"a": 1.0, "b": 3.0, "c": 2.0}[task.id]

    tasks = [_make_task("a"), _make_task("b"), _make_task("c")]
    assert _sort(tasks, ("urgency", SortDirection.DESC), urgency_scorer=scorer) == ["b", "c", "a"]
    assert sorted(calls) == ["a", "b", "c"]


def test_unknown_sort_field():
    with pytest.raises(QueryExecutionError):
        _sort([_make_task("1")], ("color", SortDirection.ASC))
