"""Tests for the query engine pipeline."""

import logging
from datetime import UTC, date, datetime
from unittest.mock import MagicMock

import pytest

from taskquery.config import EngineSettings
from taskquery.engine import EXPLANATION_FALLBACK, QueryEngine
from taskquery.errors import QueryExecutionError, QuerySyntaxError
from taskquery.loader import task_from_dict
from taskquery.models import Task
from taskquery.providers import MappingScoreProvider, StaticDependencyGraph

REFERENCE = datetime(2026, 1, 14, 12, 0, tzinfo=UTC)


def _make_task(task_id="1", **kwargs):
    kwargs.setdefault("name", f"Task {task_id}")
    return Task(id=task_id, **kwargs)


def _ids(result):
    return [t.id for t in result.tasks]


def _run(text, tasks, engine=None, **kwargs):
    engine = engine or QueryEngine()
    kwargs.setdefault("reference_date", REFERENCE)
    return engine.execute(text, tasks, **kwargs)


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def test_due_before_fixed_date():
    tasks = [
        task_from_dict({"id": 1, "dueAt": "2025-12-20"}),
        task_from_dict({"id": 2, "dueAt": "2026-02-01"}),
    ]
    result = _run("due before 2026-01-01", tasks)
    assert _ids(result) == ["1"]
    assert result.total_count == 1
    assert result.input_count == 2


def test_statement_continued_on_next_line():
    tasks = [
        _make_task("1", tags=["work"], priority="high"),
        _make_task("2", tags=["work"], priority="low"),
    ]
    result = _run("tag includes work\nAND priority is high", tasks)
    assert _ids(result) == ["1"]


def test_not_done_operator_matches_dedicated_clause():
    tasks = [
        _make_task("1", status_symbol="x"),
        _make_task("2", status_symbol=" "),
        _make_task("3", status_symbol="/"),
        _make_task("4", status_symbol="-"),
        _make_task("5", status="Done"),
    ]
    engine = QueryEngine()
    assert _ids(_run("NOT done", tasks, engine)) == _ids(_run("not done", tasks, engine))
    assert _ids(_run("NOT done", tasks, engine)) == ["2", "3", "4"]


def test_dependency_cycle_blocks_both_tasks():
    tasks = [
        _make_task("A", depends_on=["B"]),
        _make_task("B", depends_on=["A"]),
        _make_task("C"),
    ]
    graph = StaticDependencyGraph.from_tasks(tasks)
    result = _run("is blocked", tasks, dependency_graph=graph, explain=True)
    assert _ids(result) == ["A", "B"]
    assert "part of a dependency cycle" in result.explanations["A"]
    assert result.explanations["C"] == 'Task "Task C" is not blocked (blocks 0 task(s))'


def test_separate_lines_are_anded():
    tasks = [
        _make_task("1", tags=["work"], due_at="2026-01-10"),
        _make_task("2", tags=["work"]),
        _make_task("3", due_at="2026-01-10"),
    ]
    result = _run("tag includes work\nhas due date", tasks)
    assert _ids(result) == ["1"]


def test_empty_query_returns_everything():
    tasks = [_make_task("2"), _make_task("1")]
    result = _run("", tasks)
    assert _ids(result) == ["2", "1"]
    assert result.query.filter is None


def test_reference_date_may_be_a_date():
    tasks = [_make_task("1", due_at="2026-01-14T08:00:00Z"), _make_task("2", due_at="2026-01-15")]
    result = _run("due on today", tasks, reference_date=date(2026, 1, 14))
    assert _ids(result) == ["1"]


def test_tasks_are_not_mutated():
    task = _make_task("1", tags=["a"], priority="high")
    _run("tag includes a\nsort by priority\ngroup by tags", [task], explain=True)
    assert task == _make_task("1", tags=["a"], priority="high")


def test_recurring_filter_with_frequency_object():
    tasks = [
        task_from_dict({"id": "1", "frequency": {"type": "weekly"}}),
        task_from_dict({"id": "2", "frequency": {"type": "once"}}),
        task_from_dict({"id": "3"}),
    ]
    assert _ids(_run("is recurring", tasks)) == ["1"]


def test_duplicate_ids_keep_first_explanation(caplog):
    tasks = [
        _make_task("1", name="First", tags=["work"]),
        _make_task("1", name="Second"),
    ]
    with caplog.at_level(logging.WARNING, logger="taskquery.engine"):
        result = _run("tag includes work", tasks, explain=True)
    assert result.explanations == {"1": 'Task "First" has tags [work] which include "work"'}
    assert "Duplicate task id 1" in caplog.text


# ---------------------------------------------------------------------------
# Sort and limit
# ---------------------------------------------------------------------------


def test_priority_sorts_highest_first_by_default():
    tasks = [
        _make_task("1", priority="low"),
        _make_task("2"),
        _make_task("3", priority="high"),
    ]
    assert _ids(_run("sort by priority", tasks)) == ["3", "2", "1"]
    assert _ids(_run("sort by priority reverse", tasks)) == ["1", "2", "3"]


def test_missing_values_sort_last_in_both_directions():
    tasks = [
        _make_task("1"),
        _make_task("2", due_at="2026-01-20"),
        _make_task("3", due_at="2026-01-05"),
    ]
    assert _ids(_run("sort by due", tasks)) == ["3", "2", "1"]
    assert _ids(_run("sort by due desc", tasks)) == ["2", "3", "1"]


def test_ties_break_on_natural_id_order():
    tasks = [
        _make_task("task-10", priority="high"),
        _make_task("task-2", priority="high"),
        _make_task("task-1", priority="low"),
    ]
    assert _ids(_run("sort by priority", tasks)) == ["task-2", "task-10", "task-1"]


def test_multi_key_sort():
    tasks = [
        _make_task("1", priority="high", due_at="2026-02-01"),
        _make_task("2", priority="low", due_at="2026-01-01"),
        _make_task("3", priority="high", due_at="2026-01-15"),
    ]
    assert _ids(_run("sort by priority, due", tasks)) == ["3", "1", "2"]


def test_sorting_is_repeatable():
    tasks = [_make_task(str(i), priority=["low", "high"][i % 2]) for i in range(12)]
    engine = QueryEngine()
    first = _ids(_run("sort by priority", tasks, engine))
    second = _ids(_run("sort by priority", list(reversed(tasks)), engine))
    assert first == second


def test_limit_keeps_total_count():
    tasks = [_make_task(str(i), due_at=f"2026-01-{i + 1:02d}") for i in range(5)]
    result = _run("has due date\nsort by due desc\nlimit 2", tasks)
    assert _ids(result) == ["4", "3"]
    assert result.count == 2
    assert result.total_count == 5
    assert not result.truncated


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


def test_group_by_tags_fans_out():
    tasks = [
        _make_task("1", tags=["a", "b"]),
        _make_task("2", tags=["b"]),
        _make_task("3"),
    ]
    result = _run("group by tags", tasks)
    assert result.groups.keys == ["a", "b", "No tags"]
    assert result.groups.membership() == {
        "a": frozenset({"1"}),
        "b": frozenset({"1", "2"}),
        "No tags": frozenset({"3"}),
    }
    union = frozenset().union(*result.groups.membership().values())
    assert union == {t.id for t in result.tasks}


def test_groups_follow_sorted_order():
    tasks = [
        _make_task("1", priority="low", due_at="2026-01-20"),
        _make_task("2", priority="low", due_at="2026-01-02"),
        _make_task("3", priority="high"),
    ]
    result = _run("sort by due\ngroup by priority", tasks)
    assert result.groups.keys == ["high", "low"]
    assert [t.id for t in result.groups.get("low").tasks] == ["2", "1"]


# ---------------------------------------------------------------------------
# Cache and validation
# ---------------------------------------------------------------------------


def test_compile_is_cached_by_text():
    engine = QueryEngine()
    first = engine.compile("due before tomorrow")
    second = engine.compile("due before tomorrow")
    assert first is second
    stats = engine.cache_stats()
    assert stats.hits == 1
    assert stats.misses == 1
    assert stats.size == 1


def test_cached_relative_dates_follow_reference():
    engine = QueryEngine()
    tasks = [_make_task("1", due_at="2026-01-14")]
    assert _ids(_run("due on today", tasks, engine)) == ["1"]
    later = datetime(2026, 1, 15, tzinfo=UTC)
    assert _ids(_run("due on today", tasks, engine, reference_date=later)) == []


def test_clear_cache():
    engine = QueryEngine()
    engine.compile("done")
    engine.clear_cache()
    assert engine.cache_stats().size == 0


def test_disabled_cache_still_compiles():
    engine = QueryEngine(settings=EngineSettings(cache_size=0))
    assert engine.compile("done") is not engine.compile("done")


def test_validate():
    engine = QueryEngine()
    ok = engine.validate("done AND has tags\nsort by due")
    assert ok.valid
    assert ok.parsed_filters == 2
    bad = engine.validate("due befor tomorrow")
    assert not bad.valid
    assert isinstance(bad.error, QuerySyntaxError)
    assert bad.error.line == 1


def test_syntax_error_propagates_from_execute():
    with pytest.raises(QuerySyntaxError):
        _run("sort by dew", [_make_task()])


# ---------------------------------------------------------------------------
# Failures and caps
# ---------------------------------------------------------------------------


def test_collaborator_failure_is_wrapped():
    graph = MagicMock(spec=StaticDependencyGraph)
    boom = RuntimeError("graph unavailable")
    graph.is_blocked.side_effect = boom
    with pytest.raises(QueryExecutionError) as excinfo:
        _run("is blocked", [_make_task("7")], dependency_graph=graph)
    assert excinfo.value.cause is boom
    assert excinfo.value.__cause__ is boom
    assert "7" in excinfo.value.message


def test_sort_failure_is_wrapped():
    scores = MagicMock(spec=MappingScoreProvider)
    scores.attention_score.side_effect = KeyError("missing table")
    with pytest.raises(QueryExecutionError) as excinfo:
        _run("sort by attention", [_make_task("1"), _make_task("2")], score_provider=scores)
    assert isinstance(excinfo.value.cause, KeyError)


def test_explanation_failure_falls_back():
    graph = MagicMock(spec=StaticDependencyGraph)
    graph.is_blocked.return_value = False
    graph.blocked_count.side_effect = RuntimeError("no counts")
    result = _run("is blocked", [_make_task("1")], dependency_graph=graph, explain=True)
    assert result.tasks == []
    assert result.explanations == {"1": EXPLANATION_FALLBACK}


def test_max_items_truncates():
    engine = QueryEngine(settings=EngineSettings(max_items=2))
    tasks = [_make_task(str(i)) for i in range(3)]
    result = _run("sort by id", tasks, engine)
    assert result.truncated
    assert result.input_count == 3
    assert result.total_count == 2


def test_max_explanations_truncates():
    engine = QueryEngine(settings=EngineSettings(max_explanations=1))
    tasks = [_make_task("1"), _make_task("2")]
    result = _run("not done", tasks, engine, explain=True)
    assert len(result.explanations) == 1
    assert result.truncated
    assert result.total_count == 2


def test_urgency_needs_scorer():
    with pytest.raises(QueryExecutionError):
        _run("urgency above 5", [_make_task()])
    with pytest.raises(QueryExecutionError):
        _run("sort by urgency", [_make_task("1"), _make_task("2")])


def test_urgency_scorer_filters_and_sorts():
    def scorer(task, reference, settings):
        return float(task.id) * settings["scale"]

    engine = QueryEngine(urgency_scorer=scorer, urgency_settings={"scale": 2})
    tasks = [_make_task(str(i)) for i in range(1, 5)]
    result = _run("urgency above 3\nsort by urgency", tasks, engine)
    assert _ids(result) == ["4", "3", "2"]


def test_scores_passed_per_call():
    tasks = [_make_task("1"), _make_task("2")]
    scores = MappingScoreProvider.from_dict({"1": {"attention": 40}, "2": {"attention": 90}})
    result = _run("attention at least 50", tasks, score_provider=scores)
    assert _ids(result) == ["2"]
    assert _ids(_run("attention at least 50", tasks)) == []


# ---------------------------------------------------------------------------
# Global filter
# ---------------------------------------------------------------------------


def test_global_filter_is_anded():
    engine = QueryEngine(settings=EngineSettings(global_filter="not done"))
    tasks = [
        _make_task("1", tags=["work"], status_symbol="x"),
        _make_task("2", tags=["work"]),
    ]
    assert _ids(_run("tag includes work", tasks, engine)) == ["2"]
    assert _ids(_run("@ignoreGlobalFilter\ntag includes work", tasks, engine)) == ["1", "2"]


def test_global_filter_alone_applies_to_empty_query():
    engine = QueryEngine()
    engine.set_global_filter("has tags")
    tasks = [_make_task("1", tags=["x"]), _make_task("2")]
    assert _ids(_run("", tasks, engine)) == ["1"]
    engine.set_global_filter(None)
    assert engine.global_filter is None
    assert _ids(_run("", tasks, engine)) == ["1", "2"]


def test_invalid_global_filter_is_ignored(caplog):
    engine = QueryEngine()
    with caplog.at_level(logging.WARNING, logger="taskquery.engine"):
        engine.set_global_filter("priority is extreme")
    assert engine.global_filter is None
    assert "Ignoring invalid global filter" in caplog.text


# ---------------------------------------------------------------------------
# Explain
# ---------------------------------------------------------------------------


def test_explain_covers_every_input_task():
    tasks = [
        _make_task("1", name="Ship", tags=["work"]),
        _make_task("2", name="Garden", tags=["home"]),
    ]
    result = _run("tag includes work", tasks, explain=True)
    assert _ids(result) == ["1"]
    assert result.explanations == {
        "1": 'Task "Ship" has tags [work] which include "work"',
        "2": 'Task "Garden" has tags [home] none of which include "work"',
    }


def test_explain_directive_in_query():
    result = _run("explain\nhas tags", [_make_task("1")])
    assert "1" in result.explanations
    assert result.query_explanation.startswith("Filters:")


def test_explain_without_filter():
    result = _run("", [_make_task("x", name="")], explain=True)
    assert result.explanations == {"x": 'Task "x" matches: no filters'}
    assert result.query_explanation == "Filters: none (showing all tasks)"


def test_query_explanation_text():
    text = "due before 2026-01-01\ntag includes work\nsort by due, priority\ngroup by tags\nlimit 5"
    result = _run(text, [], explain=True)
    assert result.query_explanation == "\n".join([
        "Filters:",
        "- due before 2026-01-01",
        '- tag includes "work"',
        "Sort: by due (ascending), then priority (descending)",
        "Group: by tags",
        "Limit: first 5 tasks",
    ])


def test_query_explanation_resolves_relative_dates():
    result = _run("due before tomorrow", [], explain=True)
    assert result.query_explanation == "Filters:\n- due before 2026-01-15"


def test_query_explanation_mentions_global_filter():
    engine = QueryEngine(settings=EngineSettings(global_filter="not done"))
    applied = _run("has tags", [], engine, explain=True)
    assert "Global filter: applied" in applied.query_explanation
    ignored = _run("@ignoreGlobalFilter\nhas tags", [], engine, explain=True)
    assert "Global filter: ignored" in ignored.query_explanation


def test_no_explanations_unless_requested():
    result = _run("has tags", [_make_task("1")])
    assert result.explanations == {}
    assert result.query_explanation is None
    assert result.execution_time_ms >= 0
