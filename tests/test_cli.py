"""Tests for JSON loading and the command-line entry point."""

import json
from pathlib import Path

import pytest

from taskquery.cli import main
from taskquery.loader import load_scores_file, load_tasks, load_tasks_file, task_from_dict
from taskquery.parser import parse_query_file

TASKS = [
    {"id": "1", "name": "Write report", "tags": ["work"], "dueAt": "2026-01-10", "priority": "high"},
    {"id": "2", "name": "Water plants", "tags": ["home"], "statusSymbol": "x"},
    {"id": "3", "title": "Plan trip", "tags": ["home", "travel"], "due": "2026-02-01"},
]


def _write_tasks(tmp_path: Path, data=None) -> Path:
    f = tmp_path / "tasks.json"
    f.write_text(json.dumps(TASKS if data is None else data))
    return f


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def test_task_from_dict_accepts_camel_case_and_aliases():
    task = task_from_dict({
        "id": 7,
        "title": "Renew passport",
        "statusChar": "/",
        "scheduledAt": "2026-01-05",
        "dependsOn": ["3"],
        "color": "red",
    })
    assert task.id == "7"
    assert task.name == "Renew passport"
    assert task.status_symbol == "/"
    assert task.scheduled_at.date().isoformat() == "2026-01-05"
    assert task.depends_on == ("3",)


def test_task_from_dict_recurrence_object():
    task = task_from_dict({"id": "1", "recurrence": {"frequency": "weekly", "text": "every week"}})
    assert task.frequency == "weekly"
    assert task.recurrence_text == "every week"
    assert task.is_recurring


def test_task_from_dict_single_string_lists():
    task = task_from_dict({"id": "1", "tags": "work", "dependsOn": "42"})
    assert task.tags == ("work",)
    assert task.depends_on == ("42",)


def test_task_from_dict_frequency_object():
    task = task_from_dict({"id": "1", "frequency": {"type": "weekly", "interval": 2}})
    assert task.frequency == "weekly"
    assert task.is_recurring
    once = task_from_dict({"id": "2", "frequency": {"type": "once"}})
    assert not once.is_recurring


def test_task_from_dict_requires_id():
    with pytest.raises(ValueError):
        task_from_dict({"name": "No id"})


def test_task_from_dict_rejects_bad_dates():
    with pytest.raises(ValueError):
        task_from_dict({"id": "1", "due": "next week"})


def test_load_tasks_shapes(tmp_path):
    assert len(load_tasks({"tasks": TASKS}).tasks) == 3
    assert len(load_tasks(TASKS).tasks) == 3
    with pytest.raises(ValueError):
        load_tasks("not a list")
    task_set = load_tasks_file(_write_tasks(tmp_path))
    assert task_set.source_path.endswith("tasks.json")
    assert [t.id for t in task_set.tasks] == ["1", "2", "3"]


def test_parse_query_file(tmp_path):
    f = tmp_path / "query.txt"
    f.write_text("# weekly review\nhas tags\n\nsort by due\nlimit 3\n")
    query = parse_query_file(f)
    assert len(query.leaves) == 1
    assert query.sort.field == "due"
    assert query.limit == 3


def test_load_scores_file(tmp_path):
    f = tmp_path / "scores.json"
    f.write_text(json.dumps({"1": {"attention": 91, "lane": "do_now", "escalation": "severe"}}))
    scores = load_scores_file(f)
    assert scores.attention_score("1") == 91.0
    assert scores.attention_lane("1") == "DO_NOW"
    assert scores.escalation_level("1") == 3
    assert scores.attention_score("2") is None


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def test_cli_prints_matching_tasks(tmp_path, capsys):
    tasks_file = _write_tasks(tmp_path)
    rc = main([str(tasks_file), "tag includes work", "--reference-date", "2026-01-14"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "1: [ ] Write report  due 2026-01-10  priority high  #work" in out
    assert "Water plants" not in out


def test_cli_groups_and_json_output(tmp_path, capsys):
    tasks_file = _write_tasks(tmp_path)
    out_file = tmp_path / "result.json"
    rc = main([
        str(tasks_file),
        "not done\nsort by due\ngroup by tags",
        "--output-json", str(out_file),
    ])
    assert rc == 0
    out = capsys.readouterr().out
    assert "## home (1)" in out
    assert "## travel (1)" in out
    data = json.loads(out_file.read_text())
    assert data["tasks"] == ["1", "3"]
    assert data["total_count"] == 2
    assert data["input_count"] == 3
    assert data["groups"] == {"home": ["3"], "travel": ["3"], "work": ["1"]}
    assert not data["truncated"]


def test_cli_query_file_and_explain(tmp_path):
    tasks_file = _write_tasks(tmp_path)
    query_file = tmp_path / "query.txt"
    query_file.write_text("# overdue work\ndue before today\n")
    out_file = tmp_path / "result.json"
    rc = main([
        str(tasks_file),
        "--query-file", str(query_file),
        "--reference-date", "2026-01-14",
        "--explain",
        "--output-json", str(out_file),
    ])
    assert rc == 0
    data = json.loads(out_file.read_text())
    assert data["tasks"] == ["1"]
    assert data["explanations"]["2"] == 'Task "Water plants" has no due date'
    assert data["query_explanation"] == "Filters:\n- due before 2026-01-14"


def test_cli_scores(tmp_path):
    tasks_file = _write_tasks(tmp_path)
    scores_file = tmp_path / "scores.json"
    scores_file.write_text(json.dumps({"3": {"lane": "DO_NOW"}}))
    out_file = tmp_path / "result.json"
    rc = main([
        str(tasks_file), "lane is do now",
        "--scores", str(scores_file),
        "--output-json", str(out_file),
    ])
    assert rc == 0
    assert json.loads(out_file.read_text())["tasks"] == ["3"]


def test_cli_global_filter_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("TASKQUERY_GLOBAL_FILTER", "not done")
    tasks_file = _write_tasks(tmp_path)
    out_file = tmp_path / "result.json"
    assert main([str(tasks_file), "tag includes home", "--output-json", str(out_file)]) == 0
    assert json.loads(out_file.read_text())["tasks"] == ["3"]


def test_cli_syntax_error(tmp_path):
    tasks_file = _write_tasks(tmp_path)
    assert main([str(tasks_file), "priority is extreme"]) == 1


def test_cli_needs_exactly_one_query(tmp_path):
    tasks_file = _write_tasks(tmp_path)
    query_file = tmp_path / "query.txt"
    query_file.write_text("done")
    assert main([str(tasks_file)]) == 1
    assert main([str(tasks_file), "done", "--query-file", str(query_file)]) == 1


def test_cli_missing_files(tmp_path):
    tasks_file = _write_tasks(tmp_path)
    assert main([str(tmp_path / "nope.json"), "done"]) == 1
    assert main([str(tasks_file), "--query-file", str(tmp_path / "nope.txt")]) == 1


def test_cli_bad_input(tmp_path):
    tasks_file = _write_tasks(tmp_path, data=[{"name": "no id"}])
    assert main([str(tasks_file), "done"]) == 1
    good = _write_tasks(tmp_path)
    assert main([str(good), "done", "--reference-date", "soon"]) == 1
