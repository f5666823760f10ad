"""CLI entry point for taskquery."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .config import EngineSettings
from .dates import parse_instant
from .engine import QueryEngine, QueryResult
from .errors import QueryExecutionError, QuerySyntaxError
from .loader import load_scores_file, load_tasks_file
from .models import Task
from .providers import StaticDependencyGraph


def _format_task(task: Task) -> str:
    parts = [f"[{task.status_symbol}] {task.name or task.id}"]
    if task.due_at is not None:
        parts.append(f"due {task.due_at.date().isoformat()}")
    if task.priority:
        parts.append(f"priority {task.priority}")
    if task.tags:
        parts.append(" ".join(f"#{t}" for t in task.tags))
    return f"{task.id}: " + "  ".join(parts)


def _print_result(result: QueryResult) -> None:
    if result.query_explanation:
        print(result.query_explanation)
        print()
    if result.groups is not None:
        for group in result.groups.groups:
            print(f"## {group.key} ({len(group.tasks)})")
            for task in group.tasks:
                print(f"  {_format_task(task)}")
    else:
        for task in result.tasks:
            print(_format_task(task))
    if result.explanations:
        print()
        for task_id, text in result.explanations.items():
            print(f"{task_id}: {text}")


def _result_json(result: QueryResult) -> dict:
    out: dict = {
        "tasks": [t.id for t in result.tasks],
        "total_count": result.total_count,
        "input_count": result.input_count,
        "truncated": result.truncated,
        "execution_time_ms": round(result.execution_time_ms, 3),
    }
    if result.groups is not None:
        out["groups"] = {g.key: [t.id for t in g.tasks] for g in result.groups.groups}
    if result.explanations:
        out["explanations"] = result.explanations
    if result.query_explanation:
        out["query_explanation"] = result.query_explanation
    return out


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="taskquery",
        description="Filter, sort and group tasks from a JSON snapshot with a query.",
    )
    parser.add_argument(
        "tasks_file",
        type=str,
        help="Path to a JSON file with a list of tasks (or {\"tasks\": [...]})",
    )
    parser.add_argument(
        "query",
        type=str,
        nargs="?",
        default=None,
        help="Query text; use literal newlines or --query-file for several lines",
    )
    parser.add_argument(
        "--query-file",
        type=str,
        default=None,
        help="Read the query from a file instead",
    )
    parser.add_argument(
        "--reference-date",
        type=str,
        default=None,
        help="ISO date or instant that relative dates resolve against (default: now)",
    )
    parser.add_argument(
        "--explain",
        action="store_true",
        help="Include per-task explanations and a description of the query",
    )
    parser.add_argument(
        "--scores",
        type=str,
        default=None,
        help="JSON file with attention scores, lanes and escalation levels per task id",
    )
    parser.add_argument(
        "--output-json",
        type=str,
        default=None,
        help="Write the result to a JSON file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(message)s",
    )

    if (args.query is None) == (args.query_file is None):
        logging.error("Give exactly one of QUERY or --query-file")
        return 1

    tasks_path = Path(args.tasks_file)
    if not tasks_path.is_file():
        logging.error("Tasks file not found: %s", tasks_path)
        return 1

    if args.query_file:
        query_path = Path(args.query_file)
        if not query_path.is_file():
            logging.error("Query file not found: %s", query_path)
            return 1
        query_text = query_path.read_text(encoding="utf-8")
    else:
        query_text = args.query

    reference = None
    if args.reference_date:
        try:
            reference = parse_instant(args.reference_date)
        except ValueError:
            logging.error("Invalid --reference-date: %s", args.reference_date)
            return 1

    try:
        task_set = load_tasks_file(tasks_path)
        scores = load_scores_file(args.scores) if args.scores else None
    except (OSError, ValueError, KeyError) as e:
        logging.error("Could not load input: %s", e)
        return 1
    logging.info("Loaded %d tasks from %s", len(task_set.tasks), tasks_path)

    engine = QueryEngine(
        dependency_graph=StaticDependencyGraph.from_tasks(task_set.tasks),
        settings=EngineSettings.from_env(),
    )
    if scores is not None:
        engine.score_provider = scores

    try:
        result = engine.execute(
            query_text, task_set.tasks, reference_date=reference, explain=args.explain
        )
    except QuerySyntaxError as e:
        logging.error("Query error: %s", e.message)
        logging.error("  at line %d, column %d", e.line, e.column)
        if e.suggestion:
            logging.error("  %s", e.suggestion)
        return 1
    except QueryExecutionError as e:
        logging.error("Query failed: %s", e.message)
        return 1

    _print_result(result)
    logging.info(
        "Matched %d of %d tasks (showing %d)%s",
        result.total_count,
        result.input_count,
        result.count,
        ", truncated" if result.truncated else "",
    )

    # Write JSON output
    if args.output_json:
        Path(args.output_json).write_text(json.dumps(_result_json(result), indent=2))
        logging.info("Results written to %s", args.output_json)

    return 0


if __name__ == "__main__":
    sys.exit(main())
