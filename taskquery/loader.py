"""Load task snapshots and score tables from JSON files."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from .models import Task, TaskSet
from .providers import MappingScoreProvider

logger = logging.getLogger(__name__)

RE_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

# Alternative spellings accepted in task JSON
KEY_ALIASES = {
    "due": "due_at",
    "scheduled": "scheduled_at",
    "start": "start_at",
    "created": "created_at",
    "done": "done_at",
    "cancelled": "cancelled_at",
    "status_char": "status_symbol",
    "symbol": "status_symbol",
    "recurrence": "recurrence_text",
    "title": "name",
}

TASK_FIELDS = set(Task.__dataclass_fields__)


def _snake(key: str) -> str:
    return RE_CAMEL.sub("_", key).lower()


def task_from_dict(data: dict[str, Any]) -> Task:
    """Build a Task from a JSON object with camelCase or snake_case keys.

    Unknown keys are ignored. Raises ValueError when ``id`` is missing or a
    date is not ISO-8601.
    """
    fields: dict[str, Any] = {}
    for key, value in data.items():
        name = _snake(key)
        name = KEY_ALIASES.get(name, name)
        if name in TASK_FIELDS:
            fields[name] = value
        else:
            logger.debug("Ignoring unknown task key %r", key)
    if fields.get("id") in (None, ""):
        raise ValueError(f"Task without id: {data!r}")
    recurrence = fields.get("recurrence_text")
    if isinstance(recurrence, dict):
        # {"frequency": "weekly", "text": "every week"}
        fields.setdefault("frequency", recurrence.get("frequency"))
        fields["recurrence_text"] = recurrence.get("text", "")
    frequency = fields.get("frequency")
    if isinstance(frequency, dict):
        # {"type": "weekly", "interval": 1}
        fields["frequency"] = frequency.get("type")
    return Task(**fields)


def load_tasks(data: Any, source_path: str = "") -> TaskSet:
    """Accept a list of task objects or ``{"tasks": [...]}``."""
    if isinstance(data, dict):
        data = data.get("tasks", [])
    if not isinstance(data, list):
        raise ValueError("Expected a list of tasks or an object with a 'tasks' list")
    return TaskSet(tasks=[task_from_dict(item) for item in data], source_path=source_path)


def load_tasks_file(path: str | Path) -> TaskSet:
    p = Path(path)
    task_set = load_tasks(json.loads(p.read_text(encoding="utf-8")), source_path=str(p))
    logger.debug("Loaded %d tasks from %s", len(task_set.tasks), p)
    return task_set


def load_scores_file(path: str | Path) -> MappingScoreProvider:
    """Load ``{task_id: {"attention": .., "lane": .., "escalation": ..}}``."""
    p = Path(path)
    data = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Expected an object mapping task ids to scores")
    return MappingScoreProvider.from_dict(data)
