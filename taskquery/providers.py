"""Collaborator interfaces consumed by predicates, plus lookup-table implementations.

The engine never computes dependency relationships or scores on its own. It
reads them from pre-materialized snapshots passed in per execution.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, Protocol

from .models import DEFAULT_REGISTRY, StatusRegistry, Task

logger = logging.getLogger(__name__)


class AttentionLane(StrEnum):
    DO_NOW = "DO_NOW"
    UNBLOCK_FIRST = "UNBLOCK_FIRST"
    BLOCKED = "BLOCKED"
    WATCHLIST = "WATCHLIST"


ESCALATION_LEVELS = {"on-time": 0, "ontime": 0, "warning": 1, "critical": 2, "severe": 3}
ESCALATION_NAMES = {0: "on-time", 1: "warning", 2: "critical", 3: "severe"}


class DependencyGraph(Protocol):
    def is_blocked(self, task_id: str) -> bool: ...

    def is_blocking(self, task_id: str) -> bool: ...

    def blocked_count(self, task_id: str) -> int: ...

    def has_cycle(self, task_id: str) -> bool: ...


class ScoreProvider(Protocol):
    def attention_score(self, task_id: str) -> float | None: ...

    def attention_lane(self, task_id: str) -> str | None: ...

    def escalation_level(self, task_id: str) -> int | None: ...


# (task, reference instant, settings) -> urgency score
UrgencyScorer = Callable[[Task, datetime, Mapping[str, Any]], float]


@dataclass(frozen=True)
class StaticDependencyGraph:
    """A read-only dependency snapshot backed by plain lookup tables."""

    blocked: frozenset[str] = frozenset()
    blocking_counts: Mapping[str, int] = field(default_factory=dict)
    cyclic: frozenset[str] = frozenset()

    def is_blocked(self, task_id: str) -> bool:
        return task_id in self.blocked

    def is_blocking(self, task_id: str) -> bool:
        return self.blocking_counts.get(task_id, 0) > 0

    def blocked_count(self, task_id: str) -> int:
        return self.blocking_counts.get(task_id, 0)

    def has_cycle(self, task_id: str) -> bool:
        return task_id in self.cyclic

    @classmethod
    def from_tasks(
        cls,
        tasks: Iterable[Task],
        registry: StatusRegistry = DEFAULT_REGISTRY,
    ) -> StaticDependencyGraph:
        """Materialize a snapshot from the tasks' ``depends_on`` lists.

        A task is blocked while any task it depends on is still open. Unknown
        dependency ids are ignored. Completed tasks neither block nor count as
        blocked.
        """
        by_id = {t.id: t for t in tasks}
        open_ids = {
            tid for tid, t in by_id.items()
            if not registry.status_of(t).is_completed
        }

        blocked: set[str] = set()
        blocking_counts: dict[str, int] = {}
        for tid in open_ids:
            for dep in by_id[tid].depends_on:
                if dep in open_ids and dep != tid:
                    blocked.add(tid)
                    blocking_counts[dep] = blocking_counts.get(dep, 0) + 1

        edges = {tid: [d for d in t.depends_on if d in by_id] for tid, t in by_id.items()}
        cyclic = _cyclic_nodes(edges)
        logger.debug(
            "Dependency snapshot: %d blocked, %d blocking, %d in cycles",
            len(blocked), len(blocking_counts), len(cyclic),
        )
        return cls(
            blocked=frozenset(blocked),
            blocking_counts=blocking_counts,
            cyclic=frozenset(cyclic),
        )


def _cyclic_nodes(edges: Mapping[str, list[str]]) -> set[str]:
    """Return every node that sits on a cycle (iterative Tarjan SCC)."""
    index: dict[str, int] = {}
    low: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    result: set[str] = set()
    counter = 0

    for root in edges:
        if root in index:
            continue
        work = [(root, 0)]
        while work:
            node, child_i = work.pop()
            if child_i == 0:
                index[node] = low[node] = counter
                counter += 1
                stack.append(node)
                on_stack.add(node)
            children = edges.get(node, [])
            if child_i < len(children):
                work.append((node, child_i + 1))
                child = children[child_i]
                if child not in index:
                    work.append((child, 0))
                elif child in on_stack:
                    low[node] = min(low[node], index[child])
                continue
            if low[node] == index[node]:
                component = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1 or node in edges.get(node, []):
                    result.update(component)
            if work:
                parent = work[-1][0]
                low[parent] = min(low[parent], low[node])
    return result


@dataclass(frozen=True)
class MappingScoreProvider:
    """Score lookups from precomputed per-task tables. Unknown ids yield None."""

    attention_scores: Mapping[str, float] = field(default_factory=dict)
    attention_lanes: Mapping[str, str] = field(default_factory=dict)
    escalation_levels: Mapping[str, int] = field(default_factory=dict)

    def attention_score(self, task_id: str) -> float | None:
        return self.attention_scores.get(task_id)

    def attention_lane(self, task_id: str) -> str | None:
        return self.attention_lanes.get(task_id)

    def escalation_level(self, task_id: str) -> int | None:
        return self.escalation_levels.get(task_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MappingScoreProvider:
        """Build from ``{task_id: {"attention": 80, "lane": "DO_NOW", "escalation": 2}}``."""
        scores: dict[str, float] = {}
        lanes: dict[str, str] = {}
        levels: dict[str, int] = {}
        for task_id, entry in data.items():
            if "attention" in entry:
                scores[str(task_id)] = float(entry["attention"])
            if "lane" in entry:
                lanes[str(task_id)] = str(entry["lane"]).upper()
            if "escalation" in entry:
                raw = entry["escalation"]
                if isinstance(raw, str):
                    raw = ESCALATION_LEVELS[raw.strip().lower()]
                levels[str(task_id)] = int(raw)
        return cls(attention_scores=scores, attention_lanes=lanes, escalation_levels=levels)


EMPTY_GRAPH = StaticDependencyGraph()
EMPTY_SCORES = MappingScoreProvider()


@dataclass(frozen=True)
class EvaluationContext:
    """Everything a predicate may read besides the task itself."""

    reference_date: datetime
    dependency_graph: DependencyGraph = EMPTY_GRAPH
    score_provider: ScoreProvider = EMPTY_SCORES
    urgency_scorer: UrgencyScorer | None = None
    urgency_settings: Mapping[str, Any] = field(default_factory=dict)
    statuses: StatusRegistry = DEFAULT_REGISTRY
