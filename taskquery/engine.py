"""Query engine: compiles query text and runs filter, sort, limit and group."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from .cache import CacheStats, QueryCache
from .config import EngineSettings
from .errors import QueryExecutionError, QuerySyntaxError, TaskQueryError
from .explain import explain_query
from .groupers import Grouping, group_tasks
from .models import DEFAULT_REGISTRY, StatusRegistry, Task
from .nodes import And, FilterNode, Query
from .parser import parse_query
from .predicates import Predicate, build_predicate
from .providers import (
    EMPTY_GRAPH,
    EMPTY_SCORES,
    DependencyGraph,
    EvaluationContext,
    ScoreProvider,
    UrgencyScorer,
)
from .sorting import sort_tasks

logger = logging.getLogger(__name__)

EXPLANATION_FALLBACK = "No explanation available for this task"


@dataclass
class QueryResult:
    """Outcome of one query execution."""

    tasks: list[Task] = field(default_factory=list)
    groups: Grouping | None = None
    explanations: dict[str, str] = field(default_factory=dict)
    total_count: int = 0  # matches before the limit was applied
    input_count: int = 0
    truncated: bool = False
    execution_time_ms: float = 0.0
    query_explanation: str | None = None
    query: Query | None = None

    @property
    def count(self) -> int:
        return len(self.tasks)


@dataclass
class ValidationResult:
    valid: bool
    error: QuerySyntaxError | None = None
    parsed_filters: int = 0


def _reference_instant(value: datetime | date | None) -> datetime:
    if value is None:
        return datetime.now(UTC)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    return datetime(value.year, value.month, value.day, tzinfo=UTC)


class QueryEngine:
    """Compiles queries (with caching) and evaluates them over task snapshots.

    The dependency graph and score provider given here are defaults; both can
    be replaced per call to ``execute`` with a fresh snapshot.
    """

    def __init__(
        self,
        dependency_graph: DependencyGraph = EMPTY_GRAPH,
        score_provider: ScoreProvider = EMPTY_SCORES,
        urgency_scorer: UrgencyScorer | None = None,
        urgency_settings: Mapping[str, Any] | None = None,
        statuses: StatusRegistry = DEFAULT_REGISTRY,
        settings: EngineSettings | None = None,
    ) -> None:
        self.dependency_graph = dependency_graph
        self.score_provider = score_provider
        self.urgency_scorer = urgency_scorer
        self.urgency_settings = dict(urgency_settings or {})
        self.statuses = statuses
        self.settings = settings or EngineSettings()
        self._cache = QueryCache(self.settings.cache_size)
        self._global_filter: FilterNode | None = None
        if self.settings.global_filter:
            self.set_global_filter(self.settings.global_filter)

    # -- compilation -------------------------------------------------------

    def compile(self, text: str) -> Query:
        """Parse ``text``, reusing a cached Query for identical text."""
        cached = self._cache.get(text)
        if cached is not None:
            logger.debug("Query cache hit")
            return cached
        logger.debug("Query cache miss, parsing")
        query = parse_query(text, max_depth=self.settings.max_depth)
        self._cache.put(text, query)
        return query

    def validate(self, text: str) -> ValidationResult:
        try:
            query = self.compile(text)
        except QuerySyntaxError as e:
            return ValidationResult(valid=False, error=e)
        return ValidationResult(valid=True, parsed_filters=len(query.leaves))

    def set_global_filter(self, text: str | None) -> None:
        """Set the filter ANDed before every query. A broken filter is ignored."""
        if not text or not text.strip():
            self._global_filter = None
            return
        try:
            query = parse_query(text, max_depth=self.settings.max_depth)
        except QuerySyntaxError as e:
            logger.warning("Ignoring invalid global filter: %s", e)
            self._global_filter = None
            return
        self._global_filter = query.filter

    @property
    def global_filter(self) -> FilterNode | None:
        return self._global_filter

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()

    # -- execution ---------------------------------------------------------

    def execute(
        self,
        query: str | Query,
        tasks: Iterable[Task],
        reference_date: datetime | date | None = None,
        explain: bool = False,
        dependency_graph: DependencyGraph | None = None,
        score_provider: ScoreProvider | None = None,
    ) -> QueryResult:
        """Run a query over ``tasks``.

        Raises QuerySyntaxError when the text does not compile and
        QueryExecutionError when a collaborator fails during filtering or
        sorting. Explanations are best effort and never abort the run.
        """
        started = time.perf_counter()
        compiled = query if isinstance(query, Query) else self.compile(query)
        snapshot = list(tasks)
        ctx = EvaluationContext(
            reference_date=_reference_instant(reference_date),
            dependency_graph=self.dependency_graph if dependency_graph is None else dependency_graph,
            score_provider=self.score_provider if score_provider is None else score_provider,
            urgency_scorer=self.urgency_scorer,
            urgency_settings=self.urgency_settings,
            statuses=self.statuses,
        )

        filter_node = compiled.filter
        global_applied = False
        if self._global_filter is not None and not compiled.ignore_global_filter:
            filter_node = (
                self._global_filter if filter_node is None else And(self._global_filter, filter_node)
            )
            global_applied = True
        root = build_predicate(filter_node, ctx) if filter_node is not None else None

        deadline = None
        if self.settings.deadline_ms is not None:
            deadline = started + self.settings.deadline_ms / 1000.0

        evaluated = snapshot
        truncated = False
        if self.settings.max_items is not None and len(snapshot) > self.settings.max_items:
            evaluated = snapshot[: self.settings.max_items]
            truncated = True
            logger.warning(
                "Evaluating only the first %d of %d tasks", self.settings.max_items, len(snapshot)
            )

        matched, timed_out = self._filter(root, evaluated, deadline)
        truncated = truncated or timed_out
        total_count = len(matched)
        logger.debug("Filter matched %d of %d tasks", total_count, len(evaluated))

        ordered = matched
        if compiled.sort is not None:
            try:
                ordered = sort_tasks(matched, compiled.sort, ctx)
            except TaskQueryError:
                raise
            except Exception as e:
                raise QueryExecutionError(f"Sorting failed: {e}", cause=e) from e

        if compiled.limit is not None:
            ordered = ordered[: compiled.limit]

        groups = None
        if compiled.group is not None:
            groups = group_tasks(ordered, compiled.group.field, ctx)
            logger.debug("Grouped into %d group(s) by %s", len(groups.groups), groups.field)

        result = QueryResult(
            tasks=ordered,
            groups=groups,
            total_count=total_count,
            input_count=len(snapshot),
            truncated=truncated,
            query=compiled,
        )

        if explain or compiled.explain:
            result.explanations, explain_truncated = self._explain(root, snapshot, deadline)
            result.truncated = result.truncated or explain_truncated
            result.query_explanation = explain_query(compiled, root, global_applied)

        result.execution_time_ms = (time.perf_counter() - started) * 1000.0
        return result

    def _filter(
        self,
        root: Predicate | None,
        tasks: list[Task],
        deadline: float | None,
    ) -> tuple[list[Task], bool]:
        if root is None:
            return list(tasks), False
        matched: list[Task] = []
        for task in tasks:
            if deadline is not None and time.perf_counter() > deadline:
                logger.warning("Query deadline reached after %d tasks", len(matched))
                return matched, True
            try:
                if root.matches(task):
                    matched.append(task)
            except TaskQueryError:
                raise
            except Exception as e:
                raise QueryExecutionError(
                    f"Filter evaluation failed for task {task.id}: {e}", cause=e
                ) from e
        return matched, False

    def _explain(
        self,
        root: Predicate | None,
        tasks: list[Task],
        deadline: float | None,
    ) -> tuple[dict[str, str], bool]:
        explanations: dict[str, str] = {}
        limit = self.settings.max_explanations
        for task in tasks:
            if limit is not None and len(explanations) >= limit:
                logger.warning("Explanations capped at %d tasks", limit)
                return explanations, True
            if deadline is not None and time.perf_counter() > deadline:
                logger.warning("Query deadline reached while explaining")
                return explanations, True
            if task.id in explanations:
                logger.warning("Duplicate task id %s; keeping the first explanation", task.id)
                continue
            if root is None:
                explanations[task.id] = f'Task "{task.name or task.id}" matches: no filters'
                continue
            try:
                if root.matches(task):
                    explanations[task.id] = root.explain_match(task)
                else:
                    explanations[task.id] = root.explain_mismatch(task)
            except Exception as e:
                logger.warning("Could not explain task %s: %s", task.id, e)
                explanations[task.id] = EXPLANATION_FALLBACK
        return explanations, False
