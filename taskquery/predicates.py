"""Executable predicates built from the syntax tree.

Every predicate answers ``matches`` and three explanation methods. Explanation
methods only read the task and never raise for missing fields; a task without
the relevant data gets a narrative saying so.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from .dates import day_of, format_day, parse_date_expression
from .errors import QueryExecutionError
from .models import PRIORITY_WEIGHTS, StatusRegistry, StatusType, Task, normalize_priority, priority_weight
from .nodes import And, DateOperand, FilterNode, Leaf, LeafKind, Not, Or
from .providers import ESCALATION_NAMES, DependencyGraph, EvaluationContext, ScoreProvider, UrgencyScorer


PREVIEW_LENGTH = 50

OPERATOR_PHRASES = {
    "is": "is",
    "above": "is above",
    "below": "is below",
    "at-least": "is at least",
    "at-most": "is at most",
}


def compare(operator: str, actual: float, target: float) -> bool:
    if operator == "is":
        return actual == target
    if operator == "above":
        return actual > target
    if operator == "below":
        return actual < target
    if operator == "at-least":
        return actual >= target
    if operator == "at-most":
        return actual <= target
    raise ValueError(f"Unknown comparator: {operator}")


def _label(task: Task) -> str:
    return f'Task "{task.name or task.id}"'


def _preview(text: str) -> str:
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text


class Predicate(ABC):
    @abstractmethod
    def matches(self, task: Task) -> bool: ...

    @abstractmethod
    def explain(self) -> str:
        """Describe the clause without reference to any task."""

    @abstractmethod
    def explain_match(self, task: Task) -> str: ...

    @abstractmethod
    def explain_mismatch(self, task: Task) -> str: ...


# ---------------------------------------------------------------------------
# Boolean combinators
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AndPredicate(Predicate):
    left: Predicate
    right: Predicate

    def matches(self, task: Task) -> bool:
        return self.left.matches(task) and self.right.matches(task)

    def explain(self) -> str:
        return f"({self.left.explain()}) AND ({self.right.explain()})"

    def explain_match(self, task: Task) -> str:
        return (
            f"{_label(task)} matches both: ({self.left.explain_match(task)})"
            f" AND ({self.right.explain_match(task)})"
        )

    def explain_mismatch(self, task: Task) -> str:
        left_ok = self.left.matches(task)
        right_ok = self.right.matches(task)
        if not left_ok and not right_ok:
            return (
                f"{_label(task)} matches NEITHER: ({self.left.explain_mismatch(task)})"
                f" NOR ({self.right.explain_mismatch(task)})"
            )
        if not left_ok:
            return f"{_label(task)} fails first condition: {self.left.explain_mismatch(task)}"
        return f"{_label(task)} fails second condition: {self.right.explain_mismatch(task)}"


@dataclass(frozen=True)
class OrPredicate(Predicate):
    left: Predicate
    right: Predicate

    def matches(self, task: Task) -> bool:
        return self.left.matches(task) or self.right.matches(task)

    def explain(self) -> str:
        return f"({self.left.explain()}) OR ({self.right.explain()})"

    def explain_match(self, task: Task) -> str:
        left_ok = self.left.matches(task)
        right_ok = self.right.matches(task)
        if left_ok and right_ok:
            return (
                f"{_label(task)} matches BOTH: ({self.left.explain_match(task)})"
                f" AND ({self.right.explain_match(task)})"
            )
        if left_ok:
            return f"{_label(task)} matches first condition: {self.left.explain_match(task)}"
        return f"{_label(task)} matches second condition: {self.right.explain_match(task)}"

    def explain_mismatch(self, task: Task) -> str:
        return (
            f"{_label(task)} matches NEITHER: ({self.left.explain_mismatch(task)})"
            f" NOR ({self.right.explain_mismatch(task)})"
        )


@dataclass(frozen=True)
class NotPredicate(Predicate):
    child: Predicate

    def matches(self, task: Task) -> bool:
        return not self.child.matches(task)

    def explain(self) -> str:
        return f"NOT ({self.child.explain()})"

    def explain_match(self, task: Task) -> str:
        return f"{_label(task)} does NOT match: {self.child.explain_mismatch(task)}"

    def explain_mismatch(self, task: Task) -> str:
        return f"{_label(task)} unexpectedly matches: {self.child.explain_match(task)}"


# ---------------------------------------------------------------------------
# Leaf predicates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LeafPredicate(Predicate):
    """A leaf whose result may be inverted by its own ``negate`` flag.

    Subclasses implement ``test`` (the un-negated check), ``describe`` (the
    un-negated clause) and ``narrate`` (the task's state given the raw result).
    """

    negate: bool = field(default=False, kw_only=True)

    @abstractmethod
    def test(self, task: Task) -> bool: ...

    @abstractmethod
    def describe(self) -> str: ...

    @abstractmethod
    def narrate(self, task: Task, result: bool) -> str: ...

    def matches(self, task: Task) -> bool:
        return self.test(task) != self.negate

    def explain(self) -> str:
        return f"NOT {self.describe()}" if self.negate else self.describe()

    def explain_match(self, task: Task) -> str:
        return f"{_label(task)} {self.narrate(task, self.test(task))}"

    def explain_mismatch(self, task: Task) -> str:
        suffix = " (expected no match)" if self.negate else ""
        return f"{_label(task)} {self.narrate(task, self.test(task))}{suffix}"


@dataclass(frozen=True)
class DonePredicate(Predicate):
    statuses: StatusRegistry

    def matches(self, task: Task) -> bool:
        return self.statuses.status_of(task).type is StatusType.DONE

    def explain(self) -> str:
        return "task is done"

    def explain_match(self, task: Task) -> str:
        return f"{_label(task)} is marked as done"

    def explain_mismatch(self, task: Task) -> str:
        return f"{_label(task)} has status {self.statuses.status_of(task).type} (not done)"


@dataclass(frozen=True)
class NotDonePredicate(Predicate):
    statuses: StatusRegistry

    def matches(self, task: Task) -> bool:
        return self.statuses.status_of(task).type is not StatusType.DONE

    def explain(self) -> str:
        return "task is not done"

    def explain_match(self, task: Task) -> str:
        return f"{_label(task)} has status {self.statuses.status_of(task).type} (not done)"

    def explain_mismatch(self, task: Task) -> str:
        return f"{_label(task)} is marked as done"


@dataclass(frozen=True)
class StatusTypePredicate(LeafPredicate):
    status_type: StatusType
    statuses: StatusRegistry

    def test(self, task: Task) -> bool:
        return self.statuses.status_of(task).type is self.status_type

    def describe(self) -> str:
        return f"status.type is {self.status_type}"

    def narrate(self, task: Task, result: bool) -> str:
        relation = "=" if result else "!="
        return (
            f"has status type {self.statuses.status_of(task).type}"
            f" ({relation} {self.status_type})"
        )


@dataclass(frozen=True)
class StatusNamePredicate(LeafPredicate):
    name: str
    statuses: StatusRegistry
    operator: str = "includes"

    def test(self, task: Task) -> bool:
        actual = self.statuses.status_of(task).name.lower()
        if self.operator == "is":
            return actual == self.name.lower()
        return self.name.lower() in actual

    def describe(self) -> str:
        return f'status.name {self.operator} "{self.name}"'

    def narrate(self, task: Task, result: bool) -> str:
        verb = "equals" if self.operator == "is" else "contains"
        if not result:
            verb = "does NOT equal" if self.operator == "is" else "does NOT contain"
        return f'has status name "{self.statuses.status_of(task).name}" which {verb} "{self.name}"'


@dataclass(frozen=True)
class StatusSymbolPredicate(LeafPredicate):
    symbol: str
    statuses: StatusRegistry

    def test(self, task: Task) -> bool:
        return self.statuses.status_of(task).symbol == self.symbol

    def describe(self) -> str:
        return f"status.symbol is '{self.symbol}'"

    def narrate(self, task: Task, result: bool) -> str:
        relation = "=" if result else "!="
        symbol = self.statuses.status_of(task).symbol
        return f"has status symbol '{symbol}' ({relation} '{self.symbol}')"


@dataclass(frozen=True)
class DatePredicate(Predicate):
    """Day-granular comparison of one date field. A missing date never matches."""

    date_field: str
    comparator: str
    target: date
    end: date | None = None

    def _day(self, task: Task) -> date | None:
        value = task.date_for(self.date_field)
        return day_of(value) if value is not None else None

    def matches(self, task: Task) -> bool:
        day = self._day(task)
        if day is None:
            return False
        if self.comparator == "before":
            return day < self.target
        if self.comparator == "after":
            return day > self.target
        if self.comparator == "on":
            return day == self.target
        if self.comparator == "on or before":
            return day <= self.target
        if self.comparator == "on or after":
            return day >= self.target
        if self.comparator == "between":
            return self.target <= day <= self.end
        raise ValueError(f"Unknown date comparator: {self.comparator}")

    def explain(self) -> str:
        if self.comparator == "between":
            return f"{self.date_field} between {format_day(self.target)} and {format_day(self.end)}"
        return f"{self.date_field} {self.comparator} {format_day(self.target)}"

    def _narrate(self, task: Task, negated: bool) -> str:
        day = self._day(task)
        not_ = "NOT " if negated else ""
        if self.comparator == "between":
            return (
                f"{_label(task)} has {self.date_field} date {format_day(day)} which is"
                f" {not_}between {format_day(self.target)} and {format_day(self.end)}"
            )
        return (
            f"{_label(task)} has {self.date_field} date {format_day(day)} which is"
            f" {not_}{self.comparator} {format_day(self.target)}"
        )

    def explain_match(self, task: Task) -> str:
        if self._day(task) is None:
            return f"{_label(task)} unexpectedly has no {self.date_field} date"
        return self._narrate(task, negated=False)

    def explain_mismatch(self, task: Task) -> str:
        if self._day(task) is None:
            return f"{_label(task)} has no {self.date_field} date"
        return self._narrate(task, negated=True)


@dataclass(frozen=True)
class HasDatePredicate(LeafPredicate):
    date_field: str

    def test(self, task: Task) -> bool:
        return task.date_for(self.date_field) is not None

    def describe(self) -> str:
        return f"has {self.date_field} date"

    def explain(self) -> str:
        return f"no {self.date_field} date" if self.negate else self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        if result:
            return f"has a {self.date_field} date ({format_day(task.date_for(self.date_field))})"
        return f"does not have a {self.date_field} date"


@dataclass(frozen=True)
class PriorityPredicate(Predicate):
    operator: str
    level: str

    def matches(self, task: Task) -> bool:
        return compare(self.operator, priority_weight(task.priority), PRIORITY_WEIGHTS[self.level])

    def explain(self) -> str:
        return f"priority {OPERATOR_PHRASES[self.operator]} {self.level}"

    def explain_match(self, task: Task) -> str:
        actual = normalize_priority(task.priority) or "normal"
        return (
            f"{_label(task)} has priority {actual.upper()} which"
            f" {OPERATOR_PHRASES[self.operator]} {self.level.upper()}"
        )

    def explain_mismatch(self, task: Task) -> str:
        actual = normalize_priority(task.priority) or "normal"
        phrase = OPERATOR_PHRASES[self.operator].replace("is", "is NOT", 1)
        return (
            f"{_label(task)} has priority {actual.upper()} (weight: {priority_weight(actual)})"
            f" which {phrase} {self.level.upper()} (weight: {PRIORITY_WEIGHTS[self.level]})"
        )


@dataclass(frozen=True)
class TagPredicate(LeafPredicate):
    text: str

    def test(self, task: Task) -> bool:
        needle = self.text.lower()
        return any(needle in tag.lower().lstrip("#") for tag in task.tags)

    def describe(self) -> str:
        return f'tag includes "{self.text}"'

    def explain(self) -> str:
        return f'tag does not include "{self.text}"' if self.negate else self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        if not task.tags:
            return "has no tags"
        tags = ", ".join(task.tags)
        if result:
            return f'has tags [{tags}] which include "{self.text}"'
        return f'has tags [{tags}] none of which include "{self.text}"'


@dataclass(frozen=True)
class HasTagsPredicate(LeafPredicate):
    def test(self, task: Task) -> bool:
        return bool(task.tags)

    def describe(self) -> str:
        return "has tags"

    def explain(self) -> str:
        return "no tags" if self.negate else self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        if result:
            return f"has tags [{', '.join(task.tags)}]"
        return "has no tags"


@dataclass(frozen=True)
class TagRegexPredicate(Predicate):
    pattern: re.Pattern[str]

    def matches(self, task: Task) -> bool:
        return any(self.pattern.search(tag) for tag in task.tags)

    def explain(self) -> str:
        return f"tag matches regex /{self.pattern.pattern}/"

    def explain_match(self, task: Task) -> str:
        hits = [t for t in task.tags if self.pattern.search(t)]
        return f"{_label(task)} has tags [{', '.join(hits)}] matching regex /{self.pattern.pattern}/"

    def explain_mismatch(self, task: Task) -> str:
        if not task.tags:
            return f"{_label(task)} has no tags"
        return (
            f"{_label(task)} has tags [{', '.join(task.tags)}] none of which match"
            f" regex /{self.pattern.pattern}/"
        )


@dataclass(frozen=True)
class TextIncludesPredicate(LeafPredicate):
    """Case-insensitive substring test on path, heading or name plus description."""

    attribute: str
    text: str

    def _value(self, task: Task) -> str:
        if self.attribute == "description":
            return task.combined_text
        return getattr(task, self.attribute) or ""

    def test(self, task: Task) -> bool:
        return self.text.lower() in self._value(task).lower()

    def describe(self) -> str:
        return f'{self.attribute} includes "{self.text}"'

    def explain(self) -> str:
        if self.negate:
            return f'{self.attribute} does not include "{self.text}"'
        return self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        verb = "includes" if result else "does NOT include"
        if self.attribute == "description":
            return f'text "{_preview(self._value(task))}" {verb} "{self.text}"'
        return f'has {self.attribute} "{self._value(task)}" which {verb} "{self.text}"'


@dataclass(frozen=True)
class TextRegexPredicate(Predicate):
    attribute: str
    pattern: re.Pattern[str]

    def _value(self, task: Task) -> str:
        if self.attribute == "description":
            return task.combined_text
        return getattr(task, self.attribute) or ""

    def matches(self, task: Task) -> bool:
        return self.pattern.search(self._value(task)) is not None

    def explain(self) -> str:
        return f"{self.attribute} matches regex /{self.pattern.pattern}/"

    def _subject(self, task: Task) -> str:
        noun = "text" if self.attribute == "description" else self.attribute
        return f'{_label(task)} {noun} "{_preview(self._value(task))}"'

    def explain_match(self, task: Task) -> str:
        return f"{self._subject(task)} matches regex /{self.pattern.pattern}/"

    def explain_mismatch(self, task: Task) -> str:
        return f"{self._subject(task)} does NOT match regex /{self.pattern.pattern}/"


@dataclass(frozen=True)
class RecurrencePredicate(LeafPredicate):
    def test(self, task: Task) -> bool:
        return task.is_recurring

    def describe(self) -> str:
        return "is recurring"

    def explain(self) -> str:
        return "is not recurring" if self.negate else self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        if result:
            return f"recurs {task.frequency}"
        return "does not recur"


@dataclass(frozen=True)
class DependsOnPredicate(LeafPredicate):
    task_id: str

    def test(self, task: Task) -> bool:
        return self.task_id in task.depends_on

    def describe(self) -> str:
        return f"depends on {self.task_id}"

    def narrate(self, task: Task, result: bool) -> str:
        if not task.depends_on:
            return "has no dependencies"
        deps = ", ".join(task.depends_on)
        if result:
            return f"depends on [{deps}] which includes {self.task_id}"
        return f"depends on [{deps}] which does NOT include {self.task_id}"


def _graph_details(graph: DependencyGraph, task: Task) -> str:
    details = f"blocks {graph.blocked_count(task.id)} task(s)"
    if graph.has_cycle(task.id):
        details += "; part of a dependency cycle"
    return details


@dataclass(frozen=True)
class BlockedPredicate(LeafPredicate):
    graph: DependencyGraph

    def test(self, task: Task) -> bool:
        return self.graph.is_blocked(task.id)

    def describe(self) -> str:
        return "is blocked"

    def explain(self) -> str:
        return "is not blocked" if self.negate else self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        state = "is blocked" if result else "is not blocked"
        return f"{state} ({_graph_details(self.graph, task)})"


@dataclass(frozen=True)
class BlockingPredicate(LeafPredicate):
    graph: DependencyGraph

    def test(self, task: Task) -> bool:
        return self.graph.is_blocking(task.id)

    def describe(self) -> str:
        return "is blocking"

    def explain(self) -> str:
        return "is not blocking" if self.negate else self.describe()

    def narrate(self, task: Task, result: bool) -> str:
        state = "is blocking" if result else "is not blocking"
        return f"{state} ({_graph_details(self.graph, task)})"


@dataclass(frozen=True)
class EscalationPredicate(Predicate):
    operator: str
    level: int
    scores: ScoreProvider

    def matches(self, task: Task) -> bool:
        actual = self.scores.escalation_level(task.id)
        return actual is not None and compare(self.operator, actual, self.level)

    def explain(self) -> str:
        return f"escalation {OPERATOR_PHRASES[self.operator]} {ESCALATION_NAMES.get(self.level, self.level)}"

    def _narrate(self, task: Task, result: bool) -> str:
        actual = self.scores.escalation_level(task.id)
        if actual is None:
            return f"{_label(task)} has no escalation level"
        phrase = OPERATOR_PHRASES[self.operator]
        if not result:
            phrase = phrase.replace("is", "is NOT", 1)
        return (
            f"{_label(task)} has escalation {ESCALATION_NAMES.get(actual, actual)} which"
            f" {phrase} {ESCALATION_NAMES.get(self.level, self.level)}"
        )

    def explain_match(self, task: Task) -> str:
        return self._narrate(task, True)

    def explain_mismatch(self, task: Task) -> str:
        return self._narrate(task, False)


@dataclass(frozen=True)
class AttentionScorePredicate(Predicate):
    operator: str
    score: float
    scores: ScoreProvider

    def matches(self, task: Task) -> bool:
        actual = self.scores.attention_score(task.id)
        return actual is not None and compare(self.operator, actual, self.score)

    def explain(self) -> str:
        return f"attention {OPERATOR_PHRASES[self.operator]} {self.score:g}"

    def _narrate(self, task: Task, result: bool) -> str:
        actual = self.scores.attention_score(task.id)
        if actual is None:
            return f"{_label(task)} has no attention score"
        phrase = OPERATOR_PHRASES[self.operator]
        if not result:
            phrase = phrase.replace("is", "is NOT", 1)
        return f"{_label(task)} has attention score {actual:g} which {phrase} {self.score:g}"

    def explain_match(self, task: Task) -> str:
        return self._narrate(task, True)

    def explain_mismatch(self, task: Task) -> str:
        return self._narrate(task, False)


@dataclass(frozen=True)
class AttentionLanePredicate(Predicate):
    lane: str
    scores: ScoreProvider

    def matches(self, task: Task) -> bool:
        return self.scores.attention_lane(task.id) == self.lane

    def explain(self) -> str:
        return f"lane is {self.lane}"

    def explain_match(self, task: Task) -> str:
        return f"{_label(task)} is in lane {self.lane}"

    def explain_mismatch(self, task: Task) -> str:
        actual = self.scores.attention_lane(task.id)
        if actual is None:
            return f"{_label(task)} has no attention lane"
        return f"{_label(task)} is in lane {actual} (not {self.lane})"


@dataclass(frozen=True)
class UrgencyPredicate(Predicate):
    operator: str
    threshold: float
    scorer: UrgencyScorer
    reference: datetime
    settings: Mapping[str, Any] = field(default_factory=dict)

    def score(self, task: Task) -> float:
        return self.scorer(task, self.reference, self.settings)

    def matches(self, task: Task) -> bool:
        return compare(self.operator, self.score(task), self.threshold)

    def explain(self) -> str:
        return f"urgency {self.operator} {self.threshold:.1f}"

    def explain_match(self, task: Task) -> str:
        return (
            f"{_label(task)} has urgency score {self.score(task):.1f} which"
            f" {OPERATOR_PHRASES[self.operator]} {self.threshold:.1f}"
        )

    def explain_mismatch(self, task: Task) -> str:
        phrase = OPERATOR_PHRASES[self.operator].replace("is", "is NOT", 1)
        return (
            f"{_label(task)} has urgency score {self.score(task):.1f} which"
            f" {phrase} {self.threshold:.1f}"
        )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def _resolve_day(text: str, ctx: EvaluationContext) -> date:
    day = parse_date_expression(text, ctx.reference_date)
    if day is None:
        raise QueryExecutionError(f'Cannot resolve date "{text}"')
    return day


def _date(leaf: Leaf, ctx: EvaluationContext) -> Predicate:
    operand: DateOperand = leaf.value
    end = _resolve_day(operand.end, ctx) if operand.end is not None else None
    return DatePredicate(operand.field, leaf.operator, _resolve_day(operand.start, ctx), end)


def _done(leaf: Leaf, ctx: EvaluationContext) -> Predicate:
    if leaf.value is False:
        return NotDonePredicate(ctx.statuses)
    return DonePredicate(ctx.statuses)


def _urgency(leaf: Leaf, ctx: EvaluationContext) -> Predicate:
    if ctx.urgency_scorer is None:
        raise QueryExecutionError("Urgency clauses need an urgency scorer")
    return UrgencyPredicate(
        leaf.operator, leaf.value, ctx.urgency_scorer, ctx.reference_date, ctx.urgency_settings
    )


_LEAF_BUILDERS: dict[LeafKind, Callable[[Leaf, EvaluationContext], Predicate]] = {
    LeafKind.DONE: _done,
    LeafKind.STATUS_TYPE: lambda leaf, ctx: StatusTypePredicate(
        leaf.value, ctx.statuses, negate=leaf.negate
    ),
    LeafKind.STATUS_NAME: lambda leaf, ctx: StatusNamePredicate(
        leaf.value, ctx.statuses, leaf.operator, negate=leaf.negate
    ),
    LeafKind.STATUS_SYMBOL: lambda leaf, ctx: StatusSymbolPredicate(
        leaf.value, ctx.statuses, negate=leaf.negate
    ),
    LeafKind.DATE: _date,
    LeafKind.HAS_DATE: lambda leaf, ctx: HasDatePredicate(leaf.value, negate=leaf.negate),
    LeafKind.PRIORITY: lambda leaf, ctx: PriorityPredicate(leaf.operator, leaf.value),
    LeafKind.URGENCY: _urgency,
    LeafKind.ESCALATION: lambda leaf, ctx: EscalationPredicate(
        leaf.operator, leaf.value, ctx.score_provider
    ),
    LeafKind.ATTENTION: lambda leaf, ctx: AttentionScorePredicate(
        leaf.operator, leaf.value, ctx.score_provider
    ),
    LeafKind.ATTENTION_LANE: lambda leaf, ctx: AttentionLanePredicate(
        str(leaf.value), ctx.score_provider
    ),
    LeafKind.TAG: lambda leaf, ctx: TagPredicate(leaf.value, negate=leaf.negate),
    LeafKind.HAS_TAGS: lambda leaf, ctx: HasTagsPredicate(negate=leaf.negate),
    LeafKind.TAG_REGEX: lambda leaf, ctx: TagRegexPredicate(leaf.value),
    LeafKind.PATH: lambda leaf, ctx: TextIncludesPredicate("path", leaf.value, negate=leaf.negate),
    LeafKind.PATH_REGEX: lambda leaf, ctx: TextRegexPredicate("path", leaf.value),
    LeafKind.HEADING: lambda leaf, ctx: TextIncludesPredicate(
        "heading", leaf.value, negate=leaf.negate
    ),
    LeafKind.DESCRIPTION: lambda leaf, ctx: TextIncludesPredicate(
        "description", leaf.value, negate=leaf.negate
    ),
    LeafKind.DESCRIPTION_REGEX: lambda leaf, ctx: TextRegexPredicate("description", leaf.value),
    LeafKind.RECURRENCE: lambda leaf, ctx: RecurrencePredicate(negate=leaf.negate),
    LeafKind.BLOCKED: lambda leaf, ctx: BlockedPredicate(ctx.dependency_graph, negate=leaf.negate),
    LeafKind.BLOCKING: lambda leaf, ctx: BlockingPredicate(
        ctx.dependency_graph, negate=leaf.negate
    ),
    LeafKind.DEPENDS_ON: lambda leaf, ctx: DependsOnPredicate(leaf.value, negate=leaf.negate),
}


def build_predicate(node: FilterNode, ctx: EvaluationContext) -> Predicate:
    """Turn a filter tree into predicates bound to one evaluation context.

    Recursion depth is bounded by the parser's nesting limit.
    """
    if isinstance(node, And):
        return AndPredicate(build_predicate(node.left, ctx), build_predicate(node.right, ctx))
    if isinstance(node, Or):
        return OrPredicate(build_predicate(node.left, ctx), build_predicate(node.right, ctx))
    if isinstance(node, Not):
        return NotPredicate(build_predicate(node.child, ctx))
    if isinstance(node, Leaf):
        builder = _LEAF_BUILDERS.get(node.kind)
        if builder is None:
            raise QueryExecutionError(f"Unsupported filter kind: {node.kind}")
        return builder(node, ctx)
    raise QueryExecutionError(f"Unsupported filter node: {type(node).__name__}")
