"""Immutable syntax tree produced by the parser and consumed by the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Union


class LeafKind(StrEnum):
    DONE = "done"
    STATUS_TYPE = "status-type"
    STATUS_NAME = "status-name"
    STATUS_SYMBOL = "status-symbol"
    DATE = "date"
    HAS_DATE = "has-date"
    PRIORITY = "priority"
    URGENCY = "urgency"
    ESCALATION = "escalation"
    ATTENTION = "attention"
    ATTENTION_LANE = "attention-lane"
    TAG = "tag"
    HAS_TAGS = "has-tags"
    TAG_REGEX = "tag-regex"
    PATH = "path"
    PATH_REGEX = "path-regex"
    HEADING = "heading"
    DESCRIPTION = "description"
    DESCRIPTION_REGEX = "description-regex"
    RECURRENCE = "recurrence"
    BLOCKED = "blocked"
    BLOCKING = "blocking"
    DEPENDS_ON = "depends-on"


@dataclass(frozen=True)
class DateOperand:
    """Unresolved date operands; resolved against the reference date at run time."""

    field: str
    start: str
    end: str | None = None


@dataclass(frozen=True)
class Leaf:
    kind: LeafKind
    operator: str = "is"
    value: Any = None
    negate: bool = False
    line: int = field(default=0, compare=False)
    column: int = field(default=0, compare=False)

    def __str__(self) -> str:
        prefix = "not " if self.negate else ""
        return f"{prefix}{self.kind}:{self.operator}"


@dataclass(frozen=True)
class And:
    left: FilterNode
    right: FilterNode


@dataclass(frozen=True)
class Or:
    left: FilterNode
    right: FilterNode


@dataclass(frozen=True)
class Not:
    child: FilterNode


FilterNode = Union[Leaf, And, Or, Not]


class SortDirection(StrEnum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class Sort:
    field: str
    direction: SortDirection = SortDirection.ASC
    then: tuple[SortKey, ...] = ()

    @property
    def keys(self) -> tuple[SortKey, ...]:
        return (SortKey(self.field, self.direction),) + self.then


@dataclass(frozen=True)
class Group:
    field: str


@dataclass(frozen=True)
class Query:
    """A compiled query: one boolean filter tree plus terminal instructions."""

    filter: FilterNode | None = None
    sort: Sort | None = None
    group: Group | None = None
    limit: int | None = None
    explain: bool = False
    ignore_global_filter: bool = False
    source: str = field(default="", compare=False)

    @property
    def leaves(self) -> list[Leaf]:
        return list(iter_leaves(self.filter)) if self.filter is not None else []


def children(node: FilterNode) -> tuple[FilterNode, ...]:
    if isinstance(node, (And, Or)):
        return (node.left, node.right)
    if isinstance(node, Not):
        return (node.child,)
    return ()


def iter_leaves(node: FilterNode):
    """Yield leaves left to right without recursion."""
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Leaf):
            yield current
        else:
            stack.extend(reversed(children(current)))


def tree_depth(node: FilterNode) -> int:
    deepest = 0
    stack = [(node, 1)]
    while stack:
        current, depth = stack.pop()
        deepest = max(deepest, depth)
        for child in children(current):
            stack.append((child, depth + 1))
    return deepest


def conjoin(nodes: list[FilterNode]) -> FilterNode:
    """AND a list of nodes into a balanced tree.

    Keeps the depth logarithmic for long chains; for two or three operands it
    is the same tree as left-associative folding.
    """
    if len(nodes) == 1:
        return nodes[0]
    mid = (len(nodes) + 1) // 2
    return And(conjoin(nodes[:mid]), conjoin(nodes[mid:]))


def disjoin(nodes: list[FilterNode]) -> FilterNode:
    if len(nodes) == 1:
        return nodes[0]
    mid = (len(nodes) + 1) // 2
    return Or(disjoin(nodes[:mid]), disjoin(nodes[mid:]))
