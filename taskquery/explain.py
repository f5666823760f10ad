"""Human-readable description of a compiled query, independent of any task."""

from __future__ import annotations

from .nodes import Query, SortDirection
from .predicates import AndPredicate, Predicate


def _conjuncts(root: Predicate) -> list[Predicate]:
    """Flatten top-level ANDs so each statement gets its own line."""
    parts: list[Predicate] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, AndPredicate):
            stack.append(node.right)
            stack.append(node.left)
        else:
            parts.append(node)
    return parts


def explain_query(
    query: Query,
    root: Predicate | None = None,
    global_filter_applied: bool = False,
) -> str:
    """Describe filters, sort, group and limit of ``query``.

    ``root`` is the built predicate tree, which carries resolved dates; when
    it is None the query has no filter.
    """
    lines: list[str] = []
    if root is None:
        lines.append("Filters: none (showing all tasks)")
    else:
        lines.append("Filters:")
        lines.extend(f"- {part.explain()}" for part in _conjuncts(root))
    if global_filter_applied:
        lines.append("Global filter: applied")
    elif query.ignore_global_filter:
        lines.append("Global filter: ignored")

    if query.sort is not None:
        keys = ", then ".join(
            f"{key.field} ({'descending' if key.direction is SortDirection.DESC else 'ascending'})"
            for key in query.sort.keys
        )
        lines.append(f"Sort: by {keys}")
    if query.group is not None:
        lines.append(f"Group: by {query.group.field}")
    if query.limit is not None:
        lines.append(f"Limit: first {query.limit} tasks")
    return "\n".join(lines)
