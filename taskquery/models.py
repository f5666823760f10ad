"""Data models for tasks evaluated by the query engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .dates import parse_instant

DATE_FIELDS = ("due", "scheduled", "start", "created", "done", "cancelled")

PRIORITY_WEIGHTS: dict[str, int] = {
    "lowest": 0,
    "low": 1,
    "normal": 2,
    "medium": 3,
    "high": 4,
    "highest": 5,
}
PRIORITY_ALIASES = {"urgent": "highest", "none": "normal"}
DEFAULT_PRIORITY = "normal"


class StatusType(StrEnum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELLED = "CANCELLED"
    NON_TASK = "NON_TASK"


@dataclass(frozen=True)
class Status:
    """A checkbox symbol together with its display name and type."""

    symbol: str
    name: str
    type: StatusType

    @property
    def is_completed(self) -> bool:
        return self.type in (StatusType.DONE, StatusType.CANCELLED)


DEFAULT_STATUSES = (
    Status(" ", "Todo", StatusType.TODO),
    Status("x", "Done", StatusType.DONE),
    Status("X", "Done", StatusType.DONE),
    Status("/", "In Progress", StatusType.IN_PROGRESS),
    Status("-", "Cancelled", StatusType.CANCELLED),
)


class StatusRegistry:
    """Maps status symbols to Status records.

    Unknown symbols resolve to a TODO status named after the symbol, so every
    task always has a status type.
    """

    def __init__(self, statuses: tuple[Status, ...] | list[Status] = DEFAULT_STATUSES) -> None:
        self._by_symbol: dict[str, Status] = {}
        for status in statuses:
            self.register(status)

    def register(self, status: Status) -> None:
        self._by_symbol[status.symbol] = status

    def get(self, symbol: str | None) -> Status:
        symbol = symbol if symbol else " "
        known = self._by_symbol.get(symbol)
        if known is not None:
            return known
        return Status(symbol, symbol, StatusType.TODO)

    def find_by_name(self, name: str) -> Status | None:
        lowered = name.lower()
        for status in self._by_symbol.values():
            if status.name.lower() == lowered:
                return status
        return None

    def status_of(self, task: Task) -> Status:
        """Resolve a task's status; an explicit status name wins over its symbol."""
        if task.status:
            known = self.find_by_name(task.status)
            if known is not None:
                return known
            normalized = task.status.strip().upper().replace(" ", "_")
            if normalized in StatusType.__members__:
                return Status(task.status_symbol, task.status, StatusType[normalized])
        return self.get(task.status_symbol)


DEFAULT_REGISTRY = StatusRegistry()


def normalize_priority(raw: str | None) -> str | None:
    """Normalize priority strings to canonical level names, or None if unknown."""
    if not raw:
        return None
    lowered = raw.strip().lower()
    lowered = PRIORITY_ALIASES.get(lowered, lowered)
    return lowered if lowered in PRIORITY_WEIGHTS else None


def priority_weight(raw: str | None) -> int:
    return PRIORITY_WEIGHTS[normalize_priority(raw) or DEFAULT_PRIORITY]


def _unique(values) -> tuple[str, ...]:
    # A lone string is one value, not a sequence of characters
    if isinstance(values, str):
        values = [values]
    elif isinstance(values, (set, frozenset)):
        values = sorted(values)
    return tuple(dict.fromkeys(str(v) for v in values))


@dataclass(frozen=True)
class Task:
    """A single task record. Never mutated by filters, sorters or groupers."""

    id: str
    name: str = ""
    description: str = ""
    heading: str = ""
    path: str = ""
    status_symbol: str = " "
    status: str | None = None
    priority: str | None = None
    tags: tuple[str, ...] = ()
    created_at: datetime | None = None
    start_at: datetime | None = None
    scheduled_at: datetime | None = None
    due_at: datetime | None = None
    done_at: datetime | None = None
    cancelled_at: datetime | None = None
    frequency: str | None = None
    recurrence_text: str = ""
    depends_on: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        # Frozen: normalize through object.__setattr__ so callers may pass
        # lists, sets and ISO strings.
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "tags", _unique(self.tags or ()))
        object.__setattr__(self, "depends_on", _unique(self.depends_on or ()))
        for name in DATE_FIELDS:
            attr = f"{name}_at"
            object.__setattr__(self, attr, parse_instant(getattr(self, attr)))

    def date_for(self, date_field: str) -> datetime | None:
        return getattr(self, f"{date_field}_at")

    @property
    def combined_text(self) -> str:
        """Name and description joined, the text searched by description clauses."""
        return f"{self.name or ''} {self.description or ''}".strip()

    @property
    def is_recurring(self) -> bool:
        return bool(self.frequency) and self.frequency.strip().lower() != "once"


@dataclass
class TaskSet:
    """An ordered snapshot of tasks, e.g. everything loaded from one file."""

    tasks: list[Task] = field(default_factory=list)
    source_path: str = ""
