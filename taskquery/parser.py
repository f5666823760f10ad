"""Parser for task query text."""

from __future__ import annotations

import difflib
import logging
import re
from datetime import date
from pathlib import Path

from .dates import DATE_FORMAT_HINT, parse_date_expression
from .errors import QuerySyntaxError
from .groupers import GROUP_FIELDS
from .lexer import Token, TokenType, tokenize_line
from .models import DATE_FIELDS, PRIORITY_ALIASES, PRIORITY_WEIGHTS, StatusType, normalize_priority
from .nodes import (
    DateOperand,
    FilterNode,
    Group,
    Leaf,
    LeafKind,
    Not,
    Query,
    Sort,
    SortDirection,
    SortKey,
    conjoin,
    disjoin,
    tree_depth,
)
from .providers import ESCALATION_LEVELS, AttentionLane
from .regex import RegexSpec, RegexSpecError, compile_spec, parse_regex_literal
from .sorting import DEFAULT_DIRECTIONS, SORT_FIELDS

logger = logging.getLogger(__name__)

MAX_NESTING_DEPTH = 32

# Terminal instructions
RE_SORT = re.compile(r"^sort\s+by\b\s*(.*)$", re.IGNORECASE)
RE_SORT_KEY = re.compile(
    r"^([a-z._]+)(?:\s+(asc|ascending|desc|descending|reverse))?$", re.IGNORECASE
)
RE_GROUP = re.compile(r"^group\s+by\b\s*(.*)$", re.IGNORECASE)
RE_LIMIT = re.compile(r"^limit(?:\s+to)?\s+(\d+)(?:\s+tasks?)?$", re.IGNORECASE)
RE_EXPLAIN = re.compile(r"^explain$", re.IGNORECASE)
RE_IGNORE_GLOBAL = re.compile(r"^@ignoreGlobalFilter$", re.IGNORECASE)
RE_INSTRUCTION_WORD = re.compile(r"^(sort|group|limit)\b", re.IGNORECASE)

# Leaf clauses
RE_STATUS_TYPE = re.compile(r"^status\.type\s+is\s+(not\s+)?(.+)$", re.IGNORECASE)
RE_STATUS_NAME = re.compile(
    r"^status\.name\s+(includes|does not include)\s+(.+)$", re.IGNORECASE
)
RE_STATUS_SYMBOL = re.compile(r"^status\.symbol\s+is\s+(not\s+)?(.+)$", re.IGNORECASE)
RE_STATUS_IS = re.compile(r"^status\s+is\s+(not\s+)?(.+)$", re.IGNORECASE)
RE_HAS_DATE = re.compile(r"^(has|no)\s+(\S+)\s+date$", re.IGNORECASE)
RE_HAS_TAGS = re.compile(r"^(has|no)\s+tags$", re.IGNORECASE)
RE_DATE_BETWEEN = re.compile(r"^(\S+)\s+between\s+(.+?)\s+and\s+(.+)$", re.IGNORECASE)
RE_DATE_COMPARE = re.compile(
    r"^(\S+)\s+(on or before|on or after|on-or-before|on-or-after|before|after|on)\s+(.+)$",
    re.IGNORECASE,
)
RE_SYMBOLIC_COMPARE = re.compile(r"^([a-z]+)\s*(>=|<=|>|<|=)\s*(.+)$", re.IGNORECASE)
RE_NAMED_COMPARE = re.compile(
    r"^([a-z]+)\s+(is|above|below|at\s+least|at\s+most)\s+(.+)$", re.IGNORECASE
)
RE_LANE = re.compile(r"^lane\s+is\s+(.+)$", re.IGNORECASE)
RE_TAG = re.compile(r"^tags?\s+(includes?|does not include|regex)\s+(.+)$", re.IGNORECASE)
RE_PATH = re.compile(r"^path\s+(includes|does not include|regex)\s+(.+)$", re.IGNORECASE)
RE_HEADING = re.compile(r"^heading\s+(includes|does not include)\s+(.+)$", re.IGNORECASE)
RE_DESCRIPTION = re.compile(
    r"^description\s+(includes|does not include|regex)\s+(.+)$", re.IGNORECASE
)
RE_IS_FLAG = re.compile(r"^is\s+(not\s+)?(blocked|blocking|recurring)$", re.IGNORECASE)
RE_DEPENDS_ON = re.compile(r"^depends\s+on\s+(.+)$", re.IGNORECASE)

SYMBOLIC_OPERATORS = {">": "above", "<": "below", ">=": "at-least", "<=": "at-most", "=": "is"}
ORDERED_COMPARATORS = ["is", "above", "below", "at least", "at most"]

# Comparators accepted after each clause head, used for suggestions
CLAUSE_OPERATORS: dict[str, list[str]] = {
    "done": [],
    "status": ["is", "is not"],
    "status.type": ["is", "is not"],
    "status.name": ["includes", "does not include"],
    "status.symbol": ["is", "is not"],
    "priority": ORDERED_COMPARATORS,
    "urgency": ["is", "above", "below"],
    "escalation": ORDERED_COMPARATORS,
    "attention": ORDERED_COMPARATORS,
    "lane": ["is"],
    "tag": ["includes", "does not include", "regex"],
    "tags": ["include", "regex"],
    "path": ["includes", "does not include", "regex"],
    "heading": ["includes", "does not include"],
    "description": ["includes", "does not include", "regex"],
    "is": ["blocked", "blocking", "recurring", "not blocked", "not blocking", "not recurring"],
    "has": [f"{f} date" for f in DATE_FIELDS] + ["tags"],
    "no": [f"{f} date" for f in DATE_FIELDS] + ["tags"],
    "depends": ["on"],
}
DATE_COMPARATORS = ["before", "after", "on", "on or before", "on or after", "between"]
for _field in DATE_FIELDS:
    CLAUSE_OPERATORS.setdefault(_field, DATE_COMPARATORS)


def parse_query(text: str, *, max_depth: int = MAX_NESTING_DEPTH) -> Query:
    """Parse query text into an immutable Query.

    Raises QuerySyntaxError on the first problem; no partial result is returned.
    """
    builder = _QueryBuilder(max_depth=max_depth)
    for line_no, raw in enumerate(text.splitlines(), start=1):
        builder.feed_line(raw, line_no)
    query = builder.build(source=text)
    logger.debug(
        "Parsed query: %d clause(s), sort=%s, group=%s",
        len(query.leaves),
        query.sort.field if query.sort else None,
        query.group.field if query.group else None,
    )
    return query


def parse_query_file(path: str | Path, *, max_depth: int = MAX_NESTING_DEPTH) -> Query:
    """Parse a query stored in a text file."""
    p = Path(path)
    return parse_query(p.read_text(encoding="utf-8"), max_depth=max_depth)


def _unquote(raw: str) -> str:
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "\"'":
        return raw[1:-1]
    return raw


def _suggest(word: str, candidates: list[str]) -> str | None:
    matches = difflib.get_close_matches(word.lower(), candidates, n=1, cutoff=0.6)
    return matches[0] if matches else None


class _QueryBuilder:
    """Accumulates query lines and builds a Query."""

    def __init__(self, max_depth: int) -> None:
        self.max_depth = max_depth
        self.statements: list[FilterNode] = []
        self.sort: Sort | None = None
        self.group: Group | None = None
        self.limit: int | None = None
        self.explain = False
        self.ignore_global_filter = False
        self._pending: list[Token] = []
        self._first_line = 0

    def feed_line(self, raw: str, line_no: int) -> None:
        stripped = raw.strip()
        # Blank lines and comments are skipped
        if not stripped or stripped.startswith("#"):
            return
        column = len(raw) - len(raw.lstrip()) + 1

        if RE_IGNORE_GLOBAL.match(stripped):
            self.ignore_global_filter = True
            return
        if RE_EXPLAIN.match(stripped):
            self.explain = True
            return
        if RE_INSTRUCTION_WORD.match(stripped):
            self._parse_instruction(stripped, line_no, column)
            return

        tokens = tokenize_line(raw, line_no)
        if self._pending and self._continues(tokens):
            self._pending.extend(tokens)
        else:
            self._flush()
            self._pending = tokens
        if not self._first_line:
            self._first_line = line_no

    def _continues(self, tokens: list[Token]) -> bool:
        """Whether a new line belongs to the statement still being collected."""
        last = self._pending[-1]
        if last.type in (TokenType.AND, TokenType.OR, TokenType.NOT, TokenType.LPAREN):
            return True
        if tokens and tokens[0].type in (TokenType.AND, TokenType.OR):
            return True
        opened = sum(1 for t in self._pending if t.type is TokenType.LPAREN)
        closed = sum(1 for t in self._pending if t.type is TokenType.RPAREN)
        return opened > closed

    def _flush(self) -> None:
        if self._pending:
            parser = _ExpressionParser(self._pending, self.max_depth)
            self.statements.append(parser.parse())
            self._pending = []

    def _parse_instruction(self, line: str, line_no: int, column: int) -> None:
        m = RE_SORT.match(line)
        if m:
            if self.sort is not None:
                raise QuerySyntaxError(
                    "Duplicate sort instruction", line_no, column,
                    'Combine sort keys on one line, e.g. "sort by due, priority desc"',
                )
            self.sort = _parse_sort(m.group(1), line_no, column + m.start(1))
            return

        m = RE_GROUP.match(line)
        if m:
            if self.group is not None:
                raise QuerySyntaxError(
                    "Duplicate group instruction", line_no, column,
                    "Only one group by instruction is supported",
                )
            self.group = _parse_group(m.group(1), line_no, column + m.start(1))
            return

        m = RE_LIMIT.match(line)
        if m:
            self.limit = int(m.group(1))
            return

        word = RE_INSTRUCTION_WORD.match(line).group(1).lower()
        if word == "limit":
            raise QuerySyntaxError(
                f'Invalid limit instruction: "{line}"', line_no, column,
                'Use format: "limit 10" or "limit to 10 tasks"',
            )
        raise QuerySyntaxError(
            f'Invalid {word} instruction: "{line}"', line_no, column,
            f'Use format: "{word} by FIELD"',
        )

    def build(self, source: str) -> Query:
        self._flush()
        filter_node: FilterNode | None = None
        if self.statements:
            filter_node = conjoin(self.statements)
            # Measured per statement; the implicit AND between lines does not count
            depth = max(tree_depth(statement) for statement in self.statements)
            if depth > self.max_depth:
                raise QuerySyntaxError(
                    f"Query is nested too deeply ({depth} levels, maximum {self.max_depth})",
                    self._first_line, 1,
                    "Split the query into fewer nested groups",
                )
        return Query(
            filter=filter_node,
            sort=self.sort,
            group=self.group,
            limit=self.limit,
            explain=self.explain,
            ignore_global_filter=self.ignore_global_filter,
            source=source,
        )


def _parse_sort(spec: str, line_no: int, column: int) -> Sort:
    if not spec.strip():
        raise QuerySyntaxError(
            "Missing sort field", line_no, column,
            f"Valid fields: {', '.join(SORT_FIELDS)}",
        )
    keys: list[SortKey] = []
    for part in spec.split(","):
        m = RE_SORT_KEY.match(part.strip())
        if not m:
            raise QuerySyntaxError(
                f'Invalid sort key: "{part.strip()}"', line_no, column,
                'Use format: "sort by FIELD [asc|desc]"',
            )
        field_name = m.group(1).lower()
        if field_name not in SORT_FIELDS:
            close = _suggest(field_name, list(SORT_FIELDS))
            raise QuerySyntaxError(
                f'Unknown sort field: "{field_name}"', line_no, column,
                f'Did you mean "{close}"?' if close else f"Valid fields: {', '.join(SORT_FIELDS)}",
            )
        default = DEFAULT_DIRECTIONS.get(field_name, SortDirection.ASC)
        raw_direction = (m.group(2) or "").lower()
        if raw_direction.startswith("asc"):
            direction = SortDirection.ASC
        elif raw_direction.startswith("desc"):
            direction = SortDirection.DESC
        elif raw_direction == "reverse":
            direction = SortDirection.ASC if default is SortDirection.DESC else SortDirection.DESC
        else:
            direction = default
        keys.append(SortKey(field_name, direction))
    return Sort(field=keys[0].field, direction=keys[0].direction, then=tuple(keys[1:]))


def _parse_group(spec: str, line_no: int, column: int) -> Group:
    field_name = spec.strip().lower()
    if not field_name:
        raise QuerySyntaxError(
            "Missing group field", line_no, column,
            f"Valid fields: {', '.join(GROUP_FIELDS)}",
        )
    if field_name not in GROUP_FIELDS:
        close = _suggest(field_name, list(GROUP_FIELDS))
        raise QuerySyntaxError(
            f'Unknown group field: "{field_name}"', line_no, column,
            f'Did you mean "{close}"?' if close else f"Valid fields: {', '.join(GROUP_FIELDS)}",
        )
    return Group(field=field_name)


class _ExpressionParser:
    """Precedence parser over one statement: NOT binds tighter than AND, AND than OR."""

    def __init__(self, tokens: list[Token], max_depth: int) -> None:
        self.tokens = tokens
        self.max_depth = max_depth
        self.pos = 0

    def parse(self) -> FilterNode:
        node = self._or(0)
        if self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            if tok.type is TokenType.RPAREN:
                raise QuerySyntaxError(
                    "Unbalanced closing parenthesis", tok.line, tok.column,
                    "Remove the extra ')' or add a matching '('",
                )
            raise QuerySyntaxError(
                f'Unexpected "{tok.text}"', tok.line, tok.column,
                "Join clauses with AND or OR",
            )
        return node

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _advance(self) -> Token:
        tok = self._peek()
        if tok is None:
            last = self.tokens[-1]
            raise QuerySyntaxError(
                f'Missing filter clause after "{last.text}"',
                last.line,
                last.column + len(last.text),
                "Add a filter clause or remove the trailing operator",
            )
        self.pos += 1
        return tok

    def _check_depth(self, depth: int, tok: Token) -> None:
        if depth > self.max_depth:
            raise QuerySyntaxError(
                f"Query is nested too deeply (maximum {self.max_depth} levels)",
                tok.line, tok.column,
                "Split the query into fewer nested groups",
            )

    def _or(self, depth: int) -> FilterNode:
        operands = [self._and(depth)]
        while (tok := self._peek()) is not None and tok.type is TokenType.OR:
            self.pos += 1
            operands.append(self._and(depth))
        return disjoin(operands)

    def _and(self, depth: int) -> FilterNode:
        operands = [self._not(depth)]
        while (tok := self._peek()) is not None and tok.type is TokenType.AND:
            self.pos += 1
            operands.append(self._not(depth))
        return conjoin(operands)

    def _not(self, depth: int) -> FilterNode:
        tok = self._peek()
        if tok is not None and tok.type is TokenType.NOT:
            self.pos += 1
            self._check_depth(depth + 1, tok)
            return Not(self._not(depth + 1))
        return self._primary(depth)

    def _primary(self, depth: int) -> FilterNode:
        tok = self._advance()
        if tok.type is TokenType.LPAREN:
            self._check_depth(depth + 1, tok)
            node = self._or(depth + 1)
            closing = self._peek()
            if closing is None or closing.type is not TokenType.RPAREN:
                raise QuerySyntaxError(
                    "Missing closing parenthesis", tok.line, tok.column,
                    "Add ')' to close the group",
                )
            self.pos += 1
            return node
        if tok.type is TokenType.CLAUSE:
            return parse_clause(tok.text, tok.line, tok.column)
        raise QuerySyntaxError(
            f'Expected a filter clause but found "{tok.text}"', tok.line, tok.column,
            "Check for doubled operators or an empty group",
        )


def parse_clause(text: str, line: int = 1, column: int = 1) -> Leaf:
    """Parse one leaf clause such as ``due before 2026-01-01``."""
    return _ClauseParser(text, line, column).parse()


class _ClauseParser:
    def __init__(self, text: str, line: int, column: int) -> None:
        self.text = text.strip()
        self.line = line
        self.column = column
        self.head = self.text.split(None, 1)[0].lower() if self.text else ""

    def error(self, message: str, suggestion: str | None = None, offset: int = 0) -> QuerySyntaxError:
        return QuerySyntaxError(message, self.line, self.column + offset, suggestion)

    def leaf(self, kind: LeafKind, operator: str = "is", value=None, negate: bool = False) -> Leaf:
        return Leaf(kind, operator, value, negate, line=self.line, column=self.column)

    def parse(self) -> Leaf:
        lowered = self.text.lower()
        if self.text == "not done":
            return self.leaf(LeafKind.DONE, value=False)
        if lowered == "done":
            return self.leaf(LeafKind.DONE, value=True)

        handler = {
            "status": self._status,
            "status.type": self._status,
            "status.name": self._status,
            "status.symbol": self._status,
            "has": self._has,
            "no": self._has,
            "priority": self._priority,
            "urgency": self._urgency,
            "escalation": self._escalation,
            "attention": self._attention,
            "lane": self._lane,
            "tag": self._tag,
            "tags": self._tag,
            "path": self._path,
            "heading": self._heading,
            "description": self._description,
            "is": self._is_flag,
            "depends": self._depends_on,
        }.get(self.head)
        if handler is None and self.head in DATE_FIELDS:
            handler = self._date
        if handler is None:
            # "priority>=high" has no space after the head
            m = RE_SYMBOLIC_COMPARE.match(self.text)
            if m and m.group(1).lower() in ("priority", "escalation", "attention"):
                self.head = m.group(1).lower()
                handler = getattr(self, f"_{self.head}")
        if handler is None:
            close = _suggest(self.head, list(CLAUSE_OPERATORS))
            raise self.error(
                f'Unknown filter instruction: "{self.text}"',
                f'Did you mean "{close}"?' if close
                else "Check the query syntax documentation for valid filter instructions",
            )
        return handler()

    # -- failure helpers ---------------------------------------------------

    def _bad_operator(self) -> QuerySyntaxError:
        operators = CLAUSE_OPERATORS.get(self.head, [])
        rest = self.text[len(self.head):].strip()
        offset = self.text.lower().find(rest.lower()) if rest else len(self.text)
        if not rest or rest.lower() in operators:
            what = f"{self.head} {rest}".strip()
            if operators and not rest:
                return self.error(
                    f'Missing comparator after "{self.head}"',
                    f"Expected one of: {', '.join(operators)}",
                    offset,
                )
            return self.error(
                f'Missing value after "{what}"', "Add a value to compare against", offset
            )
        words = rest.split()
        best = None
        for n in range(min(3, len(words)), 0, -1):
            best = _suggest(" ".join(words[:n]), operators)
            if best:
                break
        suggestion = (
            f'Did you mean "{self.head} {best}"?' if best
            else f"Expected one of: {', '.join(operators)}"
        )
        return self.error(
            f'Unknown comparator "{words[0]}" for "{self.head}"', suggestion, offset
        )

    def _number(self, raw: str, what: str) -> float:
        try:
            return float(_unquote(raw))
        except ValueError:
            raise self.error(
                f'Invalid {what} value: "{raw}"',
                f'Use a numeric {what} value (e.g., "{what} above 75")',
            ) from None

    def _day(self, raw: str) -> str:
        value = _unquote(raw)
        if parse_date_expression(value, date.today()) is None:
            raise self.error(f'Invalid date value: "{raw.strip()}"', DATE_FORMAT_HINT)
        return value

    def _regex(self, raw: str) -> re.Pattern[str]:
        raw = raw.strip()
        spec = parse_regex_literal(raw)
        if spec is None:
            if raw.startswith("/"):
                raise self.error(
                    f'Missing closing "/" in regex: {raw}',
                    "Write the pattern as /pattern/flags",
                )
            spec = RegexSpec(_unquote(raw))
        try:
            return compile_spec(spec)
        except RegexSpecError as e:
            raise self.error(
                f"Invalid regex pattern: {e}", "Check your regex syntax (flags: i, m, s, u)"
            ) from None

    def _ordered(self) -> tuple[str, str]:
        """Split ``<head> <comparator> <value>`` in named or symbolic form."""
        m = RE_SYMBOLIC_COMPARE.match(self.text)
        if m and m.group(1).lower() == self.head:
            return SYMBOLIC_OPERATORS[m.group(2)], m.group(3).strip()
        m = RE_NAMED_COMPARE.match(self.text)
        if m and m.group(1).lower() == self.head:
            operator = re.sub(r"\s+", "-", m.group(2).lower())
            return operator, m.group(3).strip()
        raise self._bad_operator()

    # -- clause handlers -----------------------------------------------------

    def _status(self) -> Leaf:
        m = RE_STATUS_TYPE.match(self.text)
        if m:
            return self.leaf(
                LeafKind.STATUS_TYPE, value=self._status_type(m.group(2), strict=True),
                negate=bool(m.group(1)),
            )
        m = RE_STATUS_NAME.match(self.text)
        if m:
            return self.leaf(
                LeafKind.STATUS_NAME, "includes", _unquote(m.group(2)),
                negate=m.group(1).lower() != "includes",
            )
        m = RE_STATUS_SYMBOL.match(self.text)
        if m:
            return self.leaf(
                LeafKind.STATUS_SYMBOL, value=self._symbol(m.group(2)),
                negate=bool(m.group(1)),
            )
        m = RE_STATUS_IS.match(self.text)
        if m:
            negate = bool(m.group(1))
            raw = m.group(2)
            status_type = self._status_type(raw, strict=False)
            if status_type is not None:
                return self.leaf(LeafKind.STATUS_TYPE, value=status_type, negate=negate)
            value = _unquote(raw)
            if len(value) == 1:
                return self.leaf(LeafKind.STATUS_SYMBOL, value=self._symbol(raw), negate=negate)
            return self.leaf(LeafKind.STATUS_NAME, "is", value, negate=negate)
        raise self._bad_operator()

    def _symbol(self, raw: str) -> str:
        stripped = raw.strip()
        if len(stripped) == 3 and stripped[0] == stripped[-1] and stripped[0] in "\"'":
            return stripped[1]
        value = _unquote(stripped)
        if len(value) != 1:
            raise self.error(
                f'Invalid status symbol: "{stripped}"',
                'A status symbol is a single character, e.g. status.symbol is "/"',
            )
        return value

    def _status_type(self, raw: str, strict: bool) -> StatusType | None:
        normalized = re.sub(r"[\s-]+", "_", _unquote(raw).strip().upper())
        try:
            return StatusType(normalized)
        except ValueError:
            if not strict:
                return None
        close = _suggest(normalized.lower(), [t.value.lower() for t in StatusType])
        raise self.error(
            f'Invalid status type: "{raw.strip()}"',
            f'Did you mean "{close.upper()}"?' if close
            else f"Valid types: {', '.join(t.value for t in StatusType)}",
        )

    def _has(self) -> Leaf:
        m = RE_HAS_TAGS.match(self.text)
        if m:
            return self.leaf(LeafKind.HAS_TAGS, "has", negate=m.group(1).lower() == "no")
        m = RE_HAS_DATE.match(self.text)
        if m:
            field_name = m.group(2).lower()
            if field_name not in DATE_FIELDS:
                close = _suggest(field_name, list(DATE_FIELDS))
                raise self.error(
                    f'Unknown date field: "{m.group(2)}"',
                    f'Did you mean "{m.group(1).lower()} {close} date"?' if close
                    else f"Valid date fields: {', '.join(DATE_FIELDS)}",
                    offset=m.start(2),
                )
            return self.leaf(
                LeafKind.HAS_DATE, "has", field_name, negate=m.group(1).lower() == "no"
            )
        raise self._bad_operator()

    def _date(self) -> Leaf:
        m = RE_DATE_BETWEEN.match(self.text)
        if m:
            start = self._day(m.group(2))
            end = self._day(m.group(3))
            return self.leaf(LeafKind.DATE, "between", DateOperand(self.head, start, end))
        m = RE_DATE_COMPARE.match(self.text)
        if m:
            comparator = m.group(2).lower().replace("-", " ")
            return self.leaf(
                LeafKind.DATE, comparator, DateOperand(self.head, self._day(m.group(3)))
            )
        if re.match(r"^\S+\s+between\b", self.text, re.IGNORECASE):
            raise self.error(
                f'Incomplete between clause: "{self.text}"',
                f'Use format: "{self.head} between DATE and DATE"',
            )
        raise self._bad_operator()

    def _priority(self) -> Leaf:
        operator, raw = self._ordered()
        level = normalize_priority(_unquote(raw))
        if level is None:
            names = list(PRIORITY_WEIGHTS) + list(PRIORITY_ALIASES)
            close = _suggest(_unquote(raw), names)
            raise self.error(
                f'Invalid priority level: "{raw}"',
                f'Did you mean "{close}"?' if close else f"Valid levels: {', '.join(names)}",
            )
        return self.leaf(LeafKind.PRIORITY, operator, level)

    def _urgency(self) -> Leaf:
        operator, raw = self._ordered()
        if operator not in ("is", "above", "below"):
            raise self.error(
                f'Unsupported urgency comparator: "{operator}"',
                "Use urgency is, above or below",
            )
        return self.leaf(LeafKind.URGENCY, operator, self._number(raw, "urgency"))

    def _escalation(self) -> Leaf:
        operator, raw = self._ordered()
        normalized = re.sub(r"\s+", "-", _unquote(raw).strip().lower())
        if normalized.isdigit() and int(normalized) in range(4):
            level = int(normalized)
        elif normalized in ESCALATION_LEVELS:
            level = ESCALATION_LEVELS[normalized]
        else:
            close = _suggest(normalized, ["on-time", "warning", "critical", "severe"])
            raise self.error(
                f'Invalid escalation level: "{raw}"',
                f'Did you mean "{close}"?' if close
                else "Valid levels: on-time, warning, critical, severe",
            )
        return self.leaf(LeafKind.ESCALATION, operator, level)

    def _attention(self) -> Leaf:
        operator, raw = self._ordered()
        return self.leaf(LeafKind.ATTENTION, operator, self._number(raw, "attention"))

    def _lane(self) -> Leaf:
        m = RE_LANE.match(self.text)
        if not m:
            raise self._bad_operator()
        lane = re.sub(r"[\s-]+", "_", _unquote(m.group(1)).strip().upper())
        valid = [lane_value.value for lane_value in AttentionLane]
        if lane not in valid:
            close = _suggest(lane.lower(), [v.lower() for v in valid])
            raise self.error(
                f'Invalid lane value: "{m.group(1).strip()}"',
                f'Did you mean "{close.upper()}"?' if close else f"Valid lanes: {', '.join(valid)}",
            )
        return self.leaf(LeafKind.ATTENTION_LANE, "is", AttentionLane(lane))

    def _tag(self) -> Leaf:
        m = RE_TAG.match(self.text)
        if not m:
            raise self._bad_operator()
        operator = m.group(1).lower()
        if operator == "regex":
            return self.leaf(LeafKind.TAG_REGEX, "regex", self._regex(m.group(2)))
        return self.leaf(
            LeafKind.TAG, "includes", _unquote(m.group(2)).lstrip("#"),
            negate=operator == "does not include",
        )

    def _path(self) -> Leaf:
        m = RE_PATH.match(self.text)
        if not m:
            raise self._bad_operator()
        operator = m.group(1).lower()
        if operator == "regex":
            return self.leaf(LeafKind.PATH_REGEX, "regex", self._regex(m.group(2)))
        return self.leaf(
            LeafKind.PATH, "includes", _unquote(m.group(2)),
            negate=operator == "does not include",
        )

    def _heading(self) -> Leaf:
        m = RE_HEADING.match(self.text)
        if not m:
            raise self._bad_operator()
        return self.leaf(
            LeafKind.HEADING, "includes", _unquote(m.group(2)),
            negate=m.group(1).lower() == "does not include",
        )

    def _description(self) -> Leaf:
        m = RE_DESCRIPTION.match(self.text)
        if not m:
            raise self._bad_operator()
        operator = m.group(1).lower()
        if operator == "regex":
            return self.leaf(LeafKind.DESCRIPTION_REGEX, "regex", self._regex(m.group(2)))
        return self.leaf(
            LeafKind.DESCRIPTION, "includes", _unquote(m.group(2)),
            negate=operator == "does not include",
        )

    def _is_flag(self) -> Leaf:
        m = RE_IS_FLAG.match(self.text)
        if not m:
            raise self._bad_operator()
        kind = {
            "blocked": LeafKind.BLOCKED,
            "blocking": LeafKind.BLOCKING,
            "recurring": LeafKind.RECURRENCE,
        }[m.group(2).lower()]
        return self.leaf(kind, "is", True, negate=bool(m.group(1)))

    def _depends_on(self) -> Leaf:
        m = RE_DEPENDS_ON.match(self.text)
        if not m:
            raise self._bad_operator()
        return self.leaf(LeafKind.DEPENDS_ON, "includes", _unquote(m.group(1)))
