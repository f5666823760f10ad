"""Tokenizer for the boolean structure of one query line.

Clause text (``due before tomorrow``) is kept as a single CLAUSE token; only
the connectives and parentheses around it are split out.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from .errors import QuerySyntaxError


class TokenType(StrEnum):
    CLAUSE = "clause"
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    LPAREN = "("
    RPAREN = ")"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    line: int
    column: int


RE_NOT_WORD = re.compile(r"not(?:\s+|(?=\())", re.IGNORECASE)
# Lowercase "not done" is its own clause rather than NOT applied to "done"
RE_NOT_DONE = re.compile(r"not done(?=\s*$|\s*\)|\s*&&|\s*\|\||\s+(?i:and|or|except)\b)")
RE_PREFIX_NEGATION = re.compile(r"[!-](?=\w)")
RE_CONNECTIVE = re.compile(r"(and|or|except)(?=\s|\(|$)", re.IGNORECASE)
RE_BETWEEN_OPEN = re.compile(r"\bbetween\s+\S", re.IGNORECASE)
RE_BETWEEN_CLOSED = re.compile(r"\bbetween\s+\S.*?\s+and\s+\S", re.IGNORECASE)
RE_REGEX_KEYWORD = re.compile(r"\bregex\s*$", re.IGNORECASE)


def tokenize_line(text: str, line: int) -> list[Token]:
    """Split one physical line into tokens with 1-based columns."""
    tokens: list[Token] = []
    expecting_operand = True
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        col = i + 1
        if ch == "(":
            tokens.append(Token(TokenType.LPAREN, ch, line, col))
            expecting_operand = True
            i += 1
            continue
        if ch == ")":
            tokens.append(Token(TokenType.RPAREN, ch, line, col))
            expecting_operand = False
            i += 1
            continue
        if text.startswith("&&", i):
            tokens.append(Token(TokenType.AND, "&&", line, col))
            expecting_operand = True
            i += 2
            continue
        if text.startswith("||", i):
            tokens.append(Token(TokenType.OR, "||", line, col))
            expecting_operand = True
            i += 2
            continue

        # Connectives are also recognized at the start of a line, where they
        # join the line to the previous one.
        m = RE_CONNECTIVE.match(text, i)
        if m:
            word = m.group(1)
            if word.lower() == "or":
                tokens.append(Token(TokenType.OR, word, line, col))
            else:
                tokens.append(Token(TokenType.AND, word, line, col))
                if word.lower() == "except":
                    tokens.append(Token(TokenType.NOT, word, line, col))
            expecting_operand = True
            i = m.end()
            continue

        if expecting_operand:
            if RE_NOT_DONE.match(text, i):
                tokens.append(Token(TokenType.CLAUSE, "not done", line, col))
                expecting_operand = False
                i += len("not done")
                continue
            m = RE_NOT_WORD.match(text, i)
            if m:
                tokens.append(Token(TokenType.NOT, text[i:i + 3], line, col))
                i = m.end()
                continue
            if RE_PREFIX_NEGATION.match(text, i):
                tokens.append(Token(TokenType.NOT, ch, line, col))
                i += 1
                continue

        end = _scan_clause(text, i, line)
        clause = text[i:end].rstrip()
        tokens.append(Token(TokenType.CLAUSE, clause, line, col))
        expecting_operand = False
        i = end

    return tokens


def _scan_clause(text: str, start: int, line: int) -> int:
    """Return the index where the clause starting at ``start`` ends.

    Raises QuerySyntaxError for a quote or parenthesis the clause leaves open.
    """
    i = start
    n = len(text)
    end = n
    opened: list[int] = []
    quote: str | None = None
    quote_at = start
    in_regex = False

    while i < n:
        ch = text[i]

        if quote:
            if ch == quote:
                quote = None
            i += 1
            continue
        if in_regex:
            if ch == "\\":
                i += 2
                continue
            if ch == "/":
                in_regex = False
            i += 1
            continue

        prev_is_space = i == start or text[i - 1].isspace()
        if ch in "\"'" and prev_is_space:
            quote = ch
            quote_at = i
            i += 1
            continue
        if ch == "/" and prev_is_space and RE_REGEX_KEYWORD.search(text, start, i):
            in_regex = True
            i += 1
            continue
        if ch == "(":
            opened.append(i)
        elif ch == ")":
            if not opened:
                end = i
                break
            opened.pop()
        elif text.startswith("&&", i) or text.startswith("||", i):
            end = i
            break
        elif ch.isspace() and not opened:
            j = i
            while j < n and text[j].isspace():
                j += 1
            m = RE_CONNECTIVE.match(text, j)
            if m and not _and_belongs_to_between(text[start:i], m.group(1)):
                end = i
                break
            i = j
            continue
        i += 1

    if quote:
        raise QuerySyntaxError(
            "Unterminated quote", line, quote_at + 1, f"Add a closing {quote} to the value"
        )
    if opened:
        raise QuerySyntaxError(
            "Unbalanced parenthesis in clause", line, opened[-1] + 1,
            "Close the parenthesis or quote the value",
        )
    return end


def _and_belongs_to_between(clause_so_far: str, word: str) -> bool:
    if word.lower() != "and":
        return False
    return bool(RE_BETWEEN_OPEN.search(clause_so_far)) and not RE_BETWEEN_CLOSED.search(
        clause_so_far
    )
