"""Error types raised while compiling or running task queries."""

from __future__ import annotations


class TaskQueryError(Exception):
    """Base class for all query errors."""


class QuerySyntaxError(TaskQueryError):
    """A query could not be compiled.

    Carries the 1-based line and column of the offending text and, where one
    can be derived, a suggested correction.
    """

    def __init__(
        self,
        message: str,
        line: int,
        column: int,
        suggestion: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.suggestion = suggestion

    def __str__(self) -> str:
        text = f"{self.message} (line {self.line}, column {self.column})"
        if self.suggestion:
            text += f". {self.suggestion}"
        return text


class QueryExecutionError(TaskQueryError):
    """Evaluation failed, usually because a collaborator misbehaved."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
