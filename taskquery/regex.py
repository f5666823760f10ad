"""Regex literal parsing and validation for ``... regex /pattern/flags`` clauses."""

from __future__ import annotations

import re
from dataclasses import dataclass

MAX_PATTERN_LENGTH = 500

# JavaScript-style flags accepted in queries and their Python equivalents
ALLOWED_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": 0,  # str patterns are always unicode-aware
}
REJECTED_FLAGS = {"g", "y", "d"}


class RegexSpecError(ValueError):
    """A regex pattern or its flags are not acceptable."""


@dataclass(frozen=True)
class RegexSpec:
    pattern: str
    flags: str = ""

    def __str__(self) -> str:
        return f"/{self.pattern}/{self.flags}"


def parse_regex_literal(text: str) -> RegexSpec | None:
    """Split ``/pattern/flags`` into a RegexSpec.

    Returns None when the text is not a regex literal. Escaped slashes inside
    the pattern are unescaped.
    """
    if not text.startswith("/") or len(text) < 2:
        return None

    end = -1
    for i in range(len(text) - 1, 0, -1):
        if text[i] != "/":
            continue
        backslashes = 0
        j = i - 1
        while j >= 0 and text[j] == "\\":
            backslashes += 1
            j -= 1
        if backslashes % 2 == 0:
            end = i
            break

    if end <= 0:
        return None

    pattern = text[1:end].replace("\\/", "/")
    return RegexSpec(pattern=pattern, flags=text[end + 1:])


def validate_flags(flags: str) -> None:
    for flag in flags:
        if flag in REJECTED_FLAGS:
            raise RegexSpecError(f'Unsupported flag: "{flag}" (use i, m, s, u only)')
        if flag not in ALLOWED_FLAGS:
            raise RegexSpecError(f'Unknown flag: "{flag}" (use i, m, s, u only)')
    if len(set(flags)) != len(flags):
        raise RegexSpecError("Duplicate flags found")


def compile_spec(spec: RegexSpec) -> re.Pattern[str]:
    """Validate and compile a RegexSpec, raising RegexSpecError on any problem."""
    if not spec.pattern:
        raise RegexSpecError("Regex pattern cannot be empty")
    if len(spec.pattern) > MAX_PATTERN_LENGTH:
        raise RegexSpecError(
            f"Regex pattern is too long (max {MAX_PATTERN_LENGTH} characters)"
        )
    validate_flags(spec.flags)

    flags = 0
    for flag in spec.flags:
        flags |= ALLOWED_FLAGS[flag]
    try:
        return re.compile(spec.pattern, flags)
    except re.error as e:
        raise RegexSpecError(f"Invalid regex syntax: {e}") from e
