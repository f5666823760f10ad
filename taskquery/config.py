"""Engine settings, optionally read from TASKQUERY_* environment variables."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

ENV_PREFIX = "TASKQUERY"

DEFAULT_CACHE_SIZE = 128
DEFAULT_MAX_DEPTH = 32


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _env_int(env: Mapping[str, str], name: str, default: int | None) -> int | None:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return default


@dataclass(frozen=True)
class EngineSettings:
    """Limits and defaults for a QueryEngine.

    ``max_items`` and ``deadline_ms`` cap how many tasks are evaluated and how
    long matching and explaining may run; None means unlimited.
    """

    cache_size: int = DEFAULT_CACHE_SIZE
    max_depth: int = DEFAULT_MAX_DEPTH
    max_items: int | None = None
    deadline_ms: int | None = None
    max_explanations: int | None = None
    global_filter: str | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> EngineSettings:
        env = os.environ if env is None else env
        global_filter = env.get(_k("GLOBAL_FILTER"))
        return cls(
            cache_size=_env_int(env, _k("CACHE_SIZE"), DEFAULT_CACHE_SIZE),
            max_depth=_env_int(env, _k("MAX_DEPTH"), DEFAULT_MAX_DEPTH),
            max_items=_env_int(env, _k("MAX_ITEMS"), None),
            deadline_ms=_env_int(env, _k("DEADLINE_MS"), None),
            max_explanations=_env_int(env, _k("MAX_EXPLANATIONS"), None),
            global_filter=global_filter if global_filter and global_filter.strip() else None,
        )
