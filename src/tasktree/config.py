"""Configuration defaults, env vars, and runtime options for tasktree."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tasktree import __version__

VERSION = __version__

DEFAULT_MAX_DEPTH = 10_000
DEFAULT_MAX_RESUBSCRIBE = 3
DEFAULT_AT_RISK_MARGIN = 20.0


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Config:
    """Runtime configuration shared by the CLI and the aggregation store."""

    # Calendar
    timezone: str = ""

    # Traversal guard
    max_depth: int = 0

    # Store subscriptions
    max_resubscribe: int = -1

    # Effective project status
    at_risk_margin: float = DEFAULT_AT_RISK_MARGIN

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.timezone:
            self.timezone = os.environ.get("TASKTREE_TIMEZONE") or "UTC"
        if self.max_depth <= 0:
            self.max_depth = _env_int("TASKTREE_MAX_DEPTH", DEFAULT_MAX_DEPTH)
        if self.max_resubscribe < 0:
            self.max_resubscribe = _env_int(
                "TASKTREE_MAX_RESUBSCRIBE", DEFAULT_MAX_RESUBSCRIBE
            )

    def tzinfo(self) -> tzinfo:
        """Resolve the configured zone, falling back to UTC for unknown names."""
        if self.timezone.upper() == "UTC":
            return timezone.utc
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return timezone.utc

    def now(self) -> datetime:
        return datetime.now(self.tzinfo())
