"""
Shared types for hrsync.

Result dataclasses and timestamp helpers used by the stores and the
synchronizers. Records themselves travel as plain dicts because the local
and remote column sets differ per collection.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

# Missing or unreadable last-modified values compare as this instant.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> datetime:
    """Parse a last-modified value from either store into an aware UTC datetime.

    SQLite's CURRENT_TIMESTAMP yields naive ``YYYY-MM-DD HH:MM:SS`` strings in
    UTC while PostgREST returns ISO 8601 with an offset, so naive values are
    read as UTC. ``None``, empty strings and garbage all map to EPOCH.
    """
    if value is None or value == "":
        return EPOCH
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.isoparse(str(value))
        except (TypeError, ValueError):
            try:
                parsed = date_parser.parse(str(value))
            except (TypeError, ValueError, OverflowError):
                return EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass
class SyncResult:
    """Outcome of one collection's reconciliation pass."""

    collection: str
    pulled: int = 0  # Rows inserted or updated locally
    pushed: int = 0  # Rows inserted or updated remotely
    linked: int = 0  # Identifier assignments (no semantic change)
    skipped: int = 0  # Rows left for a later cycle (unresolved owner, etc.)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return len(self.errors) == 0

    @property
    def writes(self) -> int:
        """Total writes issued against either store."""
        return self.pulled + self.pushed + self.linked


@dataclass
class CycleReport:
    """Summary of a full sync cycle, kept for logging and tests."""

    skipped: bool = False
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    results: Dict[str, SyncResult] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)  # collection -> error

    @property
    def success(self) -> bool:
        return not self.failures and all(r.success for r in self.results.values())

    @property
    def writes(self) -> int:
        return sum(r.writes for r in self.results.values())
