"""Dominance rules: which side wins for a row present in both stores.

Each collection gets a small strategy with two predicates. ``local`` or
``remote`` is None when that side has no row for the natural key.
Equal timestamps are a no-op in both directions.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from hrsync.types import parse_timestamp

Row = Optional[Dict[str, Any]]


class DominancePolicy(ABC):
    """Per-collection pull/push predicates."""

    @abstractmethod
    def is_pull_worthy(self, local: Row, remote: Row) -> bool:
        """Should the remote row be written into the local store?"""

    @abstractmethod
    def is_push_worthy(self, local: Row, remote: Row) -> bool:
        """Should the local row be written into the remote store?"""


class TimestampPolicy(DominancePolicy):
    """Strictly newer last-modified time wins; a missing one is the epoch."""

    def __init__(self, field: str = "updated_at"):
        self.field = field

    def _newer(self, a: Dict[str, Any], b: Dict[str, Any]) -> bool:
        return parse_timestamp(a.get(self.field)) > parse_timestamp(b.get(self.field))

    def is_pull_worthy(self, local: Row, remote: Row) -> bool:
        if remote is None:
            return False
        return local is None or self._newer(remote, local)

    def is_push_worthy(self, local: Row, remote: Row) -> bool:
        if local is None:
            return False
        return remote is None or self._newer(local, remote)


class AttendancePolicy(TimestampPolicy):
    """Kiosk check-outs land locally first, so completeness decides the push.

    A local entry is pushed when the remote has none, or when the local entry
    carries a check-out the remote lacks. Timestamps are not consulted.
    """

    def is_push_worthy(self, local: Row, remote: Row) -> bool:
        if local is None:
            return False
        if remote is None:
            return True
        return bool(local.get("check_out")) and not remote.get("check_out")


class PayrollPolicy(TimestampPolicy):
    """Payroll rows are pushed when missing remotely or when their status moved.

    Amount-only edits with an unchanged status do not reach the remote.
    """

    def is_push_worthy(self, local: Row, remote: Row) -> bool:
        if local is None:
            return False
        if remote is None:
            return True
        return local.get("status") != remote.get("status")
