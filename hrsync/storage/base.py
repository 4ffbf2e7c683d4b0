"""Store contracts for hrsync.

Both stores expose the same narrow per-collection contract to the
synchronizers:

- ``list_all(table)``: full snapshot; raises StoreReadError on failure
- ``insert(table, record)``: returns a WriteResult, never raises
- ``update_by_key(table, key, fields)``: returns a WriteResult, never raises

The local store is synchronous. The remote store is asynchronous; every
remote call is a suspension point of the sync cycle.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

# === Collections ===

DEPARTMENTS = "departments"
EMPLOYEES = "employees"
ATTENDANCE = "attendance"
PAYROLL = "payroll"
REGISTRATION = "registration_credentials"

# Dependency order: units before personnel, personnel before the rows that
# reference them, profile last.
SYNC_ORDER = (DEPARTMENTS, EMPLOYEES, ATTENDANCE, PAYROLL, REGISTRATION)

# Postgres "undefined_table", reported by the remote when a table is not provisioned
MISSING_TABLE_CODE = "42P01"


# === Errors ===


class StoreError(Exception):
    """Base class for store failures."""


class StoreReadError(StoreError):
    """Listing a collection failed. Fatal for that collection's pass only."""

    def __init__(self, table: str, cause: Exception, code: Optional[str] = None):
        super().__init__(f"Failed to read {table}: {cause}")
        self.table = table
        self.cause = cause
        self.code = code


@dataclass
class WriteResult:
    """Outcome of a single row write.

    Write failures are carried as values so the synchronizers can log and
    move on to the next row.
    """

    ok: bool
    data: Optional[Dict[str, Any]] = None  # Row as stored, when the store returns it
    error: Optional[str] = None

    @classmethod
    def success(cls, data: Optional[Dict[str, Any]] = None) -> "WriteResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: Any) -> "WriteResult":
        return cls(ok=False, error=str(error)[:500])


# === Protocols ===


@runtime_checkable
class LocalStore(Protocol):
    """Embedded store owning the sequential local identifiers."""

    def list_all(self, table: str) -> List[Dict[str, Any]]: ...

    def list_with_employee_uuid(self, table: str) -> List[Dict[str, Any]]: ...

    def get_by_key(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def get_registration(self) -> Optional[Dict[str, Any]]: ...

    def insert(self, table: str, record: Dict[str, Any]) -> WriteResult: ...

    def update_by_key(
        self, table: str, key: Dict[str, Any], fields: Dict[str, Any]
    ) -> WriteResult: ...


@runtime_checkable
class RemoteStore(Protocol):
    """Authoritative store owning the canonical identifiers."""

    async def has_session(self) -> bool: ...

    async def setup_schema(self) -> None: ...

    async def list_all(self, table: str) -> List[Dict[str, Any]]: ...

    async def list_where(self, table: str, key: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    async def insert(self, table: str, record: Dict[str, Any]) -> WriteResult: ...

    async def update_by_key(
        self, table: str, key: Dict[str, Any], fields: Dict[str, Any]
    ) -> WriteResult: ...
