"""
Pytest fixtures and test configuration for hrsync tests.
"""

import copy
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from hrsync.storage import (
    ATTENDANCE,
    DEPARTMENTS,
    EMPLOYEES,
    PAYROLL,
    REGISTRATION,
    SQLiteStore,
    StoreReadError,
    WriteResult,
)
from hrsync.sync import SyncOrchestrator

# Timestamps in increasing order
T0 = "2024-01-01T08:00:00+00:00"
T1 = "2024-01-05T08:00:00+00:00"
T2 = "2024-01-10T08:00:00+00:00"
T3 = "2024-01-15T08:00:00+00:00"

# Natural keys the fake remote enforces, mirroring the remote unique constraints
REMOTE_UNIQUE_KEYS = {
    DEPARTMENTS: ("name",),
    EMPLOYEES: ("id",),
    ATTENDANCE: ("employee_id", "date"),
    PAYROLL: ("employee_id", "period_start", "period_end"),
    REGISTRATION: ("admin_email",),
}

# Last-modified column the remote fills in when an insert leaves it out
REMOTE_TIMESTAMP_FIELDS = {
    DEPARTMENTS: "updated_at",
    EMPLOYEES: "updated_at",
    ATTENDANCE: "updated_at",
    PAYROLL: "updated_at",
    REGISTRATION: "last_updated",
}


class FakeRemoteStore:
    """In-memory remote store honouring the RemoteStore contract.

    Records every successful write in ``writes`` so tests can count them.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {t: [] for t in REMOTE_UNIQUE_KEYS}
        self.session = True
        self.schema_calls = 0
        self.schema_error: Optional[Exception] = None
        self.failing_reads: set = set()
        self.failing_writes: set = set()
        self.missing_tables: set = set()
        self.writes: List[tuple] = []
        # Server-side default for a missing last-modified value, None to store it absent
        self.default_timestamp: Optional[str] = None
        self._next_department_id = 100

    def seed(self, table: str, **row) -> Dict[str, Any]:
        """Put a row in place without counting it as a sync write."""
        if table == DEPARTMENTS and "id" not in row:
            row["id"] = self._assign_department_id()
        self.tables[table].append(row)
        return row

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables[table]

    def find(self, table: str, **key) -> Optional[Dict[str, Any]]:
        for row in self.tables[table]:
            if all(row.get(c) == v for c, v in key.items()):
                return row
        return None

    def _assign_department_id(self) -> int:
        self._next_department_id += 1
        return self._next_department_id

    def _check_read(self, table: str) -> None:
        if table in self.missing_tables:
            raise StoreReadError(table, RuntimeError("relation does not exist"), code="42P01")
        if table in self.failing_reads:
            raise StoreReadError(table, RuntimeError("remote unavailable"))

    async def has_session(self) -> bool:
        return self.session

    async def setup_schema(self) -> None:
        self.schema_calls += 1
        if self.schema_error:
            raise self.schema_error

    async def list_all(self, table: str) -> List[Dict[str, Any]]:
        self._check_read(table)
        return copy.deepcopy(self.tables[table])

    async def list_where(self, table: str, key: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._check_read(table)
        return [
            copy.deepcopy(row)
            for row in self.tables[table]
            if all(row.get(c) == v for c, v in key.items())
        ]

    async def insert(self, table: str, record: Dict[str, Any]) -> WriteResult:
        if table in self.failing_writes:
            return WriteResult.failure("insert rejected")
        unique = REMOTE_UNIQUE_KEYS[table]
        if any(all(row.get(c) == record.get(c) for c in unique) for row in self.tables[table]):
            return WriteResult.failure("duplicate key value violates unique constraint")
        row = dict(record)
        if table == DEPARTMENTS and "id" not in row:
            row["id"] = self._assign_department_id()
        stamp_field = REMOTE_TIMESTAMP_FIELDS[table]
        if self.default_timestamp and row.get(stamp_field) is None:
            row[stamp_field] = self.default_timestamp
        self.tables[table].append(row)
        self.writes.append(("insert", table, dict(row)))
        return WriteResult.success(dict(row))

    async def update_by_key(
        self, table: str, key: Dict[str, Any], fields: Dict[str, Any]
    ) -> WriteResult:
        if table in self.failing_writes:
            return WriteResult.failure("update rejected")
        matches = [r for r in self.tables[table] if all(r.get(c) == v for c, v in key.items())]
        if not matches:
            return WriteResult.failure(f"No {table} row matches {key}")
        for row in matches:
            row.update(fields)
        self.writes.append(("update", table, dict(key), dict(fields)))
        return WriteResult.success(dict(matches[0]))


# === Fake Supabase client (for SupabaseStore) ===


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeQuery:
    """Chainable stand-in for a PostgREST request builder."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._op = "select"
        self._payload = None
        self._filters: List[tuple] = []
        self._range: Optional[tuple] = None

    def select(self, columns="*"):
        self._op = "select"
        return self

    def insert(self, payload):
        self._op = "insert"
        self._payload = payload
        return self

    def update(self, payload):
        self._op = "update"
        self._payload = payload
        return self

    def eq(self, column, value):
        self._filters.append((column, value))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    async def execute(self):
        self._client.calls.append((self._table, self._op, list(self._filters), self._range))
        if self._client.error is not None:
            raise self._client.error

        rows = self._client.tables.setdefault(self._table, [])
        matches = [r for r in rows if all(r.get(c) == v for c, v in self._filters)]

        if self._op == "insert":
            row = dict(self._payload)
            row.setdefault("id", len(rows) + 1)
            rows.append(row)
            return FakeResponse([dict(row)])
        if self._op == "update":
            for row in matches:
                row.update(self._payload)
            return FakeResponse([dict(r) for r in matches])
        if self._range is not None:
            start, end = self._range
            matches = matches[start : end + 1]
        return FakeResponse([dict(r) for r in matches])


class FakeRpc:
    def __init__(self, client: "FakeSupabaseClient", fn: str):
        self._client = client
        self._fn = fn

    async def execute(self):
        self._client.rpc_calls.append(self._fn)
        if self._client.error is not None:
            raise self._client.error
        return FakeResponse(None)


class FakeAuth:
    def __init__(self):
        self.session = None
        self.sign_in_error: Optional[Exception] = None

    async def get_session(self):
        return self.session

    async def sign_in_with_password(self, credentials):
        if self.sign_in_error is not None:
            raise self.sign_in_error
        self.session = {"user": credentials["email"]}
        return self.session


class FakeSupabaseClient:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.rpc_calls: List[str] = []
        self.error: Optional[Exception] = None
        self.auth = FakeAuth()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, fn: str) -> FakeRpc:
        return FakeRpc(self, fn)


def make_api_error(message: str = "boom", code: Optional[str] = None) -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


# === Fixtures ===


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database path."""
    return tmp_path / "hrsync.db"


@pytest.fixture
def local(temp_db):
    """A fresh local store."""
    store = SQLiteStore(temp_db)
    yield store
    store.close()


@pytest.fixture
def remote():
    """An empty in-memory remote store with an active session."""
    return FakeRemoteStore()


@pytest.fixture
def orchestrator(local, remote):
    return SyncOrchestrator(local, remote)


@pytest.fixture
def supabase_client():
    return FakeSupabaseClient()


# === Seeding helpers ===


def add_department(local: SQLiteStore, name="Engineering", budget=500000, **extra) -> dict:
    record = {"name": name, "budget": budget, "created_at": T0, "updated_at": T0}
    record.update(extra)
    result = local.insert(DEPARTMENTS, record)
    assert result.ok, result.error
    return result.data


def add_employee(local: SQLiteStore, email="ana@example.com", **extra) -> dict:
    record = {
        "company_id": "EMP-001",
        "first_name": "Ana",
        "last_name": "Reyes",
        "email": email,
        "phone": "555-0100",
        "position": "Engineer",
        "salary": 40000,
        "hire_date": "2023-06-01",
        "status": "Active",
        "created_at": T0,
        "updated_at": T0,
    }
    record.update(extra)
    result = local.insert(EMPLOYEES, record)
    assert result.ok, result.error
    return result.data


def add_registration(local: SQLiteStore, **extra) -> dict:
    record = {
        "company_name": "Acme",
        "company_email": "hr@acme.test",
        "admin_name": "Root Admin",
        "admin_email": "admin@acme.test",
        "admin_password_hash": "hash",
        "super_admin_password_hash": "super-hash",
        "theme_preference": "light",
        "language": "en",
        "is_registered": 1,
        "last_updated": T0,
    }
    record.update(extra)
    result = local.insert(REGISTRATION, record)
    assert result.ok, result.error
    return result.data


def snapshot(local: SQLiteStore) -> Dict[str, List[Dict[str, Any]]]:
    """Every local row, for before/after comparisons."""
    return {
        table: local.list_all(table)
        for table in (DEPARTMENTS, EMPLOYEES, ATTENDANCE, PAYROLL, REGISTRATION)
    }
