"""SQLite-based local store for hrsync.

The embedded store behind the desktop admin tool. It owns the sequential
local identifiers; the sync engine reads and writes it through the narrow
contract in ``base`` and never changes a row's ``id``.
"""

import contextlib
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional

from .base import EMPLOYEES, REGISTRATION, StoreReadError, WriteResult
from .schema import init_db, validate_table_name

logger = logging.getLogger(__name__)


class SQLiteStore:
    """Local store with per-operation connections.

    Every write commits on its own; there is no transaction spanning a sync
    cycle, so an interrupted cycle leaves each row self-consistent.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._columns: Dict[str, frozenset] = {}
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextlib.contextmanager
    def _connect(self):
        """Context manager that handles transactions AND closes connection.

        - Transaction commit on success
        - Transaction rollback on exception
        - Connection close in all cases
        """
        conn = self._get_conn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            logger.debug(f"Transaction failed, rolling back: {e}")
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        with self._connect() as conn:
            init_db(conn)

    def close(self):
        """Connections are per-operation; nothing is held open."""
        pass

    # === Helpers ===

    def _table_columns(self, table: str) -> frozenset:
        validate_table_name(table)
        if table not in self._columns:
            with self._connect() as conn:
                cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
            self._columns[table] = frozenset(c[1] for c in cols)
        return self._columns[table]

    def _check_columns(self, table: str, names) -> None:
        unknown = set(names) - self._table_columns(table)
        if unknown:
            raise ValueError(f"Unknown columns for {table}: {sorted(unknown)}")

    @staticmethod
    def _to_sql_value(value: Any) -> Any:
        """Nested values from the remote side are stored as JSON text."""
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    def _where(self, table: str, key: Dict[str, Any]) -> tuple[str, list]:
        if not key:
            raise ValueError("Key must name at least one column")
        self._check_columns(table, key)
        clause = " AND ".join(f"{column} = ?" for column in key)
        return clause, [self._to_sql_value(v) for v in key.values()]

    # === Reads ===

    def list_all(self, table: str) -> List[Dict[str, Any]]:
        """Every row of a table, as dicts."""
        try:
            validate_table_name(table)
            with self._connect() as conn:
                rows = conn.execute(f"SELECT * FROM {table} ORDER BY id").fetchall()
        except (sqlite3.Error, ValueError) as e:
            raise StoreReadError(table, e) from e
        return [dict(row) for row in rows]

    def list_with_employee_uuid(self, table: str) -> List[Dict[str, Any]]:
        """Rows of an employee-owned table joined to the owner's canonical id.

        Rows whose employee has no canonical id yet are left out; they
        become visible once the employee pass assigns one.
        """
        try:
            validate_table_name(table)
            with self._connect() as conn:
                rows = conn.execute(
                    f"""SELECT t.*, e.supabase_id AS emp_uuid
                        FROM {table} t
                        JOIN {EMPLOYEES} e ON t.employee_id = e.id
                        WHERE e.supabase_id IS NOT NULL
                        ORDER BY t.id"""
                ).fetchall()
        except (sqlite3.Error, ValueError) as e:
            raise StoreReadError(table, e) from e
        return [dict(row) for row in rows]

    def get_by_key(self, table: str, key: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        clause, params = self._where(table, key)
        with self._connect() as conn:
            row = conn.execute(f"SELECT * FROM {table} WHERE {clause} LIMIT 1", params).fetchone()
        return dict(row) if row else None

    def get_registration(self) -> Optional[Dict[str, Any]]:
        """The installation's registered admin profile, if registration happened."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    f"SELECT * FROM {REGISTRATION} WHERE is_registered = 1 LIMIT 1"
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreReadError(REGISTRATION, e) from e
        return dict(row) if row else None

    # === Writes ===

    def insert(self, table: str, record: Dict[str, Any]) -> WriteResult:
        """Insert a row; the stored row (with its new local id) comes back in ``data``."""
        try:
            self._check_columns(table, record)
            columns = list(record)
            placeholders = ", ".join("?" for _ in columns)
            with self._connect() as conn:
                cursor = conn.execute(
                    f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                    [self._to_sql_value(record[c]) for c in columns],
                )
                row = conn.execute(
                    f"SELECT * FROM {table} WHERE id = ?", (cursor.lastrowid,)
                ).fetchone()
            return WriteResult.success(dict(row) if row else None)
        except (sqlite3.Error, ValueError) as e:
            return WriteResult.failure(e)

    def update_by_key(
        self, table: str, key: Dict[str, Any], fields: Dict[str, Any]
    ) -> WriteResult:
        """Update the row matching ``key``. Matching nothing counts as a failure."""
        if not fields:
            return WriteResult.success()
        try:
            self._check_columns(table, fields)
            clause, params = self._where(table, key)
            assignments = ", ".join(f"{column} = ?" for column in fields)
            values = [self._to_sql_value(v) for v in fields.values()]
            with self._connect() as conn:
                cursor = conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE {clause}", values + params
                )
                if cursor.rowcount == 0:
                    return WriteResult.failure(f"No {table} row matches {key}")
            return WriteResult.success()
        except (sqlite3.Error, ValueError) as e:
            return WriteResult.failure(e)
