"""hrsync storage backends.

The local SQLite store and the remote Supabase store, behind the shared
per-collection contract the sync engine consumes.
"""

from .base import (
    ATTENDANCE,
    DEPARTMENTS,
    EMPLOYEES,
    MISSING_TABLE_CODE,
    PAYROLL,
    REGISTRATION,
    SYNC_ORDER,
    LocalStore,
    RemoteStore,
    StoreError,
    StoreReadError,
    WriteResult,
)
from .sqlite import SQLiteStore

__all__ = [
    # Collections
    "DEPARTMENTS",
    "EMPLOYEES",
    "ATTENDANCE",
    "PAYROLL",
    "REGISTRATION",
    "SYNC_ORDER",
    "MISSING_TABLE_CODE",
    # Contracts
    "LocalStore",
    "RemoteStore",
    "StoreError",
    "StoreReadError",
    "WriteResult",
    # Backends
    "SQLiteStore",
]
