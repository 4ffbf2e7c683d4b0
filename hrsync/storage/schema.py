"""Local SQLite schema for hrsync.

Contains:
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Schema DDL for the five synchronized tables (SCHEMA)
- Database initialization (init_db)
- Sync column migration for databases created before sync existed
  (migrate_schema)
"""

import logging
import sqlite3

from .base import ATTENDANCE, DEPARTMENTS, EMPLOYEES, PAYROLL, REGISTRATION

logger = logging.getLogger(__name__)

# Allowed table names for SQL queries (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset({DEPARTMENTS, EMPLOYEES, ATTENDANCE, PAYROLL, REGISTRATION})


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


SCHEMA = """
CREATE TABLE IF NOT EXISTS departments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    budget REAL NOT NULL,
    supabase_id TEXT UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS employees (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    company_id TEXT UNIQUE,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    phone TEXT,
    position TEXT NOT NULL,
    department_id INTEGER,
    salary REAL NOT NULL,
    hire_date DATE NOT NULL,
    status TEXT NOT NULL DEFAULT 'Active',
    pin_code TEXT DEFAULT '1234',
    supabase_id TEXT UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (department_id) REFERENCES departments(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS attendance (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id INTEGER NOT NULL,
    date DATE NOT NULL,
    check_in TIME,
    check_out TIME,
    status TEXT NOT NULL DEFAULT 'Present',
    notes TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (employee_id) REFERENCES employees(id) ON DELETE CASCADE,
    UNIQUE(employee_id, date)
);

CREATE TABLE IF NOT EXISTS payroll (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    employee_id INTEGER NOT NULL,
    period_start DATE NOT NULL,
    period_end DATE NOT NULL,
    basic_salary REAL NOT NULL,
    allowances REAL DEFAULT 0,
    deductions REAL DEFAULT 0,
    net_salary REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending',
    payment_date DATE,
    cutoff_type TEXT DEFAULT 'Full Month',
    working_days INTEGER DEFAULT 24,
    days_present INTEGER DEFAULT 24,
    daily_rate REAL DEFAULT 0,
    breakdown TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (employee_id) REFERENCES employees(id) ON DELETE CASCADE,
    UNIQUE(employee_id, period_start, period_end)
);

CREATE TABLE IF NOT EXISTS registration_credentials (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    company_name TEXT NOT NULL,
    company_email TEXT NOT NULL,
    company_address TEXT,
    company_contact TEXT,
    admin_name TEXT NOT NULL,
    admin_email TEXT NOT NULL UNIQUE,
    admin_password_hash TEXT NOT NULL,
    super_admin_password_hash TEXT NOT NULL,
    avatar TEXT,
    bio TEXT,
    theme_preference TEXT DEFAULT 'light',
    language TEXT DEFAULT 'en',
    is_registered INTEGER DEFAULT 0,
    license_key TEXT UNIQUE,
    registration_date TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    last_updated TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_credentials_admin_email ON registration_credentials(admin_email);
CREATE INDEX IF NOT EXISTS idx_credentials_is_registered ON registration_credentials(is_registered);
"""

# Columns the sync engine relies on that predate-sync databases may lack.
# SQLite cannot ADD COLUMN with UNIQUE, so uniqueness comes from an index,
# nor with a CURRENT_TIMESTAMP default, so migrated rows start out NULL.
SYNC_COLUMNS = {
    DEPARTMENTS: [("supabase_id", "TEXT"), ("updated_at", "DATETIME")],
    EMPLOYEES: [("supabase_id", "TEXT"), ("updated_at", "DATETIME")],
    ATTENDANCE: [("updated_at", "DATETIME")],
    PAYROLL: [("updated_at", "DATETIME")],
}

SYNC_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_departments_supabase_id ON departments(supabase_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_employees_supabase_id ON employees(supabase_id)",
]


def init_db(conn: sqlite3.Connection) -> None:
    """Create the synchronized tables if missing and bring old ones up to date."""
    migrate_schema(conn)
    conn.executescript(SCHEMA)
    for statement in SYNC_INDEXES:
        conn.execute(statement)


def migrate_schema(conn: sqlite3.Connection) -> None:
    """Add sync bookkeeping columns to tables created by older releases.

    Legacy rows end up with NULL ``updated_at``, which the sync engine reads
    as the epoch so the remote copy wins on first contact.
    """
    tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    table_names = {t[0] for t in tables}

    def get_columns(table: str) -> set:
        validate_table_name(table)
        cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return {c[1] for c in cols}

    migrations = []
    for table, columns in SYNC_COLUMNS.items():
        if table not in table_names:
            continue
        existing = get_columns(table)
        for column, column_type in columns:
            if column not in existing:
                migrations.append(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")

    for migration in migrations:
        try:
            conn.execute(migration)
            logger.info(f"Migration: {migration}")
        except sqlite3.OperationalError as e:
            if "duplicate column" not in str(e).lower():
                raise
