"""Database schema for the Sahasrara baby spa records.

We keep timestamps as ISO-8601 TEXT (UTC, with 'Z') for portability across SQLite and
Postgres. ISO strings sort lexicographically in time order, so range filters like
`created_at >= ?` behave correctly.

NOTE: The Postgres schema is generated from the SQLite schema with a small set of
transformations (types + autoincrement).
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Staff accounts. Login is by PIN only, so only the salted PIN hash is stored.
CREATE TABLE IF NOT EXISTS users (
    user_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    pin_hash TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('ADMIN','STAFF','OWNER')),
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_active ON users (is_active, user_id);

-- Login lockout state (single row, id=1).
CREATE TABLE IF NOT EXISTS auth_state (
    id INTEGER PRIMARY KEY,
    failed_count INTEGER NOT NULL DEFAULT 0,
    window_start TEXT,
    locked_until TEXT
);

-- Treatment transactions.
CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    baby_name TEXT NOT NULL,
    age TEXT NOT NULL,
    sex TEXT NOT NULL CHECK (sex IN ('MALE','FEMALE')),
    weight_kg TEXT NOT NULL,
    length_cm TEXT NOT NULL,
    guardian_name TEXT NOT NULL,
    address TEXT NOT NULL,
    treatment_type TEXT NOT NULL,
    cost_amount INTEGER NOT NULL CHECK (cost_amount >= 0),
    note TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_transactions_created ON transactions (created_at);
CREATE INDEX IF NOT EXISTS idx_transactions_treatment_created ON transactions (treatment_type, created_at);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    out = re.sub(r"\bAUTOINCREMENT\b", "", out, flags=re.IGNORECASE)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
