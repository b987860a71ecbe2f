from __future__ import annotations

"""
groceries/db.py

Entity store + sequence allocator for accounts, lists and items.

Semantics:
- Schema creation is non-destructive (CREATE TABLE IF NOT EXISTS).
- Owner references are real foreign keys, declared WITHOUT ON DELETE CASCADE.
  Removing a parent that still has children fails at the SQLite level; the
  cascade engine (cascade.py) is the only path that removes parents.
- Identities come from AUTOINCREMENT and are never reused.
- Order ranks (sequence) come from the `sequences` table, one row per child kind,
  and are drawn inside the create transaction only.
- Writers open their transaction with BEGIN IMMEDIATE, which takes the database
  write lock up front and serializes conflicting writers.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .errors import GroceriesError, IntegrityViolation, UnknownKind

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    try:
        raw = (os.getenv(name) or "").strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


DB_TIMEOUT_SECONDS = _int_env("GROCERIES_DB_TIMEOUT_SECONDS", 30)


# ----------------------------
# Entity kinds
# ----------------------------

@dataclass(frozen=True)
class KindSpec:
    name: str
    table: str
    columns: Tuple[str, ...]
    owner_column: Optional[str] = None
    owner_kind: Optional[str] = None
    sequenced: bool = False


ACCOUNT = "account"
LIST = "list"
ITEM = "item"

KINDS: Dict[str, KindSpec] = {
    ACCOUNT: KindSpec(
        name=ACCOUNT,
        table="accounts",
        columns=("username", "email", "password"),
    ),
    LIST: KindSpec(
        name=LIST,
        table="lists",
        columns=("name", "account_id"),
        owner_column="account_id",
        owner_kind=ACCOUNT,
        sequenced=True,
    ),
    ITEM: KindSpec(
        name=ITEM,
        table="items",
        columns=("name", "price", "list_id"),
        owner_column="list_id",
        owner_kind=LIST,
        sequenced=True,
    ),
}


TABLES: Tuple[str, ...] = tuple(spec.table for spec in KINDS.values()) + ("sequences",)

# SQLite INTEGER is a signed 64-bit value; ids outside it can never match a row.
SQLITE_INT_MIN = -(2 ** 63)
SQLITE_INT_MAX = 2 ** 63 - 1


def fits_integer(value: Any) -> bool:
    return value is None or SQLITE_INT_MIN <= int(value) <= SQLITE_INT_MAX


def kind_spec(kind: str) -> KindSpec:
    spec = KINDS.get(kind)
    if spec is None:
        raise UnknownKind(kind)
    return spec


# ----------------------------
# Connection + schema
# ----------------------------

def connect(db_path: str, *, timeout: Optional[float] = None) -> sqlite3.Connection:
    # isolation_level=None: transactions are opened explicitly by transaction().
    conn = sqlite3.connect(
        db_path,
        timeout=float(DB_TIMEOUT_SECONDS if timeout is None else timeout),
        isolation_level=None,
    )
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        conn.row_factory = sqlite3.Row
        # Checking sqlite_master only reads, so an existing database never takes the write lock here.
        if not schema_ready(conn):
            ensure_schema(conn)
    except Exception:
        conn.close()
        raise
    return conn


def schema_ready(conn: sqlite3.Connection) -> bool:
    names = {
        r["name"]
        for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    }
    if not set(TABLES) <= names:
        return False
    seeded = conn.execute("SELECT COUNT(*) FROM sequences").fetchone()[0]
    return int(seeded) >= sum(1 for spec in KINDS.values() if spec.sequenced)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the accounts/lists/items tables and sequence counters if missing (non-destructive)."""
    with transaction(conn):
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS accounts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT NOT NULL DEFAULT '',
                email TEXT NOT NULL DEFAULT '',
                password TEXT NULL
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS lists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL DEFAULT '',
                sequence INTEGER NOT NULL,
                account_id INTEGER NULL,
                FOREIGN KEY (account_id) REFERENCES accounts (id)
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_lists_account_id ON lists (account_id)")

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL DEFAULT '',
                price REAL NOT NULL DEFAULT 0,
                sequence INTEGER NOT NULL,
                list_id INTEGER NULL,
                FOREIGN KEY (list_id) REFERENCES lists (id)
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_list_id ON items (list_id)")

        # Order-rank counters, one row per sequenced kind. value = last value handed out.
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS sequences (
                kind TEXT PRIMARY KEY,
                value INTEGER NOT NULL DEFAULT 0 CHECK (value >= 0)
            )
            """
        )
        for spec in KINDS.values():
            if spec.sequenced:
                conn.execute("INSERT OR IGNORE INTO sequences (kind, value) VALUES (?, 0)", (spec.name,))


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Run the block as one write transaction (BEGIN IMMEDIATE ... COMMIT).

    Any exception rolls the whole block back and is re-raised. If the connection
    is already inside a transaction, the block joins it and the outer owner
    decides commit/rollback.
    """
    if conn.in_transaction:
        yield conn
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


# ----------------------------
# Sequence allocator
# ----------------------------

def next_sequence(conn: sqlite3.Connection, kind: str) -> int:
    spec = kind_spec(kind)
    if not spec.sequenced:
        raise GroceriesError(f"Kind {kind!r} has no order rank")
    if not conn.in_transaction:
        # A draw outside a write transaction could be lost without its row.
        raise GroceriesError("next_sequence must be called inside a write transaction")

    conn.execute("UPDATE sequences SET value = value + 1 WHERE kind = ?", (spec.name,))
    row = conn.execute("SELECT value FROM sequences WHERE kind = ?", (spec.name,)).fetchone()
    if not row:
        raise GroceriesError(f"Sequence counter for {kind!r} is missing")
    return int(row["value"])


def current_sequence(conn: sqlite3.Connection, kind: str) -> int:
    spec = kind_spec(kind)
    if not spec.sequenced:
        raise GroceriesError(f"Kind {kind!r} has no order rank")
    row = conn.execute("SELECT value FROM sequences WHERE kind = ?", (spec.name,)).fetchone()
    return int(row["value"]) if row else 0


# ----------------------------
# Row helpers
# ----------------------------

def _is_foreign_key_error(exc: sqlite3.IntegrityError) -> bool:
    return "FOREIGN KEY" in str(exc).upper()


def _owner_violation(spec: KindSpec, fields: Dict[str, Any], exc: sqlite3.IntegrityError) -> IntegrityViolation:
    owner_id = fields.get(spec.owner_column) if spec.owner_column else None
    logger.warning("Integrity violation writing %s (owner %s=%s): %s", spec.name, spec.owner_column, owner_id, exc)
    return IntegrityViolation(
        spec.name,
        owner_id,
        f"Cannot write {spec.name}: {spec.owner_kind} {owner_id} does not exist",
    )


def _values(spec: KindSpec, fields: Dict[str, Any]) -> List[Any]:
    return [fields.get(col) for col in spec.columns]


def _check_owner_range(spec: KindSpec, fields: Dict[str, Any]) -> None:
    owner_id = fields.get(spec.owner_column) if spec.owner_column else None
    if not fits_integer(owner_id):
        logger.warning("Integrity violation writing %s (owner %s=%s): out of range", spec.name, spec.owner_column, owner_id)
        raise IntegrityViolation(
            spec.name,
            owner_id,
            f"Cannot write {spec.name}: {spec.owner_kind} {owner_id} does not exist",
        )


def create_row(conn: sqlite3.Connection, kind: str, fields: Dict[str, Any]) -> int:
    """
    Insert a new row and return its identity.

    Columns missing from `fields` take their schema default. Sequenced kinds draw
    their order rank here, in the same transaction as the insert, so a failed
    insert does not consume a value.
    """
    spec = kind_spec(kind)
    columns = [col for col in spec.columns if col in fields]
    values = [fields[col] for col in columns]
    _check_owner_range(spec, fields)

    with transaction(conn):
        if spec.sequenced:
            columns.append("sequence")
            values.append(next_sequence(conn, spec.name))

        placeholders = ", ".join("?" for _ in columns)
        try:
            cur = conn.execute(
                f"INSERT INTO {spec.table} ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
        except sqlite3.IntegrityError as exc:
            if not _is_foreign_key_error(exc):
                raise
            raise _owner_violation(spec, fields, exc) from exc
        return int(cur.lastrowid)


def update_row(conn: sqlite3.Connection, kind: str, row_id: int, fields: Dict[str, Any]) -> int:
    """Replace every mutable field of the row. Returns the affected row count (0 if missing)."""
    spec = kind_spec(kind)
    assignments = ", ".join(f"{col} = ?" for col in spec.columns)
    _check_owner_range(spec, fields)
    if not fits_integer(row_id):
        return 0

    with transaction(conn):
        try:
            cur = conn.execute(
                f"UPDATE {spec.table} SET {assignments} WHERE id = ?",
                (*_values(spec, fields), int(row_id)),
            )
        except sqlite3.IntegrityError as exc:
            if not _is_foreign_key_error(exc):
                raise
            raise _owner_violation(spec, fields, exc) from exc
        return int(cur.rowcount)


def get_row(conn: sqlite3.Connection, kind: str, row_id: int) -> Optional[Dict[str, Any]]:
    spec = kind_spec(kind)
    if not fits_integer(row_id):
        return None
    row = conn.execute(
        f"SELECT * FROM {spec.table} WHERE id = ? LIMIT 1",
        (int(row_id),),
    ).fetchone()
    if not row:
        return None
    return dict(row)


def get_rows(conn: sqlite3.Connection, kind: str) -> List[Dict[str, Any]]:
    spec = kind_spec(kind)
    rows = conn.execute(f"SELECT * FROM {spec.table} ORDER BY id ASC").fetchall()
    return [dict(r) for r in rows]


def row_exists(conn: sqlite3.Connection, kind: str, row_id: int) -> bool:
    spec = kind_spec(kind)
    if not fits_integer(row_id):
        return False
    row = conn.execute(f"SELECT 1 FROM {spec.table} WHERE id = ? LIMIT 1", (int(row_id),)).fetchone()
    return row is not None


def delete_row(conn: sqlite3.Connection, kind: str, row_id: int) -> int:
    """
    Remove exactly one row by identity.

    Only the cascade engine and the item delete operation call this. For accounts
    and lists, children must already be gone or the foreign key check fails.
    """
    spec = kind_spec(kind)
    if not fits_integer(row_id):
        return 0
    with transaction(conn):
        cur = conn.execute(f"DELETE FROM {spec.table} WHERE id = ?", (int(row_id),))
        return int(cur.rowcount)


def count_rows(conn: sqlite3.Connection, kind: str) -> int:
    spec = kind_spec(kind)
    return int(conn.execute(f"SELECT COUNT(*) FROM {spec.table}").fetchone()[0])
