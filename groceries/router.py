from __future__ import annotations

"""
groceries/router.py

HTTP surface over the operations layer. Transport only: every route opens one
connection, calls one operation, and closes the connection.

Soft not-found results (status_code 0) are returned as 200 with the status body,
matching the engine contract. IntegrityViolation is mapped to 409 by main.py.
"""

import os
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from . import db as gdb
from . import operations as ops
from .models import (
    Account,
    AccountUpsertResult,
    DeleteResult,
    GroceryList,
    Item,
    ItemUpsertResult,
    ListUpsertResult,
)


def _db_path_from_request(request: Request) -> str:
    # create_app sets app.state.db_path; fall back to env or default.
    candidate = getattr(request.app.state, "db_path", None)
    return str(candidate or os.getenv("GROCERIES_DB_PATH") or "/app/data/groceries.db")


def _connect(request: Request) -> sqlite3.Connection:
    return gdb.connect(_db_path_from_request(request))


# ----------------------------
# Request bodies
# ----------------------------


class AccountUpsertRequest(BaseModel):
    username: Optional[str] = Field("", description="Display name; null is stored as an empty string")
    email: Optional[str] = Field("", description="Contact address; null is stored as an empty string")
    password: Optional[str] = Field(None, description="Stored as given; hashing happens upstream")


class ListUpsertRequest(BaseModel):
    name: Optional[str] = Field("", description="Null is stored as an empty string")
    account_id: Optional[int] = Field(None, description="Owning account id; null = unowned")


class ItemUpsertRequest(BaseModel):
    name: Optional[str] = Field("", description="Null is stored as an empty string")
    price: Optional[float] = Field(0, description="Defaults to 0 when omitted or null")
    list_id: Optional[int] = Field(None, description="Owning list id; null = unowned")


# ----------------------------
# Routers
# ----------------------------

accounts_router = APIRouter(prefix="/accounts", tags=["accounts"])
lists_router = APIRouter(prefix="/lists", tags=["lists"])
items_router = APIRouter(prefix="/items", tags=["items"])
health_router = APIRouter(prefix="/health", tags=["health"])


# ----------------------------
# Accounts
# ----------------------------

@accounts_router.get("", response_model=List[Account])
def list_accounts(request: Request) -> List[Account]:
    conn = _connect(request)
    try:
        return ops.get_accounts(conn)
    finally:
        conn.close()


@accounts_router.get("/{account_id}", response_model=List[Account])
def get_account(request: Request, account_id: int) -> List[Account]:
    conn = _connect(request)
    try:
        return ops.get_accounts(conn, account_id)
    finally:
        conn.close()


@accounts_router.post("", response_model=AccountUpsertResult)
def create_account(request: Request, body: AccountUpsertRequest) -> AccountUpsertResult:
    conn = _connect(request)
    try:
        return ops.upsert_account(conn, None, **body.model_dump())
    finally:
        conn.close()


@accounts_router.put("/{account_id}", response_model=AccountUpsertResult)
def update_account(request: Request, account_id: int, body: AccountUpsertRequest) -> AccountUpsertResult:
    conn = _connect(request)
    try:
        return ops.upsert_account(conn, account_id, **body.model_dump())
    finally:
        conn.close()


@accounts_router.delete("/{account_id}", response_model=DeleteResult)
def remove_account(request: Request, account_id: int) -> DeleteResult:
    conn = _connect(request)
    try:
        return ops.delete_account(conn, account_id)
    finally:
        conn.close()


# ----------------------------
# Lists
# ----------------------------

@lists_router.get("", response_model=List[GroceryList])
def list_lists(request: Request) -> List[GroceryList]:
    conn = _connect(request)
    try:
        return ops.get_lists(conn)
    finally:
        conn.close()


@lists_router.get("/{list_id}", response_model=List[GroceryList])
def get_list(request: Request, list_id: int) -> List[GroceryList]:
    conn = _connect(request)
    try:
        return ops.get_lists(conn, list_id)
    finally:
        conn.close()


@lists_router.post("", response_model=ListUpsertResult)
def create_list(request: Request, body: ListUpsertRequest) -> ListUpsertResult:
    conn = _connect(request)
    try:
        return ops.upsert_list(conn, None, **body.model_dump())
    finally:
        conn.close()


@lists_router.put("/{list_id}", response_model=ListUpsertResult)
def update_list(request: Request, list_id: int, body: ListUpsertRequest) -> ListUpsertResult:
    conn = _connect(request)
    try:
        return ops.upsert_list(conn, list_id, **body.model_dump())
    finally:
        conn.close()


@lists_router.delete("/{list_id}", response_model=DeleteResult)
def remove_list(request: Request, list_id: int) -> DeleteResult:
    conn = _connect(request)
    try:
        return ops.delete_list(conn, list_id)
    finally:
        conn.close()


# ----------------------------
# Items
# ----------------------------

@items_router.get("", response_model=List[Item])
def list_items(request: Request) -> List[Item]:
    conn = _connect(request)
    try:
        return ops.get_items(conn)
    finally:
        conn.close()


@items_router.get("/{item_id}", response_model=List[Item])
def get_item(request: Request, item_id: int) -> List[Item]:
    conn = _connect(request)
    try:
        return ops.get_items(conn, item_id)
    finally:
        conn.close()


@items_router.post("", response_model=ItemUpsertResult)
def create_item(request: Request, body: ItemUpsertRequest) -> ItemUpsertResult:
    conn = _connect(request)
    try:
        return ops.upsert_item(conn, None, **body.model_dump())
    finally:
        conn.close()


@items_router.put("/{item_id}", response_model=ItemUpsertResult)
def update_item(request: Request, item_id: int, body: ItemUpsertRequest) -> ItemUpsertResult:
    conn = _connect(request)
    try:
        return ops.upsert_item(conn, item_id, **body.model_dump())
    finally:
        conn.close()


@items_router.delete("/{item_id}", response_model=DeleteResult)
def remove_item(request: Request, item_id: int) -> DeleteResult:
    conn = _connect(request)
    try:
        return ops.delete_item(conn, item_id)
    finally:
        conn.close()


# ----------------------------
# Health
# ----------------------------

@health_router.get("/database")
def database_health(request: Request) -> Dict[str, Any]:
    """Schema, order-rank counters and row counts of the configured database."""
    db_path = _db_path_from_request(request)
    start = time.time()

    # gdb.connect would create a missing file, so check first.
    if not Path(db_path).is_file():
        return {
            "status": "error",
            "message": f"Database file not found at {db_path}",
            "duration_seconds": time.time() - start,
        }

    try:
        conn = gdb.connect(db_path)
        try:
            report = {
                "schema_ready": gdb.schema_ready(conn),
                "sequences": {
                    kind: gdb.current_sequence(conn, kind)
                    for kind, spec in gdb.KINDS.items()
                    if spec.sequenced
                },
                "rows": {spec.table: gdb.count_rows(conn, kind) for kind, spec in gdb.KINDS.items()},
            }
        finally:
            conn.close()
    except sqlite3.Error as exc:
        return {
            "status": "error",
            "message": f"Error accessing DB: {exc}",
            "duration_seconds": time.time() - start,
        }

    return {
        "status": "ok",
        "message": "Database accessible",
        **report,
        "duration_seconds": time.time() - start,
    }
