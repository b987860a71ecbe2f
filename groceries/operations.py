from __future__ import annotations

"""
groceries/operations.py

Public engine surface: get / upsert / delete for accounts, lists and items.

- Upsert with no id (or 0) creates; with an existing id it updates every mutable
  field (the order rank is kept). Upsert on an id that does not exist is a soft
  not-found (status 0), nothing is written.
- Delete on a missing id is a soft not-found. Accounts and lists are removed
  through the cascade engine.
- Every upsert/delete is a single write transaction. A bad owner reference
  raises IntegrityViolation after rollback.
"""

import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import cascade
from . import db as gdb
from .models import (
    STATUS_NOT_FOUND,
    STATUS_OK,
    Account,
    AccountUpsertResult,
    DeleteResult,
    GroceryList,
    Item,
    ItemUpsertResult,
    ListUpsertResult,
)

logger = logging.getLogger(__name__)


MESSAGES: Dict[str, Dict[str, str]] = {
    gdb.ACCOUNT: {
        "created": "Account has been created",
        "updated": "Updated profile",
        "deleted": "Deleted account",
        "missing": "User does not exist",
    },
    gdb.LIST: {
        "created": "Created list",
        "updated": "Updated list",
        "deleted": "Deleted list",
        "missing": "List does not exist",
    },
    gdb.ITEM: {
        "created": "Added item to list",
        "updated": "Updated item",
        "deleted": "Removed item from list",
        "missing": "Item does not exist",
    },
}


def _no_id(row_id: Optional[int]) -> bool:
    # None and 0 both mean "no identity supplied".
    return not row_id


# ----------------------------
# Shared upsert / delete paths
# ----------------------------

def _upsert(
    conn: sqlite3.Connection,
    kind: str,
    row_id: Optional[int],
    fields: Dict[str, Any],
) -> Tuple[int, str, Optional[Dict[str, Any]]]:
    messages = MESSAGES[kind]

    with gdb.transaction(conn):
        if _no_id(row_id):
            current_id = gdb.create_row(conn, kind, fields)
            status_message = messages["created"]
            logger.info("Created %s id=%s", kind, current_id)
        else:
            current_id = int(row_id)
            if not gdb.row_exists(conn, kind, current_id):
                logger.info("Upsert on missing %s id=%s", kind, current_id)
                return STATUS_NOT_FOUND, messages["missing"], None
            gdb.update_row(conn, kind, current_id, fields)
            status_message = messages["updated"]

        row = gdb.get_row(conn, kind, current_id)

    return STATUS_OK, status_message, row


def _delete(
    conn: sqlite3.Connection,
    kind: str,
    row_id: Optional[int],
    remove: Callable[[sqlite3.Connection, int], Any],
) -> DeleteResult:
    messages = MESSAGES[kind]
    if _no_id(row_id):
        return DeleteResult(status_code=STATUS_NOT_FOUND, status_message=messages["missing"])

    with gdb.transaction(conn):
        if not gdb.row_exists(conn, kind, int(row_id)):
            return DeleteResult(status_code=STATUS_NOT_FOUND, status_message=messages["missing"])
        removed = remove(conn, int(row_id))

    logger.info("Deleted %s id=%s (%s)", kind, row_id, removed)
    return DeleteResult(status_code=STATUS_OK, status_message=messages["deleted"])


# ----------------------------
# Accounts
# ----------------------------

def get_accounts(conn: sqlite3.Connection, account_id: Optional[int] = None) -> List[Account]:
    if _no_id(account_id):
        return [Account(**r) for r in gdb.get_rows(conn, gdb.ACCOUNT)]
    row = gdb.get_row(conn, gdb.ACCOUNT, int(account_id))
    return [Account(**row)] if row else []


def upsert_account(
    conn: sqlite3.Connection,
    account_id: Optional[int] = None,
    *,
    username: Optional[str] = "",
    email: Optional[str] = "",
    password: Optional[str] = None,
) -> AccountUpsertResult:
    status_code, status_message, row = _upsert(
        conn,
        gdb.ACCOUNT,
        account_id,
        {"username": username or "", "email": email or "", "password": password},
    )
    return AccountUpsertResult(
        status_code=status_code,
        status_message=status_message,
        row=Account(**row) if row else None,
    )


def delete_account(conn: sqlite3.Connection, account_id: Optional[int]) -> DeleteResult:
    return _delete(conn, gdb.ACCOUNT, account_id, cascade.delete_account_cascade)


# ----------------------------
# Lists
# ----------------------------

def get_lists(conn: sqlite3.Connection, list_id: Optional[int] = None) -> List[GroceryList]:
    if _no_id(list_id):
        return [GroceryList(**r) for r in gdb.get_rows(conn, gdb.LIST)]
    row = gdb.get_row(conn, gdb.LIST, int(list_id))
    return [GroceryList(**row)] if row else []


def upsert_list(
    conn: sqlite3.Connection,
    list_id: Optional[int] = None,
    *,
    name: Optional[str] = "",
    account_id: Optional[int] = None,
) -> ListUpsertResult:
    status_code, status_message, row = _upsert(
        conn,
        gdb.LIST,
        list_id,
        {"name": name or "", "account_id": account_id},
    )
    return ListUpsertResult(
        status_code=status_code,
        status_message=status_message,
        row=GroceryList(**row) if row else None,
    )


def delete_list(conn: sqlite3.Connection, list_id: Optional[int]) -> DeleteResult:
    return _delete(conn, gdb.LIST, list_id, cascade.delete_list_cascade)


# ----------------------------
# Items
# ----------------------------

def get_items(conn: sqlite3.Connection, item_id: Optional[int] = None) -> List[Item]:
    if _no_id(item_id):
        return [Item(**r) for r in gdb.get_rows(conn, gdb.ITEM)]
    row = gdb.get_row(conn, gdb.ITEM, int(item_id))
    return [Item(**row)] if row else []


def upsert_item(
    conn: sqlite3.Connection,
    item_id: Optional[int] = None,
    *,
    name: Optional[str] = "",
    price: Optional[float] = 0,
    list_id: Optional[int] = None,
) -> ItemUpsertResult:
    status_code, status_message, row = _upsert(
        conn,
        gdb.ITEM,
        item_id,
        {"name": name or "", "price": float(price or 0), "list_id": list_id},
    )
    return ItemUpsertResult(
        status_code=status_code,
        status_message=status_message,
        row=Item(**row) if row else None,
    )


def delete_item(conn: sqlite3.Connection, item_id: Optional[int]) -> DeleteResult:
    return _delete(conn, gdb.ITEM, item_id, lambda c, i: gdb.delete_row(c, gdb.ITEM, i))
