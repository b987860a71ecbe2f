from __future__ import annotations

"""
groceries/cascade.py

Cascade engine: the only legitimate path for removing accounts and lists.

Deletion order is always innermost first:
    items -> lists -> account
so no child row ever points at a missing parent, not even mid-transaction.

Both entry points join the caller's write transaction (or open their own via
db.transaction), so a top-level delete is observed as one atomic unit. Deleting
a parent that does not exist removes zero rows at every step and is not an error.
"""

import logging
import sqlite3
from dataclasses import dataclass

from . import db as gdb

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeResult:
    items: int = 0
    lists: int = 0
    accounts: int = 0

    @property
    def total(self) -> int:
        return self.items + self.lists + self.accounts

    def __add__(self, other: "CascadeResult") -> "CascadeResult":
        return CascadeResult(
            items=self.items + other.items,
            lists=self.lists + other.lists,
            accounts=self.accounts + other.accounts,
        )


def _delete_items_of_list(conn: sqlite3.Connection, list_id: int) -> int:
    cur = conn.execute("DELETE FROM items WHERE list_id = ?", (int(list_id),))
    return int(cur.rowcount)


def delete_list_cascade(conn: sqlite3.Connection, list_id: int) -> CascadeResult:
    if not gdb.fits_integer(list_id):
        return CascadeResult()
    with gdb.transaction(conn):
        items = _delete_items_of_list(conn, list_id)
        lists = gdb.delete_row(conn, gdb.LIST, list_id)

    logger.debug("Cascade list %s: items=%s lists=%s", list_id, items, lists)
    return CascadeResult(items=items, lists=lists)


def delete_account_cascade(conn: sqlite3.Connection, account_id: int) -> CascadeResult:
    if not gdb.fits_integer(account_id):
        return CascadeResult()
    result = CascadeResult()
    with gdb.transaction(conn):
        list_ids = [
            int(r["id"])
            for r in conn.execute(
                "SELECT id FROM lists WHERE account_id = ? ORDER BY id ASC",
                (int(account_id),),
            ).fetchall()
        ]
        for list_id in list_ids:
            result = result + delete_list_cascade(conn, list_id)

        accounts = gdb.delete_row(conn, gdb.ACCOUNT, account_id)
        result = result + CascadeResult(accounts=accounts)

    logger.debug(
        "Cascade account %s: items=%s lists=%s accounts=%s",
        account_id,
        result.items,
        result.lists,
        result.accounts,
    )
    return result
