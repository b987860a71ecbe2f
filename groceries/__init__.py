"""Groceries persistence core.

Contract:
- Canonical persistence in SQLite (GROCERIES_DB_PATH).
- Three entity kinds: account -> list -> item. Owner references are checked at write time.
- Deleting an account or list always goes through the cascade engine (items, then lists, then account).
- Every upsert and delete runs in exactly one write transaction.
"""
from __future__ import annotations
