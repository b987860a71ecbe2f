"""Entity store and sequence allocator.

Coverage:
- Schema creation is idempotent, and skipped (no write lock) once in place
- Ids outside the 64-bit INTEGER range read as missing
- Identity assignment (never reused)
- Order-rank allocation (starts at 1, monotonic, durable, no gap on failed create)
- Owner reference checks on create/update
- Transaction rollback
"""

import sqlite3

import pytest

from groceries import db as gdb
from groceries.errors import GroceriesError, IntegrityViolation, UnknownKind


def _account(conn, name="amy"):
    return gdb.create_row(conn, gdb.ACCOUNT, {"username": name, "email": f"{name}@x.com", "password": "p"})


class TestSchema:

    def test_ensure_schema_is_idempotent(self, conn):
        gdb.ensure_schema(conn)
        gdb.ensure_schema(conn)

        tables = {
            r["name"]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        assert {"accounts", "lists", "items", "sequences"} <= tables
        assert gdb.current_sequence(conn, gdb.LIST) == 0
        assert gdb.current_sequence(conn, gdb.ITEM) == 0

    def test_connect_reads_while_another_writer_holds_the_lock(self, db_path, conn):
        _account(conn)
        conn.execute("BEGIN IMMEDIATE")
        conn.execute("UPDATE accounts SET username = 'bob'")
        try:
            reader = gdb.connect(db_path, timeout=0.2)
            try:
                assert [r["username"] for r in gdb.get_rows(reader, gdb.ACCOUNT)] == ["amy"]
            finally:
                reader.close()
        finally:
            conn.execute("ROLLBACK")

    def test_connect_closes_connection_when_schema_setup_fails(self, tmp_path, monkeypatch):
        opened = []
        real_connect = sqlite3.connect

        def tracking_connect(*args, **kwargs):
            c = real_connect(*args, **kwargs)
            opened.append(c)
            return c

        def broken_schema(conn):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(gdb.sqlite3, "connect", tracking_connect)
        monkeypatch.setattr(gdb, "ensure_schema", broken_schema)

        with pytest.raises(sqlite3.OperationalError):
            gdb.connect(str(tmp_path / "fresh.db"))

        assert len(opened) == 1
        with pytest.raises(sqlite3.ProgrammingError):
            opened[0].execute("SELECT 1")

    def test_schema_ready(self, conn, tmp_path):
        assert gdb.schema_ready(conn)

        raw = sqlite3.connect(str(tmp_path / "empty.db"))
        raw.row_factory = sqlite3.Row
        try:
            assert not gdb.schema_ready(raw)
        finally:
            raw.close()

    def test_foreign_keys_enabled(self, conn):
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1

    def test_unknown_kind(self, conn):
        with pytest.raises(UnknownKind):
            gdb.get_rows(conn, "recipe")


class TestEntityStore:

    def test_create_and_get(self, conn):
        account_id = _account(conn)

        row = gdb.get_row(conn, gdb.ACCOUNT, account_id)
        assert row == {"id": account_id, "username": "amy", "email": "amy@x.com", "password": "p"}

    def test_get_missing_returns_none(self, conn):
        assert gdb.get_row(conn, gdb.LIST, 42) is None
        assert gdb.row_exists(conn, gdb.LIST, 42) is False

    @pytest.mark.parametrize("row_id", [2 ** 63, -(2 ** 63) - 1])
    def test_out_of_range_id_reads_as_missing(self, conn, row_id):
        _account(conn)

        assert gdb.get_row(conn, gdb.ACCOUNT, row_id) is None
        assert gdb.row_exists(conn, gdb.ACCOUNT, row_id) is False
        assert gdb.update_row(conn, gdb.ACCOUNT, row_id, {"username": "x", "email": "", "password": None}) == 0
        assert gdb.delete_row(conn, gdb.ACCOUNT, row_id) == 0
        assert len(gdb.get_rows(conn, gdb.ACCOUNT)) == 1

    def test_out_of_range_owner_is_integrity_violation(self, conn):
        with pytest.raises(IntegrityViolation) as excinfo:
            gdb.create_row(conn, gdb.ITEM, {"name": "Milk", "price": 0, "list_id": 2 ** 63})

        assert excinfo.value.owner_id == 2 ** 63
        assert gdb.get_rows(conn, gdb.ITEM) == []
        assert gdb.current_sequence(conn, gdb.ITEM) == 0

    def test_get_rows_in_identity_order(self, conn):
        ids = [_account(conn, n) for n in ("a", "b", "c")]
        assert [r["id"] for r in gdb.get_rows(conn, gdb.ACCOUNT)] == ids

    def test_identity_not_reused_after_delete(self, conn):
        first = _account(conn, "a")
        second = _account(conn, "b")
        gdb.delete_row(conn, gdb.ACCOUNT, second)

        third = _account(conn, "c")
        assert third > second > first

    def test_update_missing_is_noop(self, conn):
        assert gdb.update_row(conn, gdb.ACCOUNT, 99, {"username": "x", "email": "", "password": None}) == 0
        assert gdb.get_rows(conn, gdb.ACCOUNT) == []

    def test_update_keeps_sequence(self, conn):
        list_id = gdb.create_row(conn, gdb.LIST, {"name": "Weekly", "account_id": None})
        before = gdb.get_row(conn, gdb.LIST, list_id)["sequence"]

        assert gdb.update_row(conn, gdb.LIST, list_id, {"name": "Monthly", "account_id": None}) == 1

        row = gdb.get_row(conn, gdb.LIST, list_id)
        assert row["name"] == "Monthly"
        assert row["sequence"] == before

    def test_create_with_missing_owner_fails(self, conn):
        with pytest.raises(IntegrityViolation) as excinfo:
            gdb.create_row(conn, gdb.LIST, {"name": "Orphan", "account_id": 7})

        assert excinfo.value.kind == gdb.LIST
        assert excinfo.value.owner_id == 7
        assert gdb.get_rows(conn, gdb.LIST) == []

    def test_update_to_missing_owner_fails(self, conn):
        list_id = gdb.create_row(conn, gdb.LIST, {"name": "Weekly", "account_id": None})
        item_id = gdb.create_row(conn, gdb.ITEM, {"name": "Milk", "price": 1.5, "list_id": list_id})

        with pytest.raises(IntegrityViolation):
            gdb.update_row(conn, gdb.ITEM, item_id, {"name": "Milk", "price": 1.5, "list_id": 999})

        assert gdb.get_row(conn, gdb.ITEM, item_id)["list_id"] == list_id

    def test_direct_parent_delete_with_children_is_rejected(self, conn):
        list_id = gdb.create_row(conn, gdb.LIST, {"name": "Weekly", "account_id": None})
        gdb.create_row(conn, gdb.ITEM, {"name": "Milk", "price": 0, "list_id": list_id})

        with pytest.raises(sqlite3.IntegrityError):
            gdb.delete_row(conn, gdb.LIST, list_id)

        assert gdb.row_exists(conn, gdb.LIST, list_id)

    def test_price_default_column(self, conn):
        conn.execute("INSERT INTO items (sequence) VALUES (100)")
        row = conn.execute("SELECT name, price FROM items").fetchone()
        assert row["name"] == ""
        assert row["price"] == 0


class TestSequenceAllocator:

    def test_starts_at_one_and_increments(self, conn):
        seqs = [
            gdb.get_row(conn, gdb.LIST, gdb.create_row(conn, gdb.LIST, {"name": f"l{i}"}))["sequence"]
            for i in range(3)
        ]
        assert seqs == [1, 2, 3]

    def test_counters_are_per_kind(self, conn):
        list_id = gdb.create_row(conn, gdb.LIST, {"name": "Weekly"})
        gdb.create_row(conn, gdb.LIST, {"name": "Party"})
        item_id = gdb.create_row(conn, gdb.ITEM, {"name": "Milk", "price": 0, "list_id": list_id})

        assert gdb.get_row(conn, gdb.ITEM, item_id)["sequence"] == 1
        assert gdb.current_sequence(conn, gdb.LIST) == 2

    def test_not_reused_after_delete(self, conn):
        first = gdb.create_row(conn, gdb.LIST, {"name": "a"})
        gdb.delete_row(conn, gdb.LIST, first)

        second = gdb.create_row(conn, gdb.LIST, {"name": "b"})
        assert gdb.get_row(conn, gdb.LIST, second)["sequence"] == 2

    def test_failed_create_does_not_consume_value(self, conn):
        gdb.create_row(conn, gdb.LIST, {"name": "a"})
        with pytest.raises(IntegrityViolation):
            gdb.create_row(conn, gdb.LIST, {"name": "b", "account_id": 404})

        assert gdb.current_sequence(conn, gdb.LIST) == 1
        third = gdb.create_row(conn, gdb.LIST, {"name": "c"})
        assert gdb.get_row(conn, gdb.LIST, third)["sequence"] == 2

    def test_survives_reconnect(self, db_path):
        c1 = gdb.connect(db_path)
        gdb.create_row(c1, gdb.ITEM, {"name": "Milk", "price": 0})
        c1.close()

        c2 = gdb.connect(db_path)
        try:
            item_id = gdb.create_row(c2, gdb.ITEM, {"name": "Eggs", "price": 0})
            assert gdb.get_row(c2, gdb.ITEM, item_id)["sequence"] == 2
        finally:
            c2.close()

    def test_draw_requires_transaction(self, conn):
        with pytest.raises(GroceriesError):
            gdb.next_sequence(conn, gdb.LIST)

    def test_accounts_have_no_sequence(self, conn):
        with gdb.transaction(conn):
            with pytest.raises(GroceriesError):
                gdb.next_sequence(conn, gdb.ACCOUNT)


class TestTransaction:

    def test_rollback_on_error(self, conn):
        with pytest.raises(RuntimeError):
            with gdb.transaction(conn):
                _account(conn)
                raise RuntimeError("boom")

        assert gdb.get_rows(conn, gdb.ACCOUNT) == []
        assert not conn.in_transaction

    def test_nested_block_joins_outer(self, conn):
        with pytest.raises(RuntimeError):
            with gdb.transaction(conn):
                gdb.create_row(conn, gdb.LIST, {"name": "inner"})
                raise RuntimeError("boom")

        assert gdb.get_rows(conn, gdb.LIST) == []
        assert gdb.current_sequence(conn, gdb.LIST) == 0
