"""
Test suite for the groceries persistence core.

- test_db.py          : entity store + sequence allocator
- test_cascade.py     : cascade engine
- test_operations.py  : get / upsert / delete operations
- test_concurrency.py : concurrent writers against one database file
- test_router.py      : HTTP surface
"""
