import pytest
from fastapi.testclient import TestClient

from groceries import db as gdb
from groceries.main import create_app


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "groceries.db")


@pytest.fixture
def conn(db_path):
    c = gdb.connect(db_path)
    yield c
    c.close()


@pytest.fixture
def client(db_path):
    with TestClient(create_app(db_path)) as c:
        yield c
