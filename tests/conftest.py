import os
from datetime import datetime

import pytest

os.environ.setdefault("LOG_LEVEL", "WARNING")

from fastapi.testclient import TestClient

from contact_store import ContactStore
from db_models import LinkPrecedence
from db_setup import init_db, get_db_connection


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "contacts.db")
    init_db(path)
    return path


@pytest.fixture
def store(db_path):
    conn = get_db_connection(db_path)
    yield ContactStore(conn)
    conn.close()


@pytest.fixture
def seed(store):
    """Insert a contact directly, bypassing reconciliation."""

    def _seed(email=None, phone=None, linked_id=None, created_at=None, contact_id=None):
        precedence = LinkPrecedence.SECONDARY if linked_id is not None else LinkPrecedence.PRIMARY
        return store.insert(
            email,
            phone,
            precedence,
            linked_id,
            contact_id=contact_id,
            created_at=created_at or datetime(2023, 4, 1, 0, 0, 0),
        )

    return _seed


@pytest.fixture
def soft_delete(store):
    def _soft_delete(contact_id):
        store.conn.execute(
            "UPDATE Contact SET deletedAt = ? WHERE id = ?",
            (datetime.now().isoformat(), contact_id),
        )

    return _soft_delete


@pytest.fixture
def client(db_path):
    from main import app, get_store

    def _store():
        conn = get_db_connection(db_path)
        try:
            yield ContactStore(conn)
        finally:
            conn.close()

    app.dependency_overrides[get_store] = _store
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def row_count(store):
    def _row_count():
        return store.conn.execute("SELECT COUNT(*) FROM Contact").fetchone()[0]

    return _row_count
