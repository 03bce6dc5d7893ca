import pytest
from fastapi.testclient import TestClient

from starwin.config import Settings
from starwin.db import open_backend
from starwin.main import create_app
from starwin.schema_sql import provision_schema


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_dir=tmp_path / "database",
        db_file="test.db",
        admin_password="s3cret",
        static_dir=tmp_path / "no-static",
    )


@pytest.fixture
def store(settings):
    store = open_backend(settings)
    status = provision_schema(store)
    assert status.ready, status.error
    yield store
    store.close()


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def acme(store):
    res = store.execute(
        "INSERT INTO clients (name, phone) VALUES (%s, %s) RETURNING id", ("Acme", "555-0100")
    )
    return res.inserted_id
