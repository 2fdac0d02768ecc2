import itertools

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from config import Settings
from db import create_db_and_tables
from helpers import ADMIN_EMAIL, register, register_home, set_verification
from main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url="sqlite://",
        secret_key="test-secret",
        storage_root=str(tmp_path / "storage"),
        admin_emails=(ADMIN_EMAIL,),
        log_level="WARNING",
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def app(settings, engine):
    return create_app(settings, engine)


@pytest.fixture
def client(app):
    """An anonymous client."""
    return TestClient(app)


@pytest.fixture
def make_client(app):
    """Return a factory of logged-in clients, one cookie jar each."""
    counter = itertools.count(1)

    def _make(role="donor", email=None):
        client = TestClient(app)
        register(client, email or f"{role}{next(counter)}@example.org", role=role)
        return client

    return _make


@pytest.fixture
def admin_client(make_client):
    return make_client(email=ADMIN_EMAIL)


@pytest.fixture
def donor_client(make_client):
    return make_client("donor")


@pytest.fixture
def home_client(make_client, admin_client):
    """A home account whose home has been registered and approved."""
    client = make_client("home")
    home = register_home(client)
    resp = set_verification(admin_client, home["id"], "approved")
    assert resp.status_code == 200, resp.text
    return client
