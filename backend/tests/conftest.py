import os

# La configuración se lee al importar motosouq
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "clave-de-pruebas-suficientemente-larga-1234567890")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from motosouq.api import deps
from motosouq.db import session as db_session
from motosouq.db.base import Base
from motosouq.main import app
from motosouq.tasks import dispatch


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    db_session.configure_engine(test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    db_session.dispose_engine()


@pytest.fixture
def db(engine):
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def enqueued(monkeypatch):
    """Registra las tareas encoladas en lugar de enviarlas al broker."""
    calls = []

    def fake_enqueue(task, *args, countdown=None, **kwargs):
        calls.append({"task": task.name, "args": args, "kwargs": kwargs, "countdown": countdown})
        return True

    monkeypatch.setattr(dispatch, "enqueue", fake_enqueue)
    return calls


@pytest.fixture
def client(engine):
    def override_get_db():
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


API = "/api/v1"


def register_and_login(client, email, password="Password123!", **extra):
    response = client.post(f"{API}/auth/register", json={"email": email, "password": password, **extra})
    assert response.status_code == 201, response.text
    response = client.post(f"{API}/auth/login", data={"username": email, "password": password})
    assert response.status_code == 200, response.text
    body = response.json()
    return {
        "user_id": body["user_id"],
        "headers": {"Authorization": f"Bearer {body['access_token']}"},
        "access_token": body["access_token"],
        "refresh_token": body["refresh_token"],
    }


@pytest.fixture
def seller(client):
    return register_and_login(client, "seller@example.com", first_name="Sami", last_name="Vendedor")


@pytest.fixture
def buyer(client):
    return register_and_login(client, "buyer@example.com", first_name="Bea", last_name="Compradora")


@pytest.fixture
def other_buyer(client):
    return register_and_login(client, "other@example.com")


@pytest.fixture
def listing(client, seller):
    response = client.post(
        f"{API}/listings/",
        json={"title": "  Yamaha MT-07 2021  ", "price": 30000, "minimum_bid": 25000},
        headers=seller["headers"],
    )
    assert response.status_code == 201, response.text
    return response.json()
