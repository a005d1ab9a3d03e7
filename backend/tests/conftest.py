import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "dev")

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from skillnet.database import create_db_and_tables, get_session, make_engine
from skillnet.main import app


@pytest.fixture
def engine():
    """A fresh in-memory database per test."""
    eng = make_engine("sqlite://")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def client(engine):
    def _session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _session_override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def register(client):
    """Register an account and return (auth headers, response body)."""
    def _register(email="ada@example.com", name="Ada", password="Secret123!"):
        r = client.post('/auth/register', json={'email': email, 'password': password, 'name': name})
        assert r.status_code == 200, r.text
        body = r.json()
        return {'Authorization': f"Bearer {body['token']}"}, body
    return _register
