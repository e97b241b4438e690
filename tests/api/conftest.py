"""
Fixtures for HTTP tests.

Every test gets its own in-memory database and application, so requests
commit for real through ``session_scope`` without leaking between tests.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from disbursement_api import create_app
from disbursement_config import get_active_config
from disbursement_kernel.db.engine import build_engine, create_tables
from disbursement_kernel.domain.caller import UserRole
from disbursement_kernel.domain.clock import DeterministicClock
from disbursement_kernel.models.user import UserModel


@pytest.fixture
def api_session_factory():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def client(api_session_factory):
    app = create_app(
        session_factory=api_session_factory,
        config=get_active_config(environ={}),
        clock=DeterministicClock(),
    )
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def register_user(api_session_factory):
    """Factory fixture: commit a user and return ``(id, auth headers)``."""

    def _register(external_id, email, role=UserRole.USER):
        with api_session_factory() as session:
            user = UserModel(external_id=external_id, email=email, role=role.value)
            session.add(user)
            session.commit()
            return str(user.id), {"Authorization": f"Bearer {external_id}"}

    return _register


@pytest.fixture
def owner_auth(register_user):
    return register_user("owner-sub", "owner@example.org", UserRole.CHARITY_OWNER)


@pytest.fixture
def alice_auth(register_user):
    return register_user("alice-sub", "alice@example.org")


@pytest.fixture
def bob_auth(register_user):
    return register_user("bob-sub", "bob@example.org")


@pytest.fixture
def outsider_auth(register_user):
    return register_user("mallory-sub", "mallory@example.org")


@pytest.fixture
def charity_id(client, owner_auth):
    _, headers = owner_auth
    response = client.post(
        "/api/charities",
        json={"name": "Clean Water", "description": "Wells", "category": "water"},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()["data"]["id"]
