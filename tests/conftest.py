import os
import tempfile

# Point the app at a throwaway database before anything imports tripsplit.database
_db_dir = tempfile.mkdtemp(prefix="tripsplit-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("SENTRY_DSN", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tripsplit.database import Base, SessionLocal, engine  # noqa: E402
from tripsplit.main import app  # noqa: E402
from tripsplit.ratelimit import limiter  # noqa: E402

limiter.enabled = False


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_client():
    """Build a client whose ctk cookie identifies one user, and register that user."""

    def _make(ctk: str, name: str | None = None, upi_id: str | None = None) -> TestClient:
        client = TestClient(app, cookies={"ctk": ctk})
        body = {"name": name or ctk.title()}
        if upi_id:
            body["upiId"] = upi_id
        resp = client.patch("/api/me", json=body)
        assert resp.status_code == 200, resp.text
        client.user_id = resp.json()["data"]["id"]
        return client

    return _make


@pytest.fixture
def alice(make_client):
    return make_client("alice-ctk", "Alice", "alice@okbank")


@pytest.fixture
def bob(make_client):
    return make_client("bob-ctk", "Bob")


@pytest.fixture
def carol(make_client):
    return make_client("carol-ctk", "Carol", "carol@upi")


@pytest.fixture
def outsider(make_client):
    return make_client("dave-ctk", "Dave")


def join_and_approve(creator: TestClient, member: TestClient, group_id: str) -> None:
    resp = member.post(f"/api/groups/{group_id}/join", json={"message": "count me in"})
    assert resp.status_code == 201, resp.text
    resp = creator.post(f"/api/groups/{group_id}/requests/{member.user_id}/approve")
    assert resp.status_code == 200, resp.text


@pytest.fixture
def group_id(alice, bob, carol):
    """A Goa trip created by Alice with Bob and Carol approved."""
    resp = alice.post("/api/groups", json={
        "name": "Goa 2026",
        "destination": "Goa",
        "maxMembers": 6,
        "budgetMax": "30000",
    })
    assert resp.status_code == 201, resp.text
    gid = resp.json()["data"]["id"]
    join_and_approve(alice, bob, gid)
    join_and_approve(alice, carol, gid)
    return gid


def add_expense(client: TestClient, group_id: str, amount="900", **extra):
    body = {"groupId": group_id, "description": "Beach shack dinner", "amount": amount, "category": "food"}
    body.update(extra)
    return client.post("/api/expenses", json=body)
