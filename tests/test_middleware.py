from fastapi.testclient import TestClient

from tripsplit.main import app


def test_first_api_call_issues_an_identity_cookie():
    client = TestClient(app)
    resp = client.get("/api/me")

    assert resp.status_code == 401
    cookie = resp.headers["set-cookie"]
    assert cookie.startswith("ctk=")
    assert "Path=/api" in cookie
    assert "HttpOnly" in cookie


def test_non_api_paths_leave_identity_alone():
    resp = TestClient(app).get("/health")
    assert resp.json() == {"status": "ok"}
    assert "set-cookie" not in resp.headers


def test_known_cookie_is_not_reissued(alice):
    resp = alice.get("/api/me")
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == alice.user_id
    assert "set-cookie" not in resp.headers


def test_cookie_domain_comes_from_environment(monkeypatch):
    monkeypatch.setenv("COOKIE_DOMAIN", ".tripsplit.example")
    client = TestClient(app, base_url="https://api.tripsplit.example")
    cookie = client.get("/api/me").headers["set-cookie"]
    assert "Domain=.tripsplit.example" in cookie
    assert "Secure" in cookie
