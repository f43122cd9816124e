"""
Pytest tests for registration, bearer-token issuance and revocation, and app wiring.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from extensions import db
from models import ApiToken, User
from routes.auth import resolve_api_token


def _register(client, **overrides):
    body = {
        "full_name": "Amina Hassan",
        "email": "Amina@Example.com",
        "password": "Sup3r!Secret-pass",
        "county_id": "garissa",
    }
    body.update(overrides)
    return client.post("/auth/register", json=body)


def test_register_creates_reporter(client):
    resp = _register(client)

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["email"] == "amina@example.com"
    assert data["role"] == "Reporter"
    assert User.query.filter_by(email="amina@example.com").first().county_id == "garissa"


def test_register_rejects_duplicate_email_and_weak_password(client):
    assert _register(client).status_code == 201

    resp = _register(client, email="amina@example.com")
    assert resp.status_code == 400
    assert "email" in resp.get_json()["fields"]

    resp = _register(client, email="other@example.com", password="alllowercase123!")
    assert resp.status_code == 400
    assert "password" in resp.get_json()["fields"]


def test_token_issue_and_use(client):
    _register(client)

    resp = client.post("/auth/token", json={"email": "amina@example.com", "password": "Sup3r!Secret-pass"})

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["token_type"] == "bearer"
    headers = {"Authorization": f"Bearer {data['access_token']}"}
    assert client.get("/api/reports/mine", headers=headers).status_code == 200


def test_token_rejects_bad_password(client):
    _register(client)
    resp = client.post("/auth/token", json={"email": "amina@example.com", "password": "wrong"})
    assert resp.status_code == 401


def test_token_attempts_are_throttled(client):
    _register(client)
    for _ in range(10):
        client.post("/auth/token", json={"email": "amina@example.com", "password": "wrong"})

    resp = client.post("/auth/token", json={"email": "amina@example.com", "password": "Sup3r!Secret-pass"})
    assert resp.status_code == 429


def test_revoked_token_no_longer_authenticates(client, auth_headers):
    assert client.delete("/auth/token", headers=auth_headers).status_code == 204
    assert client.get("/api/reports/mine", headers=auth_headers).status_code == 401


def test_expired_token_is_not_resolved(app, reporter, auth_headers):
    record = ApiToken.query.filter_by(user_id=reporter.id).first()
    record.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.session.commit()

    assert resolve_api_token(auth_headers["Authorization"]) is None


def test_inactive_user_token_is_not_resolved(app, reporter, auth_headers):
    reporter.is_active = False
    db.session.commit()

    assert resolve_api_token(auth_headers["Authorization"]) is None


def test_default_admin_is_seeded(admin_user):
    assert admin_user is not None
    assert admin_user.is_admin


def test_health_and_security_headers(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok", "database": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_unknown_route_returns_json_404(client):
    resp = client.get("/nope")
    assert resp.status_code == 404
    assert "error" in resp.get_json()
