"""
Pytest fixtures for AquaGuard tests. Each app gets its own in-memory SQLite DB and a fake
credibility assessor, so no test touches a real model provider.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from flask import g

from utils.credibility_assessor import CredibilityAssessor


class FakeAssessor(CredibilityAssessor):
    """Returns a preset reply (or raises a preset error) and records every prompt it receives."""

    provider = "fake"

    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        super().__init__(model="fake-model", temperature=0.3, timeout=5)
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def _complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Testing app with tables created and an app context pushed for direct DB access."""
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))

    from app import create_app
    from extensions import db
    from utils import security

    security._attempts.clear()
    application = create_app("testing")

    # Client requests reuse the pushed app context (and its ``g``); drop the
    # cached Flask-Login user so every request re-resolves its bearer token.
    @application.teardown_request
    def _forget_request_user(exc):
        g.pop("_login_user", None)

    ctx = application.app_context()
    ctx.push()
    yield application
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def assessor(app):
    """Fake assessor installed on the app; tests set ``reply`` or ``error`` before calling."""
    fake = FakeAssessor(reply='{"confidence_score": 80, "analysis": "Consistent with dry season conditions."}')
    app.extensions["credibility_assessor"] = fake
    return fake


def _make_user(email: str, role_name: str, county_id: str | None = None):
    from extensions import db
    from models import Role, User

    user = User(
        full_name=email.split("@")[0].title(),
        email=email,
        county_id=county_id,
        role=Role.get_or_create(role_name),
        is_active=True,
    )
    user.set_password("Str0ng!Password")
    db.session.add(user)
    db.session.commit()
    return user


def _bearer_for(user) -> dict:
    from extensions import db
    from routes.auth import create_api_token

    token, _expires_at = create_api_token(user)
    db.session.commit()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reporter(app):
    return _make_user("wanjiku@example.com", "Reporter", county_id="turkana")


@pytest.fixture
def other_reporter(app):
    return _make_user("otieno@example.com", "Reporter", county_id="kisumu")


@pytest.fixture
def admin_user(app):
    from models import User

    return User.query.filter_by(email=app.config["DEFAULT_ADMIN_EMAIL"]).first()


@pytest.fixture
def auth_headers(reporter):
    return _bearer_for(reporter)


@pytest.fixture
def other_headers(other_reporter):
    return _bearer_for(other_reporter)


@pytest.fixture
def admin_headers(admin_user):
    return _bearer_for(admin_user)


@pytest.fixture
def make_report(reporter):
    """Factory inserting reports directly; ``age`` backdates ``created_at``."""
    from extensions import db
    from models import EnvironmentalReport

    def _make(
        report_type: str = "dry_borehole",
        county_id: str = "turkana",
        latitude: float = 3.1191,
        longitude: float = 35.5966,
        age: timedelta = timedelta(0),
        owner=None,
        **fields,
    ):
        report = EnvironmentalReport(
            reporter_id=(owner or reporter).id,
            report_type=report_type,
            county_id=county_id,
            latitude=latitude,
            longitude=longitude,
            created_at=datetime.utcnow() - age,
            status=fields.pop("status", "pending"),
            **fields,
        )
        db.session.add(report)
        db.session.commit()
        return report

    return _make


def analysis_payload(report, **overrides) -> dict:
    """JSON body the web client sends right after creating ``report``."""
    payload = {
        "reportId": report.id,
        "reportType": report.report_type,
        "countyId": report.county_id,
        "latitude": report.latitude,
        "longitude": report.longitude,
        "townName": report.town_name,
        "description": report.description,
        "weatherData": None,
    }
    payload.update(overrides)
    return payload
