"""
Pytest tests for report submission, listings, the admin review queue, verification, and re-analysis.
"""

from __future__ import annotations

from datetime import timedelta

from extensions import db
from models import AuditLog, EnvironmentalReport

REPORTS_URL = "/api/reports"


def _report_body(**overrides) -> dict:
    body = {
        "report_type": "flooded_road",
        "county_id": "nairobi",
        "town_name": "Kibera",
        "latitude": -1.3133,
        "longitude": 36.7876,
        "description": "Water over the road near the footbridge",
    }
    body.update(overrides)
    return body


# --- Submission ---


def test_submit_report_creates_pending_unanalyzed_report(client, auth_headers, reporter):
    resp = client.post(REPORTS_URL, json=_report_body(), headers=auth_headers)

    assert resp.status_code == 201
    data = resp.get_json()
    assert data["status"] == "pending"
    assert data["reporter_id"] == reporter.id
    assert data["ai_confidence_score"] is None
    assert data["is_duplicate"] is None
    assert db.session.get(EnvironmentalReport, data["id"]) is not None


def test_submit_report_accepts_equator_and_null_optionals(client, auth_headers):
    body = _report_body(latitude=0.0, town_name=None, description=None, image_url=None)

    resp = client.post(REPORTS_URL, json=body, headers=auth_headers)

    assert resp.status_code == 201
    assert resp.get_json()["latitude"] == 0.0
    assert resp.get_json()["town_name"] is None


def test_submit_report_validation(client, auth_headers):
    resp = client.post(REPORTS_URL, json=_report_body(report_type="landslide"), headers=auth_headers)
    assert resp.status_code == 400
    assert "report_type" in resp.get_json()["fields"]

    resp = client.post(REPORTS_URL, json=_report_body(latitude=95), headers=auth_headers)
    assert resp.status_code == 400
    assert "latitude" in resp.get_json()["fields"]

    resp = client.post(REPORTS_URL, json=_report_body(description="x" * 501), headers=auth_headers)
    assert resp.status_code == 400
    assert "description" in resp.get_json()["fields"]

    resp = client.post(REPORTS_URL, json=_report_body(county_id=""), headers=auth_headers)
    assert resp.status_code == 400


def test_submit_report_requires_auth(client):
    assert client.post(REPORTS_URL, json=_report_body()).status_code == 401


# --- Listings ---


def test_my_reports_only_lists_own(client, auth_headers, other_reporter, make_report):
    mine = make_report()
    make_report(owner=other_reporter)

    data = client.get(f"{REPORTS_URL}/mine", headers=auth_headers).get_json()

    assert data["total"] == 1
    assert [r["id"] for r in data["reports"]] == [mine.id]


def test_public_feed_hides_rejected_and_private_fields(client, make_report):
    visible = make_report(county_id="kisumu", description="private note")
    make_report(county_id="kisumu", status="rejected")
    make_report(county_id="garissa")

    data = client.get(f"{REPORTS_URL}/public?county=kisumu").get_json()

    assert [r["id"] for r in data["reports"]] == [visible.id]
    assert "description" not in data["reports"][0]
    assert "reporter_id" not in data["reports"][0]


def test_view_report_of_another_user_is_forbidden(client, other_headers, make_report):
    report = make_report()
    assert client.get(f"{REPORTS_URL}/{report.id}", headers=other_headers).status_code == 403


def test_view_unknown_report_is_404(client, auth_headers):
    resp = client.get(f"{REPORTS_URL}/does-not-exist", headers=auth_headers)
    assert resp.status_code == 404
    assert "error" in resp.get_json()


# --- Admin review ---


def test_review_queue_requires_admin(client, auth_headers):
    resp = client.get("/api/admin/reports", headers=auth_headers)

    assert resp.status_code == 403
    assert AuditLog.query.filter_by(action_type="UNAUTHORIZED_ACCESS").count() == 1


def test_review_queue_filters_and_counts(client, admin_headers, make_report):
    pending = make_report(county_id="turkana")
    make_report(county_id="turkana", status="verified")
    make_report(county_id="kitui")

    data = client.get("/api/admin/reports?county=turkana", headers=admin_headers).get_json()

    assert [r["id"] for r in data["reports"]] == [pending.id]
    assert data["counts"] == {"pending": 1, "verified": 1, "rejected": 0}
    assert data["filters"] == {"status": "pending", "county": "turkana"}

    resp = client.get("/api/admin/reports?status=archived", headers=admin_headers)
    assert resp.status_code == 400


def test_verify_report_records_decision_once(client, admin_headers, admin_user, make_report):
    report = make_report()
    url = f"/api/admin/reports/{report.id}/verify"

    resp = client.post(url, json={"action": "verified", "comment": "Confirmed by ward officer"}, headers=admin_headers)

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["report"]["status"] == "verified"
    assert data["verification"]["admin_id"] == admin_user.id
    assert data["verification"]["comment"] == "Confirmed by ward officer"

    again = client.post(url, json={"action": "rejected"}, headers=admin_headers)
    assert again.status_code == 409


def test_verify_report_rejects_unknown_action(client, admin_headers, make_report):
    report = make_report()
    resp = client.post(f"/api/admin/reports/{report.id}/verify", json={"action": "maybe"}, headers=admin_headers)
    assert resp.status_code == 400


def test_reanalyze_overwrites_existing_verdict(client, admin_headers, assessor, make_report):
    report = make_report(ai_confidence_score=12, ai_analysis="Old verdict", is_duplicate=False)
    assessor.reply = '{"confidence_score": 88, "analysis": "Re-checked with fresh model."}'

    resp = client.post(f"/api/admin/reports/{report.id}/reanalyze", headers=admin_headers)

    assert resp.status_code == 200
    assert resp.get_json()["confidence_score"] == 88
    db.session.expire_all()
    stored = db.session.get(EnvironmentalReport, report.id)
    assert stored.ai_confidence_score == 88
    assert stored.ai_analysis == "Re-checked with fresh model."
    assert AuditLog.query.filter_by(action_type="REPORT_REANALYZED").count() == 1


def test_reanalyze_is_admin_only(client, auth_headers, assessor, make_report):
    report = make_report()
    resp = client.post(f"/api/admin/reports/{report.id}/reanalyze", headers=auth_headers)
    assert resp.status_code == 403
    assert assessor.calls == []


def test_pending_analysis_command_fills_missing_verdicts(app, assessor, make_report):
    from utils.pending_analysis import run_pending_analysis

    older = make_report(age=timedelta(hours=3), latitude=3.0)
    make_report(age=timedelta(hours=2), latitude=3.5, ai_confidence_score=40, ai_analysis="done")
    newer = make_report(age=timedelta(hours=1), latitude=4.0)

    summary = run_pending_analysis(app)

    assert summary == {"analyzed": 2, "failed": 0, "stopped": None}
    db.session.expire_all()
    assert db.session.get(EnvironmentalReport, older.id).ai_confidence_score == 80
    assert db.session.get(EnvironmentalReport, newer.id).ai_confidence_score == 80
    assert len(assessor.calls) == 2


def test_pending_analysis_stops_on_rate_limit(app, assessor, make_report):
    from utils.credibility_assessor import RateLimitError
    from utils.pending_analysis import run_pending_analysis

    make_report(latitude=3.0)
    make_report(latitude=4.0)
    assessor.error = RateLimitError("429")

    summary = run_pending_analysis(app)

    assert summary == {"analyzed": 0, "failed": 0, "stopped": "RateLimitError"}
    assert len(assessor.calls) == 1


def test_pending_analysis_ignores_reports_filed_later(app, assessor, make_report):
    from utils.pending_analysis import run_pending_analysis

    old = make_report(age=timedelta(days=3))
    newer = make_report(age=timedelta(hours=1), ai_confidence_score=60, ai_analysis="done", is_duplicate=False)

    summary = run_pending_analysis(app)

    assert summary["analyzed"] == 1
    db.session.expire_all()
    stored = db.session.get(EnvironmentalReport, old.id)
    assert stored.is_duplicate is False
    assert stored.duplicate_of is None
    assert stored.duplicate_of != newer.id
    assert stored.ai_confidence_score == 80
    assert "Similar reports in area (24h): 0" in assessor.calls[0][1]


def test_pending_analysis_window_is_anchored_on_submission_time(app, assessor, make_report):
    from utils.pending_analysis import run_pending_analysis

    earlier = make_report(age=timedelta(days=3, hours=2), ai_confidence_score=70, ai_analysis="done", is_duplicate=False)
    old = make_report(age=timedelta(days=3))

    run_pending_analysis(app)

    db.session.expire_all()
    stored = db.session.get(EnvironmentalReport, old.id)
    assert stored.is_duplicate is True
    assert stored.duplicate_of == earlier.id
    assert stored.ai_confidence_score == 50


def test_reanalyze_does_not_match_newer_reports(client, admin_headers, assessor, make_report):
    old = make_report(age=timedelta(days=2), ai_confidence_score=70, ai_analysis="Old verdict", is_duplicate=False)
    make_report(age=timedelta(minutes=5))

    resp = client.post(f"/api/admin/reports/{old.id}/reanalyze", headers=admin_headers)

    assert resp.status_code == 200
    assert resp.get_json()["is_duplicate"] is False
    assert resp.get_json()["duplicate_of"] is None
