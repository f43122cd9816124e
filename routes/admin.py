"""Admin review queue, verification decisions, and explicit re-analysis."""
from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from wtforms import SelectField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from extensions import csrf, db
from models import REPORT_STATUSES, VERIFICATION_ACTIONS, EnvironmentalReport, ReportVerification
from routes.analyzer import run_analysis
from routes.auth import JsonForm, log_action
from utils.decorators import roles_required
from utils.report_analyzer import AnalysisRequest
from utils.security import sanitize_input

admin_bp = Blueprint("admin", __name__)
csrf.exempt(admin_bp)


class VerificationForm(JsonForm):
    action = SelectField("Decision", choices=[(a, a) for a in VERIFICATION_ACTIONS], validators=[DataRequired()])
    comment = TextAreaField("Comment", validators=[Optional(), Length(max=500)])


def _status_counts(county_filter: str | None) -> dict:
    query = db.session.query(EnvironmentalReport.status, func.count(EnvironmentalReport.id))
    if county_filter:
        query = query.filter(EnvironmentalReport.county_id == county_filter)
    counts = {status: 0 for status in REPORT_STATUSES}
    for status, count in query.group_by(EnvironmentalReport.status).all():
        counts[status] = count
    return counts


@admin_bp.route("/reports", methods=["GET"])
@roles_required("admin")
def review_queue():
    filters = sanitize_input(request.args)
    status_filter = filters.get("status") or "pending"
    county_filter = filters.get("county") or None

    query = EnvironmentalReport.query
    if status_filter != "all":
        if status_filter not in REPORT_STATUSES:
            return jsonify({"error": f"Unknown status filter: {status_filter}"}), 400
        query = query.filter(EnvironmentalReport.status == status_filter)
    if county_filter:
        query = query.filter(EnvironmentalReport.county_id == county_filter)

    reports = query.order_by(EnvironmentalReport.created_at.desc()).all()
    return jsonify(
        {
            "reports": [r.to_dict() for r in reports],
            "counts": _status_counts(county_filter),
            "filters": {"status": status_filter, "county": county_filter},
        }
    )


@admin_bp.route("/reports/<string:report_id>/verify", methods=["POST"])
@roles_required("admin")
def verify_report(report_id):
    report = db.session.get(EnvironmentalReport, report_id)
    if not report:
        abort(404)

    form = VerificationForm.from_json()
    if not form.validate():
        return jsonify({"error": "Invalid verification", "fields": form.errors}), 400
    if report.status != "pending":
        return jsonify({"error": f"Report is already {report.status}"}), 409

    action = form.action.data
    try:
        report.status = action
        verification = ReportVerification(
            report_id=report.id,
            admin_id=current_user.id,
            action=action,
            comment=(form.comment.data or "").strip() or None,
        )
        db.session.add_all([report, verification])
        log_action(f"REPORT_{action.upper()}", current_user, context=f"REPORT:{report.id}")
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while recording verification")
        db.session.rollback()
        return jsonify({"error": "Unable to record decision. Please retry."}), 500

    current_app.logger.info(
        "Report reviewed",
        extra={"report_id": report.id, "action": action, "admin_id": current_user.id},
    )
    return jsonify({"report": report.to_dict(), "verification": verification.to_dict()}), 200


@admin_bp.route("/reports/<string:report_id>/reanalyze", methods=["POST"])
@roles_required("admin")
async def reanalyze_report(report_id):
    report = db.session.get(EnvironmentalReport, report_id)
    if not report:
        abort(404)

    current_app.logger.info(
        "Re-analysis requested",
        extra={"report_id": report.id, "admin_id": current_user.id, "previous_score": report.ai_confidence_score},
    )
    response, status = await run_analysis(AnalysisRequest.from_report(report), overwrite=True)
    if status == 200:
        log_action("REPORT_REANALYZED", current_user, context=f"REPORT:{report_id}")
        db.session.commit()
    return response, status
