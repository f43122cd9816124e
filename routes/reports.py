"""Environmental report submission and listing endpoints."""
from flask import Blueprint, abort, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import SQLAlchemyError
from wtforms import FloatField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, URL

from extensions import csrf, db
from models import REPORT_STATUSES, REPORT_TYPES, EnvironmentalReport
from routes.auth import JsonForm, log_action
from utils.security import sanitize_input

reports_bp = Blueprint("reports", __name__)
csrf.exempt(reports_bp)


class ReportForm(JsonForm):
    report_type = SelectField("Report type", choices=[(t, t) for t in REPORT_TYPES], validators=[DataRequired()])
    county_id = StringField("County", validators=[DataRequired(), Length(max=64)])
    town_name = StringField("Town", validators=[Optional(), Length(max=150)])
    latitude = FloatField("Latitude", validators=[NumberRange(min=-90, max=90)])
    longitude = FloatField("Longitude", validators=[NumberRange(min=-180, max=180)])
    description = TextAreaField(
        "Description",
        validators=[Optional(), Length(max=500, message="Description must be less than 500 characters")],
    )
    image_url = StringField("Image URL", validators=[Optional(), URL(), Length(max=500)])


def report_or_404(report_id: str) -> EnvironmentalReport:
    """Load a report the current user may see: their own, or any report for admins."""
    report = db.session.get(EnvironmentalReport, report_id)
    if not report:
        abort(404)
    if report.reporter_id != current_user.id and not current_user.is_admin:
        abort(403)
    return report


def _page_args() -> tuple[int, int]:
    try:
        page = int(request.args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    page = 1 if page < 1 else page
    per_page = max(1, min(int(current_app.config.get("REPORTS_PER_PAGE", 20)), 50))
    return page, per_page


@reports_bp.route("", methods=["POST"])
@login_required
def submit_report():
    form = ReportForm.from_json()
    if not form.validate():
        return jsonify({"error": "Invalid report", "fields": form.errors}), 400

    report = EnvironmentalReport(
        reporter_id=current_user.id,
        report_type=form.report_type.data,
        county_id=form.county_id.data.strip(),
        town_name=(form.town_name.data or "").strip() or None,
        latitude=form.latitude.data,
        longitude=form.longitude.data,
        description=(form.description.data or "").strip() or None,
        image_url=(form.image_url.data or "").strip() or None,
        status="pending",
    )
    try:
        db.session.add(report)
        db.session.flush()
        log_action("REPORT_CREATED", current_user, context=f"REPORT:{report.id}")
        db.session.commit()
    except SQLAlchemyError:
        current_app.logger.exception("Database error while saving report")
        db.session.rollback()
        return jsonify({"error": "Unable to save report. Please retry."}), 500

    current_app.logger.info(
        "Report submitted",
        extra={"report_id": report.id, "report_type": report.report_type, "county_id": report.county_id},
    )
    return jsonify(report.to_dict()), 201


@reports_bp.route("/mine", methods=["GET"])
@login_required
def list_my_reports():
    page, per_page = _page_args()
    status_filter = request.args.get("status") or None
    query = EnvironmentalReport.query.filter_by(reporter_id=current_user.id)
    if status_filter and status_filter in REPORT_STATUSES:
        query = query.filter(EnvironmentalReport.status == status_filter)

    pagination = query.order_by(EnvironmentalReport.created_at.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )
    return jsonify(
        {
            "reports": [r.to_dict() for r in pagination.items],
            "page": pagination.page,
            "pages": pagination.pages,
            "total": pagination.total,
        }
    )


@reports_bp.route("/public", methods=["GET"])
def public_reports():
    filters = sanitize_input(request.args)
    county_filter = filters.get("county")
    limit = min(int(current_app.config.get("PUBLIC_MAX_REPORTS", 100)), 200)

    query = EnvironmentalReport.query.filter(EnvironmentalReport.status != "rejected")
    if county_filter:
        query = query.filter(EnvironmentalReport.county_id == county_filter)
    reports = query.order_by(EnvironmentalReport.created_at.desc()).limit(limit).all()
    return jsonify({"reports": [r.public_payload() for r in reports]})


@reports_bp.route("/<string:report_id>", methods=["GET"])
@login_required
def view_report(report_id):
    report = report_or_404(report_id)
    payload = report.to_dict()
    payload["verifications"] = [v.to_dict() for v in report.verifications]
    return jsonify(payload)
