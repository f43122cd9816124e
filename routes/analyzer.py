"""HTTP entry point for report triage, called by the web client after a report is created."""
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from extensions import csrf, db
from models import EnvironmentalReport
from utils.credibility_assessor import (
    ConfigurationError,
    CredibilityAssessorError,
    QuotaExhaustedError,
    RateLimitError,
    current_assessor,
)
from utils.report_analyzer import (
    AnalysisRequest,
    PersistenceError,
    ReportAlreadyAnalyzedError,
    ReportNotFoundError,
    analyze_report,
)

analyzer_bp = Blueprint("analyzer", __name__)
csrf.exempt(analyzer_bp)


async def run_analysis(analysis_request: AnalysisRequest, overwrite: bool = False):
    """Run the triage pipeline and translate its failures into JSON responses."""
    try:
        assessor = current_assessor()
    except ConfigurationError as exc:
        current_app.logger.error("Credibility assessor is not configured", extra={"error": str(exc)})
        return jsonify({"error": "Report analysis is not configured"}), 500

    try:
        verdict = await analyze_report(analysis_request, assessor, overwrite=overwrite)
    except RateLimitError:
        current_app.logger.warning("Model provider rate limited", extra={"report_id": analysis_request.report_id})
        return jsonify({"error": "Rate limit exceeded. Please try again later."}), 429
    except QuotaExhaustedError:
        current_app.logger.error("Model provider credits exhausted", extra={"report_id": analysis_request.report_id})
        return jsonify({"error": "AI credits exhausted. Please contact support."}), 402
    except ReportAlreadyAnalyzedError:
        return jsonify({"error": "Report has already been analyzed"}), 409
    except ReportNotFoundError:
        return jsonify({"error": "Report not found"}), 404
    except (CredibilityAssessorError, PersistenceError) as exc:
        current_app.logger.error(
            "Report analysis failed",
            extra={"report_id": analysis_request.report_id, "error_type": type(exc).__name__, "error": str(exc)},
        )
        return jsonify({"error": "Failed to analyze report"}), 500

    return jsonify(verdict.to_response()), 200


@analyzer_bp.route("/analyze-report", methods=["POST", "OPTIONS"])
@login_required
async def analyze_report_endpoint():
    if request.method == "OPTIONS":
        return "", 200

    try:
        submitted = AnalysisRequest.from_payload(request.get_json(silent=True))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    report = db.session.get(EnvironmentalReport, submitted.report_id)
    if not report:
        return jsonify({"error": "Report not found"}), 404
    if report.reporter_id != current_user.id and not current_user.is_admin:
        current_app.logger.warning(
            "Analysis requested for another user's report",
            extra={"user_id": current_user.id, "report_id": report.id},
        )
        return jsonify({"error": "Forbidden"}), 403
    if report.is_analyzed:
        return jsonify({"error": "Report has already been analyzed"}), 409

    # Type, county and coordinates come from the stored row; the body only adds weather.
    analysis_request = AnalysisRequest.from_report(report, weather=submitted.weather)
    if (submitted.report_type, submitted.county_id) != (report.report_type, report.county_id):
        current_app.logger.warning(
            "Request body disagrees with stored report; using stored values",
            extra={"report_id": report.id, "body_type": submitted.report_type, "body_county": submitted.county_id},
        )

    current_app.logger.info(
        "Analyzing report",
        extra={
            "report_id": analysis_request.report_id,
            "report_type": analysis_request.report_type,
            "county_id": analysis_request.county_id,
        },
    )
    return await run_analysis(analysis_request)
