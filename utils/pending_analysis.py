"""Batch re-run of the triage pipeline for reports left without a verdict."""
import asyncio
from typing import Dict, Optional

from flask import current_app

from models import EnvironmentalReport
from utils.credibility_assessor import (
    ConfigurationError,
    CredibilityAssessor,
    CredibilityAssessorError,
    QuotaExhaustedError,
    RateLimitError,
    current_assessor,
)
from utils.report_analyzer import AnalysisRequest, ReportAnalysisError, analyze_report


async def _analyze_batch(reports, assessor: CredibilityAssessor) -> Dict:
    summary = {"analyzed": 0, "failed": 0, "stopped": None}
    for report in reports:
        try:
            await analyze_report(AnalysisRequest.from_report(report), assessor)
            summary["analyzed"] += 1
        except (RateLimitError, QuotaExhaustedError) as exc:
            # Remaining reports would hit the same wall; leave them for the next run.
            summary["stopped"] = type(exc).__name__
            current_app.logger.warning(
                "Pending analysis halted by provider",
                extra={"report_id": report.id, "reason": summary["stopped"]},
            )
            break
        except (CredibilityAssessorError, ReportAnalysisError) as exc:
            summary["failed"] += 1
            current_app.logger.warning(
                "Pending analysis failed for report",
                extra={"report_id": report.id, "error_type": type(exc).__name__, "error": str(exc)},
            )
    return summary


def run_pending_analysis(app, limit: Optional[int] = None) -> Dict:
    """Analyze reports whose verdict is still null, oldest first."""
    with app.app_context():
        batch_size = limit or int(current_app.config.get("REANALYZE_BATCH_SIZE", 25))
        try:
            assessor = current_assessor()
        except ConfigurationError as exc:
            current_app.logger.error("Pending analysis skipped", extra={"error": str(exc)})
            return {"analyzed": 0, "failed": 0, "stopped": "ConfigurationError"}

        reports = (
            EnvironmentalReport.query.filter(EnvironmentalReport.ai_confidence_score.is_(None))
            .order_by(EnvironmentalReport.created_at.asc())
            .limit(batch_size)
            .all()
        )
        summary = asyncio.run(_analyze_batch(reports, assessor))
        current_app.logger.info("Pending analysis cycle finished", extra=summary)
        return summary
