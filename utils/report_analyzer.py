"""Duplicate detection and AI credibility triage for submitted environmental reports.

The pipeline runs once per submission:

1. fetch recent reports of the same type in the same county,
2. flag the first one within the duplicate radius,
3. ask the configured credibility assessor for a JSON verdict,
4. parse the verdict, falling back to a neutral score when the model output is unusable,
5. apply the duplicate penalty,
6. persist the four analyzer-owned columns in a single transaction.

Only step 6 mutates shared state. Every failure before it leaves the report untouched.
"""
from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, NamedTuple, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import EnvironmentalReport
from utils.credibility_assessor import CredibilityAssessor
from utils.geo import Candidate, find_duplicate

DEFAULT_SCORE = 50
FALLBACK_ANALYSIS = "Analysis could not be completed. Manual review recommended."
MAX_RAW_ANALYSIS_CHARS = 500

REPORT_TYPE_DESCRIPTIONS: Dict[str, str] = {
    "flooded_road": "a flooded road or street",
    "dry_borehole": "a dry or non-functioning borehole",
    "broken_kiosk": "a broken or damaged water kiosk",
    "overflowing_river": "an overflowing river or stream",
}

SYSTEM_PROMPT = (
    "You are an environmental report analyst for AquaGuard Kenya, a water monitoring and flood alert system. "
    "Your role is to analyze community-submitted environmental reports and provide:\n"
    "1. A confidence score (0-100) indicating how credible and actionable the report appears\n"
    "2. A brief analysis explaining your assessment\n\n"
    "Consider these factors:\n"
    "- Weather conditions (if provided)\n"
    "- Report type and description quality\n"
    "- Geographic context (Kenya counties)\n"
    "- Similar reports in the area (potential duplicates)\n"
    "- Seasonal patterns and typical environmental conditions\n\n"
    "Be objective and scientific in your assessment. Acknowledge uncertainty where appropriate.\n"
    'Provide your response as valid JSON with "confidence_score" (integer 0-100) and "analysis" (string) fields.'
)


class ReportAnalysisError(Exception):
    """Base class for analyzer failures outside the model provider."""


class ReportNotFoundError(ReportAnalysisError):
    """Raised when the report to analyze does not exist."""


class ReportAlreadyAnalyzedError(ReportAnalysisError):
    """Raised when a first-time analysis targets a report that already carries a verdict."""


class PersistenceError(ReportAnalysisError):
    """Raised when the verdict could not be written back to the report."""


@dataclass(frozen=True)
class WeatherSnapshot:
    temperature: float
    humidity: float
    rainfall_24h: float

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["WeatherSnapshot"]:
        if payload is None:
            return None
        if not isinstance(payload, dict):
            raise ValueError("weatherData must be an object or null")
        values = []
        for key in ("temperature", "humidity", "rainfall24h"):
            value = payload.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"weatherData.{key} must be a number")
            values.append(float(value))
        return cls(*values)


@dataclass(frozen=True)
class AnalysisRequest:
    report_id: str
    report_type: str
    county_id: str
    latitude: float
    longitude: float
    town_name: Optional[str] = None
    description: Optional[str] = None
    weather: Optional[WeatherSnapshot] = None
    submitted_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "AnalysisRequest":
        """Build a request from the JSON body sent by the submission flow."""
        if not isinstance(payload, dict):
            raise ValueError("Request body must be a JSON object")
        report_id = _required_text(payload.get("reportId"), "reportId")
        report_type = _required_text(payload.get("reportType"), "reportType")
        county_id = _required_text(payload.get("countyId") or payload.get("regionId"), "countyId")
        return cls(
            report_id=report_id,
            report_type=report_type,
            county_id=county_id,
            latitude=_required_number(payload.get("latitude"), "latitude"),
            longitude=_required_number(payload.get("longitude"), "longitude"),
            town_name=_optional_text(payload.get("townName")),
            description=_optional_text(payload.get("description")),
            weather=WeatherSnapshot.from_payload(payload.get("weatherData")),
        )

    @classmethod
    def from_report(cls, report: EnvironmentalReport, weather: Optional[WeatherSnapshot] = None) -> "AnalysisRequest":
        """Build the request from the stored report; only weather comes from outside, as it is never stored."""
        return cls(
            report_id=report.id,
            report_type=report.report_type,
            county_id=report.county_id,
            latitude=float(report.latitude),
            longitude=float(report.longitude),
            town_name=_optional_text(report.town_name),
            description=_optional_text(report.description),
            weather=weather,
            submitted_at=report.created_at,
        )


@dataclass(frozen=True)
class Verdict:
    confidence_score: int
    analysis: str
    is_duplicate: bool
    duplicate_of: Optional[str]

    def to_response(self) -> dict:
        return {
            "success": True,
            "confidence_score": self.confidence_score,
            "analysis": self.analysis,
            "is_duplicate": self.is_duplicate,
            "duplicate_of": self.duplicate_of,
        }


class ParsedVerdict(NamedTuple):
    confidence_score: int
    analysis: str
    degraded: bool


def _required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    return value.strip()


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _required_number(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{field} must be finite")
    return number


def clamp_score(score: int) -> int:
    return max(0, min(100, int(score)))


def describe_report_type(report_type: str) -> str:
    return REPORT_TYPE_DESCRIPTIONS.get(report_type, report_type)


def build_user_prompt(request: AnalysisRequest, similar_count: int, is_duplicate: bool) -> str:
    """Compose the per-report prompt; absent optional context is left out entirely."""
    location = f"{request.county_id} County, Kenya"
    if request.town_name:
        location = f"{request.town_name}, {location}"

    lines = [
        "Analyze this environmental report:",
        "",
        f"Report Type: {describe_report_type(request.report_type)}",
        f"Location: {location}",
        f"Coordinates: {request.latitude:.4f}°, {request.longitude:.4f}°",
        f"Description: {request.description or 'No description provided'}",
    ]
    if request.weather is not None:
        weather = request.weather
        lines.append(
            f"Current Weather: Temperature {weather.temperature:g}°C, "
            f"Humidity {weather.humidity:g}%, Rainfall (24h): {weather.rainfall_24h:g}mm"
        )
    lines.append(f"Similar reports in area (24h): {similar_count}")
    if is_duplicate:
        lines.append("⚠️ Potential duplicate detected within 500m radius")
    lines.extend(["", "Provide a JSON response with confidence_score and analysis."])
    return "\n".join(lines)


def _strip_code_fences(text: str) -> str:
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*", "", text.strip()).strip()
    return re.sub(r"```$", "", cleaned).strip()


def _first_json_block(text: str) -> str:
    """Extract the first JSON object block from free-form text."""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def _safe_json_loads(raw_text: str) -> Any:
    """Parse JSON robustly, tolerating leading/trailing prose or code fences."""
    cleaned = _strip_code_fences(raw_text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(_first_json_block(cleaned))
    except json.JSONDecodeError:
        start = cleaned.find("{")
        if start == -1:
            raise
        # Several objects or trailing braces in prose: decode only the leading object.
        payload, _end = json.JSONDecoder().raw_decode(cleaned[start:])
        return payload


def _coerce_score(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = re.match(r"\s*([+-]?\d+)", value)
        return int(match.group(1)) if match else None
    return None


def parse_verdict(raw_text: Optional[str]) -> ParsedVerdict:
    """Turn raw model output into a clamped score and analysis text.

    Never raises, even on pathologically nested JSON. Unusable output resolves to the neutral score; when the model
    said something but not valid JSON, its text (truncated) becomes the analysis
    so reviewers can still see it.
    """
    text = (raw_text or "").strip()
    if not text:
        return ParsedVerdict(DEFAULT_SCORE, FALLBACK_ANALYSIS, True)

    try:
        payload = _safe_json_loads(text)
    except (ValueError, RecursionError):
        payload = None
    if not isinstance(payload, dict):
        return ParsedVerdict(DEFAULT_SCORE, text[:MAX_RAW_ANALYSIS_CHARS], True)

    degraded = False
    score = _coerce_score(payload.get("confidence_score"))
    if score is None:
        score = DEFAULT_SCORE
        degraded = True
    analysis = payload.get("analysis")
    if isinstance(analysis, str) and analysis.strip():
        analysis = analysis.strip()
    else:
        analysis = FALLBACK_ANALYSIS
        degraded = True
    return ParsedVerdict(clamp_score(score), analysis, degraded)


def apply_duplicate_penalty(
    score: int,
    analysis: str,
    report_type: str,
    penalty: int = 30,
    floor: int = 20,
) -> tuple[int, str]:
    adjusted = clamp_score(max(floor, score - penalty))
    marker = (
        f"⚠️ POTENTIAL DUPLICATE: A similar {report_type.replace('_', ' ', 1)} report "
        "was submitted nearby within the last 24 hours. "
    )
    return adjusted, marker + analysis


def fetch_candidates(request: AnalysisRequest, lookback_hours: int = 24, limit: int = 10) -> List[Candidate]:
    """Same-type reports in the same county submitted in the lookback window before this one, newest first.

    The window ends at the report's own submission time, so re-analysing an
    old report never matches reports filed after it. A storage failure is
    logged and reported as "no candidates" so that an unavailable lookup never
    blocks the credibility assessment.
    """
    anchor = request.submitted_at or datetime.utcnow()
    cutoff = anchor - timedelta(hours=lookback_hours)
    try:
        rows = (
            db.session.query(EnvironmentalReport.id, EnvironmentalReport.latitude, EnvironmentalReport.longitude)
            .filter(
                EnvironmentalReport.county_id == request.county_id,
                EnvironmentalReport.report_type == request.report_type,
                EnvironmentalReport.id != request.report_id,
                EnvironmentalReport.created_at >= cutoff,
                EnvironmentalReport.created_at <= anchor,
            )
            .order_by(EnvironmentalReport.created_at.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError:
        current_app.logger.warning(
            "Duplicate candidate lookup failed; continuing without candidates",
            extra={"report_id": request.report_id},
            exc_info=True,
        )
        db.session.rollback()
        return []
    return [(row.id, row.latitude, row.longitude) for row in rows]


def persist_verdict(report_id: str, verdict: Verdict, overwrite: bool = False) -> None:
    """Write the verdict in one UPDATE.

    Without ``overwrite`` the write only applies while the report has no score
    yet, so a concurrent second analysis cannot replace the first verdict.
    """
    now = datetime.utcnow()
    query = EnvironmentalReport.query.filter(EnvironmentalReport.id == report_id)
    if not overwrite:
        query = query.filter(EnvironmentalReport.ai_confidence_score.is_(None))
    try:
        updated = query.update(
            {
                EnvironmentalReport.ai_confidence_score: verdict.confidence_score,
                EnvironmentalReport.ai_analysis: verdict.analysis,
                EnvironmentalReport.is_duplicate: verdict.is_duplicate,
                EnvironmentalReport.duplicate_of: verdict.duplicate_of,
                EnvironmentalReport.analyzed_at: now,
                EnvironmentalReport.updated_at: now,
            },
            synchronize_session=False,
        )
        if updated != 1:
            db.session.rollback()
            if overwrite or db.session.get(EnvironmentalReport, report_id) is None:
                raise ReportNotFoundError(f"Report {report_id} not found")
            raise ReportAlreadyAnalyzedError(f"Report {report_id} has already been analyzed")
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to save report analysis", extra={"report_id": report_id})
        raise PersistenceError("Failed to save analysis") from exc


async def analyze_report(
    request: AnalysisRequest,
    assessor: CredibilityAssessor,
    overwrite: bool = False,
) -> Verdict:
    """Run the full triage pipeline for one report and persist the verdict."""
    config = current_app.config
    candidates = fetch_candidates(
        request,
        lookback_hours=int(config.get("DUPLICATE_LOOKBACK_HOURS", 24)),
        limit=int(config.get("DUPLICATE_CANDIDATE_LIMIT", 10)),
    )
    duplicate_of = find_duplicate(
        request.latitude,
        request.longitude,
        candidates,
        radius_km=float(config.get("DUPLICATE_RADIUS_KM", 0.5)),
    )
    is_duplicate = duplicate_of is not None

    current_app.logger.info(
        "Dispatching credibility assessment",
        extra={
            "report_id": request.report_id,
            "report_type": request.report_type,
            "county_id": request.county_id,
            "candidates": len(candidates),
            "provider": assessor.provider,
        },
    )
    raw_text = await assessor.assess(SYSTEM_PROMPT, build_user_prompt(request, len(candidates), is_duplicate))

    parsed = parse_verdict(raw_text)
    if parsed.degraded:
        current_app.logger.warning(
            "Model response unusable; falling back",
            extra={"report_id": request.report_id, "raw_text_snippet": (raw_text or "")[:200]},
        )
    score, analysis = parsed.confidence_score, parsed.analysis
    if is_duplicate:
        score, analysis = apply_duplicate_penalty(
            score,
            analysis,
            request.report_type,
            penalty=int(config.get("DUPLICATE_PENALTY", 30)),
            floor=int(config.get("DUPLICATE_SCORE_FLOOR", 20)),
        )

    verdict = Verdict(
        confidence_score=score,
        analysis=analysis,
        is_duplicate=is_duplicate,
        duplicate_of=duplicate_of,
    )
    persist_verdict(request.report_id, verdict, overwrite=overwrite)
    current_app.logger.info(
        "Report analysis complete",
        extra={"report_id": request.report_id, "confidence_score": score, "is_duplicate": is_duplicate},
    )
    return verdict
