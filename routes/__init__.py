"""Blueprint registration and service-level routes."""
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from .admin import admin_bp
from .analyzer import analyzer_bp
from .auth import auth_bp
from .reports import reports_bp

main_bp = Blueprint("main", __name__)

__all__ = ["main_bp", "admin_bp", "analyzer_bp", "auth_bp", "reports_bp"]


@main_bp.route("/health", methods=["GET"])
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        current_app.logger.exception("Health check database query failed")
        db.session.rollback()
        return jsonify({"status": "degraded", "database": "unavailable"}), 503
    return jsonify({"status": "ok", "database": "ok"})
