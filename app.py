"""Flask application factory for the AquaGuard report triage API."""
import os
from typing import Optional

import click
from flask import Flask, jsonify, request
from sqlalchemy.engine.url import make_url
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from utils.logger import init_logging
from utils.security import apply_cors_headers, apply_security_headers
from extensions import csrf, db, migrate, login_manager

CONFIG_NAMES = {
    "development": "DevelopmentConfig",
    "dev": "DevelopmentConfig",
    "production": "ProductionConfig",
    "prod": "ProductionConfig",
    "testing": "TestingConfig",
    "test": "TestingConfig",
}


def _load_config(app: Flask, config_name: Optional[str]) -> None:
    import config

    key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_class = getattr(config, CONFIG_NAMES.get(key, "ProductionConfig"))
    app.config.from_object(config_class())
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)


def prepare_sqlite_path(database_uri: str) -> None:
    """File-backed SQLite needs its parent directory before the first connect."""
    url = make_url(database_uri)
    if url.drivername.startswith("sqlite") and url.database and url.database != ":memory:":
        os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)


def seed_roles_and_admin(app: Flask) -> None:
    """Create the Reporter/Admin roles and make sure the configured admin account exists and is active."""
    from models import DEFAULT_ROLES, Role, User  # Local import to avoid circular dependency

    roles = {name: Role.get_or_create(name, description=description) for name, description in DEFAULT_ROLES}

    email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not email or not password:
        app.logger.warning("No default admin configured")
        return

    admin = User.query.filter_by(email=email).first()
    if admin is None:
        admin = User(full_name="County Administrator", email=email, is_active=True)
        admin.set_password(password)
        app.logger.info("Seeding default admin", extra={"email": email})
    elif admin.role is roles["Admin"] and admin.is_active:
        return
    admin.role = roles["Admin"]
    admin.is_active = True
    db.session.add(admin)
    db.session.commit()


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def http_error(error):
        if error.code in (401, 403, 404, 405):
            app.logger.warning(
                f"{error.code} {error.name}", extra={"path": request.path, "method": request.method}
            )
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("Unhandled error", extra={"path": request.path})
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def register_auth(app: Flask) -> None:
    from routes.auth import resolve_api_token

    @login_manager.request_loader
    def load_user_from_request(req):
        return resolve_api_token(req.headers.get("Authorization"))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Unauthorized"}), 401


def register_cli(app: Flask) -> None:
    from utils.pending_analysis import run_pending_analysis

    @app.cli.command("analyze-pending")
    @click.option("--limit", type=int, default=None, help="Maximum number of reports to analyze.")
    def analyze_pending(limit):
        """Triage reports that still have no verdict (e.g. after a provider outage)."""
        summary = run_pending_analysis(app, limit=limit)
        click.echo(
            f"analyzed={summary['analyzed']} failed={summary['failed']} stopped={summary['stopped'] or '-'}"
        )


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)
    _load_config(app, config_name)
    prepare_sqlite_path(app.config["SQLALCHEMY_DATABASE_URI"])
    os.makedirs(app.instance_path, exist_ok=True)

    app.logger = init_logging(app)

    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    register_auth(app)

    from routes import admin_bp, analyzer_bp, auth_bp, main_bp, reports_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(reports_bp, url_prefix="/api/reports")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(analyzer_bp, url_prefix="/functions")

    register_cli(app)
    register_error_handlers(app)

    @app.after_request
    def _after_request(response):
        response = apply_cors_headers(response, allowed_origins=app.config.get("CORS_ALLOWED_ORIGINS", "*"))
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Tables are created on first boot; schema changes go through Flask-Migrate.
    with app.app_context():
        db.create_all()
        seed_roles_and_admin(app)

    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)), use_reloader=False)
