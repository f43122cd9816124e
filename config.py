"""Environment-aware configuration for the Flask application."""
import os
from datetime import timedelta


class BaseConfig:
    def __init__(self) -> None:
        # Defaults for local dev: SQLite db and a non-empty secret. Override via env for production.
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        db_url = os.getenv("DATABASE_URL")
        # If DATABASE_URL points to a placeholder host (e.g., db_host) or is missing, fall back to SQLite for local dev.
        if db_url and "db_host" not in db_url:
            self.SQLALCHEMY_DATABASE_URI = db_url
        else:
            self.SQLALCHEMY_DATABASE_URI = os.getenv(
                "SQLITE_URL",
                f"sqlite:///{os.path.join(os.getcwd(), 'instance', 'aquaguard.db')}",
            )
        self.SQLALCHEMY_TRACK_MODIFICATIONS = False
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        if not self.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            self.SQLALCHEMY_ENGINE_OPTIONS = {
                "pool_size": int(os.getenv("DB_POOL_SIZE", 10)),
                "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", 20)),
                "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", 30)),
                "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", 1800)),
                "pool_pre_ping": True,
            }
        self.SESSION_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        self.PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
        self.WTF_CSRF_TIME_LIMIT = 3600
        self.WTF_CSRF_ENABLED = True
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        self.DEFAULT_ADMIN_EMAIL = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@aquaguard.ke")
        self.DEFAULT_ADMIN_PASSWORD = os.getenv("DEFAULT_ADMIN_PASSWORD", "Admin@12345!")
        self.API_TOKEN_TTL_DAYS = int(os.getenv("API_TOKEN_TTL_DAYS", 30))
        self.CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*")
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 1 * 1024 * 1024))

        # Credibility assessment provider ("gemini" or an OpenAI-compatible "gateway")
        self.AI_PROVIDER = os.getenv("AI_PROVIDER", "gemini").lower()
        self.GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
        self.GEMINI_ANALYSIS_MODEL = os.getenv("GEMINI_ANALYSIS_MODEL", "gemini-2.5-flash")
        self.AI_GATEWAY_URL = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1/chat/completions")
        self.AI_GATEWAY_API_KEY = os.getenv("AI_GATEWAY_API_KEY", "")
        self.AI_GATEWAY_MODEL = os.getenv("AI_GATEWAY_MODEL", "google/gemini-2.5-flash")
        self.ANALYSIS_TEMPERATURE = float(os.getenv("ANALYSIS_TEMPERATURE", 0.3))
        self.ANALYSIS_TIMEOUT_SECONDS = float(os.getenv("ANALYSIS_TIMEOUT_SECONDS", 30))

        # Duplicate detection policy
        self.DUPLICATE_RADIUS_KM = float(os.getenv("DUPLICATE_RADIUS_KM", 0.5))
        self.DUPLICATE_LOOKBACK_HOURS = int(os.getenv("DUPLICATE_LOOKBACK_HOURS", 24))
        self.DUPLICATE_CANDIDATE_LIMIT = int(os.getenv("DUPLICATE_CANDIDATE_LIMIT", 10))
        self.DUPLICATE_PENALTY = int(os.getenv("DUPLICATE_PENALTY", 30))
        self.DUPLICATE_SCORE_FLOOR = int(os.getenv("DUPLICATE_SCORE_FLOOR", 20))

        self.REPORTS_PER_PAGE = int(os.getenv("REPORTS_PER_PAGE", 20))
        self.PUBLIC_MAX_REPORTS = int(os.getenv("PUBLIC_MAX_REPORTS", 100))
        self.REANALYZE_BATCH_SIZE = int(os.getenv("REANALYZE_BATCH_SIZE", 25))


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False
        self.PREFERRED_URL_SCHEME = "http"


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True
        self.PERMANENT_SESSION_LIFETIME = timedelta(days=1)


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.SQLALCHEMY_DATABASE_URI = "sqlite://"
        self.SQLALCHEMY_ENGINE_OPTIONS = {}
        self.WTF_CSRF_ENABLED = False
        self.PREFERRED_URL_SCHEME = "http"
        self.DEFAULT_ADMIN_EMAIL = "admin@aquaguard.example.com"
        self.DEFAULT_ADMIN_PASSWORD = "Admin@12345!Test"
        self.GEMINI_API_KEY = ""
        self.AI_GATEWAY_API_KEY = ""
