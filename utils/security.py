"""Security helpers for headers, CORS, input sanitation, and token utilities."""
import hashlib
import html
import secrets
from typing import Mapping

from flask import request

CORS_ALLOWED_HEADERS = (
    "authorization, x-client-info, apikey, content-type, "
    "x-supabase-client-platform, x-supabase-client-platform-version, "
    "x-supabase-client-runtime, x-supabase-client-runtime-version"
)
CORS_ALLOWED_METHODS = "GET, POST, DELETE, OPTIONS"


class AuthorizationError(Exception):
    """Raised when a request carries no usable caller credential."""


def sanitize_input(data: Mapping) -> dict:
    """Return a sanitized copy of incoming data to reduce injection risk."""
    sanitized = {}
    for key, value in data.items():
        sanitized[html.escape(str(key))] = html.escape(str(value))
    return sanitized


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers suitable for a JSON API."""
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def apply_cors_headers(response, allowed_origins: str = "*"):
    """Allow the web client to call the API cross-origin."""
    origins = [o.strip() for o in (allowed_origins or "").split(",") if o.strip()]
    origin = request.headers.get("Origin")
    if "*" in origins:
        response.headers["Access-Control-Allow-Origin"] = "*"
    elif origin and origin in origins:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers.add("Vary", "Origin")
    else:
        return response
    response.headers["Access-Control-Allow-Headers"] = CORS_ALLOWED_HEADERS
    response.headers["Access-Control-Allow-Methods"] = CORS_ALLOWED_METHODS
    return response


def extract_bearer_token(header_value: str | None) -> str:
    if not header_value or not header_value.startswith("Bearer "):
        raise AuthorizationError("Missing bearer token")
    token = header_value[len("Bearer "):].strip()
    if not token:
        raise AuthorizationError("Empty bearer token")
    return token


def generate_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


PASSWORD_MIN_LENGTH = 12
PASSWORD_SYMBOLS = "!@#$%^&*()-_=+[]{}|;:,.<>?/"

_PASSWORD_RULES = (
    (lambda p: len(p) >= PASSWORD_MIN_LENGTH, f"Password must be at least {PASSWORD_MIN_LENGTH} characters long."),
    (lambda p: p.lower() != p and p.upper() != p, "Use a mix of upper and lower case characters."),
    (lambda p: any(c.isdigit() for c in p), "Include at least one digit."),
    (lambda p: any(c in PASSWORD_SYMBOLS for c in p), "Include at least one symbol."),
)


def password_meets_policy(password: str) -> tuple[bool, str | None]:
    """Return ``(ok, reason)`` for the first rule the password breaks."""
    for rule, reason in _PASSWORD_RULES:
        if not rule(password):
            return False, reason
    return True, None


# Per-process token request counter, keyed by "token:<ip>:<email>"; a successful login clears the key.
_attempts: dict[str, int] = {}


def track_attempt(key: str, limit: int = 10) -> bool:
    """Count an attempt for ``key``; False once the caller is over ``limit``."""
    _attempts[key] = _attempts.get(key, 0) + 1
    return _attempts[key] <= limit


def reset_attempts(key: str) -> None:
    _attempts.pop(key, None)
