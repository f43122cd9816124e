"""Role checks for token-authenticated API views (sync or async)."""
from functools import wraps

from flask import current_app, jsonify, request
from flask_login import current_user, login_required

from extensions import db
from models import AuditLog


def _deny(allowed: set[str]):
    role_name = current_user.role.name if current_user.role else None
    current_app.logger.warning(
        "Role check failed",
        extra={"user_id": current_user.id, "role": role_name, "required": sorted(allowed), "path": request.path},
    )
    db.session.add(
        AuditLog(
            user_id=current_user.id,
            action_type="UNAUTHORIZED_ACCESS",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent", "unknown"),
            context_entity=request.path[:120],
        )
    )
    db.session.commit()
    return jsonify({"error": "Forbidden"}), 403


def roles_required(*roles):
    """Allow the view only for callers whose role name matches one of ``roles`` (case-insensitive)."""
    allowed = {r.lower() for r in roles}

    def decorator(view_func):
        @wraps(view_func)
        @login_required
        def guarded(*args, **kwargs):
            if current_user.role and current_user.role.name.lower() in allowed:
                return current_app.ensure_sync(view_func)(*args, **kwargs)
            return _deny(allowed)

        return guarded

    return decorator
