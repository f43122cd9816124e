"""Account registration and bearer-token issuance blueprint."""
from datetime import datetime, timedelta

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from flask_wtf import FlaskForm
from sqlalchemy.exc import IntegrityError
from werkzeug.datastructures import MultiDict
from wtforms import PasswordField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional, ValidationError

from extensions import csrf, db
from models import ApiToken, AuditLog, Role, User
from utils.security import (
    AuthorizationError,
    extract_bearer_token,
    generate_token,
    hash_value,
    password_meets_policy,
    reset_attempts,
    track_attempt,
)

auth_bp = Blueprint("auth", __name__)
csrf.exempt(auth_bp)


class JsonForm(FlaskForm):
    """Form validated against a JSON body; null values count as absent."""

    class Meta:
        csrf = False

    @classmethod
    def from_json(cls):
        payload = request.get_json(silent=True)
        if not isinstance(payload, dict):
            payload = {}
        formdata = MultiDict(
            {
                key: str(value)
                for key, value in payload.items()
                if value is not None and not isinstance(value, (dict, list))
            }
        )
        return cls(formdata=formdata)


class RegistrationForm(JsonForm):
    full_name = StringField("Full Name", validators=[DataRequired(), Length(max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=12)])
    county_id = StringField("County", validators=[Optional(), Length(max=64)])

    def validate_email(self, field):
        if User.query.filter_by(email=field.data.lower().strip()).first():
            raise ValidationError("An account with this email already exists.")


class TokenForm(JsonForm):
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])


@auth_bp.route("/register", methods=["POST"])
def register():
    form = RegistrationForm.from_json()
    if not form.validate():
        return jsonify({"error": "Invalid registration details", "fields": form.errors}), 400

    password_ok, reason = password_meets_policy(form.password.data)
    if not password_ok:
        return jsonify({"error": reason, "fields": {"password": [reason]}}), 400

    try:
        role = Role.get_or_create("Reporter", description="Community member submitting environmental reports")
        user = User(
            full_name=form.full_name.data.strip(),
            email=form.email.data.lower().strip(),
            county_id=(form.county_id.data or "").strip() or None,
            role=role,
            is_active=True,
        )
        user.set_password(form.password.data)
        db.session.add(user)
        db.session.flush()
        log_action("REGISTER", user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"error": "Unable to register with the provided details."}), 409

    current_app.logger.info("User registered", extra={"user_id": user.id})
    return jsonify({"id": user.id, "email": user.email, "role": role.name}), 201


@auth_bp.route("/token", methods=["POST"])
def issue_token():
    form = TokenForm.from_json()
    if not form.validate():
        return jsonify({"error": "Email and password are required", "fields": form.errors}), 400

    email = form.email.data.lower().strip()
    attempt_key = f"token:{request.remote_addr}:{email}"
    if not track_attempt(attempt_key):
        return jsonify({"error": "Too many attempts. Please try again later."}), 429

    user = User.query.filter_by(email=email).first()
    if not user or not user.check_password(form.password.data):
        log_action("LOGIN_FAILED", user)
        db.session.commit()
        return jsonify({"error": "Invalid credentials provided."}), 401

    if not user.is_active:
        return jsonify({"error": "Your account is inactive. Please contact support."}), 403

    reset_attempts(attempt_key)
    token, expires_at = create_api_token(user, validity_days=int(current_app.config.get("API_TOKEN_TTL_DAYS", 30)))
    user.last_login_at = datetime.utcnow()
    log_action("TOKEN_ISSUED", user)
    db.session.commit()
    return jsonify({"access_token": token, "token_type": "bearer", "expires_at": expires_at.isoformat()}), 201


@auth_bp.route("/token", methods=["DELETE"])
@login_required
def revoke_token():
    token_hash = hash_value(extract_bearer_token(request.headers.get("Authorization")))
    record = ApiToken.query.filter_by(token_hash=token_hash).first()
    if record and not record.is_revoked:
        record.revoked_at = datetime.utcnow()
        db.session.add(record)
    log_action("TOKEN_REVOKED", current_user)
    db.session.commit()
    return "", 204


def create_api_token(user: User, validity_days: int = 30) -> tuple[str, datetime]:
    token = generate_token(32)
    expires_at = datetime.utcnow() + timedelta(days=validity_days)
    record = ApiToken(
        user=user,
        token_hash=hash_value(token),
        expires_at=expires_at,
    )
    db.session.add(record)
    return token, expires_at


def resolve_api_token(header_value: str | None) -> User | None:
    """Map an Authorization header onto an active user, or None."""
    try:
        token = extract_bearer_token(header_value)
    except AuthorizationError:
        return None
    record = ApiToken.query.filter_by(token_hash=hash_value(token)).first()
    if not record or not record.is_usable:
        return None
    user = record.user
    if not user or not user.is_active:
        return None
    return user


def log_action(action: str, user: User | None, context: str | None = None):
    entry = AuditLog(
        user_id=user.id if user else None,
        action_type=action,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", "unknown"),
        context_entity=context,
    )
    db.session.add(entry)
