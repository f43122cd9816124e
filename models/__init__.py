"""Core data models for accounts, API tokens, audit trails, and environmental reports."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


REPORT_TYPES: tuple[str, ...] = (
	"flooded_road",
	"dry_borehole",
	"broken_kiosk",
	"overflowing_river",
)

REPORT_STATUSES: tuple[str, ...] = (
	"pending",
	"verified",
	"rejected",
)

VERIFICATION_ACTIONS: tuple[str, ...] = (
	"verified",
	"rejected",
)

DEFAULT_ROLES: tuple[tuple[str, str], ...] = (
	("Reporter", "Community member submitting environmental reports"),
	("Admin", "County administrator verifying reports"),
)


class Role(db.Model):
	__tablename__ = "roles"

	id = db.Column(db.Integer, primary_key=True)
	name = db.Column(db.String(50), unique=True, nullable=False, index=True)
	description = db.Column(db.String(255), nullable=True)

	users = db.relationship("User", back_populates="role", lazy="dynamic")

	@staticmethod
	def get_or_create(name: str, description: str = ""):
		role = Role.query.filter_by(name=name).first()
		if role:
			return role
		role = Role(name=name, description=description)
		db.session.add(role)
		db.session.commit()
		return role


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	full_name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)
	county_id = db.Column(db.String(64), nullable=True, index=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	role = db.relationship("Role", back_populates="users")
	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")
	api_tokens = db.relationship("ApiToken", back_populates="user", lazy="dynamic")
	reports = db.relationship("EnvironmentalReport", back_populates="reporter", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return bool(self.role and self.role.name.lower() == "admin")

	@property
	def active(self) -> bool:  # Flask-Login compatibility alias
		return self.is_active


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	action_type = db.Column(db.String(50), nullable=False)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	context_entity = db.Column(db.String(120), nullable=True)
	timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class ApiToken(db.Model):
	__tablename__ = "api_tokens"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	token_hash = db.Column(db.String(128), nullable=False, unique=True, index=True)
	expires_at = db.Column(db.DateTime, nullable=False)
	revoked_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_used_at = db.Column(db.DateTime, nullable=True)

	user = db.relationship("User", back_populates="api_tokens")

	@property
	def is_expired(self) -> bool:
		return datetime.utcnow() > self.expires_at

	@property
	def is_revoked(self) -> bool:
		return self.revoked_at is not None

	@property
	def is_usable(self) -> bool:
		return not self.is_expired and not self.is_revoked


class EnvironmentalReport(db.Model):
	__tablename__ = "environmental_reports"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	reporter_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	report_type = db.Column(db.String(40), nullable=False, index=True)
	county_id = db.Column(db.String(64), nullable=False, index=True)
	town_name = db.Column(db.String(150), nullable=True)
	latitude = db.Column(db.Float, nullable=False)
	longitude = db.Column(db.Float, nullable=False)
	description = db.Column(db.String(500), nullable=True)
	image_url = db.Column(db.String(500), nullable=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	ai_confidence_score = db.Column(db.Integer, nullable=True)
	ai_analysis = db.Column(db.Text, nullable=True)
	is_duplicate = db.Column(db.Boolean, nullable=True)
	duplicate_of = db.Column(db.String(36), db.ForeignKey("environmental_reports.id"), nullable=True, index=True)
	analyzed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(
		db.DateTime,
		default=datetime.utcnow,
		onupdate=datetime.utcnow,
		nullable=False,
	)

	__table_args__ = (
		db.CheckConstraint(
			"report_type IN ('flooded_road','dry_borehole','broken_kiosk','overflowing_river')",
			name="ck_report_type_valid",
		),
		db.CheckConstraint(
			"status IN ('pending','verified','rejected')",
			name="ck_report_status_valid",
		),
		db.CheckConstraint(
			"ai_confidence_score IS NULL OR (ai_confidence_score >= 0 AND ai_confidence_score <= 100)",
			name="ck_report_confidence_range",
		),
		db.Index("ix_reports_lookup", "county_id", "report_type", "created_at"),
	)

	reporter = db.relationship("User", back_populates="reports")
	duplicate_source = db.relationship("EnvironmentalReport", remote_side=[id])
	verifications = db.relationship(
		"ReportVerification",
		back_populates="report",
		order_by="ReportVerification.created_at",
		cascade="all, delete-orphan",
	)

	@property
	def is_analyzed(self) -> bool:
		return self.ai_confidence_score is not None

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"reporter_id": self.reporter_id,
			"report_type": self.report_type,
			"county_id": self.county_id,
			"town_name": self.town_name,
			"latitude": self.latitude,
			"longitude": self.longitude,
			"description": self.description,
			"image_url": self.image_url,
			"status": self.status,
			"ai_confidence_score": self.ai_confidence_score,
			"ai_analysis": self.ai_analysis,
			"is_duplicate": self.is_duplicate,
			"duplicate_of": self.duplicate_of,
			"analyzed_at": self.analyzed_at.isoformat() if self.analyzed_at else None,
			"created_at": self.created_at.isoformat() if self.created_at else None,
			"updated_at": self.updated_at.isoformat() if self.updated_at else None,
		}

	def public_payload(self) -> dict:
		"""Columns exposed on the public map feed."""
		return {
			"id": self.id,
			"report_type": self.report_type,
			"county_id": self.county_id,
			"town_name": self.town_name,
			"latitude": self.latitude,
			"longitude": self.longitude,
			"status": self.status,
			"ai_confidence_score": self.ai_confidence_score,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}


class ReportVerification(db.Model):
	__tablename__ = "report_verifications"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	report_id = db.Column(db.String(36), db.ForeignKey("environmental_reports.id"), nullable=False, index=True)
	admin_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	action = db.Column(db.String(20), nullable=False)
	comment = db.Column(db.String(500), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (
		db.CheckConstraint("action IN ('verified','rejected')", name="ck_verification_action"),
	)

	report = db.relationship("EnvironmentalReport", back_populates="verifications")
	admin = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"report_id": self.report_id,
			"admin_id": self.admin_id,
			"action": self.action,
			"comment": self.comment,
			"created_at": self.created_at.isoformat() if self.created_at else None,
		}
