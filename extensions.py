"""Flask extension singletons shared by the app factory, models, and blueprints."""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_wtf import CSRFProtect
from flask_login import LoginManager

csrf = CSRFProtect()
db = SQLAlchemy()
migrate = Migrate()

# Callers authenticate with bearer tokens only: no login view, no session cookie to guard.
login_manager = LoginManager()
login_manager.session_protection = None
