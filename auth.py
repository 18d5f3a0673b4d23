"""
User Authentication — Flask-Login blueprint.

Provides JSON register, login, logout and whoami routes. The credential
rules live in register_user() / authenticate() so they can be exercised
without HTTP. Uses werkzeug.security for password hashing.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from audit import log_event
from db_stores import CredentialStoreDB
from errors import UserExists, UserNotFound, ValidationError, WrongPassword, WrongRole
from models import ROLE_STUDENT, ROLES, clean_text

auth_bp = Blueprint("auth", __name__)
login_manager = LoginManager()


class User(UserMixin):
    """Wraps a credential row for Flask-Login; the id is the username."""

    def __init__(self, username: str, role: str):
        self.id = username
        self.username = username
        self.role = role

    @property
    def is_student(self):
        return self.role == ROLE_STUDENT

    @staticmethod
    def get(username: str):
        row = CredentialStoreDB.get(username)
        if row:
            return User(row["username"], row["role"])
        return None


@login_manager.user_loader
def load_user(user_id):
    return User.get(user_id)


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({"error": "Login required.", "kind": "AuthError"}), 401


def _normalize_role(role) -> str:
    role = str(role or "").strip().upper()
    if role not in ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(ROLES)}.")
    return role


def register_user(username: str, password: str, role: str) -> User:
    """Create a credential. The username is unique across both roles."""
    username = clean_text(username, "username")
    if password is not None and not isinstance(password, str):
        raise ValidationError("'password' must be text.")
    role = _normalize_role(role)
    if not username or not password:
        raise ValidationError("Username and password are required.")
    if not CredentialStoreDB.create(username, generate_password_hash(password), role):
        raise UserExists()
    return User(username, role)


def authenticate(username: str, password: str, role: str) -> User:
    """Check a credential triple: unknown user, then password, then role."""
    username = clean_text(username, "username")
    if not isinstance(password, str):
        password = ""
    role = _normalize_role(role)
    row = CredentialStoreDB.get(username) if username else None
    if row is None:
        raise UserNotFound()
    if not check_password_hash(row["password_hash"], password):
        raise WrongPassword()
    if row["role"] != role:
        raise WrongRole()
    return User(row["username"], row["role"])


def _start_workflow(user: User) -> str:
    """Begin a fresh workflow session; returns the student's landing step."""
    if user.is_student:
        from progression import StudentProgression
        return StudentProgression.for_user(user.username).start().step

    from teacher_workflow import TeacherWorkflow
    TeacherWorkflow.for_user(user.username).start()
    return ""


def _credentials() -> tuple[str, str, str]:
    data = request.get_json(silent=True) or {}
    return data.get("username", ""), data.get("password", ""), data.get("role", "")


@auth_bp.route("/register", methods=["POST"])
def register():
    username, password, role = _credentials()
    try:
        user = register_user(username, password, role)
    except (UserExists, ValidationError) as exc:
        log_event("register_failed", username or None, exc.__class__.__name__)
        raise
    log_event("register", user.username, f"role={user.role}")
    return jsonify({"username": user.username, "role": user.role}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    username, password, role = _credentials()
    try:
        user = authenticate(username, password, role)
    except (UserNotFound, WrongPassword, WrongRole, ValidationError) as exc:
        log_event("login_failed", username or None, exc.__class__.__name__)
        raise

    login_user(user)
    step = _start_workflow(user)
    log_event("login_success", user.username, f"role={user.role}")
    body = {"username": user.username, "role": user.role}
    if step:
        body["step"] = step
    return jsonify(body)


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    log_event("logout", current_user.username)
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"username": current_user.username, "role": current_user.role})
