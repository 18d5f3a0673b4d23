"""
Shared helpers used across blueprints.

Role decorators and JSON payload access, kept out of the blueprints to
break circular dependencies with auth.py.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import jsonify, request
from flask_login import current_user

from auth import login_manager
from errors import ValidationError
from models import ROLE_STUDENT, ROLE_TEACHER


def current_username() -> str:
    return current_user.username


def _role_required(role: str) -> Callable:
    def decorator(f: Callable) -> Callable:
        @wraps(f)
        def decorated(*args: Any, **kwargs: Any) -> Any:
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if getattr(current_user, "role", None) != role:
                return jsonify({"error": f"{role.title()} account required.", "kind": "WrongRole"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


student_required = _role_required(ROLE_STUDENT)
teacher_required = _role_required(ROLE_TEACHER)


def json_body() -> dict:
    """Return the request's JSON object, or an empty dict when absent."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object.")
    return data


def int_field(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{key}' must be an integer.")
    return value
