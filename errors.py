"""
Workflow error taxonomy.

Every failure a user can trigger resolves to one of these: the transition is
blocked, nothing is mutated, and the message is shown to the user. Provider
failures (GenerationFailure) never reach the user; callers replace them with
a deterministic fallback.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for user-visible workflow failures."""

    status_code = 400
    default_message = "Request could not be completed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": type(self).__name__}


class ValidationError(WorkflowError):
    """Missing/empty required field, bad choice, or an out-of-order step."""

    status_code = 400
    default_message = "Please complete all required fields."


# ── Credentials ─────────────────────────────────────────────

class AuthError(WorkflowError):
    status_code = 401
    default_message = "Authentication failed."


class UserExists(AuthError):
    status_code = 409
    default_message = "User already exists."


class UserNotFound(AuthError):
    status_code = 401
    default_message = "User not found."


class WrongPassword(AuthError):
    status_code = 401
    default_message = "Incorrect password."


class WrongRole(AuthError):
    status_code = 403
    default_message = "This user does not have that profile type."


# ── Teacher lookup ──────────────────────────────────────────

class SubjectLookupError(WorkflowError, LookupError):
    status_code = 404
    default_message = "Invalid code or student not found."


# ── Concurrency ─────────────────────────────────────────────

class RequestInFlight(WorkflowError):
    status_code = 409
    default_message = "Still working on your previous request."


# ── Content generation ──────────────────────────────────────

class GenerationFailure(Exception):
    """Provider call failed, timed out, or returned unusable content."""
    pass
