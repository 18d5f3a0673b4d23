"""
DB-backed store classes for EduAdapt.

Thin typed wrappers over the keyed record store in database.py. Each store
owns one collection; none of them spans more than one key per write.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Optional

from database import get_db, get_record, put_record
from models import ClassGroup, StudentProfile, TeacherProfile, normalize_code


# ── Credentials ──────────────────────────────────────────────────────


class CredentialStoreDB:
    """Username -> {password_hash, role}. Rows are never updated or deleted."""

    @staticmethod
    def get(username: str) -> dict | None:
        db = get_db()
        row = db.execute(
            "SELECT username, password_hash, role, created_at FROM credentials WHERE username = ?",
            (username,),
        ).fetchone()
        return dict(row) if row else None

    @staticmethod
    def create(username: str, password_hash: str, role: str) -> bool:
        """Insert a credential; False when the username is already taken."""
        db = get_db()
        try:
            db.execute(
                "INSERT INTO credentials (username, password_hash, role, created_at) VALUES (?, ?, ?, ?)",
                (username, password_hash, role, datetime.now().isoformat()),
            )
            db.commit()
            return True
        except sqlite3.IntegrityError:
            db.rollback()
            return False


# ── Student Profiles ─────────────────────────────────────────────────


class StudentProfileStoreDB:

    COLLECTION = "student_profiles"

    @staticmethod
    def load(username: str) -> Optional[StudentProfile]:
        data = get_record(StudentProfileStoreDB.COLLECTION, username)
        if data is None:
            return None
        return StudentProfile.from_dict(data)

    @staticmethod
    def save(profile: StudentProfile) -> None:
        put_record(StudentProfileStoreDB.COLLECTION, profile.username, profile.to_dict())


# ── Subject Code Index ───────────────────────────────────────────────


class SubjectCodeIndexDB:
    """Maps a subject lookup code to the (username, subject_id) that minted it."""

    @staticmethod
    def register(code: str, username: str, subject_id: str) -> bool:
        """Claim ``code``; False when it is already taken."""
        db = get_db()
        try:
            db.execute(
                "INSERT INTO subject_codes (code, username, subject_id, created_at) VALUES (?, ?, ?, ?)",
                (normalize_code(code), username, subject_id, datetime.now().isoformat()),
            )
            db.commit()
            return True
        except sqlite3.IntegrityError:
            db.rollback()
            return False

    @staticmethod
    def resolve(code: str) -> tuple[str, str] | None:
        db = get_db()
        row = db.execute(
            "SELECT username, subject_id FROM subject_codes WHERE code = ?",
            (normalize_code(code),),
        ).fetchone()
        if not row:
            return None
        return row["username"], row["subject_id"]


# ── Teacher Profiles & Groups ────────────────────────────────────────


class TeacherProfileStoreDB:

    COLLECTION = "teacher_profiles"

    @staticmethod
    def load(username: str) -> Optional[TeacherProfile]:
        data = get_record(TeacherProfileStoreDB.COLLECTION, username)
        if data is None:
            return None
        return TeacherProfile.from_dict(data)

    @staticmethod
    def save(profile: TeacherProfile) -> None:
        put_record(TeacherProfileStoreDB.COLLECTION, profile.username, profile.to_dict())


class TeacherGroupStoreDB:
    """Ordered list of a teacher's class groups, stored under one key."""

    COLLECTION = "teacher_groups"

    @staticmethod
    def load(username: str) -> list[ClassGroup]:
        data = get_record(TeacherGroupStoreDB.COLLECTION, username) or []
        return [ClassGroup.from_dict(g) for g in data]

    @staticmethod
    def save(username: str, groups: list[ClassGroup]) -> None:
        put_record(TeacherGroupStoreDB.COLLECTION, username, [g.to_dict() for g in groups])


# ── Workflow Sessions ────────────────────────────────────────────────


class WorkflowSessionDB:
    """Per-user session context for the student wizard or teacher workflow."""

    COLLECTION = "workflow_sessions"

    @staticmethod
    def load(username: str) -> dict:
        return get_record(WorkflowSessionDB.COLLECTION, username) or {}

    @staticmethod
    def save(username: str, data: dict) -> None:
        put_record(WorkflowSessionDB.COLLECTION, username, data)
