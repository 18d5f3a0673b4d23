"""
Teacher aggregation — profile, class groups, student linking and insight.

Linking resolves a student's subject lookup code and appends a frozen
performance snapshot to the teacher's active group. The snapshot is a
gradebook entry: later student progress does not rewrite it.
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import current_app

from content_generator import ContentGenerator, get_generator
from db_stores import (
    StudentProfileStoreDB,
    SubjectCodeIndexDB,
    TeacherGroupStoreDB,
    TeacherProfileStoreDB,
    WorkflowSessionDB,
)
from errors import SubjectLookupError, ValidationError
from generation import generate_teacher_insight
from models import (
    DEMO_CODE,
    DEMO_PERFORMANCE,
    ClassGroup,
    StudentPerformance,
    TeacherProfile,
    clean_text,
    new_id,
    normalize_code,
)

logger = logging.getLogger(__name__)


def _required(fields: dict) -> dict:
    cleaned = {k: clean_text(v, k) for k, v in fields.items()}
    missing = [k for k, v in cleaned.items() if not v]
    if missing:
        raise ValidationError(f"Required: {', '.join(missing)}.")
    return cleaned


def lookup_performance(code: str, demo_enabled: bool = False) -> StudentPerformance:
    """Snapshot the subject behind ``code`` or raise SubjectLookupError."""
    wanted = normalize_code(code)
    hit = SubjectCodeIndexDB.resolve(wanted) if wanted else None
    if hit is not None:
        username, subject_id = hit
        profile = StudentProfileStoreDB.load(username)
        subject = profile.find_subject(subject_id) if profile else None
        if subject is not None:
            return StudentPerformance.from_subject(profile, subject)
        logger.warning("subject code %s indexed but subject missing for %s", wanted, username)

    if demo_enabled and wanted == DEMO_CODE:
        return StudentPerformance.from_dict(DEMO_PERFORMANCE.to_dict())
    raise SubjectLookupError()


def group_view(group: ClassGroup) -> dict:
    """A group as shown to the teacher: its snapshots plus the class summary."""
    return {**group.to_dict(), **group.summary()}


class TeacherWorkflow:
    """One teacher's view: profile, groups and the active group selection."""

    def __init__(self, username: str, generator: ContentGenerator, *, demo_enabled: bool = False) -> None:
        self.username = username
        self.generator = generator
        self.demo_enabled = demo_enabled
        self.profile = TeacherProfileStoreDB.load(username)
        self.groups = TeacherGroupStoreDB.load(username)
        stored = WorkflowSessionDB.load(username)
        self.active_group_id: Optional[str] = stored.get("activeGroupId") if stored.get("role") == "teacher" else None

    @classmethod
    def for_user(cls, username: str) -> TeacherWorkflow:
        return cls(username, get_generator(), demo_enabled=current_app.config.get("DEMO_CODE_ENABLED", False))

    def _save_session(self) -> None:
        WorkflowSessionDB.save(self.username, {"role": "teacher", "activeGroupId": self.active_group_id})

    def _require_profile(self) -> TeacherProfile:
        if self.profile is None:
            raise ValidationError("Set up your teacher profile first.")
        return self.profile

    def start(self) -> None:
        self.active_group_id = None
        self._save_session()

    def setup_profile(self, first_name: str, last_name: str, specialization: str) -> TeacherProfile:
        if self.profile is not None:
            raise ValidationError("Teacher profile is already set up.")
        f = _required({"firstName": first_name, "lastName": last_name, "specialization": specialization})
        profile = TeacherProfile(
            username=self.username,
            first_name=f["firstName"],
            last_name=f["lastName"],
            specialization=f["specialization"],
        )
        TeacherProfileStoreDB.save(profile)
        self.profile = profile
        return profile

    def create_group(self, school: str, grade: str, division: str) -> ClassGroup:
        self._require_profile()
        f = _required({"school": school, "grade": grade, "division": division})
        group = ClassGroup(id=new_id("grp"), school=f["school"], grade=f["grade"], division=f["division"])
        self.groups.append(group)
        TeacherGroupStoreDB.save(self.username, self.groups)
        self.active_group_id = group.id
        self._save_session()
        return group

    def select_group(self, group_id: str) -> ClassGroup:
        self._require_profile()
        group = self._find_group(group_id)
        if group is None:
            raise ValidationError("Unknown group.")
        self.active_group_id = group.id
        self._save_session()
        return group

    def _find_group(self, group_id: Optional[str]) -> Optional[ClassGroup]:
        for g in self.groups:
            if g.id == group_id:
                return g
        return None

    def active_group(self) -> ClassGroup:
        group = self._find_group(self.active_group_id)
        if group is None:
            raise ValidationError("Select a group first.")
        return group

    def link_student(self, code: str) -> StudentPerformance:
        self._require_profile()
        group = self.active_group()
        if not normalize_code(code):
            raise ValidationError("Lookup code is required.")
        performance = lookup_performance(code, self.demo_enabled)
        group.students.append(performance)
        TeacherGroupStoreDB.save(self.username, self.groups)
        logger.info("student linked teacher=%s group=%s", self.username, group.id)
        return performance

    def insight(self) -> str:
        self._require_profile()
        return generate_teacher_insight(self.generator, self.active_group().students)

    def view(self) -> dict:
        return {
            "profile": self.profile.to_dict() if self.profile else None,
            "groups": [group_view(g) for g in self.groups],
            "activeGroupId": self.active_group_id if self._find_group(self.active_group_id) else None,
        }
