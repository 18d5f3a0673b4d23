"""
Domain records for EduAdapt.

Student and teacher profiles, subject instances, class groups and the
ephemeral lesson/assessment payloads. Every record converts to and from the
camelCase JSON dicts stored in the record store and returned by the API.
"""

from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

from errors import ValidationError

# ── Enumerations ────────────────────────────────────────────

ROLE_STUDENT = "STUDENT"
ROLE_TEACHER = "TEACHER"
ROLES = (ROLE_STUDENT, ROLE_TEACHER)

LEARNING_STYLES = ("Visual", "Auditory", "Kinesthetic", "Reading/Writing")

LEVEL_BEGINNER = "Beginner"
LEVEL_INTERMEDIATE = "Intermediate"
LEVEL_ADVANCED = "Advanced"
LEVELS = (LEVEL_BEGINNER, LEVEL_INTERMEDIATE, LEVEL_ADVANCED)

STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"

NEXT_ADVANCE = "ADVANCE"
NEXT_REINFORCE = "REINFORCE"
NEXT_RETRY = "RETRY"
NEXT_ACTIONS = (NEXT_ADVANCE, NEXT_REINFORCE, NEXT_RETRY)

ENGAGEMENT_HIGH = "High"
ENGAGEMENT_MEDIUM = "Medium"
ENGAGEMENT_LOW = "Low"

# Fixed subject mix of the diagnostic assessment
ASSESSMENT_SUBJECTS = ("Math", "Language", "Natural Science", "History")

PROGRESS_STEP = 10
PROGRESS_MAX = 100


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def generate_subject_code(subject_name: str, rng: random.Random | None = None) -> str:
    """Human-typeable lookup token, e.g. ``ALG-4821``."""
    rng = rng or random.SystemRandom()
    prefix = subject_name.strip()[:3].upper()
    return f"{prefix}-{rng.randint(1000, 9999)}"


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


def clean_text(value, label: str) -> str:
    """Strip a free-text field; null reads as empty, other non-strings are rejected."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"'{label}' must be text.")
    return value.strip()


# ── Student side ────────────────────────────────────────────

@dataclass
class SubjectInstance:
    id: str
    name: str
    code: str
    progress: int = 0  # 0-100
    topics_completed: int = 0
    status: str = STATUS_ACTIVE
    last_lesson_id: Optional[str] = None  # last lesson whose answer was evaluated

    def record_correct_answer(self) -> None:
        self.progress = min(self.progress + PROGRESS_STEP, PROGRESS_MAX)
        self.topics_completed += 1

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "progress": self.progress,
            "topicsCompleted": self.topics_completed,
            "status": self.status,
        }
        if self.last_lesson_id:
            d["lastLessonId"] = self.last_lesson_id
        return d

    @staticmethod
    def from_dict(data: dict) -> SubjectInstance:
        return SubjectInstance(
            id=data["id"],
            name=data["name"],
            code=data["code"],
            progress=max(0, min(PROGRESS_MAX, int(data.get("progress", 0)))),
            topics_completed=max(0, int(data.get("topicsCompleted", 0))),
            status=data.get("status", STATUS_ACTIVE),
            last_lesson_id=data.get("lastLessonId"),
        )


@dataclass
class StudentProfile:
    username: str
    name: str
    school: str
    grade: str
    division: str
    learning_style: str
    current_level: str
    weak_areas: list[str] = field(default_factory=list)
    interests: list[str] = field(default_factory=list)
    subjects: list[SubjectInstance] = field(default_factory=list)

    def find_subject(self, subject_id: str) -> Optional[SubjectInstance]:
        for s in self.subjects:
            if s.id == subject_id:
                return s
        return None

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "name": self.name,
            "school": self.school,
            "grade": self.grade,
            "division": self.division,
            "learningStyle": self.learning_style,
            "currentLevel": self.current_level,
            "weakAreas": list(self.weak_areas),
            "interests": list(self.interests),
            "subjects": [s.to_dict() for s in self.subjects],
        }

    @staticmethod
    def from_dict(data: dict) -> StudentProfile:
        level = data.get("currentLevel")
        if level not in LEVELS:
            level = LEVEL_INTERMEDIATE
        return StudentProfile(
            username=data.get("username", ""),
            name=data["name"],
            school=data.get("school", ""),
            grade=data.get("grade", ""),
            division=data.get("division", ""),
            learning_style=data.get("learningStyle", LEARNING_STYLES[0]),
            current_level=level,
            weak_areas=list(data.get("weakAreas", [])),
            interests=list(data.get("interests", [])),
            subjects=[SubjectInstance.from_dict(s) for s in data.get("subjects", [])],
        )


# ── Generated content ───────────────────────────────────────

@dataclass
class Question:
    id: str
    text: str
    options: list[str]
    correct_index: int

    def is_correct(self, selected_index: int) -> bool:
        return selected_index == self.correct_index

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "options": list(self.options),
            "correctIndex": self.correct_index,
        }

    @staticmethod
    def from_dict(data: dict) -> Question:
        return Question(
            id=str(data["id"]),
            text=data["text"],
            options=list(data["options"]),
            correct_index=int(data["correctIndex"]),
        )


@dataclass
class AssessmentQuestion(Question):
    subject: str = ""

    def to_dict(self) -> dict:
        d = super().to_dict()
        d["subject"] = self.subject
        return d

    @staticmethod
    def from_dict(data: dict) -> AssessmentQuestion:
        return AssessmentQuestion(
            id=str(data["id"]),
            text=data["text"],
            options=list(data["options"]),
            correct_index=int(data["correctIndex"]),
            subject=data.get("subject", ""),
        )


@dataclass
class VideoLink:
    title: str
    url: str


@dataclass
class LessonContent:
    topic: str
    explanation: str
    format: str
    question: Question
    video_links: list[VideoLink] = field(default_factory=list)
    id: str = ""

    def to_dict(self) -> dict:
        d = {
            "topic": self.topic,
            "explanation": self.explanation,
            "format": self.format,
            "question": self.question.to_dict(),
        }
        if self.id:
            d["id"] = self.id
        if self.video_links:
            d["videoLinks"] = [{"title": v.title, "url": v.url} for v in self.video_links]
        return d

    @staticmethod
    def from_dict(data: dict) -> LessonContent:
        return LessonContent(
            topic=data["topic"],
            explanation=data["explanation"],
            format=data.get("format", ""),
            question=Question.from_dict(data["question"]),
            video_links=[VideoLink(v["title"], v["url"]) for v in data.get("videoLinks", [])],
            id=data.get("id", ""),
        )


@dataclass
class FeedbackResponse:
    is_correct: bool
    feedback_text: str
    next_action: str = NEXT_ADVANCE
    suggested_next_topic: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "isCorrect": self.is_correct,
            "feedbackText": self.feedback_text,
            "nextAction": self.next_action,
        }
        if self.suggested_next_topic:
            d["suggestedNextTopic"] = self.suggested_next_topic
        return d

    @staticmethod
    def from_dict(data: dict) -> FeedbackResponse:
        return FeedbackResponse(
            is_correct=bool(data["isCorrect"]),
            feedback_text=data.get("feedbackText", ""),
            next_action=data.get("nextAction", NEXT_ADVANCE),
            suggested_next_topic=data.get("suggestedNextTopic") or None,
        )


# ── Teacher side ────────────────────────────────────────────

@dataclass
class TeacherProfile:
    username: str
    first_name: str
    last_name: str
    specialization: str

    def to_dict(self) -> dict:
        return {
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "specialization": self.specialization,
        }

    @staticmethod
    def from_dict(data: dict) -> TeacherProfile:
        return TeacherProfile(
            username=data.get("username", ""),
            first_name=data["firstName"],
            last_name=data["lastName"],
            specialization=data["specialization"],
        )


def engagement_for(progress: int) -> str:
    if progress > 70:
        return ENGAGEMENT_HIGH
    if progress > 30:
        return ENGAGEMENT_MEDIUM
    return ENGAGEMENT_LOW


@dataclass
class StudentPerformance:
    """Teacher-facing snapshot of one student's subject, frozen at link time."""

    student_name: str
    average_score: int
    completed_modules: int
    struggling_topic: str
    engagement_level: str
    school: Optional[str] = None
    grade: Optional[str] = None

    @staticmethod
    def from_subject(profile: StudentProfile, subject: SubjectInstance) -> StudentPerformance:
        return StudentPerformance(
            student_name=profile.name,
            school=profile.school,
            grade=profile.grade,
            average_score=subject.progress,
            completed_modules=subject.topics_completed,
            struggling_topic=profile.weak_areas[0] if profile.weak_areas else "Not reported",
            engagement_level=engagement_for(subject.progress),
        )

    def to_dict(self) -> dict:
        d = {
            "studentName": self.student_name,
            "averageScore": self.average_score,
            "completedModules": self.completed_modules,
            "strugglingTopic": self.struggling_topic,
            "engagementLevel": self.engagement_level,
        }
        if self.school is not None:
            d["school"] = self.school
        if self.grade is not None:
            d["grade"] = self.grade
        return d

    @staticmethod
    def from_dict(data: dict) -> StudentPerformance:
        return StudentPerformance(
            student_name=data["studentName"],
            school=data.get("school"),
            grade=data.get("grade"),
            average_score=int(data.get("averageScore", 0)),
            completed_modules=int(data.get("completedModules", 0)),
            struggling_topic=data.get("strugglingTopic", ""),
            engagement_level=data.get("engagementLevel", ENGAGEMENT_LOW),
        )


# Canned payload behind the reserved demo code
DEMO_CODE = "DEMO-1234"
DEMO_PERFORMANCE = StudentPerformance(
    student_name="Demo Student",
    average_score=85,
    completed_modules=3,
    struggling_topic="Simulated diagnostic",
    engagement_level=ENGAGEMENT_HIGH,
)


@dataclass
class ClassGroup:
    id: str
    school: str
    grade: str
    division: str
    students: list[StudentPerformance] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "school": self.school,
            "grade": self.grade,
            "division": self.division,
            "students": [s.to_dict() for s in self.students],
        }

    def summary(self) -> dict:
        """Student count and class average, rounded half up; None while empty."""
        average = None
        if self.students:
            mean = sum(s.average_score for s in self.students) / len(self.students)
            average = int(mean + 0.5)
        return {"studentCount": len(self.students), "averageScore": average}

    @staticmethod
    def from_dict(data: dict) -> ClassGroup:
        return ClassGroup(
            id=data["id"],
            school=data.get("school", ""),
            grade=data.get("grade", ""),
            division=data.get("division", ""),
            students=[StudentPerformance.from_dict(s) for s in data.get("students", [])],
        )
