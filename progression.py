"""
Student progression — the onboarding wizard and the adaptive lesson loop.

REGISTRATION -> WEAK_AREAS -> ASSESSMENT -> ANALYSIS -> DASHBOARD_HUB <-> LESSON

The wizard state lives in an explicit StudentSession record (one per
username) that is loaded for every call and saved after every transition.
Generation calls are the only slow steps; while one runs the session carries
an in-flight marker that rejects a duplicate submit.
"""

from __future__ import annotations

import logging
import random
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from flask import current_app

from content_generator import ContentGenerator, get_generator
from db_stores import StudentProfileStoreDB, SubjectCodeIndexDB, WorkflowSessionDB
from errors import RequestInFlight, ValidationError
from generation import enrich_placement, evaluate_answer, generate_assessment, generate_lesson
from models import (
    LEARNING_STYLES,
    LEVEL_ADVANCED,
    LEVEL_BEGINNER,
    LEVEL_INTERMEDIATE,
    NEXT_RETRY,
    AssessmentQuestion,
    FeedbackResponse,
    LessonContent,
    StudentProfile,
    SubjectInstance,
    clean_text,
    generate_subject_code,
    new_id,
)

logger = logging.getLogger(__name__)

STEP_REGISTRATION = "REGISTRATION"
STEP_WEAK_AREAS = "WEAK_AREAS"
STEP_ASSESSMENT = "ASSESSMENT"
STEP_ANALYSIS = "ANALYSIS"
STEP_HUB = "DASHBOARD_HUB"
STEP_LESSON = "LESSON"

NEXT_MODULE_TOPIC = "Next module"
MAX_CODE_ATTEMPTS = 50


# ── Scoring rules ───────────────────────────────────────────

def compute_score(answers: list[dict]) -> float:
    """Percentage of correct answers, 0-100."""
    if not answers:
        return 0.0
    correct = sum(1 for a in answers if a.get("correct"))
    return 100 * (correct / len(answers))


def level_for_score(score: float) -> str:
    """Thresholds are strict: exactly 40 or 80 stays Intermediate."""
    if score < 40:
        return LEVEL_BEGINNER
    if score > 80:
        return LEVEL_ADVANCED
    return LEVEL_INTERMEDIATE


def entry_topic(subject: SubjectInstance) -> str:
    if subject.topics_completed == 0:
        return f"Introduction to {subject.name}"
    return f"Continuation of {subject.name}"


def next_topic(feedback: FeedbackResponse, current_topic: str) -> str:
    if feedback.next_action == NEXT_RETRY:
        return f"Review: {current_topic}"
    return feedback.suggested_next_topic or NEXT_MODULE_TOPIC


def mint_subject(username: str, name: str, rng: random.Random | None = None) -> SubjectInstance:
    """Create a SubjectInstance whose code is claimed in the lookup index."""
    subject_id = new_id("subj")
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_subject_code(name, rng)
        if SubjectCodeIndexDB.register(code, username, subject_id):
            return SubjectInstance(id=subject_id, name=name, code=code)
    raise RuntimeError(f"Could not mint a unique code for subject {name!r}")


# ── Session context ─────────────────────────────────────────

@dataclass
class StudentSession:
    username: str
    step: str = STEP_REGISTRATION
    registration: dict = field(default_factory=dict)
    weak_areas: list[str] = field(default_factory=list)
    learning_style: Optional[str] = None
    questions: list[AssessmentQuestion] = field(default_factory=list)
    answers: list[dict] = field(default_factory=list)
    question_index: int = 0
    active_subject_id: Optional[str] = None
    lesson: Optional[LessonContent] = None
    selected_option: Optional[int] = None
    feedback: Optional[FeedbackResponse] = None
    in_flight_since: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "role": "student",
            "step": self.step,
            "registration": dict(self.registration),
            "weakAreas": list(self.weak_areas),
            "learningStyle": self.learning_style,
            "questions": [q.to_dict() for q in self.questions],
            "answers": list(self.answers),
            "questionIndex": self.question_index,
            "activeSubjectId": self.active_subject_id,
            "lesson": self.lesson.to_dict() if self.lesson else None,
            "selectedOption": self.selected_option,
            "feedback": self.feedback.to_dict() if self.feedback else None,
            "inFlightSince": self.in_flight_since,
        }

    @staticmethod
    def from_dict(username: str, data: dict) -> StudentSession:
        return StudentSession(
            username=username,
            step=data.get("step", STEP_REGISTRATION),
            registration=dict(data.get("registration") or {}),
            weak_areas=list(data.get("weakAreas") or []),
            learning_style=data.get("learningStyle"),
            questions=[AssessmentQuestion.from_dict(q) for q in data.get("questions") or []],
            answers=list(data.get("answers") or []),
            question_index=int(data.get("questionIndex", 0)),
            active_subject_id=data.get("activeSubjectId"),
            lesson=LessonContent.from_dict(data["lesson"]) if data.get("lesson") else None,
            selected_option=data.get("selectedOption"),
            feedback=FeedbackResponse.from_dict(data["feedback"]) if data.get("feedback") else None,
            in_flight_since=data.get("inFlightSince"),
        )


# ── Workflow ────────────────────────────────────────────────

class StudentProgression:
    """Drives one student's wizard; every public method is one transition."""

    def __init__(
        self,
        username: str,
        generator: ContentGenerator,
        *,
        weak_area_slots: int = 2,
        assessment_size: int = 10,
        in_flight_ttl: float = 45,
    ) -> None:
        self.username = username
        self.generator = generator
        self.weak_area_slots = weak_area_slots
        self.assessment_size = assessment_size
        self.in_flight_ttl = in_flight_ttl
        self.profile = StudentProfileStoreDB.load(username)
        stored = WorkflowSessionDB.load(username)
        if stored.get("role") == "student":
            self.session = StudentSession.from_dict(username, stored)
        else:
            self.session = self._fresh_session()

    @classmethod
    def for_user(cls, username: str) -> StudentProgression:
        cfg = current_app.config
        return cls(
            username,
            get_generator(),
            weak_area_slots=cfg.get("WEAK_AREA_SLOTS", 2),
            assessment_size=cfg.get("ASSESSMENT_SIZE", 10),
            in_flight_ttl=cfg.get("GENERATION_TIMEOUT_SECONDS", 30) + cfg.get("IN_FLIGHT_GRACE_SECONDS", 15),
        )

    # -- session plumbing --

    def _fresh_session(self) -> StudentSession:
        step = STEP_HUB if self.profile is not None else STEP_REGISTRATION
        return StudentSession(username=self.username, step=step)

    def _save(self) -> None:
        WorkflowSessionDB.save(self.username, self.session.to_dict())

    def _expect(self, *steps: str) -> None:
        if self.session.step not in steps:
            raise ValidationError(f"Not available while at step {self.session.step}.")

    def is_busy(self) -> bool:
        since = self.session.in_flight_since
        return since is not None and (time.time() - since) < self.in_flight_ttl

    @contextmanager
    def _in_flight(self):
        if self.is_busy():
            raise RequestInFlight()
        self.session.in_flight_since = time.time()
        self._save()
        try:
            yield
        finally:
            self.session.in_flight_since = None
            self._save()

    def _active_subject(self) -> SubjectInstance:
        subject = None
        if self.profile is not None and self.session.active_subject_id:
            subject = self.profile.find_subject(self.session.active_subject_id)
        if subject is None:
            raise ValidationError("No active subject.")
        return subject

    def _load_lesson(self, topic: str, subject_name: str) -> LessonContent:
        self.session.lesson = None
        self.session.selected_option = None
        self.session.feedback = None
        self._save()
        lesson = generate_lesson(self.generator, self.profile, topic, subject_name)
        lesson.id = new_id("lsn")
        self.session.lesson = lesson
        return lesson

    # -- transitions --

    def start(self) -> StudentSession:
        """Begin a new session: straight to the hub when a profile exists."""
        self.session = self._fresh_session()
        self._save()
        return self.session

    def submit_registration(self, name: str, school: str, grade: str, division: str) -> None:
        self._expect(STEP_REGISTRATION)
        form = {
            "name": clean_text(name, "name"),
            "school": clean_text(school, "school"),
            "grade": clean_text(grade, "grade"),
            "division": clean_text(division, "division"),
        }
        missing = [k for k, v in form.items() if not v]
        if missing:
            raise ValidationError(f"Required: {', '.join(missing)}.")
        self.session.registration = form
        self.session.step = STEP_WEAK_AREAS
        self._save()

    def submit_weak_areas(self, weak_areas: list[str], learning_style: str) -> list[AssessmentQuestion]:
        self._expect(STEP_WEAK_AREAS)
        if not isinstance(weak_areas, list) or not all(isinstance(w, str) for w in weak_areas):
            raise ValidationError("Weak areas must be a list of text entries.")
        if len(weak_areas) > self.weak_area_slots:
            raise ValidationError(f"At most {self.weak_area_slots} weak areas.")
        wanted = clean_text(learning_style, "learningStyle").lower()
        style = next((s for s in LEARNING_STYLES if s.lower() == wanted), None)
        if style is None:
            raise ValidationError(f"Learning style must be one of: {', '.join(LEARNING_STYLES)}.")

        with self._in_flight():
            questions = generate_assessment(
                self.generator, self.session.registration["grade"], self.assessment_size
            )
            self.session.weak_areas = [w.strip() for w in weak_areas if w.strip()]
            self.session.learning_style = style
            self.session.questions = questions
            self.session.answers = []
            self.session.question_index = 0
            self.session.step = STEP_ASSESSMENT
        return questions

    def answer_assessment(self, selected_index: int) -> Optional[StudentProfile]:
        """Record one answer; returns the new profile after the last question."""
        self._expect(STEP_ASSESSMENT)
        question = self.session.questions[self.session.question_index]
        if not isinstance(selected_index, int) or not (0 <= selected_index < len(question.options)):
            raise ValidationError("Choose one of the listed options.")

        self.session.answers.append({
            "questionId": question.id,
            "correct": question.is_correct(selected_index),
            "subject": question.subject,
        })
        if self.session.question_index < len(self.session.questions) - 1:
            self.session.question_index += 1
            self._save()
            return None

        self.session.step = STEP_ANALYSIS
        self._save()
        return self._analyze()

    def _analyze(self) -> StudentProfile:
        s = self.session
        score = compute_score(s.answers)
        with self._in_flight():
            interests, level = enrich_placement(
                self.generator,
                s.registration["grade"],
                s.weak_areas,
                score,
                s.learning_style,
                level_for_score(score),
            )
            profile = StudentProfile(
                username=self.username,
                name=s.registration["name"],
                school=s.registration["school"],
                grade=s.registration["grade"],
                division=s.registration["division"],
                learning_style=s.learning_style,
                current_level=level,
                weak_areas=list(s.weak_areas),
                interests=interests,
                subjects=[mint_subject(self.username, area) for area in s.weak_areas],
            )
            StudentProfileStoreDB.save(profile)
            self.profile = profile
            logger.info("student profile created user=%s score=%.0f level=%s", self.username, score, level)

            s.questions = []
            s.answers = []
            s.question_index = 0
            s.step = STEP_HUB
        return profile

    def add_subject(self, name: str) -> SubjectInstance:
        self._expect(STEP_HUB)
        name = clean_text(name, "name")
        if not name:
            raise ValidationError("Subject name is required.")
        subject = mint_subject(self.username, name)
        self.profile.subjects.append(subject)
        StudentProfileStoreDB.save(self.profile)
        return subject

    def enter_subject(self, subject_id: str) -> LessonContent:
        self._expect(STEP_HUB)
        subject = self.profile.find_subject(subject_id)
        if subject is None:
            raise ValidationError("Unknown subject.")
        with self._in_flight():
            self.session.active_subject_id = subject.id
            self.session.step = STEP_LESSON
            return self._load_lesson(entry_topic(subject), subject.name)

    def select_option(self, index: int) -> None:
        self._expect(STEP_LESSON)
        if self.is_busy():
            raise RequestInFlight()
        lesson = self.session.lesson
        if lesson is None:
            raise ValidationError("The lesson is still loading.")
        if self.session.feedback is not None:
            raise ValidationError("This answer has already been submitted.")
        if not isinstance(index, int) or not (0 <= index < len(lesson.question.options)):
            raise ValidationError("Choose one of the listed options.")
        self.session.selected_option = index
        self._save()

    def submit_answer(self) -> FeedbackResponse:
        self._expect(STEP_LESSON)
        lesson = self.session.lesson
        if lesson is None:
            raise ValidationError("The lesson is still loading.")
        if self.session.feedback is not None:
            raise ValidationError("This answer has already been submitted.")
        if self.session.selected_option is None:
            raise ValidationError("Select an answer first.")

        subject = self._active_subject()
        if lesson.id and subject.last_lesson_id == lesson.id:
            raise ValidationError("This answer has already been submitted.")
        with self._in_flight():
            feedback = evaluate_answer(self.generator, self.profile, lesson, self.session.selected_option)
            subject.last_lesson_id = lesson.id or None
            if feedback.is_correct:
                subject.record_correct_answer()
            StudentProfileStoreDB.save(self.profile)
            self.session.feedback = feedback
        return feedback

    def next_lesson(self) -> LessonContent:
        self._expect(STEP_LESSON)
        if self.session.feedback is None or self.session.lesson is None:
            raise ValidationError("Submit an answer first.")
        subject = self._active_subject()
        topic = next_topic(self.session.feedback, self.session.lesson.topic)
        with self._in_flight():
            return self._load_lesson(topic, subject.name)

    def back_to_hub(self) -> None:
        self._expect(STEP_HUB, STEP_LESSON)
        if self.is_busy():
            raise RequestInFlight()
        self.session.active_subject_id = None
        self.session.lesson = None
        self.session.selected_option = None
        self.session.feedback = None
        self.session.step = STEP_HUB
        self._save()

    # -- read side --

    def view(self) -> dict:
        """Client-facing state; answer keys stay hidden until submission."""
        s = self.session
        out: dict = {"step": s.step, "busy": self.is_busy()}

        if s.step == STEP_REGISTRATION:
            out["registration"] = dict(s.registration)
        elif s.step == STEP_WEAK_AREAS:
            out["weakAreaSlots"] = self.weak_area_slots
            out["learningStyles"] = list(LEARNING_STYLES)
        elif s.step == STEP_ASSESSMENT:
            q = s.questions[s.question_index]
            out["question"] = {"id": q.id, "subject": q.subject, "text": q.text, "options": q.options}
            out["questionNumber"] = s.question_index + 1
            out["totalQuestions"] = len(s.questions)

        if self.profile is not None and s.step in (STEP_HUB, STEP_LESSON):
            out["profile"] = self.profile.to_dict()

        if s.step == STEP_LESSON:
            out["activeSubjectId"] = s.active_subject_id
            out["selectedOption"] = s.selected_option
            if s.lesson is not None:
                lesson = s.lesson.to_dict()
                if s.feedback is None:
                    lesson["question"].pop("correctIndex", None)
                out["lesson"] = lesson
            out["feedback"] = s.feedback.to_dict() if s.feedback else None
        return out
