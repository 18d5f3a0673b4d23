"""Generation tasks — diagnostic quiz, placement enrichment, lessons, grading, insight.

Each task builds a prompt, asks the ContentGenerator for a fixed output shape,
validates what comes back, and on any failure returns a deterministic
fallback instead. The fallback is a parameter so callers (and tests) can swap
the strategy.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from content_generator import ContentGenerator
from errors import GenerationFailure
from models import (
    ASSESSMENT_SUBJECTS,
    LEVEL_INTERMEDIATE,
    NEXT_ACTIONS,
    NEXT_ADVANCE,
    AssessmentQuestion,
    FeedbackResponse,
    LessonContent,
    Question,
    StudentPerformance,
    StudentProfile,
    VideoLink,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

INSIGHT_UNAVAILABLE = "Analysis unavailable."
INSIGHT_EMPTY_GROUP = "Add students to get AI recommendations."


def _with_fallback(task: str, call: Callable[[], T], fallback: Callable[[], T]) -> T:
    try:
        return call()
    except GenerationFailure as exc:
        logger.warning("generation fallback task=%s reason=%s", task, exc)
    except Exception:
        logger.warning("generation fallback task=%s reason=unexpected error", task, exc_info=True)
    return fallback()


def _require_str(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise GenerationFailure(f"missing or empty '{key}'")
    return value.strip()


def _parse_options(raw: Any, min_options: int, max_options: int) -> list[str]:
    if not isinstance(raw, list) or not (min_options <= len(raw) <= max_options):
        raise GenerationFailure("invalid options list")
    options = [str(o).strip() for o in raw]
    if any(not o for o in options):
        raise GenerationFailure("empty option")
    return options


def _parse_correct_index(raw: Any, n_options: int) -> int:
    if isinstance(raw, bool):
        raise GenerationFailure("correctIndex is not an integer")
    try:
        idx = int(raw)
    except (TypeError, ValueError):
        raise GenerationFailure("correctIndex is not an integer")
    if not (0 <= idx < n_options):
        raise GenerationFailure("correctIndex out of range")
    return idx


# ── Diagnostic assessment ───────────────────────────────────

ASSESSMENT_SHAPE = {
    "questions": [
        {
            "id": "string",
            "subject": "one of: " + ", ".join(ASSESSMENT_SUBJECTS),
            "text": "string",
            "options": ["string", "string", "string"],
            "correctIndex": "integer index into options",
        }
    ]
}


def assessment_prompt(grade: str, size: int) -> str:
    return f"""
Generate a diagnostic quiz of exactly {size} questions for a student in grade "{grade}".

Requirements:
1. Spread the questions across these subjects: {", ".join(ASSESSMENT_SUBJECTS)}.
2. Multiple choice with 3 or 4 options each; exactly one correct option.
3. Academic level appropriate for the stated grade.
"""


def fallback_assessment(size: int = 10) -> list[AssessmentQuestion]:
    """Placeholder quiz used when generation fails; still answerable."""
    return [
        AssessmentQuestion(
            id=f"mock_{i}",
            subject=ASSESSMENT_SUBJECTS[i % len(ASSESSMENT_SUBJECTS)],
            text=f"Diagnostic question {i + 1} (offline placeholder)",
            options=["Option A", "Option B", "Option C"],
            correct_index=0,
        )
        for i in range(size)
    ]


def parse_assessment(data: dict, size: int) -> list[AssessmentQuestion]:
    raw_questions = data.get("questions")
    if not isinstance(raw_questions, list):
        raise GenerationFailure("missing 'questions' list")

    questions: list[AssessmentQuestion] = []
    seen_ids: set[str] = set()
    for i, raw in enumerate(raw_questions):
        if not isinstance(raw, dict):
            raise GenerationFailure(f"question {i} is not an object")
        options = _parse_options(raw.get("options"), 3, 4)
        qid = str(raw.get("id") or "").strip()
        if not qid or qid in seen_ids:
            qid = f"q_{i + 1}"
        seen_ids.add(qid)
        subject = raw.get("subject")
        questions.append(AssessmentQuestion(
            id=qid,
            subject=subject.strip() if isinstance(subject, str) and subject.strip()
            else ASSESSMENT_SUBJECTS[i % len(ASSESSMENT_SUBJECTS)],
            text=_require_str(raw, "text"),
            options=options,
            correct_index=_parse_correct_index(raw.get("correctIndex"), len(options)),
        ))

    if len(questions) < size:
        raise GenerationFailure(f"expected {size} questions, got {len(questions)}")
    return questions[:size]


def generate_assessment(
    generator: ContentGenerator,
    grade: str,
    size: int = 10,
    fallback: Callable[[int], list[AssessmentQuestion]] = fallback_assessment,
) -> list[AssessmentQuestion]:
    return _with_fallback(
        "assessment",
        lambda: parse_assessment(generator.generate(assessment_prompt(grade, size), ASSESSMENT_SHAPE), size),
        lambda: fallback(size),
    )


# ── Placement enrichment ────────────────────────────────────

INTERESTS_SHAPE = {"interests": ["string", "string", "string"]}


def enrichment_prompt(grade: str, weak_areas: list[str], score: float, learning_style: str) -> str:
    return f"""
Analyse a student's profile:
- Grade: {grade}
- Self-reported weak areas: {", ".join(weak_areas) or "none"}
- Diagnostic test result: {score:.0f}% correct
- Preferred learning style: {learning_style}

Produce a list of 3 key interests/topics to start their learning path.
"""


def fallback_enrichment(weak_areas: list[str]) -> tuple[list[str], str]:
    return list(weak_areas), LEVEL_INTERMEDIATE


def parse_interests(data: dict) -> list[str]:
    raw = data.get("interests")
    if not isinstance(raw, list):
        raise GenerationFailure("missing 'interests' list")
    interests = [str(i).strip() for i in raw if str(i).strip()]
    if not interests:
        raise GenerationFailure("empty 'interests' list")
    return interests


def enrich_placement(
    generator: ContentGenerator,
    grade: str,
    weak_areas: list[str],
    score: float,
    learning_style: str,
    level: str,
    fallback: Callable[[list[str]], tuple[list[str], str]] = fallback_enrichment,
) -> tuple[list[str], str]:
    """Return (interests, level); the fallback forces the level to Intermediate."""
    prompt = enrichment_prompt(grade, weak_areas, score, learning_style)
    return _with_fallback(
        "enrichment",
        lambda: (parse_interests(generator.generate(prompt, INTERESTS_SHAPE)), level),
        lambda: fallback(weak_areas),
    )


# ── Lessons ─────────────────────────────────────────────────

LESSON_SHAPE = {
    "topic": "string",
    "explanation": "string adapted to the learning style",
    "format": "string, e.g. Diagram, Short text, Podcast script",
    "videoLinks": [{"title": "string", "url": "string"}],
    "question": {
        "id": "string",
        "text": "string",
        "options": ["string", "string", "string", "string"],
        "correctIndex": "integer index into options",
    },
}

_STYLE_HINTS = {
    "Visual": "use graphic descriptions, diagrams and spatial metaphors",
    "Auditory": "write conversationally, as if spoken aloud",
    "Kinesthetic": "make it hands-on with concrete activities",
    "Reading/Writing": "use structured prose, lists and definitions",
}


def lesson_prompt(profile: StudentProfile, topic: str, subject: str | None = None) -> str:
    subject_line = f"Specific subject: {subject}." if subject else ""
    hint = _STYLE_HINTS.get(profile.learning_style, "adapt to the learner")
    return f"""
Generate an educational micro-lesson about "{topic}" for a student at level "{profile.current_level}" ({profile.grade}).
{subject_line}
Learning style: {profile.learning_style}.

Rules:
1. Adapt the explanation to the style ({hint}).
2. Include one multiple-choice validation question.
3. Recommend 2 educational videos (title and URL; a search URL is fine).
"""


def fallback_lesson(topic: str) -> LessonContent:
    return LessonContent(
        topic=topic,
        explanation="The lesson content could not be generated. Please try again.",
        format="Standard text",
        question=Question(id="err_1", text="Try again?", options=["Yes", "No"], correct_index=0),
    )


def parse_lesson(data: dict, requested_topic: str) -> LessonContent:
    raw_q = data.get("question")
    if not isinstance(raw_q, dict):
        raise GenerationFailure("missing 'question' object")
    options = _parse_options(raw_q.get("options"), 2, 6)
    question = Question(
        id=str(raw_q.get("id") or "lesson_q"),
        text=_require_str(raw_q, "text"),
        options=options,
        correct_index=_parse_correct_index(raw_q.get("correctIndex"), len(options)),
    )

    links = []
    for v in data.get("videoLinks") or []:
        if isinstance(v, dict) and v.get("title") and v.get("url"):
            links.append(VideoLink(title=str(v["title"]), url=str(v["url"])))

    topic = data.get("topic")
    fmt = data.get("format")
    return LessonContent(
        topic=topic.strip() if isinstance(topic, str) and topic.strip() else requested_topic,
        explanation=_require_str(data, "explanation"),
        format=fmt.strip() if isinstance(fmt, str) and fmt.strip() else "Text",
        question=question,
        video_links=links,
    )


def generate_lesson(
    generator: ContentGenerator,
    profile: StudentProfile,
    topic: str,
    subject: str | None = None,
    fallback: Callable[[str], LessonContent] = fallback_lesson,
) -> LessonContent:
    return _with_fallback(
        "lesson",
        lambda: parse_lesson(generator.generate(lesson_prompt(profile, topic, subject), LESSON_SHAPE), topic),
        lambda: fallback(topic),
    )


# ── Answer evaluation ───────────────────────────────────────

FEEDBACK_SHAPE = {
    "isCorrect": "boolean",
    "feedbackText": "string, short and motivating",
    "nextAction": "one of: " + ", ".join(NEXT_ACTIONS),
    "suggestedNextTopic": "string",
}

FALLBACK_FEEDBACK_TEXT = "Connection problem. Your answer has been recorded."


def evaluation_prompt(profile: StudentProfile, lesson: LessonContent, selected_index: int) -> str:
    selected = lesson.question.options[selected_index]
    return f"""
A student (level {profile.current_level}) answered "{selected}" to: "{lesson.question.text}".
Options: {json.dumps(lesson.question.options)}
Correct option index: {lesson.question.correct_index}.

1. Give brief, motivating feedback.
2. Choose the next action: ADVANCE, REINFORCE or RETRY.
3. Suggest the next topic.
"""


def fallback_feedback(lesson: LessonContent, selected_index: int) -> FeedbackResponse:
    return FeedbackResponse(
        is_correct=lesson.question.is_correct(selected_index),
        feedback_text=FALLBACK_FEEDBACK_TEXT,
        next_action=NEXT_ADVANCE,
    )


def parse_feedback(data: dict) -> FeedbackResponse:
    is_correct = data.get("isCorrect")
    if not isinstance(is_correct, bool):
        raise GenerationFailure("'isCorrect' is not a boolean")
    next_action = str(data.get("nextAction", "")).strip().upper()
    if next_action not in NEXT_ACTIONS:
        raise GenerationFailure(f"invalid nextAction {next_action!r}")
    suggested = data.get("suggestedNextTopic")
    return FeedbackResponse(
        is_correct=is_correct,
        feedback_text=_require_str(data, "feedbackText"),
        next_action=next_action,
        suggested_next_topic=suggested.strip() if isinstance(suggested, str) and suggested.strip() else None,
    )


def evaluate_answer(
    generator: ContentGenerator,
    profile: StudentProfile,
    lesson: LessonContent,
    selected_index: int,
    fallback: Callable[[LessonContent, int], FeedbackResponse] = fallback_feedback,
) -> FeedbackResponse:
    return _with_fallback(
        "evaluation",
        lambda: parse_feedback(generator.generate(
            evaluation_prompt(profile, lesson, selected_index), FEEDBACK_SHAPE
        )),
        lambda: fallback(lesson, selected_index),
    )


# ── Teacher insight ─────────────────────────────────────────

def insight_prompt(students: list[StudentPerformance]) -> str:
    payload = json.dumps([s.to_dict() for s in students], ensure_ascii=False)
    return (
        "Analyse this class performance data and give a brief pedagogical "
        f"recommendation for the teacher (3 sentences at most):\n{payload}"
    )


def generate_teacher_insight(
    generator: ContentGenerator,
    students: list[StudentPerformance],
    fallback: Callable[[], str] = lambda: INSIGHT_UNAVAILABLE,
) -> str:
    if not students:
        return INSIGHT_EMPTY_GROUP

    def _call() -> str:
        text = generator.generate(insight_prompt(students), None)
        if not isinstance(text, str) or not text.strip():
            raise GenerationFailure("empty insight")
        return text.strip()

    return _with_fallback("insight", _call, fallback)
