"""
Test fixtures for EduAdapt.

Provides app, client, student_client, teacher_client and db fixtures with
file-based SQLite. Content generation goes through a scripted fake, and
Gemini is mocked globally to avoid API calls during tests.
"""

from __future__ import annotations

from collections import deque
from unittest.mock import MagicMock, patch

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from errors import GenerationFailure  # noqa: E402


def _task_for(output_shape: dict | None) -> str:
    if output_shape is None:
        return "insight"
    if "questions" in output_shape:
        return "assessment"
    if "interests" in output_shape:
        return "enrichment"
    if "explanation" in output_shape:
        return "lesson"
    if "isCorrect" in output_shape:
        return "evaluation"
    return "unknown"


class ScriptedGenerator:
    """ContentGenerator fake: replays queued responses per task.

    An unscripted call raises GenerationFailure, so every task falls back
    unless a test queues a response for it. Queued exceptions are raised.
    """

    def __init__(self) -> None:
        self.responses: dict[str, deque] = {}
        self.calls: list[tuple[str, str]] = []

    def queue(self, task: str, *responses) -> None:
        self.responses.setdefault(task, deque()).extend(responses)

    def calls_for(self, task: str) -> list[str]:
        return [prompt for t, prompt in self.calls if t == task]

    def generate(self, prompt, output_shape=None):
        task = _task_for(output_shape)
        self.calls.append((task, prompt))
        pending = self.responses.get(task)
        if not pending:
            raise GenerationFailure(f"no scripted response for {task}")
        response = pending.popleft()
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture(scope="session", autouse=True)
def mock_gemini():
    """Mock Google Generative AI globally to prevent API calls."""
    mock_model = MagicMock()
    mock_model.generate_content.return_value = MagicMock(text='{"ok": true}')

    with patch.dict("sys.modules", {
        "google.generativeai": MagicMock(),
    }):
        yield mock_model


@pytest.fixture(autouse=True)
def reset_circuit_breaker():
    from ai_resilience import get_circuit_breaker
    get_circuit_breaker().reset()
    yield
    get_circuit_breaker().reset()


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def app(tmp_path, generator):
    """Create app with file-based SQLite and the scripted generator."""
    from app import create_app

    db_file = str(tmp_path / "test.db")
    app = create_app({
        "TESTING": True,
        "DATABASE": db_file,
        "SECRET_KEY": "test-secret-key",
        "CONTENT_GENERATOR": generator,
        "DEMO_CODE_ENABLED": True,
    })

    # Requests push their own app context so g (db handle, login user) is per request
    with app.app_context():
        from database import init_db, run_migrations

        init_db()
        run_migrations()

    yield app


@pytest.fixture
def client(app):
    """Unauthenticated test client."""
    return app.test_client()


def _login_client(app, username: str, password: str, role: str):
    client = app.test_client()
    client.post("/register", json={"username": username, "password": password, "role": role})
    resp = client.post("/login", json={"username": username, "password": password, "role": role})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def student_client(app):
    """Authenticated test client logged in as a fresh student (alice)."""
    return _login_client(app, "alice", "pw1", "STUDENT")


@pytest.fixture
def teacher_client(app):
    """Authenticated test client logged in as a teacher with a profile."""
    client = _login_client(app, "mr_x", "pw2", "TEACHER")
    resp = client.post("/api/teacher/profile", json={
        "firstName": "Xavier",
        "lastName": "Ortiz",
        "specialization": "Mathematics",
    })
    assert resp.status_code == 201
    return client


@pytest.fixture
def onboard():
    """Drive a student client through the wizard to the hub.

    Uses the fallback assessment (correct answer is always index 0), so
    ``correct`` controls the diagnostic score out of ten.
    """
    def _onboard(client, weak_areas=("Algebra", "History"), style="Visual", correct=9, size=10):
        resp = client.post("/api/student/registration", json={
            "name": "Alice", "school": "X", "grade": "5th", "division": "B",
        })
        assert resp.status_code == 200, resp.get_json()
        resp = client.post("/api/student/weak-areas", json={
            "weakAreas": list(weak_areas), "learningStyle": style,
        })
        assert resp.status_code == 200, resp.get_json()
        for i in range(size):
            resp = client.post("/api/student/assessment/answer", json={
                "selectedIndex": 0 if i < correct else 1,
            })
            assert resp.status_code == 200, resp.get_json()
        return resp.get_json()
    return _onboard


@pytest.fixture
def db(app):
    """Direct database access for store tests."""
    with app.app_context():
        from database import get_db
        yield get_db()
