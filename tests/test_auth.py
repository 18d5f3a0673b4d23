"""Tests for auth.py — register, login ordering, logout, protected routes, audit."""

import pytest

from auth import authenticate, register_user
from errors import UserExists, UserNotFound, ValidationError, WrongPassword, WrongRole


class TestCredentialRules:
    def test_register_then_login_same_triple(self, app):
        with app.app_context():
            register_user("alice", "pw1", "STUDENT")
            user = authenticate("alice", "pw1", "STUDENT")
        assert user.username == "alice"
        assert user.is_student

    def test_duplicate_username_fails_regardless_of_role(self, app):
        with app.app_context():
            register_user("bob", "pw", "STUDENT")
            with pytest.raises(UserExists):
                register_user("bob", "other", "TEACHER")
            with pytest.raises(UserExists):
                register_user("bob", "pw", "STUDENT")

    def test_unknown_user(self, app):
        with app.app_context():
            with pytest.raises(UserNotFound):
                authenticate("ghost", "pw", "STUDENT")

    def test_wrong_password(self, app):
        with app.app_context():
            register_user("carol", "right", "TEACHER")
            with pytest.raises(WrongPassword):
                authenticate("carol", "wrong", "TEACHER")

    def test_wrong_role_not_wrong_password(self, app):
        with app.app_context():
            register_user("dave", "pw", "TEACHER")
            with pytest.raises(WrongRole):
                authenticate("dave", "pw", "STUDENT")

    def test_wrong_password_checked_before_role(self, app):
        with app.app_context():
            register_user("erin", "pw", "TEACHER")
            with pytest.raises(WrongPassword):
                authenticate("erin", "nope", "STUDENT")

    def test_password_is_hashed(self, app):
        with app.app_context():
            from db_stores import CredentialStoreDB
            register_user("frank", "plain-secret", "STUDENT")
            row = CredentialStoreDB.get("frank")
        assert row["password_hash"] != "plain-secret"

    @pytest.mark.parametrize("username,password,role", [
        ("", "pw", "STUDENT"),
        ("   ", "pw", "STUDENT"),
        ("gina", "", "STUDENT"),
        ("gina", "pw", "PARENT"),
    ])
    def test_register_validation(self, app, username, password, role):
        with app.app_context():
            with pytest.raises(ValidationError):
                register_user(username, password, role)

    def test_role_is_case_insensitive(self, app):
        with app.app_context():
            user = register_user("hank", "pw", "teacher")
        assert user.role == "TEACHER"


class TestAuthRoutes:
    def test_register_success(self, client):
        resp = client.post("/register", json={"username": "new", "password": "pw", "role": "STUDENT"})
        assert resp.status_code == 201
        assert resp.get_json() == {"username": "new", "role": "STUDENT"}

    def test_register_duplicate(self, client):
        client.post("/register", json={"username": "dup", "password": "pw", "role": "STUDENT"})
        resp = client.post("/register", json={"username": "dup", "password": "pw", "role": "TEACHER"})
        assert resp.status_code == 409
        data = resp.get_json()
        assert data["kind"] == "UserExists"
        assert data["error"] == "User already exists."

    def test_login_error_statuses(self, client):
        client.post("/register", json={"username": "t1", "password": "pw", "role": "TEACHER"})
        assert client.post("/login", json={"username": "nobody", "password": "pw", "role": "TEACHER"}).status_code == 401
        assert client.post("/login", json={"username": "t1", "password": "bad", "role": "TEACHER"}).status_code == 401
        resp = client.post("/login", json={"username": "t1", "password": "pw", "role": "STUDENT"})
        assert resp.status_code == 403
        assert resp.get_json()["kind"] == "WrongRole"

    def test_non_text_credentials_rejected(self, client):
        resp = client.post("/register", json={"username": 7, "password": "pw", "role": "STUDENT"})
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "ValidationError"
        resp = client.post("/register", json={"username": "num", "password": 5, "role": "STUDENT"})
        assert resp.status_code == 400

        client.post("/register", json={"username": "num", "password": "pw", "role": "STUDENT"})
        assert client.post("/login", json={"username": 7, "password": "pw", "role": "STUDENT"}).status_code == 400
        resp = client.post("/login", json={"username": "num", "password": 123, "role": "STUDENT"})
        assert resp.get_json()["kind"] == "WrongPassword"

    def test_new_student_lands_on_registration(self, client):
        client.post("/register", json={"username": "s1", "password": "pw", "role": "STUDENT"})
        resp = client.post("/login", json={"username": "s1", "password": "pw", "role": "STUDENT"})
        assert resp.status_code == 200
        assert resp.get_json()["step"] == "REGISTRATION"

    def test_me_requires_login(self, client):
        resp = client.get("/me")
        assert resp.status_code == 401

    def test_me_and_logout(self, student_client):
        resp = student_client.get("/me")
        assert resp.get_json() == {"username": "alice", "role": "STUDENT"}

        assert student_client.post("/logout").status_code == 200
        assert student_client.get("/me").status_code == 401

    def test_student_routes_reject_teacher(self, teacher_client):
        resp = teacher_client.get("/api/student/state")
        assert resp.status_code == 403

    def test_teacher_routes_reject_student(self, student_client):
        resp = student_client.get("/api/teacher/state")
        assert resp.status_code == 403

    def test_protected_route_requires_login(self, client):
        assert client.get("/api/student/state").status_code == 401
        assert client.get("/api/teacher/state").status_code == 401


class TestAudit:
    def test_register_and_login_are_audited(self, app, client):
        client.post("/register", json={"username": "aud", "password": "pw", "role": "STUDENT"})
        client.post("/login", json={"username": "aud", "password": "bad", "role": "STUDENT"})
        client.post("/login", json={"username": "aud", "password": "pw", "role": "STUDENT"})

        with app.app_context():
            from database import get_db
            rows = get_db().execute(
                "SELECT action, detail FROM audit_log WHERE username = ? ORDER BY id", ("aud",)
            ).fetchall()
        actions = [r["action"] for r in rows]
        assert actions == ["register", "login_failed", "login_success"]
        assert rows[1]["detail"] == "WrongPassword"
