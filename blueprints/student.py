"""Student wizard and lesson loop routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from helpers import current_username, int_field, json_body, student_required
from progression import StudentProgression

bp = Blueprint("student", __name__, url_prefix="/api/student")


def _progression() -> StudentProgression:
    return StudentProgression.for_user(current_username())


@bp.route("/state")
@student_required
def state():
    return jsonify(_progression().view())


@bp.route("/registration", methods=["POST"])
@student_required
def registration():
    data = json_body()
    prog = _progression()
    prog.submit_registration(
        data.get("name", ""),
        data.get("school", ""),
        data.get("grade", ""),
        data.get("division", ""),
    )
    return jsonify(prog.view())


@bp.route("/weak-areas", methods=["POST"])
@student_required
def weak_areas():
    data = json_body()
    prog = _progression()
    prog.submit_weak_areas(data.get("weakAreas", []), data.get("learningStyle", ""))
    return jsonify(prog.view())


@bp.route("/assessment/answer", methods=["POST"])
@student_required
def assessment_answer():
    prog = _progression()
    prog.answer_assessment(int_field(json_body(), "selectedIndex"))
    return jsonify(prog.view())


@bp.route("/subjects", methods=["POST"])
@student_required
def add_subject():
    prog = _progression()
    subject = prog.add_subject(json_body().get("name", ""))
    return jsonify({"subject": subject.to_dict(), **prog.view()}), 201


@bp.route("/subjects/<subject_id>/enter", methods=["POST"])
@student_required
def enter_subject(subject_id):
    prog = _progression()
    prog.enter_subject(subject_id)
    return jsonify(prog.view())


@bp.route("/lesson/select", methods=["POST"])
@student_required
def select_option():
    prog = _progression()
    prog.select_option(int_field(json_body(), "selectedIndex"))
    return jsonify(prog.view())


@bp.route("/lesson/submit", methods=["POST"])
@student_required
def submit_answer():
    prog = _progression()
    prog.submit_answer()
    return jsonify(prog.view())


@bp.route("/lesson/next", methods=["POST"])
@student_required
def next_lesson():
    prog = _progression()
    prog.next_lesson()
    return jsonify(prog.view())


@bp.route("/hub", methods=["POST"])
@student_required
def back_to_hub():
    prog = _progression()
    prog.back_to_hub()
    return jsonify(prog.view())
