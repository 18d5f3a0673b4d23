"""Teacher profile, class groups, student linking and insight routes."""

from __future__ import annotations

from flask import Blueprint, jsonify

from helpers import current_username, json_body, teacher_required
from teacher_workflow import TeacherWorkflow, group_view

bp = Blueprint("teacher", __name__, url_prefix="/api/teacher")


def _workflow() -> TeacherWorkflow:
    return TeacherWorkflow.for_user(current_username())


# ── Profile & groups ───────────────────────────────────────

@bp.route("/state")
@teacher_required
def state():
    return jsonify(_workflow().view())


@bp.route("/profile", methods=["POST"])
@teacher_required
def setup_profile():
    data = json_body()
    wf = _workflow()
    profile = wf.setup_profile(
        data.get("firstName", ""),
        data.get("lastName", ""),
        data.get("specialization", ""),
    )
    return jsonify({"profile": profile.to_dict()}), 201


@bp.route("/groups", methods=["POST"])
@teacher_required
def create_group():
    data = json_body()
    wf = _workflow()
    group = wf.create_group(data.get("school", ""), data.get("grade", ""), data.get("division", ""))
    return jsonify({"group": group_view(group), **wf.view()}), 201


@bp.route("/groups/<group_id>/select", methods=["POST"])
@teacher_required
def select_group(group_id):
    wf = _workflow()
    wf.select_group(group_id)
    return jsonify(wf.view())


# ── Students & insight ─────────────────────────────────────

@bp.route("/groups/active/students", methods=["POST"])
@teacher_required
def link_student():
    wf = _workflow()
    performance = wf.link_student(json_body().get("code", ""))
    return jsonify({"student": performance.to_dict(), "group": group_view(wf.active_group())}), 201


@bp.route("/insight")
@teacher_required
def insight():
    return jsonify({"insight": _workflow().insight()})
