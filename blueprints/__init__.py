"""
Blueprint registration for EduAdapt.

Auth routes stay at the root; the role workflows live under /api/student and
/api/teacher.
"""

from __future__ import annotations


def register_blueprints(app):
    from blueprints.student import bp as student_bp
    from blueprints.teacher import bp as teacher_bp

    app.register_blueprint(student_bp)
    app.register_blueprint(teacher_bp)
