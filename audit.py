"""
Audit logging — records credential events (register, login, logout).

Events are written to both the audit_log table and structured logging.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from flask import has_request_context, request

from database import get_db

logger = logging.getLogger(__name__)


def log_event(action: str, username: str | None = None, detail: str = "") -> None:
    """Insert an audit log entry and emit a structured log line."""
    ip = (request.remote_addr or "") if has_request_context() else ""
    ua = request.headers.get("User-Agent", "") if has_request_context() else ""
    now = datetime.now().isoformat()

    try:
        db = get_db()
        db.execute(
            "INSERT INTO audit_log (username, action, detail, ip_address, user_agent, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (username, action, detail, ip, ua, now),
        )
        db.commit()
    except sqlite3.Error:
        # An audit write never fails the request it describes
        logger.exception("audit write failed action=%s", action)

    logger.info("audit: %s username=%s detail=%s ip=%s", action, username, detail, ip)
