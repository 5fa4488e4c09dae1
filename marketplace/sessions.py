"""Session and bearer-token issuance.

Server-side sessions live in the ``user_sessions`` table so every app
instance sees the same state; the browser only carries the opaque token in
Flask's signed cookie. Bearer tokens are self-contained JWTs with the
minimal ``{id, username, role}`` claims.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Optional

from flask import current_app, has_request_context, request
from flask_jwt_extended import create_access_token
from sqlalchemy import or_

from .extensions import db
from .models import User, UserSession

logger = logging.getLogger(__name__)

TOUCH_INTERVAL_SECONDS = 60


def issue_token(user: User) -> str:
    return create_access_token(
        identity=user.id,
        additional_claims={"username": user.username, "role": user.role_name},
    )


def create_session(user: User) -> UserSession:
    now = datetime.utcnow()
    record = UserSession(
        user=user,
        session_token=secrets.token_hex(32),
        created_at=now,
        last_seen_at=now,
        expires_at=now + current_app.config["SESSION_LIFETIME"],
    )
    if has_request_context():
        record.user_agent = (request.headers.get("User-Agent") or "")[:255] or None
        record.ip_address = request.remote_addr
    db.session.add(record)
    db.session.commit()
    return record


def resolve_session(token: Optional[str]) -> Optional[UserSession]:
    if not token:
        return None
    record = db.session.scalar(db.select(UserSession).filter_by(session_token=token))
    if not record or record.revoked_at:
        return None
    now = datetime.utcnow()
    if record.expires_at <= now:
        return None
    if (now - record.last_seen_at).total_seconds() >= TOUCH_INTERVAL_SECONDS:
        record.last_seen_at = now
        db.session.commit()
    return record


def revoke_session(token: Optional[str]) -> bool:
    if not token:
        return False
    record = db.session.scalar(db.select(UserSession).filter_by(session_token=token))
    if not record or record.revoked_at:
        return False
    record.revoked_at = datetime.utcnow()
    db.session.commit()
    return True


def sweep_sessions(now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    result = db.session.execute(
        db.delete(UserSession).where(
            or_(UserSession.expires_at <= now, UserSession.revoked_at.isnot(None))
        )
    )
    db.session.commit()
    removed = result.rowcount or 0
    logger.info("Session sweep removed %s expired or revoked sessions", removed)
    return removed
