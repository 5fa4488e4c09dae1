from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from flask import Request, current_app, request, session
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from .errors import Forbidden
from .extensions import db
from .models import User, UserRole
from .sessions import resolve_session

ROLES = tuple(role.value for role in UserRole)


@dataclass(frozen=True)
class Identity:
    id: str
    username: str
    role: str
    source: str

    @classmethod
    def from_user(cls, user: User, source: str = "session") -> "Identity":
        return cls(id=user.id, username=user.username, role=user.role_name, source=source)


def normalize_role(role: str | UserRole | None) -> Optional[str]:
    if isinstance(role, UserRole):
        return role.value
    if not role:
        return None
    role = role.lower()
    return role if role in ROLES else None


def _extract_token(req: Request) -> Optional[str]:
    header = req.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def _identity_from_session() -> Optional[Identity]:
    record = resolve_session(session.get("session_token"))
    if not record:
        return None
    user = db.session.get(User, record.user_id)
    if not user:
        return None
    return Identity.from_user(user, source="session")


def _identity_from_token() -> Optional[Identity]:
    token = _extract_token(request)
    if not token:
        return None
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException) as exc:
        current_app.logger.info("Rejected bearer token: %s", exc.__class__.__name__)
        return None
    if claims.get("type") != "access":
        return None
    role = normalize_role(claims.get("role"))
    user_id = claims.get(current_app.config["JWT_IDENTITY_CLAIM"])
    if not user_id or not role:
        return None
    return Identity(id=str(user_id), username=claims.get("username") or "", role=role, source="token")


def resolve_identity() -> Optional[Identity]:
    return _identity_from_session() or _identity_from_token()


def has_role(identity: Identity, *roles: str) -> bool:
    allowed = {normalize_role(role) for role in roles}
    return identity.role in allowed


def require_role(identity: Identity, allowed_roles: Iterable[str]) -> None:
    allowed = tuple(allowed_roles)
    if not has_role(identity, *allowed):
        label = " or ".join(role.capitalize() for role in allowed)
        raise Forbidden(f"{label} access required", user_role=identity.role)
