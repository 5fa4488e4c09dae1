from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from sqlalchemy.exc import IntegrityError

from .errors import Conflict, NotFound
from .extensions import db
from .models import User, UserRole

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "phone_number", "address", "bio", "profile_image")


def get_user_by_id(user_id: str) -> Optional[User]:
    if not user_id:
        return None
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> Optional[User]:
    if not email:
        return None
    return db.session.scalar(db.select(User).filter_by(email=email.strip().lower()))


def get_user_by_username(username: str) -> Optional[User]:
    if not username:
        return None
    return db.session.scalar(db.select(User).filter_by(username=username.strip()))


def create_user(data: Mapping[str, Any]) -> User:
    email = data["email"].strip().lower()
    username = data["username"].strip()

    if get_user_by_email(email):
        raise Conflict("User with this email already exists")
    if get_user_by_username(username):
        raise Conflict("Username is already taken")

    user = User(
        username=username,
        email=email,
        role=UserRole(data.get("role") or UserRole.user.value),
    )
    user.set_password(data["password"])
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race against a concurrent registration
        db.session.rollback()
        raise Conflict("Username or email already exists")

    logger.info("Registered user %s role=%s", user.id, user.role_name)
    return user


def update_profile(user_id: str, fields: Mapping[str, Any]) -> User:
    user = get_user_by_id(user_id)
    if not user:
        raise NotFound("User not found")
    for name in PROFILE_FIELDS:
        if name in fields:
            setattr(user, name, fields[name])
    db.session.commit()
    return user


def authenticate(login: str, password: str) -> Optional[User]:
    user = get_user_by_email(login) if "@" in login else get_user_by_username(login)
    if not user or not user.check_password(password):
        return None
    return user


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role_name,
        "fullName": user.full_name,
        "phoneNumber": user.phone_number,
        "address": user.address,
        "bio": user.bio,
        "profileImage": user.profile_image,
        "createdAt": user.created_at.isoformat() if user.created_at else None,
    }
