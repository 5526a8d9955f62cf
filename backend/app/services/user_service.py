"""Helpers for working with users."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.security import hash_password, verify_password
from app.db.models.user import User

logger = logging.getLogger(__name__)


class UserExistsError(Exception):
    pass


class InvalidCredentialsError(Exception):
    pass


class UserNotFoundError(Exception):
    pass


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(func.lower(User.email) == _normalize_email(email)).first()


def register_user(db: Session, *, name: str, email: str, password: str) -> User:
    """Create a user with a hashed password; duplicate emails are rejected."""
    if get_user_by_email(db, email):
        raise UserExistsError("User already exists")

    user = User(name=name.strip(), email=_normalize_email(email), password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise UserExistsError("User already exists") from exc
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(db: Session, *, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        raise InvalidCredentialsError("Invalid Credentials")
    return user


def update_push_token(db: Session, user_id: UUID, push_token: str) -> User:
    """Store the device's push endpoint; a no-op when it has not changed."""
    user = db.get(User, user_id)
    if user is None:
        raise UserNotFoundError("User not found.")
    token = push_token.strip()
    if user.push_token != token:
        user.push_token = token
        db.commit()
        logger.info("Push token updated for user %s", user_id)
    return user
