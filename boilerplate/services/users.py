from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import HTTPException
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from boilerplate.core.config import settings
from boilerplate.core.security import hash_password, verify_password
from boilerplate.models.user import ROLE_ADMIN, ROLE_USER, User
from boilerplate.schemas.listing import ListQueryRequest
from boilerplate.services.cache import CacheStore, safe_delete_pattern, safe_get, safe_set
from boilerplate.services.list_query import ListResource, run_list_query
from boilerplate.services.serialization import row_to_dict

_LOG = logging.getLogger("boilerplate.users")

USERS_RESOURCE = ListResource(
    name="users",
    model=User,
    sortable=frozenset({"username", "email", "role", "created_at", "updated_at"}),
    filterable=frozenset({"username", "email", "role", "created_at"}),
)
USERS_CACHE_PATTERN = "users*"
USER_CACHE_PATTERN = "user:*"
_HIDDEN_FIELDS = ("password_hash", "deleted_at")


def user_cache_key(user_id: uuid.UUID | str) -> str:
    return f"user:{user_id}"


def user_to_dict(user: User) -> dict[str, Any]:
    return row_to_dict(user, exclude=_HIDDEN_FIELDS)


def normalize_email(raw: str | None) -> str:
    return str(raw or "").strip().lower()


def active_users_query(db: Session) -> Query:
    return db.query(User).filter(User.deleted_at.is_(None))


def list_users(db: Session, request: ListQueryRequest, cache: CacheStore | None) -> dict:
    return run_list_query(
        active_users_query(db),
        USERS_RESOURCE,
        request,
        serialize=user_to_dict,
        cache=cache,
        ttl_seconds=settings.LIST_CACHE_TTL_SECONDS,
    )


def get_user(db: Session, user_id: uuid.UUID, cache: CacheStore | None) -> dict[str, Any] | None:
    key = user_cache_key(user_id)
    cached = safe_get(cache, key)
    if isinstance(cached, dict):
        return cached
    row = active_users_query(db).filter(User.id == user_id).first()
    if row is None:
        return None
    payload = user_to_dict(row)
    safe_set(cache, key, payload, settings.ENTITY_CACHE_TTL_SECONDS)
    return payload


def get_user_by_login(db: Session, login: str) -> User | None:
    text = str(login or "").strip()
    if not text:
        return None
    return (
        active_users_query(db)
        .filter(or_(User.username == text, func.lower(User.email) == text.lower()))
        .first()
    )


def invalidate_user_lists(cache: CacheStore | None) -> None:
    removed = safe_delete_pattern(cache, USERS_CACHE_PATTERN) + safe_delete_pattern(cache, USER_CACHE_PATTERN)
    _LOG.debug("Invalidated %s cached user entries", removed)


def create_user(
    db: Session,
    *,
    username: str,
    email: str,
    password: str,
    role: str = ROLE_USER,
    cache: CacheStore | None = None,
    actor_id: str | None = None,
) -> User:
    username = str(username or "").strip()
    email = normalize_email(email)
    existing = (
        db.query(User)
        .filter(or_(User.username == username, func.lower(User.email) == email))
        .first()
    )
    if existing is not None:
        raise HTTPException(status_code=409, detail="Username or email already exists")

    actor = uuid.UUID(actor_id) if actor_id else None
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        created_by=actor,
        updated_by=actor,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Username or email already exists")
    db.refresh(user)
    invalidate_user_lists(cache)
    return user


def ensure_bootstrap_admin_for_login(db: Session, login: str, password: str, cache: CacheStore | None = None) -> User | None:
    if not settings.ADMIN_BOOTSTRAP_ENABLED:
        return None
    text = str(login or "").strip()
    if text not in {settings.ADMIN_BOOTSTRAP_USERNAME, normalize_email(settings.ADMIN_BOOTSTRAP_EMAIL)}:
        return None
    if str(password or "") != str(settings.ADMIN_BOOTSTRAP_PASSWORD or ""):
        return None

    user = get_user_by_login(db, settings.ADMIN_BOOTSTRAP_USERNAME)
    if user is None:
        user = User(
            username=settings.ADMIN_BOOTSTRAP_USERNAME,
            email=normalize_email(settings.ADMIN_BOOTSTRAP_EMAIL),
            password_hash=hash_password(settings.ADMIN_BOOTSTRAP_PASSWORD),
            role=ROLE_ADMIN,
        )
        db.add(user)
    else:
        user.role = ROLE_ADMIN
        if not verify_password(settings.ADMIN_BOOTSTRAP_PASSWORD, user.password_hash):
            user.password_hash = hash_password(settings.ADMIN_BOOTSTRAP_PASSWORD)
        db.add(user)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return get_user_by_login(db, settings.ADMIN_BOOTSTRAP_USERNAME)
    db.refresh(user)
    invalidate_user_lists(cache)
    return user
