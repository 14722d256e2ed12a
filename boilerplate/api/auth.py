from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from boilerplate.core.config import settings
from boilerplate.core.deps import rate_limit
from boilerplate.core.security import (
    TOKEN_TYPE_REFRESH,
    create_access_token,
    create_refresh_token,
    decode_jwt,
    verify_password,
)
from boilerplate.db.session import get_db
from boilerplate.models.user import User
from boilerplate.schemas.user import LoginIn, RefreshIn, RegisterIn, TokenPair, UserOut
from boilerplate.services.cache import CacheStore, get_cache
from boilerplate.services.users import (
    active_users_query,
    create_user,
    ensure_bootstrap_admin_for_login,
    get_user_by_login,
    user_to_dict,
)

router = APIRouter()


@router.post(
    "/login",
    response_model=TokenPair,
    dependencies=[Depends(rate_limit("login", "LOGIN_RATE_LIMIT", "AUTH_RATE_LIMIT_WINDOW_SECONDS"))],
)
def login(payload: LoginIn, db: Session = Depends(get_db), cache: CacheStore = Depends(get_cache)):
    user = ensure_bootstrap_admin_for_login(db, payload.login, payload.password, cache)
    if user is None:
        user = get_user_by_login(db, payload.login)
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenPair(access_token=create_access_token(user), refresh_token=create_refresh_token(user))


@router.post(
    "/refresh",
    response_model=TokenPair,
    dependencies=[Depends(rate_limit("refresh", "REFRESH_RATE_LIMIT", "AUTH_RATE_LIMIT_WINDOW_SECONDS"))],
)
def refresh(payload: RefreshIn, db: Session = Depends(get_db)):
    try:
        claims = decode_jwt(payload.refresh_token, settings.JWT_REFRESH_SECRET)
        user_id = UUID(str(claims.get("sub") or ""))
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid refresh token") from exc
    if claims.get("type") != TOKEN_TYPE_REFRESH:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    user = active_users_query(db).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    return TokenPair(access_token=create_access_token(user))


@router.post(
    "/register",
    status_code=201,
    response_model=UserOut,
    dependencies=[Depends(rate_limit("register", "REGISTER_RATE_LIMIT", "AUTH_RATE_LIMIT_WINDOW_SECONDS"))],
)
def register(payload: RegisterIn, db: Session = Depends(get_db), cache: CacheStore = Depends(get_cache)):
    user = create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        cache=cache,
    )
    return user_to_dict(user)
