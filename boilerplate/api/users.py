from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from boilerplate.core.deps import get_current_user, rate_limit, require_role
from boilerplate.db.session import get_db
from boilerplate.models.user import ROLE_ADMIN
from boilerplate.schemas.listing import ListQueryBody, parse_list_query
from boilerplate.schemas.user import UserCreate, UserOut
from boilerplate.services.cache import CacheStore, get_cache
from boilerplate.services.users import create_user, get_user, list_users, user_to_dict

router = APIRouter(dependencies=[Depends(rate_limit("users", "USERS_RATE_LIMIT", "USERS_RATE_LIMIT_WINDOW_SECONDS"))])


@router.get("")
def list_users_endpoint(
    request: Request,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    user: dict = Depends(get_current_user),
):
    lq = parse_list_query(request.query_params.multi_items())
    return list_users(db, lq, cache)


@router.post("/query")
def query_users(
    body: ListQueryBody,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    user: dict = Depends(get_current_user),
):
    return list_users(db, body.to_request(), cache)


@router.get("/{user_id}", response_model=UserOut)
def get_user_endpoint(
    user_id: UUID,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    user: dict = Depends(get_current_user),
):
    row = get_user(db, user_id, cache)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    return row


@router.post("", status_code=201, response_model=UserOut)
def create_user_endpoint(
    payload: UserCreate,
    db: Session = Depends(get_db),
    cache: CacheStore = Depends(get_cache),
    admin: dict = Depends(require_role(ROLE_ADMIN)),
):
    row = create_user(
        db,
        username=payload.username,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        cache=cache,
        actor_id=admin.get("sub"),
    )
    return user_to_dict(row)
