import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from boilerplate.db.session import get_db
from boilerplate.services.cache import CacheStore, get_cache

_LOG = logging.getLogger("boilerplate.health")

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/ready")
def readiness(db: Session = Depends(get_db), cache: CacheStore = Depends(get_cache)):
    checks = {}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "up"
    except SQLAlchemyError as exc:
        _LOG.warning("Database readiness check failed: %s", exc)
        checks["database"] = "down"
    try:
        checks["cache"] = "up" if cache.ping() else "down"
    except Exception as exc:
        _LOG.warning("Cache readiness check failed: %s", exc)
        checks["cache"] = "down"
    ok = all(value == "up" for value in checks.values())
    return JSONResponse(status_code=200 if ok else 503, content={"status": "ok" if ok else "error", "checks": checks})
