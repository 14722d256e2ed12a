import hashlib

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from boilerplate.core.config import settings
from boilerplate.core.security import TOKEN_TYPE_ACCESS, decode_jwt
from boilerplate.services.rate_limit import get_rate_limiter

bearer = HTTPBearer(auto_error=False)

def get_current_user(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> dict:
    if not creds:
        raise HTTPException(status_code=401, detail="Missing authorization token")
    try:
        claims = decode_jwt(creds.credentials, settings.JWT_SECRET)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if claims.get("type", TOKEN_TYPE_ACCESS) != TOKEN_TYPE_ACCESS:
        raise HTTPException(status_code=401, detail="Invalid token")
    return claims

def require_role(*roles: str):
    def _inner(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user
    return _inner

def client_ip(request: Request) -> str:
    xff = str(request.headers.get("x-forwarded-for") or "").strip()
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first
    client = request.client
    return str(client.host if client else "unknown")

def _hash_key_part(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:20]

def rate_limit(action: str, limit_setting: str, window_setting: str):
    """Fixed-window limit per client ip; limits are read from settings on every request."""

    def _inner(request: Request) -> None:
        limit = int(max(getattr(settings, limit_setting), 1))
        window = int(max(getattr(settings, window_setting), 1))
        key = f"rl:{action}:ip:{_hash_key_part(client_ip(request))}"
        result = get_rate_limiter().hit(key, limit=limit, window_seconds=window)
        if not result.allowed:
            retry_after = max(result.retry_after_seconds, 1)
            raise HTTPException(
                status_code=429,
                detail=f"Too many requests. Retry in {retry_after} s.",
                headers={"Retry-After": str(retry_after)},
            )
    return _inner
