from datetime import datetime, timedelta, timezone
from jose import jwt
from passlib.context import CryptContext

from boilerplate.core.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

JWT_ALGORITHM = "HS256"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm=JWT_ALGORITHM)

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])

def _user_claims(user) -> dict:
    return {"sub": str(user.id), "username": user.username, "email": user.email, "role": user.role}

def create_access_token(user) -> str:
    claims = {**_user_claims(user), "type": TOKEN_TYPE_ACCESS}
    return create_jwt(claims, settings.JWT_SECRET, timedelta(minutes=settings.JWT_TTL_MINUTES))

def create_refresh_token(user) -> str:
    claims = {"sub": str(user.id), "type": TOKEN_TYPE_REFRESH}
    return create_jwt(claims, settings.JWT_REFRESH_SECRET, timedelta(days=settings.JWT_REFRESH_TTL_DAYS))
