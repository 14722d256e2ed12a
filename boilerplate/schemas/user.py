from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: str = Field(min_length=3, max_length=200)
    password: str = Field(min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def _email_shape(cls, value: str) -> str:
        text = value.strip()
        if "@" not in text or text.startswith("@") or text.endswith("@"):
            raise ValueError("invalid email")
        return text

class UserCreate(RegisterIn):
    role: Literal["ADMIN", "USER"] = "USER"

class UserOut(BaseModel):
    id: str
    username: str
    email: str
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None

class LoginIn(BaseModel):
    login: str
    password: str

class RefreshIn(BaseModel):
    refresh_token: str

class TokenPair(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
