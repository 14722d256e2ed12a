from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column
from boilerplate.db.session import Base
from boilerplate.models.common import AuditMixin, UUIDMixin, TimestampMixin

ROLE_ADMIN = "ADMIN"
ROLE_USER = "USER"

class User(Base, UUIDMixin, TimestampMixin, AuditMixin):
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_created_at", "created_at"),
        Index("ix_users_updated_at", "updated_at"),
    )
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=ROLE_USER, index=True)  # ADMIN|USER
