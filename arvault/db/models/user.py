"""User model: only the attributes the asset core needs."""

from __future__ import annotations

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from arvault.db.base import Base

DEFAULT_MAX_MODELS = 3


class User(Base):
    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_models: Mapped[int] = mapped_column(
        Integer, nullable=False, default=DEFAULT_MAX_MODELS
    )
    dashboard_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
