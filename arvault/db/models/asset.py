"""Asset model: the record of truth for one stored object."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from arvault.db.base import Base


class Asset(Base):
    """A stored object and who may read it.

    ``key`` never changes once written. ``companion_key`` points at a
    sibling asset of the same owner holding another encoding of the same
    scene.
    """

    __tablename__ = "assets"
    __table_args__ = (
        Index("ix_assets_owner_category", "owner_id", "category"),
    )

    key: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    owner_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    content_type: Mapped[str] = mapped_column(String(128), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_admin_upload: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    uploaded_by_admin: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    companion_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    @property
    def is_admin_public(self) -> bool:
        """Admin content shared with everyone."""
        return self.is_public and self.is_admin_upload
