"""Mirrored mod.io catalog models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base


class ModStatus(StrEnum):
    """Moderation status class of a mod on mod.io."""

    PENDING = "pending"
    LIVE = "live"
    ARCHIVED = "archived"


class Mod(Base):
    """A moderated package mirrored from the remote catalog."""

    __tablename__ = "mods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    remote_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    profile_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ModStatus.LIVE)
    last_uploaded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    versions: Mapped[list[ModVersion]] = relationship(
        back_populates="mod",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("idx_mods_name", "name"),)


class ModVersion(Base):
    """One uploaded file of a mod."""

    __tablename__ = "mod_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mod_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mods.id", ondelete="CASCADE"), nullable=False
    )
    remote_file_id: Mapped[int] = mapped_column(Integer, nullable=False)
    version: Mapped[str] = mapped_column(String(100), nullable=False)
    is_signed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    mod: Mapped[Mod] = relationship(back_populates="versions")

    __table_args__ = (
        UniqueConstraint("mod_id", "remote_file_id"),
        Index("idx_mod_versions_mod_id", "mod_id"),
        # At most one current version per mod.
        Index(
            "uq_mod_versions_current",
            "mod_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )
