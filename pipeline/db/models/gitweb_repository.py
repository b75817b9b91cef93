# pipeline/db/models/gitweb_repository.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint, false, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class GitwebRepository(Base):
    """A Git repository listed on a Gitweb server."""

    __tablename__ = "gitweb_repositories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    project: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    git_url: Mapped[str] = mapped_column(String(500), nullable=False)

    # Set once by download.git
    downloaded: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("git_url", name="uq_gitweb_repositories_git_url"),
    )
