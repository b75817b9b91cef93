"""
Keyed reads and writes used by the consumers.

Completion markers (``versions.size_tar``, ``gitweb_repositories.downloaded``)
are write-once: the update only matches rows whose marker is still empty
and reports whether this call was the one that set it. Two consumers
racing on the same record therefore cannot both "win".
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from pipeline.db.models import GitwebRepository, Version
from pipeline.db.session import get_db_session


async def fetch_version(version_id: int) -> Optional[Version]:
    async with get_db_session() as db:
        result = await db.execute(select(Version).where(Version.id == version_id))
        return result.scalar_one_or_none()


async def save_version_filesize(version_id: int, size: int) -> bool:
    """Set ``size_tar`` unless already set. True if this call stored it."""
    async with get_db_session() as db:
        stmt = (
            update(Version)
            .where(
                Version.id == version_id,
                or_(Version.size_tar.is_(None), Version.size_tar == 0),
            )
            .values(size_tar=size)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1


async def fetch_repository(repository_id: int) -> Optional[GitwebRepository]:
    async with get_db_session() as db:
        result = await db.execute(
            select(GitwebRepository).where(GitwebRepository.id == repository_id)
        )
        return result.scalar_one_or_none()


async def _find_repository(git_url: str) -> Optional[GitwebRepository]:
    async with get_db_session() as db:
        result = await db.execute(
            select(GitwebRepository).where(GitwebRepository.git_url == git_url)
        )
        return result.scalar_one_or_none()


async def get_or_create_repository(
    project: str,
    name: str,
    git_url: str,
) -> tuple[GitwebRepository, bool]:
    """Return ``(repository, created)``; repositories are unique by clone URL."""
    existing = await _find_repository(git_url)
    if existing is not None:
        return existing, False

    try:
        async with get_db_session() as db:
            repository = GitwebRepository(project=project, name=name, git_url=git_url)
            db.add(repository)
            await db.flush()
        return repository, True
    except IntegrityError:
        # another crawler inserted it between our select and insert
        existing = await _find_repository(git_url)
        if existing is None:
            raise
        return existing, False


async def mark_repository_downloaded(repository_id: int) -> bool:
    """Set ``downloaded`` unless already set. True if this call set it."""
    async with get_db_session() as db:
        stmt = (
            update(GitwebRepository)
            .where(
                GitwebRepository.id == repository_id,
                GitwebRepository.downloaded.is_(False),
            )
            .values(downloaded=True)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.rowcount == 1
