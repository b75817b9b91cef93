"""
Record accessors against an in-memory SQLite database.
"""

import pytest
import pytest_asyncio

from pipeline.db.models import GitwebRepository, Version
from pipeline.db.service import records


@pytest_asyncio.fixture
async def version(db_session):
    row = Version(project="TYPO3", version="6.2.0")
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.mark.asyncio
async def test_fetch_version(version):
    found = await records.fetch_version(version.id)

    assert found is not None
    assert found.version == "6.2.0"
    assert found.size_tar is None
    assert await records.fetch_version(version.id + 100) is None


@pytest.mark.asyncio
async def test_save_filesize_only_once(version):
    assert await records.save_version_filesize(version.id, 1024) is True
    assert await records.save_version_filesize(version.id, 2048) is False

    stored = await records.fetch_version(version.id)
    assert stored.size_tar == 1024


@pytest.mark.asyncio
async def test_zero_filesize_counts_as_not_analyzed(db_session):
    row = Version(project="TYPO3", version="4.5.0", size_tar=0)
    db_session.add(row)
    await db_session.commit()

    assert await records.save_version_filesize(row.id, 512) is True
    assert (await records.fetch_version(row.id)).size_tar == 512


@pytest.mark.asyncio
async def test_save_filesize_unknown_version(db_session_factory):
    assert await records.save_version_filesize(12345, 1) is False


@pytest.mark.asyncio
async def test_get_or_create_repository(db_session_factory):
    url = "https://git.typo3.org/Packages/TYPO3.CMS.git"

    created, was_created = await records.get_or_create_repository("TYPO3", "Packages/TYPO3.CMS.git", url)
    again, created_again = await records.get_or_create_repository("TYPO3", "Packages/TYPO3.CMS.git", url)

    assert was_created is True
    assert created_again is False
    assert again.id == created.id
    assert again.downloaded is False


@pytest.mark.asyncio
async def test_mark_repository_downloaded_only_once(db_session):
    row = GitwebRepository(project="TYPO3", name="Extbase.git", git_url="https://git.typo3.org/Extbase.git")
    db_session.add(row)
    await db_session.commit()

    assert await records.mark_repository_downloaded(row.id) is True
    assert await records.mark_repository_downloaded(row.id) is False

    stored = await records.fetch_repository(row.id)
    assert stored.downloaded is True
