import os
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

import pipeline.consumer.download.git as git
from pipeline.consumer.base import Outcome, ReceivedMessage
from pipeline.exceptions import CommandExecutionError
from pipeline.models.messages import GitDownloadMessage


def repository(**overrides):
    values = dict(
        id=3,
        project="TYPO3",
        name="Packages/TYPO3.CMS.git",
        git_url="https://git.typo3.org/Packages/TYPO3.CMS.git",
        downloaded=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def received(repository_id=3):
    return ReceivedMessage(
        payload=GitDownloadMessage(project="TYPO3", id=repository_id),
        delivery_tag=1,
        redelivered=False,
        routing_key="download.git",
    )


@pytest.fixture
def consumer(test_settings, mock_executor):
    return git.GitDownloadConsumer(exchange="TYPO3", settings=test_settings, executor=mock_executor)


def test_checkout_directory():
    assert git.checkout_directory("/var/co", "TYPO3", "Packages/TYPO3.CMS.git") == "/var/co/TYPO3/Packages/TYPO3.CMS"
    assert git.checkout_directory("/var/co", "TYPO3", "../../etc.git") is None
    assert git.checkout_directory("/var/co", "TYPO3", "/etc/passwd") is None


@pytest.mark.asyncio
async def test_clones_new_repository(monkeypatch, consumer, mock_executor, test_settings):
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=repository()))
    mark = AsyncMock(return_value=True)
    monkeypatch.setattr(git, "mark_repository_downloaded", mark)

    outcome = await consumer.process(received())

    target = os.path.join(test_settings.checkout_path, "TYPO3", "Packages", "TYPO3.CMS")
    assert outcome is Outcome.ACK
    mock_executor.execute.assert_awaited_once_with(
        ["git", "clone", "--quiet", "https://git.typo3.org/Packages/TYPO3.CMS.git", target]
    )
    assert os.path.isdir(os.path.dirname(target))
    mark.assert_awaited_once_with(3)


@pytest.mark.asyncio
async def test_pulls_existing_checkout(monkeypatch, consumer, mock_executor, test_settings):
    target = os.path.join(test_settings.checkout_path, "TYPO3", "Packages", "TYPO3.CMS")
    os.makedirs(os.path.join(target, ".git"))
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=repository()))
    monkeypatch.setattr(git, "mark_repository_downloaded", AsyncMock(return_value=True))

    outcome = await consumer.process(received())

    assert outcome is Outcome.ACK
    mock_executor.execute.assert_awaited_once_with(["git", "-C", target, "pull", "--quiet"])


@pytest.mark.asyncio
async def test_downloaded_repository_is_acked_without_running(monkeypatch, consumer, mock_executor):
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=repository(downloaded=True)))
    mark = AsyncMock()
    monkeypatch.setattr(git, "mark_repository_downloaded", mark)

    assert await consumer.process(received()) is Outcome.ACK
    mock_executor.execute.assert_not_awaited()
    mark.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_repository_is_rejected(monkeypatch, consumer, mock_executor):
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=None))

    assert await consumer.process(received(404)) is Outcome.REJECT
    mock_executor.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_path_escaping_name_is_rejected(monkeypatch, consumer, mock_executor):
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=repository(name="../../outside.git")))

    assert await consumer.process(received()) is Outcome.REJECT
    mock_executor.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_clone_does_not_mark_downloaded(monkeypatch, consumer, mock_executor):
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=repository()))
    mark = AsyncMock()
    monkeypatch.setattr(git, "mark_repository_downloaded", mark)
    mock_executor.execute.side_effect = CommandExecutionError(["git", "clone"], exit_code=128, stderr="not found")

    with pytest.raises(CommandExecutionError):
        await consumer.process(received())

    mark.assert_not_awaited()


@pytest.mark.asyncio
async def test_lost_race_is_still_acked(monkeypatch, consumer):
    monkeypatch.setattr(git, "fetch_repository", AsyncMock(return_value=repository()))
    monkeypatch.setattr(git, "mark_repository_downloaded", AsyncMock(return_value=False))

    assert await consumer.process(received()) is Outcome.ACK
