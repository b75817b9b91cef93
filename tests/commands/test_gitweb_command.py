import pytest

from pipeline.commands import COMMANDS, GitwebCommand, validate_url
from pipeline.exceptions import ProducerValidationError
from pipeline.models.messages import GitwebCrawlMessage
from shared.config import ProjectSettings


@pytest.fixture
def projects():
    return {
        "TYPO3": ProjectSettings(gitweb="https://git.typo3.org/", exchange="TYPO3"),
        "Extbase": ProjectSettings(exchange="TYPO3"),
        "Flow": ProjectSettings(gitweb="https://git.neos.io/"),
        "Broken": ProjectSettings(gitweb="git typo3 org"),
    }


@pytest.fixture
def command(test_settings, projects):
    return GitwebCommand(test_settings, projects)


def test_command_is_registered():
    assert COMMANDS["crawler:gitweb"] is GitwebCommand


@pytest.mark.asyncio
async def test_publishes_one_crawl_message(command, mock_channel):
    result = await command.run(mock_channel, "TYPO3")

    assert result.published is True
    assert result.exchange == "TYPO3"
    assert result.routing_key == "crawler.gitweb"
    mock_channel.publish.assert_awaited_once_with(
        GitwebCrawlMessage(project="TYPO3", url="https://git.typo3.org/"),
        exchange="TYPO3",
        routing_key="crawler.gitweb",
    )


@pytest.mark.asyncio
async def test_project_without_exchange_uses_default(command, mock_channel):
    result = await command.run(mock_channel, "Flow")

    assert result.exchange == "pipeline"
    assert mock_channel.publish.await_args.kwargs["exchange"] == "pipeline"


@pytest.mark.asyncio
async def test_project_without_gitweb_publishes_nothing(command, mock_channel):
    result = await command.run(mock_channel, "Extbase")

    assert result.published is False
    mock_channel.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_url_is_rejected_before_publishing(command, mock_channel):
    with pytest.raises(ProducerValidationError) as exc_info:
        await command.run(mock_channel, "Broken")

    assert exc_info.value.code == ProducerValidationError.INVALID_SOURCE_URL
    assert "seems to be not a valid url" in str(exc_info.value)
    mock_channel.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_project(command, mock_channel):
    with pytest.raises(ProducerValidationError) as exc_info:
        await command.run(mock_channel, "Neos")

    assert exc_info.value.code == ProducerValidationError.UNKNOWN_PROJECT
    mock_channel.publish.assert_not_awaited()


def test_prepare_builds_message_without_broker(command):
    prepared = command.prepare("TYPO3")

    assert prepared.published is False
    assert prepared.exchange == "TYPO3"
    assert prepared.message == GitwebCrawlMessage(project="TYPO3", url="https://git.typo3.org/")


def test_prepare_nothing_to_publish(command):
    assert command.prepare("Extbase") is None


@pytest.mark.parametrize("url", ["https://git.typo3.org/", "http://localhost:8080/gitweb"])
def test_validate_url_accepts_absolute_urls(url):
    assert validate_url(url) == url


@pytest.mark.parametrize("url", ["", "git.typo3.org", "not a url", "/relative/path"])
def test_validate_url_rejects(url):
    with pytest.raises(ProducerValidationError):
        validate_url(url)
