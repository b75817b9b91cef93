"""
crawler.gitweb: read the project list of a Gitweb server
(https://git.wiki.kernel.org/index.php/Gitweb) and queue every repository
that is not downloaded yet.

    crawler:gitweb command
        |-> crawler.gitweb (this consumer)
                |-> download.git

Message (json):
    project: project name, stored with every repository
    url:     Gitweb base url, e.g. https://git.typo3.org/
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

import httpx
from bs4 import BeautifulSoup

from pipeline.broker.channel import MessageChannel
from pipeline.broker.topology import QueueBinding, get_stage
from pipeline.consumer.base import Outcome, ReceivedMessage, execution_failed
from pipeline.db.service.records import get_or_create_repository
from pipeline.models.messages import GitDownloadMessage, GitwebCrawlMessage
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

STAGE = get_stage("crawler.gitweb")
DOWNLOAD_ROUTING = "download.git"


@dataclass(frozen=True)
class GitwebProject:
    name: str
    git_url: str


def _query_params(href: str) -> dict[str, str]:
    # Gitweb separates parameters with ";" instead of "&"
    query = urlsplit(href).query
    params: dict[str, str] = {}
    for part in query.replace("&", ";").split(";"):
        key, sep, value = part.partition("=")
        if sep:
            params[key] = unquote(value.replace("+", " "))
    return params


def parse_gitweb_projects(html: str, base_url: str) -> list[GitwebProject]:
    """Extract the repositories linked from a Gitweb project list page."""
    soup = BeautifulSoup(html, "html.parser")
    root = base_url.split("?", 1)[0].rstrip("/")

    seen: set[str] = set()
    projects: list[GitwebProject] = []
    for link in soup.find_all("a", href=True):
        params = _query_params(link["href"])
        name = params.get("p")
        if not name or params.get("a") != "summary" or name in seen:
            continue
        seen.add(name)
        projects.append(GitwebProject(name=name, git_url=f"{root}/{name}"))
    return projects


class GitwebConsumer:
    name = STAGE.name
    description = STAGE.description
    message_type = GitwebCrawlMessage

    def __init__(
        self,
        channel: MessageChannel,
        exchange: Optional[str] = None,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.channel = channel
        self.exchange = exchange or self.settings.default_exchange
        self._http_client = http_client

    def initialize(self) -> QueueBinding:
        return STAGE.binding(self.exchange)

    async def _fetch(self, url: str) -> str:
        if self._http_client is not None:
            response = await self._http_client.get(url)
            response.raise_for_status()
            return response.text

        async with httpx.AsyncClient(timeout=self.settings.http_timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text

    async def process(self, message: ReceivedMessage[GitwebCrawlMessage]) -> Outcome:
        data = message.payload

        try:
            html = await self._fetch(data.url)
        except httpx.HTTPError as e:
            return execution_failed(logger, "Gitweb page could not be fetched", url=data.url, error=str(e))

        projects = parse_gitweb_projects(html, data.url)
        if not projects:
            logger.warning("No repositories found on Gitweb page", url=data.url)

        queued = 0
        for found in projects:
            repository, created = await get_or_create_repository(data.project, found.name, found.git_url)
            if created:
                logger.info("Repository stored", repository=found.name, id=repository.id)

            if repository.downloaded:
                continue

            await self.channel.publish(
                GitDownloadMessage(project=data.project, id=repository.id),
                exchange=self.exchange,
                routing_key=DOWNLOAD_ROUTING,
            )
            queued += 1

        logger.info("Gitweb crawled", url=data.url, found=len(projects), queued=queued)
        return Outcome.ACK
