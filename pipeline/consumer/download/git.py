"""
download.git: clone a repository found by the Gitweb crawler, or pull
it if a checkout already exists, into ``<checkout_path>/<project>/<name>``.

Message (json):
    project: project name
    id:      id of the gitweb_repositories row
"""

from __future__ import annotations

import os
from pathlib import PurePosixPath
from typing import Optional

from pipeline.broker.topology import QueueBinding, get_stage
from pipeline.consumer.base import Outcome, ReceivedMessage, already_done, missing_input
from pipeline.db.service.records import fetch_repository, mark_repository_downloaded
from pipeline.executor import CommandExecutor, get_executor
from pipeline.models.messages import GitDownloadMessage
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

STAGE = get_stage("download.git")


def checkout_directory(checkout_path: str, project: str, name: str) -> Optional[str]:
    """Target folder of a repository, or None if the name escapes checkout_path."""
    relative = PurePosixPath(project) / name.removesuffix(".git")
    if relative.is_absolute() or ".." in relative.parts:
        return None
    return os.path.join(checkout_path, *relative.parts)


class GitDownloadConsumer:
    name = STAGE.name
    description = STAGE.description
    message_type = GitDownloadMessage

    def __init__(
        self,
        exchange: Optional[str] = None,
        settings: Optional[Settings] = None,
        executor: Optional[CommandExecutor] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.exchange = exchange or self.settings.default_exchange
        self.executor = executor or get_executor()

    def initialize(self) -> QueueBinding:
        return STAGE.binding(self.exchange)

    async def process(self, message: ReceivedMessage[GitDownloadMessage]) -> Outcome:
        data = message.payload

        repository = await fetch_repository(data.id)
        if repository is None:
            return missing_input(logger, "Record does not exist in gitweb_repositories table", id=data.id)

        if repository.downloaded:
            return already_done(logger, "Repository marked as already downloaded", id=data.id)

        target = checkout_directory(self.settings.checkout_path, repository.project, repository.name)
        if target is None:
            return missing_input(logger, "Repository name is not a valid path", id=data.id, repository=repository.name)

        git = self.settings.git_binary
        if os.path.isdir(os.path.join(target, ".git")):
            logger.info("Updating checkout", repository=repository.git_url, directory=target)
            await self.executor.execute([git, "-C", target, "pull", "--quiet"])
        else:
            logger.info("Cloning repository", repository=repository.git_url, directory=target)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            await self.executor.execute([git, "clone", "--quiet", repository.git_url, target])

        if not await mark_repository_downloaded(repository.id):
            return already_done(logger, "Repository was downloaded by another consumer", id=repository.id)

        logger.info("Repository downloaded", id=repository.id, directory=target)
        return Outcome.ACK
