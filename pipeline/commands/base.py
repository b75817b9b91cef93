"""
Producer base: build one message for a project and publish it once.

prepare() validates the project configuration and builds the message
without touching the broker, so configuration errors and "nothing to do"
are known before a connection is opened. A producer whose project has
nothing configured for its stage publishes nothing and is still
successful.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import ClassVar, Mapping, Optional

from pydantic import AnyUrl, TypeAdapter, ValidationError

from pipeline.broker.channel import MessageChannel
from pipeline.exceptions import ProducerValidationError
from pipeline.models.messages import PipelineMessage
from shared.config import ProjectSettings, Settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

_url_adapter = TypeAdapter(AnyUrl)


def validate_url(url: str) -> str:
    """Return ``url`` unchanged if it parses as an absolute URL."""
    try:
        parsed = _url_adapter.validate_python(url)
    except ValidationError:
        parsed = None

    if parsed is None or not parsed.host:
        raise ProducerValidationError(
            f'"{url}" seems to be not a valid url',
            code=ProducerValidationError.INVALID_SOURCE_URL,
        )
    return url


@dataclass(frozen=True)
class PublishResult:
    published: bool
    exchange: Optional[str] = None
    routing_key: Optional[str] = None
    message: Optional[PipelineMessage] = None


class Producer:
    routing_key: ClassVar[str]

    def __init__(self, settings: Settings, projects: Mapping[str, ProjectSettings]) -> None:
        self.settings = settings
        self.projects = projects

    def project_settings(self, project: str) -> ProjectSettings:
        try:
            return self.projects[project]
        except KeyError:
            raise ProducerValidationError(
                f'Project "{project}" is not configured',
                code=ProducerValidationError.UNKNOWN_PROJECT,
            ) from None

    def exchange_for(self, project: str) -> str:
        return self.project_settings(project).exchange or self.settings.default_exchange

    def build_message(self, project: str) -> Optional[PipelineMessage]:
        """Return the message to publish, or None if there is nothing to do."""
        raise NotImplementedError

    def prepare(self, project: str) -> Optional[PublishResult]:
        """Validate and build the message; None if there is nothing to publish."""
        message = self.build_message(project)
        if message is None:
            logger.info("Nothing to publish", project=project, routing_key=self.routing_key)
            return None

        return PublishResult(
            published=False,
            exchange=self.exchange_for(project),
            routing_key=self.routing_key,
            message=message,
        )

    async def publish(self, channel: MessageChannel, prepared: PublishResult) -> PublishResult:
        await channel.publish(prepared.message, exchange=prepared.exchange, routing_key=prepared.routing_key)

        logger.info(
            "Message published",
            exchange=prepared.exchange,
            routing_key=prepared.routing_key,
        )
        return replace(prepared, published=True)

    async def run(self, channel: MessageChannel, project: str) -> PublishResult:
        prepared = self.prepare(project)
        if prepared is None:
            return PublishResult(published=False)
        return await self.publish(channel, prepared)
