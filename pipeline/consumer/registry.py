"""Stage name -> consumer factory."""

from __future__ import annotations

from typing import Callable, Optional

from pipeline.broker.channel import MessageChannel
from pipeline.broker.topology import get_stage
from pipeline.consumer.analysis.filesize import FilesizeConsumer
from pipeline.consumer.analysis.pdepend import PDependConsumer
from pipeline.consumer.base import Consumer
from pipeline.consumer.crawler.gitweb import GitwebConsumer
from pipeline.consumer.download.git import GitDownloadConsumer
from shared.config import Settings

ConsumerFactory = Callable[[MessageChannel, Optional[str], Settings], Consumer]

CONSUMERS: dict[str, ConsumerFactory] = {
    "crawler.gitweb": lambda channel, exchange, settings: GitwebConsumer(channel, exchange, settings),
    "download.git": lambda channel, exchange, settings: GitDownloadConsumer(exchange, settings),
    "analysis.filesize": lambda channel, exchange, settings: FilesizeConsumer(exchange, settings),
    "analysis.pdepend": lambda channel, exchange, settings: PDependConsumer(exchange, settings),
}


def build_consumer(
    stage_name: str,
    channel: MessageChannel,
    exchange: Optional[str],
    settings: Settings,
) -> Consumer:
    """Create the consumer of a stage; raises UnknownStageError."""
    stage = get_stage(stage_name)
    return CONSUMERS[stage.name](channel, exchange, settings)
