"""
Queue/exchange options, dead-letter naming and the stage table.

Every stage uses ``<domain>.<stage>`` as both queue name and routing key.
A rejected (requeue=False) message of ``<queue>`` ends up in
``<queue>.dlq`` through the direct exchange ``<queue>.dlx``.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Optional

from aio_pika import ExchangeType
from pydantic import BaseModel, ConfigDict, Field

from pipeline.exceptions import UnknownStageError
from pipeline.models.messages import (
    FilesizeMessage,
    GitDownloadMessage,
    GitwebCrawlMessage,
    PDependMessage,
    PipelineMessage,
)

DEAD_LETTER_EXCHANGE_SUFFIX = ".dlx"
DEAD_LETTER_QUEUE_SUFFIX = ".dlq"


def dead_letter_exchange_name(queue_name: str) -> str:
    return f"{queue_name}{DEAD_LETTER_EXCHANGE_SUFFIX}"


def dead_letter_queue_name(queue_name: str) -> str:
    return f"{queue_name}{DEAD_LETTER_QUEUE_SUFFIX}"


def dead_letter_arguments(queue_name: str) -> dict[str, Any]:
    """Arguments the primary queue needs so rejects land in its DLQ."""
    return {
        "x-dead-letter-exchange": dead_letter_exchange_name(queue_name),
        "x-dead-letter-routing-key": queue_name,
    }


class QueueOptions(BaseModel):
    durable: bool = True          # survive broker restart
    exclusive: bool = False
    auto_delete: bool = False
    arguments: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class ExchangeOptions(BaseModel):
    type: ExchangeType = ExchangeType.TOPIC
    durable: bool = True
    auto_delete: bool = False

    model_config = ConfigDict(frozen=True)


class QueueBinding(BaseModel):
    """Everything needed to declare and bind one consumer queue."""

    queue: str
    exchange: str
    routing_key: str
    options: QueueOptions = Field(default_factory=QueueOptions)
    exchange_options: ExchangeOptions = Field(default_factory=ExchangeOptions)
    dead_lettering: bool = False

    model_config = ConfigDict(frozen=True)


class Stage(BaseModel):
    """One pipeline stage: a queue, its routing key and what it may publish."""

    name: str
    queue: str
    routing_key: str
    message_type: type[PipelineMessage]
    description: str = ""
    downstream: tuple[str, ...] = ()
    dead_lettering: bool = True

    model_config = ConfigDict(frozen=True)

    def binding(self, exchange: str, options: Optional[QueueOptions] = None) -> QueueBinding:
        return QueueBinding(
            queue=self.queue,
            exchange=exchange,
            routing_key=self.routing_key,
            options=options or QueueOptions(),
            dead_lettering=self.dead_lettering,
        )


def _stage(name: str, message_type: type[PipelineMessage], description: str, downstream: tuple[str, ...] = ()) -> Stage:
    return Stage(
        name=name,
        queue=name,
        routing_key=name,
        message_type=message_type,
        description=description,
        downstream=downstream,
    )


TOPOLOGY: dict[str, Stage] = {
    stage.name: stage
    for stage in (
        _stage(
            "crawler.gitweb",
            GitwebCrawlMessage,
            "Crawls a Gitweb server and queues every repository for download.",
            downstream=("download.git",),
        ),
        _stage(
            "download.git",
            GitDownloadMessage,
            "Clones or updates a Git repository found by the Gitweb crawler.",
        ),
        _stage(
            "analysis.filesize",
            FilesizeMessage,
            "Determines the filesize in bytes and stores it in the versions table.",
        ),
        _stage(
            "analysis.pdepend",
            PDependMessage,
            "Executes the pDepend analysis on a given folder.",
        ),
    )
}


def get_stage(name: str, topology: Mapping[str, Stage] = TOPOLOGY) -> Stage:
    try:
        return topology[name]
    except KeyError:
        raise UnknownStageError(
            f"Unknown stage {name!r}, expected one of: {', '.join(sorted(topology))}"
        ) from None


def validate_topology(stages: Iterable[Stage]) -> list[str]:
    """
    Check the stage table for fan-in and dangling edges.

    Returns a list of problems, empty when the table is consistent.
    """
    stages = list(stages)
    problems: list[str] = []
    seen: dict[str, str] = {}

    for stage in stages:
        owner = seen.get(stage.routing_key)
        if owner is not None:
            problems.append(
                f"Routing key {stage.routing_key!r} used by both {owner!r} and {stage.name!r}"
            )
        seen[stage.routing_key] = stage.name

    for stage in stages:
        for key in stage.downstream:
            if key not in seen:
                problems.append(f"Stage {stage.name!r} publishes to unknown routing key {key!r}")
            elif key == stage.routing_key:
                problems.append(f"Stage {stage.name!r} publishes to itself")

    return problems
