"""
What a pipeline stage has to provide to the consumer runtime.

A consumer is any object with a ``name``, a ``message_type``, an
``initialize()`` returning its QueueBinding and an async ``process()``
returning an Outcome. The runtime owns decode, ack and reject; process()
only decides.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

import structlog

from pipeline.broker.topology import QueueBinding
from pipeline.models.messages import PipelineMessage

M = TypeVar("M", bound=PipelineMessage)


class Outcome(str, Enum):
    ACK = "ack"
    REJECT = "reject"


@dataclass(frozen=True)
class ReceivedMessage(Generic[M]):
    """A decoded payload plus the broker metadata of its delivery."""

    payload: M
    delivery_tag: int
    redelivered: bool
    routing_key: str

    def context(self) -> dict[str, Any]:
        return self.payload.model_dump(by_alias=True)


@runtime_checkable
class Consumer(Protocol):
    name: str
    description: str
    message_type: type[PipelineMessage]

    def initialize(self) -> QueueBinding:
        ...

    async def process(self, message: ReceivedMessage) -> Outcome:
        ...


# Outcome helpers: log at the level the failure class deserves, return the decision.

def already_done(log: structlog.BoundLogger, event: str, **context: Any) -> Outcome:
    log.info(event, **context)
    return Outcome.ACK


def missing_input(log: structlog.BoundLogger, event: str, **context: Any) -> Outcome:
    log.critical(event, **context)
    return Outcome.REJECT


def execution_failed(log: structlog.BoundLogger, event: str, **context: Any) -> Outcome:
    log.critical(event, **context)
    return Outcome.REJECT
