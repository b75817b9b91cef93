"""Consumer runtime and the consumers of every pipeline stage."""

from pipeline.consumer.base import Consumer, Outcome, ReceivedMessage
from pipeline.consumer.runtime import ConsumerRuntime

__all__ = ["Consumer", "Outcome", "ReceivedMessage", "ConsumerRuntime"]
