"""
Consumer runtime: the lifecycle every stage shares.

Per delivery:

    decode --fail--> reject
       |
    process --raises--> reject
       |
    Outcome.ACK -> ack, Outcome.REJECT -> reject (requeue=False)

Exactly one of ack/reject is sent per delivery. Rejects never requeue:
with dead-lettering enabled they land in ``<queue>.dlq`` for replay.
Broker errors while acking/rejecting propagate and end the process.
"""

from __future__ import annotations

from typing import Optional

from pipeline.broker.channel import Delivery, MessageChannel
from pipeline.broker.topology import QueueBinding
from pipeline.consumer.base import Consumer, Outcome, ReceivedMessage
from pipeline.exceptions import CommandExecutionError, MessageDecodeError
from pipeline.models.messages import decode_message
from shared.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class ConsumerRuntime:
    def __init__(self, consumer: Consumer, channel: MessageChannel) -> None:
        self.consumer = consumer
        self.channel = channel
        self.binding: Optional[QueueBinding] = None

    async def start(self) -> QueueBinding:
        """Declare dead-letter topology (if enabled), then queue + binding."""
        binding = self.consumer.initialize()
        await self.channel.bind(binding)
        self.binding = binding

        logger.info(
            "Consumer initialized",
            consumer=self.consumer.name,
            queue=binding.queue,
            exchange=binding.exchange,
            routing_key=binding.routing_key,
            dead_lettering=binding.dead_lettering,
        )
        return binding

    async def run(self) -> None:
        """Start and consume until cancelled."""
        binding = self.binding or await self.start()
        await self.channel.consume(binding.queue, self.handle_delivery)

    async def handle_delivery(self, delivery: Delivery) -> Outcome:
        with LogContext(consumer=self.consumer.name, delivery_tag=delivery.delivery_tag):
            outcome = await self._decide(delivery)

            if outcome is Outcome.ACK:
                await self.channel.ack(delivery.delivery_tag)
                logger.info("Finish processing message", redelivered=delivery.redelivered)
            else:
                await self.channel.reject(delivery.delivery_tag, requeue=False)
                logger.warning("Message rejected", redelivered=delivery.redelivered)

            return outcome

    async def _decide(self, delivery: Delivery) -> Outcome:
        try:
            payload = decode_message(self.consumer.message_type, delivery.body)
        except MessageDecodeError as e:
            logger.critical(
                "Message could not be decoded",
                error=str(e),
                routing_key=delivery.routing_key,
                body=delivery.body[:500].decode("utf-8", errors="replace"),
            )
            return Outcome.REJECT

        message = ReceivedMessage(
            payload=payload,
            delivery_tag=delivery.delivery_tag,
            redelivered=delivery.redelivered,
            routing_key=delivery.routing_key,
        )
        logger.info("Receiving message", **message.context())

        try:
            outcome = await self.consumer.process(message)
        except CommandExecutionError as e:
            logger.critical(
                "External command failed",
                command=e.command,
                exit_code=e.exit_code,
                stderr=e.stderr[-2000:],
                **message.context(),
            )
            return Outcome.REJECT
        except Exception as e:
            logger.critical(
                "Message processing error",
                error=str(e),
                exc_info=e,
                **message.context(),
            )
            return Outcome.REJECT

        if not isinstance(outcome, Outcome):
            logger.critical("Consumer returned no outcome", returned=repr(outcome))
            return Outcome.REJECT
        return outcome
