"""
Message channel: all broker I/O of a pipeline process goes through here.

- publish() persists JSON messages to an exchange
- bind_queue() / declare_dead_letter_topology() declare the topology
- consume() hands every delivery to a handler, ack()/reject() settle it

Deliveries are tracked by delivery tag until they are settled, so a tag
can be acked or rejected exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
)
from aio_pika.exceptions import AMQPError, ChannelPreconditionFailed
import orjson
from pydantic import BaseModel

from pipeline.broker.topology import (
    ExchangeOptions,
    QueueBinding,
    QueueOptions,
    dead_letter_arguments,
    dead_letter_exchange_name,
    dead_letter_queue_name,
)
from pipeline.exceptions import DeliveryStateError, PublishError, TopologyConflictError
from pipeline.models.messages import encode_message
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Delivery:
    """One delivered message instance, as the broker handed it over."""

    body: bytes
    delivery_tag: int
    redelivered: bool
    routing_key: str
    exchange: str = ""


DeliveryHandler = Callable[[Delivery], Awaitable[Any]]
Payload = Union[BaseModel, dict, bytes]


class MessageChannel:
    def __init__(self, channel: AbstractChannel) -> None:
        self._ch = channel
        self._exchanges: Dict[str, AbstractExchange] = {}
        self._queues: Dict[str, AbstractQueue] = {}
        # queue name -> x-dead-letter-* arguments, filled before bind_queue()
        self._dead_letter_args: Dict[str, Dict[str, Any]] = {}
        # delivery tag -> message, until acked or rejected
        self._pending: Dict[int, AbstractIncomingMessage] = {}

    @property
    def is_closed(self) -> bool:
        return self._ch.is_closed

    @property
    def pending_tags(self) -> frozenset[int]:
        return frozenset(self._pending)

    # ------------------------------------------------------------------ publish

    async def publish(self, payload: Payload, exchange: str, routing_key: str) -> None:
        """Serialize + publish one persistent message."""
        if self._ch.is_closed:
            raise PublishError(f"Channel is closed, cannot publish to {exchange!r}/{routing_key!r}")

        if isinstance(payload, BaseModel):
            body = encode_message(payload)
        elif isinstance(payload, bytes):
            body = payload
        else:
            body = orjson.dumps(payload)

        msg = Message(
            body=body,
            delivery_mode=DeliveryMode.PERSISTENT,
            content_type="application/json",
        )

        try:
            target = await self._get_exchange(exchange)
            await target.publish(msg, routing_key=routing_key)
        except AMQPError as e:
            raise PublishError(f"Broker refused message for {exchange!r}/{routing_key!r}: {e}") from e

        logger.debug("Message published", exchange=exchange or "(default)", routing_key=routing_key)

    # ----------------------------------------------------------------- topology

    async def declare_exchange(
        self,
        name: str,
        options: Optional[ExchangeOptions] = None,
    ) -> AbstractExchange:
        if name in self._exchanges:
            return self._exchanges[name]

        options = options or ExchangeOptions()
        try:
            exchange = await self._ch.declare_exchange(
                name,
                options.type,
                durable=options.durable,
                auto_delete=options.auto_delete,
            )
        except ChannelPreconditionFailed as e:
            raise TopologyConflictError(f"Exchange {name!r} exists with different options: {e}") from e

        self._exchanges[name] = exchange
        return exchange

    async def declare_dead_letter_topology(self, queue_name: str) -> Dict[str, Any]:
        """
        Declare ``<queue>.dlx`` and ``<queue>.dlq`` and remember the
        x-dead-letter-* arguments for the primary queue.

        Must run before bind_queue() of the primary queue: queue arguments
        cannot change once the queue exists.
        """
        dlx_name = dead_letter_exchange_name(queue_name)
        dlq_name = dead_letter_queue_name(queue_name)

        dlx = await self.declare_exchange(dlx_name, ExchangeOptions(type=ExchangeType.DIRECT))
        try:
            dlq = await self._ch.declare_queue(dlq_name, durable=True)
        except ChannelPreconditionFailed as e:
            raise TopologyConflictError(f"Queue {dlq_name!r} exists with different options: {e}") from e
        await dlq.bind(dlx, routing_key=queue_name)
        self._queues[dlq_name] = dlq

        arguments = dead_letter_arguments(queue_name)
        self._dead_letter_args[queue_name] = arguments

        logger.info("Dead-letter topology declared", queue=queue_name, dlx=dlx_name, dlq=dlq_name)
        return arguments

    async def bind_queue(
        self,
        name: str,
        exchange: str,
        routing_key: str,
        options: Optional[QueueOptions] = None,
        exchange_options: Optional[ExchangeOptions] = None,
    ) -> AbstractQueue:
        """Declare exchange + queue and bind them. Idempotent."""
        options = options or QueueOptions()
        arguments = {**options.arguments, **self._dead_letter_args.get(name, {})}

        target = await self.declare_exchange(exchange, exchange_options)
        try:
            queue = await self._ch.declare_queue(
                name,
                durable=options.durable,
                exclusive=options.exclusive,
                auto_delete=options.auto_delete,
                arguments=arguments or None,
            )
        except ChannelPreconditionFailed as e:
            raise TopologyConflictError(
                f"Queue {name!r} exists with different arguments; delete it before "
                f"changing its dead-letter settings: {e}"
            ) from e

        await queue.bind(target, routing_key=routing_key)
        self._queues[name] = queue

        logger.info("Queue bound", queue=name, exchange=exchange, routing_key=routing_key)
        return queue

    async def bind(self, binding: QueueBinding) -> AbstractQueue:
        """Declare the whole topology of a QueueBinding in the right order."""
        if binding.dead_lettering:
            await self.declare_dead_letter_topology(binding.queue)
        return await self.bind_queue(
            binding.queue,
            binding.exchange,
            binding.routing_key,
            binding.options,
            binding.exchange_options,
        )

    # ------------------------------------------------------------------ consume

    async def consume(self, queue_name: str, handler: DeliveryHandler) -> None:
        """Hand every delivery of ``queue_name`` to ``handler``, one at a time, forever."""
        queue = await self._get_queue(queue_name)

        logger.info("Consuming", queue=queue_name)
        async with queue.iterator() as it:
            async for incoming in it:
                await handler(self._track(incoming))

    async def fetch(self, queue_name: str) -> Optional[Delivery]:
        """Get a single message without waiting; None if the queue is empty."""
        queue = await self._get_queue(queue_name)
        incoming = await queue.get(no_ack=False, fail=False)
        if incoming is None:
            return None
        return self._track(incoming)

    async def message_count(self, queue_name: str) -> int:
        """Number of ready messages in an existing queue."""
        queue = await self._ch.declare_queue(queue_name, passive=True)
        return queue.declaration_result.message_count

    async def ack(self, delivery_tag: int) -> None:
        message = self._settle(delivery_tag)
        await message.ack()

    async def reject(self, delivery_tag: int, requeue: bool = False) -> None:
        """
        Reject one delivery. requeue=False sends it to the dead-letter
        queue (if declared) instead of back to the queue.
        """
        message = self._settle(delivery_tag)
        await message.reject(requeue=requeue)

    # ------------------------------------------------------------------ helpers

    def _track(self, incoming: AbstractIncomingMessage) -> Delivery:
        tag = incoming.delivery_tag
        self._pending[tag] = incoming
        return Delivery(
            body=incoming.body,
            delivery_tag=tag,
            redelivered=bool(incoming.redelivered),
            routing_key=incoming.routing_key or "",
            exchange=incoming.exchange or "",
        )

    def _settle(self, delivery_tag: int) -> AbstractIncomingMessage:
        try:
            return self._pending.pop(delivery_tag)
        except KeyError:
            raise DeliveryStateError(
                f"Delivery {delivery_tag} is unknown or was already acked/rejected"
            ) from None

    async def _get_exchange(self, name: str) -> AbstractExchange:
        # "" is the default exchange: routing key == queue name
        if name == "":
            return self._ch.default_exchange
        return await self.declare_exchange(name)

    async def _get_queue(self, name: str) -> AbstractQueue:
        if name not in self._queues:
            # passive declare: fails if the queue does not exist
            self._queues[name] = await self._ch.get_queue(name, ensure=True)
        return self._queues[name]
