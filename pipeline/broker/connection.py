"""
Broker connection factory.

No retry here: a process that cannot reach the broker exits and its
supervisor restarts it.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractConnection
from aio_pika.exceptions import AMQPConnectionError

from pipeline.broker.channel import MessageChannel
from pipeline.exceptions import BrokerConnectionError
from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


class BrokerConnectionFactory:
    async def create_connection(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        vhost: str,
    ) -> AbstractConnection:
        """Open a plain (non auto-reconnecting) AMQP connection."""
        logger.info("Connecting to RabbitMQ", host=host, port=port, vhost=vhost)
        try:
            return await aio_pika.connect(
                host=host,
                port=port,
                login=user,
                password=password,
                virtualhost=vhost,
            )
        except (AMQPConnectionError, OSError) as e:
            raise BrokerConnectionError(host, port, vhost, str(e) or type(e).__name__) from e

    async def create_channel(
        self,
        connection: AbstractConnection,
        prefetch_count: int = 1,
    ) -> AbstractChannel:
        channel = await connection.channel()
        # Only `prefetch_count` unacked messages per consumer (fair dispatch)
        await channel.set_qos(prefetch_count=prefetch_count)
        return channel

    async def create_connection_from_settings(self, settings: Settings) -> AbstractConnection:
        return await self.create_connection(
            settings.rabbitmq_host,
            settings.rabbitmq_port,
            settings.rabbitmq_user,
            settings.rabbitmq_password,
            settings.rabbitmq_vhost,
        )


@asynccontextmanager
async def open_channel(
    settings: Optional[Settings] = None,
    factory: Optional[BrokerConnectionFactory] = None,
) -> AsyncGenerator[MessageChannel, None]:
    """Connect, yield a MessageChannel and always close the connection."""
    settings = settings or get_settings()
    factory = factory or BrokerConnectionFactory()

    connection = await factory.create_connection_from_settings(settings)
    try:
        channel = await factory.create_channel(connection, settings.rabbitmq_prefetch_count)
        yield MessageChannel(channel)
    finally:
        if not connection.is_closed:
            await connection.close()
        logger.info("RabbitMQ connection closed", host=settings.rabbitmq_host)
