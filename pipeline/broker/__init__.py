"""RabbitMQ plumbing shared by every producer and consumer."""

from pipeline.broker.channel import Delivery, MessageChannel
from pipeline.broker.connection import BrokerConnectionFactory, open_channel
from pipeline.broker.topology import QueueBinding, QueueOptions, ExchangeOptions, Stage, TOPOLOGY, get_stage

__all__ = [
    "Delivery",
    "MessageChannel",
    "BrokerConnectionFactory",
    "open_channel",
    "QueueBinding",
    "QueueOptions",
    "ExchangeOptions",
    "Stage",
    "TOPOLOGY",
    "get_stage",
]
