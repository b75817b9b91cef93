"""
Re-publish dead-lettered messages to their primary queue.

Run this after the cause of the rejects is fixed. Each message is acked
in the DLQ only after it was published again, so a crash in between
duplicates a message rather than losing it.

Only the messages that were in the DLQ when the replay started are moved.
Messages that are rejected again while the replay runs stay in the DLQ
for the next run.
"""

from __future__ import annotations

from typing import Optional

from pipeline.broker.channel import MessageChannel
from pipeline.broker.topology import dead_letter_queue_name
from shared.utils.logging import get_logger

logger = get_logger(__name__)


async def replay_dead_letters(
    channel: MessageChannel,
    queue_name: str,
    limit: Optional[int] = None,
) -> int:
    """Move up to ``limit`` messages from ``<queue>.dlq`` back to ``<queue>``."""
    dlq_name = dead_letter_queue_name(queue_name)

    # idempotent, makes sure the DLQ exists before we read it
    await channel.declare_dead_letter_topology(queue_name)

    available = await channel.message_count(dlq_name)
    budget = available if limit is None else min(limit, available)

    replayed = 0
    while replayed < budget:
        delivery = await channel.fetch(dlq_name)
        if delivery is None:
            break

        # default exchange: routing key == queue name
        await channel.publish(delivery.body, exchange="", routing_key=queue_name)
        await channel.ack(delivery.delivery_tag)
        replayed += 1

    logger.info(
        "Dead letters replayed",
        queue=queue_name,
        dlq=dlq_name,
        count=replayed,
        available=available,
    )
    return replayed
