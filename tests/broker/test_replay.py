from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from pipeline.broker.channel import MessageChannel
from pipeline.broker.replay import replay_dead_letters


@pytest.fixture
def dead_letter_queue(amqp_channel, incoming_message):
    """A DLQ for analysis.filesize backed by a list; returns the list."""
    waiting = [
        incoming_message(body=b'{"versionId":1,"filename":"a"}', delivery_tag=1),
        incoming_message(body=b'{"versionId":2,"filename":"b"}', delivery_tag=2),
    ]

    async def get(no_ack=False, fail=True):
        return waiting.pop(0) if waiting else None

    original_declare = amqp_channel.declare_queue.side_effect

    async def declare_queue(name, **kwargs):
        queue = await original_declare(name, **kwargs)
        if name == "analysis.filesize.dlq":
            queue.get = AsyncMock(side_effect=get)
            queue.declaration_result = SimpleNamespace(message_count=len(waiting))
        return queue

    amqp_channel.declare_queue.side_effect = declare_queue
    return waiting


@pytest.mark.asyncio
async def test_replay_moves_dead_letters_back(amqp_channel, dead_letter_queue):
    channel = MessageChannel(amqp_channel)
    dead = list(dead_letter_queue)

    count = await replay_dead_letters(channel, "analysis.filesize")

    assert count == 2
    published = [call.args[0].body for call in amqp_channel.default_exchange.publish.await_args_list]
    assert published == [m.body for m in dead]
    routing_keys = {call.kwargs["routing_key"] for call in amqp_channel.default_exchange.publish.await_args_list}
    assert routing_keys == {"analysis.filesize"}
    for message in dead:
        message.ack.assert_awaited_once()
    assert channel.pending_tags == frozenset()
    assert amqp_channel.declared_queues["analysis.filesize.dlq"][1] == {"passive": True}


@pytest.mark.asyncio
async def test_replay_stops_when_messages_are_dead_lettered_again(
    amqp_channel, dead_letter_queue, incoming_message
):
    channel = MessageChannel(amqp_channel)
    next_tag = iter(range(100, 200))

    # every replayed message is rejected again and lands back in the DLQ
    async def publish_and_fail_again(message, routing_key, **kwargs):
        dead_letter_queue.append(incoming_message(body=message.body, delivery_tag=next(next_tag)))

    amqp_channel.default_exchange.publish.side_effect = publish_and_fail_again

    count = await replay_dead_letters(channel, "analysis.filesize")

    assert count == 2
    assert amqp_channel.default_exchange.publish.await_count == 2
    assert len(dead_letter_queue) == 2


@pytest.mark.asyncio
async def test_replay_respects_limit():
    channel = AsyncMock()
    channel.message_count = AsyncMock(return_value=2)
    channel.fetch = AsyncMock(side_effect=[
        SimpleNamespace(body=b"1", delivery_tag=1),
        SimpleNamespace(body=b"2", delivery_tag=2),
    ])

    count = await replay_dead_letters(channel, "analysis.pdepend", limit=1)

    assert count == 1
    channel.declare_dead_letter_topology.assert_awaited_once_with("analysis.pdepend")
    channel.message_count.assert_awaited_once_with("analysis.pdepend.dlq")
    channel.fetch.assert_awaited_once_with("analysis.pdepend.dlq")
    channel.publish.assert_awaited_once_with(b"1", exchange="", routing_key="analysis.pdepend")
    channel.ack.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_replay_stops_early_when_dlq_drains(mock_channel):
    mock_channel.message_count = AsyncMock(return_value=5)
    mock_channel.fetch = AsyncMock(side_effect=[SimpleNamespace(body=b"1", delivery_tag=1), None])

    assert await replay_dead_letters(mock_channel, "download.git", limit=10) == 1
    mock_channel.ack.assert_awaited_once_with(1)


@pytest.mark.asyncio
async def test_replay_empty_dlq(mock_channel):
    mock_channel.message_count = AsyncMock(return_value=0)
    mock_channel.fetch = AsyncMock(return_value=None)

    assert await replay_dead_letters(mock_channel, "download.git") == 0
    mock_channel.fetch.assert_not_awaited()
    mock_channel.publish.assert_not_awaited()
