"""Dead-letter replay moves tasks back to the work queue."""

from unittest.mock import AsyncMock

import pytest

from payproc.services.worker.dlq import replay_dead_letters


@pytest.mark.asyncio
async def test_replay_moves_messages_and_acks_them(broker, make_message):
    first = make_message("6f1c2b9e-0d4a-4b8e-9c3f-2a7d5e1b0c44")
    second = make_message("0b7e3f52-8a4c-4d1e-bf39-5c2a9e7d6f10")
    broker["queue"].get = AsyncMock(side_effect=[first, second, None])

    replayed = await replay_dead_letters(
        broker["connection"], "payment_processing", "payment_processing.dlq", limit=10
    )

    assert replayed == 2
    publish = broker["channel"].default_exchange.publish
    assert [call.args[0].body for call in publish.await_args_list] == [first.body, second.body]
    assert all(call.kwargs == {"routing_key": "payment_processing"} for call in publish.await_args_list)
    first.ack.assert_awaited_once()
    second.ack.assert_awaited_once()
    broker["channel"].close.assert_awaited_once()


@pytest.mark.asyncio
async def test_replay_respects_limit(broker, make_message):
    messages = [make_message("6f1c2b9e-0d4a-4b8e-9c3f-2a7d5e1b0c44") for _ in range(3)]
    broker["queue"].get = AsyncMock(side_effect=messages)

    replayed = await replay_dead_letters(
        broker["connection"], "payment_processing", "payment_processing.dlq", limit=2
    )

    assert replayed == 2
    assert broker["queue"].get.await_count == 2


@pytest.mark.asyncio
async def test_dry_run_returns_messages_to_dlq(broker, make_message):
    message = make_message("6f1c2b9e-0d4a-4b8e-9c3f-2a7d5e1b0c44")
    broker["queue"].get = AsyncMock(side_effect=[message, None])

    found = await replay_dead_letters(
        broker["connection"], "payment_processing", "payment_processing.dlq", dry_run=True
    )

    assert found == 1
    broker["channel"].default_exchange.publish.assert_not_awaited()
    message.reject.assert_awaited_once_with(requeue=True)
    message.ack.assert_not_awaited()
