"""Move dead-lettered processing tasks back onto the work queue.

Replay keeps the original body (the payment id), so the idempotent transition
makes replaying an already-processed payment a no-op.
"""

from aio_pika.abc import AbstractRobustConnection

from payproc.common.events import build_task_message, declare_processing_queue
from payproc.common.logging import logger


async def replay_dead_letters(
    connection: AbstractRobustConnection,
    queue_name: str,
    dead_letter_queue: str,
    limit: int = 100,
    dry_run: bool = False,
) -> int:
    """Replay up to `limit` DLQ messages; returns how many matched.

    In dry-run mode messages are inspected and handed back to the DLQ.
    """

    channel = await connection.channel()
    try:
        await declare_processing_queue(channel, queue_name, dead_letter_queue)
        dlq = await channel.declare_queue(dead_letter_queue, durable=True)
        inspected = []
        replayed = 0
        while replayed < limit:
            message = await dlq.get(no_ack=False, fail=False)
            if message is None:
                break
            payment_id = message.body.decode("utf-8", errors="replace").strip()
            if dry_run:
                # Held unacked until the end so the same message is not fetched twice.
                logger.info("dlq_message payment_id=%s", payment_id)
                inspected.append(message)
            else:
                await channel.default_exchange.publish(build_task_message(payment_id), routing_key=queue_name)
                await message.ack()
                logger.info("dlq_replayed payment_id=%s queue=%s", payment_id, queue_name)
            replayed += 1
        for message in inspected:
            await message.reject(requeue=True)
        return replayed
    finally:
        await channel.close()
