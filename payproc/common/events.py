"""RabbitMQ topology + publisher helpers.

This module standardizes the work queue / dead-letter queue declaration so the
API publisher, the worker consumer and the DLQ replay tool agree on queue
arguments (RabbitMQ rejects redeclaration with different arguments).
"""

from uuid import uuid4

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractQueue, AbstractRobustConnection

from payproc.common.errors import InfrastructureError
from payproc.common.logging import logger


async def declare_processing_queue(
    channel: AbstractChannel,
    queue_name: str,
    dead_letter_queue: str | None,
) -> AbstractQueue:
    """Declare the durable work queue, wired to its dead-letter queue if any.

    Messages rejected with `requeue=False` are routed by the broker through the
    default exchange to `dead_letter_queue`.
    """

    arguments = None
    if dead_letter_queue:
        await channel.declare_queue(dead_letter_queue, durable=True)
        arguments = {
            "x-dead-letter-exchange": "",
            "x-dead-letter-routing-key": dead_letter_queue,
        }
    return await channel.declare_queue(
        queue_name,
        durable=True,
        exclusive=False,
        auto_delete=False,
        arguments=arguments,
    )


def build_task_message(payment_id: str) -> aio_pika.Message:
    """One persistent processing task whose body is the payment identifier."""

    return aio_pika.Message(
        payment_id.encode("utf-8"),
        content_type="text/plain",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        message_id=str(uuid4()),
    )


class RabbitMQPublisher:
    """Lazy RabbitMQ connection wrapper used by the payment service."""

    def __init__(self, url: str, queue_name: str, dead_letter_queue: str | None = None) -> None:
        self.url = url
        self.queue_name = queue_name
        self.dead_letter_queue = dead_letter_queue
        self._connection: AbstractRobustConnection | None = None
        self._channel: AbstractChannel | None = None

    async def channel(self) -> AbstractChannel:
        if self._channel is None or self._channel.is_closed:
            if self._connection is None:
                self._connection = await aio_pika.connect_robust(self.url)
            self._channel = await self._connection.channel(publisher_confirms=True)
            await declare_processing_queue(self._channel, self.queue_name, self.dead_letter_queue)
        return self._channel

    async def publish(self, payment_id: str) -> None:
        """Enqueue one processing task; broker failures raise `InfrastructureError`."""

        try:
            channel = await self.channel()
            await channel.default_exchange.publish(build_task_message(payment_id), routing_key=self.queue_name)
        except Exception as exc:
            raise InfrastructureError(
                "Failed to publish processing task",
                f"queue={self.queue_name}",
            ) from exc
        logger.info("task_published queue=%s payment_id=%s", self.queue_name, payment_id)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
