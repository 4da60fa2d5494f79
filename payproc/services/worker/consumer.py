"""RabbitMQ consumer driving `PaymentService.process_payment`.

One broker subscription feeds an in-process task queue; a fixed pool of worker
tasks drains it. Each task is retried locally for retryable failures, then
acked (done, or hopeless) or nacked without requeue (dead-lettered).
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection
from tenacity import RetryCallState

from payproc.common.config import Settings
from payproc.common.errors import InfrastructureError, PaymentError, is_retryable
from payproc.common.events import declare_processing_queue
from payproc.common.logging import logger, message_id_ctx, payment_id_ctx
from payproc.common.metrics import dlq_published_total, retries_total, tasks_acked_total, tasks_in_flight
from payproc.common.retry import build_retrying


class PaymentQueueConsumer:
    """Bounded-concurrency, retrying, dead-lettering executor for processing tasks."""

    def __init__(self, connection: AbstractRobustConnection, service, settings: Settings) -> None:
        self.connection = connection
        self.service = service
        self.settings = settings
        self.service_name = settings.service_name
        self.queue_name = settings.message_queue
        self.worker_count = settings.worker_count
        self._channel: AbstractChannel | None = None
        self._queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None
        self._tasks: asyncio.Queue | None = None
        self._workers: list[asyncio.Task] = []
        self._executor: ThreadPoolExecutor | None = None

    async def setup(self) -> None:
        """Open the channel, cap unacked deliveries at `worker_count`, declare queues."""

        try:
            self._channel = await self.connection.channel()
            await self._channel.set_qos(prefetch_count=self.worker_count)
            self._queue = await declare_processing_queue(
                self._channel,
                self.queue_name,
                self.settings.dead_letter_queue,
            )
        except Exception as exc:
            raise InfrastructureError("Failed to set up consumer", f"queue={self.queue_name}") from exc
        logger.info(
            "consumer_ready queue=%s workers=%s prefetch=%s attempts=%s delay_type=%s",
            self.queue_name,
            self.worker_count,
            self.worker_count,
            self.settings.retry_attempts,
            self.settings.retry_delay_type,
        )

    async def start(self, stop_event: asyncio.Event) -> None:
        """Consume until `stop_event` is set, then drain in-flight work and return."""

        if self._queue is None:
            await self.setup()
        self._ensure_executor()
        self._tasks = asyncio.Queue(maxsize=self.worker_count)
        self._workers = [
            asyncio.create_task(self._worker(worker_id), name=f"payment-worker-{worker_id}")
            for worker_id in range(1, self.worker_count + 1)
        ]
        try:
            self._consumer_tag = await self._queue.consume(self._dispatch, no_ack=False)
        except Exception as exc:
            await self._stop_workers()
            self._shutdown_executor()
            raise InfrastructureError("Failed to register consumer", f"queue={self.queue_name}") from exc

        logger.info("consumer_waiting_for_messages queue=%s", self.queue_name)
        await stop_event.wait()
        logger.info("consumer_shutting_down queue=%s", self.queue_name)
        await self._shutdown()

    async def _dispatch(self, message: AbstractIncomingMessage) -> None:
        await self._tasks.put(message)

    async def _worker(self, worker_id: int) -> None:
        logger.info("worker_started worker_id=%s", worker_id)
        while True:
            message = await self._tasks.get()
            if message is None:
                break
            try:
                await self.handle_message(message, worker_id)
            except Exception as exc:
                logger.exception("worker_task_error worker_id=%s error=%s", worker_id, exc)
        logger.info("worker_stopped worker_id=%s", worker_id)

    async def handle_message(self, message: AbstractIncomingMessage, worker_id: int = 0) -> None:
        """Run one task through the retry policy and settle it with the broker."""

        payment_id = message.body.decode("utf-8", errors="replace").strip()
        payment_token = payment_id_ctx.set(payment_id)
        message_token = message_id_ctx.set(message.message_id or "")
        in_flight = tasks_in_flight.labels(service=self.service_name, queue=self.queue_name)
        in_flight.inc()
        try:
            logger.info("task_received worker_id=%s payment_id=%s", worker_id, payment_id)
            try:
                await self._process_with_retry(payment_id, worker_id)
            except Exception as exc:
                await self._settle_failure(message, payment_id, worker_id, exc)
                return
            await message.ack()
            tasks_acked_total.labels(service=self.service_name, queue=self.queue_name, outcome="processed").inc()
            logger.info("task_acked worker_id=%s payment_id=%s", worker_id, payment_id)
        finally:
            in_flight.dec()
            payment_id_ctx.reset(payment_token)
            message_id_ctx.reset(message_token)

    async def _process_with_retry(self, payment_id: str, worker_id: int) -> None:
        loop = asyncio.get_running_loop()
        executor = self._ensure_executor()
        retrying = build_retrying(self.settings, before_sleep=self._log_retry(payment_id, worker_id))
        async for attempt in retrying:
            with attempt:
                await loop.run_in_executor(executor, self.service.process_payment, payment_id)

    def _ensure_executor(self) -> ThreadPoolExecutor:
        # One thread per worker; a blocked task only stalls its own worker.
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.worker_count,
                thread_name_prefix="payment-worker",
            )
        return self._executor

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _log_retry(self, payment_id: str, worker_id: int):
        attempts = self.settings.retry_attempts

        def before_sleep(retry_state: RetryCallState) -> None:
            retries_total.labels(service=self.service_name, dependency="payment_store").inc()
            logger.warning(
                "task_retry worker_id=%s attempt=%s/%s payment_id=%s error=%s",
                worker_id,
                retry_state.attempt_number,
                attempts,
                payment_id,
                retry_state.outcome.exception(),
            )

        return before_sleep

    async def _settle_failure(
        self,
        message: AbstractIncomingMessage,
        payment_id: str,
        worker_id: int,
        exc: Exception,
    ) -> None:
        if is_retryable(exc):
            # Routed to the dead-letter queue by the broker.
            await message.nack(requeue=False)
            error_type = exc.kind.value if isinstance(exc, PaymentError) else type(exc).__name__
            dlq_published_total.labels(
                service=self.service_name,
                queue=self.queue_name,
                error_type=error_type,
            ).inc()
            logger.error(
                "task_dead_lettered worker_id=%s payment_id=%s attempts=%s error=%s",
                worker_id,
                payment_id,
                self.settings.retry_attempts,
                exc,
            )
            return

        await message.ack()
        tasks_acked_total.labels(service=self.service_name, queue=self.queue_name, outcome="discarded").inc()
        if isinstance(exc, PaymentError):
            logger.warning(
                "task_discarded worker_id=%s payment_id=%s kind=%s error=%s",
                worker_id,
                payment_id,
                exc.kind.value,
                exc,
            )
        else:
            logger.error(
                "task_discarded worker_id=%s payment_id=%s unexpected_error=%r",
                worker_id,
                payment_id,
                exc,
                exc_info=exc,
            )

    async def _shutdown(self) -> None:
        if self._queue is not None and self._consumer_tag is not None:
            try:
                await self._queue.cancel(self._consumer_tag)
            except Exception as exc:
                logger.warning("consumer_cancel_failed queue=%s error=%s", self.queue_name, exc)
            self._consumer_tag = None

        # Delivered but not started: hand back to the broker.
        while not self._tasks.empty():
            message = self._tasks.get_nowait()
            if message is not None:
                try:
                    await message.reject(requeue=True)
                except Exception as exc:
                    logger.warning("task_requeue_failed error=%s", exc)
        await self._stop_workers()
        self._shutdown_executor()
        logger.info("consumer_stopped queue=%s", self.queue_name)

    async def _stop_workers(self) -> None:
        for _ in self._workers:
            await self._tasks.put(None)
        await asyncio.gather(*self._workers)
        self._workers = []

    async def close(self) -> None:
        """Release the worker threads, the channel and the broker connection."""

        self._shutdown_executor()
        if self._channel is not None and not self._channel.is_closed:
            await self._channel.close()
        self._channel = None
        self._queue = None
        await self.connection.close()
