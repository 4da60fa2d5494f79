"""Test configuration.

A file-backed SQLite database stands in for PostgreSQL. Every transaction is
opened with `BEGIN IMMEDIATE`, so a writer holds the database lock from its
first statement until commit; this gives the locking read the same
serialization the row lock provides in production.
"""

import os
import threading
import time
from collections.abc import Iterator
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

os.environ.setdefault("POSTGRES_DSN", "sqlite:///./payproc_test.db")
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")
os.environ.setdefault("SERVICE_NAME", "payproc-test")

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from payproc.common.config import Settings  # noqa: E402
from payproc.common.db import Base, make_session_factory  # noqa: E402
from payproc.common.state_machine import PaymentStatus  # noqa: E402
from payproc.services.payments.models import Currency, Payment  # noqa: E402
from payproc.services.payments.service import PaymentService  # noqa: E402


class RecordingProcessor:
    """Deterministic processing effect that counts how often it runs."""

    def __init__(self, outcome: PaymentStatus = PaymentStatus.SUCCESS, delay: float = 0.0) -> None:
        self.outcome = outcome
        self.delay = delay
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def process(self, payment: Payment) -> PaymentStatus:
        with self._lock:
            self.calls.append(payment.id)
        if self.delay:
            time.sleep(self.delay)
        return self.outcome


@pytest.fixture
def engine(tmp_path: Path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'payments.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return make_session_factory(engine)


@pytest.fixture
def processor() -> RecordingProcessor:
    return RecordingProcessor()


@pytest.fixture
def publisher() -> AsyncMock:
    publisher = AsyncMock()
    publisher.queue_name = "payment_processing"
    return publisher


@pytest.fixture
def service(session_factory, processor, publisher) -> PaymentService:
    return PaymentService(session_factory, processor=processor, publisher=publisher, service_name="payproc-test")


@pytest.fixture
def insert_payment(session_factory):
    """Insert one payment row directly and return its id."""

    counter = iter(range(1, 10_000))

    def _insert(status: PaymentStatus = PaymentStatus.PENDING, reference: str | None = None) -> str:
        with session_factory() as db:
            payment = Payment(
                amount=Decimal("100.00"),
                currency=Currency.USD,
                reference=reference or f"ref-{next(counter)}",
                status=status,
            )
            db.add(payment)
            db.commit()
            return payment.id

    return _insert


@pytest.fixture
def read_status(session_factory):
    def _read(payment_id: str) -> PaymentStatus:
        with session_factory() as db:
            return db.get(Payment, payment_id).status

    return _read


@pytest.fixture
def consumer_settings() -> Settings:
    return Settings(
        service_name="payproc-test",
        message_queue="payment_processing",
        dead_letter_queue="payment_processing.dlq",
        worker_count=2,
        retry_attempts=3,
        retry_delay_type="fixed",
        retry_delay_seconds=0,
        retry_max_delay_seconds=0,
    )


@pytest.fixture
def broker() -> Iterator[dict]:
    """Mocked aio-pika connection/channel/queue capturing the consume callback."""

    callbacks = []

    async def _consume(callback, no_ack=False):
        callbacks.append(callback)
        return "ctag-1"

    queue = MagicMock()
    queue.consume = AsyncMock(side_effect=_consume)
    queue.cancel = AsyncMock()

    channel = MagicMock()
    channel.is_closed = False
    channel.set_qos = AsyncMock()
    channel.declare_queue = AsyncMock(return_value=queue)
    channel.close = AsyncMock()
    channel.default_exchange.publish = AsyncMock()

    connection = MagicMock()
    connection.channel = AsyncMock(return_value=channel)
    connection.close = AsyncMock()

    yield {"connection": connection, "channel": channel, "queue": queue, "callbacks": callbacks}


@pytest.fixture
def make_message():
    """Factory for incoming broker messages with awaitable ack/nack/reject."""

    def _make(body: str, message_id: str = "msg-1") -> AsyncMock:
        message = AsyncMock()
        message.body = body.encode("utf-8")
        message.message_id = message_id
        return message

    return _make


@pytest.fixture
def make_processor():
    return RecordingProcessor
