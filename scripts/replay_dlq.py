"""Replay dead-lettered processing tasks back onto the work queue.

Processing is idempotent, so replaying a payment that already reached a
terminal status is a no-op in the worker.
"""

import argparse
import asyncio

import aio_pika

from payproc.common.config import settings
from payproc.services.worker.dlq import replay_dead_letters


async def replay(url: str, queue: str, dead_letter_queue: str, limit: int, dry_run: bool) -> int:
    """Open a connection, replay (or inspect) DLQ messages, close."""

    connection = await aio_pika.connect_robust(url)
    try:
        return await replay_dead_letters(connection, queue, dead_letter_queue, limit=limit, dry_run=dry_run)
    finally:
        await connection.close()


def main() -> None:
    """CLI entrypoint for operator DLQ replays."""

    parser = argparse.ArgumentParser(description="Move dead-lettered payment tasks back to the work queue.")
    parser.add_argument("--rabbitmq-url", default=settings.rabbitmq_url)
    parser.add_argument("--queue", default=settings.message_queue)
    parser.add_argument("--dead-letter-queue", default=settings.dead_letter_queue)
    parser.add_argument("--limit", type=int, default=100)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    if not args.dead_letter_queue:
        raise SystemExit("No dead-letter queue configured")

    count = asyncio.run(replay(args.rabbitmq_url, args.queue, args.dead_letter_queue, args.limit, args.dry_run))
    verb = "Found" if args.dry_run else "Replayed"
    print(f"{verb} {count} message(s) from {args.dead_letter_queue}")


if __name__ == "__main__":
    main()
