"""Links detection records whose owner update failed during upload.

Consumes ``detections.unlinked`` events and retries the append. Linking is
idempotent, so redelivered messages are harmless.
"""
import asyncio
import json
import logging

import aio_pika

import config
from database.db import SessionLocal
from services.errors import LinkError
from services.event_publisher import DETECTION_UNLINKED
from services.store import UserLinker

logger = logging.getLogger(__name__)

QUEUE_NAME = "detections.reconcile"


async def handle_message(message: aio_pika.IncomingMessage) -> None:
    async with message.process(requeue=False):
        data = json.loads(message.body.decode("utf-8"))
        detection_id = data.get("detection_id")
        user_id = data.get("user_id")
        if not detection_id or user_id is None:
            logger.warning("[reconcile] dropping malformed event: %s", data)
            return

        db = SessionLocal()
        try:
            await asyncio.to_thread(
                UserLinker(db).link_detection_sync, int(user_id), str(detection_id)
            )
        except LinkError as exc:
            logger.error(
                "[reconcile] detection %s still unlinked for user %s: %s",
                detection_id, user_id, exc,
            )
            return
        finally:
            db.close()
        logger.info("[reconcile] linked detection %s to user %s", detection_id, user_id)


async def main() -> None:
    connection = await aio_pika.connect_robust(config.RABBITMQ_URL)
    async with connection:
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=1)
        exchange = await channel.declare_exchange(
            config.EVENTS_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True
        )
        queue = await channel.declare_queue(QUEUE_NAME, durable=True)
        await queue.bind(exchange, routing_key=DETECTION_UNLINKED)
        logger.info(" [*] Reconcile consumer waiting on '%s'", DETECTION_UNLINKED)
        await queue.consume(handle_message)
        await asyncio.Future()


if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=config.LOG_LEVEL)
    asyncio.run(main())
