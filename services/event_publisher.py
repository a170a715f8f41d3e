import json
import logging
from typing import Any, Dict

import aio_pika

import config

logger = logging.getLogger(__name__)

DETECTION_CREATED = "detections.created"
DETECTION_UNLINKED = "detections.unlinked"


async def publish_event(routing_key: str, payload: Dict[str, Any]) -> None:
    """Publish an event to the topic exchange.

    Per-call connect/publish; suitable for the low event volume of this
    service. For higher throughput, reuse the connection and channel.
    """
    connection = await aio_pika.connect_robust(config.RABBITMQ_URL)
    async with connection:
        channel = await connection.channel()
        exchange = await channel.declare_exchange(
            config.EVENTS_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True
        )
        message = aio_pika.Message(
            body=json.dumps(payload).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        await exchange.publish(message, routing_key=routing_key)


async def try_publish_event(routing_key: str, payload: Dict[str, Any]) -> bool:
    """Best-effort publish; a broker failure never fails the caller."""
    if not config.EVENTS_ENABLED:
        return False
    try:
        await publish_event(routing_key, payload)
    except Exception as exc:
        logger.warning("[events] publish of %s failed: %s", routing_key, exc)
        return False
    return True
