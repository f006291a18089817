"""
Async Kafka producer — optional mirror of the realtime change feed.

When kafka_enabled is set, every ChangeEvent published in-process is also
sent to the 'wish-changes' topic so other services can follow wish/like
activity without polling the database.

Schema:
  { table, type, record, old_record }
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from wishwall.config import settings
from wishwall.realtime import ChangeEvent

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


async def init_kafka() -> None:
    global _producer
    _producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )


async def stop_kafka() -> None:
    global _producer
    if _producer:
        await _producer.stop()
        _producer = None


def get_producer() -> AIOKafkaProducer:
    if _producer is None:
        raise RuntimeError("Kafka producer not initialised")
    return _producer


async def publish_change(event: ChangeEvent) -> None:
    """Send one change event, keyed by table so per-table order is kept."""
    producer = get_producer()
    await producer.send_and_wait(
        settings.kafka_topic_wish_changes,
        event.to_dict(),
        key=event.table.encode("utf-8"),
    )
    logger.debug("Mirrored %s %s to Kafka", event.type.value, event.table)
