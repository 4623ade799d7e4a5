"""
backend/medbook/services/events.py

Event emitter: pushes scheduling events to a Redis list for downstream
consumers (notifications, calendar sync). Delivery is not handled here.

Events:
- appointment_booked / appointment_cancelled / appointment_status_changed
- availability_changed (rule created/updated/deleted, exceptions changed)
"""

import json
import logging
import time

from redis import Redis, RedisError

from ..config import settings
from ..redis_client import redis_client

logger = logging.getLogger(__name__)


def emit_event(event_type: str, payload: dict, client: Redis | None = None) -> bool:
    """
    Emit an event to the configured queue.

    Returns True when the event was pushed. A Redis failure is logged and
    never fails the scheduling operation that triggered it.
    """
    client = client if client is not None else redis_client
    if client is None:
        logger.debug(f"Event {event_type} not emitted: no Redis configured")
        return False

    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        client.rpush(settings.events_queue, json.dumps(event, default=str))
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
        return False

    logger.info(f"Event emitted: {event_type} → {settings.events_queue}")
    return True
