"""
Event emitter using Redis pub/sub.

Publishes events to the 'moderation.events' channel.
"""
import logging

from redis.asyncio import Redis

from moderation.events.event_schemas import BaseEvent

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "moderation.events"


async def emit_event(event: BaseEvent, redis: Redis) -> bool:
    """
    Publish an event.

    Returns:
        True if the event was published, False otherwise. Failures are
        logged and never raised.
    """
    try:
        subscribers = await redis.publish(EVENTS_CHANNEL, event.model_dump_json())
    except Exception as e:
        logger.error(f"Failed to emit event: {event.event}: {e}", exc_info=True)
        return False

    logger.info(f"Emitted event: {event.event} to {subscribers} subscriber(s)")
    return True
