"""
Best-effort real-time event fan-out.

Services receive an EventEmitter explicitly; delivery never affects the
outcome of the operation that emitted the event.
"""

import json
from typing import Any, Optional, Protocol

import redis.asyncio as aioredis
import structlog

from app.config import Settings

logger = structlog.get_logger()


class EventSink(Protocol):
    async def publish(self, channel: str, message: str) -> None:
        ...


class RedisEventSink:
    """Publishes events on Redis pub/sub channels"""

    def __init__(self, redis_url: str):
        self._client = aioredis.from_url(redis_url)

    async def publish(self, channel: str, message: str) -> None:
        await self._client.publish(channel, message)

    async def close(self) -> None:
        await self._client.aclose()


class LogEventSink:
    """Fallback sink when no broker is configured"""

    async def publish(self, channel: str, message: str) -> None:
        logger.debug("Event", channel=channel, message=message)


class EventEmitter:
    """Serializes events and hands them to a sink, swallowing failures"""

    def __init__(self, sink: EventSink, channel_prefix: str = "venue"):
        self.sink = sink
        self.channel_prefix = channel_prefix

    async def emit(self, event: str, payload: Any, room: Optional[str] = None) -> None:
        channel = f"{self.channel_prefix}:{event}"
        try:
            message = json.dumps({"event": event, "room": room, "data": payload}, default=str)
            await self.sink.publish(channel, message)
        except Exception as e:
            logger.warning("Event publish failed", event_name=event, room=room, error=str(e))

    async def close(self) -> None:
        close = getattr(self.sink, "close", None)
        if close is not None:
            await close()


def build_event_emitter(settings: Settings) -> EventEmitter:
    """Emitter for the configured environment"""
    if settings.events_enabled and settings.redis_url:
        sink: EventSink = RedisEventSink(settings.redis_url)
    else:
        sink = LogEventSink()
    return EventEmitter(sink, channel_prefix=settings.events_channel_prefix)
