"""Domain event emission for downstream notification and real-time fan-out."""

import json
import logging
import uuid
from typing import Any, Protocol

import structlog

from ..core.clock import utcnow
from ..core.observability import metrics_collector

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"
BOOKING_CHECKED_IN = "booking.checked_in"
BOOKING_CHECKED_OUT = "booking.checked_out"


def build_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Wrap event data in the standard envelope."""
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": utcnow().isoformat() + "Z",
        "data": data,
    }


def to_json(event: dict[str, Any]) -> str:
    """Serialize an event envelope."""
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


class EventSink(Protocol):
    """Transport that delivers serialized events (push service, broker, websocket hub)."""

    async def publish(self, event_type: str, body: str) -> None:
        ...


class LoggingEventSink:
    """Sink that writes events as structured log lines."""

    def __init__(self):
        self.log = structlog.get_logger("booking_api.events")

    async def publish(self, event_type: str, body: str) -> None:
        await self.log.ainfo("booking_event", event_type=event_type, envelope=json.loads(body))


class EventEmitter:
    """
    Fire-and-forget emitter used after booking mutations have committed.

    Delivery failures are logged and swallowed: a lost notification must never
    undo a booking change that already committed.
    """

    def __init__(self, sink: EventSink | None = None):
        self.sink = sink or LoggingEventSink()

    async def emit(self, event_type: str, payload: dict[str, Any]) -> None:
        """Publish one event."""
        event = build_event(event_type, payload)
        try:
            await self.sink.publish(event_type, to_json(event))
        except Exception as e:
            logger.error(
                "Failed to publish booking event",
                exc_info=True,
                extra={
                    "event_type": event_type,
                    "event_id": event["event_id"],
                    "error": str(e),
                }
            )
            metrics_collector.record_event_failed(event_type)
            return
        metrics_collector.record_event_emitted(event_type)


# Default emitter used by the request handlers and workers
event_emitter = EventEmitter()
