"""Per-schedule fan-out of seat events to real-time subscribers."""

import asyncio
import logging
from typing import Any, Protocol
from uuid import UUID

from ..core.config import settings
from ..core.observability import metrics_collector
from ..schemas.events import SeatEvent

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Anything that can receive a JSON payload, e.g. a Starlette WebSocket."""

    async def send_json(self, data: Any) -> None: ...


def topic_for(schedule_id: UUID | str) -> str:
    return f"schedule-{schedule_id}"


class SeatEventBroadcaster:
    """
    Topic registry for seat events.

    Joining and leaving are idempotent. Delivery is best-effort: sends run
    concurrently, each bounded by ``send_timeout_seconds``, and a subscriber
    whose send fails or times out is dropped from every topic.
    """

    def __init__(self, send_timeout_seconds: float | None = None):
        if send_timeout_seconds is None:
            send_timeout_seconds = settings.realtime_send_timeout_seconds
        self.send_timeout_seconds = send_timeout_seconds
        # topic -> subscriber -> session id of that subscriber
        self.topics: dict[str, dict[Subscriber, str | None]] = {}
        self.subscriptions: dict[Subscriber, set[str]] = {}

    def join(self, subscriber: Subscriber, schedule_id: UUID | str, session_id: str | None = None) -> bool:
        """Subscribe to a schedule topic; returns False if already subscribed."""
        topic = topic_for(schedule_id)
        members = self.topics.setdefault(topic, {})
        if subscriber in members:
            return False

        members[subscriber] = session_id
        self.subscriptions.setdefault(subscriber, set()).add(topic)
        self._update_gauge()

        logger.debug("Subscriber joined topic", extra={"topic": topic, "session_id": session_id})
        return True

    def leave(self, subscriber: Subscriber, schedule_id: UUID | str) -> bool:
        """Unsubscribe from a schedule topic; returns False if not subscribed."""
        topic = topic_for(schedule_id)
        members = self.topics.get(topic)
        if not members or subscriber not in members:
            return False

        del members[subscriber]
        if not members:
            del self.topics[topic]

        topics = self.subscriptions.get(subscriber)
        if topics is not None:
            topics.discard(topic)
            if not topics:
                del self.subscriptions[subscriber]

        self._update_gauge()
        return True

    def disconnect(self, subscriber: Subscriber) -> None:
        """Drop a subscriber from every topic it joined."""
        for topic in list(self.subscriptions.get(subscriber, ())):
            self.leave(subscriber, topic.removeprefix("schedule-"))

    def subscriber_count(self, schedule_id: UUID | str) -> int:
        return len(self.topics.get(topic_for(schedule_id), {}))

    def connected_count(self) -> int:
        return len(self.subscriptions)

    async def publish(
        self,
        schedule_id: UUID | str,
        event: SeatEvent,
        exclude_session_id: str | None = None
    ) -> int:
        """
        Deliver an event to the schedule's topic.

        Subscribers registered under ``exclude_session_id`` are skipped.
        Returns the number of successful deliveries.
        """
        topic = topic_for(schedule_id)
        members = list(self.topics.get(topic, {}).items())
        if not members:
            return 0

        payload = event.model_dump(mode="json")
        targets = [
            subscriber for subscriber, session_id in members
            if exclude_session_id is None or session_id != exclude_session_id
        ]
        results = await asyncio.gather(
            *(self._deliver(subscriber, payload) for subscriber in targets),
            return_exceptions=True
        )

        delivered = 0
        failed = []
        for subscriber, result in zip(targets, results):
            if not isinstance(result, Exception):
                delivered += 1
                continue
            failed.append(subscriber)
            metrics_collector.record_dropped_delivery()
            logger.warning(
                "Dropping subscriber after failed delivery",
                extra={
                    "topic": topic,
                    "event_type": payload.get("type"),
                    "error": "send timed out" if isinstance(result, asyncio.TimeoutError) else str(result)
                }
            )

        for subscriber in failed:
            self.disconnect(subscriber)

        logger.debug(
            "Seat event published",
            extra={"topic": topic, "event_type": payload.get("type"), "delivered": delivered}
        )
        return delivered

    async def _deliver(self, subscriber: Subscriber, payload: dict[str, Any]) -> None:
        await asyncio.wait_for(subscriber.send_json(payload), timeout=self.send_timeout_seconds)

    def _update_gauge(self) -> None:
        metrics_collector.set_realtime_subscribers(
            sum(len(members) for members in self.topics.values())
        )


# Process-wide broadcaster used by the API and workers
seat_events = SeatEventBroadcaster()
