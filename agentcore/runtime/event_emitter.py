"""
AgentEventEmitter - fire-and-forget timeline event publishing.

Publishing never blocks or fails an operation: events are enqueued on a
BackgroundQueue and delivered to subscribers in publish order. A subscriber
that raises is logged and skipped, the remaining subscribers still run.
"""

import inspect
from typing import Any, Awaitable, Callable

from agentcore.domain.events import TimelineEvent, TimelineEventRecord
from agentcore.runtime.background import BackgroundQueue
from agentcore.utils.logging import get_logger

logger = get_logger(__name__)

EventSubscriber = Callable[[TimelineEventRecord], Any | Awaitable[Any]]


class AgentEventEmitter:
    """Delivers timeline events to subscribers in the background."""

    def __init__(self, queue: BackgroundQueue | None = None):
        # Delivery is attempted once; subscriber failures are not retried
        self._queue = queue or BackgroundQueue(name="timeline-events", max_attempts=1)
        self._subscribers: list[EventSubscriber] = []

    def subscribe(self, subscriber: EventSubscriber) -> Callable[[], None]:
        """
        Register a subscriber.

        Returns:
            Callable: function that removes the subscription
        """
        self._subscribers.append(subscriber)
        return lambda: self.unsubscribe(subscriber)

    def unsubscribe(self, subscriber: EventSubscriber) -> None:
        try:
            self._subscribers.remove(subscriber)
        except ValueError:
            pass

    def publish_timeline_event_async(
        self,
        agent_id: str,
        history_id: str,
        event: TimelineEvent,
        parent_history_entry_id: str | None = None,
    ) -> None:
        """Enqueue an event for delivery and return immediately."""
        try:
            record = TimelineEventRecord(
                agent_id=agent_id,
                history_id=history_id,
                event=event,
                parent_history_entry_id=parent_history_entry_id,
            )
            self._queue.enqueue(
                lambda: self._deliver(record),
                operation_id=f"event-{event.name}-{event.id}",
            )
        except Exception as e:
            logger.error(
                "timeline_event_publish_failed",
                agent_id=agent_id,
                event_name=event.name,
                error=str(e),
            )

    async def flush(self) -> None:
        """Wait for every queued event to be delivered."""
        await self._queue.flush()

    async def _deliver(self, record: TimelineEventRecord) -> None:
        for subscriber in list(self._subscribers):
            try:
                result = subscriber(record)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "timeline_event_subscriber_failed",
                    agent_id=record.agent_id,
                    event_name=record.event.name,
                    error=str(e),
                    exc_info=True,
                )


class EventCollector:
    """Subscriber that records every delivered event."""

    def __init__(self) -> None:
        self.records: list[TimelineEventRecord] = []

    def __call__(self, record: TimelineEventRecord) -> None:
        self.records.append(record)

    @property
    def events(self) -> list[TimelineEvent]:
        return [r.event for r in self.records]

    def by_name(self, name: str) -> list[TimelineEvent]:
        return [e for e in self.events if e.name == name]

    def for_trace(self, trace_id: str) -> list[TimelineEvent]:
        return [e for e in self.events if e.trace_id == trace_id]


__all__ = ["AgentEventEmitter", "EventCollector", "EventSubscriber"]
