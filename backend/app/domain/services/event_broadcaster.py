"""
Event Broadcaster
Fans job state deltas out to live stream subscribers
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, Optional, Set

from app.domain.models.stream_events import HEARTBEAT_FRAME, StreamEvent

logger = logging.getLogger(__name__)


class Subscriber:
    """
    One live sink. Events are delivered FIFO through a bounded queue;
    a sink that cannot keep up is dropped rather than blocking the sender.
    """

    MAX_PENDING = 1000

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.MAX_PENDING)
        self.closed = False

    def send(self, event: StreamEvent) -> bool:
        """Queue an event. Returns False if the sink is closed or full."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            return False

    def close(self) -> None:
        """Mark the end of the stream. Pending events are still delivered."""
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Make room for the end marker; the sink is already behind
            self._queue.get_nowait()
            self._queue.put_nowait(None)

    async def next_event(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """
        Wait for the next event.

        Returns None at end of stream; raises asyncio.TimeoutError if
        nothing arrives within `timeout`.
        """
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)


class EventBroadcaster:
    """
    Per-job sets of live subscribers.

    New subscribers get the current job snapshot first, then every later
    delta. When a job completes, the terminal event goes to every sink and
    the set is cleared; later subscribers receive only the terminal event.
    """

    def __init__(self):
        self._subscribers: Dict[str, Set[Subscriber]] = {}
        self._terminal: Dict[str, StreamEvent] = {}

    def subscribe(self, job_id: str, snapshot: StreamEvent) -> Subscriber:
        subscriber = Subscriber(job_id)

        terminal = self._terminal.get(job_id)
        if terminal is not None:
            subscriber.send(terminal)
            subscriber.close()
            return subscriber

        subscriber.send(snapshot)
        self._subscribers.setdefault(job_id, set()).add(subscriber)
        logger.debug(f"Subscriber added for job {job_id} ({self.subscriber_count(job_id)} live)")
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        sinks = self._subscribers.get(subscriber.job_id)
        if sinks is not None:
            sinks.discard(subscriber)
            if not sinks:
                del self._subscribers[subscriber.job_id]
        subscriber.close()

    def publish(self, job_id: str, event: StreamEvent) -> int:
        """
        Send an event to every live subscriber of a job.

        Returns:
            Number of sinks that accepted the event
        """
        delivered = 0
        for subscriber in list(self._subscribers.get(job_id, ())):
            if subscriber.send(event):
                delivered += 1
            else:
                logger.debug(f"Dropping stalled subscriber for job {job_id}")
                self.unsubscribe(subscriber)
        return delivered

    def complete(self, job_id: str, event: StreamEvent) -> None:
        """Send the terminal event, close every sink and clear the set."""
        self._terminal[job_id] = event
        for subscriber in self._subscribers.pop(job_id, set()):
            subscriber.send(event)
            subscriber.close()

    def close_job(self, job_id: str) -> None:
        """Close every sink of a deleted job without a terminal event."""
        for subscriber in self._subscribers.pop(job_id, set()):
            subscriber.close()
        self._terminal.pop(job_id, None)

    async def stream(self, subscriber: Subscriber, heartbeat_seconds: float) -> AsyncIterator[str]:
        """
        Yield server-sent event frames for one subscriber.

        A heartbeat comment is emitted whenever the sink has been idle for
        `heartbeat_seconds`. The generator ends after the terminal event or
        when the job is deleted; client disconnects cancel it.
        """
        try:
            while True:
                try:
                    event = await subscriber.next_event(timeout=heartbeat_seconds)
                except asyncio.TimeoutError:
                    yield HEARTBEAT_FRAME
                    continue
                if event is None:
                    break
                yield event.to_frame()
        finally:
            self.unsubscribe(subscriber)

    def subscriber_count(self, job_id: Optional[str] = None) -> int:
        if job_id is not None:
            return len(self._subscribers.get(job_id, ()))
        return sum(len(s) for s in self._subscribers.values())
