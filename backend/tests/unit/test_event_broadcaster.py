"""
Unit Tests for the Event Broadcaster
Tests subscriber fan-out, terminal events, heartbeats and frame format
"""
import asyncio
import json

import pytest

from app.domain.models.stream_events import (
    HEARTBEAT_FRAME,
    CompleteEvent,
    InitEvent,
    UpdateEvent,
)
from app.domain.services.event_broadcaster import EventBroadcaster, Subscriber


def _decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):])


class TestStreamEvents:
    """Tests for frame serialization"""

    def test_update_frame(self):
        """Test that an update frame carries index, result and progress"""
        from app.domain.models.stream_events import Progress

        event = UpdateEvent(index=1, result={"status": "initiated"}, progress=Progress(current=2, total=3))
        payload = _decode(event.to_frame())

        assert payload == {
            "type": "update",
            "index": 1,
            "result": {"status": "initiated"},
            "progress": {"current": 2, "total": 3},
        }

    def test_unset_fields_are_omitted(self):
        """Test that a call-mode complete frame has no sent count"""
        payload = _decode(CompleteEvent(total=3, initiated=2, errors=1).to_frame())

        assert payload == {"type": "complete", "total": 3, "initiated": 2, "errors": 1}


class TestEventBroadcaster:
    """Tests for per-job subscriber sets"""

    @pytest.mark.asyncio
    async def test_subscriber_gets_snapshot_then_deltas(self):
        """Test that a new subscriber sees init first, then every published event in order"""
        broadcaster = EventBroadcaster()
        subscriber = broadcaster.subscribe("job-1", InitEvent(job={"id": "job-1"}))

        broadcaster.publish("job-1", UpdateEvent(index=0, result={}))
        broadcaster.publish("job-1", UpdateEvent(index=1, result={}))

        first = await subscriber.next_event(timeout=1)
        second = await subscriber.next_event(timeout=1)
        third = await subscriber.next_event(timeout=1)

        assert first.type == "init"
        assert (second.index, third.index) == (0, 1)

    @pytest.mark.asyncio
    async def test_publish_only_reaches_own_job(self):
        """Test that events are scoped to their job"""
        broadcaster = EventBroadcaster()
        broadcaster.subscribe("job-1", InitEvent(job={}))
        broadcaster.subscribe("job-2", InitEvent(job={}))

        delivered = broadcaster.publish("job-1", UpdateEvent(index=0, result={}))

        assert delivered == 1
        assert broadcaster.subscriber_count() == 2
        assert broadcaster.subscriber_count("job-1") == 1

    @pytest.mark.asyncio
    async def test_complete_closes_every_sink(self):
        """Test that complete sends the terminal event and clears the set"""
        broadcaster = EventBroadcaster()
        subscriber = broadcaster.subscribe("job-1", InitEvent(job={}))

        broadcaster.complete("job-1", CompleteEvent(total=1, initiated=1, errors=0))

        assert (await subscriber.next_event(timeout=1)).type == "init"
        assert (await subscriber.next_event(timeout=1)).type == "complete"
        assert await subscriber.next_event(timeout=1) is None
        assert broadcaster.subscriber_count("job-1") == 0

    @pytest.mark.asyncio
    async def test_late_subscriber_gets_terminal_event_only(self):
        """Test subscribing to an already complete job"""
        broadcaster = EventBroadcaster()
        broadcaster.complete("job-1", CompleteEvent(total=1, initiated=1, errors=0))

        subscriber = broadcaster.subscribe("job-1", InitEvent(job={}))

        assert (await subscriber.next_event(timeout=1)).type == "complete"
        assert await subscriber.next_event(timeout=1) is None
        assert broadcaster.subscriber_count("job-1") == 0

    @pytest.mark.asyncio
    async def test_stalled_subscriber_is_dropped(self):
        """Test that a full sink is removed instead of blocking publishers"""
        broadcaster = EventBroadcaster()
        slow = broadcaster.subscribe("job-1", InitEvent(job={}))

        for i in range(Subscriber.MAX_PENDING):
            broadcaster.publish("job-1", UpdateEvent(index=i, result={}))

        assert slow.closed is True
        assert broadcaster.subscriber_count("job-1") == 0

    @pytest.mark.asyncio
    async def test_stream_yields_frames_and_heartbeats(self):
        """Test the server-sent event generator"""
        broadcaster = EventBroadcaster()
        subscriber = broadcaster.subscribe("job-1", InitEvent(job={"id": "job-1"}))
        frames = []

        async def consume():
            async for frame in broadcaster.stream(subscriber, heartbeat_seconds=0.01):
                frames.append(frame)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        broadcaster.complete("job-1", CompleteEvent(total=0, initiated=0, errors=0))
        await asyncio.wait_for(task, timeout=1)

        assert _decode(frames[0])["type"] == "init"
        assert HEARTBEAT_FRAME in frames
        assert _decode(frames[-1])["type"] == "complete"

    @pytest.mark.asyncio
    async def test_close_job_ends_streams(self):
        """Test that deleting a job ends its streams without a terminal frame"""
        broadcaster = EventBroadcaster()
        subscriber = broadcaster.subscribe("job-1", InitEvent(job={}))

        broadcaster.close_job("job-1")
        frames = [frame async for frame in broadcaster.stream(subscriber, heartbeat_seconds=1)]

        assert len(frames) == 1
        assert _decode(frames[0])["type"] == "init"
