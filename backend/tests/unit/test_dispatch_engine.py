"""
Unit Tests for the Dispatch Engine
Tests sequential call/SMS dispatch, number validation probes and cancellation
"""
from unittest.mock import AsyncMock

import pytest

from app.domain.models.campaign_job import JobMode, Lead
from app.domain.services.dispatch_engine import DispatchEngine
from app.domain.services.orchestration_state import OrchestrationState
from app.domain.services.sms_template_manager import SMSTemplateManager


LEADS = [
    Lead(first_name="Ann", name="Ann Lee", phone="555-111-0001"),
    Lead(first_name="Bob", name="Bob Ray", phone="555-111-0002"),
    Lead(first_name="Cy", name="Cy Day", phone="555-111-0003"),
]


@pytest.fixture
def state(settings):
    return OrchestrationState(settings)


@pytest.fixture
def on_complete():
    return AsyncMock()


@pytest.fixture
def engine(state, fake_caller, fake_sms, on_complete):
    return DispatchEngine(
        state,
        fake_caller,
        fake_sms,
        SMSTemplateManager(agent_name="Sarah", business_name="Acme Realty"),
        call_delay_seconds=0,
        probe_settle_seconds=0,
        on_complete=on_complete,
    )


def _events(subscriber):
    events = []
    while not subscriber._queue.empty():
        event = subscriber._queue.get_nowait()
        if event is not None:
            events.append(event)
    return events


class TestCallDispatch:
    """Tests for call-mode dispatch"""

    @pytest.mark.asyncio
    async def test_calls_every_lead_in_order(self, state, engine, fake_caller, on_complete):
        """Test that every lead is called once, in order, and indexed"""
        job = state.jobs.create(LEADS, JobMode.CALL)

        await engine.run_job(job.id)

        assert [lead.name for lead in fake_caller.started] == ["Ann Lee", "Bob Ray", "Cy Day"]
        job = state.jobs.get(job.id)
        assert job.status == "complete"
        assert [r.status for r in job.results] == ["initiated"] * 3
        assert [r.call_id for r in job.results] == ["call-1", "call-2", "call-3"]
        assert job.results[0].phone == "+15551110001"
        assert state.correlation.lookup_call("call-2").lead_index == 1
        on_complete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_call_is_recorded_and_loop_continues(self, state, engine, fake_caller):
        """Test that one provider failure does not stop the job"""
        fake_caller.fail_numbers["+15551110002"] = "Customer number is invalid"
        job = state.jobs.create(LEADS, JobMode.CALL)

        await engine.run_job(job.id)

        results = state.jobs.get(job.id).results
        assert [r.status for r in results] == ["initiated", "error", "initiated"]
        assert results[1].error == "Customer number is invalid"
        assert results[1].call_id is None
        assert state.jobs.get(job.id).counts() == {"initiated": 2, "sent": 0, "errors": 1}

    @pytest.mark.asyncio
    async def test_progress_and_complete_events(self, state, engine):
        """Test the stream events emitted during dispatch"""
        job = state.jobs.create(LEADS[:2], JobMode.CALL)
        from app.domain.models.stream_events import InitEvent
        subscriber = state.broadcaster.subscribe(job.id, InitEvent(job=job.to_dict()))

        await engine.run_job(job.id)

        events = _events(subscriber)
        types = [e.type for e in events]
        assert types == ["init", "update", "update", "update", "update", "complete"]

        calling, initiated = events[1], events[2]
        assert calling.result["status"] == "calling"
        assert calling.progress.current == 0
        assert initiated.result["status"] == "initiated"
        assert initiated.progress.current == 1
        assert events[4].progress.current == 2

        complete = events[-1]
        assert (complete.total, complete.initiated, complete.errors) == (2, 2, 0)
        assert complete.sent is None

    @pytest.mark.asyncio
    async def test_delete_mid_dispatch_stops_quietly(self, state, fake_sms, on_complete):
        """Test that deleting the job halts dispatch within one iteration"""
        calls = []

        class DeletingCaller:
            async def start_call(self, lead):
                calls.append(lead)
                state.delete_job(job.id)
                return "call-1"

        engine = DispatchEngine(
            state, DeletingCaller(), fake_sms, SMSTemplateManager(),
            call_delay_seconds=0, probe_settle_seconds=0, on_complete=on_complete,
        )
        job = state.jobs.create(LEADS, JobMode.CALL)

        await engine.run_job(job.id)

        assert len(calls) == 1
        assert state.jobs.get(job.id) is None
        assert state.correlation.lookup_call("call-1") is None
        on_complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_job_is_a_no_op(self, engine, fake_caller):
        """Test running an unknown job"""
        await engine.run_job("missing")
        assert fake_caller.started == []


class TestNumberValidation:
    """Tests for the probe pre-pass"""

    @pytest.mark.asyncio
    async def test_undeliverable_numbers_are_dropped(self, state, engine, fake_caller, fake_sms):
        """Test that only explicit failures drop a lead and indices are rebuilt"""
        fake_sms.statuses["+15551110002"] = "undelivered"
        job = state.jobs.create(LEADS, JobMode.CALL)
        from app.domain.models.stream_events import InitEvent
        subscriber = state.broadcaster.subscribe(job.id, InitEvent(job=job.to_dict()))

        await engine.run_job(job.id, validate_numbers=True)

        job = state.jobs.get(job.id)
        assert job.total == 2
        assert [r.name for r in job.results] == ["Ann Lee", "Cy Day"]
        assert [lead.name for lead in fake_caller.started] == ["Ann Lee", "Cy Day"]
        assert state.correlation.lookup_call("call-2").lead_index == 1

        events = _events(subscriber)
        probes = [e for e in events if e.type == "probe"]
        assert [(p.index, p.status, p.kept) for p in probes] == [
            (0, "delivered", True),
            (1, "undelivered", False),
            (2, "delivered", True),
        ]
        done = next(e for e in events if e.type == "probe_done")
        assert (done.checked, done.dropped, done.remaining) == (3, 1, 2)
        assert len(done.job["results"]) == 2

    @pytest.mark.asyncio
    async def test_probe_failures_fail_open(self, state, engine, fake_caller, fake_sms):
        """Test that a probe that could not be sent or checked keeps the lead"""
        fake_sms.fail_numbers.add("+15551110001")
        fake_sms.get_message_status = AsyncMock(side_effect=RuntimeError("lookup failed"))
        job = state.jobs.create(LEADS, JobMode.CALL)

        await engine.run_job(job.id, validate_numbers=True)

        assert state.jobs.get(job.id).total == 3
        assert len(fake_caller.started) == 3

    @pytest.mark.asyncio
    async def test_probes_are_recorded_in_ledger(self, state, engine, fake_sms):
        """Test that sent probes join the number's thread"""
        job = state.jobs.create(LEADS[:1], JobMode.CALL)

        await engine.run_job(job.id, validate_numbers=True)

        thread = state.ledger.thread("+15551110001")
        assert len(thread) == 1
        assert thread[0].direction == "outbound"
        assert "Ann" in thread[0].body


class TestSmsDispatch:
    """Tests for SMS-mode dispatch"""

    @pytest.mark.asyncio
    async def test_texts_every_lead(self, state, engine, fake_sms):
        """Test that SMS dispatch marks leads sent and indexes their numbers"""
        job = state.jobs.create(LEADS[:2], JobMode.SMS, template="Hey {first_name}, still selling?")

        await engine.run_job(job.id)

        job = state.jobs.get(job.id)
        assert job.status == "complete"
        assert [r.status for r in job.results] == ["sent", "sent"]
        assert [r.outcome for r in job.results] == ["sent", "sent"]
        assert job.results[0].message_id is not None
        assert fake_sms.to("+15551110001") == ["Hey Ann, still selling?"]
        assert state.correlation.lookup_phone("5551110002").lead_index == 1
        assert state.ledger.thread("+15551110002")[0].body == "Hey Bob, still selling?"

    @pytest.mark.asyncio
    async def test_failed_send_is_an_error(self, state, engine, fake_sms):
        """Test that a rejected SMS is recorded on the lead"""
        fake_sms.fail_numbers.add("+15551110001")
        job = state.jobs.create(LEADS[:2], JobMode.SMS)

        await engine.run_job(job.id)

        results = state.jobs.get(job.id).results
        assert results[0].status == "error"
        assert results[0].error == "Invalid 'To' number"
        assert results[1].status == "sent"
        assert state.correlation.lookup_phone("+15551110001") is None

    @pytest.mark.asyncio
    async def test_results_carry_formatted_numbers(self, state, engine, fake_sms):
        """Test that sent and failed leads both store the canonical number"""
        fake_sms.fail_numbers.add("+15551110002")
        job = state.jobs.create(LEADS[:2], JobMode.SMS)

        await engine.run_job(job.id)

        results = state.jobs.get(job.id).results
        assert [r.phone for r in results] == ["+15551110001", "+15551110002"]
        assert [r.status for r in results] == ["sent", "error"]

    @pytest.mark.asyncio
    async def test_default_outreach_copy(self, state, engine, fake_sms):
        """Test that jobs without a template use the default outreach message"""
        job = state.jobs.create(LEADS[:1], JobMode.SMS)

        await engine.run_job(job.id)

        body = fake_sms.to("+15551110001")[0]
        assert body.startswith("Hi Ann, this is Sarah with Acme Realty.")
