"""
Unit Tests for Result Reconciliation and CSV Export
"""
import pytest

from app.domain.models.campaign_job import CallReport, JobMode, Lead
from app.domain.services.job_store import JobStore
from app.domain.services.reconciliation import ReconciledRow, reconcile_job, render_csv


@pytest.fixture
def store():
    return JobStore()


def _call_job(store):
    job = store.create(
        [
            Lead(name="Ann Lee", phone="+15551110001"),
            Lead(name="Bob Ray", phone="+15551110002"),
            Lead(name="Cy Day", phone="+15551110003"),
            Lead(name="Di Fox", phone="+15551110004"),
            Lead(name="Ed Roe", phone="+15551110005"),
        ],
        JobMode.CALL,
    )
    store.set_result(job.id, 0, {
        "status": "initiated", "call_id": "call-1", "outcome": "hot",
        "summary": "Book a visit", "ended_reason": "customer-ended-call", "duration": "40s",
    })
    store.set_result(job.id, 1, {"status": "initiated", "call_id": "call-2"})
    store.set_result(job.id, 2, {"status": "error", "error": "Customer number is invalid"})
    store.set_result(job.id, 3, {"status": "initiated", "call_id": "call-4"})
    store.set_result(job.id, 4, {"status": "initiated", "call_id": "call-5"})
    return job


class TestReconcileJob:
    """Tests for reconcile_job"""

    @pytest.mark.asyncio
    async def test_rows_in_lead_order(self, store, fake_caller):
        """Test the row for each kind of lead"""
        job = _call_job(store)
        fake_caller.reports["call-2"] = CallReport(
            call_id="call-2",
            status="ended",
            ended_reason="customer-did-not-answer",
            summary="",
        )
        fake_caller.reports["call-5"] = RuntimeError("Request timed out after 30s")

        reconciled = await reconcile_job(job, fake_caller)
        rows = [item.row for item in reconciled]

        assert [r.name for r in rows] == ["Ann Lee", "Bob Ray", "Cy Day", "Di Fox", "Ed Roe"]

        known, fetched, failed_dispatch, in_progress, lookup_failed = rows
        assert (known.call_status, known.outcome) == ("ended", "hot")
        assert reconciled[0].report is None

        assert (fetched.call_status, fetched.outcome) == ("ended", "no-answer")
        assert reconciled[1].report is not None

        assert failed_dispatch.outcome == "error"
        assert failed_dispatch.ended_reason == "Customer number is invalid"

        assert in_progress.call_status == "in-progress"
        assert in_progress.outcome is None

        assert lookup_failed.outcome == "unknown"
        assert lookup_failed.summary == "Could not fetch"

    @pytest.mark.asyncio
    async def test_only_pending_calls_are_fetched(self, store, fake_caller):
        """Test that leads with an outcome are never looked up"""
        job = _call_job(store)
        fetched = []
        original = fake_caller.get_call

        async def tracking_get_call(call_id):
            fetched.append(call_id)
            return await original(call_id)

        fake_caller.get_call = tracking_get_call

        await reconcile_job(job, fake_caller)

        assert sorted(fetched) == ["call-2", "call-4", "call-5"]

    @pytest.mark.asyncio
    async def test_sms_rows_use_lead_status(self, store, fake_caller):
        """Test that SMS jobs never query the call provider"""
        job = store.create([Lead(name="Ann Lee", phone="+15551110001")], JobMode.SMS)
        store.set_result(job.id, 0, {"status": "sent", "outcome": "replied"})

        [item] = await reconcile_job(job, fake_caller)

        assert item.row.call_status == "sent"
        assert item.row.outcome == "replied"


class TestRenderCsv:
    """Tests for the CSV export"""

    def test_header_and_quoting(self):
        """Test that every field is quoted and quotes are replaced"""
        rows = [
            ReconciledRow(
                name='Ann "AJ" Lee',
                phone="+15551110001",
                outcome="hot",
                duration="40s",
                ended_reason="customer-ended-call",
                summary="Wants a visit\nnext week",
            ),
            ReconciledRow(name="Bob Ray", phone="+15551110002"),
        ]

        lines = render_csv(rows).split("\n")

        assert lines[0] == "Name,Phone,Outcome,Duration,Ended Reason,Summary"
        assert lines[1] == (
            '"Ann \'AJ\' Lee","+15551110001","hot","40s","customer-ended-call","Wants a visit next week"'
        )
        assert lines[2] == '"Bob Ray","+15551110002","","","",""'
        assert len(lines) == 3

    def test_row_json_placeholders(self):
        """Test that missing duration and ended reason display as a dash"""
        data = ReconciledRow(name="Bob Ray").to_dict()

        assert data["duration"] == "—"
        assert data["endedReason"] == "—"
        assert data["callStatus"] is None
