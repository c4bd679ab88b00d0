"""
Result Reconciliation
Merges webhook-delivered outcomes with on-demand provider lookups.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.domain.interfaces.call_provider import CallProvider
from app.domain.models.campaign_job import CamelModel, CallReport, Job, JobMode, LeadResult, LeadStatus
from app.domain.services.outcome_classifier import classify_call_report

logger = logging.getLogger(__name__)


PLACEHOLDER = "—"
UNKNOWN_OUTCOME = "unknown"
CALL_STATUS_ENDED = "ended"
CALL_STATUS_ERROR = "error"

CSV_HEADER = "Name,Phone,Outcome,Duration,Ended Reason,Summary"
CSV_FIELDS = ("name", "phone", "outcome", "duration", "ended_reason", "summary")


class ReconciledRow(CamelModel):
    """One lead in the reconciled results view"""
    name: str = ""
    phone: str = ""
    call_id: Optional[str] = None
    call_status: Optional[str] = None
    ended_reason: Optional[str] = None
    duration: Optional[str] = None
    summary: str = ""
    outcome: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["endedReason"] = self.ended_reason or PLACEHOLDER
        data["duration"] = self.duration or PLACEHOLDER
        return data


@dataclass
class ReconciledLead:
    """A row plus the provider report it was built from, if it was fetched."""
    index: int
    row: ReconciledRow
    report: Optional[CallReport] = None


def _row_from_result(result: LeadResult, call_status: Optional[str]) -> ReconciledRow:
    return ReconciledRow(
        name=result.name,
        phone=result.phone,
        call_id=result.call_id,
        call_status=call_status,
        ended_reason=result.ended_reason,
        duration=result.duration,
        summary=result.summary or "",
        outcome=result.outcome,
    )


def _error_row(result: LeadResult) -> ReconciledRow:
    return ReconciledRow(
        name=result.name,
        phone=result.phone,
        call_status=CALL_STATUS_ERROR,
        ended_reason=result.error or "Failed to initiate",
        outcome=CALL_STATUS_ERROR,
    )


def _fetched_row(result: LeadResult, report: CallReport) -> ReconciledRow:
    ended = report.status == CALL_STATUS_ENDED
    return ReconciledRow(
        name=result.name,
        phone=result.phone,
        call_id=result.call_id,
        call_status=report.status,
        ended_reason=report.ended_reason,
        duration=report.duration,
        summary=report.summary,
        outcome=classify_call_report(report).value if ended else None,
    )


def _failed_row(result: LeadResult, error: BaseException) -> ReconciledRow:
    return ReconciledRow(
        name=result.name,
        phone=result.phone,
        call_id=result.call_id,
        ended_reason=str(error) or type(error).__name__,
        summary="Could not fetch",
        outcome=UNKNOWN_OUTCOME,
    )


async def reconcile_job(job: Job, caller: CallProvider) -> List[ReconciledLead]:
    """
    Build one row per lead, in lead order.

    Leads that already have an outcome are reported as ended without a
    provider lookup. Call leads still waiting on a webhook are looked up
    concurrently; a failed lookup only affects its own row.
    """
    rows: List[Optional[ReconciledLead]] = [None] * len(job.results)
    pending: List[int] = []

    for index, result in enumerate(job.results):
        if job.mode == JobMode.SMS.value:
            rows[index] = ReconciledLead(index, _row_from_result(result, result.status))
        elif result.outcome is not None:
            rows[index] = ReconciledLead(index, _row_from_result(result, CALL_STATUS_ENDED))
        elif not result.call_id:
            if result.status == LeadStatus.ERROR.value:
                rows[index] = ReconciledLead(index, _error_row(result))
            else:
                rows[index] = ReconciledLead(index, _row_from_result(result, result.status))
        else:
            pending.append(index)

    fetched = await asyncio.gather(
        *(caller.get_call(job.results[i].call_id) for i in pending),
        return_exceptions=True,
    )

    for index, outcome in zip(pending, fetched):
        result = job.results[index]
        if isinstance(outcome, BaseException):
            logger.warning(f"Could not fetch call {result.call_id}: {outcome}")
            rows[index] = ReconciledLead(index, _failed_row(result, outcome))
        else:
            rows[index] = ReconciledLead(index, _fetched_row(result, outcome), report=outcome)

    return [row for row in rows if row is not None]


def _csv_cell(value: Any) -> str:
    text = "" if value is None else str(value)
    return '"' + text.replace('"', "'") + '"'


def render_csv(rows: List[ReconciledRow]) -> str:
    """
    Comma-separated export of reconciled rows.

    Every field is quoted; embedded double quotes become single quotes and
    summary newlines are flattened to spaces.
    """
    lines = [CSV_HEADER]
    for row in rows:
        values = {field: getattr(row, field) for field in CSV_FIELDS}
        values["summary"] = (values["summary"] or "").replace("\r\n", " ").replace("\n", " ")
        lines.append(",".join(_csv_cell(values[field]) for field in CSV_FIELDS))
    return "\n".join(lines)
