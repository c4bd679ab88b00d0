"""
Correlation Index
Maps provider-assigned identifiers back to a job and lead position.
"""
import logging
from typing import Dict, Optional

from app.domain.models.campaign_job import CallIndexEntry, PhoneIndexEntry
from app.utils.phone import format_phone

logger = logging.getLogger(__name__)


class CorrelationIndex:
    """
    Lookup tables populated at dispatch time and read by webhook resolvers.

    - call id -> CallIndexEntry (call mode, one entry per dispatched call)
    - phone   -> PhoneIndexEntry (SMS mode, last write wins across jobs)
    - alerted call ids, so each call triggers at most one hot-lead alert

    Entries are back-references only; the Job Store owns the results.
    """

    def __init__(self):
        self._calls: Dict[str, CallIndexEntry] = {}
        self._phones: Dict[str, PhoneIndexEntry] = {}
        self._alerted: set[str] = set()

    # Calls

    def register_call(self, call_id: str, entry: CallIndexEntry) -> None:
        self._calls[call_id] = entry

    def lookup_call(self, call_id: Optional[str]) -> Optional[CallIndexEntry]:
        if not call_id:
            return None
        return self._calls.get(call_id)

    def claim_retry(self, call_id: str) -> Optional[CallIndexEntry]:
        """
        Check-then-set the single retry allowed for a call.

        Returns:
            The entry if this caller won the right to retry, else None
        """
        entry = self._calls.get(call_id)
        if entry is None or entry.retries >= 1 or entry.retry_scheduled:
            return None
        entry.retry_scheduled = True
        return entry

    def mark_alerted(self, call_id: str) -> bool:
        """
        Check-then-set the hot-lead alert guard.

        Returns:
            True the first time a call id is seen, False afterwards
        """
        if call_id in self._alerted:
            return False
        self._alerted.add(call_id)
        return True

    # Phones

    def register_phone(self, phone: str, entry: PhoneIndexEntry) -> None:
        self._phones[format_phone(phone)] = entry

    def lookup_phone(self, phone: Optional[str]) -> Optional[PhoneIndexEntry]:
        if not phone:
            return None
        return self._phones.get(format_phone(phone))

    # Lifecycle

    def drop_job(self, job_id: str) -> int:
        """Forget every entry pointing at a job. Returns the number removed."""
        call_ids = [cid for cid, e in self._calls.items() if e.job_id == job_id]
        for cid in call_ids:
            del self._calls[cid]
            self._alerted.discard(cid)
        phones = [p for p, e in self._phones.items() if e.job_id == job_id]
        for phone in phones:
            del self._phones[phone]
        return len(call_ids) + len(phones)

    @property
    def call_count(self) -> int:
        return len(self._calls)

    @property
    def phone_count(self) -> int:
        return len(self._phones)
