"""
Outcome Classifier
Maps provider call metadata and inbound SMS text to campaign outcomes.

Both classifiers are pure and total: they never raise and always return
an Outcome, so reclassifying the same input is always safe.
"""
import re
from typing import Optional

from app.domain.models.campaign_job import CallReport, Outcome


# End reasons are compared after lower-casing and hyphenating whitespace,
# so "No Answer" and "no-answer" match the same pattern.
NO_ANSWER_REASONS = ("customer-did-not-answer", "no-answer", "voicemail", "customer-busy")
REJECTION_REASONS = ("do-not-call", "rejected", "not-interested", "remove", "declined")
HANGUP_REASON = "hang-up"

# Buying signals in the call summary
HOT_KEYWORDS = ("book", "schedul", "appoint", "interested", "call back", "set up", "yes")

# Hesitation in the call summary
WARM_KEYWORDS = ("maybe", "follow", "later", "think about", "consider", "down the road")

# Negated interest and contact requests are removed before keyword matching
_NEGATED_INTEREST = re.compile(r"\b(?:not|no longer|isn't|wasn't|aren't|never)\s+interested\b")
_NEGATED_CONTACT = re.compile(r"\b(?:do not|don['’]?t|never)\s+(?:call|text|contact)\b(?:\s+me)?")

REPLY_HOT = re.compile(
    r"\b(?:yes|yeah|yep|yup|interested|call me|give me a call|book|schedul\w*|appointment"
    r"|let'?s talk|sounds good|definitely|absolutely)\b|(?<!not )\bsure\b"
)
REPLY_WARM = re.compile(
    r"\b(?:maybe|later|not sure|follow up|think about|thinking about|consider\w*|down the road"
    r"|next (?:week|month|year)|busy right now|not right now|not yet)\b"
)
REPLY_NEGATIVE = re.compile(
    r"\b(?:stop|unsubscribe|remove|opt out|no thanks|no thank you|not interested|wrong number"
    r"|leave me alone|do not (?:text|call|contact)|don['’]?t (?:text|call|contact)|no)\b"
)


def _normalize_reason(ended_reason: Optional[str]) -> str:
    return re.sub(r"[\s_]+", "-", (ended_reason or "").strip().lower())


def classify_call_outcome(
    ended_reason: Optional[str],
    summary: Optional[str],
    started_at: Optional[object] = None,
) -> Outcome:
    """
    Classify a finished call.

    First match wins: explicit provider signals about call failure outrank
    sentiment inferred from the summary.

    Args:
        ended_reason: Provider's structured end reason
        summary: Free-text call summary
        started_at: Call start timestamp, if the call was ever connected

    Returns:
        Outcome for the call
    """
    reason = _normalize_reason(ended_reason)
    text = (summary or "").lower()

    if any(r in reason for r in NO_ANSWER_REASONS):
        return Outcome.NO_ANSWER
    if any(r in reason for r in REJECTION_REASONS):
        return Outcome.NOT_INTERESTED
    if HANGUP_REASON in reason and not started_at:
        return Outcome.NOT_INTERESTED

    text = _NEGATED_INTEREST.sub(" ", text)
    if any(k in text for k in HOT_KEYWORDS):
        return Outcome.HOT
    if any(k in text for k in WARM_KEYWORDS):
        return Outcome.WARM
    return Outcome.COMPLETED


def classify_call_report(report: CallReport) -> Outcome:
    """Classify a parsed provider call object."""
    return classify_call_outcome(report.ended_reason, report.summary, report.started_at)


def classify_reply(body: Optional[str]) -> Outcome:
    """
    Classify an inbound SMS reply.

    Interest is checked first, then hesitation, then opt-out language;
    anything else is a neutral reply.
    """
    text = (body or "").lower()
    affirmative = _NEGATED_CONTACT.sub(" ", _NEGATED_INTEREST.sub(" ", text))
    if REPLY_HOT.search(affirmative):
        return Outcome.HOT
    if REPLY_WARM.search(text):
        return Outcome.WARM
    if REPLY_NEGATIVE.search(text):
        return Outcome.NOT_INTERESTED
    return Outcome.REPLIED
