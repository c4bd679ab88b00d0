"""
Phone Number Utilities
Canonical +1 formatting for North American lead numbers
"""
import re

_NON_DIGIT = re.compile(r"\D")


def format_phone(raw) -> str:
    """
    Normalize a lead phone number to +1XXXXXXXXXX.

    - 11 digits starting with the country code 1 are kept as +1...
    - 10 digits get the +1 prefix
    - longer inputs keep only the trailing 10 digits
    - anything else is prefixed with +1 as-is

    Returns an empty string when the input has no digits.
    """
    digits = _NON_DIGIT.sub("", str(raw if raw is not None else ""))
    if not digits:
        return ""
    if len(digits) == 11 and digits[0] == "1":
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) > 11:
        return f"+1{digits[-10:]}"
    return f"+1{digits}"
