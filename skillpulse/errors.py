"""Error taxonomy surfaced through the command protocol."""

from __future__ import annotations

import re

_CODE_PREFIX = re.compile(r"^([A-Z][A-Z_]*):(.*)$", re.DOTALL)


class SkillPulseError(Exception):
    """Base class for all SkillPulse errors; ``code`` is the protocol error code."""

    code = "ERROR"


class ValidationError(SkillPulseError):
    """Bad or missing input (empty name, out-of-range duration, wrong timer state)."""

    code = "VALIDATION"


class NotFoundError(SkillPulseError):
    """Skill id (or focus session) does not resolve."""

    code = "NOT_FOUND"


class QuotaExceededError(SkillPulseError):
    """Serialized value exceeds the per-item size ceiling."""

    code = "QUOTA_EXCEEDED"


class StoreError(SkillPulseError):
    """Backing-store I/O failure, including partial joint writes."""

    code = "ERROR"


class BusinessRuleRejection(SkillPulseError):
    """Expected, non-exceptional refusal; callers present it as guidance."""


class RearmError(BusinessRuleRejection):
    code = "REARM"

    def __init__(self, hours_remaining: int):
        self.hours_remaining = hours_remaining
        super().__init__(f"Please wait {hours_remaining} more hour(s) before checking again")


class DailyCapError(BusinessRuleRejection):
    code = "DAILY_CAP"

    def __init__(self, message: str = "Maximum checks per day reached. Try again tomorrow!"):
        super().__init__(message)


def split_error(exc: BaseException) -> tuple[str, str]:
    """Map an exception to ``(code, message)``.

    SkillPulse errors carry their own code. Any other message of the form
    ``"CODE:rest"`` with an upper-case code yields ``CODE``; everything
    else is ``ERROR``.
    """
    message = str(exc)
    if isinstance(exc, SkillPulseError):
        return exc.code, message
    match = _CODE_PREFIX.match(message)
    if match:
        return match.group(1), match.group(2)
    return "ERROR", message
