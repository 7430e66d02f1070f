"""Status lifecycle and countdown derivation for metas.

A meta moves freely between ``to_do``, ``in_progress`` and ``completed``.
The only side effect of a transition is the completion stamp: it is written
when a meta *enters* ``completed`` and left alone otherwise, so a meta that is
reopened keeps its old ``completed_at``.

The countdown is a pure function of status, target date, completion time and
"today"; nothing about it is persisted.

Example:
    >>> from datetime import date
    >>> countdown(MetaStatus.IN_PROGRESS, date(2024, 6, 1), None, today=date(2024, 6, 10)).label
    'Overdue by 8 days'
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import StrEnum
from typing import Optional

from mymetas.models import MetaRow, MetaStatus
from mymetas.utils import format_iso, parse_datetime, utc_now, utc_today


class CountdownKind(StrEnum):
    """Which branch of the countdown rule produced a label."""

    COMPLETED = "completed"
    TO_DO = "to_do"
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    REMAINING = "remaining"


@dataclass(frozen=True)
class Countdown:
    """Derived display for one meta.

    Attributes:
        kind: Branch of the rule that applied
        label: Full sentence for detail views ("Overdue by 8 days")
        badge: Compact text for list rows ("Overdue")
        days: Signed days until the deadline, None when no arithmetic was done
    """

    kind: CountdownKind
    label: str
    badge: str
    days: Optional[int] = None


# =============================================================================
# Transitions
# =============================================================================


def enters_completed(previous: MetaStatus, new: MetaStatus) -> bool:
    """True when a status change moves a meta into COMPLETED."""
    return new == MetaStatus.COMPLETED and previous != MetaStatus.COMPLETED


def apply_status(
    meta: MetaRow,
    new_status: MetaStatus,
    now: Optional[datetime] = None,
) -> bool:
    """Set ``meta.status``, stamping ``completed_at`` on entry into COMPLETED.

    Args:
        meta: Meta being updated (mutated in place)
        new_status: Requested status
        now: Instant to stamp (defaults to the current UTC time)

    Returns:
        True if the completion stamp was written
    """
    stamped = enters_completed(MetaStatus(meta.status), new_status)
    if stamped:
        meta.completed_at = format_iso(now or utc_now())
    meta.status = new_status
    return stamped


# =============================================================================
# Countdown
# =============================================================================


def _as_date(value: date | datetime | str | None) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def countdown(
    status: MetaStatus | str,
    date_target: date | str | None,
    completed_at: date | datetime | str | None = None,
    today: Optional[date] = None,
) -> Optional[Countdown]:
    """Derive the countdown display for a meta.

    The target date itself still counts as "not yet due": the deadline is the
    day after ``date_target``.

    Args:
        status: Current status
        date_target: Optional target date
        completed_at: Completion timestamp (used only for COMPLETED)
        today: Reference date (defaults to the current UTC date)

    Returns:
        Countdown, or None for an in-progress meta without a target date
    """
    status = MetaStatus(status)
    today = today or utc_today()

    if status == MetaStatus.COMPLETED:
        done_on = _as_date(completed_at) or today
        return Countdown(
            kind=CountdownKind.COMPLETED,
            label=f"Completed on {done_on.isoformat()}",
            badge="Completed",
        )

    if status == MetaStatus.TO_DO:
        return Countdown(kind=CountdownKind.TO_DO, label="To do", badge="To do")

    date_target = _as_date(date_target)
    if date_target is None:
        return None

    deadline = date_target + timedelta(days=1)
    days_left = (deadline - today).days

    if deadline < today:
        return Countdown(
            kind=CountdownKind.OVERDUE,
            label=f"Overdue by {abs(days_left)} days",
            badge="Overdue",
            days=days_left,
        )
    if days_left == 0:
        return Countdown(
            kind=CountdownKind.DUE_TODAY,
            label="Due today",
            badge="Due today",
            days=0,
        )
    return Countdown(
        kind=CountdownKind.REMAINING,
        label=f"{days_left} days remaining",
        badge=f"{days_left} days",
        days=days_left,
    )


def countdown_for(meta: MetaRow, today: Optional[date] = None) -> Optional[Countdown]:
    """Countdown for a stored meta row."""
    return countdown(meta.status, meta.date_target, meta.completed_at, today)


def format_status(status: MetaStatus | str) -> str:
    """Human label for a status ("in_progress" -> "In progress")."""
    text = str(MetaStatus(status)).replace("_", " ")
    return text[:1].upper() + text[1:]


__all__ = [
    "Countdown",
    "CountdownKind",
    "enters_completed",
    "apply_status",
    "countdown",
    "countdown_for",
    "format_status",
]
