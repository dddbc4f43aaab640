"""
Reminder offsets, recurrence modes and the fire-time calculator
"""
from datetime import datetime, timedelta
from typing import Optional, Union
from enum import Enum
from dataclasses import dataclass

from taskreminder.utils.timezone import to_utc_aware, utcnow
from .exceptions import InvalidOffset


# Fixed durations; the cadence is absolute time, never calendar-aware
RECURRENCE_PERIOD = timedelta(days=7)
LATE_FIRE_DELAY = timedelta(seconds=60)


class RecurrenceMode(str, Enum):
    """How often a task reminds its owner"""
    SINGLE = "once"
    PERIODIC = "weekly"


class ReminderOffset(str, Enum):
    """Lead time before the deadline at which a reminder fires"""
    SHORT = "3h"
    MEDIUM = "1d"
    LONG = "3d"


_OFFSET_DURATIONS = {
    ReminderOffset.SHORT: timedelta(hours=3),
    ReminderOffset.MEDIUM: timedelta(days=1),
    ReminderOffset.LONG: timedelta(days=3),
}


def parse_offset(token: Union[ReminderOffset, str]) -> ReminderOffset:
    """Accept an offset member, its value ("3h") or its name ("short")."""
    if isinstance(token, ReminderOffset):
        return token
    if isinstance(token, str):
        try:
            return ReminderOffset(token)
        except ValueError:
            member = ReminderOffset.__members__.get(token.upper())
            if member is not None:
                return member
    raise InvalidOffset(token)


def parse_mode(mode: Union[RecurrenceMode, str]) -> RecurrenceMode:
    if isinstance(mode, RecurrenceMode):
        return mode
    try:
        return RecurrenceMode(mode)
    except ValueError:
        member = RecurrenceMode.__members__.get(str(mode).upper())
        if member is None:
            raise ValueError(f"Unknown recurrence mode: {mode!r}")
        return member


def resolve_offset(token: Union[ReminderOffset, str]) -> timedelta:
    return _OFFSET_DURATIONS[parse_offset(token)]


def offset_ms(token: Union[ReminderOffset, str]) -> int:
    """Offset duration in epoch milliseconds."""
    return int(resolve_offset(token) / timedelta(milliseconds=1))


@dataclass(frozen=True)
class FirePlan:
    """When the next reminder fires and the deadline it belongs to.

    ``fire_at is None`` means there is no further occurrence.
    """
    fire_at: Optional[datetime]
    deadline: Optional[datetime]

    @classmethod
    def none(cls, deadline: Optional[datetime] = None) -> "FirePlan":
        return cls(fire_at=None, deadline=deadline)

    @property
    def has_occurrence(self) -> bool:
        return self.fire_at is not None


class RecurrenceCalculator:
    """Calculates reminder fire times for single and weekly tasks"""

    @staticmethod
    def compute_initial_fire_time(
        deadline: datetime,
        offset: Union[ReminderOffset, str],
        mode: Union[RecurrenceMode, str],
        end_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
        late_delay: timedelta = LATE_FIRE_DELAY,
    ) -> FirePlan:
        """First fire time for a newly created or edited task.

        A single reminder whose lead time has already passed fires
        ``late_delay`` from now rather than being dropped. A weekly reminder
        is rolled forward in whole periods until it fires in the future; if
        that pushes the deadline past ``end_date`` there is no occurrence.
        """
        duration = resolve_offset(offset)
        mode = parse_mode(mode)
        deadline = to_utc_aware(deadline)
        end_date = to_utc_aware(end_date)
        now = to_utc_aware(now) or utcnow()

        candidate = deadline - duration
        if candidate > now:
            return FirePlan(fire_at=candidate, deadline=deadline)

        if mode is RecurrenceMode.SINGLE:
            return FirePlan(fire_at=now + late_delay, deadline=deadline)

        # Number of whole periods needed so the candidate lands strictly after now
        steps = (now - candidate) // RECURRENCE_PERIOD + 1
        advanced_deadline = deadline + steps * RECURRENCE_PERIOD
        if end_date is not None and advanced_deadline > end_date:
            return FirePlan.none(deadline=deadline)
        return FirePlan(
            fire_at=candidate + steps * RECURRENCE_PERIOD,
            deadline=advanced_deadline,
        )

    @staticmethod
    def compute_next_periodic(
        current_deadline: datetime,
        offset: Union[ReminderOffset, str],
        end_date: Optional[datetime] = None,
    ) -> FirePlan:
        """Next weekly occurrence after a successful send.

        The end date is inclusive. The result is not checked against the
        current time; callers invoke this right after a send, well before
        the next deadline.
        """
        duration = resolve_offset(offset)
        next_deadline = to_utc_aware(current_deadline) + RECURRENCE_PERIOD
        end_date = to_utc_aware(end_date)
        if end_date is not None and next_deadline > end_date:
            return FirePlan.none()
        return FirePlan(fire_at=next_deadline - duration, deadline=next_deadline)
