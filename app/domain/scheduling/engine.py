"""
Scheduling engine - pure interval logic, no persistence.

All intervals are half-open [start, end). Two intervals overlap iff
a.start < b.end and a.end > b.start; intervals that merely touch do not.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, Optional

# Appointment statuses (stored and reported verbatim)
STATUS_NONE = "none"  # previous status of a freshly created appointment
STATUS_SCHEDULED = "scheduled"
STATUS_CONFIRMED = "confirmed"
STATUS_RESCHEDULED = "rescheduled"
STATUS_ATTENDED = "attended"
STATUS_CANCELLED = "cancelled"
STATUS_NO_SHOW = "no_show"

APPOINTMENT_STATUSES = (
    STATUS_SCHEDULED,
    STATUS_CONFIRMED,
    STATUS_RESCHEDULED,
    STATUS_ATTENDED,
    STATUS_CANCELLED,
    STATUS_NO_SHOW,
)

# Statuses that occupy a doctor's calendar
INACTIVE_STATUSES = frozenset({STATUS_CANCELLED})

# Terminal: no reschedule or cancel out of these
TERMINAL_STATUSES = frozenset({STATUS_ATTENDED, STATUS_CANCELLED})

SLOT_BLOCKED = "blocked"
SLOT_BOOKED = "booked"


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    """Open-overlap test for [start_a, end_a) and [start_b, end_b)"""
    return start_a < end_b and end_a > start_b


def end_of(start: datetime, duration_minutes: int) -> datetime:
    return start + timedelta(minutes=duration_minutes)


def occupies_calendar(appointment) -> bool:
    return appointment.status not in INACTIVE_STATUSES and appointment.deleted_at is None


def find_conflict(
    appointments: Iterable,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_id: Optional[int] = None,
):
    """
    First appointment (by start, then id) that occupies the calendar and
    overlaps the proposed interval, or None.
    """
    candidates = sorted(
        (
            a
            for a in appointments
            if a.id != exclude_id
            and occupies_calendar(a)
            and overlaps(a.date_time, a.end_time, proposed_start, proposed_end)
        ),
        key=lambda a: (a.date_time, a.id),
    )
    return candidates[0] if candidates else None


def find_block(blocks: Iterable, start: datetime, end: datetime):
    """First schedule block (by start, then id) overlapping [start, end), or None"""
    hits = sorted(
        (b for b in blocks if overlaps(b.start_date, b.end_date, start, end)),
        key=lambda b: (b.start_date, b.id),
    )
    return hits[0] if hits else None


def clinic_day_of_week(day: date) -> int:
    """0=Sunday .. 6=Saturday"""
    return (day.weekday() + 1) % 7


def parse_clock_time(value: str) -> time:
    """'HH:MM' -> time"""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    available: bool
    reason: Optional[str] = None  # "blocked" | "booked" | None


class DayPlan:
    """
    Candidate slots for one doctor on one day.

    Iterating yields Slot values in ascending order; the plan is finite and
    every iteration starts again from opening time. Slots advance while the
    slot start is before closing time, so when slot_duration does not divide
    the window the final slot keeps its full length and ends past closing.
    With allow_overrun=False such a trailing slot is not produced.
    """

    def __init__(
        self,
        day: date,
        opens: time,
        closes: time,
        slot_minutes: int,
        blocks: Iterable = (),
        appointments: Iterable = (),
        allow_overrun: bool = True,
    ):
        if slot_minutes <= 0:
            raise ValueError("slot duration must be positive")
        self.day = day
        self.opens_at = datetime.combine(day, opens)
        self.closes_at = datetime.combine(day, closes)
        self.step = timedelta(minutes=slot_minutes)
        self.blocks = list(blocks)
        self.appointments = [a for a in appointments if occupies_calendar(a)]
        self.allow_overrun = allow_overrun

    def __iter__(self) -> Iterator[Slot]:
        current = self.opens_at
        while current < self.closes_at:
            slot_end = current + self.step
            if slot_end > self.closes_at and not self.allow_overrun:
                return
            yield self._classify(current, slot_end)
            current = slot_end

    def _classify(self, start: datetime, end: datetime) -> Slot:
        if any(overlaps(b.start_date, b.end_date, start, end) for b in self.blocks):
            return Slot(start, end, False, SLOT_BLOCKED)
        if any(overlaps(a.date_time, a.end_time, start, end) for a in self.appointments):
            return Slot(start, end, False, SLOT_BOOKED)
        return Slot(start, end, True, None)
