"""
Scheduling service - appointment slot proposals for SMS intake and
time-of-day helpers shared with the crew feasibility check.
"""
import logging
from datetime import datetime, date, time, timedelta
from typing import Optional

from lawnops.schemas.sms import SlotProposal

logger = logging.getLogger(__name__)

# Rotating two-hour arrival windows (morning, midday, afternoon)
SLOT_WINDOWS = [("08:00", "10:00"), ("11:00", "13:00"), ("14:00", "16:00")]

WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class TimeSlot:
    """Represents a proposed appointment window."""

    def __init__(self, slot_date: date, start: time, end: time):
        self.date = slot_date
        self.start = start
        self.end = end

    def __repr__(self) -> str:
        return f"<TimeSlot {self.date} {self.start}-{self.end}>"

    def to_display(self) -> str:
        """Human-readable window, e.g. 'Tue Oct 20, 8-10am'."""
        day = f"{self.date.strftime('%a %b')} {self.date.day}"
        same_half = (self.start.hour < 12) == (self.end.hour < 12)
        return f"{day}, {_hour_label(self.start, with_suffix=not same_half)}-{_hour_label(self.end)}"

    def to_proposal(self) -> SlotProposal:
        return SlotProposal(
            date=self.date.isoformat(),
            start=self.start.strftime("%H:%M"),
            end=self.end.strftime("%H:%M"),
            label=self.to_display(),
        )


def propose_slots(now: datetime, count: int = 3) -> list[SlotProposal]:
    """
    Propose `count` two-hour windows on the next business days.
    Starts the day after `now`, skips Sundays and rotates through
    SLOT_WINDOWS so the customer gets a morning, midday and afternoon choice.
    Deterministic for a given `now`.
    """
    proposals = []
    current = now.date()
    window_idx = 0
    while len(proposals) < count:
        current = current + timedelta(days=1)
        if current.weekday() == 6:
            continue
        start_str, end_str = SLOT_WINDOWS[window_idx % len(SLOT_WINDOWS)]
        slot = TimeSlot(current, _parse_time(start_str), _parse_time(end_str))
        proposals.append(slot.to_proposal())
        window_idx += 1
    return proposals


def format_slot_lines(slots: list[SlotProposal]) -> str:
    return "\n".join(f"{i + 1}) {slot.label}" for i, slot in enumerate(slots))


def weekday_key(day: date) -> str:
    return WEEKDAY_KEYS[day.weekday()]


def to_minutes(time_str: Optional[str]) -> Optional[int]:
    """Parse HH:MM into minutes after midnight. None for missing or malformed input."""
    if not time_str:
        return None
    try:
        parsed = _parse_time(time_str)
    except (ValueError, IndexError):
        logger.debug("Malformed time string: %s", time_str)
        return None
    return parsed.hour * 60 + parsed.minute


def _hour_label(value: time, with_suffix: bool = True) -> str:
    hour = value.hour % 12 or 12
    label = str(hour) if value.minute == 0 else f"{hour}:{value.minute:02d}"
    if with_suffix:
        label += "am" if value.hour < 12 else "pm"
    return label


def _parse_time(time_str: str) -> time:
    """Parse HH:MM string to time object."""
    parts = time_str.split(":")
    return time(int(parts[0]), int(parts[1]))
