"""
Today's medication reminders.

Reminders are derived from Medication.reminder_times on every request and
never stored. Taken/notified marks live in the user's Flask session for the
current day only.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from models.medication_model import ConditionRef, Medication

UPCOMING_WINDOW_MINUTES = 60


def clock(now: datetime) -> str:
    return now.strftime("%H:%M")


def add_minutes(time_str: str, minutes: int) -> str:
    """HH:MM plus `minutes`, wrapping around midnight."""
    hours, mins = (int(p) for p in time_str.split(":"))
    total = (hours * 60 + mins + minutes) % (24 * 60)
    return f"{total // 60:02d}:{total % 60:02d}"


def format_time(time_str: str) -> str:
    hours, minutes = time_str.split(":")
    hour = int(hours)
    ampm = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minutes} {ampm}"


def reminder_key(medication_id: str, time_str: str) -> str:
    return f"{medication_id}-{time_str}"


@dataclass
class ReminderItem:
    medication: Medication
    condition: Optional[ConditionRef]
    time: str
    is_past: bool
    is_upcoming: bool

    @property
    def key(self) -> str:
        return reminder_key(self.medication.id, self.time)

    @property
    def display_time(self) -> str:
        return format_time(self.time)


def build_reminders(medications: Iterable[Medication], now: datetime,
                    window_minutes: int = UPCOMING_WINDOW_MINUTES) -> List[ReminderItem]:
    current = clock(now)
    horizon = add_minutes(current, window_minutes)
    # a window that wraps past midnight covers the rest of today
    wrapped = horizon < current
    items = []
    for med in medications:
        for time_str in med.reminder_times:
            is_past = time_str < current
            items.append(ReminderItem(
                medication=med,
                condition=med.condition,
                time=time_str,
                is_past=is_past,
                is_upcoming=not is_past and (wrapped or time_str <= horizon),
            ))
    items.sort(key=lambda r: r.time)
    return items


def next_scheduled_time(medication: Medication, after: str) -> Optional[str]:
    return next((t for t in medication.reminder_times if t > after), None)


class ReminderBoard:
    """Reminder list plus the transient taken/notified marks for one day."""

    def __init__(self, reminders: List[ReminderItem], day: str,
                 taken: Iterable[str] = (), notified: Iterable[str] = ()):
        self.reminders = reminders
        self.day = day
        self.taken = set(taken)
        self.notified = set(notified)

    @classmethod
    def from_state(cls, reminders, now: datetime, state: Optional[dict]) -> "ReminderBoard":
        day = now.date().isoformat()
        state = state or {}
        if state.get("day") != day:
            state = {}
        return cls(reminders, day, state.get("taken", ()), state.get("notified", ()))

    def to_state(self) -> dict:
        return {"day": self.day, "taken": sorted(self.taken), "notified": sorted(self.notified)}

    def find(self, medication_id: str, time_str: str) -> Optional[ReminderItem]:
        return next((r for r in self.reminders if r.key == reminder_key(medication_id, time_str)), None)

    def mark_taken(self, medication_id: str, time_str: str) -> None:
        self.taken.add(reminder_key(medication_id, time_str))

    def is_taken(self, reminder: ReminderItem) -> bool:
        return reminder.key in self.taken

    def upcoming(self) -> List[ReminderItem]:
        return [r for r in self.reminders if r.is_upcoming and not self.is_taken(r)]

    def pending(self) -> List[ReminderItem]:
        return [r for r in self.reminders if not self.is_taken(r)]

    def completed_count(self) -> int:
        return sum(1 for r in self.reminders if r.is_past and self.is_taken(r))

    def due_notifications(self, now: datetime) -> List[ReminderItem]:
        """Reminders due this minute that were neither notified nor taken.

        Each returned reminder is marked notified, so a time yields one notification.
        """
        current = clock(now)
        due = []
        for reminder in self.reminders:
            if reminder.time != current or reminder.key in self.notified or self.is_taken(reminder):
                continue
            self.notified.add(reminder.key)
            due.append(reminder)
        return due

    def missed_context(self, medication_id: str, time_str: str) -> Optional[dict]:
        """Inputs for the missed-medication advisor, or None for an unknown reminder."""
        reminder = self.find(medication_id, time_str)
        if reminder is None:
            return None
        med = reminder.medication
        return {
            "medication_name": med.name,
            "dosage": med.dosage,
            "scheduled_time": time_str,
            "next_scheduled_time": next_scheduled_time(med, time_str),
        }
