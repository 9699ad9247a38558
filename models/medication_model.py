import re
from datetime import date, datetime
from typing import List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from errors import ValidationError
from .condition_model import Condition
from .db import run_query

TABLE = "medications"
TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class ConditionRef(BaseModel):
    id: str
    name: str


class Medication(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    condition_id: str
    user_id: Optional[str] = None
    name: str
    dosage: str
    times_per_day: int = 1
    reminder_times: List[str] = Field(default_factory=list)
    expiry_date: date
    created_at: Optional[datetime] = None
    # embedded by select("*, conditions(id, name)")
    condition: Optional[ConditionRef] = Field(default=None, alias="conditions")

    @field_validator("reminder_times", mode="before")
    @classmethod
    def _null_times(cls, value):
        return value or []

    def is_expired(self, today: Optional[date] = None) -> bool:
        return self.expiry_date < (today or date.today())

    @property
    def label(self) -> str:
        return f"{self.name} ({self.dosage})"


class ConditionWithMedications(Condition):
    medications: List[Medication] = Field(default_factory=list)


def parse_reminder_times(raw: str) -> List[str]:
    """Split "08:00, 20:00" into normalized HH:MM strings, dropping blanks."""
    times = []
    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue
        m = TIME_RE.match(part)
        if not m or int(m.group(1)) > 23 or int(m.group(2)) > 59:
            raise ValidationError(f"Invalid reminder time '{part}', expected HH:MM.")
        times.append(f"{int(m.group(1)):02d}:{m.group(2)}")
    return times


def parse_medication_form(form: Mapping) -> dict:
    """Validate a submitted medication form into a row payload."""
    name = (form.get("name") or "").strip()
    dosage = (form.get("dosage") or "").strip()
    times_per_day = (form.get("times_per_day") or "").strip()
    expiry_date = (form.get("expiry_date") or "").strip()
    if not name or not dosage or not times_per_day or not expiry_date:
        raise ValidationError("Please fill in all required fields")

    try:
        times = int(times_per_day)
    except ValueError:
        raise ValidationError("Times per day must be a whole number.")
    if times < 1:
        raise ValidationError("Times per day must be at least 1.")

    try:
        expiry = date.fromisoformat(expiry_date)
    except ValueError:
        raise ValidationError("Expiry date must be a date (YYYY-MM-DD).")

    reminder_times = form.get("reminder_times", "")
    if isinstance(reminder_times, (list, tuple)):
        reminder_times = ",".join(reminder_times)

    return {
        "name": name,
        "dosage": dosage,
        "times_per_day": times,
        "reminder_times": parse_reminder_times(reminder_times),
        "expiry_date": expiry.isoformat(),
    }


def list_medications(client, user_id: str, condition_id: str) -> List[Medication]:
    rows = run_query(
        client.table(TABLE)
        .select("*")
        .eq("condition_id", condition_id)
        .eq("user_id", user_id)
        .order("created_at", desc=True),
        "load medications",
    )
    return [Medication.model_validate(r) for r in rows]


def list_user_medications(client, user_id: str) -> List[Medication]:
    """Every medication the user owns, with its condition embedded."""
    rows = run_query(
        client.table(TABLE).select("*, conditions(id, name)").eq("user_id", user_id),
        "load medications",
    )
    return [Medication.model_validate(r) for r in rows]


def conditions_with_medications(client, user_id: str) -> List[ConditionWithMedications]:
    rows = run_query(
        client.table("conditions").select("*, medications(*)").eq("user_id", user_id),
        "load conditions with medications",
    )
    return [ConditionWithMedications.model_validate(r) for r in rows]


def add_medication(client, user_id: str, condition_id: str, form: Mapping) -> Optional[Medication]:
    payload = parse_medication_form(form)
    payload.update({"condition_id": condition_id, "user_id": user_id})
    rows = run_query(client.table(TABLE).insert(payload), "add medication")
    return Medication.model_validate(rows[0]) if rows else None


def update_medication(client, user_id: str, medication_id: str, form: Mapping) -> None:
    payload = parse_medication_form(form)
    run_query(
        client.table(TABLE).update(payload).eq("id", medication_id).eq("user_id", user_id),
        "update medication",
    )


def delete_medication(client, user_id: str, medication_id: str) -> None:
    run_query(
        client.table(TABLE).delete().eq("id", medication_id).eq("user_id", user_id),
        "delete medication",
    )
