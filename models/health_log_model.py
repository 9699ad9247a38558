from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel

from errors import ValidationError
from .db import run_query

TABLE = "health_logs"


class HealthLog(BaseModel):
    id: str
    user_id: Optional[str] = None
    log_date: date
    notes: str
    created_at: Optional[datetime] = None

    def as_line(self) -> str:
        return f"{self.log_date.isoformat()}: {self.notes}"


def _validate(log_date, notes):
    notes = (notes or "").strip()
    if not log_date or not notes:
        raise ValidationError("Please fill in all fields")
    if isinstance(log_date, date):
        return log_date.isoformat(), notes
    try:
        return date.fromisoformat(str(log_date).strip()).isoformat(), notes
    except ValueError:
        raise ValidationError("Log date must be a date (YYYY-MM-DD).")


def list_health_logs(client, user_id: str, since: Optional[date] = None,
                     limit: Optional[int] = None) -> List[HealthLog]:
    query = client.table(TABLE).select("*").eq("user_id", user_id)
    if since is not None:
        query = query.gte("log_date", since.isoformat())
    query = query.order("log_date", desc=True)
    if limit:
        query = query.limit(limit)
    return [HealthLog.model_validate(r) for r in run_query(query, "load health logs")]


def add_health_log(client, user_id: str, log_date, notes) -> Optional[HealthLog]:
    log_date, notes = _validate(log_date, notes)
    rows = run_query(
        client.table(TABLE).insert({"log_date": log_date, "notes": notes, "user_id": user_id}),
        "add health log",
    )
    return HealthLog.model_validate(rows[0]) if rows else None


def update_health_log(client, user_id: str, log_id: str, log_date, notes) -> None:
    log_date, notes = _validate(log_date, notes)
    run_query(
        client.table(TABLE)
        .update({"log_date": log_date, "notes": notes})
        .eq("id", log_id)
        .eq("user_id", user_id),
        "update health log",
    )


def delete_health_log(client, user_id: str, log_id: str) -> None:
    run_query(
        client.table(TABLE).delete().eq("id", log_id).eq("user_id", user_id),
        "delete health log",
    )
