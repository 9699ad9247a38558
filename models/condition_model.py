from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from errors import ValidationError
from .db import run_query

TABLE = "conditions"


class Condition(BaseModel):
    id: str
    user_id: Optional[str] = None
    name: str
    created_at: Optional[datetime] = None


def list_conditions(client, user_id: str) -> List[Condition]:
    rows = run_query(
        client.table(TABLE).select("*").eq("user_id", user_id).order("name", desc=False),
        "load conditions",
    )
    return [Condition.model_validate(r) for r in rows]


def get_condition(client, user_id: str, condition_id: str) -> Optional[Condition]:
    rows = run_query(
        client.table(TABLE).select("*").eq("id", condition_id).eq("user_id", user_id).limit(1),
        "load condition",
    )
    return Condition.model_validate(rows[0]) if rows else None


def add_condition(client, user_id: str, name: str) -> Optional[Condition]:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Condition name is required.")
    rows = run_query(
        client.table(TABLE).insert({"name": name, "user_id": user_id}),
        "add condition",
    )
    return Condition.model_validate(rows[0]) if rows else None


def delete_condition(client, user_id: str, condition_id: str) -> None:
    run_query(
        client.table(TABLE).delete().eq("id", condition_id).eq("user_id", user_id),
        "delete condition",
    )
