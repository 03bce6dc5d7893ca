from datetime import datetime, timezone
from typing import Optional, Dict, Any

import pandas as pd

ORDER_STATUSES = ("Pending", "Confirmed", "InProduction", "Installed", "Completed", "Cancelled")

# es-ES short month names, the way the business reads its charts
MONTH_ABBR_ES = ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic")


def strip_or_none(x: Optional[str]):
    if x is None:
        return None
    s = str(x).strip().replace("\t", "")
    return s if s else None


def to_float_or_none(x):
    if x is None or x == "":
        return None
    try:
        if isinstance(x, str):
            x = x.replace(",", "")
        return float(x)
    except (TypeError, ValueError):
        return None


def money(x) -> float:
    """Price value for sums: NULL and garbage count as 0."""
    v = to_float_or_none(x)
    return v if v is not None else 0.0


def to_bool(x) -> Optional[bool]:
    if x is None:
        return None
    if isinstance(x, bool):
        return x
    if isinstance(x, (int, float)):
        return x != 0
    s = str(x).strip().lower()
    if s in ("1", "true", "t", "yes"):
        return True
    if s in ("0", "false", "f", "no", ""):
        return False
    return None


def to_utc_datetime(x) -> Optional[datetime]:
    """Parse a stored or submitted timestamp into an aware UTC datetime.

    Naive values are taken as UTC, which is what CURRENT_TIMESTAMP writes.
    """
    if x is None or (isinstance(x, str) and x.strip() == ""):
        return None
    ts = pd.to_datetime(x, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def month_label(year: int, month: int) -> str:
    return f"{MONTH_ABBR_ES[month - 1]} {year % 100:02d}"


CLIENT_FIELDS = ("name", "address", "email", "phone")

ORDER_FIELDS = (
    "client_id", "description", "agreed_price", "paid_price", "cost_price",
    "status", "due_datetime", "last_admin_responder", "is_active",
)


def normalize_client_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {k: strip_or_none(payload.get(k)) for k in CLIENT_FIELDS}


def normalize_order_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    # keep only known fields, fill the column defaults
    out = {k: payload.get(k) for k in ORDER_FIELDS}
    for k in ("agreed_price", "paid_price", "cost_price"):
        out[k] = money(out[k])
    out["status"] = strip_or_none(out["status"]) or "Pending"
    active = to_bool(out["is_active"])
    out["is_active"] = True if active is None else active
    out["due_datetime"] = to_utc_datetime(out["due_datetime"])
    out["description"] = strip_or_none(out["description"])
    out["last_admin_responder"] = strip_or_none(out["last_admin_responder"])
    return out


def normalize_measurement_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "client_id": payload.get("client_id"),
        "description": strip_or_none(payload.get("description")),
        "address": strip_or_none(payload.get("address")),
        "task_datetime": to_utc_datetime(payload.get("task_datetime")),
    }
