"""Dashboard aggregation: KPIs, status histogram, six-month series, upcoming events.

The three source reads are independent statements with no enclosing
transaction. A write that lands between them can show up in one read and not
in another (read skew is possible); the payload is a best-effort snapshot.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from .utils import money, month_label, to_utc_datetime, utc_now

MONTHS_IN_SERIES = 6
MAX_UPCOMING = 5

ACTIVE_ORDERS_SQL = "SELECT * FROM orders WHERE is_active = true AND status != 'Cancelled'"

PENDING_MEASUREMENTS_SQL = """
    SELECT m.*, c.name AS "clientName"
    FROM measurement_tasks m
    JOIN clients c ON m.client_id = c.id
    WHERE m.is_completed = false
"""

OPEN_ORDERS_SQL = """
    SELECT o.*, c.name AS "clientName"
    FROM orders o
    JOIN clients c ON o.client_id = c.id
    WHERE o.is_active = true AND o.status NOT IN ('Completed', 'Cancelled')
"""

EVENT_KINDS = {
    "order": ("Delivery", "rocket-outline"),
    "measurement": ("Measurement", "build-outline"),
}


def compute_kpis(active_orders: List[Dict[str, Any]]) -> Dict[str, float]:
    total_paid = sum(money(o.get("paid_price")) for o in active_orders)
    total_costs = sum(money(o.get("cost_price")) for o in active_orders)
    total_agreed = sum(money(o.get("agreed_price")) for o in active_orders)
    return {
        "totalPaid": total_paid,
        "totalCosts": total_costs,
        "totalDebt": total_agreed - total_paid,
        "netProfit": total_paid - total_costs,
    }


def status_histogram(active_orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    for o in active_orders:
        status = o.get("status")
        counts[status] = counts.get(status, 0) + 1
    # sorted() is stable: ties keep first-seen order
    ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [{"status": s, "count": n} for s, n in ranked]


def trailing_months(now: datetime, n: int = MONTHS_IN_SERIES):
    """(year, month) pairs for the n calendar months ending with now's month, oldest first."""
    out = []
    for back in range(n - 1, -1, -1):
        idx = now.year * 12 + (now.month - 1) - back
        out.append((idx // 12, idx % 12 + 1))
    return out


def monthly_financials(active_orders: List[Dict[str, Any]], now: datetime) -> List[Dict[str, Any]]:
    series = []
    for year, month in trailing_months(now):
        in_month = []
        for o in active_orders:
            created = to_utc_datetime(o.get("createdAt"))
            if created is not None and created.year == year and created.month == month:
                in_month.append(o)
        series.append({
            "month": month_label(year, month),
            "agreed": sum(money(o.get("agreed_price")) for o in in_month),
            "paid": sum(money(o.get("paid_price")) for o in in_month),
            "cost": sum(money(o.get("cost_price")) for o in in_month),
        })
    return series


def _event(kind: str, row: Dict[str, Any], when: datetime) -> Dict[str, Any]:
    label, icon = EVENT_KINDS[kind]
    return {
        "id": row.get("id"),
        "type": label,
        "icon": icon,
        "date": when,
        "clientName": row.get("clientName"),
        "clientId": row.get("client_id"),
    }


def upcoming_events(open_orders, measurements, now: datetime, limit: int = MAX_UPCOMING):
    events = []
    for o in open_orders:
        due = to_utc_datetime(o.get("due_datetime"))
        if due is not None and due >= now:
            events.append(_event("order", o, due))
    for m in measurements:
        when = to_utc_datetime(m.get("task_datetime"))
        if when is not None and when >= now:
            events.append(_event("measurement", m, when))
    events.sort(key=lambda e: e["date"])
    return events[:limit]


def summarize(active_orders, measurements, open_orders, now: datetime) -> Dict[str, Any]:
    now = to_utc_datetime(now)
    return {
        "kpis": compute_kpis(active_orders),
        "statusSummary": status_histogram(active_orders),
        "monthlyFinancials": monthly_financials(active_orders, now),
        "upcomingTasks": upcoming_events(open_orders, measurements, now),
    }


def build_dashboard(store, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Read the three source sets and derive the dashboard payload.

    Any read failure propagates; there is no partial result.
    """
    now = now or utc_now()
    active_orders = store.fetch_many(ACTIVE_ORDERS_SQL)
    measurements = store.fetch_many(PENDING_MEASUREMENTS_SQL)
    open_orders = store.fetch_many(OPEN_ORDERS_SQL)
    return summarize(active_orders, measurements, open_orders, now)
