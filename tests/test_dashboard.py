from datetime import datetime, timedelta, timezone

import pytest

from starwin.dashboard import (
    build_dashboard,
    compute_kpis,
    monthly_financials,
    status_histogram,
    summarize,
    trailing_months,
    upcoming_events,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def order(status="Pending", agreed=0.0, paid=0.0, cost=0.0, created=NOW, **extra):
    row = {
        "id": extra.pop("id", 1),
        "client_id": extra.pop("client_id", 1),
        "status": status,
        "agreed_price": agreed,
        "paid_price": paid,
        "cost_price": cost,
        "createdAt": created,
    }
    row.update(extra)
    return row


def test_kpis_treat_null_prices_as_zero():
    kpis = compute_kpis([
        order(agreed=1000, paid=400, cost=200),
        order(agreed=None, paid=50, cost=None),
        order(agreed=300, paid=None, cost=25),
    ])
    assert kpis == {"totalPaid": 450.0, "totalCosts": 225.0, "totalDebt": 850.0, "netProfit": 225.0}
    assert kpis["netProfit"] == kpis["totalPaid"] - kpis["totalCosts"]


def test_kpis_empty():
    assert compute_kpis([]) == {"totalPaid": 0, "totalCosts": 0, "totalDebt": 0, "netProfit": 0}


def test_histogram_sorted_by_count_ties_keep_first_seen():
    orders = [order("Installed"), order("Pending"), order("Confirmed"), order("Pending"), order("Confirmed"), order("Completed")]
    assert status_histogram(orders) == [
        {"status": "Pending", "count": 2},
        {"status": "Confirmed", "count": 2},
        {"status": "Installed", "count": 1},
        {"status": "Completed", "count": 1},
    ]
    assert sum(h["count"] for h in status_histogram(orders)) == len(orders)


def test_trailing_months_cross_year():
    assert trailing_months(datetime(2026, 2, 10, tzinfo=timezone.utc)) == [
        (2025, 9), (2025, 10), (2025, 11), (2025, 12), (2026, 1), (2026, 2),
    ]


def test_monthly_series_has_six_buckets_ending_this_month():
    series = monthly_financials([], NOW)
    assert [m["month"] for m in series] == ["may 26", "jun 26", "jul 26", "ago 26", "sept 26", "oct 26"]
    assert all(m["agreed"] == m["paid"] == m["cost"] == 0 for m in series)


def test_monthly_buckets_by_calendar_month_boundaries():
    orders = [
        order(agreed=100, paid=10, cost=1, created=datetime(2026, 10, 1, 0, 0, tzinfo=timezone.utc)),
        order(agreed=200, paid=20, cost=2, created=datetime(2026, 9, 30, 23, 59, 59, 999999, tzinfo=timezone.utc)),
        order(agreed=400, paid=None, cost=4, created=datetime(2026, 9, 1, 0, 0, tzinfo=timezone.utc)),
        order(agreed=800, created=datetime(2026, 4, 30, 23, 0, tzinfo=timezone.utc)),
    ]
    series = {m["month"]: m for m in monthly_financials(orders, NOW)}
    assert series["oct 26"] == {"month": "oct 26", "agreed": 100.0, "paid": 10.0, "cost": 1.0}
    assert series["sept 26"] == {"month": "sept 26", "agreed": 600.0, "paid": 20.0, "cost": 6.0}
    assert sum(m["agreed"] for m in series.values()) == 700.0


def test_upcoming_events_merge_and_sort():
    open_orders = [order(id=10, client_id=2, clientName="Acme", due_datetime=NOW + timedelta(days=2))]
    tasks = [{"id": 20, "client_id": 2, "clientName": "Acme", "task_datetime": NOW + timedelta(days=1)}]
    events = upcoming_events(open_orders, tasks, NOW)
    assert [(e["type"], e["id"]) for e in events] == [("Measurement", 20), ("Delivery", 10)]
    assert events[0] == {
        "id": 20,
        "type": "Measurement",
        "icon": "build-outline",
        "date": NOW + timedelta(days=1),
        "clientName": "Acme",
        "clientId": 2,
    }
    assert events[1]["icon"] == "rocket-outline"


def test_upcoming_events_exclude_past_and_truncate():
    open_orders = [order(id=i, due_datetime=NOW + timedelta(hours=i)) for i in range(1, 5)]
    open_orders.append(order(id=99, due_datetime=NOW - timedelta(seconds=1)))
    open_orders.append(order(id=98, due_datetime=None))
    tasks = [{"id": 100 + i, "client_id": 1, "task_datetime": NOW + timedelta(minutes=30 * i)} for i in range(4)]
    events = upcoming_events(open_orders, tasks, NOW)
    assert len(events) == 5
    dates = [e["date"] for e in events]
    assert dates == sorted(dates)
    assert all(d >= NOW for d in dates)
    # the task due exactly now is included
    assert events[0]["id"] == 100


def test_summarize_accepts_naive_now():
    payload = summarize([order(agreed=10)], [], [], NOW.replace(tzinfo=None))
    assert set(payload) == {"kpis", "statusSummary", "monthlyFinancials", "upcomingTasks"}
    assert payload["monthlyFinancials"][-1]["agreed"] == 10.0


def _insert_order(store, client_id, status="Pending", agreed=0, paid=0, cost=0, active=True, due=None):
    return store.execute(
        "INSERT INTO orders (client_id, status, agreed_price, paid_price, cost_price, is_active, due_datetime) "
        "VALUES (%s, %s, %s, %s, %s, %s, %s) RETURNING id",
        (client_id, status, agreed, paid, cost, active, due),
    ).inserted_id


def test_build_dashboard_reads_active_orders_only(store, acme):
    now = datetime.now(timezone.utc)
    _insert_order(store, acme, agreed=1000, paid=400, cost=200)
    _insert_order(store, acme, status="Cancelled", agreed=5000, paid=5000)
    _insert_order(store, acme, active=False, agreed=700, paid=100)
    payload = build_dashboard(store, now)
    assert payload["kpis"] == {"totalPaid": 400.0, "totalCosts": 200.0, "totalDebt": 600.0, "netProfit": 200.0}
    assert payload["statusSummary"] == [{"status": "Pending", "count": 1}]
    assert payload["monthlyFinancials"][-1]["agreed"] == 1000.0


def test_build_dashboard_upcoming_feed(store, acme):
    now = datetime.now(timezone.utc)
    delivery = _insert_order(store, acme, status="InProduction", due=now + timedelta(days=2))
    _insert_order(store, acme, status="Completed", due=now + timedelta(hours=1))
    task = store.execute(
        "INSERT INTO measurement_tasks (client_id, task_datetime) VALUES (%s, %s) RETURNING id",
        (acme, now + timedelta(days=1)),
    ).inserted_id
    store.execute(
        "INSERT INTO measurement_tasks (client_id, task_datetime, is_completed) VALUES (%s, %s, %s)",
        (acme, now + timedelta(hours=3), True),
    )
    feed = build_dashboard(store, now)["upcomingTasks"]
    assert [(e["type"], e["id"]) for e in feed] == [("Measurement", task), ("Delivery", delivery)]
    assert {e["clientName"] for e in feed} == {"Acme"}
    assert {e["clientId"] for e in feed} == {acme}


def test_build_dashboard_propagates_read_failure():
    class FailingStore:
        def fetch_many(self, sql, params=()):
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        build_dashboard(FailingStore(), NOW)
