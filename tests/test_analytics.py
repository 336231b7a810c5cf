"""Tests for analytics helpers, dashboard metrics and exports."""

import csv
import io
import json
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest

from analytics import (
    AnalyticsService,
    AnalyticsError,
    default_window,
    previous_period,
    percent_change,
    safe_rate,
    churn_rate,
    metrics_to_csv
)

END = datetime(2025, 6, 30, tzinfo=timezone.utc)
START = END - timedelta(days=30)

@pytest.fixture
def empty_db(conn):
    """A database with no rows: aggregates come back as zero."""
    conn.fetchrow.return_value = defaultdict(int)
    conn.fetchval.return_value = 0
    conn.fetch.return_value = []
    return conn

def test_default_window_is_thirty_days():
    start, end = default_window(now=END)
    assert end == END
    assert end - start == timedelta(days=30)

def test_window_must_be_ordered():
    with pytest.raises(AnalyticsError):
        default_window(END, START)
    with pytest.raises(AnalyticsError):
        default_window(END, END)

def test_naive_dates_are_read_as_utc():
    start, end = default_window(datetime(2025, 6, 1), None, now=END)
    assert start == datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert end == END

    start, end = default_window(None, datetime(2025, 6, 30))
    assert end.tzinfo is not None
    assert end - start == timedelta(days=30)

def test_previous_period_has_same_length():
    assert previous_period(START, END) == (START - timedelta(days=30), START)

def test_rates_guard_against_zero():
    assert percent_change(150, 100) == 50.0
    assert percent_change(5, 0) == 0.0
    assert safe_rate(1, 4) == 25.0
    assert safe_rate(3, 0) == 0.0
    assert churn_rate(8, 10) == pytest.approx(20.0)
    assert churn_rate(8, 0) == 0.0

@pytest.mark.asyncio
async def test_dashboard_on_empty_database(pool, empty_db):
    metrics = await AnalyticsService(pool).get_dashboard_metrics(START, END)

    assert metrics['period'] == {'start': START, 'end': END}
    assert metrics['revenue']['total_cents'] == 0
    assert metrics['orders']['total'] == 0
    assert metrics['orders']['conversion_rate'] == 0.0
    assert metrics['orders']['by_status']['pending'] == 0
    assert metrics['customers']['churn_rate'] == 0.0
    assert metrics['refunds']['rate'] == 0.0
    assert metrics['disputes']['resolution_rate'] == 0.0
    assert metrics['trends'] == {
        'order_growth': 0.0,
        'revenue_growth': 0.0,
        'customer_growth': 0.0,
        'dispute_rate': 0.0
    }

@pytest.mark.asyncio
async def test_conversion_counts_confirmed_and_later(pool, conn):
    conn.fetchrow.return_value = defaultdict(int, total=10, avg_value=5000)
    conn.fetch.return_value = [
        {'order_status': 'pending', 'count': 4},
        {'order_status': 'delivered', 'count': 5},
        {'order_status': 'canceled', 'count': 1}
    ]

    orders = await AnalyticsService(pool)._orders(conn, START, END)

    assert orders['conversion_rate'] == 50.0
    assert orders['avg_value_cents'] == 5000

@pytest.mark.asyncio
async def test_export_rejects_unknown_format(pool, conn):
    with pytest.raises(AnalyticsError):
        await AnalyticsService(pool).export_metrics('xml', START, END)
    conn.fetchrow.assert_not_awaited()

@pytest.mark.asyncio
async def test_json_export(pool, empty_db):
    content = await AnalyticsService(pool).export_metrics('json', START, END)

    data = json.loads(content)
    assert set(data) == {'period', 'revenue', 'orders', 'customers', 'refunds', 'disputes', 'trends'}

@pytest.mark.asyncio
async def test_seller_summary(pool, conn, seller_id):
    conn.fetchrow.side_effect = [
        {'revenue': 90000, 'total_orders': 4},
        {'in_escrow': 30000, 'paid': 60000}
    ]
    conn.fetch.return_value = [{'order_status': 'delivered', 'count': 3}, {'order_status': 'pending', 'count': 1}]

    summary = await AnalyticsService(pool).get_seller_summary(seller_id, START, END)

    assert summary['seller_id'] == seller_id
    assert summary['revenue_cents'] == 90000
    assert summary['orders_by_status']['delivered'] == 3
    assert summary['pending_escrow_cents'] == 30000
    assert summary['paid_out_cents'] == 60000

def test_csv_export_sections():
    metrics = {
        'revenue': {'total_cents': 125000},
        'orders': {'total': 8, 'avg_value_cents': 15625, 'conversion_rate': 62.5},
        'customers': {'total': 5, 'active': 3, 'ltv_cents': 25000, 'churn_rate': 0.0, 'repeat': 2},
        'disputes': {'total': 1, 'resolved': 1, 'resolution_rate': 100.0},
        'refunds': {'total': 1, 'total_amount_cents': 15000, 'rate': 12.5},
        'trends': {'order_growth': 33.333, 'revenue_growth': 0.0, 'customer_growth': 25.0, 'dispute_rate': 12.5}
    }

    rows = list(csv.reader(io.StringIO(metrics_to_csv(metrics))))

    assert rows[0] == ['Analytics Export']
    assert rows[1][0] == 'Generated'
    assert ['Revenue Metrics'] in rows
    assert ['Total Revenue (cents)', '125000'] in rows
    assert ['Conversion Rate', '62.50%'] in rows
    assert ['Order Growth', '33.33%'] in rows
    assert ['Resolution Rate', '100.00%'] in rows
