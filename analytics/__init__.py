"""Analytics module for the admin dashboard and seller summaries.

Every metric is a plain SQL aggregate over orders, refunds and disputes
inside a reporting window. Growth figures compare the window against the
equal-length window that ends where it starts.
"""

import csv
import io
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Any, Tuple
from uuid import UUID

from database import get_pool
from orders import OrderStatus, PayoutStatus
from orders.status import CONFIRMED_OR_LATER

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30
ACTIVE_CUSTOMER_DAYS = 30
TOP_SELLER_LIMIT = 10

EXPORT_FORMATS = ('csv', 'json')

class AnalyticsError(Exception):
    """Base exception for analytics operations."""
    pass

def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def default_window(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> Tuple[datetime, datetime]:
    """Fill in a reporting window, defaulting to the last 30 days.

    Raises:
        AnalyticsError: If start is not before end
    """
    end = as_utc(end or now or datetime.now(timezone.utc))
    start = as_utc(start) if start else end - timedelta(days=DEFAULT_WINDOW_DAYS)
    if start >= end:
        raise AnalyticsError("Start date must be before end date")
    return start, end

def previous_period(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """The equal-length window that ends at start."""
    return start - (end - start), start

def percent_change(current: float, previous: float) -> float:
    """Growth from previous to current in percent, 0 without a previous value."""
    if not previous:
        return 0.0
    return (current - previous) / previous * 100

def safe_rate(part: float, whole: float) -> float:
    """part / whole in percent, 0 when whole is 0."""
    if not whole:
        return 0.0
    return part / whole * 100

def churn_rate(current_customers: int, previous_customers: int) -> float:
    """Share of the previous period's customer count that was lost, in percent."""
    if not previous_customers:
        return 0.0
    return (previous_customers - current_customers) / previous_customers * 100

class AnalyticsService:
    """Dashboard metrics built from SQL aggregates."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_dashboard_metrics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Compute the admin dashboard metrics for a window.

        Args:
            start: Window start, defaults to 30 days before end
            end: Window end, defaults to now

        Returns:
            Dict with revenue, orders, customers, refunds, disputes and trends sections
        """
        start, end = default_window(start, end)
        prev_start, prev_end = previous_period(start, end)
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            revenue = await self._revenue(conn, start, end)
            orders = await self._orders(conn, start, end)
            customers = await self._customers(conn, start, end, prev_start, prev_end)
            refunds = await self._refunds(conn, start, end, orders['total'])
            disputes = await self._disputes(conn, start, end)

            previous = await conn.fetchrow(
                '''
                SELECT
                    COUNT(*) AS order_count,
                    COALESCE(SUM(amount_cents) FILTER (WHERE order_status = $3), 0) AS revenue_cents
                FROM orders
                WHERE created_at >= $1 AND created_at < $2
                ''',
                prev_start,
                prev_end,
                OrderStatus.DELIVERED.value
            )

        trends = {
            'order_growth': percent_change(orders['total'], previous['order_count']),
            'revenue_growth': percent_change(revenue['total_cents'], previous['revenue_cents']),
            'customer_growth': percent_change(customers['total'], customers['previous_total']),
            'dispute_rate': safe_rate(disputes['total'], orders['total'])
        }

        return {
            'period': {'start': start, 'end': end},
            'revenue': revenue,
            'orders': orders,
            'customers': customers,
            'refunds': refunds,
            'disputes': disputes,
            'trends': trends
        }

    async def _revenue(self, conn, start: datetime, end: datetime) -> Dict[str, Any]:
        delivered = OrderStatus.DELIVERED.value

        total = await conn.fetchval(
            '''
            SELECT COALESCE(SUM(amount_cents), 0) FROM orders
            WHERE order_status = $3 AND created_at >= $1 AND created_at < $2
            ''',
            start, end, delivered
        )
        daily = await conn.fetch(
            '''
            SELECT created_at::DATE AS day, SUM(amount_cents) AS cents
            FROM orders
            WHERE order_status = $3 AND created_at >= $1 AND created_at < $2
            GROUP BY day
            ORDER BY day
            ''',
            start, end, delivered
        )
        monthly = await conn.fetch(
            '''
            SELECT to_char(created_at, 'YYYY-MM') AS month, SUM(amount_cents) AS cents
            FROM orders
            WHERE order_status = $3 AND created_at >= $1 AND created_at < $2
            GROUP BY month
            ORDER BY month
            ''',
            start, end, delivered
        )
        top_sellers = await conn.fetch(
            '''
            SELECT
                o.seller_id,
                COALESCE(u.display_name, u.email) AS name,
                SUM(o.amount_cents) AS revenue_cents,
                COUNT(*) AS order_count
            FROM orders o
            LEFT JOIN users u ON u.id = o.seller_id
            WHERE o.order_status = $3 AND o.created_at >= $1 AND o.created_at < $2
            GROUP BY o.seller_id, u.display_name, u.email
            ORDER BY revenue_cents DESC
            LIMIT $4
            ''',
            start, end, delivered, TOP_SELLER_LIMIT
        )

        return {
            'total_cents': total,
            'daily': {r['day'].isoformat(): r['cents'] for r in daily},
            'monthly': {r['month']: r['cents'] for r in monthly},
            'top_sellers': [dict(r) for r in top_sellers]
        }

    async def _orders(self, conn, start: datetime, end: datetime) -> Dict[str, Any]:
        totals = await conn.fetchrow(
            '''
            SELECT COUNT(*) AS total, COALESCE(AVG(amount_cents), 0) AS avg_value
            FROM orders
            WHERE created_at >= $1 AND created_at < $2
            ''',
            start, end
        )
        by_status_rows = await conn.fetch(
            '''
            SELECT order_status, COUNT(*) AS count
            FROM orders
            WHERE created_at >= $1 AND created_at < $2
            GROUP BY order_status
            ''',
            start, end
        )

        by_status = {s.value: 0 for s in OrderStatus}
        for row in by_status_rows:
            by_status[row['order_status']] = row['count']
        confirmed = sum(by_status[s.value] for s in CONFIRMED_OR_LATER)

        return {
            'total': totals['total'],
            'avg_value_cents': int(round(totals['avg_value'])),
            'by_status': by_status,
            'conversion_rate': safe_rate(confirmed, totals['total'])
        }

    async def _customers(self, conn, start, end, prev_start, prev_end) -> Dict[str, Any]:
        delivered = OrderStatus.DELIVERED.value

        window = await conn.fetchrow(
            '''
            SELECT
                COUNT(DISTINCT buyer_id) AS total,
                COALESCE(AVG(amount_cents), 0) AS avg_order_value
            FROM orders
            WHERE created_at >= $1 AND created_at < $2
            ''',
            start, end
        )
        previous_total = await conn.fetchval(
            'SELECT COUNT(DISTINCT buyer_id) FROM orders WHERE created_at >= $1 AND created_at < $2',
            prev_start, prev_end
        )
        active = await conn.fetchval(
            '''
            SELECT COUNT(DISTINCT buyer_id) FROM orders
            WHERE order_status = $1 AND created_at >= $2
            ''',
            delivered,
            end - timedelta(days=ACTIVE_CUSTOMER_DAYS)
        )
        ltv = await conn.fetchval(
            '''
            SELECT COALESCE(AVG(spend), 0) FROM (
                SELECT buyer_id, SUM(amount_cents) AS spend
                FROM orders
                WHERE order_status = $1
                GROUP BY buyer_id
            ) AS buyer_spend
            ''',
            delivered
        )
        repeat = await conn.fetchval(
            '''
            SELECT COUNT(*) FROM (
                SELECT buyer_id FROM orders
                WHERE created_at >= $1 AND created_at < $2
                GROUP BY buyer_id
                HAVING COUNT(*) > 1
            ) AS repeat_buyers
            ''',
            start, end
        )

        return {
            'total': window['total'],
            'previous_total': previous_total,
            'active': active,
            'ltv_cents': int(round(ltv)),
            'churn_rate': churn_rate(window['total'], previous_total),
            'repeat': repeat,
            'avg_order_value_cents': int(round(window['avg_order_value']))
        }

    async def _refunds(self, conn, start: datetime, end: datetime, order_total: int) -> Dict[str, Any]:
        row = await conn.fetchrow(
            '''
            SELECT
                COUNT(*) AS total,
                COALESCE(SUM(amount_cents), 0) AS total_amount,
                AVG(EXTRACT(EPOCH FROM (refunded_at - created_at)) / 3600)
                    FILTER (WHERE refunded_at IS NOT NULL) AS avg_hours
            FROM refunds
            WHERE created_at >= $1 AND created_at < $2
            ''',
            start, end
        )
        return {
            'total': row['total'],
            'total_amount_cents': row['total_amount'],
            'rate': safe_rate(row['total'], order_total),
            'avg_processing_hours': float(row['avg_hours'] or 0)
        }

    async def _disputes(self, conn, start: datetime, end: datetime) -> Dict[str, Any]:
        row = await conn.fetchrow(
            '''
            SELECT
                COUNT(*) AS total,
                COUNT(*) FILTER (WHERE status IN ('resolved', 'closed')) AS resolved,
                AVG(EXTRACT(EPOCH FROM (resolved_at - created_at)) / 3600)
                    FILTER (WHERE resolved_at IS NOT NULL) AS avg_hours
            FROM order_disputes
            WHERE created_at >= $1 AND created_at < $2
            ''',
            start, end
        )
        return {
            'total': row['total'],
            'resolved': row['resolved'],
            'avg_resolution_hours': float(row['avg_hours'] or 0),
            'resolution_rate': safe_rate(row['resolved'], row['total'])
        }

    async def export_metrics(
        self,
        format: str = 'json',
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> str:
        """Export dashboard metrics as sectioned CSV or JSON text.

        Raises:
            AnalyticsError: If the format isn't csv or json
        """
        if format not in EXPORT_FORMATS:
            raise AnalyticsError(f"Unsupported export format: {format}")

        metrics = await self.get_dashboard_metrics(start, end)
        if format == 'csv':
            return metrics_to_csv(metrics)
        return json.dumps(metrics, default=str, indent=2)

    async def get_seller_summary(
        self,
        seller_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Revenue, order counts and payout totals for one seller."""
        start, end = default_window(start, end)
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                SELECT
                    COALESCE(SUM(amount_cents) FILTER (WHERE order_status = $4), 0) AS revenue,
                    COUNT(*) AS total_orders
                FROM orders
                WHERE seller_id = $1 AND created_at >= $2 AND created_at < $3
                ''',
                seller_id, start, end, OrderStatus.DELIVERED.value
            )
            status_rows = await conn.fetch(
                '''
                SELECT order_status, COUNT(*) AS count
                FROM orders
                WHERE seller_id = $1 AND created_at >= $2 AND created_at < $3
                GROUP BY order_status
                ''',
                seller_id, start, end
            )
            payouts = await conn.fetchrow(
                '''
                SELECT
                    COALESCE(SUM(amount_cents) FILTER (
                        WHERE payout_status = $2 AND order_status NOT IN ('canceled', 'refunded')
                    ), 0) AS in_escrow,
                    COALESCE(SUM(amount_cents) FILTER (WHERE payout_status = $3), 0) AS paid
                FROM orders
                WHERE seller_id = $1
                ''',
                seller_id,
                PayoutStatus.IN_ESCROW.value,
                PayoutStatus.PAID.value
            )

        by_status = {s.value: 0 for s in OrderStatus}
        for r in status_rows:
            by_status[r['order_status']] = r['count']

        return {
            'seller_id': seller_id,
            'period': {'start': start, 'end': end},
            'revenue_cents': row['revenue'],
            'total_orders': row['total_orders'],
            'orders_by_status': by_status,
            'pending_escrow_cents': payouts['in_escrow'],
            'paid_out_cents': payouts['paid']
        }

def metrics_to_csv(metrics: Dict[str, Any]) -> str:
    """Render dashboard metrics as sectioned key/value CSV rows."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')

    sections: List[Tuple[str, List[Tuple[str, Any]]]] = [
        ('Revenue Metrics', [
            ('Total Revenue (cents)', metrics['revenue']['total_cents'])
        ]),
        ('Order Metrics', [
            ('Total Orders', metrics['orders']['total']),
            ('Average Order Value (cents)', metrics['orders']['avg_value_cents']),
            ('Conversion Rate', f"{metrics['orders']['conversion_rate']:.2f}%")
        ]),
        ('Customer Metrics', [
            ('Total Customers', metrics['customers']['total']),
            ('Active Customers', metrics['customers']['active']),
            ('Customer Lifetime Value (cents)', metrics['customers']['ltv_cents']),
            ('Churn Rate', f"{metrics['customers']['churn_rate']:.2f}%"),
            ('Repeat Customers', metrics['customers']['repeat'])
        ]),
        ('Dispute Metrics', [
            ('Total Disputes', metrics['disputes']['total']),
            ('Resolved Disputes', metrics['disputes']['resolved']),
            ('Resolution Rate', f"{metrics['disputes']['resolution_rate']:.2f}%")
        ]),
        ('Refund Metrics', [
            ('Total Refunds', metrics['refunds']['total']),
            ('Total Refund Amount (cents)', metrics['refunds']['total_amount_cents']),
            ('Refund Rate', f"{metrics['refunds']['rate']:.2f}%")
        ]),
        ('Trends', [
            ('Order Growth', f"{metrics['trends']['order_growth']:.2f}%"),
            ('Revenue Growth', f"{metrics['trends']['revenue_growth']:.2f}%"),
            ('Customer Growth', f"{metrics['trends']['customer_growth']:.2f}%"),
            ('Dispute Rate', f"{metrics['trends']['dispute_rate']:.2f}%")
        ])
    ]

    writer.writerow(['Analytics Export'])
    writer.writerow(['Generated', datetime.now(timezone.utc).isoformat()])
    for title, rows in sections:
        writer.writerow([])
        writer.writerow([title])
        writer.writerows(rows)

    return output.getvalue()

__all__ = [
    'AnalyticsService',
    'AnalyticsError',
    'as_utc',
    'default_window',
    'previous_period',
    'percent_change',
    'safe_rate',
    'churn_rate',
    'metrics_to_csv'
]
