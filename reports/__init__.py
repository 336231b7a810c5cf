"""Downloadable admin reports.

Each report type is one aggregation query over the reporting window. The
rows are written out as CSV, JSON or an Excel workbook with a styled,
frozen header row.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from openpyxl.utils import get_column_letter

from analytics import default_window
from database import get_pool

logger = logging.getLogger(__name__)

class ReportType(str, Enum):
    SALES_SUMMARY = "sales_summary"
    SELLER_PERFORMANCE = "seller_performance"
    REFUND_SUMMARY = "refund_summary"
    DISPUTE_SUMMARY = "dispute_summary"
    USER_METRICS = "user_metrics"
    INVENTORY_REPORT = "inventory_report"

class ReportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    EXCEL = "excel"

MEDIA_TYPES = {
    ReportFormat.CSV: 'text/csv',
    ReportFormat.JSON: 'application/json',
    ReportFormat.EXCEL: 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
}

EXTENSIONS = {
    ReportFormat.CSV: 'csv',
    ReportFormat.JSON: 'json',
    ReportFormat.EXCEL: 'xlsx'
}

# Output columns and query per report. Window queries take $1 = start, $2 = end.
REPORT_QUERIES: Dict[ReportType, Dict[str, Any]] = {
    ReportType.SALES_SUMMARY: {
        'columns': ['day', 'order_count', 'delivered_count', 'gross_cents', 'delivered_cents'],
        'query': '''
            SELECT
                created_at::DATE AS day,
                COUNT(*) AS order_count,
                COUNT(*) FILTER (WHERE order_status = 'delivered') AS delivered_count,
                SUM(amount_cents) AS gross_cents,
                COALESCE(SUM(amount_cents) FILTER (WHERE order_status = 'delivered'), 0) AS delivered_cents
            FROM orders
            WHERE created_at >= $1 AND created_at < $2
            GROUP BY day
            ORDER BY day
        '''
    },
    ReportType.SELLER_PERFORMANCE: {
        'columns': ['seller_id', 'seller_name', 'order_count', 'delivered_count',
                    'revenue_cents', 'refund_count'],
        'query': '''
            SELECT
                o.seller_id,
                COALESCE(u.display_name, u.email) AS seller_name,
                COUNT(*) AS order_count,
                COUNT(*) FILTER (WHERE o.order_status = 'delivered') AS delivered_count,
                COALESCE(SUM(o.amount_cents) FILTER (WHERE o.order_status = 'delivered'), 0) AS revenue_cents,
                (
                    SELECT COUNT(*) FROM refunds r
                    WHERE r.seller_id = o.seller_id AND r.created_at >= $1 AND r.created_at < $2
                ) AS refund_count
            FROM orders o
            LEFT JOIN users u ON u.id = o.seller_id
            WHERE o.created_at >= $1 AND o.created_at < $2
            GROUP BY o.seller_id, u.display_name, u.email
            ORDER BY revenue_cents DESC
        '''
    },
    ReportType.REFUND_SUMMARY: {
        'columns': ['reason', 'status', 'refund_count', 'amount_cents', 'avg_processing_hours'],
        'query': '''
            SELECT
                reason,
                status,
                COUNT(*) AS refund_count,
                SUM(amount_cents) AS amount_cents,
                ROUND(AVG(EXTRACT(EPOCH FROM (refunded_at - created_at)) / 3600)::NUMERIC, 2)
                    AS avg_processing_hours
            FROM refunds
            WHERE created_at >= $1 AND created_at < $2
            GROUP BY reason, status
            ORDER BY refund_count DESC
        '''
    },
    ReportType.DISPUTE_SUMMARY: {
        'columns': ['status', 'escalation_level', 'dispute_count', 'avg_resolution_hours'],
        'query': '''
            SELECT
                status,
                escalation_level,
                COUNT(*) AS dispute_count,
                ROUND(AVG(EXTRACT(EPOCH FROM (resolved_at - created_at)) / 3600)::NUMERIC, 2)
                    AS avg_resolution_hours
            FROM order_disputes
            WHERE created_at >= $1 AND created_at < $2
            GROUP BY status, escalation_level
            ORDER BY status, escalation_level
        '''
    },
    ReportType.USER_METRICS: {
        'columns': ['role', 'status', 'user_count', 'new_in_period'],
        'query': '''
            SELECT
                role,
                status,
                COUNT(*) AS user_count,
                COUNT(*) FILTER (WHERE created_at >= $1 AND created_at < $2) AS new_in_period
            FROM users
            GROUP BY role, status
            ORDER BY role, status
        '''
    },
    ReportType.INVENTORY_REPORT: {
        'columns': ['listing_id', 'title', 'category', 'review_status', 'quantity_available',
                    'price_cents', 'units_sold'],
        'query': '''
            SELECT
                l.id AS listing_id,
                l.title,
                l.category,
                l.review_status,
                l.quantity_available,
                l.price_cents,
                COALESCE(SUM(o.quantity) FILTER (
                    WHERE o.created_at >= $1 AND o.created_at < $2
                    AND o.order_status NOT IN ('canceled', 'refunded')
                ), 0) AS units_sold
            FROM listings l
            LEFT JOIN orders o ON o.listing_id = l.id
            GROUP BY l.id
            ORDER BY l.quantity_available ASC, l.title
        '''
    }
}

class ReportError(Exception):
    """Base exception for report generation."""
    pass

@dataclass
class ReportFile:
    """A generated report ready to download."""
    content: bytes
    media_type: str
    filename: str

def report_filename(report_type: ReportType, start: datetime, end: datetime, format: ReportFormat) -> str:
    return (
        f"{ReportType(report_type).value}_{start:%Y%m%d}_{end:%Y%m%d}"
        f".{EXTENSIONS[ReportFormat(format)]}"
    )

def _cell(value: Any) -> Any:
    """Convert a database value into something csv/openpyxl can write."""
    if value is None or isinstance(value, (int, float, str, bool)):
        return value
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)

def render_csv(columns: List[str], rows: List[Dict[str, Any]]) -> bytes:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator='\n')
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(c)) for c in columns])
    return output.getvalue().encode('utf-8')

def render_json(report_type: ReportType, start: datetime, end: datetime,
                columns: List[str], rows: List[Dict[str, Any]]) -> bytes:
    payload = {
        'report': ReportType(report_type).value,
        'start': start.isoformat(),
        'end': end.isoformat(),
        'columns': columns,
        'rows': [{c: _cell(row.get(c)) for c in columns} for row in rows]
    }
    return json.dumps(payload, indent=2).encode('utf-8')

def render_excel(title: str, columns: List[str], rows: List[Dict[str, Any]]) -> bytes:
    """Write rows to a single-sheet workbook with a styled header."""
    wb = Workbook()
    ws = wb.active
    ws.title = title[:31]

    header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
    header_font = Font(color="FFFFFF", bold=True, size=12)
    border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col_idx, column in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=col_idx, value=column.replace('_', ' ').title())
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center', vertical='center')
        cell.border = border

    for row_idx, row in enumerate(rows, start=2):
        for col_idx, column in enumerate(columns, start=1):
            value = _cell(row.get(column))
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            cell.border = border
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                cell.alignment = Alignment(horizontal='right', vertical='center')
                cell.number_format = '#,##0' if isinstance(value, int) else '#,##0.00'

    for col_idx, column in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = max(15, len(column) + 4)

    # Freeze header row
    ws.freeze_panes = 'A2'

    excel_file = io.BytesIO()
    wb.save(excel_file)
    return excel_file.getvalue()

class ReportService:
    """Runs report queries and renders them in the requested format."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def generate_report(
        self,
        report_type: ReportType,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        format: ReportFormat = ReportFormat.CSV
    ) -> ReportFile:
        """Generate a report for the window.

        Args:
            report_type: Which report to run
            start: Window start, defaults to 30 days before end
            end: Window end, defaults to now
            format: csv, json or excel

        Returns:
            ReportFile with content, media type and filename

        Raises:
            ReportError: If the report type or format is unknown
        """
        try:
            report_type = ReportType(report_type)
            format = ReportFormat(format)
        except ValueError as e:
            raise ReportError(str(e))

        start, end = default_window(start, end)
        definition = REPORT_QUERIES[report_type]
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            records = await conn.fetch(definition['query'], start, end)
        rows = [dict(r) for r in records]
        columns = definition['columns']

        logger.info(f"Generated {report_type.value} report with {len(rows)} rows as {format.value}")

        if format == ReportFormat.CSV:
            content = render_csv(columns, rows)
        elif format == ReportFormat.JSON:
            content = render_json(report_type, start, end, columns, rows)
        else:
            content = render_excel(report_type.value, columns, rows)

        return ReportFile(
            content=content,
            media_type=MEDIA_TYPES[format],
            filename=report_filename(report_type, start, end, format)
        )

__all__ = [
    'ReportService',
    'ReportType',
    'ReportFormat',
    'ReportFile',
    'ReportError',
    'report_filename',
    'render_csv',
    'render_json',
    'render_excel'
]
