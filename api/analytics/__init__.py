"""Analytics, export and report endpoints."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel

from analytics import AnalyticsService
from auth import CurrentUser
from reports import ReportService, ReportType, ReportFormat
from ..deps import seller_member, admin_member

router = APIRouter(tags=["Analytics"])

class WindowRequest(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None

class SellerSummaryRequest(WindowRequest):
    seller_id: Optional[UUID] = None

@router.post("/rpc/analytics.dashboard")
async def get_dashboard(request: Optional[WindowRequest] = None, user: CurrentUser = Depends(admin_member)):
    """Marketplace-wide dashboard metrics for the window (default last 30 days)."""
    request = request or WindowRequest()
    return await AnalyticsService().get_dashboard_metrics(request.start, request.end)

@router.post("/rpc/analytics.sellerSummary")
async def get_seller_summary(
    request: Optional[SellerSummaryRequest] = None,
    user: CurrentUser = Depends(seller_member)
):
    """Summary for the calling seller. Admins may ask for any seller."""
    request = request or SellerSummaryRequest()
    seller_id = request.seller_id if user.is_admin and request.seller_id else user.id
    return await AnalyticsService().get_seller_summary(seller_id, request.start, request.end)

@router.get("/analytics/export")
async def export_analytics(
    format: str = Query('json'),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user: CurrentUser = Depends(admin_member)
):
    """Download dashboard metrics as CSV or JSON."""
    content = await AnalyticsService().export_metrics(format, start, end)
    media_type = "text/csv" if format == 'csv' else "application/json"
    stamp = datetime.now().strftime('%Y-%m-%d')
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": f"attachment; filename=analytics-{stamp}.{format}"
        }
    )

@router.get("/reports/{report_type}")
async def download_report(
    report_type: ReportType,
    format: ReportFormat = Query(ReportFormat.CSV),
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    user: CurrentUser = Depends(admin_member)
):
    """Download a report for the window as CSV, JSON or Excel."""
    report = await ReportService().generate_report(report_type, start, end, format)
    return Response(
        content=report.content,
        media_type=report.media_type,
        headers={
            "Content-Disposition": f"attachment; filename={report.filename}"
        }
    )
