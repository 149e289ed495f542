"""
Analytics endpoints.

All routes are scoped by the X-Organization-Id header and accept a
timeRange query parameter (THIS_MONTH by default).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import AsyncSessionLocal, get_db
from app.core.dependencies import get_header_org_member
from app.models.member import OrganizationUser
from app.models.organization import Organization
from app.schemas.analytics import (
    ClientReport,
    DocumentReport,
    FullReport,
    InvoiceOverview,
    InvoiceReport,
    OverviewResponse,
    PaymentReport,
    ReportType,
    TeamReport,
    TimeRange,
)
from app.services.analytics_service import AnalyticsService

router = APIRouter()

OrgContext = tuple[Organization, OrganizationUser]


def get_analytics_service() -> AnalyticsService:
    """Dependency that constructs AnalyticsService over the shared session factory."""
    return AnalyticsService(session_factory=AsyncSessionLocal)


async def get_analytics_org(
    org_and_member: OrgContext = Depends(get_header_org_member),
    db: AsyncSession = Depends(get_db),
) -> Organization:
    """
    Resolve the header organization, then hand the request connection back
    to the pool before the report queries fan out on their own sessions.
    """
    org, _ = org_and_member
    await db.close()
    return org


def time_range_param(
    time_range: TimeRange = Query(default=TimeRange.THIS_MONTH, alias="timeRange"),
) -> TimeRange:
    return time_range


# ---------------------------------------------------------------------------
# Overview / reports / export
# ---------------------------------------------------------------------------

@router.get("/overview", response_model=OverviewResponse, summary="Revenue overview")
async def get_overview(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> OverviewResponse:
    return await service.get_overview(org.id, time_range)


@router.get(
    "/report",
    response_model=FullReport | InvoiceReport | ClientReport | DocumentReport,
    summary="Detailed report",
)
async def get_report(
    report_type: ReportType | None = Query(default=None, alias="type"),
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> FullReport | InvoiceReport | ClientReport | DocumentReport:
    """type=invoices|clients|documents narrows the report; omit it for everything."""
    return await service.get_report(org.id, time_range, report_type)


@router.get("/export", summary="Download the full report as CSV or JSON")
async def export_report(
    export_format: str = Query(default="csv", alias="format"),
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Response:
    body, media_type, filename = await service.export(org.id, time_range, export_format)
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


# ---------------------------------------------------------------------------
# Per-domain analytics
# ---------------------------------------------------------------------------

@router.get("/invoices", response_model=InvoiceOverview, summary="Invoice overview")
async def get_invoice_overview(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> InvoiceOverview:
    return await service.get_invoice_overview(org.id, time_range)


@router.get("/invoices/report", response_model=InvoiceReport, summary="Invoice report")
async def get_invoice_report(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> InvoiceReport:
    return await service.get_invoice_report(org.id, time_range)


@router.get("/clients", response_model=ClientReport, summary="Client statistics")
async def get_client_stats(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> ClientReport:
    return await service.get_client_report(org.id, time_range)


@router.get("/documents", response_model=DocumentReport, summary="Document analytics")
async def get_document_analytics(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> DocumentReport:
    return await service.get_document_report(org.id, time_range)


@router.get("/team", response_model=TeamReport, summary="Team analytics")
async def get_team_analytics(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> TeamReport:
    return await service.get_team_report(org.id, time_range)


@router.get("/payments", response_model=PaymentReport, summary="Payment analytics")
async def get_payment_analytics(
    time_range: TimeRange = Depends(time_range_param),
    org: Organization = Depends(get_analytics_org),
    service: AnalyticsService = Depends(get_analytics_service),
) -> PaymentReport:
    return await service.get_payment_report(org.id, time_range)
