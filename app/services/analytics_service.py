"""
Analytics aggregation.

Time-windowed reporting over an organization's invoices, clients,
contracts, documents, payments and team. Independent aggregates of one
request run concurrently, each on its own session, and are awaited
together; any failure fails the whole response.
"""

from __future__ import annotations

import asyncio
import csv
import enum
import io
import json
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import Select, extract, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.billing import (
    Client,
    ClientStatus,
    Contract,
    Document,
    Invoice,
    InvoiceStatus,
    Payment,
)
from app.models.member import MemberStatus, OrganizationUser
from app.models.user import User
from app.schemas.analytics import (
    ClientReport,
    DocumentReport,
    FullReport,
    GroupCount,
    InvoiceOverview,
    InvoiceReport,
    MemberPerformance,
    MonthlyStat,
    OverviewResponse,
    PaymentReport,
    ReportType,
    TeamReport,
    TimeRange,
    TopClient,
)

logger = logging.getLogger(__name__)

TOP_CLIENTS_LIMIT = 10

EXPORT_COLUMNS = ("section", "metric", "dimension", "count", "value")


# ---------------------------------------------------------------------------
# Date windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DateWindow:
    """Half-open interval [start, end) in UTC."""

    start: datetime
    end: datetime

    def contains(self, column):
        return (column >= self.start) & (column < self.end)


def _month_start(year: int, month: int) -> datetime:
    """First instant of a month; month may be out of 1..12 and is normalized."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1, tzinfo=UTC)


def resolve_window(time_range: TimeRange | None, now: datetime) -> DateWindow:
    """Window covered by a time range. Unknown or missing ranges mean THIS_MONTH."""
    y, m = now.year, now.month
    quarter_month = (m - 1) // 3 * 3 + 1

    if time_range == TimeRange.LAST_MONTH:
        return DateWindow(_month_start(y, m - 1), _month_start(y, m))
    if time_range == TimeRange.THIS_QUARTER:
        return DateWindow(_month_start(y, quarter_month), now)
    if time_range == TimeRange.THIS_YEAR:
        return DateWindow(_month_start(y, 1), now)
    if time_range == TimeRange.LAST_YEAR:
        return DateWindow(_month_start(y - 1, 1), _month_start(y, 1))
    return DateWindow(_month_start(y, m), now)


def previous_window(time_range: TimeRange | None, now: datetime) -> DateWindow:
    """The comparison period one unit before the current window."""
    y, m = now.year, now.month
    quarter_month = (m - 1) // 3 * 3 + 1

    if time_range == TimeRange.LAST_MONTH:
        return DateWindow(_month_start(y, m - 2), _month_start(y, m - 1))
    if time_range == TimeRange.THIS_QUARTER:
        return DateWindow(_month_start(y, quarter_month - 3), _month_start(y, quarter_month))
    if time_range == TimeRange.THIS_YEAR:
        return DateWindow(_month_start(y - 1, 1), _month_start(y, 1))
    if time_range == TimeRange.LAST_YEAR:
        return DateWindow(_month_start(y - 2, 1), _month_start(y - 1, 1))
    return DateWindow(_month_start(y, m - 1), _month_start(y, m))


def calculate_growth_rate(current: float | None, previous: float | None) -> float:
    """Percent change; 0 when there is nothing to compare against."""
    if not previous:
        return 0.0
    return ((current or 0) - previous) / previous * 100


def iter_months(start: datetime, now: datetime) -> Iterator[tuple[int, int]]:
    """(year, month) for every calendar month from start through now, inclusive."""
    year, month = start.year, start.month
    while (year, month) <= (now.year, now.month):
        yield year, month
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def _key(value: Any) -> str | None:
    return value.value if isinstance(value, enum.Enum) else value


def _money(value: Any) -> float:
    return round(float(value or 0), 2)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class AnalyticsService:
    """Read-only aggregates scoped to one organization."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def _scalar(self, stmt: Select) -> Any:
        async with self._session_factory() as session:
            return await session.scalar(stmt)

    async def _rows(self, stmt: Select) -> list[Any]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.all())

    # -----------------------------------------------------------------------
    # Reusable aggregates
    # -----------------------------------------------------------------------

    def _count(self, model, organization_id: UUID, window: DateWindow | None = None, *where) -> Select:
        stmt = select(func.count(model.id)).where(model.organization_id == organization_id, *where)
        if window is not None:
            stmt = stmt.where(window.contains(model.created_at))
        return stmt

    def _sum(self, column, model, organization_id: UUID, window: DateWindow | None = None) -> Select:
        stmt = select(func.coalesce(func.sum(column), 0)).where(model.organization_id == organization_id)
        if window is not None:
            stmt = stmt.where(window.contains(model.created_at))
        return stmt

    async def _grouped(
        self, group_column, model, organization_id: UUID, window: DateWindow | None, total_column=None
    ) -> list[GroupCount]:
        columns = [group_column, func.count(model.id)]
        if total_column is not None:
            columns.append(func.coalesce(func.sum(total_column), 0))
        stmt = (
            select(*columns)
            .where(model.organization_id == organization_id)
            .group_by(group_column)
            .order_by(func.count(model.id).desc())
        )
        if window is not None:
            stmt = stmt.where(window.contains(model.created_at))

        groups = []
        for row in await self._rows(stmt):
            total = None
            if total_column is not None:
                total = _money(row[2])
            groups.append(GroupCount(key=_key(row[0]), count=row[1], total=total))
        return groups

    async def _monthly(
        self, model, amount_column, organization_id: UUID, start: datetime, now: datetime
    ) -> list[MonthlyStat]:
        """Per-month totals from start through now, zero-filled, chronological."""
        year_col = extract("year", model.created_at)
        month_col = extract("month", model.created_at)
        end = _month_start(now.year, now.month + 1)
        stmt = (
            select(
                year_col,
                month_col,
                func.coalesce(func.sum(amount_column), 0),
                func.count(model.id),
            )
            .where(
                model.organization_id == organization_id,
                model.created_at >= _month_start(start.year, start.month),
                model.created_at < end,
            )
            .group_by(year_col, month_col)
        )
        found = {(int(y), int(m)): (amount, count) for y, m, amount, count in await self._rows(stmt)}
        return [
            MonthlyStat(
                year=year,
                month=month,
                total_amount=_money(found.get((year, month), (0, 0))[0]),
                total_count=found.get((year, month), (0, 0))[1],
            )
            for year, month in iter_months(start, now)
        ]

    async def _top_clients(self, organization_id: UUID, window: DateWindow) -> list[TopClient]:
        total = func.coalesce(func.sum(Invoice.total_amount), 0).label("total")
        stmt = (
            select(Client.id, Client.name, func.count(Invoice.id), total)
            .select_from(Invoice)
            .join(Client, Invoice.client_id == Client.id)
            .where(Invoice.organization_id == organization_id, window.contains(Invoice.created_at))
            .group_by(Client.id, Client.name)
            .order_by(total.desc())
            .limit(TOP_CLIENTS_LIMIT)
        )
        return [
            TopClient(client_id=cid, name=name, invoice_count=count, total_amount=_money(amount))
            for cid, name, count, amount in await self._rows(stmt)
        ]

    async def get_monthly_stats(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> list[MonthlyStat]:
        """Invoice revenue and count per month of the window."""
        now = self._clock()
        window = resolve_window(time_range, now)
        return await self._monthly(Invoice, Invoice.total_amount, organization_id, window.start, now)

    # -----------------------------------------------------------------------
    # Overview
    # -----------------------------------------------------------------------

    async def get_overview(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> OverviewResponse:
        now = self._clock()
        window = resolve_window(time_range, now)
        previous = previous_window(time_range, now)

        revenue, invoices, contracts, clients, previous_revenue, monthly = await asyncio.gather(
            self._scalar(self._sum(Invoice.total_amount, Invoice, organization_id, window)),
            self._scalar(self._count(Invoice, organization_id, window)),
            self._scalar(self._count(Contract, organization_id, window)),
            self._scalar(self._count(Client, organization_id)),
            self._scalar(self._sum(Invoice.total_amount, Invoice, organization_id, previous)),
            self._monthly(Invoice, Invoice.total_amount, organization_id, window.start, now),
        )

        return OverviewResponse(
            total_revenue=_money(revenue),
            total_invoices=invoices or 0,
            total_contracts=contracts or 0,
            total_clients=clients or 0,
            growth_rate=round(calculate_growth_rate(_money(revenue), _money(previous_revenue)), 2),
            monthly_stats=monthly,
        )

    # -----------------------------------------------------------------------
    # Invoices
    # -----------------------------------------------------------------------

    async def get_invoice_overview(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> InvoiceOverview:
        now = self._clock()
        window = resolve_window(time_range, now)

        def by_status(invoice_status: InvoiceStatus):
            return self._scalar(
                self._count(Invoice, organization_id, window, Invoice.status == invoice_status)
            )

        amount, count, paid, pending, overdue, monthly = await asyncio.gather(
            self._scalar(self._sum(Invoice.total_amount, Invoice, organization_id, window)),
            self._scalar(self._count(Invoice, organization_id, window)),
            by_status(InvoiceStatus.PAID),
            by_status(InvoiceStatus.SENT),
            by_status(InvoiceStatus.OVERDUE),
            self._monthly(Invoice, Invoice.total_amount, organization_id, window.start, now),
        )
        return InvoiceOverview(
            total_amount=_money(amount),
            total_count=count or 0,
            paid_count=paid or 0,
            pending_count=pending or 0,
            overdue_count=overdue or 0,
            monthly_stats=monthly,
        )

    async def get_invoice_report(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> InvoiceReport:
        now = self._clock()
        window = resolve_window(time_range, now)

        amount, count, statuses, monthly, top_clients = await asyncio.gather(
            self._scalar(self._sum(Invoice.total_amount, Invoice, organization_id, window)),
            self._scalar(self._count(Invoice, organization_id, window)),
            self._grouped(Invoice.status, Invoice, organization_id, window, Invoice.total_amount),
            self._monthly(Invoice, Invoice.total_amount, organization_id, window.start, now),
            self._top_clients(organization_id, window),
        )
        return InvoiceReport(
            total_amount=_money(amount),
            total_count=count or 0,
            by_status=statuses,
            by_month=monthly,
            top_clients=top_clients,
        )

    # -----------------------------------------------------------------------
    # Clients
    # -----------------------------------------------------------------------

    async def get_client_report(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> ClientReport:
        window = resolve_window(time_range, self._clock())

        total, active, new, statuses, top_clients = await asyncio.gather(
            self._scalar(self._count(Client, organization_id)),
            self._scalar(self._count(Client, organization_id, None, Client.status == ClientStatus.ACTIVE)),
            self._scalar(self._count(Client, organization_id, window)),
            self._grouped(Client.status, Client, organization_id, None),
            self._top_clients(organization_id, window),
        )
        return ClientReport(
            total_clients=total or 0,
            active_clients=active or 0,
            new_clients=new or 0,
            by_status=statuses,
            top_clients=top_clients,
        )

    # -----------------------------------------------------------------------
    # Documents
    # -----------------------------------------------------------------------

    async def get_document_report(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> DocumentReport:
        now = self._clock()
        window = resolve_window(time_range, now)

        count, size, types, folders, monthly = await asyncio.gather(
            self._scalar(self._count(Document, organization_id, window)),
            self._scalar(self._sum(Document.size, Document, organization_id, window)),
            self._grouped(Document.type, Document, organization_id, window, Document.size),
            self._grouped(Document.folder, Document, organization_id, window, Document.size),
            self._monthly(Document, Document.size, organization_id, window.start, now),
        )
        return DocumentReport(
            total_documents=count or 0,
            total_size=int(size or 0),
            by_type=types,
            by_folder=folders,
            by_month=monthly,
        )

    # -----------------------------------------------------------------------
    # Team
    # -----------------------------------------------------------------------

    async def get_team_report(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> TeamReport:
        window = resolve_window(time_range, self._clock())

        total = func.coalesce(func.sum(Invoice.total_amount), 0).label("total")
        performance_stmt = (
            select(User.id, User.name, User.email, func.count(Invoice.id), total)
            .select_from(Invoice)
            .join(User, Invoice.user_id == User.id)
            .where(Invoice.organization_id == organization_id, window.contains(Invoice.created_at))
            .group_by(User.id, User.name, User.email)
            .order_by(total.desc())
        )
        members = select(func.count(OrganizationUser.id)).where(
            OrganizationUser.organization_id == organization_id,
            OrganizationUser.user_id.is_not(None),
        )

        total_members, active_members, rows = await asyncio.gather(
            self._scalar(members),
            self._scalar(members.where(OrganizationUser.status == MemberStatus.ACTIVE)),
            self._rows(performance_stmt),
        )
        return TeamReport(
            total_members=total_members or 0,
            active_members=active_members or 0,
            member_performance=[
                MemberPerformance(
                    user_id=uid, name=name, email=email, invoice_count=count, total_amount=_money(amount)
                )
                for uid, name, email, count, amount in rows
            ],
        )

    # -----------------------------------------------------------------------
    # Payments
    # -----------------------------------------------------------------------

    async def get_payment_report(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> PaymentReport:
        window = resolve_window(time_range, self._clock())

        count, amount, methods, statuses = await asyncio.gather(
            self._scalar(self._count(Payment, organization_id, window)),
            self._scalar(self._sum(Payment.amount, Payment, organization_id, window)),
            self._grouped(Payment.method, Payment, organization_id, window, Payment.amount),
            self._grouped(Payment.status, Payment, organization_id, window, Payment.amount),
        )
        return PaymentReport(
            total_payments=count or 0,
            total_amount=_money(amount),
            by_method=methods,
            by_status=statuses,
        )

    # -----------------------------------------------------------------------
    # Reports
    # -----------------------------------------------------------------------

    async def get_full_report(
        self, organization_id: UUID, time_range: TimeRange | None = None
    ) -> FullReport:
        invoices, clients, documents, team, payments = await asyncio.gather(
            self.get_invoice_report(organization_id, time_range),
            self.get_client_report(organization_id, time_range),
            self.get_document_report(organization_id, time_range),
            self.get_team_report(organization_id, time_range),
            self.get_payment_report(organization_id, time_range),
        )
        return FullReport(
            invoices=invoices, clients=clients, documents=documents, team=team, payments=payments
        )

    async def get_report(
        self,
        organization_id: UUID,
        time_range: TimeRange | None = None,
        report_type: ReportType | None = None,
    ) -> InvoiceReport | ClientReport | DocumentReport | FullReport:
        if report_type == ReportType.INVOICES:
            return await self.get_invoice_report(organization_id, time_range)
        if report_type == ReportType.CLIENTS:
            return await self.get_client_report(organization_id, time_range)
        if report_type == ReportType.DOCUMENTS:
            return await self.get_document_report(organization_id, time_range)
        return await self.get_full_report(organization_id, time_range)

    # -----------------------------------------------------------------------
    # Export
    # -----------------------------------------------------------------------

    async def export(
        self, organization_id: UUID, time_range: TimeRange | None, fmt: str
    ) -> tuple[str, str, str]:
        """
        Render the full report for download.

        Returns:
            (body, media_type, filename)

        Raises:
            HTTPException 400 INVALID_FORMAT for anything but csv or json.
        """
        fmt = (fmt or "").lower()
        if fmt not in ("csv", "json"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_FORMAT", "message": "Unsupported export format"},
            )

        report = await self.get_full_report(organization_id, time_range)
        if fmt == "json":
            body = json.dumps(report.model_dump(mode="json"), indent=2)
            return body, "application/json", "analytics-report.json"
        return report_to_csv(report), "text/csv", "analytics-report.csv"


# ---------------------------------------------------------------------------
# CSV rendering
# ---------------------------------------------------------------------------

def _month_label(stat: MonthlyStat) -> str:
    return f"{stat.year:04d}-{stat.month:02d}"


def _report_rows(report: FullReport) -> Iterator[tuple[Any, ...]]:
    inv = report.invoices
    yield ("invoices", "total", None, inv.total_count, inv.total_amount)
    for g in inv.by_status:
        yield ("invoices", "by_status", g.key, g.count, g.total)
    for m in inv.by_month:
        yield ("invoices", "by_month", _month_label(m), m.total_count, m.total_amount)
    for c in inv.top_clients:
        yield ("invoices", "top_client", c.name, c.invoice_count, c.total_amount)

    cli = report.clients
    yield ("clients", "total", None, cli.total_clients, None)
    yield ("clients", "active", None, cli.active_clients, None)
    yield ("clients", "new", None, cli.new_clients, None)
    for g in cli.by_status:
        yield ("clients", "by_status", g.key, g.count, None)

    doc = report.documents
    yield ("documents", "total", None, doc.total_documents, doc.total_size)
    for g in doc.by_type:
        yield ("documents", "by_type", g.key, g.count, g.total)
    for g in doc.by_folder:
        yield ("documents", "by_folder", g.key, g.count, g.total)
    for m in doc.by_month:
        yield ("documents", "by_month", _month_label(m), m.total_count, m.total_amount)

    team = report.team
    yield ("team", "members", None, team.total_members, None)
    yield ("team", "active_members", None, team.active_members, None)
    for p in team.member_performance:
        yield ("team", "member_performance", p.email, p.invoice_count, p.total_amount)

    pay = report.payments
    yield ("payments", "total", None, pay.total_payments, pay.total_amount)
    for g in pay.by_method:
        yield ("payments", "by_method", g.key, g.count, g.total)
    for g in pay.by_status:
        yield ("payments", "by_status", g.key, g.count, g.total)


def report_to_csv(report: FullReport) -> str:
    """One row per scalar or group value under a fixed header."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    writer.writerows(_report_rows(report))
    return buffer.getvalue()
