"""
Analytics schemas.

Response models for the time-windowed reporting endpoints.
"""

from __future__ import annotations

import enum
from uuid import UUID

from pydantic import BaseModel


class TimeRange(str, enum.Enum):
    THIS_MONTH = "THIS_MONTH"
    LAST_MONTH = "LAST_MONTH"
    THIS_QUARTER = "THIS_QUARTER"
    THIS_YEAR = "THIS_YEAR"
    LAST_YEAR = "LAST_YEAR"


class ReportType(str, enum.Enum):
    INVOICES = "invoices"
    CLIENTS = "clients"
    DOCUMENTS = "documents"


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

class MonthlyStat(BaseModel):
    year: int
    month: int
    total_amount: float
    total_count: int


class GroupCount(BaseModel):
    """Row count (and optional amount or byte total) for one group value."""
    key: str | None
    count: int
    total: float | None = None


class TopClient(BaseModel):
    client_id: UUID
    name: str
    invoice_count: int
    total_amount: float


class MemberPerformance(BaseModel):
    user_id: UUID
    name: str
    email: str
    invoice_count: int
    total_amount: float


# ---------------------------------------------------------------------------
# Overview
# ---------------------------------------------------------------------------

class OverviewResponse(BaseModel):
    total_revenue: float
    total_invoices: int
    total_contracts: int
    total_clients: int
    growth_rate: float
    monthly_stats: list[MonthlyStat]


# ---------------------------------------------------------------------------
# Per-domain analytics
# ---------------------------------------------------------------------------

class InvoiceOverview(BaseModel):
    total_amount: float
    total_count: int
    paid_count: int
    pending_count: int
    overdue_count: int
    monthly_stats: list[MonthlyStat]


class InvoiceReport(BaseModel):
    total_amount: float
    total_count: int
    by_status: list[GroupCount]
    by_month: list[MonthlyStat]
    top_clients: list[TopClient]


class ClientReport(BaseModel):
    total_clients: int
    active_clients: int
    new_clients: int
    by_status: list[GroupCount]
    top_clients: list[TopClient]


class DocumentReport(BaseModel):
    total_documents: int
    total_size: int
    by_type: list[GroupCount]
    by_folder: list[GroupCount]
    by_month: list[MonthlyStat] = []


class TeamReport(BaseModel):
    total_members: int
    active_members: int
    member_performance: list[MemberPerformance]


class PaymentReport(BaseModel):
    total_payments: int
    total_amount: float
    by_method: list[GroupCount]
    by_status: list[GroupCount]


class FullReport(BaseModel):
    invoices: InvoiceReport
    clients: ClientReport
    documents: DocumentReport
    team: TeamReport
    payments: PaymentReport
