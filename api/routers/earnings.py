"""Rider earnings API — per-order earnings, payment status, summaries and reports."""

import uuid
from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from deps import get_actor_id
from schemas import PaymentStatus
from schemas.earning import (
    EarningComponents,
    EarningCreate,
    EarningListResponse,
    EarningResponse,
    EarningTotals,
    EarningUpdate,
    Pagination,
    PaymentStatusUpdate,
    RiderEarningsResponse,
    RiderTotal,
    StatusTotal,
    WeeklyReportRequest,
    WeeklyReportResponse,
    WeeklySummary,
)
from services import earnings as calculator

router = APIRouter()


# ── Create / list ──────────────────────────────────────────

@router.post("/", response_model=EarningResponse, status_code=201)
async def create_earning(
    data: EarningCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Record the earning for a completed order. The total is always computed."""
    components = data.model_dump(include=set(EarningComponents.model_fields), exclude_none=True)
    details = data.model_dump(
        exclude=set(EarningComponents.model_fields) | {"rider_id", "store_id", "order_id", "order_date"},
        exclude_none=True,
    )
    earning = await calculator.create_earning(
        db,
        data.rider_id,
        data.store_id,
        data.order_id,
        components,
        order_date=data.order_date,
        actor_id=actor_id,
        **details,
    )
    return earning


@router.get("/", response_model=EarningListResponse)
async def list_earnings(
    rider_id: str | None = None,
    store_id: str | None = None,
    payment_status: PaymentStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
):
    """Paged listing. `page_totals` covers this page, `totals` every matching record."""
    filters = calculator.EarningFilters(
        rider_id=rider_id,
        store_id=store_id,
        payment_status=payment_status,
        date_from=date_from,
        date_to=date_to,
    )
    result = await calculator.list_earnings(db, filters, page, limit, sort_by, sort_order)
    return EarningListResponse(
        data=[EarningResponse.model_validate(e) for e in result.items],
        pagination=Pagination(
            current_page=result.page,
            total_pages=result.total_pages,
            total_items=result.total_items,
            items_per_page=result.limit,
        ),
        page_totals=EarningTotals(**asdict(result.page_totals)),
        totals=EarningTotals(**asdict(result.totals)),
    )


@router.get("/totals/by-rider", response_model=list[RiderTotal])
async def totals_by_rider(
    store_id: str | None = None,
    payment_status: PaymentStatus | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: AsyncSession = Depends(get_db),
):
    filters = calculator.EarningFilters(
        store_id=store_id, payment_status=payment_status, date_from=date_from, date_to=date_to,
    )
    return await calculator.sum_by_rider(db, filters)


@router.get("/totals/by-status", response_model=list[StatusTotal])
async def totals_by_status(
    rider_id: str | None = None,
    store_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: AsyncSession = Depends(get_db),
):
    filters = calculator.EarningFilters(
        rider_id=rider_id, store_id=store_id, date_from=date_from, date_to=date_to,
    )
    return await calculator.sum_by_status(db, filters)


# ── Rider views & reports ──────────────────────────────────

@router.get("/rider/{rider_id}", response_model=RiderEarningsResponse)
async def rider_earnings(
    rider_id: str,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    payment_status: PaymentStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    earnings, summary = await calculator.rider_summary(db, rider_id, date_from, date_to, payment_status)
    return RiderEarningsResponse(
        earnings=[EarningResponse.model_validate(e) for e in earnings],
        summary=EarningTotals(**asdict(summary)),
    )


@router.get("/rider/{rider_id}/weekly", response_model=WeeklySummary)
async def rider_weekly_summary(
    rider_id: str,
    year: int | None = Query(None, ge=2000, le=2100),
    week: int | None = Query(None, ge=1, le=53),
    db: AsyncSession = Depends(get_db),
):
    """ISO week totals; the current week when year/week are omitted."""
    return await calculator.weekly_summary(db, rider_id, year, week)


@router.post("/reports/weekly", response_model=WeeklyReportResponse)
async def weekly_report(data: WeeklyReportRequest, db: AsyncSession = Depends(get_db)):
    reports = await calculator.weekly_report(db, data.rider_ids, data.start_date, data.end_date)
    return WeeklyReportResponse(start_date=data.start_date, end_date=data.end_date, reports=reports)


# ── Single record ──────────────────────────────────────────

@router.get("/{earning_id}", response_model=EarningResponse)
async def get_earning(earning_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await calculator.get_earning(db, earning_id)


@router.patch("/{earning_id}", response_model=EarningResponse)
async def update_earning(
    earning_id: uuid.UUID,
    data: EarningUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Partial edit of components or delivery details; the total is recomputed."""
    changes = data.model_dump(exclude_unset=True, exclude={"expected_version"})
    return await calculator.update_earning(
        db, earning_id, changes, actor_id=actor_id, expected_version=data.expected_version,
    )


@router.patch("/{earning_id}/payment-status", response_model=EarningResponse)
async def update_payment_status(
    earning_id: uuid.UUID,
    data: PaymentStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await calculator.transition_payment_status(
        db, earning_id, data.payment_status, actor_id=actor_id, notes=data.notes,
    )


@router.delete("/{earning_id}")
async def delete_earning(
    earning_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    mode = await calculator.delete_earning(db, earning_id, actor_id=actor_id)
    return {"success": True, "deleted": mode}
