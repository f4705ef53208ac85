"""
Earnings Calculator — per-order rider earnings and payment lifecycle.

Earning formula:
  total = base + distance + time + store_offer + ev + peak_time + quality
          + bonus_earning - penalty, floored at 0

The stored total_earning is always the formula output. It is recomputed
in the same flush as every component edit and is never accepted from input.

Payment lifecycle:
  pending -> processing -> paid
  processing -> failed -> pending (retry)
  pending / processing / failed / paid -> cancelled
"""

import logging
import math
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from config import settings
from errors import ConflictError, InvalidStateError, InvalidTransitionError, NotFoundError, ValidationError
from models.rider_earning import RiderEarning
from schemas import PaymentStatus
from services.audit import record_event

logger = logging.getLogger(__name__)


# ── Constants ──────────────────────────────────────────────

EARNING_FIELDS = (
    "base_earning",
    "distance_bonus",
    "time_bonus",
    "store_offer_bonus",
    "ev_bonus",
    "peak_time_bonus",
    "quality_bonus",
    "bonus_earning",
)
BONUS_FIELDS = EARNING_FIELDS[1:]
PENALTY_FIELD = "penalty_amount"
MONETARY_FIELDS = EARNING_FIELDS + (PENALTY_FIELD,)

# Fields a back-office edit may touch besides the components
DETAIL_FIELDS = (
    "store_id",
    "order_value",
    "base_rate",
    "order_date",
    "delivery_start_time",
    "delivery_end_time",
    "distance_traveled",
    "fuel_used",
    "energy_used",
    "notes",
)
DERIVED_FIELDS = ("total_earning", "payment_status", "order_id", "rider_id")
# Columns an edit may change but never clear
REQUIRED_FIELDS = MONETARY_FIELDS + ("store_id", "order_date")

SORTABLE_FIELDS = ("created_at", "order_date", "total_earning", "payment_status", "rider_id", "store_id")

ZERO = Decimal("0")
CENT = Decimal("0.01")

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING, PaymentStatus.CANCELLED}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.CANCELLED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.CANCELLED}),
    PaymentStatus.CANCELLED: frozenset(),
}
if set(PAYMENT_TRANSITIONS) != set(PaymentStatus):
    raise RuntimeError("PAYMENT_TRANSITIONS must cover every PaymentStatus")

# Settled records are immutable
LOCKED_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.CANCELLED})


# ── Data classes ───────────────────────────────────────────

@dataclass
class EarningFilters:
    rider_id: str | None = None
    store_id: str | None = None
    payment_status: PaymentStatus | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass
class EarningTotals:
    total_earnings: Decimal = ZERO
    total_orders: int = 0
    total_base_earnings: Decimal = ZERO
    total_bonuses: Decimal = ZERO
    total_penalties: Decimal = ZERO
    paid_earnings: Decimal = ZERO
    paid_orders: int = 0
    pending_earnings: Decimal = ZERO
    pending_orders: int = 0


@dataclass
class EarningPage:
    items: list[RiderEarning]
    total_items: int
    page: int
    limit: int
    page_totals: EarningTotals
    totals: EarningTotals = field(default_factory=EarningTotals)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.limit) if self.limit else 0


# ── Pure functions ─────────────────────────────────────────

def to_amount(value: Any) -> Decimal:
    """Coerce a monetary input to Decimal. None counts as zero."""
    if value is None or value == "":
        return ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount


def _cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_total(components: Mapping[str, Any]) -> Decimal:
    """
    Sum the earning components and subtract the penalty, floored at zero.

    Pure: depends only on `components`. Missing keys count as zero.
    """
    earned = sum((to_amount(components.get(name)) for name in EARNING_FIELDS), ZERO)
    total = earned - to_amount(components.get(PENALTY_FIELD))
    return _cents(max(total, ZERO))


def validate_components(components: Mapping[str, Any]) -> dict[str, Decimal]:
    """Return the supplied monetary components as cents, rejecting negatives."""
    cleaned: dict[str, Decimal] = {}
    for name in MONETARY_FIELDS:
        if name not in components:
            continue
        amount = to_amount(components[name])
        if amount < 0:
            raise ValidationError(f"{name} must not be negative", code="NEGATIVE_COMPONENT")
        cleaned[name] = _cents(amount)
    return cleaned


def components_of(earning: RiderEarning) -> dict[str, Decimal]:
    return {name: to_amount(getattr(earning, name)) for name in MONETARY_FIELDS}


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in PAYMENT_TRANSITIONS[current]


def summarize(earnings: Iterable[RiderEarning]) -> EarningTotals:
    """Totals over exactly the given records (e.g. one page)."""
    totals = EarningTotals()
    for e in earnings:
        amount = to_amount(e.total_earning)
        totals.total_earnings += amount
        totals.total_orders += 1
        totals.total_base_earnings += to_amount(e.base_earning)
        totals.total_bonuses += sum((to_amount(getattr(e, name)) for name in BONUS_FIELDS), ZERO)
        totals.total_penalties += to_amount(e.penalty_amount)
        if e.payment_status == PaymentStatus.PAID.value:
            totals.paid_earnings += amount
            totals.paid_orders += 1
        elif e.payment_status != PaymentStatus.CANCELLED.value:
            totals.pending_earnings += amount
            totals.pending_orders += 1
    return _round_totals(totals)


def _round_totals(totals: EarningTotals) -> EarningTotals:
    totals.total_earnings = _cents(totals.total_earnings)
    totals.total_base_earnings = _cents(totals.total_base_earnings)
    totals.total_bonuses = _cents(totals.total_bonuses)
    totals.total_penalties = _cents(totals.total_penalties)
    totals.paid_earnings = _cents(totals.paid_earnings)
    totals.pending_earnings = _cents(totals.pending_earnings)
    return totals


def week_bounds(year: int | None = None, week: int | None = None, today: date | None = None) -> tuple[datetime, datetime]:
    """Monday 00:00 to Sunday 23:59:59.999999 of an ISO week (current week by default)."""
    if (year is None) != (week is None):
        raise ValidationError("year and week must be given together")
    if year is None:
        today = today or datetime.utcnow().date()
        monday = today - timedelta(days=today.weekday())
    else:
        try:
            monday = date.fromisocalendar(year, week, 1)
        except ValueError:
            raise ValidationError(f"Invalid ISO week {year}-W{week}")
    start = datetime.combine(monday, datetime.min.time())
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return start, end


# ── Persistence operations ─────────────────────────────────

def _require_id(value: Any) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError("rider_id, store_id and order_id are required", code="MISSING_REQUIRED_FIELDS")
    return text


async def create_earning(
    db: AsyncSession,
    rider_id: str,
    store_id: str,
    order_id: str,
    components: Mapping[str, Any],
    order_date: datetime | None = None,
    actor_id: str | None = None,
    **details: Any,
) -> RiderEarning:
    """Record a rider earning for a completed order. Starts in `pending`."""
    rider_id, store_id, order_id = _require_id(rider_id), _require_id(store_id), _require_id(order_id)
    if any(name in components or name in details for name in ("total_earning", "payment_status")):
        raise ValidationError("total_earning and payment_status are derived and cannot be supplied")
    unknown = set(details) - set(DETAIL_FIELDS) - {"metadata"}
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    cleaned = validate_components(components)

    existing = await db.execute(
        select(RiderEarning.id).where(
            RiderEarning.order_id == order_id,
            RiderEarning.deleted_at.is_(None),
        )
    )
    if existing.scalar_one_or_none():
        raise ConflictError("Earning record already exists for this order", code="EARNING_EXISTS")

    metadata = details.pop("metadata", None) or {}
    earning = RiderEarning(
        rider_id=rider_id,
        store_id=store_id,
        order_id=order_id,
        **{name: cleaned.get(name, ZERO) for name in MONETARY_FIELDS},
        total_earning=compute_total(cleaned),
        payment_status=PaymentStatus.PENDING.value,
        order_date=order_date or datetime.utcnow(),
        metadata_json=metadata,
        created_by=actor_id,
        **details,
    )
    db.add(earning)
    await db.flush()
    record_event(db, "earning", earning.id, PaymentStatus.PENDING.value, actor_id=actor_id)
    await db.commit()
    await db.refresh(earning)

    logger.info(
        "Earning created: id=%s rider=%s order=%s total=%s",
        earning.id, rider_id, order_id, earning.total_earning,
    )
    return earning


async def get_earning(db: AsyncSession, earning_id: uuid.UUID) -> RiderEarning:
    result = await db.execute(
        select(RiderEarning).where(
            RiderEarning.id == earning_id,
            RiderEarning.deleted_at.is_(None),
        )
    )
    earning = result.scalar_one_or_none()
    if not earning:
        raise NotFoundError("Rider earning not found", code="EARNING_NOT_FOUND")
    return earning


async def update_earning(
    db: AsyncSession,
    earning_id: uuid.UUID,
    changes: Mapping[str, Any],
    actor_id: str | None = None,
    expected_version: int | None = None,
) -> RiderEarning:
    """
    Merge a partial edit into an earning and recompute its total.

    Concurrent edits are serialized by the version column: the losing writer
    gets InvalidStateError and must re-fetch.
    """
    earning = await get_earning(db, earning_id)

    derived = [name for name in DERIVED_FIELDS if name in changes]
    if derived:
        raise ValidationError(f"Fields cannot be edited directly: {', '.join(derived)}")
    unknown = set(changes) - set(MONETARY_FIELDS) - set(DETAIL_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")
    cleared = [name for name in REQUIRED_FIELDS if name in changes and changes[name] is None]
    if cleared:
        raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}", code="NULL_FIELD")
    if PaymentStatus(earning.payment_status) in LOCKED_STATUSES:
        raise InvalidStateError(f"Cannot edit a {earning.payment_status} earning record")
    if expected_version is not None and expected_version != earning.version:
        raise InvalidStateError("Earning was modified by someone else; re-fetch and retry", code="STALE_VERSION")
    if "store_id" in changes:
        changes = {**changes, "store_id": _require_id(changes["store_id"])}

    cleaned = validate_components(changes)
    for name, value in changes.items():
        setattr(earning, name, cleaned[name] if name in cleaned else value)
    earning.total_earning = compute_total(components_of(earning))
    earning.updated_by = actor_id

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise InvalidStateError("Earning was modified concurrently; re-fetch and retry", code="STALE_VERSION")
    await db.refresh(earning)

    logger.info("Earning updated: id=%s total=%s version=%s", earning.id, earning.total_earning, earning.version)
    return earning


async def transition_payment_status(
    db: AsyncSession,
    earning_id: uuid.UUID,
    new_status: PaymentStatus | str,
    actor_id: str | None = None,
    notes: str | None = None,
) -> RiderEarning:
    """Advance the payment lifecycle. Disallowed moves raise InvalidTransitionError."""
    try:
        target = PaymentStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown payment status: {new_status}")

    earning = await get_earning(db, earning_id)
    current = PaymentStatus(earning.payment_status)
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot move payment from {current.value} to {target.value}")

    earning.payment_status = target.value
    earning.updated_by = actor_id
    if target == PaymentStatus.PAID:
        earning.paid_at = datetime.utcnow()
    record_event(db, "earning", earning.id, target.value, from_status=current.value, actor_id=actor_id, notes=notes)

    try:
        await db.commit()
    except StaleDataError:
        await db.rollback()
        raise InvalidStateError("Earning was modified concurrently; re-fetch and retry", code="STALE_VERSION")
    await db.refresh(earning)

    logger.info("Earning %s payment: %s -> %s (actor=%s)", earning.id, current.value, target.value, actor_id)
    return earning


async def delete_earning(db: AsyncSession, earning_id: uuid.UUID, actor_id: str | None = None) -> str:
    """
    Paid records are soft-deleted so the payout audit trail survives;
    anything else is removed. Returns "soft" or "hard".
    """
    earning = await get_earning(db, earning_id)

    if earning.payment_status == PaymentStatus.PAID.value:
        earning.deleted_at = datetime.utcnow()
        earning.updated_by = actor_id
        record_event(db, "earning", earning.id, "deleted", from_status=earning.payment_status, actor_id=actor_id)
        mode = "soft"
    else:
        await db.delete(earning)
        record_event(db, "earning", earning_id, "deleted", from_status=earning.payment_status, actor_id=actor_id)
        mode = "hard"

    await db.commit()
    logger.info("Earning %s deleted (%s) by %s", earning_id, mode, actor_id)
    return mode


# ── Queries & aggregation ──────────────────────────────────

def _where(filters: EarningFilters) -> list:
    clauses = [RiderEarning.deleted_at.is_(None)]
    if filters.rider_id:
        clauses.append(RiderEarning.rider_id == filters.rider_id)
    if filters.store_id:
        clauses.append(RiderEarning.store_id == filters.store_id)
    if filters.payment_status:
        clauses.append(RiderEarning.payment_status == PaymentStatus(filters.payment_status).value)
    if filters.date_from:
        clauses.append(RiderEarning.order_date >= filters.date_from)
    if filters.date_to:
        clauses.append(RiderEarning.order_date <= filters.date_to)
    return clauses


async def aggregate_totals(db: AsyncSession, filters: EarningFilters) -> EarningTotals:
    """Grand totals over the full filtered set, computed without paging."""
    paid = RiderEarning.payment_status == PaymentStatus.PAID.value
    outstanding = RiderEarning.payment_status.notin_(
        [PaymentStatus.PAID.value, PaymentStatus.CANCELLED.value]
    )
    bonuses = sum((getattr(RiderEarning, name) for name in BONUS_FIELDS[1:]), getattr(RiderEarning, BONUS_FIELDS[0]))

    row = (await db.execute(
        select(
            func.coalesce(func.sum(RiderEarning.total_earning), 0).label("total_earnings"),
            func.count(RiderEarning.id).label("total_orders"),
            func.coalesce(func.sum(RiderEarning.base_earning), 0).label("total_base_earnings"),
            func.coalesce(func.sum(bonuses), 0).label("total_bonuses"),
            func.coalesce(func.sum(RiderEarning.penalty_amount), 0).label("total_penalties"),
            func.coalesce(func.sum(case((paid, RiderEarning.total_earning), else_=0)), 0).label("paid_earnings"),
            func.coalesce(func.sum(case((paid, 1), else_=0)), 0).label("paid_orders"),
            func.coalesce(func.sum(case((outstanding, RiderEarning.total_earning), else_=0)), 0).label("pending_earnings"),
            func.coalesce(func.sum(case((outstanding, 1), else_=0)), 0).label("pending_orders"),
        ).where(*_where(filters))
    )).one()

    return _round_totals(EarningTotals(
        total_earnings=to_amount(row.total_earnings),
        total_orders=int(row.total_orders or 0),
        total_base_earnings=to_amount(row.total_base_earnings),
        total_bonuses=to_amount(row.total_bonuses),
        total_penalties=to_amount(row.total_penalties),
        paid_earnings=to_amount(row.paid_earnings),
        paid_orders=int(row.paid_orders or 0),
        pending_earnings=to_amount(row.pending_earnings),
        pending_orders=int(row.pending_orders or 0),
    ))


async def list_earnings(
    db: AsyncSession,
    filters: EarningFilters,
    page: int = 1,
    limit: int | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> EarningPage:
    """
    One page of earnings. `page_totals` covers only the returned rows;
    `totals` is a separate unpaged aggregation over every matching row.
    """
    limit = limit or settings.DEFAULT_PAGE_SIZE
    if page < 1 or limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"page must be >= 1 and limit between 1 and {settings.MAX_PAGE_SIZE}")
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by {sort_by}")
    column = getattr(RiderEarning, sort_by)
    ordering = column.asc() if sort_order == "asc" else column.desc()

    clauses = _where(filters)
    result = await db.execute(
        select(RiderEarning)
        .where(*clauses)
        .order_by(ordering, RiderEarning.id)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = list(result.scalars().all())
    total_items = (await db.execute(select(func.count(RiderEarning.id)).where(*clauses))).scalar() or 0

    return EarningPage(
        items=items,
        total_items=total_items,
        page=page,
        limit=limit,
        page_totals=summarize(items),
        totals=await aggregate_totals(db, filters),
    )


async def sum_by_rider(db: AsyncSession, filters: EarningFilters) -> list[dict]:
    total = func.coalesce(func.sum(RiderEarning.total_earning), 0)
    result = await db.execute(
        select(RiderEarning.rider_id, total.label("total"), func.count(RiderEarning.id).label("orders"))
        .where(*_where(filters))
        .group_by(RiderEarning.rider_id)
        .order_by(total.desc(), RiderEarning.rider_id)
    )
    return [
        {"rider_id": row.rider_id, "total_earnings": _cents(to_amount(row.total)), "total_orders": row.orders}
        for row in result
    ]


async def sum_by_status(db: AsyncSession, filters: EarningFilters) -> list[dict]:
    result = await db.execute(
        select(
            RiderEarning.payment_status,
            func.coalesce(func.sum(RiderEarning.total_earning), 0).label("total"),
            func.count(RiderEarning.id).label("orders"),
        )
        .where(*_where(filters))
        .group_by(RiderEarning.payment_status)
        .order_by(RiderEarning.payment_status)
    )
    return [
        {"payment_status": row.payment_status, "total_earnings": _cents(to_amount(row.total)), "total_orders": row.orders}
        for row in result
    ]


async def rider_summary(
    db: AsyncSession,
    rider_id: str,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    payment_status: PaymentStatus | None = None,
) -> tuple[list[RiderEarning], EarningTotals]:
    """All of a rider's earnings in range plus their summary."""
    filters = EarningFilters(rider_id=rider_id, payment_status=payment_status, date_from=date_from, date_to=date_to)
    result = await db.execute(
        select(RiderEarning).where(*_where(filters)).order_by(RiderEarning.order_date.desc())
    )
    earnings = list(result.scalars().all())
    return earnings, summarize(earnings)


def _period_summary(rider_id: str, start: datetime, end: datetime, earnings: list[RiderEarning]) -> dict:
    totals = summarize(earnings)
    average = _cents(totals.total_earnings / totals.total_orders) if totals.total_orders else ZERO
    return {
        "rider_id": rider_id,
        "week_start_date": start,
        "week_end_date": end,
        "total_earnings": totals.total_earnings,
        "total_orders": totals.total_orders,
        "total_base_earnings": totals.total_base_earnings,
        "total_bonuses": totals.total_bonuses,
        "total_penalties": totals.total_penalties,
        "total_distance": round(sum(float(e.distance_traveled or 0) for e in earnings), 2),
        "total_fuel_used": round(sum(float(e.fuel_used or 0) for e in earnings), 2),
        "total_energy_used": round(sum(float(e.energy_used or 0) for e in earnings), 2),
        "average_earning_per_order": average,
    }


async def _earnings_between(db: AsyncSession, rider_id: str, start: datetime, end: datetime) -> list[RiderEarning]:
    filters = EarningFilters(rider_id=rider_id, date_from=start, date_to=end)
    result = await db.execute(select(RiderEarning).where(*_where(filters)).order_by(RiderEarning.order_date))
    return list(result.scalars().all())


async def weekly_summary(
    db: AsyncSession,
    rider_id: str,
    year: int | None = None,
    week: int | None = None,
) -> dict:
    """Totals for one ISO week (Monday-Sunday), current week by default."""
    start, end = week_bounds(year, week)
    earnings = await _earnings_between(db, rider_id, start, end)
    return _period_summary(rider_id, start, end, earnings)


async def weekly_report(
    db: AsyncSession,
    rider_ids: list[str],
    start_date: datetime,
    end_date: datetime,
) -> list[dict]:
    """Per-rider summaries for an arbitrary period."""
    if not rider_ids:
        raise ValidationError("rider_ids must not be empty", code="MISSING_RIDER_IDS")
    if start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    reports = []
    for rider_id in rider_ids:
        earnings = await _earnings_between(db, rider_id, start_date, end_date)
        reports.append(_period_summary(rider_id, start_date, end_date, earnings))
    return reports
