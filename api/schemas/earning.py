"""Pydantic schemas for rider earnings endpoints."""

from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from pydantic import AliasChoices, BaseModel, Field

from schemas import PaymentStatus


class EarningComponents(BaseModel):
    """Monetary components of an earning. Sign checks happen in the calculator."""
    base_earning: Decimal | None = None
    distance_bonus: Decimal | None = None
    time_bonus: Decimal | None = None
    store_offer_bonus: Decimal | None = None
    ev_bonus: Decimal | None = None
    peak_time_bonus: Decimal | None = None
    quality_bonus: Decimal | None = None
    bonus_earning: Decimal | None = None
    penalty_amount: Decimal | None = None


class EarningCreate(EarningComponents):
    rider_id: str
    store_id: str
    order_id: str
    order_value: Decimal | None = None
    base_rate: Decimal | None = None
    order_date: datetime | None = None
    delivery_start_time: datetime | None = None
    delivery_end_time: datetime | None = None
    distance_traveled: float | None = None
    fuel_used: float | None = None
    energy_used: float | None = None
    notes: str | None = None
    metadata: dict | None = None

    class Config:
        extra = "forbid"


class EarningUpdate(EarningComponents):
    """Partial update. total_earning is derived and cannot be supplied."""
    store_id: str | None = None
    order_value: Decimal | None = None
    base_rate: Decimal | None = None
    order_date: datetime | None = None
    delivery_start_time: datetime | None = None
    delivery_end_time: datetime | None = None
    distance_traveled: float | None = None
    fuel_used: float | None = None
    energy_used: float | None = None
    notes: str | None = None
    expected_version: int | None = None

    class Config:
        extra = "forbid"


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    notes: str | None = None


class EarningResponse(BaseModel):
    id: uuid.UUID
    rider_id: str
    store_id: str
    order_id: str
    order_value: Decimal | None
    base_rate: Decimal | None
    base_earning: Decimal
    distance_bonus: Decimal
    time_bonus: Decimal
    store_offer_bonus: Decimal
    ev_bonus: Decimal
    peak_time_bonus: Decimal
    quality_bonus: Decimal
    bonus_earning: Decimal
    penalty_amount: Decimal
    total_earning: Decimal
    payment_status: PaymentStatus
    order_date: datetime
    delivery_start_time: datetime | None
    delivery_end_time: datetime | None
    distance_traveled: float | None
    fuel_used: float | None
    energy_used: float | None
    notes: str | None
    metadata: dict | None = Field(None, validation_alias=AliasChoices("metadata_json", "metadata"))
    created_by: str | None
    updated_by: str | None
    created_at: datetime
    updated_at: datetime
    paid_at: datetime | None
    version: int

    class Config:
        from_attributes = True


class EarningTotals(BaseModel):
    total_earnings: Decimal = Decimal("0")
    total_orders: int = 0
    total_base_earnings: Decimal = Decimal("0")
    total_bonuses: Decimal = Decimal("0")
    total_penalties: Decimal = Decimal("0")
    paid_earnings: Decimal = Decimal("0")
    paid_orders: int = 0
    pending_earnings: Decimal = Decimal("0")
    pending_orders: int = 0


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class EarningListResponse(BaseModel):
    data: list[EarningResponse]
    pagination: Pagination
    page_totals: EarningTotals
    totals: EarningTotals


class RiderTotal(BaseModel):
    rider_id: str
    total_earnings: Decimal
    total_orders: int


class StatusTotal(BaseModel):
    payment_status: PaymentStatus
    total_earnings: Decimal
    total_orders: int


class RiderEarningsResponse(BaseModel):
    earnings: list[EarningResponse]
    summary: EarningTotals


class WeeklySummary(BaseModel):
    rider_id: str
    week_start_date: datetime
    week_end_date: datetime
    total_earnings: Decimal
    total_orders: int
    total_base_earnings: Decimal
    total_bonuses: Decimal
    total_penalties: Decimal
    total_distance: float
    total_fuel_used: float
    total_energy_used: float
    average_earning_per_order: Decimal


class WeeklyReportRequest(BaseModel):
    rider_ids: list[str]
    start_date: datetime
    end_date: datetime


class WeeklyReportResponse(BaseModel):
    start_date: datetime
    end_date: datetime
    reports: list[WeeklySummary]
