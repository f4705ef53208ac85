"""RiderEarning ORM model — per-order rider payout with its component breakdown."""

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, DateTime, Text, JSON, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column
from db.database import Base


PAYMENT_STATUSES = ("pending", "processing", "paid", "failed", "cancelled")


class RiderEarning(Base):
    __tablename__ = "rider_earnings"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    rider_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    store_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    order_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    base_rate: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))

    # Components
    base_earning: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    distance_bonus: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    time_bonus: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    store_offer_bonus: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    ev_bonus: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    peak_time_bonus: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    quality_bonus: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    bonus_earning: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    total_earning: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    payment_status: Mapped[str] = mapped_column(
        PgEnum(*PAYMENT_STATUSES, name="payment_status"),
        default="pending",
        index=True,
    )

    # Delivery metadata
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    delivery_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    delivery_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    distance_traveled: Mapped[float | None] = mapped_column(Numeric(8, 2))
    fuel_used: Mapped[float | None] = mapped_column(Numeric(8, 2))
    energy_used: Mapped[float | None] = mapped_column(Numeric(8, 2))
    notes: Mapped[str | None] = mapped_column(Text)
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON, default=dict)

    # Audit
    created_by: Mapped[str | None] = mapped_column(String(100))
    updated_by: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
