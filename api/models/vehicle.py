"""Vehicle and ServiceRecord ORM models — fleet inventory and maintenance schedule."""

import uuid
from datetime import datetime
from sqlalchemy import String, Integer, Numeric, DateTime, ForeignKey, Text, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db.database import Base


OPERATIONAL_STATUSES = ("Available", "Assigned", "Under Maintenance", "Retired", "Damaged")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    hub_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("hubs.id"), nullable=False, index=True)
    registration_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    model_name: Mapped[str | None] = mapped_column(String(100))
    battery_capacity_kwh: Mapped[float | None] = mapped_column(Numeric(6, 2))
    operational_status: Mapped[str] = mapped_column(
        PgEnum(*OPERATIONAL_STATUSES, name="vehicle_operational_status"),
        default="Available",
        nullable=False,
    )
    current_rider_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("riders.id"))
    assignment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    mileage: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    hub = relationship("Hub", back_populates="vehicles", lazy="selectin")
    service_records = relationship(
        "ServiceRecord", back_populates="vehicle", lazy="selectin",
        order_by="ServiceRecord.scheduled_date",
    )


class ServiceRecord(Base):
    __tablename__ = "service_records"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("vehicles.id"), nullable=False, index=True)
    service_type: Mapped[str] = mapped_column(String(50), nullable=False)  # Preventive, Repair, Battery, ...
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    service_status: Mapped[str] = mapped_column(
        PgEnum("Scheduled", "Completed", "Cancelled", name="service_status"),
        default="Scheduled",
    )
    cost: Mapped[float | None] = mapped_column(Numeric(10, 2))
    notes: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="service_records")
