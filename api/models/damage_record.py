"""DamageRecord ORM model — reported vehicle damage and its repair workflow."""

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import String, Numeric, DateTime, ForeignKey, Text, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db.database import Base


class DamageRecord(Base):
    __tablename__ = "damage_records"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("vehicles.id"), nullable=False, index=True)
    damage_type: Mapped[str] = mapped_column(
        PgEnum("Cosmetic", "Mechanical", "Electrical", "Structural", name="damage_type"),
        nullable=False,
    )
    severity: Mapped[str] = mapped_column(
        PgEnum("Minor", "Moderate", "Major", name="damage_severity"),
        nullable=False,
    )
    damage_status: Mapped[str] = mapped_column(
        PgEnum(
            "Reported", "Under Review", "Approved for Repair", "In Repair", "Resolved", "Rejected",
            name="damage_status",
        ),
        default="Reported",
        index=True,
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255))  # where on the vehicle
    reported_by: Mapped[str | None] = mapped_column(String(100))
    reported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    actual_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    assigned_technician: Mapped[str | None] = mapped_column(String(100))
    resolution_notes: Mapped[str | None] = mapped_column(Text)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    vehicle = relationship("Vehicle", lazy="selectin")
