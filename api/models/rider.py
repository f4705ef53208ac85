"""Rider, KycDocument and AssignmentHistory ORM models."""

import uuid
from datetime import datetime
from sqlalchemy import String, BigInteger, Boolean, DateTime, ForeignKey, Text, Enum as PgEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship
from db.database import Base


KYC_STATUSES = ("pending", "verified", "rejected")


class Rider(Base):
    __tablename__ = "riders"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    telegram_id: Mapped[int | None] = mapped_column(BigInteger)
    hub_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("hubs.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    kyc_status: Mapped[str] = mapped_column(
        PgEnum(*KYC_STATUSES, name="kyc_status"),
        default="pending",
    )
    assigned_vehicle_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("vehicles.id", use_alter=True, name="fk_riders_assigned_vehicle"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    kyc_documents = relationship(
        "KycDocument", back_populates="rider", lazy="selectin",
        order_by="KycDocument.created_at",
    )


class KycDocument(Base):
    __tablename__ = "kyc_documents"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    rider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("riders.id"), nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(String(30), nullable=False)
    document_url: Mapped[str | None] = mapped_column(Text)
    document_number: Mapped[str | None] = mapped_column(String(50))
    verification_status: Mapped[str] = mapped_column(
        PgEnum(*KYC_STATUSES, name="kyc_status"),
        default="pending",
    )
    verified_by: Mapped[str | None] = mapped_column(String(100))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    # Relationships
    rider = relationship("Rider", back_populates="kyc_documents")


class AssignmentHistory(Base):
    __tablename__ = "assignment_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    rider_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("riders.id"), nullable=False, index=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("vehicles.id"), nullable=False, index=True)
    hub_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("hubs.id"), nullable=False)
    assigned_by: Mapped[str | None] = mapped_column(String(100))
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    returned_by: Mapped[str | None] = mapped_column(String(100))
    returned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
