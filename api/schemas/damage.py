"""Pydantic schemas for damage record endpoints."""

from __future__ import annotations
import uuid
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from schemas import DamageSeverity, DamageStatus, DamageType


class DamageCreate(BaseModel):
    vehicle_id: uuid.UUID
    damage_type: DamageType
    severity: DamageSeverity
    description: str = Field(..., min_length=3)
    location: str | None = None
    estimated_cost: Decimal | None = Field(None, ge=0)


class DamageStatusUpdate(BaseModel):
    damage_status: DamageStatus
    actual_cost: Decimal | None = Field(None, ge=0)
    resolution_notes: str | None = None
    assigned_technician: str | None = None


class DamageResponse(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    damage_type: DamageType
    severity: DamageSeverity
    damage_status: DamageStatus
    description: str
    location: str | None
    reported_by: str | None
    reported_at: datetime
    estimated_cost: Decimal | None
    actual_cost: Decimal | None
    assigned_technician: str | None
    resolution_notes: str | None
    resolved_at: datetime | None

    class Config:
        from_attributes = True


class DamageStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_severity: dict[str, int]
    by_type: dict[str, int]
