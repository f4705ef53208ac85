"""Damage record API endpoints — reporting, workflow and statistics."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from deps import get_actor_id
from schemas import DamageSeverity, DamageStatus, DamageType
from schemas.damage import DamageCreate, DamageResponse, DamageStats, DamageStatusUpdate
from services import damage as workflow

router = APIRouter()


@router.post("/", response_model=DamageResponse, status_code=201)
async def report_damage(
    data: DamageCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await workflow.report_damage(
        db,
        data.vehicle_id,
        data.damage_type,
        data.severity,
        data.description,
        location=data.location,
        estimated_cost=data.estimated_cost,
        actor_id=actor_id,
    )


@router.get("/", response_model=list[DamageResponse])
async def list_damages(
    vehicle_id: uuid.UUID | None = None,
    status: DamageStatus | None = None,
    severity: DamageSeverity | None = None,
    damage_type: DamageType | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await workflow.list_damages(db, vehicle_id, status, severity, damage_type)


@router.get("/stats", response_model=DamageStats)
async def damage_stats(db: AsyncSession = Depends(get_db)):
    return await workflow.damage_stats(db)


@router.get("/{damage_id}", response_model=DamageResponse)
async def get_damage(damage_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await workflow.get_damage(db, damage_id)


@router.patch("/{damage_id}/status", response_model=DamageResponse)
async def update_damage_status(
    damage_id: uuid.UUID,
    data: DamageStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await workflow.transition_damage_status(
        db,
        damage_id,
        data.damage_status,
        actual_cost=data.actual_cost,
        resolution_notes=data.resolution_notes,
        assigned_technician=data.assigned_technician,
        actor_id=actor_id,
    )
