"""Vehicle API endpoints — fleet registry, status, hub transfer, maintenance."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from deps import get_actor_id
from schemas import (
    MaintenanceCreate,
    ServiceComplete,
    ServiceRecordResponse,
    VehicleCreate,
    VehicleHubUpdate,
    VehicleResponse,
    VehicleRetire,
    VehicleStatus,
    VehicleStatusUpdate,
)
from services import assignment

router = APIRouter()


# ── CRUD ───────────────────────────────────────────────────

@router.post("/", response_model=VehicleResponse, status_code=201)
async def create_vehicle(
    data: VehicleCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await assignment.create_vehicle(
        db,
        data.hub_id,
        data.registration_number,
        model_name=data.model_name,
        battery_capacity_kwh=data.battery_capacity_kwh,
        mileage=data.mileage,
        actor_id=actor_id,
    )


@router.get("/", response_model=list[VehicleResponse])
async def list_vehicles(
    hub_id: uuid.UUID | None = None,
    status: VehicleStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await assignment.list_vehicles(db, hub_id, status)


@router.get("/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(vehicle_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await assignment.get_vehicle(db, vehicle_id)


# ── Status & hub ───────────────────────────────────────────

@router.patch("/{vehicle_id}/status", response_model=VehicleResponse)
async def update_status(
    vehicle_id: uuid.UUID,
    data: VehicleStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Admin status change. Assignment has its own endpoints on the rider."""
    return await assignment.set_operational_status(
        db, vehicle_id, data.operational_status, reason=data.reason, actor_id=actor_id,
    )


@router.patch("/{vehicle_id}/hub", response_model=VehicleResponse)
async def change_hub(
    vehicle_id: uuid.UUID,
    data: VehicleHubUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await assignment.change_vehicle_hub(db, vehicle_id, data.hub_id, actor_id=actor_id)


@router.post("/{vehicle_id}/retire", response_model=VehicleResponse)
async def retire_vehicle(
    vehicle_id: uuid.UUID,
    data: VehicleRetire,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await assignment.retire_vehicle(db, vehicle_id, reason=data.reason, actor_id=actor_id)


# ── Maintenance ────────────────────────────────────────────

@router.post("/{vehicle_id}/maintenance", response_model=ServiceRecordResponse, status_code=201)
async def schedule_maintenance(
    vehicle_id: uuid.UUID,
    data: MaintenanceCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await assignment.schedule_maintenance(
        db,
        vehicle_id,
        service_type=data.service_type,
        scheduled_date=data.scheduled_date,
        notes=data.notes,
        actor_id=actor_id,
    )


@router.patch("/services/{service_id}/complete", response_model=ServiceRecordResponse)
async def complete_service(
    service_id: uuid.UUID,
    data: ServiceComplete,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await assignment.complete_service(db, service_id, cost=data.cost, notes=data.notes, actor_id=actor_id)
