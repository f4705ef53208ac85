"""Hub API endpoints — hubs and their assignable vehicle pool."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas import HubCreate, HubResponse, VehicleResponse
from services import assignment

router = APIRouter()


@router.post("/", response_model=HubResponse, status_code=201)
async def create_hub(data: HubCreate, db: AsyncSession = Depends(get_db)):
    return await assignment.create_hub(db, data.name, data.code, data.city, data.address)


@router.get("/", response_model=list[HubResponse])
async def list_hubs(active_only: bool = False, db: AsyncSession = Depends(get_db)):
    return await assignment.list_hubs(db, active_only)


@router.get("/{hub_id}", response_model=HubResponse)
async def get_hub(hub_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await assignment.get_hub(db, hub_id)


@router.get("/{hub_id}/assignable-vehicles", response_model=list[VehicleResponse])
async def assignable_vehicles(hub_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Available, unassigned vehicles of this hub only."""
    return await assignment.list_assignable_vehicles(db, hub_id)
