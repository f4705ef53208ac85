"""Rider management API endpoints — CRUD, activation, vehicle assignment, KYC."""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from deps import get_actor_id
from schemas import (
    AssignmentHistoryResponse,
    AssignmentResult,
    KycDecisionRequest,
    KycDocumentCreate,
    KycDocumentResponse,
    KycStatus,
    KycSummaryResponse,
    RiderActiveUpdate,
    RiderCreate,
    RiderResponse,
    VehicleAssignRequest,
    VehicleResponse,
    VehicleUnassignRequest,
)
from services import assignment, kyc

router = APIRouter()


def _result(rider, vehicle) -> AssignmentResult:
    return AssignmentResult(
        rider=RiderResponse.model_validate(rider),
        vehicle=VehicleResponse.model_validate(vehicle) if vehicle is not None else None,
    )


# ── CRUD ───────────────────────────────────────────────────

@router.post("/", response_model=RiderResponse, status_code=201)
async def create_rider(data: RiderCreate, db: AsyncSession = Depends(get_db)):
    return await assignment.create_rider(db, data.full_name, data.phone, data.telegram_id, data.hub_id)


@router.get("/", response_model=list[RiderResponse])
async def list_riders(
    hub_id: uuid.UUID | None = None,
    is_active: bool | None = None,
    kyc_status: KycStatus | None = None,
    db: AsyncSession = Depends(get_db),
):
    return await assignment.list_riders(db, hub_id, is_active, kyc_status)


@router.get("/{rider_id}", response_model=RiderResponse)
async def get_rider(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await assignment.get_rider(db, rider_id)


@router.patch("/{rider_id}/active", response_model=RiderResponse)
async def set_active(
    rider_id: uuid.UUID,
    data: RiderActiveUpdate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await assignment.toggle_rider_active(db, rider_id, data.is_active, actor_id=actor_id)


# ── Vehicle assignment ─────────────────────────────────────

@router.post("/{rider_id}/assign-vehicle", response_model=AssignmentResult)
async def assign_vehicle(
    rider_id: uuid.UUID,
    data: VehicleAssignRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Hand an Available vehicle of the hub to the rider. Defaults to the rider's own hub."""
    hub_id = data.hub_id
    if hub_id is None:
        hub_id = (await assignment.get_rider(db, rider_id)).hub_id
    rider, vehicle = await assignment.assign_vehicle(
        db, rider_id, data.vehicle_id, hub_id, actor_id=actor_id, notes=data.notes,
    )
    return _result(rider, vehicle)


@router.post("/{rider_id}/unassign-vehicle", response_model=AssignmentResult)
async def unassign_vehicle(
    rider_id: uuid.UUID,
    data: VehicleUnassignRequest | None = None,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    rider, vehicle = await assignment.unassign_vehicle(
        db, rider_id, actor_id=actor_id, notes=data.notes if data else None,
    )
    return _result(rider, vehicle)


@router.get("/{rider_id}/vehicle-history", response_model=list[AssignmentHistoryResponse])
async def vehicle_history(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await assignment.get_vehicle_history(db, rider_id)


# ── KYC ────────────────────────────────────────────────────

@router.post("/{rider_id}/kyc/documents", response_model=KycDocumentResponse, status_code=201)
async def submit_kyc_document(
    rider_id: uuid.UUID,
    data: KycDocumentCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    return await kyc.submit_document(
        db, rider_id, data.document_type, data.document_url, data.document_number, actor_id=actor_id,
    )


@router.get("/{rider_id}/kyc", response_model=KycSummaryResponse)
async def kyc_summary(rider_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    summary = await kyc.kyc_summary(db, rider_id)
    summary["documents"] = [KycDocumentResponse.model_validate(d) for d in summary["documents"]]
    return summary


@router.patch("/{rider_id}/kyc/documents/{document_id}", response_model=KycDocumentResponse)
async def decide_kyc_document(
    rider_id: uuid.UUID,
    document_id: uuid.UUID,
    data: KycDecisionRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    """Verify or reject a pending document. Rejection requires notes."""
    document, _ = await kyc.verify_document(
        db, rider_id, document_id, data.decision, notes=data.notes, actor_id=actor_id,
    )
    return document
