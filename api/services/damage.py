"""
Damage workflow — reported vehicle damage from intake to resolution.

Status order:
  Reported < Under Review < Approved for Repair < In Repair < {Resolved, Rejected}

By default any forward move is accepted (stages may be skipped). With
STRICT_DAMAGE_WORKFLOW only the next stage, or rejection, is accepted.
Damage at or above DAMAGE_SEVERITY_THRESHOLD takes the vehicle out of
service until every such record is closed.
"""

import logging
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import InvalidTransitionError, NotFoundError, ValidationError
from models.damage_record import DamageRecord
from models.rider import Rider
from models.vehicle import ServiceRecord
from schemas import DamageSeverity, DamageStatus, DamageType, ServiceStatus, VehicleStatus
from services import bot_notifier
from services.assignment import get_vehicle, move_vehicle
from services.audit import record_event

logger = logging.getLogger(__name__)


STATUS_RANK = {
    DamageStatus.REPORTED: 0,
    DamageStatus.UNDER_REVIEW: 1,
    DamageStatus.APPROVED_FOR_REPAIR: 2,
    DamageStatus.IN_REPAIR: 3,
    DamageStatus.RESOLVED: 4,
    DamageStatus.REJECTED: 4,
}
TERMINAL = frozenset({DamageStatus.RESOLVED, DamageStatus.REJECTED})

STRICT_EDGES: dict[DamageStatus, frozenset[DamageStatus]] = {
    DamageStatus.REPORTED: frozenset({DamageStatus.UNDER_REVIEW, DamageStatus.REJECTED}),
    DamageStatus.UNDER_REVIEW: frozenset({DamageStatus.APPROVED_FOR_REPAIR, DamageStatus.REJECTED}),
    DamageStatus.APPROVED_FOR_REPAIR: frozenset({DamageStatus.IN_REPAIR, DamageStatus.REJECTED}),
    DamageStatus.IN_REPAIR: frozenset({DamageStatus.RESOLVED, DamageStatus.REJECTED}),
    DamageStatus.RESOLVED: frozenset(),
    DamageStatus.REJECTED: frozenset(),
}
if set(STATUS_RANK) != set(DamageStatus) or set(STRICT_EDGES) != set(DamageStatus):
    raise RuntimeError("damage workflow tables must cover every DamageStatus")

SEVERITY_RANK = {DamageSeverity.MINOR: 0, DamageSeverity.MODERATE: 1, DamageSeverity.MAJOR: 2}


def can_transition(current: DamageStatus, target: DamageStatus, strict: bool = False) -> bool:
    if current in TERMINAL or target == current:
        return False
    if strict:
        return target in STRICT_EDGES[current]
    return STATUS_RANK[target] > STATUS_RANK[current]


def severity_threshold() -> DamageSeverity | None:
    """Configured severity that grounds a vehicle; None when the policy is off."""
    value = (settings.DAMAGE_SEVERITY_THRESHOLD or "").strip()
    if not value or value.lower() == "none":
        return None
    try:
        return DamageSeverity(value.capitalize())
    except ValueError:
        raise ValidationError(f"Invalid DAMAGE_SEVERITY_THRESHOLD: {value}")


def grounds_vehicle(severity: DamageSeverity | str) -> bool:
    threshold = severity_threshold()
    if threshold is None:
        return False
    return SEVERITY_RANK[DamageSeverity(severity)] >= SEVERITY_RANK[threshold]


# ── Operations ─────────────────────────────────────────────

async def report_damage(
    db: AsyncSession,
    vehicle_id: uuid.UUID,
    damage_type: DamageType | str,
    severity: DamageSeverity | str,
    description: str,
    location: str | None = None,
    estimated_cost: Decimal | None = None,
    actor_id: str | None = None,
) -> DamageRecord:
    """Open a damage record; serious damage grounds the vehicle and releases its rider."""
    try:
        damage_type = DamageType(damage_type)
        severity = DamageSeverity(severity)
    except ValueError as e:
        raise ValidationError(str(e))
    if not (description and description.strip()):
        raise ValidationError("description is required")
    if estimated_cost is not None and estimated_cost < 0:
        raise ValidationError("estimated_cost must not be negative")

    vehicle = await get_vehicle(db, vehicle_id)
    record = DamageRecord(
        vehicle_id=vehicle.id,
        damage_type=damage_type.value,
        severity=severity.value,
        damage_status=DamageStatus.REPORTED.value,
        description=description,
        location=location,
        reported_by=actor_id,
        estimated_cost=estimated_cost,
    )
    db.add(record)
    await db.flush()
    record_event(db, "damage", record.id, DamageStatus.REPORTED.value, actor_id=actor_id)

    released_rider_id = None
    status = VehicleStatus(vehicle.operational_status)
    if grounds_vehicle(severity) and status not in (VehicleStatus.RETIRED, VehicleStatus.DAMAGED):
        released_rider_id = vehicle.current_rider_id
        await move_vehicle(db, vehicle, VehicleStatus.DAMAGED, actor_id, f"{severity.value} damage reported")

    await db.commit()
    await db.refresh(record)
    logger.info(
        "Damage reported: id=%s vehicle=%s type=%s severity=%s",
        record.id, vehicle.id, damage_type.value, severity.value,
    )

    if released_rider_id:
        rider = await db.get(Rider, released_rider_id)
        if rider and rider.telegram_id:
            await bot_notifier.notify_vehicle_unassigned(rider.telegram_id, vehicle.registration_number)
    return record


async def get_damage(db: AsyncSession, damage_id: uuid.UUID) -> DamageRecord:
    record = await db.get(DamageRecord, damage_id)
    if not record:
        raise NotFoundError("Damage record not found", code="DAMAGE_NOT_FOUND")
    return record


async def list_damages(
    db: AsyncSession,
    vehicle_id: uuid.UUID | None = None,
    status: DamageStatus | None = None,
    severity: DamageSeverity | None = None,
    damage_type: DamageType | None = None,
) -> list[DamageRecord]:
    query = select(DamageRecord)
    if vehicle_id:
        query = query.where(DamageRecord.vehicle_id == vehicle_id)
    if status:
        query = query.where(DamageRecord.damage_status == DamageStatus(status).value)
    if severity:
        query = query.where(DamageRecord.severity == DamageSeverity(severity).value)
    if damage_type:
        query = query.where(DamageRecord.damage_type == DamageType(damage_type).value)
    result = await db.execute(query.order_by(DamageRecord.reported_at.desc()))
    return list(result.scalars().all())


async def _still_grounded(db: AsyncSession, vehicle_id: uuid.UUID, closing_id: uuid.UUID) -> bool:
    """True if another open record on the vehicle is severe enough to keep it out of service."""
    result = await db.execute(
        select(DamageRecord.severity).where(
            DamageRecord.vehicle_id == vehicle_id,
            DamageRecord.id != closing_id,
            DamageRecord.damage_status.notin_([s.value for s in TERMINAL]),
        )
    )
    return any(grounds_vehicle(severity) for severity in result.scalars().all())


async def _service_scheduled(db: AsyncSession, vehicle_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(ServiceRecord.id).where(
            ServiceRecord.vehicle_id == vehicle_id,
            ServiceRecord.service_status == ServiceStatus.SCHEDULED.value,
        )
    )
    return result.first() is not None


async def transition_damage_status(
    db: AsyncSession,
    damage_id: uuid.UUID,
    new_status: DamageStatus | str,
    actual_cost: Decimal | None = None,
    resolution_notes: str | None = None,
    assigned_technician: str | None = None,
    actor_id: str | None = None,
) -> DamageRecord:
    try:
        target = DamageStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown damage status: {new_status}")

    record = await get_damage(db, damage_id)
    current = DamageStatus(record.damage_status)
    if not can_transition(current, target, strict=settings.STRICT_DAMAGE_WORKFLOW):
        raise InvalidTransitionError(f"Cannot move damage from {current.value} to {target.value}")

    if actual_cost is not None and actual_cost < 0:
        raise ValidationError("actual_cost must not be negative")
    cost = actual_cost if actual_cost is not None else record.actual_cost
    notes = resolution_notes or record.resolution_notes
    if target == DamageStatus.RESOLVED and cost is None:
        raise ValidationError("actual_cost is required to resolve damage", code="ACTUAL_COST_REQUIRED")
    if target == DamageStatus.REJECTED and not (notes and notes.strip()):
        raise ValidationError("resolution_notes are required to reject damage", code="NOTES_REQUIRED")

    record.actual_cost = cost
    record.resolution_notes = notes
    if assigned_technician:
        record.assigned_technician = assigned_technician
    record.damage_status = target.value
    if target in TERMINAL:
        record.resolved_at = datetime.utcnow()
    record_event(db, "damage", record.id, target.value, from_status=current.value, actor_id=actor_id)

    # Closing the last grounding record puts the vehicle back in the pool,
    # or back in the workshop while a service is still booked
    if target in TERMINAL and grounds_vehicle(record.severity):
        vehicle = await get_vehicle(db, record.vehicle_id)
        if vehicle.operational_status == VehicleStatus.DAMAGED.value and not await _still_grounded(db, vehicle.id, record.id):
            if await _service_scheduled(db, vehicle.id):
                await move_vehicle(
                    db, vehicle, VehicleStatus.UNDER_MAINTENANCE, actor_id, f"damage {record.id} closed, service pending",
                )
            else:
                vehicle.operational_status = VehicleStatus.AVAILABLE.value
                record_event(
                    db, "vehicle", vehicle.id, VehicleStatus.AVAILABLE.value,
                    from_status=VehicleStatus.DAMAGED.value, actor_id=actor_id, notes=f"damage {record.id} closed",
                )
            logger.info(
                "Vehicle %s back to %s after damage %s closed",
                vehicle.id, vehicle.operational_status, record.id,
            )

    await db.commit()
    await db.refresh(record)
    logger.info("Damage %s: %s -> %s (actor=%s)", record.id, current.value, target.value, actor_id)
    return record


async def damage_stats(db: AsyncSession) -> dict:
    async def _count_by(column, values) -> dict[str, int]:
        result = await db.execute(select(column, func.count(DamageRecord.id)).group_by(column))
        counts = {v.value: 0 for v in values}
        counts.update({key: count for key, count in result.all()})
        return counts

    total = (await db.execute(select(func.count(DamageRecord.id)))).scalar() or 0
    return {
        "total": total,
        "by_status": await _count_by(DamageRecord.damage_status, DamageStatus),
        "by_severity": await _count_by(DamageRecord.severity, DamageSeverity),
        "by_type": await _count_by(DamageRecord.damage_type, DamageType),
    }
