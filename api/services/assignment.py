"""
Assignment Lifecycle — vehicle operational status and rider/vehicle pairing.

Vehicle state machine:
  Available         -> Assigned | Under Maintenance | Retired | Damaged
  Assigned          -> Available | Under Maintenance | Retired | Damaged
  Under Maintenance -> Available | Retired | Damaged
  Damaged           -> Under Maintenance | Retired
  Retired           -> (terminal)

Assigned is only entered through assign_vehicle() and only left for
Available through unassign_vehicle(). Any other exit from Assigned
releases the rider in the same transaction.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import ConflictError, InvalidStateError, NotEligibleError, NotFoundError, ValidationError
from models.hub import Hub
from models.rider import AssignmentHistory, Rider
from models.vehicle import ServiceRecord, Vehicle
from schemas import KycStatus, ServiceStatus, VehicleStatus
from services import bot_notifier
from services.audit import record_event

logger = logging.getLogger(__name__)


VEHICLE_TRANSITIONS: dict[VehicleStatus, frozenset[VehicleStatus]] = {
    VehicleStatus.AVAILABLE: frozenset({
        VehicleStatus.ASSIGNED, VehicleStatus.UNDER_MAINTENANCE, VehicleStatus.RETIRED, VehicleStatus.DAMAGED,
    }),
    VehicleStatus.ASSIGNED: frozenset({
        VehicleStatus.AVAILABLE, VehicleStatus.UNDER_MAINTENANCE, VehicleStatus.RETIRED, VehicleStatus.DAMAGED,
    }),
    VehicleStatus.UNDER_MAINTENANCE: frozenset({
        VehicleStatus.AVAILABLE, VehicleStatus.RETIRED, VehicleStatus.DAMAGED,
    }),
    VehicleStatus.DAMAGED: frozenset({VehicleStatus.UNDER_MAINTENANCE, VehicleStatus.RETIRED}),
    VehicleStatus.RETIRED: frozenset(),
}
if set(VEHICLE_TRANSITIONS) != set(VehicleStatus):
    raise RuntimeError("VEHICLE_TRANSITIONS must cover every VehicleStatus")


def can_move(current: VehicleStatus, target: VehicleStatus) -> bool:
    return target in VEHICLE_TRANSITIONS[current]


# ── Hubs ───────────────────────────────────────────────────

async def create_hub(db: AsyncSession, name: str, code: str, city: str | None = None, address: str | None = None) -> Hub:
    existing = await db.execute(select(Hub.id).where(Hub.code == code))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Hub code {code} already exists", code="HUB_EXISTS")

    hub = Hub(name=name, code=code, city=city, address=address)
    db.add(hub)
    await db.commit()
    await db.refresh(hub)
    logger.info("Hub created: %s (%s)", hub.code, hub.id)
    return hub


async def list_hubs(db: AsyncSession, active_only: bool = False) -> list[Hub]:
    query = select(Hub)
    if active_only:
        query = query.where(Hub.is_active.is_(True))
    result = await db.execute(query.order_by(Hub.name))
    return list(result.scalars().all())


async def get_hub(db: AsyncSession, hub_id: uuid.UUID) -> Hub:
    hub = await db.get(Hub, hub_id)
    if not hub:
        raise NotFoundError("Hub not found", code="HUB_NOT_FOUND")
    return hub


# ── Vehicles ───────────────────────────────────────────────

async def create_vehicle(
    db: AsyncSession,
    hub_id: uuid.UUID,
    registration_number: str,
    model_name: str | None = None,
    battery_capacity_kwh: float | None = None,
    mileage: int = 0,
    actor_id: str | None = None,
) -> Vehicle:
    await get_hub(db, hub_id)
    existing = await db.execute(select(Vehicle.id).where(Vehicle.registration_number == registration_number))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Vehicle {registration_number} already registered", code="VEHICLE_EXISTS")

    vehicle = Vehicle(
        hub_id=hub_id,
        registration_number=registration_number,
        model_name=model_name,
        battery_capacity_kwh=battery_capacity_kwh,
        mileage=mileage,
        operational_status=VehicleStatus.AVAILABLE.value,
    )
    db.add(vehicle)
    await db.flush()
    record_event(db, "vehicle", vehicle.id, VehicleStatus.AVAILABLE.value, actor_id=actor_id)
    await db.commit()
    await db.refresh(vehicle)
    logger.info("Vehicle registered: %s at hub %s", registration_number, hub_id)
    return vehicle


async def list_vehicles(
    db: AsyncSession,
    hub_id: uuid.UUID | None = None,
    status: VehicleStatus | None = None,
) -> list[Vehicle]:
    query = select(Vehicle)
    if hub_id:
        query = query.where(Vehicle.hub_id == hub_id)
    if status:
        query = query.where(Vehicle.operational_status == VehicleStatus(status).value)
    result = await db.execute(query.order_by(Vehicle.registration_number))
    return list(result.scalars().all())


async def get_vehicle(db: AsyncSession, vehicle_id: uuid.UUID) -> Vehicle:
    vehicle = await db.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFoundError("Vehicle not found", code="VEHICLE_NOT_FOUND")
    return vehicle


async def list_assignable_vehicles(db: AsyncSession, hub_id: uuid.UUID | None) -> list[Vehicle]:
    """Available vehicles in one hub. No hub means no vehicles, never all of them."""
    if not hub_id:
        return []
    result = await db.execute(
        select(Vehicle)
        .where(
            Vehicle.hub_id == hub_id,
            Vehicle.operational_status == VehicleStatus.AVAILABLE.value,
            Vehicle.current_rider_id.is_(None),
        )
        .order_by(Vehicle.registration_number)
    )
    return list(result.scalars().all())


# ── Riders ─────────────────────────────────────────────────

async def create_rider(
    db: AsyncSession,
    full_name: str,
    phone: str,
    telegram_id: int | None = None,
    hub_id: uuid.UUID | None = None,
) -> Rider:
    existing = await db.execute(select(Rider.id).where(Rider.phone == phone))
    if existing.scalar_one_or_none():
        raise ConflictError("Rider with this phone already exists", code="RIDER_EXISTS")
    if hub_id:
        await get_hub(db, hub_id)

    rider = Rider(
        full_name=full_name,
        phone=phone,
        telegram_id=telegram_id,
        hub_id=hub_id,
        is_active=True,
        kyc_status=KycStatus.PENDING.value,
    )
    db.add(rider)
    await db.commit()
    await db.refresh(rider)
    logger.info("Rider created: %s (%s)", rider.full_name, rider.id)
    return rider


async def list_riders(
    db: AsyncSession,
    hub_id: uuid.UUID | None = None,
    is_active: bool | None = None,
    kyc_status: KycStatus | None = None,
) -> list[Rider]:
    query = select(Rider)
    if hub_id:
        query = query.where(Rider.hub_id == hub_id)
    if is_active is not None:
        query = query.where(Rider.is_active.is_(is_active))
    if kyc_status:
        query = query.where(Rider.kyc_status == KycStatus(kyc_status).value)
    result = await db.execute(query.order_by(Rider.created_at.desc()))
    return list(result.scalars().all())


async def get_rider(db: AsyncSession, rider_id: uuid.UUID) -> Rider:
    rider = await db.get(Rider, rider_id)
    if not rider:
        raise NotFoundError("Rider not found", code="RIDER_NOT_FOUND")
    return rider


async def get_vehicle_history(db: AsyncSession, rider_id: uuid.UUID) -> list[AssignmentHistory]:
    await get_rider(db, rider_id)
    result = await db.execute(
        select(AssignmentHistory)
        .where(AssignmentHistory.rider_id == rider_id)
        .order_by(AssignmentHistory.assigned_at.desc(), AssignmentHistory.id.desc())
    )
    return list(result.scalars().all())


# ── Internal helpers (stage changes, caller commits) ───────

async def _release(
    db: AsyncSession,
    vehicle: Vehicle,
    rider: Rider | None,
    actor_id: str | None,
    notes: str | None = None,
) -> None:
    """Clear both sides of the rider/vehicle relation and close the open history row."""
    rider_id = vehicle.current_rider_id or (rider.id if rider else None)
    if rider is None and rider_id:
        rider = await db.get(Rider, rider_id)

    vehicle.current_rider_id = None
    vehicle.assignment_date = None
    if rider is not None:
        rider.assigned_vehicle_id = None

    if rider_id:
        result = await db.execute(
            select(AssignmentHistory).where(
                AssignmentHistory.rider_id == rider_id,
                AssignmentHistory.vehicle_id == vehicle.id,
                AssignmentHistory.returned_at.is_(None),
            )
        )
        for entry in result.scalars().all():
            entry.returned_at = datetime.utcnow()
            entry.returned_by = actor_id
            if notes:
                entry.notes = f"{entry.notes}\n{notes}" if entry.notes else notes
        logger.info("Vehicle %s released from rider %s", vehicle.id, rider_id)


async def move_vehicle(
    db: AsyncSession,
    vehicle: Vehicle,
    target: VehicleStatus,
    actor_id: str | None = None,
    notes: str | None = None,
) -> None:
    """
    Stage a table-checked status change. Leaving Assigned releases the rider.
    Entering Assigned, or Assigned -> Available, must go through
    assign_vehicle / unassign_vehicle.
    """
    current = VehicleStatus(vehicle.operational_status)
    if target == VehicleStatus.ASSIGNED:
        raise InvalidStateError("Vehicles become Assigned only through rider assignment")
    if current == VehicleStatus.ASSIGNED and target == VehicleStatus.AVAILABLE:
        raise InvalidStateError("Unassign the rider to make an Assigned vehicle Available")
    if not can_move(current, target):
        raise InvalidStateError(f"Cannot move vehicle from {current.value} to {target.value}")

    if current == VehicleStatus.ASSIGNED:
        await _release(db, vehicle, None, actor_id, notes)

    vehicle.operational_status = target.value
    record_event(db, "vehicle", vehicle.id, target.value, from_status=current.value, actor_id=actor_id, notes=notes)
    logger.info("Vehicle %s: %s -> %s (actor=%s)", vehicle.id, current.value, target.value, actor_id)


# ── Assignment ─────────────────────────────────────────────

async def assign_vehicle(
    db: AsyncSession,
    rider_id: uuid.UUID,
    vehicle_id: uuid.UUID,
    hub_id: uuid.UUID | None,
    actor_id: str | None = None,
    notes: str | None = None,
) -> tuple[Rider, Vehicle]:
    """
    Pair a rider with an Available vehicle of the given hub.

    The Available -> Assigned flip is a conditional UPDATE, so of two
    concurrent callers for the same vehicle exactly one wins; the loser
    gets InvalidStateError and should re-fetch.
    """
    if not hub_id:
        raise ValidationError("hub_id is required for assignment", code="HUB_REQUIRED")

    rider = await get_rider(db, rider_id)
    vehicle = await get_vehicle(db, vehicle_id)

    if not rider.is_active:
        raise NotEligibleError("Rider is inactive", code="RIDER_INACTIVE")
    if settings.REQUIRE_KYC_FOR_ASSIGNMENT and rider.kyc_status != KycStatus.VERIFIED.value:
        raise NotEligibleError("Rider KYC is not verified", code="KYC_NOT_VERIFIED")
    if rider.hub_id and rider.hub_id != hub_id:
        raise NotEligibleError("Rider belongs to a different hub", code="HUB_MISMATCH")
    if rider.assigned_vehicle_id:
        raise InvalidStateError("Rider already has a vehicle; unassign it first", code="RIDER_HAS_VEHICLE")
    if vehicle.hub_id != hub_id:
        raise NotEligibleError("Vehicle is not in this hub", code="HUB_MISMATCH")
    if vehicle.operational_status != VehicleStatus.AVAILABLE.value:
        raise InvalidStateError(f"Vehicle is {vehicle.operational_status}, not Available", code="VEHICLE_NOT_AVAILABLE")

    now = datetime.utcnow()
    flipped = await db.execute(
        update(Vehicle)
        .where(
            Vehicle.id == vehicle_id,
            Vehicle.operational_status == VehicleStatus.AVAILABLE.value,
            Vehicle.current_rider_id.is_(None),
        )
        .values(
            operational_status=VehicleStatus.ASSIGNED.value,
            current_rider_id=rider_id,
            assignment_date=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount == 0:
        await db.rollback()
        logger.warning("Assignment race lost: vehicle %s no longer Available", vehicle_id)
        raise InvalidStateError("Vehicle was assigned concurrently; re-fetch and retry", code="VEHICLE_NOT_AVAILABLE")

    claimed = await db.execute(
        update(Rider)
        .where(Rider.id == rider_id, Rider.assigned_vehicle_id.is_(None), Rider.is_active.is_(True))
        .values(assigned_vehicle_id=vehicle_id, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        await db.rollback()
        raise InvalidStateError("Rider changed concurrently; re-fetch and retry", code="RIDER_HAS_VEHICLE")

    db.add(AssignmentHistory(
        rider_id=rider_id,
        vehicle_id=vehicle_id,
        hub_id=hub_id,
        assigned_by=actor_id,
        assigned_at=now,
        notes=notes,
    ))
    record_event(
        db, "vehicle", vehicle_id, VehicleStatus.ASSIGNED.value,
        from_status=VehicleStatus.AVAILABLE.value, actor_id=actor_id, notes=f"rider={rider_id}",
    )
    await db.commit()
    await db.refresh(vehicle)
    await db.refresh(rider)

    logger.info("Vehicle %s assigned to rider %s by %s", vehicle.registration_number, rider_id, actor_id)
    if rider.telegram_id:
        await bot_notifier.notify_vehicle_assigned(rider.telegram_id, rider.full_name, vehicle.registration_number)
    return rider, vehicle


async def unassign_vehicle(
    db: AsyncSession,
    rider_id: uuid.UUID,
    actor_id: str | None = None,
    notes: str | None = None,
) -> tuple[Rider, Vehicle | None]:
    """Return the rider's vehicle to the pool. A rider without a vehicle is a no-op."""
    rider = await get_rider(db, rider_id)
    if not rider.assigned_vehicle_id:
        return rider, None

    vehicle = await get_vehicle(db, rider.assigned_vehicle_id)
    previous = vehicle.operational_status
    await _release(db, vehicle, rider, actor_id, notes)
    if previous == VehicleStatus.ASSIGNED.value:
        vehicle.operational_status = VehicleStatus.AVAILABLE.value
        record_event(
            db, "vehicle", vehicle.id, VehicleStatus.AVAILABLE.value,
            from_status=previous, actor_id=actor_id, notes=notes,
        )
    await db.commit()
    await db.refresh(vehicle)
    await db.refresh(rider)

    logger.info("Vehicle %s unassigned from rider %s by %s", vehicle.registration_number, rider_id, actor_id)
    if rider.telegram_id:
        await bot_notifier.notify_vehicle_unassigned(rider.telegram_id, vehicle.registration_number)
    return rider, vehicle


async def toggle_rider_active(
    db: AsyncSession,
    rider_id: uuid.UUID,
    is_active: bool,
    actor_id: str | None = None,
) -> Rider:
    """
    Activate or deactivate a rider. Whether deactivation also returns the
    rider's vehicle is governed by AUTO_UNASSIGN_ON_DEACTIVATION.
    """
    rider = await get_rider(db, rider_id)
    if rider.is_active == is_active:
        return rider

    previous = "active" if rider.is_active else "inactive"
    rider.is_active = is_active
    record_event(
        db, "rider", rider.id, "active" if is_active else "inactive",
        from_status=previous, actor_id=actor_id,
    )

    released = None
    if not is_active and rider.assigned_vehicle_id and settings.AUTO_UNASSIGN_ON_DEACTIVATION:
        released = await get_vehicle(db, rider.assigned_vehicle_id)
        await _release(db, released, rider, actor_id, "rider deactivated")
        if released.operational_status == VehicleStatus.ASSIGNED.value:
            released.operational_status = VehicleStatus.AVAILABLE.value
            record_event(
                db, "vehicle", released.id, VehicleStatus.AVAILABLE.value,
                from_status=VehicleStatus.ASSIGNED.value, actor_id=actor_id, notes="rider deactivated",
            )

    await db.commit()
    await db.refresh(rider)
    logger.info("Rider %s is now %s (actor=%s)", rider.id, "active" if is_active else "inactive", actor_id)
    if released is not None and rider.telegram_id:
        await bot_notifier.notify_vehicle_unassigned(rider.telegram_id, released.registration_number)
    return rider


# ── Fleet administration ───────────────────────────────────

async def change_vehicle_hub(
    db: AsyncSession,
    vehicle_id: uuid.UUID,
    hub_id: uuid.UUID,
    actor_id: str | None = None,
) -> Vehicle:
    vehicle = await get_vehicle(db, vehicle_id)
    if vehicle.operational_status == VehicleStatus.ASSIGNED.value or vehicle.current_rider_id:
        raise InvalidStateError("Unassign the vehicle before moving it to another hub", code="VEHICLE_ASSIGNED")
    await get_hub(db, hub_id)

    previous = vehicle.hub_id
    vehicle.hub_id = hub_id
    await db.commit()
    await db.refresh(vehicle)
    logger.info("Vehicle %s moved from hub %s to %s (actor=%s)", vehicle.id, previous, hub_id, actor_id)
    return vehicle


async def set_operational_status(
    db: AsyncSession,
    vehicle_id: uuid.UUID,
    status: VehicleStatus | str,
    reason: str | None = None,
    actor_id: str | None = None,
) -> Vehicle:
    try:
        target = VehicleStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown vehicle status: {status}")

    vehicle = await get_vehicle(db, vehicle_id)
    rider_id = vehicle.current_rider_id
    await move_vehicle(db, vehicle, target, actor_id, reason)
    await db.commit()
    await db.refresh(vehicle)

    if rider_id:
        rider = await db.get(Rider, rider_id)
        if rider and rider.telegram_id:
            await bot_notifier.notify_vehicle_unassigned(rider.telegram_id, vehicle.registration_number)
    return vehicle


async def retire_vehicle(
    db: AsyncSession,
    vehicle_id: uuid.UUID,
    reason: str | None = None,
    actor_id: str | None = None,
) -> Vehicle:
    return await set_operational_status(db, vehicle_id, VehicleStatus.RETIRED, reason, actor_id)


async def schedule_maintenance(
    db: AsyncSession,
    vehicle_id: uuid.UUID,
    service_type: str = "Preventive",
    scheduled_date: datetime | None = None,
    notes: str | None = None,
    actor_id: str | None = None,
) -> ServiceRecord:
    """Book a service and take the vehicle out of the pool."""
    vehicle = await get_vehicle(db, vehicle_id)
    if vehicle.operational_status != VehicleStatus.UNDER_MAINTENANCE.value:
        await move_vehicle(db, vehicle, VehicleStatus.UNDER_MAINTENANCE, actor_id, f"{service_type} service scheduled")

    record = ServiceRecord(
        vehicle_id=vehicle.id,
        service_type=service_type,
        scheduled_date=scheduled_date or datetime.utcnow(),
        service_status=ServiceStatus.SCHEDULED.value,
        notes=notes,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    logger.info("Service %s scheduled for vehicle %s", record.id, vehicle.id)
    return record


async def complete_service(
    db: AsyncSession,
    service_id: uuid.UUID,
    cost: float | None = None,
    notes: str | None = None,
    actor_id: str | None = None,
) -> ServiceRecord:
    """Close a service record; the vehicle returns to Available once nothing else is scheduled."""
    record = await db.get(ServiceRecord, service_id)
    if not record:
        raise NotFoundError("Service record not found", code="SERVICE_NOT_FOUND")
    if record.service_status != ServiceStatus.SCHEDULED.value:
        raise InvalidStateError(f"Service is already {record.service_status}")

    record.service_status = ServiceStatus.COMPLETED.value
    record.completed_at = datetime.utcnow()
    if cost is not None:
        record.cost = cost
    if notes:
        record.notes = notes

    vehicle = await get_vehicle(db, record.vehicle_id)
    pending = await db.execute(
        select(ServiceRecord.id).where(
            ServiceRecord.vehicle_id == vehicle.id,
            ServiceRecord.id != record.id,
            ServiceRecord.service_status == ServiceStatus.SCHEDULED.value,
        )
    )
    if vehicle.operational_status == VehicleStatus.UNDER_MAINTENANCE.value and not pending.first():
        await move_vehicle(db, vehicle, VehicleStatus.AVAILABLE, actor_id, "service completed")

    await db.commit()
    await db.refresh(record)
    logger.info("Service %s completed for vehicle %s", record.id, vehicle.id)
    return record
