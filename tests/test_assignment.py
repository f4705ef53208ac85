"""Vehicle state machine and rider assignment lifecycle."""

import uuid

import pytest
from sqlalchemy import func, select, update

from config import settings
from errors import InvalidStateError, NotEligibleError, NotFoundError, ValidationError
from models.rider import AssignmentHistory
from models.status_event import StatusEvent
from models.vehicle import Vehicle
from schemas import VehicleStatus
from services import assignment
from services.assignment import VEHICLE_TRANSITIONS, can_move


# ── State machine table ────────────────────────────────────

def test_transition_table_is_exhaustive():
    assert set(VEHICLE_TRANSITIONS) == set(VehicleStatus)


def test_retired_is_terminal():
    assert VEHICLE_TRANSITIONS[VehicleStatus.RETIRED] == frozenset()


def test_every_live_state_can_retire_or_be_damaged():
    for status in (VehicleStatus.AVAILABLE, VehicleStatus.ASSIGNED, VehicleStatus.UNDER_MAINTENANCE):
        assert can_move(status, VehicleStatus.RETIRED)
        assert can_move(status, VehicleStatus.DAMAGED)


def test_maintenance_cannot_jump_to_assigned():
    assert not can_move(VehicleStatus.UNDER_MAINTENANCE, VehicleStatus.ASSIGNED)


# ── Assignable pool ────────────────────────────────────────

@pytest.mark.asyncio
async def test_assignable_vehicles_scoped_to_hub(db, fleet):
    vehicles = await assignment.list_assignable_vehicles(db, fleet["north"].id)
    assert {v.registration_number for v in vehicles} == {"MH12EV0001", "MH12EV0002"}


@pytest.mark.asyncio
async def test_empty_hub_returns_no_vehicles(db, fleet):
    assert await assignment.list_assignable_vehicles(db, None) == []


@pytest.mark.asyncio
async def test_assigned_vehicle_leaves_the_pool(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    vehicles = await assignment.list_assignable_vehicles(db, fleet["north"].id)
    assert [v.registration_number for v in vehicles] == ["MH12EV0002"]


# ── assign_vehicle ─────────────────────────────────────────

@pytest.mark.asyncio
async def test_assign_sets_both_sides(db, fleet):
    rider, vehicle = await assignment.assign_vehicle(
        db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id, actor_id="admin-1",
    )
    assert vehicle.operational_status == VehicleStatus.ASSIGNED.value
    assert vehicle.current_rider_id == rider.id
    assert vehicle.assignment_date is not None
    assert rider.assigned_vehicle_id == vehicle.id

    history = await assignment.get_vehicle_history(db, rider.id)
    assert len(history) == 1
    assert history[0].assigned_by == "admin-1"
    assert history[0].returned_at is None


@pytest.mark.asyncio
async def test_second_assignment_without_unassign_fails(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    with pytest.raises(InvalidStateError) as exc:
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v2"].id, fleet["north"].id)
    assert exc.value.code == "RIDER_HAS_VEHICLE"

    v2 = await assignment.get_vehicle(db, fleet["v2"].id)
    assert v2.operational_status == VehicleStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_vehicle_already_taken_fails(db, fleet):
    other = await assignment.create_rider(db, "Ravi Kumar", "9800000002", hub_id=fleet["north"].id)
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    with pytest.raises(InvalidStateError):
        await assignment.assign_vehicle(db, other.id, fleet["v1"].id, fleet["north"].id)


@pytest.mark.asyncio
async def test_lost_race_surfaces_as_invalid_state(db, fleet):
    """Our copy still says Available, but another writer already claimed the row."""
    other = await assignment.create_rider(db, "Ravi Kumar", "9800000002", hub_id=fleet["north"].id)
    stale = await assignment.get_vehicle(db, fleet["v1"].id)
    assert stale.operational_status == VehicleStatus.AVAILABLE.value

    await db.execute(
        update(Vehicle)
        .where(Vehicle.id == stale.id)
        .values(operational_status=VehicleStatus.ASSIGNED.value, current_rider_id=other.id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    with pytest.raises(InvalidStateError) as exc:
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    assert exc.value.code == "VEHICLE_NOT_AVAILABLE"

    rider = await assignment.get_rider(db, fleet["rider"].id)
    assert rider.assigned_vehicle_id is None
    history_rows = (await db.execute(select(func.count(AssignmentHistory.id)))).scalar()
    assert history_rows == 0


@pytest.mark.asyncio
async def test_inactive_rider_not_eligible(db, fleet):
    await assignment.toggle_rider_active(db, fleet["rider"].id, False)
    with pytest.raises(NotEligibleError):
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)


@pytest.mark.asyncio
async def test_vehicle_from_other_hub_not_eligible(db, fleet):
    with pytest.raises(NotEligibleError):
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v3"].id, fleet["north"].id)


@pytest.mark.asyncio
async def test_assignment_requires_hub(db, fleet):
    with pytest.raises(ValidationError):
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, None)


@pytest.mark.asyncio
async def test_assign_unknown_rider(db, fleet):
    with pytest.raises(NotFoundError):
        await assignment.assign_vehicle(db, uuid.uuid4(), fleet["v1"].id, fleet["north"].id)


@pytest.mark.asyncio
async def test_vehicle_under_maintenance_cannot_be_assigned(db, fleet):
    await assignment.schedule_maintenance(db, fleet["v1"].id)
    with pytest.raises(InvalidStateError):
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)


@pytest.mark.asyncio
async def test_kyc_gate_when_enabled(db, fleet, monkeypatch):
    monkeypatch.setattr(settings, "REQUIRE_KYC_FOR_ASSIGNMENT", True)
    with pytest.raises(NotEligibleError) as exc:
        await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    assert exc.value.code == "KYC_NOT_VERIFIED"


# ── unassign_vehicle ───────────────────────────────────────

@pytest.mark.asyncio
async def test_unassign_without_vehicle_is_noop(db, fleet):
    events_before = (await db.execute(select(func.count(StatusEvent.id)))).scalar()
    vehicle_before = await assignment.get_vehicle(db, fleet["v1"].id)
    updated_at = vehicle_before.updated_at

    rider, vehicle = await assignment.unassign_vehicle(db, fleet["rider"].id)

    assert vehicle is None
    assert rider.assigned_vehicle_id is None
    assert (await db.execute(select(func.count(StatusEvent.id)))).scalar() == events_before
    refreshed = (await db.execute(
        select(Vehicle).where(Vehicle.id == fleet["v1"].id).execution_options(populate_existing=True)
    )).scalar_one()
    assert refreshed.updated_at == updated_at


@pytest.mark.asyncio
async def test_unassign_returns_vehicle_to_pool(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    rider, vehicle = await assignment.unassign_vehicle(db, fleet["rider"].id, actor_id="admin-2")

    assert rider.assigned_vehicle_id is None
    assert vehicle.current_rider_id is None
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value

    history = await assignment.get_vehicle_history(db, rider.id)
    assert history[0].returned_at is not None
    assert history[0].returned_by == "admin-2"


# ── toggle_rider_active ────────────────────────────────────

@pytest.mark.asyncio
async def test_deactivation_keeps_vehicle_by_default(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    rider = await assignment.toggle_rider_active(db, fleet["rider"].id, False)

    assert rider.is_active is False
    assert rider.assigned_vehicle_id == fleet["v1"].id
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.ASSIGNED.value


@pytest.mark.asyncio
async def test_deactivation_auto_unassigns_when_configured(db, fleet, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_UNASSIGN_ON_DEACTIVATION", True)
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    rider = await assignment.toggle_rider_active(db, fleet["rider"].id, False)

    assert rider.assigned_vehicle_id is None
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value
    assert vehicle.current_rider_id is None


# ── Fleet administration ───────────────────────────────────

@pytest.mark.asyncio
async def test_hub_change_blocked_while_assigned(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    with pytest.raises(InvalidStateError):
        await assignment.change_vehicle_hub(db, fleet["v1"].id, fleet["south"].id)


@pytest.mark.asyncio
async def test_hub_change_moves_vehicle_between_pools(db, fleet):
    await assignment.change_vehicle_hub(db, fleet["v1"].id, fleet["south"].id)
    south = await assignment.list_assignable_vehicles(db, fleet["south"].id)
    assert {v.registration_number for v in south} == {"MH12EV0001", "MH12EV0003"}


@pytest.mark.asyncio
async def test_hub_change_to_unknown_hub(db, fleet):
    with pytest.raises(NotFoundError):
        await assignment.change_vehicle_hub(db, fleet["v1"].id, uuid.uuid4())


@pytest.mark.asyncio
async def test_maintenance_releases_rider(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    vehicle = await assignment.set_operational_status(db, fleet["v1"].id, "Under Maintenance", reason="brakes")

    assert vehicle.operational_status == VehicleStatus.UNDER_MAINTENANCE.value
    assert vehicle.current_rider_id is None
    rider = await assignment.get_rider(db, fleet["rider"].id)
    assert rider.assigned_vehicle_id is None


@pytest.mark.asyncio
async def test_status_endpoint_cannot_assign_or_shortcut_unassign(db, fleet):
    with pytest.raises(InvalidStateError):
        await assignment.set_operational_status(db, fleet["v1"].id, VehicleStatus.ASSIGNED)

    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    with pytest.raises(InvalidStateError):
        await assignment.set_operational_status(db, fleet["v1"].id, VehicleStatus.AVAILABLE)


@pytest.mark.asyncio
async def test_retired_vehicle_is_terminal(db, fleet):
    vehicle = await assignment.retire_vehicle(db, fleet["v1"].id, reason="end of life")
    assert vehicle.operational_status == VehicleStatus.RETIRED.value
    with pytest.raises(InvalidStateError):
        await assignment.set_operational_status(db, fleet["v1"].id, VehicleStatus.AVAILABLE)


@pytest.mark.asyncio
async def test_completed_service_returns_vehicle(db, fleet):
    service = await assignment.schedule_maintenance(db, fleet["v1"].id, "Battery", notes="cell check")
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.UNDER_MAINTENANCE.value

    done = await assignment.complete_service(db, service.id, cost=1200.0)
    assert done.service_status == "Completed"
    assert done.completed_at is not None
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_vehicle_waits_for_all_scheduled_services(db, fleet):
    first = await assignment.schedule_maintenance(db, fleet["v1"].id, "Battery")
    second = await assignment.schedule_maintenance(db, fleet["v1"].id, "Tyres")

    await assignment.complete_service(db, first.id)
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.UNDER_MAINTENANCE.value

    await assignment.complete_service(db, second.id)
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_service_cannot_complete_twice(db, fleet):
    service = await assignment.schedule_maintenance(db, fleet["v1"].id)
    await assignment.complete_service(db, service.id)
    with pytest.raises(InvalidStateError):
        await assignment.complete_service(db, service.id)
