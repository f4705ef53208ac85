"""Damage reporting, severity policy and the repair workflow."""

from decimal import Decimal

import pytest

from config import settings
from errors import InvalidTransitionError, ValidationError
from schemas import DamageStatus, VehicleStatus
from services import assignment, damage
from services.damage import can_transition


# ── Workflow ordering (pure) ───────────────────────────────

def test_loose_mode_allows_skipping_stages():
    assert can_transition(DamageStatus.REPORTED, DamageStatus.IN_REPAIR)
    assert can_transition(DamageStatus.REPORTED, DamageStatus.RESOLVED)


def test_backward_and_self_moves_rejected():
    assert not can_transition(DamageStatus.IN_REPAIR, DamageStatus.UNDER_REVIEW)
    assert not can_transition(DamageStatus.UNDER_REVIEW, DamageStatus.UNDER_REVIEW)


def test_terminal_states_are_final():
    assert not can_transition(DamageStatus.RESOLVED, DamageStatus.REJECTED)
    assert not can_transition(DamageStatus.REJECTED, DamageStatus.IN_REPAIR)


def test_strict_mode_only_allows_next_step_or_rejection():
    assert can_transition(DamageStatus.REPORTED, DamageStatus.UNDER_REVIEW, strict=True)
    assert can_transition(DamageStatus.UNDER_REVIEW, DamageStatus.REJECTED, strict=True)
    assert not can_transition(DamageStatus.REPORTED, DamageStatus.IN_REPAIR, strict=True)
    assert not can_transition(DamageStatus.APPROVED_FOR_REPAIR, DamageStatus.RESOLVED, strict=True)


# ── Reporting & severity policy ────────────────────────────

async def _report(db, vehicle, severity="Major", damage_type="Mechanical"):
    return await damage.report_damage(
        db, vehicle.id, damage_type, severity, "Front fork bent", location="front", actor_id="hub-lead",
    )


@pytest.mark.asyncio
async def test_report_starts_in_reported(db, fleet):
    record = await _report(db, fleet["v1"], severity="Minor", damage_type="Cosmetic")
    assert record.damage_status == DamageStatus.REPORTED.value
    assert record.reported_by == "hub-lead"
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_serious_damage_grounds_vehicle_and_releases_rider(db, fleet):
    await assignment.assign_vehicle(db, fleet["rider"].id, fleet["v1"].id, fleet["north"].id)
    await _report(db, fleet["v1"], severity="Moderate")

    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.DAMAGED.value
    assert vehicle.current_rider_id is None
    rider = await assignment.get_rider(db, fleet["rider"].id)
    assert rider.assigned_vehicle_id is None


@pytest.mark.asyncio
async def test_retired_vehicle_stays_retired(db, fleet):
    await assignment.retire_vehicle(db, fleet["v1"].id)
    await _report(db, fleet["v1"], severity="Major")
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.RETIRED.value


@pytest.mark.asyncio
async def test_policy_can_be_disabled(db, fleet, monkeypatch):
    monkeypatch.setattr(settings, "DAMAGE_SEVERITY_THRESHOLD", "none")
    await _report(db, fleet["v1"], severity="Major")
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_report_requires_description(db, fleet):
    with pytest.raises(ValidationError):
        await damage.report_damage(db, fleet["v1"].id, "Cosmetic", "Minor", "  ")


@pytest.mark.asyncio
async def test_report_rejects_unknown_severity(db, fleet):
    with pytest.raises(ValidationError):
        await damage.report_damage(db, fleet["v1"].id, "Cosmetic", "Catastrophic", "Scratched")


# ── Transitions ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_resolve_requires_actual_cost(db, fleet):
    record = await _report(db, fleet["v1"], severity="Minor")
    with pytest.raises(ValidationError):
        await damage.transition_damage_status(db, record.id, "Resolved")

    unchanged = await damage.get_damage(db, record.id)
    assert unchanged.damage_status == DamageStatus.REPORTED.value


@pytest.mark.asyncio
async def test_reject_requires_resolution_notes(db, fleet):
    record = await _report(db, fleet["v1"], severity="Minor")
    with pytest.raises(ValidationError):
        await damage.transition_damage_status(db, record.id, "Rejected")
    rejected = await damage.transition_damage_status(
        db, record.id, "Rejected", resolution_notes="Pre-existing scratch",
    )
    assert rejected.damage_status == DamageStatus.REJECTED.value


@pytest.mark.asyncio
async def test_backward_transition_rejected(db, fleet):
    record = await _report(db, fleet["v1"], severity="Minor")
    await damage.transition_damage_status(db, record.id, "In Repair", assigned_technician="Meena")
    with pytest.raises(InvalidTransitionError):
        await damage.transition_damage_status(db, record.id, "Under Review")


@pytest.mark.asyncio
async def test_strict_mode_blocks_skipping(db, fleet, monkeypatch):
    monkeypatch.setattr(settings, "STRICT_DAMAGE_WORKFLOW", True)
    record = await _report(db, fleet["v1"], severity="Minor")
    with pytest.raises(InvalidTransitionError):
        await damage.transition_damage_status(db, record.id, "In Repair")
    reviewed = await damage.transition_damage_status(db, record.id, "Under Review")
    assert reviewed.damage_status == DamageStatus.UNDER_REVIEW.value


@pytest.mark.asyncio
async def test_resolution_returns_vehicle_to_service(db, fleet):
    record = await _report(db, fleet["v1"], severity="Major")
    resolved = await damage.transition_damage_status(
        db, record.id, "Resolved", actual_cost=Decimal("2450.00"), resolution_notes="Fork replaced",
    )
    assert resolved.resolved_at is not None
    assert resolved.actual_cost == Decimal("2450.00")

    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value


@pytest.mark.asyncio
async def test_other_open_serious_damage_keeps_vehicle_grounded(db, fleet):
    first = await _report(db, fleet["v1"], severity="Major")
    await _report(db, fleet["v1"], severity="Moderate", damage_type="Electrical")

    await damage.transition_damage_status(db, first.id, "Resolved", actual_cost=Decimal("100"))
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.DAMAGED.value


@pytest.mark.asyncio
async def test_closing_minor_damage_leaves_manual_grounding(db, fleet):
    await assignment.set_operational_status(db, fleet["v1"].id, "Damaged", reason="Battery swelling")
    record = await _report(db, fleet["v1"], severity="Minor", damage_type="Cosmetic")

    await damage.transition_damage_status(db, record.id, "Resolved", actual_cost=Decimal("10"))
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.DAMAGED.value


@pytest.mark.asyncio
async def test_resolution_with_pending_service_returns_to_maintenance(db, fleet):
    service = await assignment.schedule_maintenance(db, fleet["v1"].id, "Preventive")
    record = await _report(db, fleet["v1"], severity="Major")

    await damage.transition_damage_status(db, record.id, "Resolved", actual_cost=Decimal("900"))
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.UNDER_MAINTENANCE.value

    await assignment.complete_service(db, service.id)
    vehicle = await assignment.get_vehicle(db, fleet["v1"].id)
    assert vehicle.operational_status == VehicleStatus.AVAILABLE.value


# ── Queries ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_damage_stats(db, fleet):
    await _report(db, fleet["v1"], severity="Minor", damage_type="Cosmetic")
    major = await _report(db, fleet["v2"], severity="Major")
    await damage.transition_damage_status(db, major.id, "Resolved", actual_cost=Decimal("900"))

    stats = await damage.damage_stats(db)
    assert stats["total"] == 2
    assert stats["by_status"]["Reported"] == 1
    assert stats["by_status"]["Resolved"] == 1
    assert stats["by_status"]["In Repair"] == 0
    assert stats["by_severity"] == {"Minor": 1, "Moderate": 0, "Major": 1}
    assert stats["by_type"]["Mechanical"] == 1


@pytest.mark.asyncio
async def test_empty_damage_queries(db):
    assert await damage.list_damages(db) == []
    stats = await damage.damage_stats(db)
    assert stats["total"] == 0


@pytest.mark.asyncio
async def test_list_filters(db, fleet):
    await _report(db, fleet["v1"], severity="Minor", damage_type="Cosmetic")
    await _report(db, fleet["v2"], severity="Major")
    records = await damage.list_damages(db, vehicle_id=fleet["v2"].id)
    assert [r.severity for r in records] == ["Major"]
    assert len(await damage.list_damages(db, severity="Minor")) == 1
