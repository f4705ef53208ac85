"""KYC document decisions and rider status aggregation."""

import uuid

import pytest

from errors import InvalidStateError, NotFoundError, ValidationError
from schemas import KycStatus
from services import assignment, kyc
from services.kyc import aggregate_kyc_status

REQUIRED = ["aadhaar", "pan", "dl", "selfie"]


# ── Aggregation (pure) ─────────────────────────────────────

def test_verified_and_pending_is_pending():
    assert aggregate_kyc_status({"aadhaar": "verified", "pan": "pending"}, REQUIRED) == KycStatus.PENDING


def test_all_submitted_verified_is_verified():
    assert aggregate_kyc_status({"aadhaar": "verified", "pan": "verified"}, REQUIRED) == KycStatus.VERIFIED


def test_any_rejected_is_rejected():
    assert aggregate_kyc_status({"aadhaar": "rejected", "pan": "verified"}, REQUIRED) == KycStatus.REJECTED


def test_nothing_submitted_is_pending():
    assert aggregate_kyc_status({}, REQUIRED) == KycStatus.PENDING


def test_optional_documents_are_ignored():
    assert aggregate_kyc_status({"aadhaar": "verified", "rc": "rejected"}, REQUIRED) == KycStatus.VERIFIED


# ── Service ────────────────────────────────────────────────

@pytest.fixture
def rider(fleet):
    return fleet["rider"]


async def _submit(db, rider, doc_type):
    return await kyc.submit_document(db, rider.id, doc_type, document_url=f"https://files.example/{doc_type}.jpg")


@pytest.mark.asyncio
async def test_submit_creates_pending_document(db, rider):
    document = await _submit(db, rider, "aadhaar")
    assert document.verification_status == "pending"
    assert document.rider_id == rider.id


@pytest.mark.asyncio
async def test_submit_rejects_unknown_type(db, rider):
    with pytest.raises(ValidationError):
        await kyc.submit_document(db, rider.id, "passport", document_number="X123")


@pytest.mark.asyncio
async def test_submit_needs_url_or_number(db, rider):
    with pytest.raises(ValidationError):
        await kyc.submit_document(db, rider.id, "pan")


@pytest.mark.asyncio
async def test_rider_status_follows_decisions(db, rider):
    aadhaar = await _submit(db, rider, "aadhaar")
    pan = await _submit(db, rider, "pan")

    _, updated = await kyc.verify_document(db, rider.id, aadhaar.id, "verified", actor_id="kyc-officer")
    assert updated.kyc_status == "pending"

    document, updated = await kyc.verify_document(db, rider.id, pan.id, "verified", actor_id="kyc-officer")
    assert updated.kyc_status == "verified"
    assert document.verified_by == "kyc-officer"
    assert document.verified_at is not None


@pytest.mark.asyncio
async def test_rejection_marks_rider_rejected(db, rider):
    aadhaar = await _submit(db, rider, "aadhaar")
    pan = await _submit(db, rider, "pan")
    await kyc.verify_document(db, rider.id, pan.id, "verified")
    _, updated = await kyc.verify_document(db, rider.id, aadhaar.id, "rejected", notes="Blurry photo")
    assert updated.kyc_status == "rejected"


@pytest.mark.asyncio
async def test_rejection_requires_notes(db, rider):
    document = await _submit(db, rider, "dl")
    with pytest.raises(ValidationError):
        await kyc.verify_document(db, rider.id, document.id, "rejected", notes="   ")


@pytest.mark.asyncio
async def test_decision_must_be_verified_or_rejected(db, rider):
    document = await _submit(db, rider, "dl")
    with pytest.raises(ValidationError):
        await kyc.verify_document(db, rider.id, document.id, "pending")
    with pytest.raises(ValidationError):
        await kyc.verify_document(db, rider.id, document.id, "approved")


@pytest.mark.asyncio
async def test_decided_document_cannot_be_redecided(db, rider):
    document = await _submit(db, rider, "selfie")
    await kyc.verify_document(db, rider.id, document.id, "verified")
    with pytest.raises(InvalidStateError):
        await kyc.verify_document(db, rider.id, document.id, "rejected", notes="changed my mind")


@pytest.mark.asyncio
async def test_document_of_another_rider_not_found(db, fleet, rider):
    other = await assignment.create_rider(db, "Ravi Kumar", "9800000002")
    document = await _submit(db, other, "pan")
    with pytest.raises(NotFoundError):
        await kyc.verify_document(db, rider.id, document.id, "verified")
    with pytest.raises(NotFoundError):
        await kyc.verify_document(db, rider.id, uuid.uuid4(), "verified")


@pytest.mark.asyncio
async def test_resubmission_after_rejection_reopens_review(db, rider):
    first = await _submit(db, rider, "aadhaar")
    _, updated = await kyc.verify_document(db, rider.id, first.id, "rejected", notes="Expired")
    assert updated.kyc_status == "rejected"

    second = await _submit(db, rider, "aadhaar")
    assert second.id != first.id
    refreshed = await assignment.get_rider(db, rider.id)
    assert refreshed.kyc_status == "pending"


@pytest.mark.asyncio
async def test_kyc_summary(db, rider):
    aadhaar = await _submit(db, rider, "aadhaar")
    await _submit(db, rider, "pan")
    await _submit(db, rider, "rc")
    await kyc.verify_document(db, rider.id, aadhaar.id, "verified")

    summary = await kyc.kyc_summary(db, rider.id)
    assert summary["missing_documents"] == ["dl", "selfie"]
    assert summary["completion_percentage"] == 50
    assert summary["overall_status"] == KycStatus.PENDING
    assert {d.document_type for d in summary["documents"]} == {"aadhaar", "pan", "rc"}
