"""
KYC verification — rider identity documents and the aggregated rider status.

Each submission is its own record; a rejected document is never reopened,
the rider uploads a new one. The rider's kyc_status is derived from the
latest document of each required type and recomputed after every
submission and decision.
"""

import logging
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import InvalidStateError, NotFoundError, ValidationError
from models.rider import KycDocument, Rider
from schemas import DocumentType, KycStatus
from services import bot_notifier
from services.assignment import get_rider
from services.audit import record_event

logger = logging.getLogger(__name__)

DECISIONS = (KycStatus.VERIFIED, KycStatus.REJECTED)


def aggregate_kyc_status(latest_per_type: Mapping[str, str], required_types: Iterable[str]) -> KycStatus:
    """
    Rider-level KYC status from the latest status of each document type.

    Only submitted required types count: rejected if any is rejected,
    verified if at least one is submitted and all are verified, else pending.
    """
    required = set(required_types)
    statuses = [
        KycStatus(status) for doc_type, status in latest_per_type.items()
        if not required or doc_type in required
    ]
    if any(s == KycStatus.REJECTED for s in statuses):
        return KycStatus.REJECTED
    if statuses and all(s == KycStatus.VERIFIED for s in statuses):
        return KycStatus.VERIFIED
    return KycStatus.PENDING


def latest_by_type(documents: Iterable[KycDocument]) -> dict[str, KycDocument]:
    latest: dict[str, KycDocument] = {}
    for doc in sorted(documents, key=lambda d: d.created_at):
        latest[doc.document_type] = doc
    return latest


async def _documents(db: AsyncSession, rider_id: uuid.UUID) -> list[KycDocument]:
    result = await db.execute(
        select(KycDocument)
        .where(KycDocument.rider_id == rider_id)
        .order_by(KycDocument.created_at)
    )
    return list(result.scalars().all())


async def _recompute(db: AsyncSession, rider: Rider, actor_id: str | None) -> KycStatus:
    await db.flush()
    latest = latest_by_type(await _documents(db, rider.id))
    status = aggregate_kyc_status(
        {doc_type: doc.verification_status for doc_type, doc in latest.items()},
        settings.KYC_REQUIRED_DOCUMENTS,
    )
    if rider.kyc_status != status.value:
        record_event(db, "rider", rider.id, status.value, from_status=rider.kyc_status, actor_id=actor_id, notes="kyc")
        logger.info("Rider %s KYC: %s -> %s", rider.id, rider.kyc_status, status.value)
        rider.kyc_status = status.value
    return status


async def submit_document(
    db: AsyncSession,
    rider_id: uuid.UUID,
    document_type: DocumentType | str,
    document_url: str | None = None,
    document_number: str | None = None,
    actor_id: str | None = None,
) -> KycDocument:
    """Store a new pending document. Resubmitting a type supersedes the older record."""
    try:
        doc_type = DocumentType(document_type)
    except ValueError:
        raise ValidationError(f"Unknown document type: {document_type}")
    if not (document_url or document_number):
        raise ValidationError("document_url or document_number is required")

    rider = await get_rider(db, rider_id)
    document = KycDocument(
        rider_id=rider.id,
        document_type=doc_type.value,
        document_url=document_url,
        document_number=document_number,
        verification_status=KycStatus.PENDING.value,
    )
    db.add(document)
    await db.flush()
    record_event(db, "kyc_document", document.id, KycStatus.PENDING.value, actor_id=actor_id)
    await _recompute(db, rider, actor_id)
    await db.commit()
    await db.refresh(document)

    logger.info("KYC document submitted: rider=%s type=%s id=%s", rider.id, doc_type.value, document.id)
    return document


async def verify_document(
    db: AsyncSession,
    rider_id: uuid.UUID,
    document_id: uuid.UUID,
    decision: KycStatus | str,
    notes: str | None = None,
    actor_id: str | None = None,
) -> tuple[KycDocument, Rider]:
    """Verify or reject one pending document, then recompute the rider's status."""
    try:
        verdict = KycStatus(decision)
    except ValueError:
        verdict = None
    if verdict not in DECISIONS:
        raise ValidationError("decision must be 'verified' or 'rejected'", code="INVALID_DECISION")
    if verdict == KycStatus.REJECTED and not (notes and notes.strip()):
        raise ValidationError("Notes are required when rejecting a document", code="NOTES_REQUIRED")

    rider = await get_rider(db, rider_id)
    document = await db.get(KycDocument, document_id)
    if not document or document.rider_id != rider.id:
        raise NotFoundError("KYC document not found", code="DOCUMENT_NOT_FOUND")
    if document.verification_status != KycStatus.PENDING.value:
        raise InvalidStateError(f"Document is already {document.verification_status}", code="ALREADY_DECIDED")

    document.verification_status = verdict.value
    document.verified_by = actor_id
    document.verified_at = datetime.utcnow()
    document.notes = notes
    record_event(
        db, "kyc_document", document.id, verdict.value,
        from_status=KycStatus.PENDING.value, actor_id=actor_id, notes=notes,
    )
    await _recompute(db, rider, actor_id)
    await db.commit()
    await db.refresh(document)
    await db.refresh(rider)

    logger.info("KYC document %s %s by %s", document.id, verdict.value, actor_id)
    if rider.telegram_id:
        await bot_notifier.notify_kyc_decision(rider.telegram_id, document.document_type, verdict.value, notes)
    return document, rider


async def kyc_summary(db: AsyncSession, rider_id: uuid.UUID) -> dict:
    rider = await get_rider(db, rider_id)
    latest = latest_by_type(await _documents(db, rider.id))
    required = list(settings.KYC_REQUIRED_DOCUMENTS)

    submitted_required = [t for t in required if t in latest]
    missing = [t for t in required if t not in latest]
    completion = round(len(submitted_required) / len(required) * 100) if required else 100
    overall = aggregate_kyc_status(
        {doc_type: doc.verification_status for doc_type, doc in latest.items()},
        required,
    )
    return {
        "rider_id": rider.id,
        "overall_status": overall,
        "documents": list(latest.values()),
        "missing_documents": missing,
        "completion_percentage": completion,
    }
