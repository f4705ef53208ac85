"""Pydantic schemas for API request/response models."""

from __future__ import annotations
import uuid
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field


# ── Enums ──────────────────────────────────────────────────

class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class VehicleStatus(str, Enum):
    AVAILABLE = "Available"
    ASSIGNED = "Assigned"
    UNDER_MAINTENANCE = "Under Maintenance"
    RETIRED = "Retired"
    DAMAGED = "Damaged"


class KycStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class DocumentType(str, Enum):
    AADHAAR = "aadhaar"
    PAN = "pan"
    DL = "dl"
    SELFIE = "selfie"
    RC = "rc"
    BANK_PASSBOOK = "bank_passbook"


class DamageStatus(str, Enum):
    REPORTED = "Reported"
    UNDER_REVIEW = "Under Review"
    APPROVED_FOR_REPAIR = "Approved for Repair"
    IN_REPAIR = "In Repair"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


class DamageSeverity(str, Enum):
    MINOR = "Minor"
    MODERATE = "Moderate"
    MAJOR = "Major"


class DamageType(str, Enum):
    COSMETIC = "Cosmetic"
    MECHANICAL = "Mechanical"
    ELECTRICAL = "Electrical"
    STRUCTURAL = "Structural"


class ServiceStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


# ── Hub Schemas ────────────────────────────────────────────

class HubCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    code: str = Field(..., min_length=2, max_length=20)
    city: str | None = None
    address: str | None = None


class HubResponse(BaseModel):
    id: uuid.UUID
    name: str
    code: str
    city: str | None
    address: str | None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ── Vehicle Schemas ────────────────────────────────────────

class VehicleCreate(BaseModel):
    hub_id: uuid.UUID
    registration_number: str = Field(..., min_length=4, max_length=30)
    model_name: str | None = None
    battery_capacity_kwh: float | None = Field(None, ge=0)
    mileage: int = Field(0, ge=0)


class VehicleResponse(BaseModel):
    id: uuid.UUID
    hub_id: uuid.UUID
    registration_number: str
    model_name: str | None
    battery_capacity_kwh: float | None
    operational_status: VehicleStatus
    current_rider_id: uuid.UUID | None
    assignment_date: datetime | None
    mileage: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class VehicleStatusUpdate(BaseModel):
    operational_status: VehicleStatus
    reason: str | None = None


class VehicleHubUpdate(BaseModel):
    hub_id: uuid.UUID


class VehicleRetire(BaseModel):
    reason: str | None = None


class MaintenanceCreate(BaseModel):
    service_type: str = Field("Preventive", min_length=2, max_length=50)
    scheduled_date: datetime | None = None
    notes: str | None = None


class ServiceComplete(BaseModel):
    cost: float | None = Field(None, ge=0)
    notes: str | None = None


class ServiceRecordResponse(BaseModel):
    id: uuid.UUID
    vehicle_id: uuid.UUID
    service_type: str
    scheduled_date: datetime
    service_status: ServiceStatus
    cost: float | None
    notes: str | None
    completed_at: datetime | None

    class Config:
        from_attributes = True


# ── Rider Schemas ──────────────────────────────────────────

class RiderCreate(BaseModel):
    full_name: str = Field(..., min_length=3, max_length=255)
    phone: str = Field(..., min_length=10, max_length=20)
    telegram_id: int | None = None
    hub_id: uuid.UUID | None = None


class RiderResponse(BaseModel):
    id: uuid.UUID
    full_name: str
    phone: str
    telegram_id: int | None
    hub_id: uuid.UUID | None
    is_active: bool
    kyc_status: KycStatus
    assigned_vehicle_id: uuid.UUID | None
    created_at: datetime

    class Config:
        from_attributes = True


class RiderActiveUpdate(BaseModel):
    is_active: bool


class VehicleAssignRequest(BaseModel):
    vehicle_id: uuid.UUID
    hub_id: uuid.UUID | None = None
    notes: str | None = None


class VehicleUnassignRequest(BaseModel):
    notes: str | None = None


class AssignmentResult(BaseModel):
    rider: RiderResponse
    vehicle: VehicleResponse | None = None


class AssignmentHistoryResponse(BaseModel):
    id: int
    rider_id: uuid.UUID
    vehicle_id: uuid.UUID
    hub_id: uuid.UUID
    assigned_by: str | None
    assigned_at: datetime
    returned_by: str | None
    returned_at: datetime | None
    notes: str | None

    class Config:
        from_attributes = True


# ── KYC Schemas ────────────────────────────────────────────

class KycDocumentCreate(BaseModel):
    document_type: DocumentType
    document_url: str | None = None
    document_number: str | None = Field(None, max_length=50)


class KycDecisionRequest(BaseModel):
    decision: str
    notes: str | None = None


class KycDocumentResponse(BaseModel):
    id: uuid.UUID
    rider_id: uuid.UUID
    document_type: str
    document_url: str | None
    document_number: str | None
    verification_status: KycStatus
    verified_by: str | None
    verified_at: datetime | None
    notes: str | None
    created_at: datetime

    class Config:
        from_attributes = True


class KycSummaryResponse(BaseModel):
    rider_id: uuid.UUID
    overall_status: KycStatus
    documents: list[KycDocumentResponse]
    missing_documents: list[str]
    completion_percentage: int
