import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from models.enums import (
    AgreementStatus,
    ApplicationStatus,
    InvoiceStatus,
    InvoiceType,
    RenewalStatus,
)


class SignAgreementSchema(BaseModel):
    agreement_id: uuid.UUID = Field(alias="agreementId")
    device_fingerprint: Optional[str] = Field(
        default=None, alias="deviceFingerprint", max_length=255
    )

    model_config = {"populate_by_name": True}


class ReasonSchema(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("reason", mode="before")
    def strip_reason(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class InitializePaymentSchema(BaseModel):
    invoice_id: uuid.UUID = Field(alias="invoiceId")

    model_config = {"populate_by_name": True}


class VerifyPaymentSchema(BaseModel):
    reference: str = Field(min_length=1, max_length=120)

    @field_validator("reference", mode="before")
    def strip_reference(cls, v):
        return v.strip() if isinstance(v, str) else v


class ApplicationCreateSchema(BaseModel):
    unit_id: uuid.UUID = Field(alias="unitId")
    move_in_date: Optional[date] = Field(default=None, alias="moveInDate")
    message: Optional[str] = Field(default=None, max_length=2000)

    model_config = {"populate_by_name": True}

    @field_validator("move_in_date")
    def move_in_not_past(cls, v):
        if v is not None and v < date.today():
            raise ValueError("Move-in date cannot be in the past")
        return v


class ApplicationOut(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    landlord_id: uuid.UUID
    unit_id: uuid.UUID
    status: ApplicationStatus
    move_in_date: Optional[date]
    decision_reason: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class InvoiceOut(BaseModel):
    id: uuid.UUID
    invoice_number: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    invoice_date: date
    due_date: date
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal

    model_config = {"from_attributes": True}


class AgreementOut(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    landlord_id: uuid.UUID
    unit_id: uuid.UUID
    start_date: date
    end_date: date
    rent_amount: Decimal
    deposit_amount: Decimal
    status: AgreementStatus
    agreement_version: int
    agreement_hash: Optional[str]
    previous_agreement_id: Optional[uuid.UUID]
    terminated_at: Optional[datetime]
    termination_reason: Optional[str]

    model_config = {"from_attributes": True}


class RenewalRequestSchema(BaseModel):
    requested_end_date: date = Field(alias="requestedEndDate")
    notes: Optional[str] = Field(default=None, max_length=2000)

    model_config = {"populate_by_name": True}


class RenewalApprovalSchema(BaseModel):
    proposed_rent_amount: Optional[Decimal] = Field(
        default=None, alias="proposedRentAmount", gt=0, max_digits=12, decimal_places=2
    )
    notes: Optional[str] = Field(default=None, max_length=2000)

    model_config = {"populate_by_name": True}


class LeaseRenewalOut(BaseModel):
    id: uuid.UUID
    current_agreement_id: uuid.UUID
    new_agreement_id: Optional[uuid.UUID]
    status: RenewalStatus
    requested_start_date: date
    requested_end_date: date
    requested_rent_amount: Decimal
    proposed_rent_amount: Optional[Decimal]
    rejection_reason: Optional[str]

    model_config = {"from_attributes": True}
