from __future__ import annotations

from datetime import date, datetime

from pydantic import Base64Bytes, BaseModel, Field

from carrier_onboarding.domain.models import (
    DocumentKind,
    IdentityMethod,
    OnboardingStage,
    PayoutMethod,
)


class BusinessEmailRequest(BaseModel):
    email: str = Field(..., description="Company email address; free webmail domains are refused")


class LookupRequest(BaseModel):
    identifying_number: str = Field(..., description="MC number, digits only or with an MC prefix")


class IdentityMethodRequest(BaseModel):
    method: IdentityMethod


class ConfirmCodeRequest(BaseModel):
    code: str = Field(..., description="Six digit code from the verification email")


class PayoutMethodRequest(BaseModel):
    method: PayoutMethod


class DocumentUploadRequest(BaseModel):
    filename: str
    content_type: str = Field(..., description="application/pdf, image/png or image/jpeg")
    content: Base64Bytes = Field(..., description="Base64 encoded file body")


class AddressItem(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str


class CarrierRecordItem(BaseModel):
    identifying_number: str
    legal_name: str
    trade_name: str | None = None
    authority_status: str
    authority_granted_on: date
    fleet_size: int
    safety_rating: str
    contact_email: str
    contact_phone: str
    recent_contact_change: bool
    address: AddressItem
    insurance_agent_email: str


class GateOutcomeItem(BaseModel):
    name: str
    passed: bool
    observed: bool | int | float | str
    required: bool | int | float | str


class GateResultItem(BaseModel):
    passed: bool
    gates: list[GateOutcomeItem]
    failure_reasons: list[str]
    evaluated_at: datetime


class IdentityItem(BaseModel):
    method: IdentityMethod
    code_requested: bool
    code_confirmed: bool
    failed_attempts: int
    attestation_requested: bool
    established: bool


class DocumentSlotItem(BaseModel):
    kind: DocumentKind
    present: bool
    filename: str | None = None
    stored_location: str | None = None
    uploaded_at: datetime | None = None


class PayoutItem(BaseModel):
    method: PayoutMethod
    connected: bool
    instant_settlement: bool
    linked_account_id: str | None = None
    documents: list[DocumentSlotItem]


class RiskItem(BaseModel):
    score: int
    indicators: list[str]


class OnboardingStateResponse(BaseModel):
    carrier_id: str
    stage: OnboardingStage
    progress_percentage: float
    can_submit: bool
    business_email: str | None = None
    identifying_number: str | None = None
    record: CarrierRecordItem | None = None
    gate_result: GateResultItem | None = None
    identity: IdentityItem
    documents: list[DocumentSlotItem]
    payout: PayoutItem
    risk: RiskItem | None = None


class ConfirmCodeResponse(BaseModel):
    matched: bool
    state: OnboardingStateResponse


class LinkAccountResponse(BaseModel):
    account_id: str
    connected: bool
    onboarding_url: str | None = Field(
        None, description="Hosted page the carrier finishes the bank connection on"
    )
    state: OnboardingStateResponse


class ReviewSummaryResponse(BaseModel):
    legal_name: str
    identifying_number: str
    identity_method: IdentityMethod
    identity_status: str
    documents: list[DocumentSlotItem]
    payout_method: PayoutMethod
    instant_settlement: bool
    risk_score: int
    risk_indicators: list[str]
    flags: list[str]
    can_submit: bool


class CompletionResponse(BaseModel):
    carrier_id: str
    stage: OnboardingStage = OnboardingStage.COMPLETED
    completed_at: datetime
    identifying_number: str
    legal_name: str
    instant_settlement: bool
    flags: list[str]
