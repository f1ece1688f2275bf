from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from typing import Any

from carrier_onboarding.domain.errors import ValidationError


class OnboardingStage(str, enum.Enum):
    EMAIL_VERIFICATION = "email_verification"
    LOOKUP = "lookup"
    IDENTITY_VERIFICATION = "identity_verification"
    DOCUMENTS = "documents"
    BANK_CONNECTION = "bank_connection"
    REVIEW = "review"
    COMPLETED = "completed"
    REJECTED = "rejected"  # reachable only from LOOKUP


# Ordered stages used for progress; REJECTED sits outside the sequence.
STAGE_ORDER: tuple[OnboardingStage, ...] = (
    OnboardingStage.EMAIL_VERIFICATION,
    OnboardingStage.LOOKUP,
    OnboardingStage.IDENTITY_VERIFICATION,
    OnboardingStage.DOCUMENTS,
    OnboardingStage.BANK_CONNECTION,
    OnboardingStage.REVIEW,
    OnboardingStage.COMPLETED,
)


class AuthorityStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class SafetyRating(str, enum.Enum):
    SATISFACTORY = "SATISFACTORY"
    NONE = "NONE"
    UNSATISFACTORY = "UNSATISFACTORY"


class IdentityMethod(str, enum.Enum):
    NONE = "none"
    DIRECT_CODE = "direct_code"
    THIRD_PARTY_ATTESTATION = "third_party_attestation"


class PayoutMethod(str, enum.Enum):
    NONE = "none"
    LINKED_ACCOUNT = "linked_account"
    MANUAL_DOCUMENTS = "manual_documents"


class DocumentKind(str, enum.Enum):
    INSURANCE_CERTIFICATE = "insurance_certificate"
    TAX_FORM = "tax_form"
    VOIDED_CHECK = "voided_check"


COMPLIANCE_DOCUMENTS: tuple[DocumentKind, ...] = (
    DocumentKind.INSURANCE_CERTIFICATE,
    DocumentKind.TAX_FORM,
)
BANKING_DOCUMENTS: tuple[DocumentKind, ...] = (
    DocumentKind.TAX_FORM,
    DocumentKind.VOIDED_CHECK,
)


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(slots=True, frozen=True)
class PostalAddress:
    street: str
    city: str
    state: str
    zip_code: str


@dataclass(slots=True, frozen=True)
class CarrierRegistryRecord:
    """Snapshot of one carrier as reported by the authority registry."""

    identifying_number: str
    legal_name: str
    authority_status: AuthorityStatus
    authority_granted_on: date
    fleet_size: int
    safety_rating: SafetyRating
    contact_email: str
    contact_phone: str
    recent_contact_change: bool
    address: PostalAddress
    insurance_agent_email: str
    trade_name: str | None = None

    def __post_init__(self) -> None:
        if self.fleet_size < 0:
            raise ValidationError(f"Fleet size cannot be negative (got {self.fleet_size})")

    def to_record(self) -> dict[str, Any]:
        data = asdict(self)
        data["authority_status"] = self.authority_status.value
        data["safety_rating"] = self.safety_rating.value
        data["authority_granted_on"] = self.authority_granted_on.isoformat()
        return data

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> CarrierRegistryRecord:
        return cls(
            identifying_number=data["identifying_number"],
            legal_name=data["legal_name"],
            trade_name=data.get("trade_name"),
            authority_status=AuthorityStatus(data["authority_status"]),
            authority_granted_on=date.fromisoformat(data["authority_granted_on"]),
            fleet_size=int(data["fleet_size"]),
            safety_rating=SafetyRating(data["safety_rating"]),
            contact_email=data["contact_email"],
            contact_phone=data["contact_phone"],
            recent_contact_change=bool(data["recent_contact_change"]),
            address=PostalAddress(**data["address"]),
            insurance_agent_email=data["insurance_agent_email"],
        )


@dataclass(slots=True, frozen=True)
class GateOutcome:
    """Result of one admission criterion."""

    name: str
    passed: bool
    observed: float | int | str | bool
    required: float | int | str | bool


@dataclass(slots=True, frozen=True)
class GateEvaluationResult:
    """Velvet Rope verdict: four gates plus the reasons for each failure."""

    age: GateOutcome
    fleet_size: GateOutcome
    safety: GateOutcome
    stability: GateOutcome
    failure_reasons: tuple[str, ...]
    evaluated_at: datetime

    @property
    def gates(self) -> tuple[GateOutcome, ...]:
        return (self.age, self.fleet_size, self.safety, self.stability)

    @property
    def passed(self) -> bool:
        return all(gate.passed for gate in self.gates)

    def to_record(self) -> dict[str, Any]:
        return {
            "gates": [asdict(gate) for gate in self.gates],
            "failure_reasons": list(self.failure_reasons),
            "evaluated_at": self.evaluated_at.isoformat(),
            "passed": self.passed,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> GateEvaluationResult:
        age, fleet_size, safety, stability = (GateOutcome(**gate) for gate in data["gates"])
        return cls(
            age=age,
            fleet_size=fleet_size,
            safety=safety,
            stability=stability,
            failure_reasons=tuple(data["failure_reasons"]),
            evaluated_at=datetime.fromisoformat(data["evaluated_at"]),
        )


@dataclass(slots=True, frozen=True)
class DocumentSlot:
    kind: DocumentKind
    present: bool = False
    filename: str | None = None
    stored_location: str | None = None
    uploaded_at: datetime | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "present": self.present,
            "filename": self.filename,
            "stored_location": self.stored_location,
            "uploaded_at": _iso(self.uploaded_at),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> DocumentSlot:
        return cls(
            kind=DocumentKind(data["kind"]),
            present=bool(data["present"]),
            filename=data.get("filename"),
            stored_location=data.get("stored_location"),
            uploaded_at=_parse_datetime(data.get("uploaded_at")),
        )


@dataclass(slots=True, frozen=True)
class DocumentSet:
    """Closed set of required document slots; no slot can be added later."""

    slots: tuple[DocumentSlot, ...]

    @classmethod
    def empty(cls, kinds: tuple[DocumentKind, ...]) -> DocumentSet:
        return cls(slots=tuple(DocumentSlot(kind=kind) for kind in kinds))

    @property
    def kinds(self) -> tuple[DocumentKind, ...]:
        return tuple(slot.kind for slot in self.slots)

    @property
    def is_complete(self) -> bool:
        return all(slot.present for slot in self.slots)

    @property
    def present_count(self) -> int:
        return sum(1 for slot in self.slots if slot.present)

    def get(self, kind: DocumentKind) -> DocumentSlot:
        for slot in self.slots:
            if slot.kind == kind:
                return slot
        raise ValidationError(f"'{kind.value}' is not a required document here")

    def with_slot(self, updated: DocumentSlot) -> DocumentSet:
        self.get(updated.kind)
        return DocumentSet(
            slots=tuple(updated if slot.kind == updated.kind else slot for slot in self.slots)
        )

    def to_record(self) -> list[dict[str, Any]]:
        return [slot.to_record() for slot in self.slots]

    @classmethod
    def from_record(cls, data: list[dict[str, Any]]) -> DocumentSet:
        return cls(slots=tuple(DocumentSlot.from_record(item) for item in data))


@dataclass(slots=True, frozen=True)
class IdentityVerificationState:
    method: IdentityMethod = IdentityMethod.NONE
    code_requested: bool = False
    code_confirmed: bool = False
    failed_attempts: int = 0
    attestation_requested: bool = False

    @property
    def identity_established(self) -> bool:
        if self.method == IdentityMethod.DIRECT_CODE:
            return self.code_confirmed
        if self.method == IdentityMethod.THIRD_PARTY_ATTESTATION:
            return self.attestation_requested
        return False

    @property
    def attestation_pending(self) -> bool:
        """Attestation was requested but nobody has confirmed it in-app."""
        return (
            self.method == IdentityMethod.THIRD_PARTY_ATTESTATION and self.attestation_requested
        )

    def to_record(self) -> dict[str, Any]:
        data = asdict(self)
        data["method"] = self.method.value
        return data

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> IdentityVerificationState:
        return cls(**{**data, "method": IdentityMethod(data["method"])})


def _banking_documents() -> DocumentSet:
    return DocumentSet.empty(BANKING_DOCUMENTS)


def _compliance_documents() -> DocumentSet:
    return DocumentSet.empty(COMPLIANCE_DOCUMENTS)


@dataclass(slots=True, frozen=True)
class PayoutState:
    method: PayoutMethod = PayoutMethod.NONE
    connected: bool = False
    instant_settlement: bool = False
    linked_account_id: str | None = None
    documents: DocumentSet = field(default_factory=_banking_documents)

    def __post_init__(self) -> None:
        if self.connected and self.method == PayoutMethod.NONE:
            raise ValidationError("A payout method must be chosen before it can be connected")

    def to_record(self) -> dict[str, Any]:
        return {
            "method": self.method.value,
            "connected": self.connected,
            "instant_settlement": self.instant_settlement,
            "linked_account_id": self.linked_account_id,
            "documents": self.documents.to_record(),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> PayoutState:
        return cls(
            method=PayoutMethod(data["method"]),
            connected=bool(data["connected"]),
            instant_settlement=bool(data["instant_settlement"]),
            linked_account_id=data.get("linked_account_id"),
            documents=DocumentSet.from_record(data["documents"]),
        )


@dataclass(slots=True, frozen=True)
class RiskAssessment:
    score: int
    indicators: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class OnboardingWorkflowState:
    """Everything known about one carrier's onboarding attempt."""

    carrier_id: str
    stage: OnboardingStage = OnboardingStage.EMAIL_VERIFICATION
    business_email: str | None = None
    identifying_number: str | None = None
    record: CarrierRegistryRecord | None = None
    gate_result: GateEvaluationResult | None = None
    identity: IdentityVerificationState = field(default_factory=IdentityVerificationState)
    documents: DocumentSet = field(default_factory=_compliance_documents)
    payout: PayoutState = field(default_factory=PayoutState)
    risk: RiskAssessment | None = None
    started_at: datetime | None = None

    def evolve(self, **changes: Any) -> OnboardingWorkflowState:
        return replace(self, **changes)

    def to_record(self) -> dict[str, Any]:
        """Flatten into a JSON-compatible dict keyed by ``carrier_id``."""
        return {
            "carrier_id": self.carrier_id,
            "stage": self.stage.value,
            "business_email": self.business_email,
            "identifying_number": self.identifying_number,
            "record": self.record.to_record() if self.record else None,
            "gate_result": self.gate_result.to_record() if self.gate_result else None,
            "identity": self.identity.to_record(),
            "documents": self.documents.to_record(),
            "payout": self.payout.to_record(),
            "risk_score": self.risk.score if self.risk else None,
            "risk_indicators": list(self.risk.indicators) if self.risk else [],
            "started_at": _iso(self.started_at),
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> OnboardingWorkflowState:
        risk = None
        if data.get("risk_score") is not None:
            risk = RiskAssessment(
                score=int(data["risk_score"]),
                indicators=tuple(data.get("risk_indicators") or ()),
            )
        return cls(
            carrier_id=data["carrier_id"],
            stage=OnboardingStage(data["stage"]),
            business_email=data.get("business_email"),
            identifying_number=data.get("identifying_number"),
            record=CarrierRegistryRecord.from_record(data["record"]) if data.get("record") else None,
            gate_result=(
                GateEvaluationResult.from_record(data["gate_result"])
                if data.get("gate_result")
                else None
            ),
            identity=IdentityVerificationState.from_record(data["identity"]),
            documents=DocumentSet.from_record(data["documents"]),
            payout=PayoutState.from_record(data["payout"]),
            risk=risk,
            started_at=_parse_datetime(data.get("started_at")),
        )


@dataclass(slots=True, frozen=True)
class ConsolidatedProfile:
    """Finalized carrier profile handed to the system of record."""

    record: CarrierRegistryRecord
    business_email: str
    identity_method: IdentityMethod
    identity_confirmed: bool
    payout_method: PayoutMethod
    instant_settlement: bool
    linked_account_id: str | None
    documents: tuple[DocumentSlot, ...]
    risk_score: int
    verified_at: datetime


@dataclass(slots=True)
class User:
    """Authenticated marketplace actor resolved from the bearer token."""

    user_id: str
    email: str = ""
    roles: list[str] = field(default_factory=list)
