"""Domain services."""

from carrier_onboarding.domain.services.documents import DocumentCollectionTracker, DocumentUpload
from carrier_onboarding.domain.services.eligibility import evaluate
from carrier_onboarding.domain.services.identity import IdentityVerificationCoordinator
from carrier_onboarding.domain.services.payout import LinkResult, PayoutMethodLinker
from carrier_onboarding.domain.services.registry_lookup import CarrierRegistryLookup
from carrier_onboarding.domain.services.risk import assess_risk
from carrier_onboarding.domain.services.workflow import (
    CompletionReceipt,
    OnboardingWorkflow,
    ReviewSummary,
    WorkflowEvent,
)

__all__ = [
    "CarrierRegistryLookup",
    "CompletionReceipt",
    "DocumentCollectionTracker",
    "DocumentUpload",
    "IdentityVerificationCoordinator",
    "LinkResult",
    "OnboardingWorkflow",
    "PayoutMethodLinker",
    "ReviewSummary",
    "WorkflowEvent",
    "assess_risk",
    "evaluate",
]
