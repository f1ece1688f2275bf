from carrier_onboarding.domain.models import (
    CarrierRegistryRecord,
    GateEvaluationResult,
    OnboardingStage,
    OnboardingWorkflowState,
    User,
)

__all__ = [
    "CarrierRegistryRecord",
    "GateEvaluationResult",
    "OnboardingStage",
    "OnboardingWorkflowState",
    "User",
]
