from .carriers import CarrierProfileRepository
from .onboarding_states import OnboardingStateRepository

__all__ = ["CarrierProfileRepository", "OnboardingStateRepository"]
